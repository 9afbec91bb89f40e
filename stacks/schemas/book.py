#!/usr/bin/env python
"""
    Book Schema for Stacks,
    covering catalog writes and the availability listing.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from pydantic import BaseModel, Field
from typing import List, Optional

class Book(BaseModel):
    id: int
    title: str
    author: str
    isbn: str
    category: Optional[str] = None
    published_year: Optional[int] = None
    location: Optional[str] = None
    total_copies: int
    available_copies: int

    class Config:
        from_attributes = True

class BookCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    isbn: str = Field(..., min_length=1, max_length=32)
    category: Optional[str] = Field(None, max_length=100)
    published_year: Optional[int] = Field(None, ge=1000)
    location: Optional[str] = Field(None, max_length=100)
    total_copies: int = Field(1, ge=0)

    class Config:
        json_schema_extra = {
            "example": {
                "title": "The Left Hand of Darkness",
                "author": "Ursula K. Le Guin",
                "isbn": "9780441478125",
                "category": "Fiction",
                "published_year": 1969,
                "location": "Stack B, Shelf 4",
                "total_copies": 3
            }
        }

class BookUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    author: Optional[str] = Field(None, min_length=1, max_length=255)
    isbn: Optional[str] = Field(None, min_length=1, max_length=32)
    category: Optional[str] = Field(None, max_length=100)
    published_year: Optional[int] = Field(None, ge=1000)
    location: Optional[str] = Field(None, max_length=100)

class Restock(BaseModel):
    delta: int

class BookAvailability(Book):
    status: str

class AvailabilityPage(BaseModel):
    books: List[BookAvailability]
    page: int
    limit: int
    total: int
    total_pages: int

class InventoryFinding(BaseModel):
    book_id: int
    title: str
    total_copies: int
    available_copies: int
    open_loans: int

    class Config:
        from_attributes = True
