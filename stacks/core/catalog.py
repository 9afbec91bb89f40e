"""
    Catalog boundary for Stacks: titles and their copy counts.

    Metadata edits never touch the counters; copies enter or leave
    circulation only through `restock_book`, which moves the total and the
    shelf count together.
"""

import logging
from typing import Optional
from stacks.core.engine import unit_of_work
from stacks.core.models import Book, Loan
from stacks.core.permissions import Action, Caller, authorize
from stacks.core.utils import parse_id
from stacks.core.exceptions import (
    BookNotFoundError,
    ConflictError,
    InvalidInputError,
)

logger = logging.getLogger(__name__)


class Catalog:

    METADATA_FIELDS = ("title", "author", "isbn", "category", "published_year", "location")
    COUNTER_FIELDS = ("total_copies", "available_copies")
    REQUIRED_FIELDS = ("title", "author", "isbn")

    @classmethod
    def add_book(cls, title: str, author: str, isbn: str, total_copies: int = 1,
                 category: str = None, published_year: int = None, location: str = None,
                 caller: Optional[Caller] = None) -> Book:
        """Adds a title with every copy on the shelf."""
        authorize(caller, Action.MANAGE_CATALOG)
        if not isinstance(total_copies, int) or isinstance(total_copies, bool) or total_copies < 0:
            raise InvalidInputError("total_copies must be a non-negative integer.")
        for name, value in zip(cls.REQUIRED_FIELDS, (title, author, isbn)):
            if not value or not str(value).strip():
                raise InvalidInputError(f"{name} is required.")

        with unit_of_work("add book") as db:
            book = Book(
                title=title.strip(),
                author=author.strip(),
                isbn=isbn.strip(),
                category=category,
                published_year=published_year,
                location=location,
                total_copies=total_copies,
                available_copies=total_copies,
            )
            db.add(book)
            db.flush()
            db.refresh(book)
        logger.info(f"Book {book.id} '{book.title}' added with {total_copies} copies")
        return book

    @classmethod
    def get_book(cls, book_id) -> Book:
        book_id = parse_id(book_id, "book id")
        with unit_of_work("get book"):
            if book := Book.exists(book_id):
                return book
        raise BookNotFoundError("Book not found.")

    @classmethod
    def update_book(cls, book_id, caller: Optional[Caller] = None, **fields) -> Book:
        book_id = parse_id(book_id, "book id")
        authorize(caller, Action.MANAGE_CATALOG)
        if counters := [f for f in cls.COUNTER_FIELDS if f in fields]:
            raise InvalidInputError(
                f"{', '.join(counters)} cannot be edited directly; restock the book instead.")
        if unknown := [f for f in fields if f not in cls.METADATA_FIELDS]:
            raise InvalidInputError(f"Unknown book fields: {', '.join(unknown)}")
        for name in cls.REQUIRED_FIELDS:
            if name in fields:
                value = fields[name]
                if value is None or not str(value).strip():
                    raise InvalidInputError(f"{name} is required.")
                fields[name] = str(value).strip()

        with unit_of_work("update book") as db:
            book = Book.exists(book_id)
            if not book:
                raise BookNotFoundError("Book not found.")
            for name, value in fields.items():
                setattr(book, name, value)
            db.flush()
            db.refresh(book)
        return book

    @classmethod
    def restock_book(cls, book_id, delta: int, caller: Optional[Caller] = None) -> Book:
        """Adds (or, with a negative delta, withdraws) copies. Copies out
        on loan cannot be withdrawn.
        """
        book_id = parse_id(book_id, "book id")
        authorize(caller, Action.MANAGE_CATALOG)
        if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
            raise InvalidInputError("Restock delta must be a non-zero integer.")

        with unit_of_work("restock book") as db:
            if not Book.restock(book_id, delta):
                if not Book.exists(book_id):
                    raise BookNotFoundError("Book not found.")
                raise ConflictError("Cannot withdraw copies that are on loan.")
            book = Book.exists(book_id)
            db.refresh(book)
        logger.info(f"Book {book_id} restocked by {delta:+d}: "
                    f"{book.available_copies}/{book.total_copies} on the shelf")
        return book

    @classmethod
    def remove_book(cls, book_id, caller: Optional[Caller] = None) -> None:
        book_id = parse_id(book_id, "book id")
        authorize(caller, Action.MANAGE_CATALOG)
        with unit_of_work("remove book") as db:
            book = Book.exists(book_id)
            if not book:
                raise BookNotFoundError("Book not found.")
            if open_loans := Loan.open_count(book_id):
                raise ConflictError(f"Book has {open_loans} copies on loan.")
            if Loan.count_for_book(book_id):
                raise ConflictError("Book has loan history and cannot be removed.")
            db.delete(book)
        logger.info(f"Book {book_id} removed from the catalog")
