from pydantic import BaseModel, Field
from typing import Dict, Optional
from datetime import datetime
from stacks.core.models import LoanStatus

class Loan(BaseModel):
    id: int
    user_id: str
    book_id: int
    borrow_date: datetime
    due_date: datetime
    return_date: Optional[datetime] = None
    status: LoanStatus
    renewal_count: int = 0

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": 1,
                "user_id": "patron-42",
                "book_id": 7,
                "borrow_date": "2025-10-01T12:00:00",
                "due_date": "2025-10-15T12:00:00",
                "return_date": None,
                "status": "borrowed",
                "renewal_count": 0
            }
        }

class LoanCreate(BaseModel):
    book_id: int = Field(..., gt=0)
    user_id: Optional[str] = Field(None, min_length=1, max_length=50)
    borrow_date: Optional[datetime] = None
    due_date: Optional[datetime] = None

class LoanReturn(BaseModel):
    return_date: Optional[datetime] = None

class LoanRenew(BaseModel):
    due_date: Optional[datetime] = None

class BorrowingStats(BaseModel):
    total: int
    by_status: Dict[str, int]
