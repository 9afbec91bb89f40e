#!/usr/bin/env python

"""
    API routes for Stacks,
    covering loans, the catalog and availability search.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
from typing import List, Optional
from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Request,
    Cookie,
    status,
)
from fastapi.responses import JSONResponse
from stacks.configs import PAGE_SIZE, MAX_PAGE_SIZE
from stacks.core import auth
from stacks.core.catalog import Catalog
from stacks.core.engine import BorrowingEngine
from stacks.core.permissions import Caller
from stacks.core.projector import AvailabilityProjector, AvailabilityFilter, BookStatus
from stacks.core.exceptions import (
    StacksAPIError,
    CorruptionError,
    NotFoundError,
    InvalidInputError,
    ConflictError,
    PreconditionFailedError,
    UnauthorizedError,
    DatabaseError,
)
from stacks import schemas

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (PreconditionFailedError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN),
    (DatabaseError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def error_response(exc: StacksAPIError) -> JSONResponse:
    code = next((c for cls, c in ERROR_STATUS if isinstance(exc, cls)),
                status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=code, content={"error": exc.code, "detail": str(exc)})


def corruption_response(exc: CorruptionError) -> JSONResponse:
    logger.critical(f"Corruption surfaced to client: {exc} ({exc.observed})")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": exc.code,
            "detail": "Inventory records are inconsistent and need operator attention.",
            "book_id": exc.book_id,
        })


def get_optional_caller(request: Request, session: Optional[str] = Cookie(None)) -> Optional[Caller]:
    token = auth.token_from_request(request.headers.get("Authorization"), session)
    return auth.verify_session_token(token)


def get_caller(caller: Optional[Caller] = Depends(get_optional_caller)) -> Caller:
    if caller is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return caller


def _loans(loans) -> List[schemas.Loan]:
    return [schemas.Loan.model_validate(loan) for loan in loans]


@router.post('/loans', response_model=schemas.Loan, status_code=status.HTTP_201_CREATED)
def create_loan(body: schemas.LoanCreate, caller: Caller = Depends(get_caller)):
    loan = BorrowingEngine.create_loan(
        user_id=body.user_id or caller.user_id,
        book_id=body.book_id,
        borrow_date=body.borrow_date,
        due_date=body.due_date,
        caller=caller,
    )
    return schemas.Loan.model_validate(loan)

@router.get('/loans', response_model=List[schemas.Loan])
def list_loans(offset: Optional[int] = Query(None, ge=0), limit: Optional[int] = Query(None, ge=1),
               caller: Caller = Depends(get_caller)):
    return _loans(BorrowingEngine.list_loans(offset=offset, limit=limit, caller=caller))

@router.get('/loans/stats', response_model=schemas.BorrowingStats)
def borrowing_stats(caller: Caller = Depends(get_caller)):
    return BorrowingEngine.get_borrowing_stats(caller=caller)

@router.get('/loans/overdue', response_model=List[schemas.Loan])
def overdue_loans(caller: Caller = Depends(get_caller)):
    return _loans(BorrowingEngine.list_overdue_loans(caller=caller))

@router.post('/loans/sweep')
def sweep_overdue(caller: Caller = Depends(get_caller)):
    return {"transitioned": BorrowingEngine.sweep_overdue(caller=caller)}

@router.get('/loans/{loan_id}', response_model=schemas.Loan)
def get_loan(loan_id: int, caller: Caller = Depends(get_caller)):
    return schemas.Loan.model_validate(BorrowingEngine.get_loan(loan_id, caller=caller))

@router.post('/loans/{loan_id}/return', response_model=schemas.Loan)
def return_loan(loan_id: int, body: Optional[schemas.LoanReturn] = None,
                caller: Caller = Depends(get_caller)):
    loan = BorrowingEngine.return_loan(
        loan_id, return_date=body.return_date if body else None, caller=caller)
    return schemas.Loan.model_validate(loan)

@router.post('/loans/{loan_id}/renew', response_model=schemas.Loan)
def renew_loan(loan_id: int, body: Optional[schemas.LoanRenew] = None,
               caller: Caller = Depends(get_caller)):
    loan = BorrowingEngine.renew_loan(
        loan_id, due_date=body.due_date if body else None, caller=caller)
    return schemas.Loan.model_validate(loan)

@router.delete('/loans/{loan_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_loan(loan_id: int, caller: Caller = Depends(get_caller)):
    BorrowingEngine.remove_loan(loan_id, caller=caller)

@router.get('/users/{user_id}/loans', response_model=List[schemas.Loan])
def user_loans(user_id: str, caller: Caller = Depends(get_caller)):
    return _loans(BorrowingEngine.list_loans_by_user(user_id, caller=caller))

@router.get('/users/{user_id}/loans/active', response_model=List[schemas.Loan])
def user_active_loans(user_id: str, caller: Caller = Depends(get_caller)):
    return _loans(BorrowingEngine.list_active_loans_by_user(user_id, caller=caller))

@router.get('/books', response_model=schemas.AvailabilityPage)
def list_books(
        title: Optional[str] = None,
        author: Optional[str] = None,
        category: Optional[str] = None,
        published_year: Optional[int] = None,
        isbn: Optional[str] = None,
        location: Optional[str] = None,
        book_status: BookStatus = Query(BookStatus.ALL, alias="status"),
        page: int = Query(1, ge=1),
        limit: int = Query(PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
        caller: Optional[Caller] = Depends(get_optional_caller)):
    filters = AvailabilityFilter(
        title=title, author=author, category=category, location=location,
        isbn=isbn, published_year=published_year, status=book_status)
    result = AvailabilityProjector.list_availability(
        filters, page=page, page_size=limit, caller=caller)
    return schemas.AvailabilityPage(
        books=[
            schemas.BookAvailability(
                **schemas.Book.model_validate(item.book).model_dump(exclude={"available_copies"}),
                available_copies=item.available_copies,
                status=item.status.value,
            ) for item in result.items
        ],
        page=result.page,
        limit=result.page_size,
        total=result.total,
        total_pages=result.total_pages,
    )

@router.post('/books', response_model=schemas.Book, status_code=status.HTTP_201_CREATED)
def add_book(body: schemas.BookCreate, caller: Caller = Depends(get_caller)):
    return schemas.Book.model_validate(Catalog.add_book(**body.model_dump(), caller=caller))

@router.get('/books/{book_id}', response_model=schemas.Book)
def get_book(book_id: int):
    return schemas.Book.model_validate(Catalog.get_book(book_id))

@router.patch('/books/{book_id}', response_model=schemas.Book)
def update_book(book_id: int, body: schemas.BookUpdate, caller: Caller = Depends(get_caller)):
    book = Catalog.update_book(book_id, caller=caller, **body.model_dump(exclude_unset=True))
    return schemas.Book.model_validate(book)

@router.post('/books/{book_id}/restock', response_model=schemas.Book)
def restock_book(book_id: int, body: schemas.Restock, caller: Caller = Depends(get_caller)):
    return schemas.Book.model_validate(Catalog.restock_book(book_id, body.delta, caller=caller))

@router.delete('/books/{book_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_book(book_id: int, caller: Caller = Depends(get_caller)):
    Catalog.remove_book(book_id, caller=caller)

@router.get('/inventory/audit', response_model=List[schemas.InventoryFinding])
def audit_inventory(caller: Caller = Depends(get_caller)):
    return [schemas.InventoryFinding.model_validate(f)
            for f in AvailabilityProjector.audit_inventory(caller=caller)]

@router.get("/profile")
def profile(caller: Optional[Caller] = Depends(get_optional_caller)):
    """
    Returns the caller's identity and open loans, or logged_in false.
    """
    if caller is None:
        return {"logged_in": False, "user_id": None, "role": None, "loans": [], "loan_count": 0}
    loans = BorrowingEngine.list_active_loans_by_user(caller.user_id, caller=caller)
    return {
        "logged_in": True,
        "user_id": caller.user_id,
        "role": caller.role.value,
        "loans": [loan.model_dump(mode="json") for loan in _loans(loans)],
        "loan_count": len(loans),
    }
