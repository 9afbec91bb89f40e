"""
    Borrowing eligibility for Stacks.

    `evaluate` is the decision itself and touches no storage: it judges a
    `Snapshot` of the book's shelf count and the patron's open loans.
    `can_borrow` takes that snapshot from the stores and evaluates it.
    Rules run in order and the first failure wins:

    1. the book exists
    2. at least one copy is on the shelf
    3. the patron has nothing overdue, swept or not
    4. the patron does not already hold this book

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple, Optional, Tuple
from stacks.core.models import Book, Loan, LoanStatus
from stacks.core.utils import utcnow
from stacks.core.exceptions import (
    BookNotFoundError,
    NoCopiesAvailableError,
    UserHasOverdueBooksError,
    AlreadyBorrowedError,
)


class DenialReason(str, enum.Enum):
    NOT_FOUND = "not_found"
    NO_COPIES_AVAILABLE = "no_copies_available"
    USER_HAS_OVERDUE_BOOKS = "user_has_overdue_books"
    ALREADY_BORROWED = "already_borrowed"


DENIALS = {
    DenialReason.NOT_FOUND: (BookNotFoundError, "Book not found."),
    DenialReason.NO_COPIES_AVAILABLE: (NoCopiesAvailableError, "No copies available for borrowing."),
    DenialReason.USER_HAS_OVERDUE_BOOKS: (UserHasOverdueBooksError, "User has overdue books. Cannot borrow new books."),
    DenialReason.ALREADY_BORROWED: (AlreadyBorrowedError, "User already has this book on loan."),
}


class OpenLoan(NamedTuple):
    book_id: int
    status: LoanStatus
    due_date: datetime


@dataclass(frozen=True)
class Snapshot:
    book_id: int
    available_copies: Optional[int]  # None if the book does not exist
    open_loans: Tuple[OpenLoan, ...] = ()


@dataclass(frozen=True)
class Eligibility:
    reason: Optional[DenialReason] = None

    @property
    def allowed(self) -> bool:
        return self.reason is None

    def __bool__(self):
        return self.allowed

    def raise_for_denial(self):
        if self.reason is not None:
            error, message = DENIALS[self.reason]
            raise error(message)


ALLOW = Eligibility()


def is_overdue(loan: OpenLoan, now: datetime) -> bool:
    return loan.status == LoanStatus.OVERDUE or (
        loan.status == LoanStatus.BORROWED and loan.due_date < now)


def evaluate(snapshot: Snapshot, now: datetime) -> Eligibility:
    if snapshot.available_copies is None:
        return Eligibility(DenialReason.NOT_FOUND)
    if snapshot.available_copies < 1:
        return Eligibility(DenialReason.NO_COPIES_AVAILABLE)
    if any(is_overdue(loan, now) for loan in snapshot.open_loans):
        return Eligibility(DenialReason.USER_HAS_OVERDUE_BOOKS)
    if any(loan.book_id == snapshot.book_id for loan in snapshot.open_loans):
        return Eligibility(DenialReason.ALREADY_BORROWED)
    return ALLOW


def take_snapshot(user_id: str, book_id: int) -> Snapshot:
    book = Book.exists(book_id)
    return Snapshot(
        book_id=book_id,
        available_copies=book.available_copies if book else None,
        open_loans=tuple(
            OpenLoan(loan.book_id, LoanStatus(loan.status), loan.due_date)
            for loan in Loan.open_for_user(user_id)
        ),
    )


def can_borrow(user_id: str, book_id: int, now: datetime = None) -> Eligibility:
    return evaluate(take_snapshot(user_id, book_id), now or utcnow())
