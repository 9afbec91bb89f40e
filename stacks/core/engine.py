#!/usr/bin/env python

"""
    Borrowing engine for Stacks.

    The only writer of loan records and of the books' available-copy
    counters. Each operation is one unit of work: the shelf counter and
    the loan row it pairs with are committed together or not at all, and
    every write re-checks its own precondition in the WHERE clause rather
    than trusting an earlier read.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import Optional
from sqlalchemy import func, or_, and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from stacks.configs import LOAN_PERIOD_DAYS
from stacks.core import eligibility
from stacks.core.db import transaction
from stacks.core.models import Book, Loan, LoanStatus, OPEN_STATUSES, violates_open_loan_index
from stacks.core.permissions import Action, Caller, authorize
from stacks.core.utils import utcnow, to_utc, parse_id, parse_user_id
from stacks.core.exceptions import (
    AlreadyBorrowedError,
    AlreadyReturnedError,
    ConflictError,
    CorruptionError,
    DatabaseError,
    InvalidInputError,
    LoanNotFoundError,
    NoCopiesAvailableError,
    PreconditionFailedError,
)

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(action: str):
    """`transaction()` with unexpected storage failures surfaced as
    DatabaseError; business errors and corruption pass through untouched.
    """
    try:
        with transaction() as db:
            yield db
    except SQLAlchemyError as e:
        logger.error(f"Failed to {action}: {e}")
        raise DatabaseError(f"Failed to {action}: {str(e)}.")


class BorrowingEngine:

    LOAN_PERIOD = timedelta(days=LOAN_PERIOD_DAYS)

    @classmethod
    def create_loan(cls, user_id, book_id, borrow_date=None, due_date=None,
                    caller: Optional[Caller] = None) -> Loan:
        """
        Lend one copy of a book to a patron.

        Args:
            user_id: Patron the loan is for.
            book_id: Title being borrowed.
            borrow_date: Defaults to now.
            due_date: Defaults to `borrow_date` plus the loan period.
            caller: Resolved identity of whoever is asking; None for
                trusted in-process calls.

        Returns:
            The new Loan, status Borrowed.

        Raises:
            BookNotFoundError, NoCopiesAvailableError,
            UserHasOverdueBooksError, AlreadyBorrowedError,
            UnauthorizedError, InvalidInputError.
        """
        user_id = parse_user_id(user_id)
        book_id = parse_id(book_id, "book id")
        borrow_date = to_utc(borrow_date, "borrow date") or utcnow()
        due_date = to_utc(due_date, "due date") or borrow_date + cls.LOAN_PERIOD
        if due_date <= borrow_date:
            raise InvalidInputError("Due date must be after the borrow date.")
        authorize(caller, Action.CREATE_LOAN, user_id)

        with unit_of_work("create loan") as db:
            verdict = eligibility.can_borrow(user_id, book_id)
            if not verdict:
                logger.info(f"Borrow of book {book_id} by {user_id} denied: {verdict.reason.value}")
                verdict.raise_for_denial()

            # the snapshot above may be stale by now; the counter decides
            if not Book.reserve_copy(book_id):
                logger.info(f"Borrow of book {book_id} by {user_id} lost the race for the last copy")
                raise NoCopiesAvailableError("No copies available for borrowing.")

            loan = Loan(
                user_id=user_id,
                book_id=book_id,
                borrow_date=borrow_date,
                due_date=due_date,
                return_date=None,
                status=LoanStatus.BORROWED,
            )
            db.add(loan)
            try:
                db.flush()
            except IntegrityError as e:
                if not violates_open_loan_index(e):
                    raise
                # a concurrent request by the same patron committed first
                raise AlreadyBorrowedError("User already has this book on loan.")
            db.refresh(loan)

        logger.info(f"Loan {loan.id}: book {book_id} to {user_id}, due {loan.due_date.isoformat()}")
        return loan

    @classmethod
    def return_loan(cls, loan_id, return_date=None, caller: Optional[Caller] = None) -> Loan:
        loan_id = parse_id(loan_id, "loan id")
        requested = to_utc(return_date, "return date")
        return_date = requested or utcnow()

        with unit_of_work("return loan") as db:
            loan = cls._get(db, loan_id)
            authorize(caller, Action.RETURN_LOAN, loan.user_id)
            if requested and requested < loan.borrow_date:
                raise InvalidInputError("Return date cannot be before the borrow date.")
            if loan.status == LoanStatus.RETURNED:
                raise AlreadyReturnedError("Book is already returned.")

            if not Loan.transition(loan_id, LoanStatus.RETURNED, return_date=return_date):
                # lost a race with another return of the same loan
                raise AlreadyReturnedError("Book is already returned.")

            if not Book.release_copy(loan.book_id):
                book = db.get(Book, loan.book_id)
                logger.critical(
                    f"Inventory corruption on book {loan.book_id}: returning loan {loan_id} "
                    f"would exceed total copies (available={book.available_copies}, "
                    f"total={book.total_copies})")
                raise CorruptionError(
                    f"Book {loan.book_id} already has all copies on the shelf.",
                    book_id=loan.book_id,
                    available_copies=book.available_copies,
                    total_copies=book.total_copies,
                )
            db.refresh(loan)

        logger.info(f"Loan {loan.id}: book {loan.book_id} returned by {loan.user_id}")
        return loan

    @classmethod
    def renew_loan(cls, loan_id, due_date=None, caller: Optional[Caller] = None) -> Loan:
        """Extends a Borrowed loan by one loan period, or to `due_date`."""
        loan_id = parse_id(loan_id, "loan id")
        requested = to_utc(due_date, "due date")

        with unit_of_work("renew loan") as db:
            loan = cls._get(db, loan_id)
            authorize(caller, Action.RENEW_LOAN, loan.user_id)
            if loan.status == LoanStatus.RETURNED:
                raise AlreadyReturnedError("Book is already returned.")
            if loan.is_past_due(utcnow()):
                raise PreconditionFailedError("Overdue loans cannot be renewed.")

            new_due_date = requested or loan.due_date + cls.LOAN_PERIOD
            if new_due_date <= loan.due_date:
                raise InvalidInputError("Renewal must move the due date later.")
            if not Loan.extend(loan_id, loan.due_date, new_due_date):
                raise ConflictError("Loan changed while it was being renewed; try again.")
            db.refresh(loan)

        logger.info(f"Loan {loan.id} renewed until {loan.due_date.isoformat()}")
        return loan

    @classmethod
    def sweep_overdue(cls, now=None, caller: Optional[Caller] = None) -> int:
        """Marks every Borrowed loan whose due date has passed as Overdue.
        Safe to re-run: already-swept and returned loans are not matched.
        """
        now = to_utc(now, "sweep time") or utcnow()
        authorize(caller, Action.SWEEP)
        with unit_of_work("sweep overdue loans"):
            count = Loan.mark_overdue(now)
        if count:
            logger.info(f"Marked {count} loan(s) overdue as of {now.isoformat()}")
        return count

    @classmethod
    def get_loan(cls, loan_id, caller: Optional[Caller] = None) -> Loan:
        loan_id = parse_id(loan_id, "loan id")
        with unit_of_work("get loan") as db:
            loan = cls._get(db, loan_id)
            authorize(caller, Action.GET_LOAN, loan.user_id)
        return loan

    @classmethod
    def list_loans(cls, offset=None, limit=None, caller: Optional[Caller] = None):
        authorize(caller, Action.LIST_LOANS)
        with unit_of_work("list loans") as db:
            return db.query(Loan).order_by(
                Loan.borrow_date.desc(), Loan.id.desc()
            ).offset(offset).limit(limit).all()

    @classmethod
    def list_loans_by_user(cls, user_id, caller: Optional[Caller] = None):
        return cls._user_loans(user_id, active_only=False, caller=caller)

    @classmethod
    def list_active_loans_by_user(cls, user_id, caller: Optional[Caller] = None):
        return cls._user_loans(user_id, active_only=True, caller=caller)

    @classmethod
    def list_overdue_loans(cls, now=None, caller: Optional[Caller] = None):
        """Overdue loans, swept or not, oldest due date first."""
        now = to_utc(now, "time") or utcnow()
        authorize(caller, Action.LIST_OVERDUE)
        with unit_of_work("list overdue loans") as db:
            return db.query(Loan).filter(or_(
                Loan.status == LoanStatus.OVERDUE,
                and_(Loan.status == LoanStatus.BORROWED, Loan.due_date < now),
            )).order_by(Loan.due_date.asc(), Loan.id.asc()).all()

    @classmethod
    def get_borrowing_stats(cls, caller: Optional[Caller] = None) -> dict:
        authorize(caller, Action.STATS)
        with unit_of_work("compute borrowing stats") as db:
            rows = db.query(Loan.status, func.count(Loan.id)).group_by(Loan.status).all()
        by_status = {status.value: 0 for status in LoanStatus}
        for status, count in rows:
            by_status[LoanStatus(status).value] = count
        return {"total": sum(by_status.values()), "by_status": by_status}

    @classmethod
    def remove_loan(cls, loan_id, caller: Optional[Caller] = None) -> None:
        """Hard-deletes a loan record. Deleting an open loan puts its copy
        back on the shelf in the same unit of work.
        """
        loan_id = parse_id(loan_id, "loan id")
        authorize(caller, Action.REMOVE_LOAN)
        with unit_of_work("remove loan") as db:
            loan = cls._get(db, loan_id)
            if loan.status in OPEN_STATUSES and not Book.release_copy(loan.book_id):
                logger.critical(f"Inventory corruption on book {loan.book_id}: "
                                f"open loan {loan_id} has no copy checked out")
                raise CorruptionError(
                    f"Book {loan.book_id} has no copy out for open loan {loan_id}.",
                    book_id=loan.book_id)
            db.delete(loan)
        logger.info(f"Loan {loan_id} removed by {caller.user_id if caller else 'system'}")

    @classmethod
    def _user_loans(cls, user_id, active_only, caller):
        user_id = parse_user_id(user_id)
        authorize(caller, Action.LIST_USER_LOANS, user_id)
        with unit_of_work("list patron loans") as db:
            query = db.query(Loan).filter(Loan.user_id == user_id)
            if active_only:
                query = query.filter(Loan.status.in_(OPEN_STATUSES))
            return query.order_by(Loan.borrow_date.desc(), Loan.id.desc()).all()

    @classmethod
    def _get(cls, db, loan_id) -> Loan:
        if loan := db.get(Loan, loan_id):
            return loan
        raise LoanNotFoundError("Loan not found.")
