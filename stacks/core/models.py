#!/usr/bin/env python

"""
    Inventory and loan models for Stacks,
    including the loan state machine and the atomic counter updates
    every borrow and return goes through.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import enum
import logging
from sqlalchemy import (
    Column, String, Integer, DateTime, ForeignKey, CheckConstraint, Index,
    Enum as SQLAlchemyEnum, update, func, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.ext.hybrid import hybrid_property
from stacks.core.db import session as db, Base

logger = logging.getLogger(__name__)


class LoanStatus(str, enum.Enum):
    BORROWED = "borrowed"
    OVERDUE = "overdue"
    RETURNED = "returned"


OPEN_STATUSES = (LoanStatus.BORROWED, LoanStatus.OVERDUE)
OPEN_LOAN_INDEX = 'uq_loans_open_user_book'

# Borrowed->Overdue belongs to the sweep, ->Returned to the return path.
TRANSITIONS = {
    LoanStatus.BORROWED: frozenset({LoanStatus.OVERDUE, LoanStatus.RETURNED}),
    LoanStatus.OVERDUE: frozenset({LoanStatus.RETURNED}),
    LoanStatus.RETURNED: frozenset(),
}

def can_transition(source: LoanStatus, target: LoanStatus) -> bool:
    return target in TRANSITIONS[LoanStatus(source)]

def sources_of(target: LoanStatus):
    """Statuses from which `target` may be reached."""
    return tuple(s for s, targets in TRANSITIONS.items() if target in targets)


class Book(Base):
    __tablename__ = 'books'
    __table_args__ = (
        CheckConstraint('total_copies >= 0', name='ck_books_total_copies'),
        CheckConstraint(
            'available_copies >= 0 AND available_copies <= total_copies',
            name='ck_books_available_copies'),
    )

    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    author = Column(String(255), nullable=False)
    isbn = Column(String(32), nullable=False, index=True)
    category = Column(String(100))
    published_year = Column(Integer)
    location = Column(String(100))
    total_copies = Column(Integer, nullable=False, default=0)
    available_copies = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    @hybrid_property
    def copies_on_loan(self):
        return self.total_copies - self.available_copies

    @hybrid_property
    def is_borrowable(self):
        return self.available_copies > 0

    @classmethod
    def exists(cls, book_id):
        return db.get(cls, book_id)

    @classmethod
    def reserve_copy(cls, book_id) -> bool:
        """Takes one copy off the shelf if, at the moment of the write,
        at least one is left. False means another borrower got there first.
        """
        result = db.execute(
            update(cls)
            .where(cls.id == book_id, cls.available_copies >= 1)
            .values(available_copies=cls.available_copies - 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @classmethod
    def release_copy(cls, book_id) -> bool:
        """Puts one copy back. False means the shelf was already full,
        which can only happen if the counters were already wrong.
        """
        result = db.execute(
            update(cls)
            .where(cls.id == book_id, cls.available_copies < cls.total_copies)
            .values(available_copies=cls.available_copies + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @classmethod
    def restock(cls, book_id, delta: int) -> bool:
        """Moves total and available copies by the same delta, refusing
        to remove copies that are currently on loan.
        """
        result = db.execute(
            update(cls)
            .where(cls.id == book_id,
                   cls.total_copies + delta >= 0,
                   cls.available_copies + delta >= 0)
            .values(total_copies=cls.total_copies + delta,
                    available_copies=cls.available_copies + delta)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class Loan(Base):
    __tablename__ = 'loans'
    __table_args__ = (
        CheckConstraint(
            "(status = 'returned' AND return_date IS NOT NULL) OR "
            "(status != 'returned' AND return_date IS NULL)",
            name='ck_loans_return_date'),
        # one open loan per patron per title
        Index(OPEN_LOAN_INDEX, 'user_id', 'book_id', unique=True,
              sqlite_where=text("status != 'returned'"),
              postgresql_where=text("status != 'returned'")),
        Index('ix_loans_status_due_date', 'status', 'due_date'),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey('books.id', ondelete='RESTRICT'), nullable=False, index=True)
    borrow_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    return_date = Column(DateTime, nullable=True)
    status = Column(
        SQLAlchemyEnum(LoanStatus, name='loan_status',
                       values_callable=lambda e: [m.value for m in e]),
        nullable=False, default=LoanStatus.BORROWED)
    renewal_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    book = relationship('Book', back_populates='loans')

    @hybrid_property
    def is_open(self):
        return self.status != LoanStatus.RETURNED

    def is_past_due(self, now) -> bool:
        return self.status in OPEN_STATUSES and self.due_date < now

    @classmethod
    def exists(cls, user_id, book_id):
        """The patron's open loan on this title, if any."""
        return db.query(cls).filter(
            cls.user_id == user_id,
            cls.book_id == book_id,
            cls.status.in_(OPEN_STATUSES)
        ).first()

    @classmethod
    def open_count(cls, book_id) -> int:
        return db.query(cls).filter(
            cls.book_id == book_id,
            cls.status.in_(OPEN_STATUSES)
        ).count()

    @classmethod
    def count_for_book(cls, book_id) -> int:
        """Every loan row on the title, returned ones included."""
        return db.query(cls).filter(cls.book_id == book_id).count()

    @classmethod
    def open_for_user(cls, user_id):
        return db.query(cls).filter(
            cls.user_id == user_id,
            cls.status.in_(OPEN_STATUSES)
        ).all()

    @classmethod
    def transition(cls, loan_id, target: LoanStatus, **values) -> bool:
        """Compare-and-set the loan's status to `target`. Only rows whose
        current status may legally reach `target` are touched; False
        means the loan was not in such a state when the write happened.
        """
        sources = sources_of(target)
        if not sources:
            return False
        result = db.execute(
            update(cls)
            .where(cls.id == loan_id, cls.status.in_(sources))
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @classmethod
    def extend(cls, loan_id, expected_due_date, new_due_date) -> bool:
        """Pushes a still-borrowed loan's due date out, provided nobody
        changed the loan since `expected_due_date` was read.
        """
        result = db.execute(
            update(cls)
            .where(cls.id == loan_id,
                   cls.status == LoanStatus.BORROWED,
                   cls.due_date == expected_due_date)
            .values(due_date=new_due_date, renewal_count=cls.renewal_count + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @classmethod
    def mark_overdue(cls, now) -> int:
        result = db.execute(
            update(cls)
            .where(cls.status == LoanStatus.BORROWED, cls.due_date < now)
            .values(status=LoanStatus.OVERDUE)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


# loan rows are never removed along with their book
Book.loans = relationship('Loan', back_populates='book', passive_deletes='all')


def violates_open_loan_index(error) -> bool:
    """True when an IntegrityError came from the one-open-loan-per-title
    index rather than from some other constraint.
    """
    orig = getattr(error, 'orig', error)
    diag = getattr(orig, 'diag', None)
    if diag is not None and getattr(diag, 'constraint_name', None):
        return diag.constraint_name == OPEN_LOAN_INDEX
    # sqlite names the columns, not the index
    message = str(orig)
    return OPEN_LOAN_INDEX in message or 'UNIQUE constraint failed: loans.user_id, loans.book_id' in message
