#!/usr/bin/env python

"""
    Availability projector for Stacks.

    Read-side view joining each book's stored counters with its open loans
    for catalog search. It owns no state; when the stored shelf count and
    the loan records disagree it reports corruption instead of picking one.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional
from sqlalchemy import select, func
from stacks.configs import PAGE_SIZE, MAX_PAGE_SIZE
from stacks.core.engine import unit_of_work
from stacks.core.models import Book, Loan, OPEN_STATUSES
from stacks.core.permissions import Action, Caller, authorize
from stacks.core.utils import total_pages
from stacks.core.exceptions import CorruptionError, InvalidInputError

logger = logging.getLogger(__name__)


class BookStatus(str, enum.Enum):
    AVAILABLE = "available"
    BORROWED = "borrowed"
    ALL = "all"


@dataclass
class AvailabilityFilter:
    title: Optional[str] = None
    author: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    isbn: Optional[str] = None
    published_year: Optional[int] = None
    status: BookStatus = BookStatus.ALL


@dataclass
class BookAvailability:
    book: Book
    open_loans: int

    @property
    def available_copies(self) -> int:
        return self.book.total_copies - self.open_loans

    @property
    def status(self) -> BookStatus:
        return BookStatus.BORROWED if self.open_loans else BookStatus.AVAILABLE

    @property
    def is_consistent(self) -> bool:
        book = self.book
        return (0 <= book.available_copies <= book.total_copies
                and book.available_copies == self.available_copies)


@dataclass
class AvailabilityPage:
    items: List[BookAvailability] = field(default_factory=list)
    page: int = 1
    page_size: int = PAGE_SIZE
    total: int = 0

    @property
    def total_pages(self) -> int:
        return total_pages(self.total, self.page_size)


@dataclass(frozen=True)
class InventoryFinding:
    book_id: int
    title: str
    total_copies: int
    available_copies: int
    open_loans: int


class AvailabilityProjector:

    SUBSTRING_FILTERS = ("title", "author", "category", "location")

    @classmethod
    def _base_query(cls, db):
        open_loans = (
            select(Loan.book_id, func.count(Loan.id).label("open_loans"))
            .where(Loan.status.in_(OPEN_STATUSES))
            .group_by(Loan.book_id)
            .subquery()
        )
        open_count = func.coalesce(open_loans.c.open_loans, 0)
        query = db.query(Book, open_count.label("open_loans")).outerjoin(
            open_loans, open_loans.c.book_id == Book.id)
        return query, open_count

    @classmethod
    def _apply_filters(cls, query, open_count, filters: AvailabilityFilter):
        for name in cls.SUBSTRING_FILTERS:
            if value := getattr(filters, name):
                query = query.filter(getattr(Book, name).icontains(value, autoescape=True))
        if filters.isbn:
            query = query.filter(Book.isbn == filters.isbn)
        if filters.published_year is not None:
            query = query.filter(Book.published_year == filters.published_year)
        status = BookStatus(filters.status or BookStatus.ALL)
        if status == BookStatus.AVAILABLE:
            query = query.filter(open_count == 0)
        elif status == BookStatus.BORROWED:
            query = query.filter(open_count > 0)
        return query

    @classmethod
    def list_availability(cls, filters: AvailabilityFilter = None, page: int = 1,
                          page_size: int = PAGE_SIZE,
                          caller: Optional[Caller] = None) -> AvailabilityPage:
        """Books matching `filters`, by title, with their computed status
        and shelf count. `page` is 1-based.

        Raises CorruptionError if any returned book's stored shelf count
        disagrees with its open loans.
        """
        authorize(caller, Action.LIST_AVAILABILITY)
        if page < 1:
            raise InvalidInputError("page must be at least 1.")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise InvalidInputError(f"page_size must be between 1 and {MAX_PAGE_SIZE}.")
        filters = filters or AvailabilityFilter()

        with unit_of_work("list availability") as db:
            query, open_count = cls._base_query(db)
            query = cls._apply_filters(query, open_count, filters)
            total = query.count()
            rows = query.order_by(Book.title.asc(), Book.id.asc()).offset(
                (page - 1) * page_size).limit(page_size).all()

        items = [BookAvailability(book=book, open_loans=int(n)) for book, n in rows]
        for item in items:
            if not item.is_consistent:
                cls._report(item)
        return AvailabilityPage(items=items, page=page, page_size=page_size, total=total)

    @classmethod
    def audit_inventory(cls, caller: Optional[Caller] = None) -> List[InventoryFinding]:
        """Every book whose stored counters disagree with its loans."""
        authorize(caller, Action.AUDIT)
        with unit_of_work("audit inventory") as db:
            query, _ = cls._base_query(db)
            rows = query.order_by(Book.id.asc()).all()
        findings = []
        for book, n in rows:
            item = BookAvailability(book=book, open_loans=int(n))
            if not item.is_consistent:
                logger.critical(f"Inventory corruption on book {book.id}: available="
                                f"{book.available_copies} total={book.total_copies} open_loans={n}")
                findings.append(InventoryFinding(
                    book_id=book.id, title=book.title, total_copies=book.total_copies,
                    available_copies=book.available_copies, open_loans=int(n)))
        return findings

    @classmethod
    def _report(cls, item: BookAvailability):
        book = item.book
        logger.critical(f"Inventory corruption on book {book.id}: stored available="
                        f"{book.available_copies}, total={book.total_copies}, "
                        f"open loans={item.open_loans}")
        raise CorruptionError(
            f"Book {book.id} shelf count disagrees with its open loans.",
            book_id=book.id,
            available_copies=book.available_copies,
            total_copies=book.total_copies,
            open_loans=item.open_loans,
        )
