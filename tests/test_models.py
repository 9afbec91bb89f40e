#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
    tests.test_models
    ~~~~~~~~~~~~~~~~~

    The loan state machine and the inventory counter primitives.

    :copyright: (c) 2025 by Authors.
    :license: see LICENSE for more details.
"""

import pytest
from datetime import timedelta
from sqlalchemy.exc import IntegrityError
from stacks.core.db import transaction
from stacks.core.models import (
    Book, Loan, LoanStatus, TRANSITIONS, can_transition, sources_of,
    violates_open_loan_index,
)
from stacks.core.utils import utcnow


@pytest.mark.parametrize("source,target,allowed", [
    (LoanStatus.BORROWED, LoanStatus.OVERDUE, True),
    (LoanStatus.BORROWED, LoanStatus.RETURNED, True),
    (LoanStatus.OVERDUE, LoanStatus.RETURNED, True),
    (LoanStatus.OVERDUE, LoanStatus.BORROWED, False),
    (LoanStatus.RETURNED, LoanStatus.BORROWED, False),
    (LoanStatus.RETURNED, LoanStatus.OVERDUE, False),
    (LoanStatus.BORROWED, LoanStatus.BORROWED, False),
])
def test_transition_table(source, target, allowed):
    assert can_transition(source, target) is allowed


def test_sources_of():
    assert set(sources_of(LoanStatus.RETURNED)) == {LoanStatus.BORROWED, LoanStatus.OVERDUE}
    assert sources_of(LoanStatus.OVERDUE) == (LoanStatus.BORROWED,)
    assert sources_of(LoanStatus.BORROWED) == ()
    assert TRANSITIONS[LoanStatus.RETURNED] == frozenset()


def make_book(total=2, available=None):
    with transaction() as db:
        book = Book(title="Dune", author="Frank Herbert", isbn="9780441013593",
                    total_copies=total,
                    available_copies=total if available is None else available)
        db.add(book)
    return book.id


def make_loan(book_id, user_id="alice", status=LoanStatus.BORROWED, **kwargs):
    now = utcnow()
    kwargs.setdefault("due_date", now + timedelta(days=14))
    with transaction() as db:
        loan = Loan(user_id=user_id, book_id=book_id, borrow_date=now,
                    status=status, **kwargs)
        db.add(loan)
    return loan.id


def shelf(book_id):
    with transaction() as db:
        book = db.get(Book, book_id)
        return book.available_copies, book.total_copies


def test_reserve_copy_stops_at_zero(engine):
    book_id = make_book(total=2)
    with transaction():
        assert Book.reserve_copy(book_id)
        assert Book.reserve_copy(book_id)
        assert not Book.reserve_copy(book_id)
    assert shelf(book_id) == (0, 2)


def test_release_copy_stops_at_total(engine):
    book_id = make_book(total=2, available=1)
    with transaction():
        assert Book.release_copy(book_id)
        assert not Book.release_copy(book_id)
    assert shelf(book_id) == (2, 2)


def test_restock_moves_both_counters(engine):
    book_id = make_book(total=3, available=1)
    with transaction():
        assert Book.restock(book_id, 2)
    assert shelf(book_id) == (3, 5)
    with transaction():
        # only three on the shelf; two are out
        assert not Book.restock(book_id, -4)
        assert Book.restock(book_id, -3)
    assert shelf(book_id) == (0, 2)


def test_counter_constraint_rejects_overflow(engine):
    with pytest.raises(IntegrityError):
        make_book(total=1, available=2)


def test_transition_is_compare_and_set(engine):
    book_id = make_book()
    loan_id = make_loan(book_id)
    with transaction():
        assert Loan.transition(loan_id, LoanStatus.RETURNED, return_date=utcnow())
        assert not Loan.transition(loan_id, LoanStatus.RETURNED, return_date=utcnow())
        assert not Loan.transition(loan_id, LoanStatus.OVERDUE)
        assert not Loan.transition(loan_id, LoanStatus.BORROWED)


def test_mark_overdue_only_touches_past_due_borrowed(engine):
    book_id = make_book(total=5)
    now = utcnow()
    late = make_loan(book_id, "a", due_date=now - timedelta(days=1))
    make_loan(book_id, "b", due_date=now + timedelta(days=1))
    make_loan(book_id, "c", status=LoanStatus.RETURNED,
              due_date=now - timedelta(days=1), return_date=now)
    with transaction():
        assert Loan.mark_overdue(now) == 1
        assert Loan.mark_overdue(now) == 0
    with transaction() as db:
        assert db.get(Loan, late).status == LoanStatus.OVERDUE


def test_one_open_loan_per_patron_and_title(engine):
    book_id = make_book()
    make_loan(book_id, "alice")
    make_loan(book_id, "bob")
    with pytest.raises(IntegrityError) as excinfo:
        make_loan(book_id, "alice")
    assert violates_open_loan_index(excinfo.value)


def test_returned_loans_do_not_block_the_index(engine):
    book_id = make_book()
    now = utcnow()
    make_loan(book_id, "alice", status=LoanStatus.RETURNED, return_date=now)
    make_loan(book_id, "alice", status=LoanStatus.RETURNED, return_date=now)
    make_loan(book_id, "alice")


def test_return_date_only_on_returned(engine):
    book_id = make_book()
    with pytest.raises(IntegrityError) as excinfo:
        make_loan(book_id, "alice", return_date=utcnow())
    assert not violates_open_loan_index(excinfo.value)
    with pytest.raises(IntegrityError):
        make_loan(book_id, "bob", status=LoanStatus.RETURNED)


def test_loan_helpers(engine):
    book_id = make_book()
    loan_id = make_loan(book_id, "alice", due_date=utcnow() - timedelta(hours=1))
    with transaction() as db:
        loan = db.get(Loan, loan_id)
        assert loan.is_open
        assert loan.is_past_due(utcnow())
        assert Loan.exists("alice", book_id).id == loan_id
        assert Loan.exists("bob", book_id) is None
        assert Loan.open_count(book_id) == 1


def test_unknown_book_is_not_an_open_loan_conflict(engine):
    with pytest.raises(IntegrityError) as excinfo:
        make_loan(999)
    assert not violates_open_loan_index(excinfo.value)


def test_book_with_loan_history_cannot_be_deleted(engine):
    book_id = make_book()
    make_loan(book_id, "alice", status=LoanStatus.RETURNED, return_date=utcnow())
    with pytest.raises(IntegrityError):
        with transaction() as db:
            db.delete(db.get(Book, book_id))
    with transaction() as db:
        assert db.get(Book, book_id) is not None
        assert Loan.count_for_book(book_id) == 1
