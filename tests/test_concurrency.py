"""Concurrent borrowers, returners and sweeps against one database."""

import threading
import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from stacks.core.catalog import Catalog
from stacks.core.db import session
from stacks.core.engine import BorrowingEngine
from stacks.core.models import LoanStatus
from stacks.core.projector import AvailabilityProjector
from stacks.core.utils import utcnow
from stacks.core.exceptions import ConflictError, AlreadyReturnedError


def run_together(fn, args_list):
    """Runs fn(*args) for each args on its own thread, released at once.
    Returns the result or the raised exception for each call.
    """
    barrier = threading.Barrier(len(args_list))

    def call(args):
        barrier.wait()
        try:
            return fn(*args)
        except Exception as e:
            return e
        finally:
            session.remove()

    with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
        return list(pool.map(call, args_list))


@pytest.mark.parametrize("copies,borrowers", [(1, 6), (3, 10)])
def test_no_oversell(add_book, copies, borrowers):
    book = add_book(copies=copies)
    results = run_together(
        BorrowingEngine.create_loan,
        [(f"patron-{i}", book.id) for i in range(borrowers)])

    loans = [r for r in results if not isinstance(r, Exception)]
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(loans) == copies
    assert len(failures) == borrowers - copies
    assert all(isinstance(f, ConflictError) for f in failures), failures

    assert Catalog.get_book(book.id).available_copies == 0
    assert AvailabilityProjector.audit_inventory() == []


def test_same_patron_racing_for_one_title(add_book):
    book = add_book(copies=5)
    results = run_together(BorrowingEngine.create_loan, [("alice", book.id)] * 4)

    assert sum(not isinstance(r, Exception) for r in results) == 1
    assert Catalog.get_book(book.id).available_copies == 4
    assert AvailabilityProjector.audit_inventory() == []


def test_concurrent_returns_of_one_loan(add_book):
    book = add_book(copies=1)
    loan = BorrowingEngine.create_loan("alice", book.id)

    results = run_together(BorrowingEngine.return_loan, [(loan.id,)] * 5)

    returned = [r for r in results if not isinstance(r, Exception)]
    assert len(returned) == 1
    assert all(isinstance(r, AlreadyReturnedError) for r in results if isinstance(r, Exception))
    assert Catalog.get_book(book.id).available_copies == 1


def test_sweep_racing_returns_never_resurrects(add_book):
    borrowed = utcnow() - timedelta(days=30)
    books = [add_book(f"Title {i}", isbn=f"isbn-{i}") for i in range(4)]
    loans = [BorrowingEngine.create_loan(f"patron-{i}", b.id, borrow_date=borrowed)
             for i, b in enumerate(books)]

    calls = [(BorrowingEngine.sweep_overdue, ())] + [
        (BorrowingEngine.return_loan, (loan.id,)) for loan in loans]
    results = run_together(lambda fn, args: fn(*args), calls)

    assert not [r for r in results if isinstance(r, Exception)]
    for loan in loans:
        assert BorrowingEngine.get_loan(loan.id).status == LoanStatus.RETURNED
    assert BorrowingEngine.sweep_overdue() == 0
    assert AvailabilityProjector.audit_inventory() == []
