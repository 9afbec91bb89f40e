import pytest
from stacks.core.catalog import Catalog
from stacks.core.engine import BorrowingEngine
from stacks.core.models import LoanStatus
from stacks.core.exceptions import (
    BookNotFoundError, ConflictError, InvalidInputError, UnauthorizedError,
)


def test_add_book_puts_every_copy_on_the_shelf(engine, librarian):
    book = Catalog.add_book("Dune", "Frank Herbert", "9780441013593",
                            total_copies=3, caller=librarian)
    assert book.id
    assert book.total_copies == book.available_copies == 3
    assert Catalog.get_book(book.id).title == "Dune"


@pytest.mark.parametrize("kwargs", [
    {"title": "", "author": "A", "isbn": "1"},
    {"title": "T", "author": "A", "isbn": "1", "total_copies": -1},
    {"title": "T", "author": "A", "isbn": "1", "total_copies": "3"},
])
def test_add_book_validation(engine, kwargs):
    with pytest.raises(InvalidInputError):
        Catalog.add_book(**kwargs)


def test_patrons_cannot_edit_the_catalog(add_book, alice):
    book = add_book()
    with pytest.raises(UnauthorizedError):
        Catalog.add_book("Emma", "Jane Austen", "9780141439587", caller=alice)
    with pytest.raises(UnauthorizedError):
        Catalog.restock_book(book.id, 1, caller=alice)
    with pytest.raises(UnauthorizedError):
        Catalog.remove_book(book.id, caller=alice)


def test_update_touches_metadata_only(add_book, librarian):
    book = add_book(copies=2)
    updated = Catalog.update_book(book.id, caller=librarian, location="Stack C", published_year=1965)
    assert updated.location == "Stack C"
    assert updated.published_year == 1965

    with pytest.raises(InvalidInputError):
        Catalog.update_book(book.id, caller=librarian, available_copies=5)
    with pytest.raises(InvalidInputError):
        Catalog.update_book(book.id, caller=librarian, colour="red")
    assert Catalog.get_book(book.id).available_copies == 2


def test_restock_keeps_counters_in_step(add_book):
    book = add_book(copies=2)
    BorrowingEngine.create_loan("alice", book.id)

    book = Catalog.restock_book(book.id, 3)
    assert (book.available_copies, book.total_copies) == (4, 5)

    book = Catalog.restock_book(book.id, -4)
    assert (book.available_copies, book.total_copies) == (0, 1)

    with pytest.raises(ConflictError):
        Catalog.restock_book(book.id, -1)
    with pytest.raises(InvalidInputError):
        Catalog.restock_book(book.id, 0)
    with pytest.raises(BookNotFoundError):
        Catalog.restock_book(999, 1)


def test_remove_book_without_loans(add_book, librarian):
    book = add_book()
    Catalog.remove_book(book.id, caller=librarian)
    with pytest.raises(BookNotFoundError):
        Catalog.get_book(book.id)
    with pytest.raises(BookNotFoundError):
        Catalog.remove_book(book.id, caller=librarian)


def test_remove_book_keeps_loan_history(add_book, librarian, admin):
    book = add_book()
    loan = BorrowingEngine.create_loan("alice", book.id)
    with pytest.raises(ConflictError):
        Catalog.remove_book(book.id, caller=librarian)

    BorrowingEngine.return_loan(loan.id)
    with pytest.raises(ConflictError):
        Catalog.remove_book(book.id, caller=librarian)
    assert BorrowingEngine.get_loan(loan.id).status == LoanStatus.RETURNED
    assert Catalog.get_book(book.id).available_copies == 1

    # once an admin purges the record the title can go
    BorrowingEngine.remove_loan(loan.id, caller=admin)
    Catalog.remove_book(book.id, caller=librarian)
    with pytest.raises(BookNotFoundError):
        Catalog.get_book(book.id)


@pytest.mark.parametrize("fields", [
    {"title": None},
    {"author": "   "},
    {"isbn": ""},
])
def test_update_rejects_missing_required_fields(add_book, librarian, fields):
    book = add_book()
    with pytest.raises(InvalidInputError):
        Catalog.update_book(book.id, caller=librarian, **fields)
    assert Catalog.get_book(book.id).title == "Dune"


def test_update_strips_required_fields(add_book, librarian):
    book = add_book()
    assert Catalog.update_book(book.id, caller=librarian, title="  Dune Messiah ").title == "Dune Messiah"
