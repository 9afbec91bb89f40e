from stacks.schemas.book import Book, BookCreate, BookUpdate, Restock, BookAvailability, AvailabilityPage, InventoryFinding
from stacks.schemas.loan import Loan, LoanCreate, LoanReturn, LoanRenew, BorrowingStats

__all__ = [
    "Book", "BookCreate", "BookUpdate", "Restock", "BookAvailability",
    "AvailabilityPage", "InventoryFinding",
    "Loan", "LoanCreate", "LoanReturn", "LoanRenew", "BorrowingStats",
]
