
class StacksAPIError(Exception):
    code = "error"

class NotFoundError(StacksAPIError):
    code = "not_found"

class BookNotFoundError(NotFoundError): pass

class LoanNotFoundError(NotFoundError): pass

class InvalidInputError(StacksAPIError):
    code = "invalid_input"

class ConflictError(StacksAPIError):
    code = "conflict"

class NoCopiesAvailableError(ConflictError):
    code = "no_copies_available"

class AlreadyBorrowedError(ConflictError):
    code = "already_borrowed"

class PreconditionFailedError(StacksAPIError):
    code = "precondition_failed"

class UserHasOverdueBooksError(PreconditionFailedError):
    code = "user_has_overdue_books"

class AlreadyReturnedError(PreconditionFailedError):
    code = "already_returned"

class InvalidTransitionError(PreconditionFailedError):
    code = "invalid_transition"

class UnauthorizedError(StacksAPIError):
    code = "unauthorized"

class DatabaseError(StacksAPIError):
    code = "database_error"


class CorruptionError(Exception):
    """Stored inventory disagrees with the loan records.

    Not a StacksAPIError: it must never be handled as an ordinary
    business-rule failure.
    """
    code = "corruption"

    def __init__(self, message, book_id=None, **observed):
        super().__init__(message)
        self.book_id = book_id
        self.observed = observed
