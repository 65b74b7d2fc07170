"""Error taxonomy for the library system.

Every failure surfaced by a repository or by ``LibraryService`` is one of the
classes below.  Each carries the HTTP status and a short machine readable code
so the API layer can render it without knowing about individual operations.
"""


class LibraryError(Exception):
    """Base exception for library system errors."""

    status_code = 400
    code = "library_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LibraryError):
    """Input rejected before it reaches storage."""

    status_code = 400
    code = "invalid"


class NotFoundError(LibraryError):
    """Referenced author, book, member or loan does not exist."""

    status_code = 404
    code = "not_found"


class DuplicateKeyError(LibraryError):
    """Unique field (email or ISBN) already taken."""

    status_code = 409
    code = "duplicate"


class UnavailableError(LibraryError):
    """No copies of the book left to lend."""

    status_code = 409
    code = "no_copies"


class LoanLimitExceededError(LibraryError):
    """Member already holds as many books as the membership allows."""

    status_code = 409
    code = "loan_limit"


class ReferentialIntegrityError(LibraryError):
    """Delete blocked by dependent rows."""

    status_code = 409
    code = "has_dependents"


class StorageError(LibraryError):
    """The underlying store failed (connectivity, aborted transaction, ...)."""

    status_code = 503
    code = "storage_error"
