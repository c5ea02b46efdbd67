"""Exceptions raised by the circulation core.

Every error is recoverable at the caller boundary. The CLI prints
``str(error)`` and the API maps each class to a status code.
"""
from typing import Any, Dict, Optional


class LibraryError(Exception):
    """Base exception for all circulation errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        return self.message


class DuplicateIDError(LibraryError):
    """Raised when a book or member id is already taken."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(
            f"{kind.capitalize()} with ID {record_id} already exists.",
            {"kind": kind, "id": record_id},
        )


class NotFoundError(LibraryError):
    """Raised when a book or member cannot be found."""

    kind = "record"

    def __init__(self, record_id: str, kind: Optional[str] = None):
        kind = kind or self.kind
        super().__init__(f"{kind.capitalize()} with ID {record_id} not found.", {"kind": kind, "id": record_id})


class BookNotFoundError(NotFoundError):
    kind = "book"


class MemberNotFoundError(NotFoundError):
    kind = "member"


class HasOutstandingCopiesError(LibraryError):
    """Raised when removing a book while some of its copies are on loan."""

    def __init__(self, book_id: str, borrowed: int):
        super().__init__(
            f"Cannot remove book {book_id}: {borrowed} copies are currently borrowed.",
            {"book_id": book_id, "borrowed": borrowed},
        )


class HasOpenLoansError(LibraryError):
    """Raised when removing a member who still holds books."""

    def __init__(self, member_id: str, open_loans: int):
        super().__init__(
            f"Cannot remove member {member_id}: {open_loans} borrowed books not yet returned.",
            {"member_id": member_id, "open_loans": open_loans},
        )


class InvariantViolationError(LibraryError):
    """Raised when an availability change would leave ``[0, total_copies]``."""

    def __init__(self, book_id: str, available: int, total: int, delta: int):
        super().__init__(
            f"Availability of book {book_id} cannot change by {delta:+d} "
            f"({available} of {total} copies available).",
            {"book_id": book_id, "available": available, "total": total, "delta": delta},
        )


class DuplicateOpenLoanError(LibraryError):
    """Raised when the member already has this book on loan."""

    def __init__(self, member_id: str, book_id: str):
        super().__init__(
            f"Member {member_id} has already borrowed book {book_id}.",
            {"member_id": member_id, "book_id": book_id},
        )


class NoOpenLoanError(LibraryError):
    """Raised when returning a book the member has not borrowed."""

    def __init__(self, member_id: str, book_id: str):
        super().__init__(
            f"Member {member_id} has not borrowed book {book_id}.",
            {"member_id": member_id, "book_id": book_id},
        )


class InvalidDateError(LibraryError):
    """Raised for malformed dates and return dates before the borrow date."""

    def __init__(self, value: Any, reason: str = "Use YYYY-MM-DD or DD/MM/YYYY"):
        super().__init__(f"Invalid date {value!r}: {reason}.", {"value": str(value), "reason": reason})


class BorrowingCapExceededError(LibraryError):
    def __init__(self, member_id: str, limit: int):
        super().__init__(
            f"Member {member_id} cannot borrow more than {limit} books at a time.",
            {"member_id": member_id, "limit": limit},
        )


class BookUnavailableError(LibraryError):
    def __init__(self, book_id: str):
        super().__init__(f"Book {book_id} is not available for borrowing.", {"book_id": book_id})


class InactiveError(LibraryError):
    """Raised when an inactive book or member takes part in a loan."""

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind.capitalize()} {record_id} is inactive.", {"kind": kind, "id": record_id})


class BusyError(LibraryError):
    """Raised when a write lock cannot be acquired in time. Safe to retry."""

    def __init__(self, message: str = "Library is busy, please retry."):
        super().__init__(message)


class StorageUnavailableError(LibraryError):
    """Raised when the underlying database fails."""
    pass
