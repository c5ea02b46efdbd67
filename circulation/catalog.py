import sqlite3
from typing import List, Tuple

from circulation.book import Book
from circulation.database import Database
from circulation.exceptions import (
    BookNotFoundError,
    DuplicateIDError,
    HasOutstandingCopiesError,
    InvariantViolationError,
)


BOOK_COLUMNS = (
    "book_id, title, author, total_copies, available_copies, active, "
    "download_link, download_limit, created_at"
)


class CatalogStore:
    """Owns book records and their copy counts."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def create(self, book: Book) -> Book:
        """Insert a new book. Raises DuplicateIDError if the id is taken."""
        if book.total_copies < 0:
            raise ValueError("Number of copies cannot be negative.")
        if not 0 <= book.available_copies <= book.total_copies:
            raise InvariantViolationError(book.book_id, book.available_copies, book.total_copies, 0)
        with self.db.transaction() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO books (book_id, title, author, total_copies, available_copies,
                                       active, download_link, download_limit)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (book.book_id, book.title, book.author, book.total_copies, book.available_copies,
                     int(book.active), book.download_link, book.download_limit),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateIDError("book", book.book_id) from e
            row = conn.execute("SELECT created_at FROM books WHERE book_id = ?", (book.book_id,)).fetchone()
            book.created_at = row["created_at"] if row else None
        return book

    def remove(self, book_id: str) -> None:
        """Delete a book whose copies are all on the shelf."""
        with self.db.transaction() as conn:
            book = self._get(conn, book_id)
            if book.available_copies != book.total_copies:
                raise HasOutstandingCopiesError(book_id, book.borrowed_copies)
            conn.execute("DELETE FROM books WHERE book_id = ?", (book_id,))

    def find(self, book_id: str) -> Book:
        with self.db.connection() as conn:
            return self._get(conn, book_id)

    def exists(self, book_id: str) -> bool:
        with self.db.connection() as conn:
            row = conn.execute("SELECT 1 FROM books WHERE book_id = ?", (book_id,)).fetchone()
            return row is not None

    def list(self) -> List[Book]:
        """All books in insertion order."""
        with self.db.connection() as conn:
            rows = conn.execute(f"SELECT {BOOK_COLUMNS} FROM books ORDER BY rowid").fetchall()
            return [Book.from_dict(dict(row)) for row in rows]

    def search(self, query: str) -> List[Book]:
        """Books whose id, title or author contains ``query``, ignoring case.

        Matching is done in Python rather than with LIKE so that case folding
        applies to non-ASCII text too.
        """
        needle = (query or "").strip().casefold()
        return [
            book for book in self.list()
            if needle in book.book_id.casefold()
            or needle in book.title.casefold()
            or needle in book.author.casefold()
        ]

    def adjust_availability(self, book_id: str, delta: int) -> Book:
        """Move one copy off (-1) or back onto (+1) the shelf."""
        if delta not in (-1, 1):
            raise ValueError("Availability changes by exactly one copy at a time.")
        with self.db.transaction() as conn:
            book = self._get(conn, book_id)
            new_available = book.available_copies + delta
            if not 0 <= new_available <= book.total_copies:
                raise InvariantViolationError(book_id, book.available_copies, book.total_copies, delta)
            conn.execute("UPDATE books SET available_copies = ? WHERE book_id = ?", (new_available, book_id))
            book.available_copies = new_available
            return book

    def set_active(self, book_id: str, active: bool) -> Book:
        with self.db.transaction() as conn:
            book = self._get(conn, book_id)
            conn.execute("UPDATE books SET active = ? WHERE book_id = ?", (int(active), book_id))
            book.active = bool(active)
            return book

    def totals(self) -> Tuple[int, int, int]:
        """Return ``(title_count, available_copies, borrowed_copies)``."""
        with self.db.connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS titles,
                       COALESCE(SUM(available_copies), 0) AS available,
                       COALESCE(SUM(total_copies - available_copies), 0) AS borrowed
                FROM books
                """
            ).fetchone()
            return row["titles"], row["available"], row["borrowed"]

    @staticmethod
    def _get(conn: sqlite3.Connection, book_id: str) -> Book:
        row = conn.execute(f"SELECT {BOOK_COLUMNS} FROM books WHERE book_id = ?", (book_id,)).fetchone()
        if row is None:
            raise BookNotFoundError(book_id)
        return Book.from_dict(dict(row))
