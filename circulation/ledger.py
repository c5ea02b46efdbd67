import sqlite3
from datetime import date
from typing import List, Optional

from circulation.database import Database
from circulation.exceptions import DuplicateOpenLoanError, InvalidDateError, NoOpenLoanError
from circulation.fines import format_date, parse_date
from circulation.loan import LoanRecord

LOAN_COLUMNS = "record_id, member_id, book_id, borrow_date, return_date, returned"


class LoanLedger:
    """Append-only log of loan records.

    Records are inserted OPEN and updated once to CLOSED; nothing is ever
    deleted. Ordering is always insertion (``record_id``) order.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def open_loan(self, member_id: str, book_id: str, borrow_date: date) -> LoanRecord:
        borrow_date = parse_date(borrow_date)
        with self.db.transaction() as conn:
            if self._find_open(conn, member_id, book_id) is not None:
                raise DuplicateOpenLoanError(member_id, book_id)
            try:
                cursor = conn.execute(
                    "INSERT INTO loans (member_id, book_id, borrow_date, returned) VALUES (?, ?, ?, 0)",
                    (member_id, book_id, format_date(borrow_date)),
                )
            except sqlite3.IntegrityError as e:
                # idx_loans_one_open
                raise DuplicateOpenLoanError(member_id, book_id) from e
            return LoanRecord(member_id=member_id, book_id=book_id, borrow_date=borrow_date,
                              record_id=cursor.lastrowid)

    def close_loan(self, member_id: str, book_id: str, return_date: date) -> LoanRecord:
        """Stamp the pair's open loan as returned on ``return_date``."""
        return_date = parse_date(return_date)
        with self.db.transaction() as conn:
            loan = self._find_open(conn, member_id, book_id)
            if loan is None:
                raise NoOpenLoanError(member_id, book_id)
            if return_date < loan.borrow_date:
                raise InvalidDateError(
                    format_date(return_date),
                    f"return date precedes borrow date {format_date(loan.borrow_date)}",
                )
            conn.execute(
                "UPDATE loans SET return_date = ?, returned = 1 WHERE record_id = ? AND returned = 0",
                (format_date(return_date), loan.record_id),
            )
            loan.return_date = return_date
            loan.returned = True
            return loan

    def find_open(self, member_id: str, book_id: str) -> Optional[LoanRecord]:
        with self.db.connection() as conn:
            return self._find_open(conn, member_id, book_id)

    def list_open(self, member_id: str) -> List[LoanRecord]:
        return self._select("WHERE member_id = ? AND returned = 0", (member_id,))

    def history(self, member_id: str) -> List[LoanRecord]:
        return self._select("WHERE member_id = ?", (member_id,))

    def list_all_open(self) -> List[LoanRecord]:
        return self._select("WHERE returned = 0", ())

    def count_open(self, member_id: str) -> int:
        with self.db.connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM loans WHERE member_id = ? AND returned = 0", (member_id,)
            ).fetchone()[0]

    def count_open_for_book(self, book_id: str) -> int:
        with self.db.connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM loans WHERE book_id = ? AND returned = 0", (book_id,)
            ).fetchone()[0]

    def _select(self, where: str, params: tuple) -> List[LoanRecord]:
        with self.db.connection() as conn:
            rows = conn.execute(f"SELECT {LOAN_COLUMNS} FROM loans {where} ORDER BY record_id", params).fetchall()
            return [LoanRecord.from_dict(dict(row)) for row in rows]

    @staticmethod
    def _find_open(conn: sqlite3.Connection, member_id: str, book_id: str) -> Optional[LoanRecord]:
        row = conn.execute(
            f"SELECT {LOAN_COLUMNS} FROM loans WHERE member_id = ? AND book_id = ? AND returned = 0",
            (member_id, book_id),
        ).fetchone()
        return LoanRecord.from_dict(dict(row)) if row else None
