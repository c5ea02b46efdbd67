import sqlite3
from typing import List

from circulation.database import Database
from circulation.exceptions import DuplicateIDError, HasOpenLoansError, MemberNotFoundError
from circulation.member import Member


# open_loans is derived from the ledger on every read
MEMBER_SELECT = """
    SELECT m.member_id, m.name, m.email, m.phone, m.active, m.created_at,
           (SELECT COUNT(*) FROM loans l WHERE l.member_id = m.member_id AND l.returned = 0) AS open_loans
    FROM members m
"""


class MemberStore:
    """Owns member records."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def register(self, member: Member) -> Member:
        with self.db.transaction() as conn:
            try:
                conn.execute(
                    "INSERT INTO members (member_id, name, email, phone, active) VALUES (?, ?, ?, ?, ?)",
                    (member.member_id, member.name, member.email, member.phone, int(member.active)),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateIDError("member", member.member_id) from e
            return self._get(conn, member.member_id)

    def remove(self, member_id: str) -> None:
        """Delete a member who holds no books."""
        with self.db.transaction() as conn:
            member = self._get(conn, member_id)
            if member.open_loans > 0:
                raise HasOpenLoansError(member_id, member.open_loans)
            conn.execute("DELETE FROM members WHERE member_id = ?", (member_id,))

    def find(self, member_id: str) -> Member:
        with self.db.connection() as conn:
            return self._get(conn, member_id)

    def list(self) -> List[Member]:
        """All members in registration order."""
        with self.db.connection() as conn:
            rows = conn.execute(MEMBER_SELECT + " ORDER BY m.rowid").fetchall()
            return [Member.from_dict(dict(row)) for row in rows]

    def set_active(self, member_id: str, active: bool) -> Member:
        with self.db.transaction() as conn:
            member = self._get(conn, member_id)
            conn.execute("UPDATE members SET active = ? WHERE member_id = ?", (int(active), member_id))
            member.active = bool(active)
            return member

    def count(self) -> int:
        with self.db.connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM members").fetchone()[0]

    @staticmethod
    def _get(conn: sqlite3.Connection, member_id: str) -> Member:
        row = conn.execute(MEMBER_SELECT + " WHERE m.member_id = ?", (member_id,)).fetchone()
        if row is None:
            raise MemberNotFoundError(member_id)
        return Member.from_dict(dict(row))
