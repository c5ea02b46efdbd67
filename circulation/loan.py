from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import NamedTuple, Optional

from circulation.fines import DEFAULT_GRACE_PERIOD_DAYS, due_date, format_date, parse_date


class LoanStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class LoanRecord:
    """One borrowing episode of one copy by one member.

    Created OPEN on issue and closed exactly once on return. Records are
    never deleted; ``record_id`` is assigned by the ledger on append.
    """
    member_id: str
    book_id: str
    borrow_date: date
    return_date: Optional[date] = None
    returned: bool = False
    record_id: Optional[int] = None

    @property
    def status(self) -> LoanStatus:
        return LoanStatus.CLOSED if self.returned else LoanStatus.OPEN

    def due_date(self, grace_period_days: int = DEFAULT_GRACE_PERIOD_DAYS) -> date:
        return due_date(self.borrow_date, grace_period_days)

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "member_id": self.member_id,
            "book_id": self.book_id,
            "borrow_date": format_date(self.borrow_date),
            "return_date": format_date(self.return_date),
            "returned": self.returned,
            "status": self.status.value,
        }

    @staticmethod
    def from_dict(data: dict) -> "LoanRecord":
        return LoanRecord(
            record_id=data.get("record_id"),
            member_id=data["member_id"],
            book_id=data["book_id"],
            borrow_date=parse_date(data["borrow_date"]),
            return_date=parse_date(data["return_date"]) if data.get("return_date") else None,
            returned=bool(data.get("returned", False)),
        )


class ReturnReceipt(NamedTuple):
    """Outcome of a return: unpacks as ``(return_date, fine)``."""
    return_date: date
    fine: float


class OverdueLoan(NamedTuple):
    loan: LoanRecord
    due_date: date
    days_overdue: int
    fine: float
