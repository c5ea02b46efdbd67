from __future__ import annotations


class Member:
    """A registered borrower."""

    def __init__(self, member_id: str, name: str, email: str | None = None, phone: str | None = None,
                 active: bool = True, open_loans: int = 0, created_at: str | None = None) -> None:
        self.member_id = member_id.strip()
        self.name = name.strip()
        self.email = (email or "").strip()
        self.phone = (phone or "").strip()
        self.active = bool(active)
        # Filled from the loan ledger on read, never stored
        self.open_loans = int(open_loans)
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} (ID: {self.member_id})"

    def to_dict(self) -> dict:
        return {
            "member_id": self.member_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "active": self.active,
            "open_loans": self.open_loans,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Member":
        return Member(
            member_id=data["member_id"],
            name=data["name"],
            email=data.get("email"),
            phone=data.get("phone"),
            active=bool(data.get("active", True)),
            open_loans=data.get("open_loans") or 0,
            created_at=data.get("created_at"),
        )
