from __future__ import annotations


class Book:
    """Represents one title in the catalog and its copy counts."""

    def __init__(self, book_id: str, title: str, author: str, total_copies: int = 1,
                 available_copies: int | None = None, active: bool = True,
                 # Digital edition fields
                 download_link: str | None = None, download_limit: int | None = None,
                 created_at: str | None = None) -> None:
        self.book_id = book_id.strip()
        self.title = title.strip()
        self.author = (author or "").strip()
        self.total_copies = int(total_copies)
        self.available_copies = self.total_copies if available_copies is None else int(available_copies)
        self.active = bool(active)
        self.download_link = download_link or None
        self.download_limit = download_limit
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ID: {self.book_id})"

    def __repr__(self) -> str:  # pragma: no cover
        return f"Book({self.book_id!r}, available={self.available_copies}/{self.total_copies})"

    @property
    def is_digital(self) -> bool:
        return self.download_link is not None

    @property
    def is_available(self) -> bool:
        return self.active and self.available_copies > 0

    @property
    def borrowed_copies(self) -> int:
        return self.total_copies - self.available_copies

    def to_dict(self) -> dict:
        return {
            "book_id": self.book_id,
            "title": self.title,
            "author": self.author,
            "total_copies": self.total_copies,
            "available_copies": self.available_copies,
            "active": self.active,
            "is_digital": self.is_digital,
            "download_link": self.download_link,
            "download_limit": self.download_limit,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        # SQLite hands back 0/1 for booleans
        return Book(
            book_id=data["book_id"],
            title=data["title"],
            author=data.get("author") or "",
            total_copies=data.get("total_copies", 1),
            available_copies=data.get("available_copies"),
            active=bool(data.get("active", True)),
            download_link=data.get("download_link"),
            download_limit=data.get("download_limit"),
            created_at=data.get("created_at"),
        )
