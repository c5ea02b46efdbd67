import logging
from datetime import date
from typing import Any, Dict, List, Optional

from circulation import fines
from circulation.book import Book
from circulation.catalog import CatalogStore
from circulation.config import Settings, settings as default_settings
from circulation.database import Database
from circulation.exceptions import (
    BookUnavailableError,
    BorrowingCapExceededError,
    DuplicateOpenLoanError,
    HasOutstandingCopiesError,
    InactiveError,
    LibraryError,
)
from circulation.ledger import LoanLedger
from circulation.loan import LoanRecord, OverdueLoan, ReturnReceipt
from circulation.member import Member
from circulation.members import MemberStore
from circulation.utils.validators import ContactValidator, IDValidator, TextValidator

logger = logging.getLogger(__name__)


class Library:
    """Lending engine over the catalog, member and loan stores.

    Every mutating operation runs as a single transaction on the store
    handle: it either commits completely before returning or leaves no
    trace. Pass ``database`` to share a handle, or ``db_file`` to open one.
    """

    def __init__(self, db_file: Optional[str] = None, *, database: Optional[Database] = None,
                 settings: Optional[Settings] = None) -> None:
        self.settings = settings or default_settings
        if database is None:
            database = Database(
                db_file or self.settings.database_file,
                lock_timeout=self.settings.lock_timeout,
                busy_timeout=self.settings.busy_timeout,
            )
        self.db = database.open()
        self.catalog = CatalogStore(self.db)
        self.members = MemberStore(self.db)
        self.ledger = LoanLedger(self.db)

    # ------------------------- Catalog ------------------------- #
    def add_book(self, book_id: str, title: str, author: str, copies: int = 1, *,
                 download_link: Optional[str] = None, download_limit: Optional[int] = None) -> Book:
        """Add a new title with ``copies`` copies, all on the shelf."""
        book_id = IDValidator.normalize_id(book_id)
        if not IDValidator.is_valid_id(book_id):
            raise ValueError(f"Invalid book ID: {book_id!r}.")
        if not TextValidator.validate_title(title):
            raise ValueError("Title cannot be empty.")
        if isinstance(copies, bool) or not isinstance(copies, int) or copies < 0:
            raise ValueError("Number of copies must be a non-negative integer.")
        if download_limit is not None:
            if not download_link:
                raise ValueError("A download limit needs a download link.")
            if download_limit < 0:
                raise ValueError("Download limit cannot be negative.")

        book = Book(
            book_id=book_id,
            title=TextValidator.sanitize_text(title),
            author=TextValidator.sanitize_text(author),
            total_copies=copies,
            download_link=download_link,
            download_limit=download_limit,
        )
        with self.db.transaction():
            self.catalog.create(book)
        logger.info("Book added: %s (%d copies)", book.book_id, copies)
        return book

    def remove_book(self, book_id: str) -> None:
        book_id = IDValidator.normalize_id(book_id)
        with self.db.transaction():
            # A book can only go once no open loan references it
            open_loans = self.ledger.count_open_for_book(book_id)
            if open_loans:
                raise HasOutstandingCopiesError(book_id, open_loans)
            self.catalog.remove(book_id)
        logger.info("Book removed: %s", book_id)

    def find_book(self, book_id: str) -> Book:
        return self.catalog.find(IDValidator.normalize_id(book_id))

    def list_books(self) -> List[Book]:
        return self.catalog.list()

    def search_books(self, query: str) -> List[Book]:
        """Case-insensitive substring match on id, title and author."""
        return self.catalog.search(query)

    def set_book_active(self, book_id: str, active: bool) -> Book:
        book_id = IDValidator.normalize_id(book_id)
        book = self.catalog.set_active(book_id, active)
        logger.info("Book %s marked %s", book_id, "active" if active else "inactive")
        return book

    # ------------------------- Members ------------------------- #
    def register_member(self, member_id: str, name: str, email: str = "", phone: str = "") -> Member:
        member_id = IDValidator.normalize_id(member_id)
        if not IDValidator.is_valid_id(member_id):
            raise ValueError(f"Invalid member ID: {member_id!r}.")
        if not TextValidator.validate_name(name):
            raise ValueError("Name cannot be empty.")
        if not ContactValidator.validate_email(email):
            raise ValueError(f"Invalid email address: {email!r}.")
        if not ContactValidator.validate_phone(phone):
            raise ValueError(f"Invalid phone number: {phone!r}.")

        member = Member(member_id=member_id, name=TextValidator.sanitize_text(name), email=email, phone=phone)
        with self.db.transaction():
            member = self.members.register(member)
        logger.info("Member registered: %s", member_id)
        return member

    def remove_member(self, member_id: str) -> None:
        member_id = IDValidator.normalize_id(member_id)
        with self.db.transaction():
            self.members.remove(member_id)
        logger.info("Member removed: %s", member_id)

    def find_member(self, member_id: str) -> Member:
        return self.members.find(IDValidator.normalize_id(member_id))

    def list_members(self) -> List[Member]:
        return self.members.list()

    def set_member_active(self, member_id: str, active: bool) -> Member:
        member_id = IDValidator.normalize_id(member_id)
        member = self.members.set_active(member_id, active)
        logger.info("Member %s marked %s", member_id, "active" if active else "inactive")
        return member

    # ------------------------- Circulation ------------------------- #
    def issue_book(self, member_id: str, book_id: str) -> date:
        """Lend one copy of ``book_id`` to ``member_id``; returns the borrow date."""
        member_id, book_id = IDValidator.normalize_id(member_id), IDValidator.normalize_id(book_id)
        try:
            with self.db.transaction():
                member = self.members.find(member_id)
                if not member.active:
                    raise InactiveError("member", member_id)
                book = self.catalog.find(book_id)
                if not book.active:
                    raise InactiveError("book", book_id)
                if book.available_copies <= 0:
                    raise BookUnavailableError(book_id)
                if member.open_loans >= self.settings.borrow_limit:
                    raise BorrowingCapExceededError(member_id, self.settings.borrow_limit)
                if self.ledger.find_open(member_id, book_id) is not None:
                    raise DuplicateOpenLoanError(member_id, book_id)

                borrow_date = fines.today()
                self.catalog.adjust_availability(book_id, -1)
                self.ledger.open_loan(member_id, book_id, borrow_date)
        except LibraryError as e:
            logger.warning("Issue of %s to %s rejected: %s", book_id, member_id, e)
            raise
        logger.info("Book %s issued to %s on %s", book_id, member_id, borrow_date)
        return borrow_date

    def return_book(self, member_id: str, book_id: str, return_date: Optional[fines.DateLike] = None) -> ReturnReceipt:
        """Take back a copy and work out the fine.

        ``return_date`` defaults to today. Returns ``(return_date, fine)``.
        """
        member_id, book_id = IDValidator.normalize_id(member_id), IDValidator.normalize_id(book_id)
        try:
            when = fines.today() if return_date in (None, "") else fines.parse_date(return_date)
            with self.db.transaction():
                self.members.find(member_id)
                self.catalog.find(book_id)
                loan = self.ledger.close_loan(member_id, book_id, when)
                self.catalog.adjust_availability(book_id, +1)
        except LibraryError as e:
            logger.warning("Return of %s by %s rejected: %s", book_id, member_id, e)
            raise

        fine = self.calculate_fine(loan.borrow_date, when)
        logger.info("Book %s returned by %s on %s, fine %.2f", book_id, member_id, when, fine)
        return ReturnReceipt(when, fine)

    def calculate_fine(self, borrow_date: fines.DateLike, return_date: fines.DateLike) -> float:
        return fines.calculate_fine(
            borrow_date, return_date,
            grace_period_days=self.settings.grace_period_days,
            rate_per_day=self.settings.fine_per_day,
        )

    def due_date(self, borrow_date: fines.DateLike) -> date:
        return fines.due_date(borrow_date, self.settings.grace_period_days)

    def list_open_loans(self, member_id: str) -> List[LoanRecord]:
        member_id = IDValidator.normalize_id(member_id)
        self.members.find(member_id)
        return self.ledger.list_open(member_id)

    def loan_history(self, member_id: str) -> List[LoanRecord]:
        """Every loan the member ever had, open and closed, oldest first."""
        member_id = IDValidator.normalize_id(member_id)
        self.members.find(member_id)
        return self.ledger.history(member_id)

    def overdue_loans(self, as_of: Optional[fines.DateLike] = None) -> List[OverdueLoan]:
        """Open loans past their due date with the fine accrued so far."""
        as_of = fines.today() if as_of is None else fines.parse_date(as_of)
        overdue = []
        for loan in self.ledger.list_all_open():
            due = self.due_date(loan.borrow_date)
            if as_of > due:
                overdue.append(OverdueLoan(loan, due, (as_of - due).days, self.calculate_fine(loan.borrow_date, as_of)))
        return overdue

    # ------------------------- Reports ------------------------- #
    def get_statistics(self) -> Dict[str, Any]:
        """Get library statistics."""
        titles, available, borrowed = self.catalog.totals()
        return {
            "title_count": titles,
            "available_copies": available,
            "borrowed_copies": borrowed,
            "member_count": self.members.count(),
        }

    # ------------------------- Lifecycle ------------------------- #
    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> "Library":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
