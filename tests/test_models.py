from datetime import date

from circulation.book import Book
from circulation.loan import LoanRecord, LoanStatus, ReturnReceipt
from circulation.member import Member
from circulation.utils.validators import ContactValidator, IDValidator, TextValidator


def test_book_defaults_to_all_copies_available():
    book = Book("B1", "Dune", "Frank Herbert", total_copies=3)
    assert book.available_copies == 3
    assert book.borrowed_copies == 0
    assert book.is_available


def test_book_from_sqlite_row():
    book = Book.from_dict({"book_id": "B1", "title": "Dune", "author": None, "total_copies": 2,
                           "available_copies": 0, "active": 0})
    assert book.author == ""
    assert book.active is False
    assert book.borrowed_copies == 2
    assert not book.is_available


def test_member_from_dict():
    member = Member.from_dict({"member_id": "M1", "name": "Ada", "email": None, "open_loans": 3, "active": 1})
    assert member.email == ""
    assert member.open_loans == 3
    assert member.to_dict()["active"] is True


def test_loan_record_status_and_dict():
    loan = LoanRecord.from_dict({"record_id": 7, "member_id": "M1", "book_id": "B1",
                                 "borrow_date": "2025-01-01", "return_date": None, "returned": 0})
    assert loan.status is LoanStatus.OPEN
    assert loan.due_date() == date(2025, 1, 15)
    assert loan.to_dict() == {
        "record_id": 7,
        "member_id": "M1",
        "book_id": "B1",
        "borrow_date": "2025-01-01",
        "return_date": None,
        "returned": False,
        "status": "open",
    }


def test_return_receipt_unpacks():
    return_date, fine = ReturnReceipt(date(2025, 1, 20), 10.0)
    assert return_date == date(2025, 1, 20)
    assert fine == 10.0


def test_id_validator():
    assert IDValidator.is_valid_id("B-001")
    assert IDValidator.is_valid_id(" M_1.a ")
    assert not IDValidator.is_valid_id("")
    assert not IDValidator.is_valid_id("with space")
    assert not IDValidator.is_valid_id("-leading")
    assert not IDValidator.is_valid_id("X" * 21)


def test_text_validator():
    assert TextValidator.validate_title("Dune")
    assert not TextValidator.validate_title("  ")
    assert not TextValidator.validate_name("12345")
    assert TextValidator.sanitize_text(" a\tb\n  c ") == "a b c"


def test_contact_validator():
    assert ContactValidator.validate_email("")
    assert ContactValidator.validate_email("ada@example.org")
    assert not ContactValidator.validate_email("ada@example")
    assert ContactValidator.validate_phone("+90 555 123 4567")
    assert not ContactValidator.validate_phone("phone")
