import csv
import json
import logging
import subprocess
import sys
from functools import wraps
from typing import Optional

import typer

from circulation.config import settings
from circulation.exceptions import LibraryError
from circulation.library import Library
from circulation.utils.ui_helpers import (
    get_output_mode,
    print_books_result,
    print_loans_result,
    print_members_result,
    print_overdue_result,
    print_stats_result,
    set_output_mode,
)

APP_NAME = "Library Circulation CLI"


class LibraryManager:
    """Holds the CLI's Library instance and reopens it when the database file changes."""
    _instance: Optional[Library] = None
    _db_file: Optional[str] = None
    _db_file_snapshot: Optional[str] = None

    @classmethod
    def use_database(cls, db_file: Optional[str]) -> None:
        cls._db_file = db_file

    @classmethod
    def get_instance(cls) -> Library:
        current_db = cls._db_file or settings.database_file
        if cls._instance is not None and current_db != cls._db_file_snapshot:
            cls.reset()
        if cls._instance is None:
            cls._instance = Library(current_db)
            cls._db_file_snapshot = current_db
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        if cls._instance is not None:
            cls._instance.close()
        cls._instance = None
        cls._db_file_snapshot = None


def handle_errors(func):
    """Print library and validation errors as one line and exit with status 1."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (LibraryError, ValueError) as e:
            print(f"Error: {e}")
            raise typer.Exit(code=1)
    return wrapper


# --- Typer CLI Application ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output format: plain | json | rich (default: plain)",
    ),
    db: Optional[str] = typer.Option(
        None, "--db", envvar="LIBRARY_DB_FILE", help="SQLite database file",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log each operation"),
):
    """Global options for the CLI (output mode, database file)."""
    logging.basicConfig(level=logging.INFO if verbose else logging.ERROR, format="%(levelname)s: %(message)s")
    if output:
        set_output_mode(output)
    LibraryManager.use_database(db)


# --- Books ---
@app.command("add-book")
@handle_errors
def cli_add_book(
    book_id: str,
    title: str,
    author: str,
    copies: int = typer.Option(1, "--copies", "-c", min=1, help="Number of copies"),
    link: Optional[str] = typer.Option(None, "--link", help="Download link of a digital edition"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Download limit of a digital edition"),
):
    """Add a new book to the catalog."""
    lib = LibraryManager.get_instance()
    book = lib.add_book(book_id, title, author, copies, download_link=link, download_limit=limit)
    print(f"Book added successfully: {book.title} by {book.author} ({book.total_copies} copies)")


@app.command("remove-book")
@handle_errors
def cli_remove_book(book_id: str):
    """Remove a book whose copies are all returned."""
    LibraryManager.get_instance().remove_book(book_id)
    print(f"Book with ID {book_id} has been removed.")


@app.command("find-book")
@handle_errors
def cli_find_book(book_id: str):
    """Show the details of one book."""
    book = LibraryManager.get_instance().find_book(book_id)
    print("Book Found")
    print(f"Book ID: {book.book_id}")
    print(f"Title: {book.title}")
    print(f"Author: {book.author}")
    print(f"Total Copies: {book.total_copies}")
    print(f"Available Copies: {book.available_copies}")
    print(f"Status: {'Active' if book.active else 'Inactive'}")
    if book.is_digital:
        print(f"Download Link: {book.download_link}")
        print(f"Download Limit: {book.download_limit}")


@app.command("search")
@handle_errors
def cli_search(query: str = typer.Argument(..., help="Title, author or book ID fragment")):
    """Search books by title, author or ID (case-insensitive)."""
    books = LibraryManager.get_instance().search_books(query)
    # json output must stay a bare array
    if get_output_mode() == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
        return
    if not books:
        print("No books found matching your search.")
        return
    print(f"{len(books)} books found:")
    print_books_result(books)


@app.command("list-books")
@handle_errors
def cli_list_books():
    """List all books."""
    print_books_result(LibraryManager.get_instance().list_books())


# --- Members ---
@app.command("register-member")
@handle_errors
def cli_register_member(
    member_id: str,
    name: str,
    email: str = typer.Option("", "--email", "-e"),
    phone: str = typer.Option("", "--phone", "-p"),
):
    """Register a new member."""
    member = LibraryManager.get_instance().register_member(member_id, name, email, phone)
    print(f"Member registered successfully: {member.name} ({member.member_id})")


@app.command("remove-member")
@handle_errors
def cli_remove_member(member_id: str):
    """Remove a member who has returned every book."""
    LibraryManager.get_instance().remove_member(member_id)
    print(f"Member with ID {member_id} has been removed.")


@app.command("list-members")
@handle_errors
def cli_list_members():
    """List all registered members."""
    print_members_result(LibraryManager.get_instance().list_members())


@app.command("set-active")
@handle_errors
def cli_set_active(
    kind: str = typer.Argument(..., help="book | member"),
    record_id: str = typer.Argument(...),
    active: bool = typer.Option(True, "--active/--inactive"),
):
    """Activate or deactivate a book or member."""
    lib = LibraryManager.get_instance()
    if kind == "book":
        lib.set_book_active(record_id, active)
    elif kind == "member":
        lib.set_member_active(record_id, active)
    else:
        raise ValueError(f"Unknown kind {kind!r}; use 'book' or 'member'.")
    print(f"{kind.capitalize()} {record_id} is now {'active' if active else 'inactive'}.")


# --- Circulation ---
@app.command("issue")
@handle_errors
def cli_issue(member_id: str, book_id: str):
    """Issue a book to a member."""
    lib = LibraryManager.get_instance()
    borrow_date = lib.issue_book(member_id, book_id)
    print("Book issued successfully!")
    print(f"Issue Date: {borrow_date.isoformat()}")
    print(f"Due Date: {lib.due_date(borrow_date).isoformat()} "
          f"(return within {lib.settings.grace_period_days} days to avoid a fine)")


@app.command("return")
@handle_errors
def cli_return(
    member_id: str,
    book_id: str,
    date: Optional[str] = typer.Option(None, "--date", "-d", help="Return date (YYYY-MM-DD or DD/MM/YYYY); default today"),
):
    """Return a borrowed book and show any fine."""
    return_date, fine = LibraryManager.get_instance().return_book(member_id, book_id, date)
    print("Book returned successfully!")
    print(f"Return Date: {return_date.isoformat()}")
    if fine > 0:
        print(f"Fine Amount: {settings.currency} {fine:.2f}")
    else:
        print("No fine applicable.")


@app.command("loans")
@handle_errors
def cli_loans(member_id: str, history: bool = typer.Option(False, "--history", help="Include returned books")):
    """Show the books a member currently holds."""
    lib = LibraryManager.get_instance()
    if history:
        print_loans_result(lib.loan_history(member_id), empty_message="No loans recorded.")
    else:
        print_loans_result(lib.list_open_loans(member_id))


@app.command("overdue")
@handle_errors
def cli_overdue(as_of: Optional[str] = typer.Option(None, "--as-of", help="Report date; default today")):
    """List open loans past their due date with the fine accrued so far."""
    print_overdue_result(LibraryManager.get_instance().overdue_loans(as_of))


@app.command("stats")
@handle_errors
def cli_stats():
    """Show library statistics."""
    print_stats_result(LibraryManager.get_instance().get_statistics())


@app.command("export")
@handle_errors
def cli_export(format: str = "csv", output: str = "library_export"):
    """Export the catalog to a file (csv or json)."""
    books = LibraryManager.get_instance().list_books()
    if not books:
        print("No books to export.")
        return

    if format.lower() == "csv":
        filename = f"{output}.csv"
        with open(filename, "w", newline="", encoding="utf-8") as csvfile:
            writer = csv.writer(csvfile)
            writer.writerow(["Book ID", "Title", "Author", "Total Copies", "Available Copies", "Active"])
            for book in books:
                writer.writerow([book.book_id, book.title, book.author,
                                 book.total_copies, book.available_copies, book.active])
        print(f"Exported {len(books)} books to {filename}")

    elif format.lower() == "json":
        filename = f"{output}.json"
        with open(filename, "w", encoding="utf-8") as jsonfile:
            json.dump([book.to_dict() for book in books], jsonfile, indent=2, ensure_ascii=False)
        print(f"Exported {len(books)} books to {filename}")

    else:
        print(f"Unsupported format: {format}. Use csv or json.")
        raise typer.Exit(code=1)


@app.command("serve")
def cli_serve(
    host: str = typer.Option(settings.api_host, "--host"),
    port: int = typer.Option(settings.api_port, "--port"),
):
    """Run the HTTP API with uvicorn."""
    print(f"Starting API on http://{host}:{port}")
    subprocess.run([sys.executable, "-m", "uvicorn", "circulation.api:app", "--host", host, "--port", str(port)])


def main():
    app()


if __name__ == "__main__":
    main()
