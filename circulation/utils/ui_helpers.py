import json
import os
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from circulation.config import settings

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, settings.default_output).lower()


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, default=str))


def print_books_result(books: List[Any]) -> None:
    """Print books in the current output mode.
    - plain: 'ID - Title by Author (available/total)' lines, or 'No books in library.'
    - json: JSON array of book dicts
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books in library.")
        return

    if mode == "json":
        _print_json([b.to_dict() for b in books])
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Available", justify="right")
        table.add_column("Status")
        for b in books:
            status = "Active" if b.active else "[red]Inactive[/]"
            if b.is_digital:
                status += " · digital"
            table.add_row(b.book_id, b.title, b.author, f"{b.available_copies}/{b.total_copies}", status)
        _console.print(table)
    else:
        for b in books:
            print(f"{b.book_id} - {b.title} by {b.author} ({b.available_copies}/{b.total_copies} available)")


def print_members_result(members: List[Any]) -> None:
    mode = get_output_mode()

    if not members:
        print("No members registered.")
        return

    if mode == "json":
        _print_json([m.to_dict() for m in members])
    elif mode == "rich":
        table = Table(title="👤 Members", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Name")
        table.add_column("Email")
        table.add_column("Phone")
        table.add_column("Borrowed", justify="right")
        table.add_column("Status")
        for m in members:
            table.add_row(m.member_id, m.name, m.email, m.phone, str(m.open_loans),
                          "Active" if m.active else "[red]Inactive[/]")
        _console.print(table)
    else:
        for m in members:
            print(f"{m.member_id} - {m.name} ({m.open_loans} borrowed)")


def print_loans_result(loans: List[Any], empty_message: str = "No active borrowed books.") -> None:
    mode = get_output_mode()

    if not loans:
        print(empty_message)
        return

    if mode == "json":
        _print_json([loan.to_dict() for loan in loans])
    elif mode == "rich":
        table = Table(title="📖 Loans", header_style="bold cyan")
        table.add_column("#", justify="right")
        table.add_column("Book ID", style="magenta")
        table.add_column("Borrowed")
        table.add_column("Returned")
        table.add_column("Status")
        for loan in loans:
            data = loan.to_dict()
            table.add_row(str(loan.record_id), loan.book_id, data["borrow_date"], data["return_date"] or "-",
                          "[green]Returned[/]" if loan.returned else "[yellow]Not Returned[/]")
        _console.print(table)
    else:
        for loan in loans:
            data = loan.to_dict()
            status = f"returned {data['return_date']}" if loan.returned else "not returned"
            print(f"{loan.book_id} - borrowed {data['borrow_date']}, {status}")


def print_overdue_result(overdue: List[Any]) -> None:
    mode = get_output_mode()

    if not overdue:
        print("No overdue loans.")
        return

    if mode == "json":
        _print_json([
            {**item.loan.to_dict(), "due_date": item.due_date.isoformat(),
             "days_overdue": item.days_overdue, "fine": item.fine}
            for item in overdue
        ])
    elif mode == "rich":
        table = Table(title="⏰ Overdue", header_style="bold red")
        table.add_column("Member", style="magenta")
        table.add_column("Book ID")
        table.add_column("Due")
        table.add_column("Days", justify="right")
        table.add_column("Fine", justify="right")
        for item in overdue:
            table.add_row(item.loan.member_id, item.loan.book_id, item.due_date.isoformat(),
                          str(item.days_overdue), f"{settings.currency} {item.fine:.2f}")
        _console.print(table)
    else:
        for item in overdue:
            print(f"{item.loan.member_id} - {item.loan.book_id}: due {item.due_date.isoformat()}, "
                  f"{item.days_overdue} days overdue, fine {settings.currency} {item.fine:.2f}")


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics in the current output mode.
    - plain: one 'Label: value' line per figure
    - json: JSON object
    - rich: Panel with the key figures
    """
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    rows = [
        ("Total Book Titles", stats.get("title_count", 0)),
        ("Total Available Copies", stats.get("available_copies", 0)),
        ("Total Borrowed Copies", stats.get("borrowed_copies", 0)),
        ("Total Registered Members", stats.get("member_count", 0)),
    ]

    if mode == "json":
        _print_json(stats)
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {value}" for label, value in rows)
        _console.print(Panel.fit(content, title="📊 Library Statistics", border_style="blue"))
    else:
        for label, value in rows:
            print(f"{label}: {value}")
