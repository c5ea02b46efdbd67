import json
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from circulation.main import app

runner = CliRunner()


@pytest.fixture
def cli(db_file):
    def invoke(*args):
        return runner.invoke(app, ["--db", db_file, *args])
    return invoke


@pytest.fixture
def stocked_cli(cli):
    assert cli("add-book", "B1", "Dune", "Frank Herbert", "--copies", "2").exit_code == 0
    assert cli("register-member", "M1", "Ada Lovelace", "--email", "ada@example.org").exit_code == 0
    return cli


def test_list_no_books(cli):
    result = cli("list-books")
    assert result.exit_code == 0
    assert "No books in library." in result.stdout


def test_add_and_list_books(cli):
    result = cli("add-book", "B1", "Dune", "Frank Herbert", "--copies", "3")
    assert result.exit_code == 0
    assert "Book added successfully: Dune by Frank Herbert (3 copies)" in result.stdout

    result = cli("list-books")
    assert "B1 - Dune by Frank Herbert (3/3 available)" in result.stdout


def test_add_duplicate_book(stocked_cli):
    result = stocked_cli("add-book", "B1", "Other", "Someone")
    assert result.exit_code == 1
    assert "Error: Book with ID B1 already exists." in result.stdout


def test_add_book_with_invalid_id(cli):
    result = cli("add-book", "bad id", "Dune", "Frank Herbert")
    assert result.exit_code == 1
    assert "Error: Invalid book ID" in result.stdout


def test_find_book(stocked_cli):
    result = stocked_cli("find-book", "B1")
    assert result.exit_code == 0
    assert "Title: Dune" in result.stdout
    assert "Available Copies: 2" in result.stdout

    result = stocked_cli("find-book", "B404")
    assert result.exit_code == 1
    assert "Error: Book with ID B404 not found." in result.stdout


def test_search(stocked_cli):
    result = stocked_cli("search", "HERBERT")
    assert result.exit_code == 0
    assert "1 books found:" in result.stdout
    assert "B1 - Dune" in result.stdout

    result = stocked_cli("search", "tolstoy")
    assert "No books found matching your search." in result.stdout


def test_issue_and_return_flow(stocked_cli, on_day):
    on_day("2025-01-01")
    result = stocked_cli("issue", "M1", "B1")
    assert result.exit_code == 0
    assert "Book issued successfully!" in result.stdout
    assert "Issue Date: 2025-01-01" in result.stdout
    assert "Due Date: 2025-01-15" in result.stdout

    result = stocked_cli("loans", "M1")
    assert "B1 - borrowed 2025-01-01, not returned" in result.stdout

    result = stocked_cli("return", "M1", "B1", "--date", "20/01/2025")
    assert result.exit_code == 0
    assert "Return Date: 2025-01-20" in result.stdout
    assert "Fine Amount: Rs. 10.00" in result.stdout

    result = stocked_cli("loans", "M1")
    assert "No active borrowed books." in result.stdout
    result = stocked_cli("loans", "M1", "--history")
    assert "B1 - borrowed 2025-01-01, returned 2025-01-20" in result.stdout


def test_return_on_time_has_no_fine(stocked_cli):
    stocked_cli("issue", "M1", "B1")
    result = stocked_cli("return", "M1", "B1")
    assert result.exit_code == 0
    assert "No fine applicable." in result.stdout


def test_return_with_bad_date(stocked_cli):
    stocked_cli("issue", "M1", "B1")
    result = stocked_cli("return", "M1", "B1", "--date", "31/02/2025")
    assert result.exit_code == 1
    assert "Error: Invalid date" in result.stdout


def test_issue_errors_are_reported(stocked_cli):
    result = stocked_cli("issue", "M404", "B1")
    assert result.exit_code == 1
    assert "Error: Member with ID M404 not found." in result.stdout

    stocked_cli("issue", "M1", "B1")
    result = stocked_cli("issue", "M1", "B1")
    assert result.exit_code == 1
    assert "Error: Member M1 has already borrowed book B1." in result.stdout


def test_return_not_borrowed(stocked_cli):
    result = stocked_cli("return", "M1", "B1")
    assert result.exit_code == 1
    assert "Error: Member M1 has not borrowed book B1." in result.stdout


def test_remove_book_and_member(stocked_cli):
    stocked_cli("issue", "M1", "B1")
    result = stocked_cli("remove-book", "B1")
    assert result.exit_code == 1
    assert "Cannot remove book B1" in result.stdout

    result = stocked_cli("remove-member", "M1")
    assert result.exit_code == 1
    assert "Cannot remove member M1" in result.stdout

    stocked_cli("return", "M1", "B1")
    assert "Book with ID B1 has been removed." in stocked_cli("remove-book", "B1").stdout
    assert "Member with ID M1 has been removed." in stocked_cli("remove-member", "M1").stdout


def test_list_members(stocked_cli):
    stocked_cli("issue", "M1", "B1")
    result = stocked_cli("list-members")
    assert result.exit_code == 0
    assert "M1 - Ada Lovelace (1 borrowed)" in result.stdout


def test_set_active(stocked_cli):
    result = stocked_cli("set-active", "member", "M1", "--inactive")
    assert result.exit_code == 0
    assert "Member M1 is now inactive." in result.stdout

    result = stocked_cli("issue", "M1", "B1")
    assert result.exit_code == 1
    assert "Error: Member M1 is inactive." in result.stdout

    result = stocked_cli("set-active", "shelf", "M1")
    assert result.exit_code == 1


def test_overdue(stocked_cli, on_day):
    on_day("2025-01-01")
    stocked_cli("issue", "M1", "B1")
    result = stocked_cli("overdue", "--as-of", "2025-01-10")
    assert "No overdue loans." in result.stdout

    result = stocked_cli("overdue", "--as-of", "2025-01-20")
    assert result.exit_code == 0
    assert "M1 - B1: due 2025-01-15, 5 days overdue, fine Rs. 10.00" in result.stdout


def test_stats(stocked_cli):
    stocked_cli("issue", "M1", "B1")
    result = stocked_cli("stats")
    assert result.exit_code == 0
    assert "Total Book Titles: 1" in result.stdout
    assert "Total Available Copies: 1" in result.stdout
    assert "Total Borrowed Copies: 1" in result.stdout
    assert "Total Registered Members: 1" in result.stdout


def test_json_output(stocked_cli, db_file):
    result = runner.invoke(app, ["--db", db_file, "--output", "json", "list-books"])
    assert result.exit_code == 0
    books = json.loads(result.stdout)
    assert books[0]["book_id"] == "B1"
    assert books[0]["available_copies"] == 2


def test_rich_output(stocked_cli, db_file):
    result = runner.invoke(app, ["--db", db_file, "-o", "rich", "stats"])
    assert result.exit_code == 0
    assert "Library Statistics" in result.stdout


def test_export_csv_and_json(stocked_cli, tmp_path):
    target = str(tmp_path / "catalog")
    result = stocked_cli("export", "--format", "csv", "--output", target)
    assert result.exit_code == 0
    with open(f"{target}.csv", encoding="utf-8") as f:
        lines = f.read().splitlines()
    assert lines[0].startswith("Book ID,Title,Author")
    assert lines[1].startswith("B1,Dune,Frank Herbert,2,2")

    result = stocked_cli("export", "--format", "json", "--output", target)
    assert result.exit_code == 0
    with open(f"{target}.json", encoding="utf-8") as f:
        assert json.load(f)[0]["title"] == "Dune"

    result = stocked_cli("export", "--format", "xml", "--output", target)
    assert result.exit_code == 1


def test_export_empty_library(cli, tmp_path):
    result = cli("export", "--output", str(tmp_path / "nothing"))
    assert "No books to export." in result.stdout


def test_serve_runs_uvicorn(cli, monkeypatch):
    run_mock = MagicMock()
    monkeypatch.setattr("circulation.main.subprocess.run", run_mock)
    result = cli("serve", "--port", "8123")
    assert result.exit_code == 0
    command = run_mock.call_args[0][0]
    assert "uvicorn" in command
    assert "circulation.api:app" in command
    assert "8123" in command


def test_unreachable_database_is_reported(tmp_path):
    missing = str(tmp_path / "missing_dir" / "x.db")
    for command in (["stats"], ["list-books"], ["list-members"], ["search", "dune"], ["export"]):
        result = runner.invoke(app, ["--db", missing, *command])
        assert result.exit_code == 1
        assert "Error: Could not open database" in result.stdout


def test_search_json_output_is_valid_json(stocked_cli, db_file):
    result = runner.invoke(app, ["--db", db_file, "-o", "json", "search", "dune"])
    assert result.exit_code == 0
    assert [b["book_id"] for b in json.loads(result.stdout)] == ["B1"]

    result = runner.invoke(app, ["--db", db_file, "-o", "json", "search", "tolstoy"])
    assert json.loads(result.stdout) == []
