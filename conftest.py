import os

import pytest

from circulation.library import Library
from circulation.main import LibraryManager


@pytest.fixture
def db_file(tmp_path, request):
    # One database file per test
    return str(tmp_path / f"test_{request.node.originalname}.db")


@pytest.fixture
def lib(db_file):
    lib = Library(db_file=db_file)
    yield lib
    lib.close()
    if os.path.exists(db_file):
        os.remove(db_file)


@pytest.fixture(autouse=True)
def _reset_cli_state(monkeypatch):
    monkeypatch.delenv("LIB_CLI_OUTPUT", raising=False)
    yield
    LibraryManager.reset()
    LibraryManager.use_database(None)


@pytest.fixture
def on_day(monkeypatch):
    """Pin ``circulation.fines.today`` to a fixed date for the rest of the test."""
    from circulation import fines

    def _pin(day):
        monkeypatch.setattr(fines, "today", lambda: fines.parse_date(day))
    return _pin
