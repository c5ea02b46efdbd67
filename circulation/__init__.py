"""Library Circulation - Core Application Package

This package contains the circulation modules including:
- Lending engine (library.py)
- Catalog, member and loan stores (catalog.py, members.py, ledger.py)
- Data models (book.py, member.py, loan.py)
- Fine computation (fines.py)
- Database layer (database.py)
- API endpoints (api.py)
- CLI interface (main.py)
"""

__version__ = "1.0.0"
