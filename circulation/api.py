import logging
import os
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from circulation.config import settings
from circulation.exceptions import (
    BusyError,
    InvalidDateError,
    LibraryError,
    NotFoundError,
    StorageUnavailableError,
)
from circulation.library import Library

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

library = Library(os.getenv("LIBRARY_DB_FILE") or settings.database_file)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    library.close()


app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug, lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error mapping ---
def _status_for(error: LibraryError) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, (BusyError, StorageUnavailableError)):
        return 503
    if isinstance(error, InvalidDateError):
        return 400
    # Duplicates and every lending rule that refused the operation
    return 409


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    status = _status_for(exc)
    headers = {"Retry-After": "1"} if isinstance(exc, BusyError) else None
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc), **exc.details}, headers=headers)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# --- Models ---
class BookModel(BaseModel):
    book_id: str
    title: str
    author: str
    total_copies: int
    available_copies: int
    active: bool = True
    is_digital: bool = False
    download_link: Optional[str] = None
    download_limit: Optional[int] = None


class BookCreateModel(BaseModel):
    book_id: str
    title: str
    author: str = ""
    copies: int = Field(1, ge=0)
    download_link: Optional[str] = None
    download_limit: Optional[int] = Field(None, ge=0)


class MemberModel(BaseModel):
    member_id: str
    name: str
    email: str = ""
    phone: str = ""
    active: bool = True
    open_loans: int = 0


class MemberCreateModel(BaseModel):
    member_id: str
    name: str
    email: str = ""
    phone: str = ""


class ActiveUpdateModel(BaseModel):
    active: bool


class LoanModel(BaseModel):
    record_id: Optional[int] = None
    member_id: str
    book_id: str
    borrow_date: date
    return_date: Optional[date] = None
    returned: bool = False
    status: str


class IssueRequest(BaseModel):
    member_id: str
    book_id: str


class IssueResponse(BaseModel):
    member_id: str
    book_id: str
    borrow_date: date
    due_date: date


class ReturnRequest(BaseModel):
    member_id: str
    book_id: str
    return_date: Optional[str] = Field(None, description="YYYY-MM-DD or DD/MM/YYYY; defaults to today")


class ReturnResponse(BaseModel):
    member_id: str
    book_id: str
    return_date: date
    fine: float
    currency: str


class OverdueModel(BaseModel):
    loan: LoanModel
    due_date: date
    days_overdue: int
    fine: float


class StatsModel(BaseModel):
    title_count: int
    available_copies: int
    borrowed_copies: int
    member_count: int


# --- Health ---
@app.get("/health")
def health():
    """Lightweight health endpoint; reports whether the store answers."""
    db_ok = True
    try:
        stats = library.get_statistics()
    except LibraryError:
        db_ok = False
        stats = {}
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": db_ok,
        "total_books": stats.get("title_count", 0),
    }


# --- Books ---
@app.get("/books", response_model=List[BookModel])
def get_books(q: Optional[str] = Query(None, description="Case-insensitive match on id, title or author")):
    books = library.search_books(q) if q else library.list_books()
    return [BookModel(**b.to_dict()) for b in books]


@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: str):
    return BookModel(**library.find_book(book_id).to_dict())


@app.post("/books", response_model=BookModel, status_code=201)
def add_book(payload: BookCreateModel):
    book = library.add_book(
        payload.book_id, payload.title, payload.author, payload.copies,
        download_link=payload.download_link, download_limit=payload.download_limit,
    )
    return BookModel(**book.to_dict())


@app.patch("/books/{book_id}", response_model=BookModel)
def set_book_active(book_id: str, update: ActiveUpdateModel):
    return BookModel(**library.set_book_active(book_id, update.active).to_dict())


@app.delete("/books/{book_id}")
def delete_book(book_id: str):
    library.remove_book(book_id)
    return {"message": f"Book with ID {book_id} has been removed."}


# --- Members ---
@app.get("/members", response_model=List[MemberModel])
def get_members():
    return [MemberModel(**m.to_dict()) for m in library.list_members()]


@app.get("/members/{member_id}", response_model=MemberModel)
def get_member(member_id: str):
    return MemberModel(**library.find_member(member_id).to_dict())


@app.post("/members", response_model=MemberModel, status_code=201)
def register_member(payload: MemberCreateModel):
    member = library.register_member(payload.member_id, payload.name, payload.email, payload.phone)
    return MemberModel(**member.to_dict())


@app.patch("/members/{member_id}", response_model=MemberModel)
def set_member_active(member_id: str, update: ActiveUpdateModel):
    return MemberModel(**library.set_member_active(member_id, update.active).to_dict())


@app.delete("/members/{member_id}")
def delete_member(member_id: str):
    library.remove_member(member_id)
    return {"message": f"Member with ID {member_id} has been removed."}


@app.get("/members/{member_id}/loans", response_model=List[LoanModel])
def get_member_loans(member_id: str, history: bool = Query(False, description="Include returned loans")):
    loans = library.loan_history(member_id) if history else library.list_open_loans(member_id)
    return [LoanModel(**loan.to_dict()) for loan in loans]


# --- Circulation ---
@app.post("/loans/issue", response_model=IssueResponse, status_code=201)
def issue_book(payload: IssueRequest):
    borrow_date = library.issue_book(payload.member_id, payload.book_id)
    return IssueResponse(
        member_id=payload.member_id,
        book_id=payload.book_id,
        borrow_date=borrow_date,
        due_date=library.due_date(borrow_date),
    )


@app.post("/loans/return", response_model=ReturnResponse)
def return_book(payload: ReturnRequest):
    return_date, fine = library.return_book(payload.member_id, payload.book_id, payload.return_date)
    return ReturnResponse(
        member_id=payload.member_id,
        book_id=payload.book_id,
        return_date=return_date,
        fine=fine,
        currency=settings.currency,
    )


@app.get("/loans/overdue", response_model=List[OverdueModel])
def get_overdue(as_of: Optional[str] = Query(None, description="Report date; defaults to today")):
    return [
        OverdueModel(
            loan=LoanModel(**item.loan.to_dict()),
            due_date=item.due_date,
            days_overdue=item.days_overdue,
            fine=item.fine,
        )
        for item in library.overdue_loans(as_of)
    ]


# --- Reports ---
@app.get("/stats", response_model=StatsModel)
def get_library_stats():
    return library.get_statistics()
