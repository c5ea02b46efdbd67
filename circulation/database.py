import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from circulation.config import settings
from circulation.exceptions import BusyError, LibraryError, StorageUnavailableError

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


class Database:
    """Explicit handle on the SQLite file holding books, members and loans.

    Reads use a short-lived connection each. Writes go through
    ``transaction()``, which serialises writers on a per-handle lock and a
    ``BEGIN IMMEDIATE`` SQLite lock. Neither wait blocks for long: when a
    lock cannot be taken within the configured timeout the call fails with
    BusyError and the caller may retry.

    ``:memory:`` handles run in shared-cache mode, which locks whole tables:
    while a writer holds a transaction, reads from other threads fail with
    BusyError instead of running alongside it. Use a database file when
    several threads share one handle.
    """

    def __init__(self, db_file: Optional[str] = None, lock_timeout: Optional[float] = None,
                 busy_timeout: Optional[float] = None) -> None:
        self.db_file = db_file or settings.database_file
        self.lock_timeout = settings.lock_timeout if lock_timeout is None else lock_timeout
        self.busy_timeout = settings.busy_timeout if busy_timeout is None else busy_timeout

        # A private in-memory database shared by this handle's connections only
        self._memory = self.db_file == MEMORY
        self._target = f"file:circulation_{uuid.uuid4().hex}?mode=memory&cache=shared" if self._memory else self.db_file
        self._keeper: Optional[sqlite3.Connection] = None

        self._write_lock = threading.RLock()
        self._local = threading.local()
        self._open = False

    # ------------------------- Lifecycle ------------------------- #
    def open(self) -> "Database":
        if self._open:
            return self
        if self._memory:
            # The in-memory database lives as long as one connection stays open
            self._keeper = self._connect()
        self._open = True
        self.create_tables()
        logger.debug("Database opened: %s", self.db_file)
        return self

    def close(self) -> None:
        if not self._open:
            return
        self._open = False
        if self._keeper is not None:
            self._keeper.close()
            self._keeper = None
        logger.debug("Database closed: %s", self.db_file)

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------- Connections ------------------------- #
    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                self._target,
                uri=self._memory,
                timeout=self.busy_timeout,
                isolation_level=None,  # transactions are managed explicitly
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            logger.error("Could not open database %s: %s", self.db_file, e)
            raise StorageUnavailableError(f"Could not open database {self.db_file}: {e}") from e
        conn.row_factory = sqlite3.Row
        if not self._memory:
            # WAL lets readers run alongside the single writer
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def _ensure_open(self) -> None:
        if not self._open:
            raise StorageUnavailableError("Database is not open.")

    @staticmethod
    def _translate(error: sqlite3.Error) -> LibraryError:
        text = str(error).lower()
        if isinstance(error, sqlite3.OperationalError) and ("locked" in text or "busy" in text):
            logger.warning("Database contention: %s", error)
            return BusyError()
        logger.error("Storage failure: %s", error)
        return StorageUnavailableError(f"Storage failure: {error}")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Connection for reads; joins the current transaction on this thread if any.

        On a file database reads run alongside a writer (WAL). On a
        ``:memory:`` database they raise BusyError while another thread writes.
        """
        current = getattr(self._local, "conn", None)
        if current is not None:
            yield current
            return
        self._ensure_open()
        conn = self._connect()
        try:
            yield conn
        except sqlite3.Error as e:
            raise self._translate(e) from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block as one atomic unit.

        Nested calls on the same thread join the outer transaction, so only
        the outermost block commits. Any exception rolls back every write
        made since the outermost block started.
        """
        current = getattr(self._local, "conn", None)
        if current is not None:
            yield current
            return

        self._ensure_open()
        if not self._write_lock.acquire(timeout=self.lock_timeout):
            logger.warning("Write lock not acquired within %.2fs", self.lock_timeout)
            raise BusyError()
        conn = None
        try:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise self._translate(e) from e
            self._local.conn = conn
            try:
                yield conn
            except sqlite3.Error as e:
                self._rollback(conn)
                raise self._translate(e) from e
            except BaseException:
                self._rollback(conn)
                raise
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback(conn)
                raise self._translate(e) from e
        finally:
            self._local.conn = None
            if conn is not None:
                conn.close()
            self._write_lock.release()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
            logger.warning("Transaction rolled back")

    # ------------------------- Schema ------------------------- #
    def create_tables(self) -> None:
        """Creates the tables and indexes if they do not exist yet."""
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS books (
                    book_id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    author TEXT,
                    total_copies INTEGER NOT NULL CHECK(total_copies >= 0),
                    available_copies INTEGER NOT NULL,
                    active INTEGER NOT NULL DEFAULT 1,
                    download_link TEXT,
                    download_limit INTEGER,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CHECK(available_copies >= 0 AND available_copies <= total_copies)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS members (
                    member_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT,
                    phone TEXT,
                    active INTEGER NOT NULL DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)
            # Loans outlive their book and member rows, so no foreign keys here
            conn.execute("""
                CREATE TABLE IF NOT EXISTS loans (
                    record_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    member_id TEXT NOT NULL,
                    book_id TEXT NOT NULL,
                    borrow_date TEXT NOT NULL,
                    return_date TEXT,
                    returned INTEGER NOT NULL DEFAULT 0
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_loans_member ON loans(member_id, returned)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_loans_book ON loans(book_id, returned)")
            # At most one open loan per (member, book)
            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_loans_one_open ON loans(member_id, book_id) WHERE returned = 0"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
