"""SQLite record store shared by the rate limiter, image index and result caches."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ..utils.config import settings
from ..utils.error_handler import RecordStoreError
from ..utils.log import get_logger

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS scan_rate_limits (
        user_identifier TEXT PRIMARY KEY,
        scan_count INTEGER NOT NULL,
        window_start REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS card_images (
        card_key TEXT PRIMARY KEY,
        storage_path TEXT NOT NULL,
        image_url TEXT NOT NULL,
        mime_type TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS scan_cache (
        image_digest TEXT NOT NULL,
        game_hint TEXT NOT NULL DEFAULT '',
        result_json TEXT NOT NULL,
        created_at TEXT NOT NULL,
        expires_at TEXT NOT NULL,
        PRIMARY KEY(image_digest, game_hint)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS price_cache (
        card_key TEXT PRIMARY KEY,
        quote_json TEXT NOT NULL,
        created_at TEXT NOT NULL,
        expires_at TEXT NOT NULL
    )
    """,
)


class RecordStore:
    """Process-external key/record store.

    Every worker process opens its own connections to the same database file,
    so counters and indexes are shared across instances. Writers serialize on
    ``BEGIN IMMEDIATE``.
    """

    def __init__(self, db_path: Optional[str] = None, busy_timeout_s: Optional[float] = None):
        self.logger = get_logger(__name__)
        self.db_path = Path(db_path or settings.DB_PATH)
        self.busy_timeout_s = busy_timeout_s if busy_timeout_s is not None else settings.DB_BUSY_TIMEOUT_S
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self):
        """Initialize SQLite database with required tables."""
        try:
            with self.connect() as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                for statement in SCHEMA:
                    conn.execute(statement)
            self.logger.info("Record store initialized", db_path=str(self.db_path))
        except sqlite3.Error as e:
            self.logger.error("Error initializing record store", error=str(e))
            raise RecordStoreError("Could not initialize record store", details={"db_path": str(self.db_path)}) from e

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Autocommit connection; closed on exit."""
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout_s, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Exclusive write transaction, rolled back on any exception."""
        with self.connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")
