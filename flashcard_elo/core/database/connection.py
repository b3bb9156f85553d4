"""
Database connection manager for the flashcard rating engine
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

from ...config import get_database_path, get_settings

logger = logging.getLogger(__name__)


def _adapt_date(val):
    return val.isoformat()


def _adapt_datetime(val):
    return val.isoformat()


def _convert_date(val):
    try:
        return date.fromisoformat(val.decode())
    except ValueError:
        # Try alternative formats
        date_str = val.decode()
        for fmt in ["%Y-%m-%d", "%Y-%m-%d %H:%M:%S"]:
            try:
                return datetime.strptime(date_str, fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Invalid date format: {date_str}") from None


def _convert_datetime(val):
    try:
        return datetime.fromisoformat(val.decode())
    except ValueError:
        # Try alternative formats
        datetime_str = val.decode()
        for fmt in [
            "%Y-%m-%d %H:%M:%S",
            "%Y-%m-%d %H:%M:%S.%f",
            "%Y-%m-%d",
        ]:
            try:
                return datetime.strptime(datetime_str, fmt)
            except ValueError:
                continue
        raise ValueError(f"Invalid datetime format: {datetime_str}") from None


sqlite3.register_adapter(date, _adapt_date)
sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("date", _convert_date)
sqlite3.register_converter("datetime", _convert_datetime)
sqlite3.register_converter("timestamp", _convert_datetime)


class DatabaseConnection:
    """Manages SQLite database connections, settings and transactions"""

    def __init__(self, db_path: str | None = None, busy_timeout_ms: int | None = None):
        self.db_path = db_path or get_database_path()
        if busy_timeout_ms is None:
            busy_timeout_ms = get_settings().database_busy_timeout_ms
        self.busy_timeout_ms = busy_timeout_ms
        self._ensure_database_directory()
        self._init_connection_settings()

    def _ensure_database_directory(self) -> None:
        """Ensure the database directory exists"""
        db_dir = Path(self.db_path).parent
        db_dir.mkdir(parents=True, exist_ok=True)

    def _init_connection_settings(self) -> None:
        """Initialize persistent database settings"""
        with self.get_connection() as conn:
            # WAL lets readers proceed while a review transaction writes
            conn.execute("PRAGMA journal_mode=WAL")

    @contextmanager
    def get_connection(self):
        """Get database connection with proper cleanup"""
        conn = None
        try:
            conn = sqlite3.connect(
                self.db_path,
                detect_types=sqlite3.PARSE_DECLTYPES,
                timeout=self.busy_timeout_ms / 1000,
            )
            conn.row_factory = sqlite3.Row  # Enable dict-like access
            conn.execute("PRAGMA foreign_keys=ON")

            yield conn
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        except Exception:
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

    @contextmanager
    def connection_scope(self, conn: sqlite3.Connection | None = None):
        """
        Reuse a caller's connection or open and commit a private one

        Repositories write through this scope so the same method works both
        standalone and inside a transaction opened with transaction().
        """
        if conn is not None:
            yield conn
            return

        with self.get_connection() as own_conn:
            yield own_conn
            own_conn.commit()

    @contextmanager
    def transaction(self):
        """
        Run a block as a single write transaction

        BEGIN IMMEDIATE takes the database write lock up front, so concurrent
        transactions are serialized and every read inside the block sees a
        consistent snapshot. Any exception rolls back all writes.
        """
        with self.get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except Exception:
                conn.rollback()
                raise
            conn.commit()

    def init_database(self) -> None:
        """Initialize database tables"""
        with self.get_connection() as conn:
            # Create tables
            self._create_tables(conn)
            # Bring older schemas up to date
            self._run_migrations(conn)
            # Create indexes
            self._create_indexes(conn)
            # Guard immutable records
            self._create_triggers(conn)
            conn.commit()

    def _create_tables(self, conn: sqlite3.Connection) -> None:
        """Create database tables"""
        tables = [
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                current_rating REAL NOT NULL DEFAULT 1200,
                last_session_timestamp TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS sentences (
                id TEXT PRIMARY KEY,
                text TEXT NOT NULL,
                translation TEXT,
                language TEXT,
                native_language TEXT NOT NULL DEFAULT 'en',
                difficulty_rating REAL NOT NULL DEFAULT 1200,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS cards (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                sentence_id TEXT,
                ease_factor REAL DEFAULT 2.5,
                interval INTEGER DEFAULT 0,
                repetitions INTEGER DEFAULT 0,
                next_due_date TIMESTAMP,
                last_reviewed_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                FOREIGN KEY (sentence_id) REFERENCES sentences(id) ON DELETE SET NULL
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                starting_rating REAL NOT NULL,
                ending_rating REAL,
                start_timestamp TIMESTAMP NOT NULL,
                end_timestamp TIMESTAMP,
                status TEXT NOT NULL DEFAULT 'ACTIVE'
                    CHECK (status IN ('ACTIVE', 'COMPLETED')),
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
            """,
            """
            CREATE TABLE IF NOT EXISTS review_logs (
                id TEXT PRIMARY KEY,
                card_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                session_id TEXT NOT NULL,
                rating INTEGER NOT NULL,
                streak_position INTEGER NOT NULL DEFAULT 0,
                elo_impact REAL NOT NULL DEFAULT 0,
                review_date TIMESTAMP NOT NULL,
                FOREIGN KEY (card_id) REFERENCES cards(id),
                FOREIGN KEY (user_id) REFERENCES users(id),
                FOREIGN KEY (session_id) REFERENCES sessions(id)
            )
            """,
        ]

        for table_sql in tables:
            conn.execute(table_sql)

    def _run_migrations(self, conn: sqlite3.Connection) -> None:
        """Run database migrations for schema updates"""
        cursor = conn.execute("PRAGMA table_info(sentences)")
        columns = {row[1] for row in cursor.fetchall()}

        if "language" not in columns:
            logger.info("Adding missing language column to sentences table")
            conn.execute("ALTER TABLE sentences ADD COLUMN language TEXT")

        if "native_language" not in columns:
            logger.info("Adding missing native_language column to sentences table")
            conn.execute(
                "ALTER TABLE sentences ADD COLUMN native_language TEXT NOT NULL DEFAULT 'en'"
            )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        """Create database indexes"""
        indexes = [
            # At most one ACTIVE session per user
            (
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_one_active "
                "ON sessions(user_id) WHERE status = 'ACTIVE'"
            ),
            "CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id)",
            (
                "CREATE INDEX IF NOT EXISTS idx_review_logs_session "
                "ON review_logs(session_id, review_date)"
            ),
            "CREATE INDEX IF NOT EXISTS idx_cards_user_id ON cards(user_id)",
            (
                "CREATE INDEX IF NOT EXISTS idx_sentences_language "
                "ON sentences(language, native_language)"
            ),
            "CREATE INDEX IF NOT EXISTS idx_cards_next_due_date ON cards(next_due_date)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def _create_triggers(self, conn: sqlite3.Connection) -> None:
        """Reject updates and deletes of review logs"""
        triggers = [
            """
            CREATE TRIGGER IF NOT EXISTS review_logs_no_update
            BEFORE UPDATE ON review_logs
            BEGIN
                SELECT RAISE(ABORT, 'review logs are immutable');
            END
            """,
            """
            CREATE TRIGGER IF NOT EXISTS review_logs_no_delete
            BEFORE DELETE ON review_logs
            BEGIN
                SELECT RAISE(ABORT, 'review logs are immutable');
            END
            """,
        ]

        for trigger_sql in triggers:
            conn.execute(trigger_sql)
