"""
User repository for database operations
"""

import logging
import sqlite3
from datetime import datetime

from ....config import get_settings
from ..connection import DatabaseConnection
from ..models import User

logger = logging.getLogger(__name__)


def _check_rating(rating: float) -> None:
    """Reject ratings outside the configured bounds"""
    settings = get_settings()
    if not settings.min_rating <= rating <= settings.max_rating:
        raise ValueError(
            f"Rating must be between {settings.min_rating} and "
            f"{settings.max_rating}, got {rating}"
        )
logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user-related database operations"""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    def create_user(
        self,
        user_id: str,
        name: str,
        current_rating: float = 1200.0,
        conn: sqlite3.Connection | None = None,
    ) -> User | None:
        """Create a new user"""
        _check_rating(current_rating)
        with self.db_connection.connection_scope(conn) as c:
            c.execute(
                """
                INSERT INTO users (id, name, current_rating, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, name, current_rating, datetime.now(), datetime.now()),
            )
            logger.info(f"Created user {user_id} with rating {current_rating}")
            return self.get_user(user_id, conn=c)

    def get_user(self, user_id: str, conn: sqlite3.Connection | None = None) -> User | None:
        """Get user by ID"""
        with self.db_connection.connection_scope(conn) as c:
            row = c.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return dict(row) if row else None

    def update_user_rating(
        self,
        user_id: str,
        current_rating: float,
        last_session_timestamp: datetime,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Commit a finalized session rating to the user"""
        _check_rating(current_rating)
        with self.db_connection.connection_scope(conn) as c:
            cursor = c.execute(
                """
                UPDATE users
                SET current_rating = ?,
                    last_session_timestamp = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (current_rating, last_session_timestamp, datetime.now(), user_id),
            )
            return cursor.rowcount > 0
