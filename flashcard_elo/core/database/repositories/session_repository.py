"""
Session repository for review sessions and their review logs
"""

import logging
import sqlite3
import uuid
from datetime import datetime

from ..connection import DatabaseConnection
from ..models import SESSION_ACTIVE, SESSION_COMPLETED, ReviewLog, Session, SessionSummary

logger = logging.getLogger(__name__)

_SUMMARY_SELECT = """
    SELECT s.*,
        COUNT(r.id) AS review_count,
        COALESCE(SUM(CASE WHEN r.rating = 5 THEN 1 ELSE 0 END), 0) AS correct_count
    FROM sessions s
    LEFT JOIN review_logs r ON r.session_id = s.id
"""


def _summary_from_row(row: sqlite3.Row) -> SessionSummary:
    summary = dict(row)
    total = summary["review_count"]
    summary["accuracy"] = summary["correct_count"] / total if total else 0.0
    return summary


class SessionRepository:
    """Repository for review session and review log operations"""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    def create_session(
        self,
        user_id: str,
        starting_rating: float,
        start_timestamp: datetime,
        conn: sqlite3.Connection | None = None,
    ) -> Session:
        """Create an ACTIVE session whose ending rating starts at the starting rating"""
        session_id = uuid.uuid4().hex
        with self.db_connection.connection_scope(conn) as c:
            c.execute(
                """
                INSERT INTO sessions (
                    id, user_id, starting_rating, ending_rating, start_timestamp, status
                )
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    user_id,
                    starting_rating,
                    starting_rating,
                    start_timestamp,
                    SESSION_ACTIVE,
                ),
            )
            logger.info(f"Started session {session_id} for user {user_id}")
            return self.get_session(session_id, conn=c)

    def get_session(
        self, session_id: str, conn: sqlite3.Connection | None = None
    ) -> Session | None:
        """Get session by ID regardless of status"""
        with self.db_connection.connection_scope(conn) as c:
            row = c.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
            return dict(row) if row else None

    def find_active_session(
        self,
        user_id: str,
        session_id: str | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> Session | None:
        """Find the user's ACTIVE session, optionally requiring a specific ID"""
        with self.db_connection.connection_scope(conn) as c:
            if session_id:
                cursor = c.execute(
                    "SELECT * FROM sessions WHERE id = ? AND user_id = ? AND status = ?",
                    (session_id, user_id, SESSION_ACTIVE),
                )
            else:
                cursor = c.execute(
                    "SELECT * FROM sessions WHERE user_id = ? AND status = ?",
                    (user_id, SESSION_ACTIVE),
                )
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_active_session_summary(
        self, user_id: str, conn: sqlite3.Connection | None = None
    ) -> SessionSummary | None:
        """Get the user's ACTIVE session with review counters"""
        with self.db_connection.connection_scope(conn) as c:
            row = c.execute(
                _SUMMARY_SELECT
                + " WHERE s.user_id = ? AND s.status = ? GROUP BY s.id",
                (user_id, SESSION_ACTIVE),
            ).fetchone()
            return _summary_from_row(row) if row else None

    def get_completed_sessions(
        self, user_id: str, limit: int = 20, conn: sqlite3.Connection | None = None
    ) -> list[SessionSummary]:
        """Get the user's completed sessions, newest first"""
        with self.db_connection.connection_scope(conn) as c:
            cursor = c.execute(
                _SUMMARY_SELECT
                + """ WHERE s.user_id = ? AND s.status = ?
                GROUP BY s.id
                ORDER BY s.end_timestamp DESC
                LIMIT ?""",
                (user_id, SESSION_COMPLETED, limit),
            )
            return [_summary_from_row(row) for row in cursor.fetchall()]

    def update_session_ending_rating(
        self,
        session_id: str,
        ending_rating: float,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Store the session's running rating"""
        with self.db_connection.connection_scope(conn) as c:
            cursor = c.execute(
                "UPDATE sessions SET ending_rating = ? WHERE id = ?",
                (ending_rating, session_id),
            )
            return cursor.rowcount > 0

    def complete_session(
        self,
        session_id: str,
        end_timestamp: datetime,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Mark an ACTIVE session as COMPLETED"""
        with self.db_connection.connection_scope(conn) as c:
            cursor = c.execute(
                """
                UPDATE sessions
                SET status = ?, end_timestamp = ?
                WHERE id = ? AND status = ?
                """,
                (SESSION_COMPLETED, end_timestamp, session_id, SESSION_ACTIVE),
            )
            return cursor.rowcount > 0

    # Review logs

    def create_review_log(
        self,
        card_id: str,
        user_id: str,
        session_id: str,
        rating: int,
        streak_position: int,
        elo_impact: float,
        review_date: datetime,
        conn: sqlite3.Connection | None = None,
    ) -> ReviewLog:
        """Append an immutable review record"""
        review_id = uuid.uuid4().hex
        with self.db_connection.connection_scope(conn) as c:
            c.execute(
                """
                INSERT INTO review_logs (
                    id, card_id, user_id, session_id, rating,
                    streak_position, elo_impact, review_date
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    review_id,
                    card_id,
                    user_id,
                    session_id,
                    rating,
                    streak_position,
                    elo_impact,
                    review_date,
                ),
            )
            row = c.execute("SELECT * FROM review_logs WHERE id = ?", (review_id,)).fetchone()
            return dict(row)

    def find_recent_review_logs(
        self,
        session_id: str,
        limit: int = 10,
        conn: sqlite3.Connection | None = None,
    ) -> list[ReviewLog]:
        """Get the session's latest review logs, most recent first"""
        with self.db_connection.connection_scope(conn) as c:
            cursor = c.execute(
                """
                SELECT * FROM review_logs
                WHERE session_id = ?
                ORDER BY review_date DESC, rowid DESC
                LIMIT ?
                """,
                (session_id, limit),
            )
            return [dict(row) for row in cursor.fetchall()]

    def count_review_logs(
        self, session_id: str, conn: sqlite3.Connection | None = None
    ) -> int:
        """Count review logs in a session"""
        with self.db_connection.connection_scope(conn) as c:
            row = c.execute(
                "SELECT COUNT(*) AS total FROM review_logs WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            return row["total"]
