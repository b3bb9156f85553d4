"""
Sentence repository for database operations
"""

import logging
import sqlite3
import uuid
from datetime import datetime

from ..connection import DatabaseConnection
from ..models import Sentence

logger = logging.getLogger(__name__)


class SentenceRepository:
    """Repository for practice sentences and their difficulty ratings"""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    def create_sentence(
        self,
        text: str,
        translation: str | None = None,
        difficulty_rating: float = 1200.0,
        sentence_id: str | None = None,
        language: str | None = None,
        native_language: str = "en",
        conn: sqlite3.Connection | None = None,
    ) -> Sentence | None:
        """Create a new sentence"""
        sentence_id = sentence_id or uuid.uuid4().hex
        with self.db_connection.connection_scope(conn) as c:
            c.execute(
                """
                INSERT INTO sentences (
                    id, text, translation, language, native_language,
                    difficulty_rating, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    sentence_id,
                    text,
                    translation,
                    language,
                    native_language,
                    difficulty_rating,
                    datetime.now(),
                ),
            )
            return self.get_sentence(sentence_id, conn=c)

    def find_unassigned_sentences(
        self,
        user_id: str,
        language: str,
        native_language: str = "en",
        limit: int = 5,
        conn: sqlite3.Connection | None = None,
    ) -> list[Sentence]:
        """Get sentences in a language pair that the user has no card for yet"""
        with self.db_connection.connection_scope(conn) as c:
            cursor = c.execute(
                """
                SELECT * FROM sentences s
                WHERE s.language = ? AND s.native_language = ?
                AND NOT EXISTS (
                    SELECT 1 FROM cards c
                    WHERE c.sentence_id = s.id AND c.user_id = ?
                )
                ORDER BY s.created_at, s.rowid
                LIMIT ?
                """,
                (language, native_language, user_id, limit),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_sentence(
        self, sentence_id: str, conn: sqlite3.Connection | None = None
    ) -> Sentence | None:
        """Get sentence by ID"""
        with self.db_connection.connection_scope(conn) as c:
            row = c.execute(
                "SELECT * FROM sentences WHERE id = ?", (sentence_id,)
            ).fetchone()
            return dict(row) if row else None
