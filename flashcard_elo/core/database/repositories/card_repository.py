"""
Card repository for flashcard scheduling state
"""

import logging
import sqlite3
import uuid
from datetime import datetime

from ....spaced_repetition import CardSchedule
from ..connection import DatabaseConnection
from ..models import Card

logger = logging.getLogger(__name__)


class CardRepository:
    """Repository for card scheduling operations"""

    def __init__(self, db_connection: DatabaseConnection):
        self.db_connection = db_connection

    def create_card(
        self,
        user_id: str,
        sentence_id: str | None = None,
        card_id: str | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> Card | None:
        """Create a card that is due immediately"""
        card_id = card_id or uuid.uuid4().hex
        with self.db_connection.connection_scope(conn) as c:
            c.execute(
                """
                INSERT INTO cards (id, user_id, sentence_id, next_due_date, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (card_id, user_id, sentence_id, datetime.now(), datetime.now(), datetime.now()),
            )
            logger.info(f"Created card {card_id} for user {user_id}")
            return self.get_card(card_id, conn=c)

    def create_cards_for_sentences(
        self,
        user_id: str,
        sentence_ids: list[str],
        conn: sqlite3.Connection | None = None,
    ) -> list[Card]:
        """Create one due card per sentence"""
        with self.db_connection.connection_scope(conn) as c:
            return [
                self.create_card(user_id, sentence_id, conn=c)
                for sentence_id in sentence_ids
            ]

    def get_card(self, card_id: str, conn: sqlite3.Connection | None = None) -> Card | None:
        """Get card by ID"""
        with self.db_connection.connection_scope(conn) as c:
            row = c.execute("SELECT * FROM cards WHERE id = ?", (card_id,)).fetchone()
            return dict(row) if row else None

    def update_card(
        self,
        card_id: str,
        schedule: CardSchedule,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Store a card's new schedule"""
        with self.db_connection.connection_scope(conn) as c:
            cursor = c.execute(
                """
                UPDATE cards
                SET ease_factor = ?,
                    interval = ?,
                    repetitions = ?,
                    next_due_date = ?,
                    last_reviewed_at = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (
                    schedule.ease_factor,
                    schedule.interval,
                    schedule.repetitions,
                    schedule.next_due_date,
                    schedule.last_reviewed_at,
                    datetime.now(),
                    card_id,
                ),
            )
            return cursor.rowcount > 0

    def get_due_cards(
        self,
        user_id: str,
        now: datetime | None = None,
        limit: int = 10,
        conn: sqlite3.Connection | None = None,
    ) -> list[Card]:
        """Get cards due for review, most overdue first"""
        now = now or datetime.now()
        with self.db_connection.connection_scope(conn) as c:
            cursor = c.execute(
                """
                SELECT * FROM cards
                WHERE user_id = ? AND (next_due_date IS NULL OR next_due_date <= ?)
                ORDER BY next_due_date ASC
                LIMIT ?
                """,
                (user_id, now, limit),
            )
            return [dict(row) for row in cursor.fetchall()]
