"""
Unified database manager that coordinates all repositories

The manager is the persistence gateway of the review pipeline. Every method
accepts an optional ``conn`` so a caller can compose several calls inside
one ``transaction()`` scope.
"""

import logging
import sqlite3
from datetime import datetime

from ...spaced_repetition import CardSchedule
from .connection import DatabaseConnection
from .models import Card, ReviewLog, Sentence, Session, SessionSummary, User
from .repositories.card_repository import CardRepository
from .repositories.sentence_repository import SentenceRepository
from .repositories.session_repository import SessionRepository
from .repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Unified database manager that coordinates all repositories"""

    def __init__(self, db_path: str | None = None, busy_timeout_ms: int | None = None):
        self.db_connection = DatabaseConnection(db_path, busy_timeout_ms)
        self.user_repo = UserRepository(self.db_connection)
        self.sentence_repo = SentenceRepository(self.db_connection)
        self.card_repo = CardRepository(self.db_connection)
        self.session_repo = SessionRepository(self.db_connection)

    def init_database(self) -> None:
        """Initialize database tables and indexes"""
        self.db_connection.init_database()

    def transaction(self):
        """Open an all-or-nothing write scope"""
        return self.db_connection.transaction()

    def get_connection(self):
        """Get database connection for direct SQL access in tests"""
        return self.db_connection.get_connection()

    # User methods
    def create_user(
        self,
        user_id: str,
        name: str,
        current_rating: float = 1200.0,
        conn: sqlite3.Connection | None = None,
    ) -> User | None:
        """Create a new user"""
        return self.user_repo.create_user(user_id, name, current_rating, conn=conn)

    def find_user(self, user_id: str, conn: sqlite3.Connection | None = None) -> User | None:
        """Get user by ID"""
        return self.user_repo.get_user(user_id, conn=conn)

    def update_user_rating(
        self,
        user_id: str,
        current_rating: float,
        last_session_timestamp: datetime,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Commit a session's ending rating to the user"""
        return self.user_repo.update_user_rating(
            user_id, current_rating, last_session_timestamp, conn=conn
        )

    # Sentence methods
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
        return self.sentence_repo.create_sentence(
            text,
            translation,
            difficulty_rating,
            sentence_id,
            language,
            native_language,
            conn=conn,
        )

    def find_sentence(
        self, sentence_id: str, conn: sqlite3.Connection | None = None
    ) -> Sentence | None:
        """Get sentence by ID"""
        return self.sentence_repo.get_sentence(sentence_id, conn=conn)

    # Card methods
    def create_card(
        self,
        user_id: str,
        sentence_id: str | None = None,
        card_id: str | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> Card | None:
        """Create a new card for a user"""
        return self.card_repo.create_card(user_id, sentence_id, card_id, conn=conn)

    def seed_first_cards(
        self,
        user_id: str,
        language: str,
        native_language: str = "en",
        amount: int = 5,
    ) -> list[Card]:
        """
        Give a user their first cards from existing sentences

        Picks up to ``amount`` sentences in the language pair that the user
        has no card for yet and creates a due card for each. Returns the new
        cards, an empty list when no sentence matches.
        """
        with self.transaction() as conn:
            sentences = self.sentence_repo.find_unassigned_sentences(
                user_id, language, native_language, amount, conn=conn
            )
            cards = self.card_repo.create_cards_for_sentences(
                user_id, [s["id"] for s in sentences], conn=conn
            )

        logger.info(
            f"Seeded {len(cards)} cards for user {user_id} ({language}/{native_language})"
        )
        return cards

    def find_card(self, card_id: str, conn: sqlite3.Connection | None = None) -> Card | None:
        """Get card by ID"""
        return self.card_repo.get_card(card_id, conn=conn)

    def update_card(
        self, card_id: str, schedule: CardSchedule, conn: sqlite3.Connection | None = None
    ) -> bool:
        """Store a card's new schedule"""
        return self.card_repo.update_card(card_id, schedule, conn=conn)

    def get_due_cards(
        self, user_id: str, now: datetime | None = None, limit: int = 10
    ) -> list[Card]:
        """Get cards due for review"""
        return self.card_repo.get_due_cards(user_id, now, limit)

    # Session methods
    def create_session(
        self,
        user_id: str,
        starting_rating: float,
        start_timestamp: datetime,
        conn: sqlite3.Connection | None = None,
    ) -> Session:
        """Create a new ACTIVE session"""
        return self.session_repo.create_session(
            user_id, starting_rating, start_timestamp, conn=conn
        )

    def find_session(
        self, session_id: str, conn: sqlite3.Connection | None = None
    ) -> Session | None:
        """Get session by ID"""
        return self.session_repo.get_session(session_id, conn=conn)

    def find_active_session(
        self,
        user_id: str,
        session_id: str | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> Session | None:
        """Find the user's ACTIVE session"""
        return self.session_repo.find_active_session(user_id, session_id, conn=conn)

    def get_active_session_summary(
        self, user_id: str, conn: sqlite3.Connection | None = None
    ) -> SessionSummary | None:
        """Get the user's ACTIVE session with review counters"""
        return self.session_repo.get_active_session_summary(user_id, conn=conn)

    def get_completed_sessions(self, user_id: str, limit: int = 20) -> list[SessionSummary]:
        """Get the user's completed sessions"""
        return self.session_repo.get_completed_sessions(user_id, limit)

    def update_session_ending_rating(
        self, session_id: str, ending_rating: float, conn: sqlite3.Connection | None = None
    ) -> bool:
        """Store the session's running rating"""
        return self.session_repo.update_session_ending_rating(
            session_id, ending_rating, conn=conn
        )

    def complete_session(
        self, session_id: str, end_timestamp: datetime, conn: sqlite3.Connection | None = None
    ) -> bool:
        """Mark a session COMPLETED"""
        return self.session_repo.complete_session(session_id, end_timestamp, conn=conn)

    # Review log methods
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
        """Append a review record"""
        return self.session_repo.create_review_log(
            card_id,
            user_id,
            session_id,
            rating,
            streak_position,
            elo_impact,
            review_date,
            conn=conn,
        )

    def find_recent_review_logs(
        self, session_id: str, limit: int = 10, conn: sqlite3.Connection | None = None
    ) -> list[ReviewLog]:
        """Get the session's latest review logs, most recent first"""
        return self.session_repo.find_recent_review_logs(session_id, limit, conn=conn)

    def count_review_logs(
        self, session_id: str, conn: sqlite3.Connection | None = None
    ) -> int:
        """Count review logs in a session"""
        return self.session_repo.count_review_logs(session_id, conn=conn)


# Global instance
_db_manager = None


def get_db_manager(db_path: str | None = None) -> DatabaseManager:
    """Get global database manager instance"""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager(db_path)
    return _db_manager
