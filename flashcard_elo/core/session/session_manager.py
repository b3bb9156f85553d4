"""
Session management for the flashcard rating engine

A session is the unit of rating bookkeeping: it snapshots the user's rating
when it starts, accumulates rating changes review by review, and hands the
final rating back to the user when it is finalized. Each operation runs as a
single database transaction, so a failed review never leaves a log without
its rating update or the other way round.
"""

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from ...config import Settings, get_settings
from ...rating.elo import CORRECT_RATING, DEFAULT_RATING, score_from_rating
from ...rating.engine import RatingEngine
from ...spaced_repetition import CardSchedule, SpacedRepetitionSystem, get_srs_system
from ...utils import format_rating, log_execution_time
from ..database.database_manager import DatabaseManager
from ..database.models import Card, ReviewLog, Session, SessionSummary

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Tagged failures returned to callers"""
    USER_NOT_FOUND = "user-not-found"
    SESSION_NOT_FOUND = "session-not-found"
    CARD_NOT_FOUND = "card-not-found"
    ACTIVE_SESSION_EXISTS = "active-session-exists"
    INSUFFICIENT_REVIEWS = "insufficient-reviews"
    INTERNAL_ERROR = "internal-error"


@dataclass
class ServiceResult(Generic[T]):
    """Either data or an error tag"""

    data: T | None = None
    error: ErrorCode | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ReviewSubmission:
    """One answered card within a session"""

    session_id: str
    card_id: str
    user_id: str
    rating: int  # 0 or 5
    opponent_rating: float = DEFAULT_RATING


@dataclass
class ReviewOutcome:
    """Result of a submitted review"""

    session_id: str
    review_id: str
    streak_position: int
    elo_impact: float
    session_ending_rating: float
    success: bool = True


@dataclass
class FinalizedSession:
    """Result of finalizing a session"""

    session_id: str
    final_rating: float
    end_timestamp: datetime


@dataclass
class CardReviewResult:
    """Rating and scheduling outcome of reviewing a card"""

    review: ReviewOutcome
    schedule: CardSchedule


class _Abort(Exception):
    """Aborts the surrounding transaction with an error tag"""

    def __init__(self, code: ErrorCode):
        super().__init__(code.value)
        self.code = code


def current_streak(review_logs: list[ReviewLog]) -> int:
    """Count correct answers at the head of a most-recent-first log list"""
    streak = 0
    for review in review_logs:
        if review["rating"] != CORRECT_RATING:
            break
        streak += 1
    return streak


def _session_rating(session: Session) -> float:
    if session["ending_rating"] is not None:
        return session["ending_rating"]
    return session["starting_rating"]


class SessionManager:
    """Coordinates review sessions, the rating pipeline and card scheduling"""

    def __init__(
        self,
        db_manager: DatabaseManager,
        rating_engine: RatingEngine | None = None,
        srs_system: SpacedRepetitionSystem | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db_manager = db_manager
        self.settings = settings or get_settings()
        self.rating_engine = rating_engine or RatingEngine.from_settings(self.settings)
        self.srs_system = srs_system or get_srs_system()
        self.clock = clock or datetime.now

    def start_session(self, user_id: str) -> ServiceResult[Session]:
        """Start a new ACTIVE session seeded with the user's current rating"""
        now = self.clock()
        try:
            with self.db_manager.transaction() as conn:
                user = self.db_manager.find_user(user_id, conn=conn)
                if not user:
                    raise _Abort(ErrorCode.USER_NOT_FOUND)

                if self.db_manager.find_active_session(user_id, conn=conn):
                    raise _Abort(ErrorCode.ACTIVE_SESSION_EXISTS)

                session = self.db_manager.create_session(
                    user_id, self._clamp_rating(user["current_rating"]), now, conn=conn
                )
        except _Abort as e:
            logger.info(f"Cannot start session for user {user_id}: {e.code.value}")
            return ServiceResult(error=e.code)
        except sqlite3.IntegrityError as e:
            # Lost a race against another start for the same user
            logger.warning(f"Concurrent session start for user {user_id}: {e}")
            return ServiceResult(error=ErrorCode.ACTIVE_SESSION_EXISTS)
        except sqlite3.Error as e:
            logger.error(f"Error starting session for user {user_id}: {e}")
            return ServiceResult(error=ErrorCode.INTERNAL_ERROR)

        return ServiceResult(data=session)

    def _clamp_rating(self, rating: float) -> float:
        bounds = self.rating_engine.bounds
        clamped = min(bounds.max_rating, max(bounds.min_rating, rating))
        if clamped != rating:
            logger.warning(
                f"Stored rating {format_rating(rating)} is out of bounds, "
                f"starting from {format_rating(clamped)}"
            )
        return clamped

    def get_active_session(self, user_id: str) -> ServiceResult[SessionSummary]:
        """Get the user's ACTIVE session summary, data is None when there is none"""
        try:
            return ServiceResult(data=self.db_manager.get_active_session_summary(user_id))
        except sqlite3.Error as e:
            logger.error(f"Error getting active session for user {user_id}: {e}")
            return ServiceResult(error=ErrorCode.INTERNAL_ERROR)

    def get_session_history(
        self, user_id: str, limit: int = 20
    ) -> ServiceResult[list[SessionSummary]]:
        """Get the user's completed sessions, newest first"""
        try:
            return ServiceResult(data=self.db_manager.get_completed_sessions(user_id, limit))
        except sqlite3.Error as e:
            logger.error(f"Error getting session history for user {user_id}: {e}")
            return ServiceResult(error=ErrorCode.INTERNAL_ERROR)

    @log_execution_time
    def submit_review(self, submission: ReviewSubmission) -> ServiceResult[ReviewOutcome]:
        """
        Record a review and move the session rating

        Raises:
            InvalidScore: rating is not 0 or 5
        """
        score = score_from_rating(submission.rating)
        now = self.clock()

        try:
            with self.db_manager.transaction() as conn:
                outcome = self._apply_review(conn, submission, score, now)
        except _Abort as e:
            logger.info(
                f"Review rejected for session {submission.session_id}: {e.code.value}"
            )
            return ServiceResult(error=e.code)
        except sqlite3.Error as e:
            logger.error(f"Error adding review to session {submission.session_id}: {e}")
            return ServiceResult(error=ErrorCode.INTERNAL_ERROR)

        return ServiceResult(data=outcome)

    def _apply_review(
        self,
        conn: sqlite3.Connection,
        submission: ReviewSubmission,
        score: int,
        now: datetime,
    ) -> ReviewOutcome:
        session = self.db_manager.find_active_session(
            submission.user_id, submission.session_id, conn=conn
        )
        if not session:
            raise _Abort(ErrorCode.SESSION_NOT_FOUND)

        recent_reviews = self.db_manager.find_recent_review_logs(
            session["id"], self.settings.streak_lookback, conn=conn
        )
        streak_position = current_streak(recent_reviews) + 1 if score else 0

        session_rating = _session_rating(session)
        update = self.rating_engine.compute(
            session_rating,
            submission.opponent_rating,
            score,
            streak_position,
            session["start_timestamp"],
            now,
        )

        review_log = self.db_manager.create_review_log(
            card_id=submission.card_id,
            user_id=submission.user_id,
            session_id=session["id"],
            rating=submission.rating,
            streak_position=streak_position,
            elo_impact=update.scaled_change,
            review_date=now,
            conn=conn,
        )
        self.db_manager.update_session_ending_rating(
            session["id"], update.new_rating, conn=conn
        )

        logger.info(
            f"Review {review_log['id']} in session {session['id']}: "
            f"rating={submission.rating}, streak={streak_position}, "
            f"impact={update.scaled_change:.2f}, "
            f"{format_rating(session_rating)} -> {format_rating(update.new_rating)}"
        )

        return ReviewOutcome(
            session_id=session["id"],
            review_id=review_log["id"],
            streak_position=streak_position,
            elo_impact=update.scaled_change,
            session_ending_rating=update.new_rating,
        )

    @log_execution_time
    def finalize_session(self, session_id: str, user_id: str) -> ServiceResult[FinalizedSession]:
        """Complete a session and commit its ending rating to the user"""
        now = self.clock()
        try:
            with self.db_manager.transaction() as conn:
                session = self.db_manager.find_active_session(user_id, session_id, conn=conn)
                if not session:
                    raise _Abort(ErrorCode.SESSION_NOT_FOUND)

                review_count = self.db_manager.count_review_logs(session_id, conn=conn)
                if review_count < self.settings.min_reviews_to_finalize:
                    raise _Abort(ErrorCode.INSUFFICIENT_REVIEWS)

                final_rating = _session_rating(session)
                self.db_manager.complete_session(session_id, now, conn=conn)
                self.db_manager.update_user_rating(user_id, final_rating, now, conn=conn)
        except _Abort as e:
            logger.info(f"Cannot finalize session {session_id}: {e.code.value}")
            return ServiceResult(error=e.code)
        except sqlite3.Error as e:
            logger.error(f"Error finalizing session {session_id}: {e}")
            return ServiceResult(error=ErrorCode.INTERNAL_ERROR)

        logger.info(
            f"Finalized session {session_id} for user {user_id} "
            f"after {review_count} reviews, rating {format_rating(final_rating)}"
        )
        return ServiceResult(
            data=FinalizedSession(
                session_id=session_id, final_rating=final_rating, end_timestamp=now
            )
        )

    def review_card(self, card_id: str, rating: int) -> ServiceResult[CardReviewResult]:
        """
        Review a card inside the owner's active session and reschedule it

        Starts a session when the user has none. The sentence behind the card
        supplies the opponent rating. The review log, the session rating and
        the card schedule are written in one transaction, so a failed review
        can be retried without counting twice.

        Raises:
            InvalidScore: rating is not 0 or 5
        """
        score = score_from_rating(rating)

        try:
            card = self.db_manager.find_card(card_id)
        except sqlite3.Error as e:
            logger.error(f"Error loading card {card_id}: {e}")
            return ServiceResult(error=ErrorCode.INTERNAL_ERROR)
        if not card:
            return ServiceResult(error=ErrorCode.CARD_NOT_FOUND)

        user_id = card["user_id"]
        session_result = self._get_or_start_session(user_id)
        if not session_result.ok:
            return ServiceResult(error=session_result.error)
        if not session_result.data:
            return ServiceResult(error=ErrorCode.SESSION_NOT_FOUND)

        now = self.clock()
        try:
            with self.db_manager.transaction() as conn:
                # Re-read under the write lock so concurrent reviews of the
                # same card schedule from the latest state
                card = self.db_manager.find_card(card_id, conn=conn)
                if not card:
                    raise _Abort(ErrorCode.CARD_NOT_FOUND)

                submission = ReviewSubmission(
                    session_id=session_result.data["id"],
                    card_id=card_id,
                    user_id=user_id,
                    rating=rating,
                    opponent_rating=self._opponent_rating(card, conn),
                )
                review = self._apply_review(conn, submission, score, now)

                schedule = self.srs_system.schedule_next_review(card, rating, now)
                self.db_manager.update_card(card_id, schedule, conn=conn)
        except _Abort as e:
            logger.info(f"Review of card {card_id} rejected: {e.code.value}")
            return ServiceResult(error=e.code)
        except sqlite3.Error as e:
            logger.error(f"Error reviewing card {card_id}: {e}")
            return ServiceResult(error=ErrorCode.INTERNAL_ERROR)

        return ServiceResult(data=CardReviewResult(review=review, schedule=schedule))

    def _opponent_rating(self, card: Card, conn: sqlite3.Connection) -> float:
        if card["sentence_id"]:
            sentence = self.db_manager.find_sentence(card["sentence_id"], conn=conn)
            if sentence:
                return sentence["difficulty_rating"]
        return self.settings.default_rating

    def _get_or_start_session(self, user_id: str) -> ServiceResult[Session]:
        active = self.get_active_session(user_id)
        if not active.ok or active.data:
            return active

        started = self.start_session(user_id)
        if started.error is ErrorCode.ACTIVE_SESSION_EXISTS:
            # Another request started it first
            return self.get_active_session(user_id)
        return started
