"""
Tests for review sessions: starting, submitting reviews and finalizing
"""

import os
import sqlite3
import tempfile
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest

from flashcard_elo.config import Settings
from flashcard_elo.core.database.database_manager import DatabaseManager
from flashcard_elo.core.session.session_manager import (
    ErrorCode,
    ReviewSubmission,
    SessionManager,
    current_streak,
)
from flashcard_elo.exceptions import InvalidScore
from flashcard_elo.rating.elo import compute_base_change

START = datetime(2024, 1, 15, 9, 0)


class FakeClock:
    """Clock that only moves when told to"""

    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def temp_db():
    """Create temporary database for testing"""
    temp_file = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    temp_file.close()

    db_manager = DatabaseManager(temp_file.name)
    db_manager.init_database()

    yield db_manager

    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(temp_file.name + suffix):
            os.unlink(temp_file.name + suffix)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def manager(temp_db, clock):
    return SessionManager(temp_db, settings=Settings(), clock=clock)


@pytest.fixture
def user(temp_db):
    return temp_db.create_user("user-1", "Ana")


@pytest.fixture
def card(temp_db, user):
    sentence = temp_db.create_sentence("Wo ist der Bahnhof?", "Where is the station?", 1000.0)
    return temp_db.create_card(user["id"], sentence["id"])


def submit(manager, session, card, rating, opponent_rating=1200.0):
    return manager.submit_review(
        ReviewSubmission(
            session_id=session["id"],
            card_id=card["id"],
            user_id=session["user_id"],
            rating=rating,
            opponent_rating=opponent_rating,
        )
    )


class TestCurrentStreak:
    """Test streak derivation from review logs"""

    def test_empty(self):
        assert current_streak([]) == 0

    def test_counts_leading_correct(self):
        logs = [{"rating": 5}, {"rating": 5}, {"rating": 0}, {"rating": 5}]
        assert current_streak(logs) == 2

    def test_latest_incorrect(self):
        assert current_streak([{"rating": 0}, {"rating": 5}]) == 0


class TestStartSession:
    """Test session creation"""

    def test_start_session(self, manager, user):
        result = manager.start_session(user["id"])

        assert result.ok
        session = result.data
        assert session["status"] == "ACTIVE"
        assert session["starting_rating"] == 1200.0
        assert session["ending_rating"] == 1200.0
        assert session["start_timestamp"] == START

    def test_unknown_user(self, manager):
        result = manager.start_session("ghost")

        assert not result.ok
        assert result.error is ErrorCode.USER_NOT_FOUND

    def test_single_active_session(self, manager, user, card):
        first = manager.start_session(user["id"])
        second = manager.start_session(user["id"])

        assert second.error is ErrorCode.ACTIVE_SESSION_EXISTS

        for _ in range(3):
            submit(manager, first.data, card, 5)
        assert manager.finalize_session(first.data["id"], user["id"]).ok

        third = manager.start_session(user["id"])
        assert third.ok
        assert third.data["id"] != first.data["id"]

    def test_starts_from_current_rating(self, temp_db, manager):
        temp_db.create_user("user-2", "Ben", 1650.0)

        assert manager.start_session("user-2").data["starting_rating"] == 1650.0

    def test_out_of_bounds_stored_rating_is_clamped(self, temp_db, manager, user, card):
        """A legacy rating above the cap starts the session at the cap"""
        with temp_db.get_connection() as conn:
            conn.execute("UPDATE users SET current_rating = 2500 WHERE id = ?", (user["id"],))
            conn.commit()

        session = manager.start_session(user["id"]).data
        assert session["starting_rating"] == 2000.0

        outcome = submit(manager, session, card, 0).data
        assert outcome.elo_impact < 0
        assert outcome.session_ending_rating == pytest.approx(2000.0 + outcome.elo_impact)

    def test_database_error(self, temp_db, manager, user):
        with patch.object(temp_db, "find_user", side_effect=sqlite3.OperationalError("locked")):
            result = manager.start_session(user["id"])

        assert result.error is ErrorCode.INTERNAL_ERROR

    def test_get_active_session(self, manager, user, card):
        assert manager.get_active_session(user["id"]).data is None

        session = manager.start_session(user["id"]).data
        submit(manager, session, card, 5)
        submit(manager, session, card, 0)

        summary = manager.get_active_session(user["id"]).data
        assert summary["id"] == session["id"]
        assert summary["review_count"] == 2
        assert summary["correct_count"] == 1
        assert summary["accuracy"] == pytest.approx(0.5)


class TestSubmitReview:
    """Test the per-review rating update"""

    @pytest.fixture
    def session(self, manager, user):
        return manager.start_session(user["id"]).data

    def test_correct_answer(self, manager, session, card):
        result = submit(manager, session, card, 5)

        assert result.ok
        outcome = result.data
        assert outcome.success
        assert outcome.session_id == session["id"]
        assert outcome.streak_position == 1
        assert outcome.elo_impact == pytest.approx(16.0)
        assert outcome.session_ending_rating == pytest.approx(1216.0)

    def test_incorrect_answer(self, manager, session, card):
        outcome = submit(manager, session, card, 0).data

        assert outcome.streak_position == 0
        assert outcome.elo_impact == pytest.approx(-16.0)
        assert outcome.session_ending_rating == pytest.approx(1184.0)

    def test_review_log_recorded(self, temp_db, manager, session, card, clock):
        outcome = submit(manager, session, card, 5).data

        logs = temp_db.find_recent_review_logs(session["id"])
        assert len(logs) == 1
        log = logs[0]
        assert log["id"] == outcome.review_id
        assert log["card_id"] == card["id"]
        assert log["user_id"] == session["user_id"]
        assert log["rating"] == 5
        assert log["streak_position"] == 1
        assert log["elo_impact"] == pytest.approx(outcome.elo_impact)
        assert log["review_date"] == clock.now

    def test_session_rating_accumulates(self, temp_db, manager, session, card):
        first = submit(manager, session, card, 5).data
        second = submit(manager, session, card, 5).data

        assert second.session_ending_rating > first.session_ending_rating
        stored = temp_db.find_session(session["id"])
        assert stored["ending_rating"] == pytest.approx(second.session_ending_rating)
        assert stored["starting_rating"] == 1200.0

    def test_streak_positions(self, manager, session, card):
        ratings = [5, 5, 5, 0, 5, 5]
        positions = [submit(manager, session, card, r).data.streak_position for r in ratings]

        assert positions == [1, 2, 3, 0, 1, 2]

    def test_streak_bonus_from_third_answer(self, manager, session, card):
        impacts = []
        for _ in range(3):
            outcome = submit(manager, session, card, 5).data
            impacts.append(outcome.elo_impact)

        # Third answer carries the 1.2 multiplier despite the higher rating
        assert impacts[2] > impacts[1]

    def test_streak_lookback_cap(self, manager, session, card):
        positions = [submit(manager, session, card, 5).data.streak_position for _ in range(13)]

        assert positions[:11] == list(range(1, 12))
        assert positions[11:] == [11, 11]

    def test_near_maximum_rating(self, temp_db, manager):
        """Strong user on a long streak against an easy sentence"""
        temp_db.create_user("strong", "Cleo", 1980.0)
        strong_card = temp_db.create_card("strong")
        session = manager.start_session("strong").data

        for _ in range(9):
            submit(manager, session, strong_card, 5, opponent_rating=1000.0)
        outcome = submit(manager, session, strong_card, 5, opponent_rating=1000.0).data

        assert outcome.streak_position == 10
        assert 0 < outcome.elo_impact < 30
        assert outcome.session_ending_rating <= 2000

    def test_recency_weight_from_session_start(self, manager, session, card, clock):
        clock.advance(days=2, hours=3)
        outcome = submit(manager, session, card, 5).data

        assert outcome.elo_impact == pytest.approx(16.0 * 0.95 ** 2)

    def test_opponent_rating_used(self, manager, session, card):
        outcome = submit(manager, session, card, 5, opponent_rating=1300.0).data

        assert outcome.elo_impact == pytest.approx(compute_base_change(1200, 1300, 1))

    def test_invalid_rating_raises(self, temp_db, manager, session, card):
        with pytest.raises(InvalidScore):
            submit(manager, session, card, 3)

        assert temp_db.count_review_logs(session["id"]) == 0

    def test_unknown_session(self, manager, session, card):
        result = manager.submit_review(
            ReviewSubmission(
                session_id="missing", card_id=card["id"], user_id=session["user_id"], rating=5
            )
        )

        assert result.error is ErrorCode.SESSION_NOT_FOUND

    def test_session_of_other_user(self, temp_db, manager, session, card):
        temp_db.create_user("user-2", "Ben")
        result = manager.submit_review(
            ReviewSubmission(
                session_id=session["id"], card_id=card["id"], user_id="user-2", rating=5
            )
        )

        assert result.error is ErrorCode.SESSION_NOT_FOUND

    def test_completed_session(self, manager, session, card):
        for _ in range(3):
            submit(manager, session, card, 5)
        manager.finalize_session(session["id"], session["user_id"])

        assert submit(manager, session, card, 5).error is ErrorCode.SESSION_NOT_FOUND

    def test_failed_rating_update_keeps_no_log(self, temp_db, manager, session, card):
        """Log and session rating are written together or not at all"""
        with patch.object(
            temp_db,
            "update_session_ending_rating",
            side_effect=sqlite3.OperationalError("disk I/O error"),
        ):
            result = submit(manager, session, card, 5)

        assert result.error is ErrorCode.INTERNAL_ERROR
        assert temp_db.count_review_logs(session["id"]) == 0
        assert temp_db.find_session(session["id"])["ending_rating"] == 1200.0


class TestFinalizeSession:
    """Test committing a session to the user"""

    @pytest.fixture
    def session(self, manager, user):
        return manager.start_session(user["id"]).data

    def test_insufficient_reviews(self, temp_db, manager, session, card):
        submit(manager, session, card, 5)
        submit(manager, session, card, 5)

        result = manager.finalize_session(session["id"], session["user_id"])

        assert result.error is ErrorCode.INSUFFICIENT_REVIEWS
        assert temp_db.find_session(session["id"])["status"] == "ACTIVE"
        assert temp_db.find_user(session["user_id"])["current_rating"] == 1200.0

    def test_finalize(self, temp_db, manager, session, card, clock):
        for rating in [5, 0, 5]:
            ending = submit(manager, session, card, rating).data.session_ending_rating
        clock.advance(minutes=10)

        result = manager.finalize_session(session["id"], session["user_id"])

        assert result.ok
        assert result.data.final_rating == pytest.approx(ending)
        assert result.data.end_timestamp == clock.now

        stored = temp_db.find_session(session["id"])
        assert stored["status"] == "COMPLETED"
        assert stored["end_timestamp"] == clock.now

        user = temp_db.find_user(session["user_id"])
        assert user["current_rating"] == pytest.approx(stored["ending_rating"])
        assert user["last_session_timestamp"] == clock.now

    def test_finalize_twice(self, manager, session, card):
        for _ in range(3):
            submit(manager, session, card, 5)

        assert manager.finalize_session(session["id"], session["user_id"]).ok
        second = manager.finalize_session(session["id"], session["user_id"])
        assert second.error is ErrorCode.SESSION_NOT_FOUND

    def test_finalize_other_users_session(self, temp_db, manager, session, card):
        for _ in range(3):
            submit(manager, session, card, 5)
        temp_db.create_user("user-2", "Ben")

        result = manager.finalize_session(session["id"], "user-2")

        assert result.error is ErrorCode.SESSION_NOT_FOUND

    def test_next_session_starts_from_final_rating(self, manager, session, card):
        for _ in range(3):
            submit(manager, session, card, 5)
        final = manager.finalize_session(session["id"], session["user_id"]).data

        next_session = manager.start_session(session["user_id"]).data
        assert next_session["starting_rating"] == pytest.approx(final.final_rating)

    def test_session_history(self, manager, session, card):
        assert manager.get_session_history(session["user_id"]).data == []

        for rating in [5, 5, 0]:
            submit(manager, session, card, rating)
        manager.finalize_session(session["id"], session["user_id"])

        history = manager.get_session_history(session["user_id"]).data
        assert len(history) == 1
        assert history[0]["id"] == session["id"]
        assert history[0]["status"] == "COMPLETED"
        assert history[0]["review_count"] == 3
        assert history[0]["correct_count"] == 2


class TestReviewCard:
    """Test reviewing a card end to end"""

    def test_starts_session_when_needed(self, manager, user, card):
        result = manager.review_card(card["id"], 5)

        assert result.ok
        assert result.data.review.streak_position == 1
        assert manager.get_active_session(user["id"]).data["id"] == result.data.review.session_id

    def test_reuses_active_session(self, manager, user, card):
        session = manager.start_session(user["id"]).data

        first = manager.review_card(card["id"], 5).data
        second = manager.review_card(card["id"], 5).data

        assert first.review.session_id == session["id"]
        assert second.review.session_id == session["id"]
        assert second.review.streak_position == 2

    def test_sentence_difficulty_is_opponent(self, manager, card):
        outcome = manager.review_card(card["id"], 5).data.review

        assert outcome.elo_impact == pytest.approx(compute_base_change(1200, 1000, 1))

    def test_card_without_sentence(self, temp_db, manager, user):
        bare = temp_db.create_card(user["id"])

        outcome = manager.review_card(bare["id"], 0).data.review

        assert outcome.elo_impact == pytest.approx(-16.0)

    def test_card_schedule_updated(self, temp_db, manager, card, clock):
        result = manager.review_card(card["id"], 5)

        stored = temp_db.find_card(card["id"])
        assert stored["repetitions"] == 1
        assert stored["interval"] == 1
        assert stored["ease_factor"] == pytest.approx(2.6)
        assert stored["last_reviewed_at"] == clock.now
        assert stored["next_due_date"] == result.data.schedule.next_due_date

    def test_failed_card_schedule(self, temp_db, manager, card):
        manager.review_card(card["id"], 5)
        manager.review_card(card["id"], 0)

        stored = temp_db.find_card(card["id"])
        assert stored["repetitions"] == 0
        assert stored["interval"] == 1

    def test_failed_schedule_write_keeps_no_review(self, temp_db, manager, user, card):
        """Review and card schedule are written together or not at all"""
        session = manager.start_session(user["id"]).data

        with patch.object(
            temp_db, "update_card", side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            result = manager.review_card(card["id"], 5)

        assert result.error is ErrorCode.INTERNAL_ERROR
        assert temp_db.count_review_logs(session["id"]) == 0
        assert temp_db.find_session(session["id"])["ending_rating"] == 1200.0
        assert temp_db.find_card(card["id"])["repetitions"] == 0

        retry = manager.review_card(card["id"], 5)
        assert retry.ok
        assert retry.data.review.streak_position == 1
        assert temp_db.count_review_logs(session["id"]) == 1

    def test_unknown_card(self, manager):
        assert manager.review_card("missing", 5).error is ErrorCode.CARD_NOT_FOUND

    def test_invalid_rating(self, temp_db, manager, card):
        with pytest.raises(InvalidScore):
            manager.review_card(card["id"], 4)

        assert temp_db.find_active_session(card["user_id"]) is None
