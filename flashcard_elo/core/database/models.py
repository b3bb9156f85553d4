"""
Database models for the flashcard rating engine
"""

from datetime import datetime
from typing import TypedDict

SESSION_ACTIVE = "ACTIVE"
SESSION_COMPLETED = "COMPLETED"


class User(TypedDict):
    """User model"""
    id: str
    name: str
    current_rating: float
    last_session_timestamp: datetime | None
    created_at: datetime
    updated_at: datetime


class Sentence(TypedDict):
    """Sentence model"""
    id: str
    text: str
    translation: str | None
    language: str | None
    native_language: str
    difficulty_rating: float
    created_at: datetime


class Card(TypedDict):
    """Card scheduling state"""
    id: str
    user_id: str
    sentence_id: str | None
    ease_factor: float
    interval: int
    repetitions: int
    next_due_date: datetime | None
    last_reviewed_at: datetime | None
    created_at: datetime
    updated_at: datetime


class Session(TypedDict):
    """Review session model"""
    id: str
    user_id: str
    starting_rating: float
    ending_rating: float | None
    start_timestamp: datetime
    end_timestamp: datetime | None
    status: str


class ReviewLog(TypedDict):
    """Immutable review record"""
    id: str
    card_id: str
    user_id: str
    session_id: str
    rating: int
    streak_position: int
    elo_impact: float
    review_date: datetime


class SessionSummary(TypedDict):
    """Session with review counters"""
    id: str
    user_id: str
    status: str
    starting_rating: float
    ending_rating: float | None
    start_timestamp: datetime
    end_timestamp: datetime | None
    review_count: int
    correct_count: int
    accuracy: float
