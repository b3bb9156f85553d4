"""
Spaced Repetition System implementation using SuperMemo 2 algorithm
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from .config import get_settings

logger = logging.getLogger(__name__)

SUCCESS_THRESHOLD = 3


@dataclass
class CardSchedule:
    """New scheduling state of a card after a review"""

    ease_factor: float
    interval: int
    next_due_date: datetime
    repetitions: int
    last_reviewed_at: datetime | None


class SpacedRepetitionSystem:
    """SuperMemo 2 spaced repetition algorithm implementation"""

    def __init__(self):
        settings = get_settings()
        self.default_easiness = settings.default_easiness_factor
        self.min_easiness = settings.min_easiness_factor
        self.max_easiness = settings.max_easiness_factor
        self.max_interval = settings.max_interval_days

    def schedule_next_review(
        self,
        card: dict[str, Any],
        rating: float,
        now: datetime | None = None,
    ) -> CardSchedule:
        """
        Calculate the next schedule of a card

        Args:
            card: Card scheduling state (ease_factor, interval, repetitions,
                next_due_date)
            rating: Recall quality on a 0-5 scale, 3 and above is a success
            now: Time of the review (defaults to now)

        Returns:
            CardSchedule with the new parameters
        """
        if not 0 <= rating <= 5:
            raise ValueError(f"Rating must be between 0 and 5, got {rating}")

        if now is None:
            now = datetime.now()

        is_successful = rating >= SUCCESS_THRESHOLD
        repetitions = card.get("repetitions") or 0
        new_repetitions = repetitions + 1 if is_successful else 0

        current_easiness = card.get("ease_factor") or self.default_easiness
        new_easiness = self.calculate_new_ease_factor(current_easiness, rating)
        new_interval = self.calculate_next_interval(card, rating)

        current_due_date = card.get("next_due_date") or now
        next_due_date = current_due_date + timedelta(days=new_interval)

        logger.info(
            f"Scheduled card {card.get('id')}: rating={rating}, "
            f"interval={new_interval}, ef={new_easiness}, next={next_due_date}"
        )

        return CardSchedule(
            ease_factor=new_easiness,
            interval=new_interval,
            next_due_date=next_due_date,
            repetitions=new_repetitions,
            last_reviewed_at=now,
        )

    def calculate_new_ease_factor(self, current_easiness: float, rating: float) -> float:
        """Calculate new easiness factor based on rating"""
        quality_gap = 5 - rating
        new_easiness = current_easiness + (0.1 - quality_gap * (0.08 + quality_gap * 0.02))

        # Clamp to valid range
        new_easiness = max(self.min_easiness, min(self.max_easiness, new_easiness))
        return round(new_easiness, 2)

    def calculate_next_interval(self, card: dict[str, Any], rating: float) -> int:
        """Calculate new interval in days based on SuperMemo 2 algorithm"""
        if rating < SUCCESS_THRESHOLD:
            return 1

        repetitions = card.get("repetitions") or 0
        if repetitions == 0:
            return 1
        if repetitions == 1:
            return 6

        current_interval = card.get("interval") or 1
        easiness = card.get("ease_factor") or self.default_easiness
        new_interval = max(1, round(current_interval * easiness))

        # Cap maximum interval
        return min(self.max_interval, new_interval)

    def get_initial_schedule(self, now: datetime | None = None) -> CardSchedule:
        """Get initial schedule for a new card"""
        if now is None:
            now = datetime.now()
        return CardSchedule(
            ease_factor=self.default_easiness,
            interval=0,
            next_due_date=now,
            repetitions=0,
            last_reviewed_at=None,
        )


# Global instance
_srs_system = None


def get_srs_system() -> SpacedRepetitionSystem:
    """Get global SRS system instance"""
    global _srs_system
    if _srs_system is None:
        _srs_system = SpacedRepetitionSystem()
    return _srs_system


def schedule_next_review(
    card: dict[str, Any],
    rating: float,
    now: datetime | None = None,
) -> CardSchedule:
    """Convenience function to schedule a card with the global SRS system"""
    return get_srs_system().schedule_next_review(card, rating, now)
