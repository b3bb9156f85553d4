"""
Rating pipeline: base ELO change, streak and recency scaling, bounds
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..config import Settings, get_settings
from .bounds import BoundsEnforcer, DampeningCurve
from .elo import K_FACTOR, compute_base_change
from .recency import RecencyCurve, RecencyWeight
from .streak import StreakCurve, StreakMultiplier

logger = logging.getLogger(__name__)


@dataclass
class RatingUpdate:
    """Result of running one review through the rating pipeline"""

    base_change: float
    streak_multiplier: float
    recency_weight: float
    scaled_change: float
    bounded_change: float
    new_rating: float


@dataclass(frozen=True)
class RatingEngine:
    """Composes the rating calculations with one curve per stage"""

    k_factor: float = K_FACTOR
    streak: StreakMultiplier = field(default_factory=StreakMultiplier)
    recency: RecencyWeight = field(default_factory=RecencyWeight)
    bounds: BoundsEnforcer = field(default_factory=BoundsEnforcer)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RatingEngine":
        """Build an engine with the curves selected in settings"""
        settings = settings or get_settings()
        return cls(
            k_factor=settings.k_factor,
            streak=StreakMultiplier(StreakCurve(settings.streak_curve)),
            recency=RecencyWeight(RecencyCurve(settings.recency_curve)),
            bounds=BoundsEnforcer(
                DampeningCurve(settings.dampening_curve),
                min_rating=settings.min_rating,
                max_rating=settings.max_rating,
            ),
        )

    def compute(
        self,
        current_rating: float,
        opponent_rating: float,
        actual_score: int,
        streak_position: float,
        session_timestamp: datetime | int | float,
        current_timestamp: datetime | int | float,
    ) -> RatingUpdate:
        """Run a single review outcome through every stage"""
        base_change = compute_base_change(
            current_rating, opponent_rating, actual_score, self.k_factor
        )
        streak_multiplier = self.streak.compute_multiplier(streak_position)
        recency_weight = self.recency.compute_weight(session_timestamp, current_timestamp)

        scaled_change = base_change * streak_multiplier * recency_weight
        bounded_change = self.bounds.compute_bounded_change(current_rating, scaled_change)

        logger.debug(
            f"Rating update: base={base_change:.3f}, streak={streak_multiplier}, "
            f"recency={recency_weight:.3f}, scaled={scaled_change:.3f}, "
            f"bounded={bounded_change:.3f}"
        )

        return RatingUpdate(
            base_change=base_change,
            streak_multiplier=streak_multiplier,
            recency_weight=recency_weight,
            scaled_change=scaled_change,
            bounded_change=bounded_change,
            new_rating=self.apply(current_rating, bounded_change),
        )

    def apply(self, current_rating: float, bounded_change: float) -> float:
        """Apply a bounded change, absorbing floating point drift at the edges"""
        new_rating = current_rating + bounded_change
        if self.bounds.min_rating <= current_rating <= self.bounds.max_rating:
            new_rating = min(self.bounds.max_rating, max(self.bounds.min_rating, new_rating))
        return new_rating
