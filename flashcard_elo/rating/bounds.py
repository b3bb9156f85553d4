"""
Rating bounds enforcement with dampening near the edges

Ratings are hard-capped to [MIN_RATING, MAX_RATING]. Changes that move a
rating toward a bound it is already close to are shrunk progressively, so
long chains of updates approach the bounds smoothly instead of slamming
into them.
"""

from dataclasses import dataclass
from enum import Enum

MIN_RATING = 800.0
MAX_RATING = 2000.0


class DampeningCurve(Enum):
    """Available dampening curves"""
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class _CurveShape:
    zone: float
    min_factor: float
    power: int


_SHAPES = {
    DampeningCurve.LINEAR: _CurveShape(zone=50.0, min_factor=0.1, power=1),
    # Quadratic over a wider zone
    DampeningCurve.EXPONENTIAL: _CurveShape(zone=100.0, min_factor=0.05, power=2),
}


@dataclass(frozen=True)
class BoundsEnforcer:
    """Clamps and dampens rating changes so ratings stay within bounds"""

    curve: DampeningCurve = DampeningCurve.LINEAR
    min_rating: float = MIN_RATING
    max_rating: float = MAX_RATING

    @property
    def dampening_zone(self) -> float:
        return _SHAPES[self.curve].zone

    def compute_bounded_change(self, current_rating: float, proposed_change: float) -> float:
        """
        Bound a proposed rating change

        Args:
            current_rating: Rating before the change
            proposed_change: Signed change produced by the rating pipeline

        Returns:
            The change to actually apply
        """
        shape = _SHAPES[self.curve]
        target_rating = current_rating + proposed_change

        if proposed_change == 0:
            return 0.0

        if current_rating <= self.min_rating and proposed_change < 0:
            return 0.0

        if current_rating >= self.max_rating and proposed_change > 0:
            return 0.0

        if target_rating > self.max_rating:
            return self.max_rating - current_rating

        if target_rating < self.min_rating:
            return self.min_rating - current_rating

        if (
            self.min_rating + shape.zone <= target_rating <= self.max_rating - shape.zone
        ):
            return proposed_change

        dampening_factor = 1.0

        if proposed_change > 0 and current_rating > self.max_rating - shape.zone:
            distance_from_bound = self.max_rating - current_rating
            dampening_factor = max(
                shape.min_factor, (distance_from_bound / shape.zone) ** shape.power
            )
        elif proposed_change < 0 and current_rating < self.min_rating + shape.zone:
            distance_from_bound = current_rating - self.min_rating
            dampening_factor = max(
                shape.min_factor, (distance_from_bound / shape.zone) ** shape.power
            )

        return proposed_change * dampening_factor


_linear = BoundsEnforcer()


def compute_bounded_change(current_rating: float, proposed_change: float) -> float:
    """Linear-dampening bounds enforcement used by the live pipeline"""
    return _linear.compute_bounded_change(current_rating, proposed_change)
