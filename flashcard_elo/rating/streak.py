"""
Streak bonus applied to rating changes
"""

import math
from dataclasses import dataclass
from enum import Enum

from ..exceptions import InvalidStreak

STREAK_THRESHOLD = 3
BASE_STREAK_MULTIPLIER = 1.2
PROGRESSIVE_STEP = 0.05
PROGRESSIVE_MAX_BONUS = 0.3


class StreakCurve(Enum):
    """Available streak bonus curves"""
    FLAT = "flat"
    PROGRESSIVE = "progressive"


def _floor_position(streak_position: float) -> int:
    if isinstance(streak_position, bool) or not isinstance(streak_position, (int, float)):
        raise InvalidStreak(f"streak_position must be a number, got {streak_position!r}")
    if not math.isfinite(streak_position) or streak_position < 0:
        raise InvalidStreak(f"streak_position must be non-negative, got {streak_position}")
    return math.floor(streak_position)


@dataclass(frozen=True)
class StreakMultiplier:
    """Multiplier for consecutive correct answers within a session"""

    curve: StreakCurve = StreakCurve.FLAT

    def compute_multiplier(self, streak_position: float) -> float:
        position = _floor_position(streak_position)

        if position < STREAK_THRESHOLD:
            return 1.0

        if self.curve is StreakCurve.PROGRESSIVE:
            bonus = min(PROGRESSIVE_STEP * (position - STREAK_THRESHOLD), PROGRESSIVE_MAX_BONUS)
            return BASE_STREAK_MULTIPLIER + bonus

        return BASE_STREAK_MULTIPLIER


_flat = StreakMultiplier()


def compute_multiplier(streak_position: float) -> float:
    """Flat-plateau streak multiplier used by the live pipeline"""
    return _flat.compute_multiplier(streak_position)
