"""
Recency weighting of rating changes

Reviews in a session that started long ago count for less. Timestamps are
accepted as datetime objects or epoch milliseconds and normalized to epoch
milliseconds before any arithmetic.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ..exceptions import InvalidTimestamp

MS_PER_DAY = 24 * 60 * 60 * 1000
DAILY_DECAY = 0.95
GRANULAR_EPSILON_DAYS = 0.01


class RecencyCurve(Enum):
    """Available recency decay curves"""
    DAILY = "daily"  # whole-day steps, full weight on the first day
    GRANULAR = "granular"  # fractional days


def to_epoch_ms(timestamp: datetime | int | float) -> float:
    """Normalize a datetime or epoch-milliseconds value to epoch milliseconds"""
    if isinstance(timestamp, datetime):
        try:
            return timestamp.timestamp() * 1000
        except (OverflowError, OSError, ValueError) as e:
            raise InvalidTimestamp(f"Invalid timestamp provided: {timestamp!r}") from e

    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise InvalidTimestamp(f"Invalid timestamp provided: {timestamp!r}")

    if not math.isfinite(timestamp):
        raise InvalidTimestamp(f"Invalid timestamp provided: {timestamp!r}")

    # Only values that map onto a representable datetime are instants
    try:
        datetime.fromtimestamp(timestamp / 1000)
    except (OverflowError, OSError, ValueError) as e:
        raise InvalidTimestamp(f"Invalid timestamp provided: {timestamp!r}") from e

    return float(timestamp)


@dataclass(frozen=True)
class RecencyWeight:
    """Decay factor based on how long ago the session started"""

    curve: RecencyCurve = RecencyCurve.DAILY

    def compute_weight(
        self,
        session_timestamp: datetime | int | float,
        current_timestamp: datetime | int | float,
    ) -> float:
        days_difference = (
            to_epoch_ms(current_timestamp) - to_epoch_ms(session_timestamp)
        ) / MS_PER_DAY

        # Session in the future: no penalty
        if days_difference < 0:
            return 1.0

        if self.curve is RecencyCurve.GRANULAR:
            if days_difference < GRANULAR_EPSILON_DAYS:
                return 1.0
            return DAILY_DECAY ** days_difference

        if days_difference < 1:
            return 1.0
        return DAILY_DECAY ** math.floor(days_difference)


_daily = RecencyWeight()


def compute_weight(
    session_timestamp: datetime | int | float,
    current_timestamp: datetime | int | float,
) -> float:
    """Whole-day recency weight used by the live pipeline"""
    return _daily.compute_weight(session_timestamp, current_timestamp)
