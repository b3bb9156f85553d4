"""
Errors raised by the rating engine's pure calculations
"""


class RatingEngineError(ValueError):
    """Malformed input to a rating calculation"""


class InvalidScore(RatingEngineError):
    """Score outside the accepted outcome scale"""


class InvalidStreak(RatingEngineError):
    """Negative or non-numeric streak position"""


class InvalidTimestamp(RatingEngineError):
    """Value that does not represent a valid instant"""
