"""
ELO rating change for a single review outcome
"""

from ..exceptions import InvalidScore

K_FACTOR = 32
DEFAULT_RATING = 1200.0

# Review ratings as stored in the review log
CORRECT_RATING = 5
INCORRECT_RATING = 0

_SCORE_BY_RATING = {CORRECT_RATING: 1, INCORRECT_RATING: 0}


def expected_score(subject_rating: float, opponent_rating: float) -> float:
    """Probability that the subject beats the opponent"""
    return 1 / (1 + 10 ** ((opponent_rating - subject_rating) / 400))


def compute_base_change(
    subject_rating: float,
    opponent_rating: float,
    actual_score: float,
    k_factor: float = K_FACTOR,
) -> float:
    """
    Calculate the ELO change for the subject after one review

    Args:
        subject_rating: Current rating of the user
        opponent_rating: Difficulty rating of the sentence
        actual_score: 1 for a correct answer, 0 for an incorrect one
        k_factor: Maximum swing of a single update

    Returns:
        Signed rating change
    """
    if isinstance(actual_score, bool) or actual_score not in (0, 1):
        raise InvalidScore(f"actual_score must be 0 or 1, got {actual_score!r}")

    return k_factor * (actual_score - expected_score(subject_rating, opponent_rating))


def score_from_rating(rating: int) -> int:
    """Map a 0/5 review rating onto the 0/1 ELO score"""
    if isinstance(rating, bool) or rating not in _SCORE_BY_RATING:
        raise InvalidScore(
            f"rating must be {INCORRECT_RATING} or {CORRECT_RATING}, got {rating!r}"
        )
    return _SCORE_BY_RATING[rating]
