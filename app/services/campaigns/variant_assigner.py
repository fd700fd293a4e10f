# app/services/campaigns/variant_assigner.py
"""A/B split and winner selection."""

import logging
from fractions import Fraction
from typing import List, Optional, Sequence, Tuple

from scipy import stats

logger = logging.getLogger(__name__)

# Below this many sends per variant the chi-square test is not meaningful
MIN_SAMPLE_FOR_CONFIDENCE = 30


def variant_a_count(n: int, split_percent: int) -> int:
    """ceil(n * p / 100) in integer arithmetic."""
    if n <= 0 or split_percent <= 0:
        return 0
    return (n * split_percent + 99) // 100


def assign_variants(recipients: Sequence, split_percent: int) -> List[Tuple[object, Optional[str]]]:
    """
    Label recipients in order: the first `variant_a_count` get 'A', the rest
    'B'. A split of 0 means no test and every label is None.
    """
    if split_percent <= 0:
        return [(r, None) for r in recipients]
    a_count = variant_a_count(len(recipients), split_percent)
    return [(r, "A" if i < a_count else "B") for i, r in enumerate(recipients)]


def open_rate(opened: int, sent: int) -> Fraction:
    return Fraction(opened, sent) if sent else Fraction(0)


def pick_winner(a_sent: int, a_opened: int, b_sent: int, b_opened: int) -> str:
    """Higher open rate wins; ties (including no data) go to A."""
    return "A" if open_rate(a_opened, a_sent) >= open_rate(b_opened, b_sent) else "B"


def rate_percent(opened: int, sent: int) -> int:
    """Open rate as a whole percentage, rounding halves up."""
    if not sent:
        return 0
    return (opened * 200 + sent) // (sent * 2)


def calculate_confidence(a_sent: int, a_opened: int, b_sent: int, b_opened: int) -> float:
    """Chi-square confidence that the two open rates differ. Informational only."""
    if a_sent < MIN_SAMPLE_FOR_CONFIDENCE or b_sent < MIN_SAMPLE_FOR_CONFIDENCE:
        return 0.0

    observed = [[a_opened, a_sent - a_opened], [b_opened, b_sent - b_opened]]
    try:
        chi2, p_value, dof, expected = stats.chi2_contingency(observed)
        return min(1.0 - float(p_value), 1.0)
    except (ValueError, RuntimeError) as e:
        logger.warning(f"Statistical calculation failed for chi-square test: {e}")
        return 0.0
