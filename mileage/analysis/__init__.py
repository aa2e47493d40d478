"""Goal viability analysis and promotion matching package."""

from mileage.analysis.matching import (
    best_promotion_for_goal,
    find_matching_promotions,
    score_destination,
)
from mileage.analysis.viability import ViabilityAnalyzer, months_to_cover

__all__ = [
    "ViabilityAnalyzer",
    "best_promotion_for_goal",
    "find_matching_promotions",
    "months_to_cover",
    "score_destination",
]
