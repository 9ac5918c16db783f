"""
Proficiency Engine - topic-level bands derived from concept mastery.

Bands (lowest to highest): not_started, building_familiarity,
growing_confidence, consistent_understanding, exam_ready. A band is the only
topic measure surfaced to students; percentages stay internal.
"""

from coolscool.engines.proficiency.bands import BAND_ORDER, ProficiencyBand
from coolscool.engines.proficiency.calculator import (
    MasteryStats,
    ProficiencyCalculator,
    ProficiencyDisplay,
    TopicProficiency,
    safe_pct,
)
from coolscool.engines.proficiency.aggregator import (
    ProficiencyAggregator,
    TopicProgressSummary,
    UserProgressSummary,
)

__all__ = [
    "BAND_ORDER",
    "ProficiencyBand",
    "MasteryStats",
    "ProficiencyCalculator",
    "ProficiencyDisplay",
    "TopicProficiency",
    "safe_pct",
    "ProficiencyAggregator",
    "TopicProgressSummary",
    "UserProgressSummary",
]
