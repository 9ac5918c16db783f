"""
Mastery Engine - rolling-window mastery per concept and difficulty.

- XP: familiarity 10, application 20, exam_style 30 (correct answers only)
- Mastery: 4 correct in the last 5 attempts at a difficulty
- Advancement: familiarity -> application -> exam_style, never backwards
"""

from coolscool.engines.mastery.grader import Grader, GradeResult, SUPPORTED_QUESTION_TYPES
from coolscool.engines.mastery.mastery_tracker import (
    MASTERY_REQUIRED_CORRECT,
    MASTERY_WINDOW,
    XP_VALUES,
    AttemptInput,
    AttemptResult,
    ConceptProgressView,
    DifficultyMastery,
    MasteryByDifficulty,
    MasteryTracker,
    xp_for,
)

__all__ = [
    "Grader",
    "GradeResult",
    "SUPPORTED_QUESTION_TYPES",
    "MASTERY_REQUIRED_CORRECT",
    "MASTERY_WINDOW",
    "XP_VALUES",
    "AttemptInput",
    "AttemptResult",
    "ConceptProgressView",
    "DifficultyMastery",
    "MasteryByDifficulty",
    "MasteryTracker",
    "xp_for",
]
