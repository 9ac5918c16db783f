"""
Question selection strategies for quiz sessions.
"""

from coolscool.engines.selection.question_selector import (
    QuestionHistoryEntry,
    QuestionSelector,
    apply_cognitive_variety,
    interleave_concepts,
    is_due,
    is_eligible,
    recency_factor,
)

__all__ = [
    "QuestionHistoryEntry",
    "QuestionSelector",
    "apply_cognitive_variety",
    "interleave_concepts",
    "is_due",
    "is_eligible",
    "recency_factor",
]
