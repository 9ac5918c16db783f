"""
Read-only curriculum API: topics, concepts and question pools.
"""

from coolscool.kernel.curriculum.difficulty import DIFFICULTY_ORDER, Difficulty
from coolscool.kernel.curriculum.catalog import (
    ConceptEntry,
    CurriculumCatalog,
    QuestionEntry,
    TopicEntry,
)

__all__ = [
    "DIFFICULTY_ORDER",
    "Difficulty",
    "ConceptEntry",
    "CurriculumCatalog",
    "QuestionEntry",
    "TopicEntry",
]
