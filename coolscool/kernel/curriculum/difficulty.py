"""
Difficulty levels, in their fixed progression order.
"""

from enum import Enum
from typing import Optional


class Difficulty(str, Enum):
    FAMILIARITY = "familiarity"
    APPLICATION = "application"
    EXAM_STYLE = "exam_style"

    @property
    def rank(self) -> int:
        return DIFFICULTY_ORDER.index(self)

    def next(self) -> Optional["Difficulty"]:
        """The level strictly after this one, or None at exam_style."""
        idx = self.rank + 1
        return DIFFICULTY_ORDER[idx] if idx < len(DIFFICULTY_ORDER) else None


DIFFICULTY_ORDER: tuple[Difficulty, ...] = (
    Difficulty.FAMILIARITY,
    Difficulty.APPLICATION,
    Difficulty.EXAM_STYLE,
)
