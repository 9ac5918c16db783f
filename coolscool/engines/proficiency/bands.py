"""
Proficiency bands - the only topic-level measure ever shown to a student.
"""

from enum import Enum


class ProficiencyBand(str, Enum):
    NOT_STARTED = "not_started"
    BUILDING_FAMILIARITY = "building_familiarity"
    GROWING_CONFIDENCE = "growing_confidence"
    CONSISTENT_UNDERSTANDING = "consistent_understanding"
    EXAM_READY = "exam_ready"

    @property
    def level(self) -> int:
        return BAND_ORDER.index(self)

    @property
    def label(self) -> str:
        return BAND_LABELS[self]

    @property
    def message(self) -> str:
        return BAND_MESSAGES[self]


BAND_ORDER: tuple[ProficiencyBand, ...] = (
    ProficiencyBand.NOT_STARTED,
    ProficiencyBand.BUILDING_FAMILIARITY,
    ProficiencyBand.GROWING_CONFIDENCE,
    ProficiencyBand.CONSISTENT_UNDERSTANDING,
    ProficiencyBand.EXAM_READY,
)

BAND_LABELS: dict[ProficiencyBand, str] = {
    ProficiencyBand.NOT_STARTED: "Not Started",
    ProficiencyBand.BUILDING_FAMILIARITY: "Building Familiarity",
    ProficiencyBand.GROWING_CONFIDENCE: "Growing Confidence",
    ProficiencyBand.CONSISTENT_UNDERSTANDING: "Consistent Understanding",
    ProficiencyBand.EXAM_READY: "Exam Ready",
}

BAND_MESSAGES: dict[ProficiencyBand, str] = {
    ProficiencyBand.NOT_STARTED: "Ready to start exploring this topic!",
    ProficiencyBand.BUILDING_FAMILIARITY: "You're getting to know these concepts!",
    ProficiencyBand.GROWING_CONFIDENCE: "Your understanding is growing stronger!",
    ProficiencyBand.CONSISTENT_UNDERSTANDING: "You're showing consistent understanding!",
    ProficiencyBand.EXAM_READY: "You're well prepared for this topic!",
}
