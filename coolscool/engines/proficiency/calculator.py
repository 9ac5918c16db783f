"""
Proficiency Calculator - pure topic banding from concept mastery state.

Band decision, highest first, first match wins:
- exam_ready: familiarity, application and exam_style mastered 100%
- consistent_understanding: familiarity mastered 100%, application mastered
  >= 75%, exam_style started >= 25%
- growing_confidence: familiarity mastered >= 50%, application started >= 25%
- building_familiarity: at least one concept started
- not_started: otherwise

Percentages are taken over the concepts that declare each difficulty.
"""

import math
from typing import Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel

from coolscool.engines.mastery.mastery_tracker import ConceptProgressView
from coolscool.engines.proficiency.bands import ProficiencyBand
from coolscool.kernel.curriculum import ConceptEntry, Difficulty


def safe_pct(numerator: int, denominator: int) -> int:
    """Rounded (half up) percentage; 0 when there is nothing to divide by."""
    if denominator <= 0:
        return 0
    return int(math.floor(100 * numerator / denominator + 0.5))


class MasteryStats(BaseModel):
    """Internal counters behind a band. Never serialised to a display layer."""

    concepts_total: int = 0
    concepts_started: int = 0
    familiarity_total: int = 0
    familiarity_mastered: int = 0
    application_total: int = 0
    application_started: int = 0
    application_mastered: int = 0
    exam_style_total: int = 0
    exam_style_started: int = 0
    exam_style_mastered: int = 0

    @property
    def familiarity_mastered_pct(self) -> int:
        return safe_pct(self.familiarity_mastered, self.familiarity_total)

    @property
    def application_mastered_pct(self) -> int:
        return safe_pct(self.application_mastered, self.application_total)

    @property
    def application_started_pct(self) -> int:
        return safe_pct(self.application_started, self.application_total)

    @property
    def exam_style_mastered_pct(self) -> int:
        return safe_pct(self.exam_style_mastered, self.exam_style_total)

    @property
    def exam_style_started_pct(self) -> int:
        return safe_pct(self.exam_style_started, self.exam_style_total)


class ProficiencyDisplay(BaseModel):
    """What a student may see about a topic: a band, never a score."""

    band: ProficiencyBand
    level: int
    label: str
    message: str
    concepts_total: int
    concepts_started: int
    concepts_mastered: int


class TopicProficiency(BaseModel):
    band: ProficiencyBand
    concepts_count: int = 0
    concepts_started: int = 0
    # Concepts with every declared difficulty mastered
    concepts_mastered: int = 0
    stats: Optional[MasteryStats] = None

    @property
    def level(self) -> int:
        return self.band.level

    def to_display(self) -> ProficiencyDisplay:
        return ProficiencyDisplay(
            band=self.band,
            level=self.band.level,
            label=self.band.label,
            message=self.band.message,
            concepts_total=self.concepts_count,
            concepts_started=self.concepts_started,
            concepts_mastered=self.concepts_mastered,
        )


ProgressInput = Union[Mapping[str, ConceptProgressView], Iterable[ConceptProgressView]]


class ProficiencyCalculator:
    """Pure, idempotent banding. Callers persist the result if they want it cached."""

    EXAM_READY_MIN_PCT = 100
    CONSISTENT_FAMILIARITY_MASTERED_PCT = 100
    CONSISTENT_APPLICATION_MASTERED_PCT = 75
    CONSISTENT_EXAM_STYLE_STARTED_PCT = 25
    GROWING_FAMILIARITY_MASTERED_PCT = 50
    GROWING_APPLICATION_STARTED_PCT = 25
    BUILDING_MIN_CONCEPTS_STARTED = 1

    @staticmethod
    def _progress_map(progress: ProgressInput) -> Mapping[str, ConceptProgressView]:
        if isinstance(progress, Mapping):
            return progress
        return {p.concept_id: p for p in progress}

    @classmethod
    def compute_stats(cls, progress: ProgressInput, concepts: List[ConceptEntry]) -> MasteryStats:
        by_concept = cls._progress_map(progress)
        stats = MasteryStats(concepts_total=len(concepts))

        for concept in concepts:
            declares_fam = concept.supports(Difficulty.FAMILIARITY)
            declares_app = concept.supports(Difficulty.APPLICATION)
            declares_exam = concept.supports(Difficulty.EXAM_STYLE)
            stats.familiarity_total += declares_fam
            stats.application_total += declares_app
            stats.exam_style_total += declares_exam

            p = by_concept.get(concept.concept_id)
            if p is None or not p.started:
                continue
            stats.concepts_started += 1

            m = p.mastery
            if declares_fam and m.familiarity.mastered:
                stats.familiarity_mastered += 1
            if declares_app:
                stats.application_started += m.application.started
                stats.application_mastered += m.application.mastered
            if declares_exam:
                stats.exam_style_started += m.exam_style.started
                stats.exam_style_mastered += m.exam_style.mastered

        return stats

    @classmethod
    def decide_band(cls, stats: MasteryStats) -> ProficiencyBand:
        if (
            stats.familiarity_mastered_pct >= cls.EXAM_READY_MIN_PCT
            and stats.application_mastered_pct >= cls.EXAM_READY_MIN_PCT
            and stats.exam_style_mastered_pct >= cls.EXAM_READY_MIN_PCT
        ):
            return ProficiencyBand.EXAM_READY
        if (
            stats.familiarity_mastered_pct >= cls.CONSISTENT_FAMILIARITY_MASTERED_PCT
            and stats.application_mastered_pct >= cls.CONSISTENT_APPLICATION_MASTERED_PCT
            and stats.exam_style_started_pct >= cls.CONSISTENT_EXAM_STYLE_STARTED_PCT
        ):
            return ProficiencyBand.CONSISTENT_UNDERSTANDING
        if (
            stats.familiarity_mastered_pct >= cls.GROWING_FAMILIARITY_MASTERED_PCT
            and stats.application_started_pct >= cls.GROWING_APPLICATION_STARTED_PCT
        ):
            return ProficiencyBand.GROWING_CONFIDENCE
        if stats.concepts_started >= cls.BUILDING_MIN_CONCEPTS_STARTED:
            return ProficiencyBand.BUILDING_FAMILIARITY
        return ProficiencyBand.NOT_STARTED

    @classmethod
    def compute(cls, progress: ProgressInput, concepts: List[ConceptEntry]) -> TopicProficiency:
        """Band a topic from its concepts' progress and the concept catalogue."""
        if not concepts:
            return TopicProficiency(band=ProficiencyBand.NOT_STARTED, stats=None)

        by_concept = cls._progress_map(progress)
        stats = cls.compute_stats(by_concept, concepts)
        mastered = sum(
            1
            for c in concepts
            if c.concept_id in by_concept
            and by_concept[c.concept_id].mastery.all_mastered(c.difficulty_levels)
        )
        return TopicProficiency(
            band=cls.decide_band(stats),
            concepts_count=len(concepts),
            concepts_started=stats.concepts_started,
            concepts_mastered=mastered,
            stats=stats,
        )
