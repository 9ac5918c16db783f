"""
Mastery Tracker - per-concept mastery ledger (DB-backed).

Rules:
- XP is flat per difficulty and only awarded for a correct answer.
- Each difficulty keeps a rolling window of the last 5 results. The first
  time the window is full with at least 4 correct, that difficulty is mastered.
  Mastery is never revoked.
- Newly achieved mastery moves current_difficulty one step along
  familiarity -> application -> exam_style. It never moves back.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coolscool.database import flush_or_conflict
from coolscool.kernel.curriculum import ConceptEntry, CurriculumCatalog, Difficulty
from coolscool.kernel.events import log_mastery_achieved
from coolscool.kernel.models.base import as_utc, generate_uuid, utcnow
from coolscool.kernel.models.progress import ConceptProgress, QuestionAttempt
from coolscool.logging_config import get_logger

logger = get_logger(__name__)

MASTERY_WINDOW = 5
MASTERY_REQUIRED_CORRECT = 4

XP_VALUES: Dict[Difficulty, int] = {
    Difficulty.FAMILIARITY: 10,
    Difficulty.APPLICATION: 20,
    Difficulty.EXAM_STYLE: 30,
}


def xp_for(difficulty: Difficulty, is_correct: bool) -> int:
    return XP_VALUES[difficulty] if is_correct else 0


class DifficultyMastery(BaseModel):
    """Mastery bucket for one difficulty of one concept."""

    attempts: int = 0
    correct: int = 0
    streak: int = 0
    mastered: bool = False
    mastered_at: Optional[datetime] = None
    # Oldest first, most recent last
    recent_attempts: List[bool] = Field(default_factory=list)

    @property
    def started(self) -> bool:
        return self.attempts > 0

    def record(self, is_correct: bool, now: datetime) -> bool:
        """Apply one result. Returns True only when this result newly masters the bucket."""
        self.attempts += 1
        if is_correct:
            self.correct += 1
            self.streak += 1
        else:
            self.streak = 0
        self.recent_attempts = (self.recent_attempts + [is_correct])[-MASTERY_WINDOW:]

        if self.mastered:
            return False
        if (
            len(self.recent_attempts) == MASTERY_WINDOW
            and sum(self.recent_attempts) >= MASTERY_REQUIRED_CORRECT
        ):
            self.mastered = True
            self.mastered_at = now
            return True
        return False


class MasteryByDifficulty(BaseModel):
    """All three buckets, always present, whatever the concept declares."""

    familiarity: DifficultyMastery = Field(default_factory=DifficultyMastery)
    application: DifficultyMastery = Field(default_factory=DifficultyMastery)
    exam_style: DifficultyMastery = Field(default_factory=DifficultyMastery)

    def bucket(self, difficulty: Difficulty) -> DifficultyMastery:
        return getattr(self, Difficulty(difficulty).value)

    def is_mastered(self, difficulty: Difficulty) -> bool:
        return self.bucket(difficulty).mastered

    def all_mastered(self, levels: List[Difficulty]) -> bool:
        return bool(levels) and all(self.is_mastered(d) for d in levels)

    @classmethod
    def from_json(cls, data: Optional[dict]) -> "MasteryByDifficulty":
        return cls.model_validate(data or {})

    def to_json(self) -> dict:
        return self.model_dump(mode="json")


class ConceptProgressView(BaseModel):
    """Read-only snapshot of a ConceptProgress row."""

    concept_id: str
    topic_id: str
    current_difficulty: Difficulty = Difficulty.FAMILIARITY
    total_attempts: int = 0
    total_correct: int = 0
    xp_earned: int = 0
    mastery: MasteryByDifficulty = Field(default_factory=MasteryByDifficulty)
    last_attempted_at: Optional[datetime] = None

    @property
    def started(self) -> bool:
        return self.total_attempts > 0

    @classmethod
    def from_row(cls, row: ConceptProgress) -> "ConceptProgressView":
        return cls(
            concept_id=row.concept_id_str,
            topic_id=row.topic_id_str,
            current_difficulty=Difficulty(row.current_difficulty),
            total_attempts=row.total_attempts,
            total_correct=row.total_correct,
            xp_earned=row.xp_earned,
            mastery=MasteryByDifficulty.from_json(row.mastery_data),
            last_attempted_at=as_utc(row.last_attempted_at),
        )


class AttemptInput(BaseModel):
    difficulty: Difficulty
    is_correct: bool
    question_id: Optional[str] = None
    time_taken_ms: int = Field(default=0, ge=0)


class AttemptResult(BaseModel):
    xp_earned: int
    mastery_achieved: bool
    previous_difficulty: Difficulty
    new_difficulty: Difficulty
    # Advancement landed on a level the concept's content does not declare
    advanced_to_undeclared: bool = False
    progress: ConceptProgressView


class MasteryTracker:
    """
    Records attempts against the concept mastery ledger.

    The tracker only adds and flushes; the caller owns the transaction, so an
    attempt is committed or rolled back together with whatever triggered it.
    """

    def __init__(self, session: AsyncSession, catalog: Optional[CurriculumCatalog] = None):
        self.session = session
        self.catalog = catalog or CurriculumCatalog(session)

    @staticmethod
    def apply_attempt(
        mastery: MasteryByDifficulty,
        current_difficulty: Difficulty,
        difficulty: Difficulty,
        is_correct: bool,
        now: datetime,
    ) -> tuple[bool, Difficulty]:
        """
        Apply one result to the mastery buckets in place.

        Returns (mastery_achieved, new_current_difficulty).
        """
        achieved = mastery.bucket(difficulty).record(is_correct, now)
        new_difficulty = current_difficulty
        if achieved:
            # Follows the fixed order; declared difficulty_levels are not consulted here
            new_difficulty = current_difficulty.next() or current_difficulty
        return achieved, new_difficulty

    async def _load_row(
        self,
        user_id: uuid.UUID,
        curriculum_id: uuid.UUID,
        concept_id: str,
    ) -> Optional[ConceptProgress]:
        result = await self.session.execute(
            select(ConceptProgress).where(
                ConceptProgress.user_id == user_id,
                ConceptProgress.curriculum_id == curriculum_id,
                ConceptProgress.concept_id_str == concept_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_concept_progress(
        self,
        user_id: uuid.UUID,
        curriculum_id: uuid.UUID,
        concept_id: str,
    ) -> Optional[ConceptProgressView]:
        """Progress for one concept, or None if never attempted."""
        row = await self._load_row(user_id, curriculum_id, concept_id)
        return ConceptProgressView.from_row(row) if row else None

    async def get_topic_progress(
        self,
        user_id: uuid.UUID,
        curriculum_id: uuid.UUID,
        topic_id: str,
    ) -> Dict[str, ConceptProgressView]:
        """All progress rows of a topic, keyed by concept id."""
        result = await self.session.execute(
            select(ConceptProgress).where(
                ConceptProgress.user_id == user_id,
                ConceptProgress.curriculum_id == curriculum_id,
                ConceptProgress.topic_id_str == topic_id,
            )
        )
        return {row.concept_id_str: ConceptProgressView.from_row(row) for row in result.scalars().all()}

    async def record_attempt(
        self,
        user_id: uuid.UUID,
        curriculum_id: uuid.UUID,
        concept_id: str,
        attempt: AttemptInput,
    ) -> AttemptResult:
        """
        Record one graded attempt and update the concept's mastery.

        Raises:
            ConceptNotFoundError: concept is not part of the curriculum
            ConflictError: a concurrent attempt updated the same concept first
        """
        concept: ConceptEntry = await self.catalog.get_concept(curriculum_id, concept_id)

        row = await self._load_row(user_id, curriculum_id, concept_id)
        if row is None:
            row = ConceptProgress(
                id=generate_uuid(),
                user_id=user_id,
                curriculum_id=curriculum_id,
                concept_id_str=concept.concept_id,
                topic_id_str=concept.topic_id,
                current_difficulty=Difficulty.FAMILIARITY.value,
                total_attempts=0,
                total_correct=0,
                xp_earned=0,
                mastery_data=MasteryByDifficulty().to_json(),
            )
            self.session.add(row)

        now = utcnow()
        mastery = MasteryByDifficulty.from_json(row.mastery_data)
        previous = Difficulty(row.current_difficulty)
        achieved, new_difficulty = self.apply_attempt(
            mastery, previous, attempt.difficulty, attempt.is_correct, now
        )
        xp = xp_for(attempt.difficulty, attempt.is_correct)

        # Reassign the JSON column so the change is detected
        row.mastery_data = mastery.to_json()
        row.current_difficulty = new_difficulty.value
        row.total_attempts += 1
        row.total_correct += 1 if attempt.is_correct else 0
        row.xp_earned += xp
        row.last_attempted_at = now

        self.session.add(
            QuestionAttempt(
                user_id=user_id,
                curriculum_id=curriculum_id,
                concept_id_str=concept.concept_id,
                question_id=attempt.question_id,
                difficulty=attempt.difficulty.value,
                is_correct=attempt.is_correct,
                time_taken_ms=attempt.time_taken_ms,
                xp_earned=xp,
                created_at=now,
            )
        )

        advanced_to_undeclared = False
        if achieved:
            logger.info(
                "Mastery achieved",
                extra={
                    "user_id": str(user_id),
                    "concept_id": concept.concept_id,
                    "difficulty": attempt.difficulty.value,
                    "new_difficulty": new_difficulty.value,
                },
            )
            if new_difficulty != previous and not concept.supports(new_difficulty):
                advanced_to_undeclared = True
                logger.warning(
                    "Advanced to a difficulty the concept does not declare",
                    extra={
                        "concept_id": concept.concept_id,
                        "new_difficulty": new_difficulty.value,
                        "declared": [d.value for d in concept.difficulty_levels],
                    },
                )
            await log_mastery_achieved(
                self.session,
                progress_id=row.id,
                user_id=user_id,
                concept_id=concept.concept_id,
                difficulty=attempt.difficulty.value,
                new_difficulty=new_difficulty.value,
            )

        await flush_or_conflict(self.session, "concept progress", row.id)

        logger.debug(
            "Attempt recorded",
            extra={
                "user_id": str(user_id),
                "concept_id": concept.concept_id,
                "difficulty": attempt.difficulty.value,
                "is_correct": attempt.is_correct,
                "xp": xp,
            },
        )

        return AttemptResult(
            xp_earned=xp,
            mastery_achieved=achieved,
            previous_difficulty=previous,
            new_difficulty=new_difficulty,
            advanced_to_undeclared=advanced_to_undeclared,
            progress=ConceptProgressView.from_row(row),
        )
