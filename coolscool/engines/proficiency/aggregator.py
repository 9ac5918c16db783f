"""
Proficiency Aggregator - DB-backed topic banding, the topic_progress
read-model and the per-curriculum progress dashboard.
"""

import uuid
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from coolscool.database import flush_or_conflict
from coolscool.engines.mastery.mastery_tracker import ConceptProgressView, MasteryTracker
from coolscool.engines.proficiency.bands import ProficiencyBand
from coolscool.engines.proficiency.calculator import (
    ProficiencyCalculator,
    ProficiencyDisplay,
    TopicProficiency,
)
from coolscool.kernel.curriculum import CurriculumCatalog
from coolscool.kernel.models.base import generate_uuid
from coolscool.kernel.models.progress import ConceptProgress, TopicProgress
from coolscool.kernel.models.session import QuizSession, SessionStatus
from coolscool.logging_config import get_logger

logger = get_logger(__name__)


class TopicProgressSummary(BaseModel):
    topic_id: str
    topic_name: str
    proficiency: ProficiencyDisplay
    xp_earned: int = 0
    last_attempted_at: Optional[datetime] = None


class UserProgressSummary(BaseModel):
    user_id: uuid.UUID
    curriculum_id: uuid.UUID
    total_xp: int = 0
    sessions_completed: int = 0
    topics_started: int = 0
    topics_total: int = 0
    topics: List[TopicProgressSummary] = []


def _latest(values) -> Optional[datetime]:
    present = [v for v in values if v is not None]
    return max(present) if present else None


class ProficiencyAggregator:
    """Topic-level proficiency for one user, derived from the concept ledger."""

    def __init__(
        self,
        session: AsyncSession,
        catalog: Optional[CurriculumCatalog] = None,
        tracker: Optional[MasteryTracker] = None,
    ):
        self.session = session
        self.catalog = catalog or CurriculumCatalog(session)
        self.tracker = tracker or MasteryTracker(session, self.catalog)

    async def compute_topic_proficiency(
        self,
        user_id: uuid.UUID,
        curriculum_id: uuid.UUID,
        topic_id: str,
    ) -> TopicProficiency:
        """Recompute a topic's band from scratch. Raises TopicNotFoundError."""
        await self.catalog.get_topic(curriculum_id, topic_id)
        concepts = await self.catalog.list_concepts(curriculum_id, topic_id)
        progress = await self.tracker.get_topic_progress(user_id, curriculum_id, topic_id)
        return ProficiencyCalculator.compute(progress, concepts)

    async def get_topic_proficiency(
        self,
        user_id: uuid.UUID,
        curriculum_id: uuid.UUID,
        topic_id: str,
    ) -> ProficiencyDisplay:
        proficiency = await self.compute_topic_proficiency(user_id, curriculum_id, topic_id)
        return proficiency.to_display()

    async def update_topic_progress(
        self,
        user_id: uuid.UUID,
        curriculum_id: uuid.UUID,
        topic_id: str,
    ) -> TopicProficiency:
        """Recompute the topic and upsert its cached topic_progress row."""
        concepts = await self.catalog.list_concepts(curriculum_id, topic_id)
        progress = await self.tracker.get_topic_progress(user_id, curriculum_id, topic_id)
        proficiency = ProficiencyCalculator.compute(progress, concepts)

        result = await self.session.execute(
            select(TopicProgress).where(
                TopicProgress.user_id == user_id,
                TopicProgress.curriculum_id == curriculum_id,
                TopicProgress.topic_id_str == topic_id,
            )
        )
        row = result.scalar_one_or_none()
        if row is None:
            row = TopicProgress(
                id=generate_uuid(),
                user_id=user_id,
                curriculum_id=curriculum_id,
                topic_id_str=topic_id,
            )
            self.session.add(row)

        views = list(progress.values())
        previous_band = row.proficiency_band
        row.proficiency_band = proficiency.band.value
        row.concepts_count = proficiency.concepts_count
        row.concepts_started = proficiency.concepts_started
        row.concepts_mastered = proficiency.concepts_mastered
        row.total_attempts = sum(v.total_attempts for v in views)
        row.total_correct = sum(v.total_correct for v in views)
        row.xp_earned = sum(v.xp_earned for v in views)
        row.last_attempted_at = _latest(v.last_attempted_at for v in views)

        await flush_or_conflict(self.session, "topic progress", row.id)

        if previous_band != row.proficiency_band:
            logger.info(
                "Topic band changed",
                extra={
                    "user_id": str(user_id),
                    "topic_id": topic_id,
                    "from_band": previous_band,
                    "to_band": row.proficiency_band,
                },
            )
        return proficiency

    async def get_user_progress(
        self,
        user_id: uuid.UUID,
        curriculum_id: uuid.UUID,
    ) -> UserProgressSummary:
        """Dashboard across every topic of a curriculum, in topic order."""
        await self.catalog.get_curriculum(curriculum_id)
        topics = await self.catalog.list_topics(curriculum_id)
        concepts_by_topic = await self.catalog.concepts_by_topic(curriculum_id)

        result = await self.session.execute(
            select(ConceptProgress).where(
                ConceptProgress.user_id == user_id,
                ConceptProgress.curriculum_id == curriculum_id,
            )
        )
        progress_by_topic: Dict[str, Dict[str, ConceptProgressView]] = defaultdict(dict)
        for row in result.scalars().all():
            progress_by_topic[row.topic_id_str][row.concept_id_str] = ConceptProgressView.from_row(row)

        completed = await self.session.execute(
            select(func.count(QuizSession.id)).where(
                QuizSession.user_id == user_id,
                QuizSession.curriculum_id == curriculum_id,
                QuizSession.status == SessionStatus.COMPLETED.value,
            )
        )

        summaries: List[TopicProgressSummary] = []
        for topic in topics:
            progress = progress_by_topic.get(topic.topic_id, {})
            proficiency = ProficiencyCalculator.compute(
                progress, concepts_by_topic.get(topic.topic_id, [])
            )
            summaries.append(
                TopicProgressSummary(
                    topic_id=topic.topic_id,
                    topic_name=topic.topic_name,
                    proficiency=proficiency.to_display(),
                    xp_earned=sum(p.xp_earned for p in progress.values()),
                    last_attempted_at=_latest(p.last_attempted_at for p in progress.values()),
                )
            )

        return UserProgressSummary(
            user_id=user_id,
            curriculum_id=curriculum_id,
            total_xp=sum(s.xp_earned for s in summaries),
            sessions_completed=completed.scalar() or 0,
            topics_started=sum(
                1 for s in summaries if s.proficiency.band != ProficiencyBand.NOT_STARTED
            ),
            topics_total=len(summaries),
            topics=summaries,
        )
