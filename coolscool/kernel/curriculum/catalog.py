"""
Curriculum catalogue - read API over topics, concepts and questions.

Content is immutable at read time, so everything is handed out as pydantic
entries detached from the session.
"""

import uuid
from collections import defaultdict
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from coolscool.kernel.curriculum.difficulty import DIFFICULTY_ORDER, Difficulty
from coolscool.errors import (
    ConceptNotFoundError,
    CurriculumNotFoundError,
    QuestionNotFoundError,
    TopicNotFoundError,
)
from coolscool.kernel.models.curriculum import Concept, Curriculum, Question, Topic


class TopicEntry(BaseModel):
    curriculum_id: uuid.UUID
    topic_id: str
    topic_name: str
    topic_order: int = 0


class ConceptEntry(BaseModel):
    """A concept and the difficulty levels its content declares."""

    concept_id: str
    topic_id: str
    concept_name: str = ""
    concept_order: int = 0
    difficulty_levels: List[Difficulty] = list(DIFFICULTY_ORDER)

    def supports(self, difficulty: Difficulty) -> bool:
        return difficulty in self.difficulty_levels


class QuestionEntry(BaseModel):
    """A question including its answer data. Never sent to clients as-is."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    question_id: str
    concept_id: str
    topic_id: str
    difficulty: Difficulty
    cognitive_level: str = "recall"
    question_type: str
    question_text: str
    options: Optional[List[Dict[str, Any]]] = None
    correct_answer: Any = None
    match_pairs: Optional[List[Dict[str, str]]] = None
    ordering_items: Optional[List[str]] = None
    hint: Optional[str] = None
    explanation_correct: Optional[str] = None
    explanation_incorrect: Optional[str] = None

    @classmethod
    def from_row(cls, row: Question) -> "QuestionEntry":
        return cls(
            id=row.id,
            question_id=row.question_id,
            concept_id=row.concept_id_str,
            topic_id=row.topic_id_str,
            difficulty=Difficulty(row.difficulty),
            cognitive_level=row.cognitive_level or "recall",
            question_type=row.question_type,
            question_text=row.question_text,
            options=row.options,
            correct_answer=row.correct_answer,
            match_pairs=row.match_pairs,
            ordering_items=row.ordering_items,
            hint=row.hint,
            explanation_correct=row.explanation_correct,
            explanation_incorrect=row.explanation_incorrect,
        )


def _concept_entry(concept: Concept, topic_id: str) -> ConceptEntry:
    return ConceptEntry(
        concept_id=concept.concept_id,
        topic_id=topic_id,
        concept_name=concept.concept_name,
        concept_order=concept.concept_order,
        difficulty_levels=[Difficulty(d) for d in (concept.difficulty_levels or [])],
    )


class CurriculumCatalog:
    """Curriculum read API scoped to one AsyncSession."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_curriculum(self, curriculum_id: uuid.UUID) -> Curriculum:
        curriculum = await self.session.get(Curriculum, curriculum_id)
        if curriculum is None:
            raise CurriculumNotFoundError(curriculum_id)
        return curriculum

    async def get_topic(self, curriculum_id: uuid.UUID, topic_id: str) -> TopicEntry:
        """Get a topic, failing if it does not belong to the curriculum."""
        result = await self.session.execute(
            select(Topic).where(Topic.curriculum_id == curriculum_id, Topic.topic_id == topic_id)
        )
        topic = result.scalar_one_or_none()
        if topic is None:
            raise TopicNotFoundError(topic_id, curriculum_id)
        return TopicEntry(
            curriculum_id=topic.curriculum_id,
            topic_id=topic.topic_id,
            topic_name=topic.topic_name,
            topic_order=topic.topic_order,
        )

    async def list_topics(self, curriculum_id: uuid.UUID) -> List[TopicEntry]:
        result = await self.session.execute(
            select(Topic).where(Topic.curriculum_id == curriculum_id).order_by(Topic.topic_order)
        )
        return [
            TopicEntry(
                curriculum_id=t.curriculum_id,
                topic_id=t.topic_id,
                topic_name=t.topic_name,
                topic_order=t.topic_order,
            )
            for t in result.scalars().all()
        ]

    async def get_concept(self, curriculum_id: uuid.UUID, concept_id: str) -> ConceptEntry:
        result = await self.session.execute(
            select(Concept, Topic.topic_id)
            .join(Topic, Concept.topic_pk == Topic.id)
            .where(Concept.curriculum_id == curriculum_id, Concept.concept_id == concept_id)
        )
        row = result.one_or_none()
        if row is None:
            raise ConceptNotFoundError(concept_id, curriculum_id)
        concept, topic_id = row
        return _concept_entry(concept, topic_id)

    async def list_concepts(self, curriculum_id: uuid.UUID, topic_id: str) -> List[ConceptEntry]:
        """Concepts of one topic in declared order."""
        result = await self.session.execute(
            select(Concept, Topic.topic_id)
            .join(Topic, Concept.topic_pk == Topic.id)
            .where(Concept.curriculum_id == curriculum_id, Topic.topic_id == topic_id)
            .order_by(Concept.concept_order, Concept.concept_id)
        )
        return [_concept_entry(c, tid) for c, tid in result.all()]

    async def concepts_by_topic(self, curriculum_id: uuid.UUID) -> Dict[str, List[ConceptEntry]]:
        result = await self.session.execute(
            select(Concept, Topic.topic_id)
            .join(Topic, Concept.topic_pk == Topic.id)
            .where(Concept.curriculum_id == curriculum_id)
            .order_by(Topic.topic_order, Concept.concept_order, Concept.concept_id)
        )
        grouped: Dict[str, List[ConceptEntry]] = defaultdict(list)
        for concept, topic_id in result.all():
            grouped[topic_id].append(_concept_entry(concept, topic_id))
        return dict(grouped)

    async def list_questions(self, curriculum_id: uuid.UUID, topic_id: str) -> List[QuestionEntry]:
        """The topic's full question pool, unfiltered."""
        result = await self.session.execute(
            select(Question)
            .where(Question.curriculum_id == curriculum_id, Question.topic_id_str == topic_id)
            .order_by(Question.question_id)
        )
        return [QuestionEntry.from_row(q) for q in result.scalars().all()]

    async def get_question(self, question_id: uuid.UUID) -> QuestionEntry:
        question = await self.session.get(Question, question_id)
        if question is None:
            raise QuestionNotFoundError(question_id)
        return QuestionEntry.from_row(question)
