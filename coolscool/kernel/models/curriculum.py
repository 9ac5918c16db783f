"""
Curriculum content: curricula, topics, concepts and questions.

Content is loaded and validated upstream; the engine only reads these tables.
"""

import uuid
from typing import Any, List, Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from coolscool.kernel.models.base import Base, TimestampMixin, generate_uuid


class Curriculum(Base, TimestampMixin):
    """A board/class/subject curriculum, e.g. CBSE class 6 mathematics."""

    __tablename__ = "curricula"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    topics: Mapped[List["Topic"]] = relationship(
        back_populates="curriculum",
        order_by="Topic.topic_order",
    )


class Topic(Base):
    __tablename__ = "topics"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    curriculum_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("curricula.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    topic_id: Mapped[str] = mapped_column(String(50), nullable=False)
    topic_name: Mapped[str] = mapped_column(String(255), nullable=False)
    topic_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    curriculum: Mapped["Curriculum"] = relationship(back_populates="topics")

    __table_args__ = (
        UniqueConstraint("curriculum_id", "topic_id", name="uq_topics_curriculum_topic"),
    )


class Concept(Base):
    """Smallest unit of content a question targets; belongs to one topic."""

    __tablename__ = "concepts"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    curriculum_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("curricula.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    topic_pk: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    concept_id: Mapped[str] = mapped_column(String(50), nullable=False)
    concept_name: Mapped[str] = mapped_column(String(255), nullable=False)
    concept_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Ordered subset of familiarity/application/exam_style
    difficulty_levels: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("curriculum_id", "concept_id", name="uq_concepts_curriculum_concept"),
    )


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    curriculum_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("curricula.id", ondelete="CASCADE"),
        nullable=False,
    )
    concept_pk: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("concepts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[str] = mapped_column(String(100), nullable=False)
    concept_id_str: Mapped[str] = mapped_column(String(50), nullable=False)
    topic_id_str: Mapped[str] = mapped_column(String(50), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)
    # recall, compare, classify, scenario, exception or reason
    cognitive_level: Mapped[str] = mapped_column(
        String(20), nullable=False, default="recall", server_default="recall"
    )
    question_type: Mapped[str] = mapped_column(String(20), nullable=False)
    question_text: Mapped[str] = mapped_column(Text, nullable=False)

    # [{"id": "a", "text": "..."}] for mcq
    options: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    # str | bool | list[str] | dict[str, str] depending on question_type
    correct_answer: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    # [{"left": "...", "right": "..."}] for match
    match_pairs: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    ordering_items: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    hint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    explanation_correct: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    explanation_incorrect: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("curriculum_id", "question_id", name="uq_questions_curriculum_question"),
        Index("ix_questions_curriculum_topic", "curriculum_id", "topic_id_str"),
    )
