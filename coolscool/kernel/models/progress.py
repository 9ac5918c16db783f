"""
Progress models - concept mastery ledger, attempt audit trail and the
cached topic proficiency read-model.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from coolscool.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow


class ConceptProgress(Base, TimestampMixin):
    """
    Per-user, per-curriculum, per-concept mastery record.

    Mutated only by MasteryTracker. version_id guards the read-modify-write
    against a concurrent attempt on the same concept.
    """

    __tablename__ = "concept_progress"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    curriculum_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("curricula.id", ondelete="CASCADE"),
        nullable=False,
    )
    concept_id_str: Mapped[str] = mapped_column(String(50), nullable=False)
    topic_id_str: Mapped[str] = mapped_column(String(50), nullable=False)

    current_difficulty: Mapped[str] = mapped_column(String(20), nullable=False, default="familiarity")
    total_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # {"familiarity": {...}, "application": {...}, "exam_style": {...}}
    mastery_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    last_attempted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        UniqueConstraint(
            "user_id", "curriculum_id", "concept_id_str",
            name="uq_concept_progress_user_curriculum_concept",
        ),
        Index("ix_concept_progress_user_topic", "user_id", "curriculum_id", "topic_id_str"),
    )


class QuestionAttempt(Base):
    """Append-only audit record of one graded attempt. Never updated."""

    __tablename__ = "question_attempts"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    curriculum_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("curricula.id", ondelete="CASCADE"),
        nullable=False,
    )
    concept_id_str: Mapped[str] = mapped_column(String(50), nullable=False)
    question_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    time_taken_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        Index("ix_question_attempts_user_concept", "user_id", "curriculum_id", "concept_id_str"),
    )


class TopicProgress(Base, TimestampMixin):
    """
    Cached TopicProficiency for (user, curriculum, topic).

    Derived data: recomputed after every attempt in the topic and at session end.
    """

    __tablename__ = "topic_progress"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    curriculum_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("curricula.id", ondelete="CASCADE"),
        nullable=False,
    )
    topic_id_str: Mapped[str] = mapped_column(String(50), nullable=False)

    proficiency_band: Mapped[str] = mapped_column(String(50), nullable=False, default="not_started")
    concepts_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    concepts_started: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    concepts_mastered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_attempted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "curriculum_id", "topic_id_str",
            name="uq_topic_progress_user_curriculum_topic",
        ),
    )
