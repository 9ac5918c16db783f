"""
Quiz session models.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from coolscool.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow


class SessionStatus(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class TimeMode(str, Enum):
    UNLIMITED = "unlimited"
    TEN_MIN = "10min"
    FIVE_MIN = "5min"
    THREE_MIN = "3min"

    @property
    def time_limit_ms(self) -> Optional[int]:
        return TIME_LIMITS_MS[self]


TIME_LIMITS_MS: dict[TimeMode, Optional[int]] = {
    TimeMode.UNLIMITED: None,
    TimeMode.TEN_MIN: 10 * 60 * 1000,
    TimeMode.FIVE_MIN: 5 * 60 * 1000,
    TimeMode.THREE_MIN: 3 * 60 * 1000,
}


class SelectionStrategy(str, Enum):
    ADAPTIVE = "adaptive"
    SEQUENTIAL = "sequential"
    RANDOM = "random"
    REVIEW = "review"


class QuizSession(Base, TimestampMixin):
    """
    One bounded practice run over a fixed question queue.

    Mutated only by SessionStateMachine. version_id makes every state
    transition a compare-and-swap so a double submit loses cleanly.
    """

    __tablename__ = "quiz_sessions"

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
    topic_name: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[SessionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=SessionStatus.CREATED,
    )
    time_mode: Mapped[TimeMode] = mapped_column(String(20), nullable=False, default=TimeMode.UNLIMITED)
    time_limit_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    strategy: Mapped[SelectionStrategy] = mapped_column(
        String(20),
        nullable=False,
        default=SelectionStrategy.ADAPTIVE,
    )

    # Question UUIDs as strings; fixed once the session is created
    question_queue: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    current_question_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    questions_answered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    questions_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    questions_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    time_elapsed_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paused_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        Index("ix_quiz_sessions_user_created", "user_id", "created_at"),
        Index("ix_quiz_sessions_user_topic_status", "user_id", "topic_id_str", "status"),
    )

    @property
    def status_enum(self) -> SessionStatus:
        # SQLite hands back plain strings
        return SessionStatus(self.status)

    @property
    def total_questions(self) -> int:
        return len(self.question_queue or [])

    @property
    def is_queue_exhausted(self) -> bool:
        return self.current_question_index >= self.total_questions

    def __repr__(self) -> str:
        return f"<QuizSession {self.id} {self.status}>"


class SessionAnswer(Base):
    """One graded answer inside a session. Skips are not recorded here."""

    __tablename__ = "session_answers"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=generate_uuid)
    session_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("quiz_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
    )
    question_index: Mapped[int] = mapped_column(Integer, nullable=False)
    user_answer: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    time_taken_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        # Second guard against a double submit on the same queue slot
        UniqueConstraint("session_id", "question_index", name="uq_session_answers_session_index"),
    )
