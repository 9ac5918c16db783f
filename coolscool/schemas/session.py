"""
Quiz session request and response schemas.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from coolscool.kernel.models.base import as_utc
from coolscool.kernel.models.event_log import EventLog, EventType
from coolscool.kernel.models.session import QuizSession, SelectionStrategy, SessionStatus, TimeMode
from coolscool.orchestration import ClientQuestion, CreateSessionInput, valid_operations


class CreateSessionRequest(BaseModel):
    curriculum_id: uuid.UUID
    topic_id: str = Field(..., min_length=1, max_length=50)
    time_mode: TimeMode = TimeMode.UNLIMITED
    question_count: Optional[int] = Field(default=None, ge=1)
    strategy: SelectionStrategy = SelectionStrategy.ADAPTIVE

    def to_input(self) -> CreateSessionInput:
        return CreateSessionInput(**self.model_dump())


class SubmitAnswerRequest(BaseModel):
    # Shape depends on question type: str, bool, list of str or object of str
    answer: Any = Field(...)
    time_taken_ms: int = Field(default=0, ge=0)


class PauseSessionRequest(BaseModel):
    elapsed_ms: int = Field(..., ge=0)


class EndSessionRequest(BaseModel):
    completed: bool = True
    elapsed_ms: Optional[int] = Field(default=None, ge=0)


class SessionResponse(BaseModel):
    """Session state as returned by every lifecycle endpoint."""

    id: uuid.UUID
    curriculum_id: uuid.UUID
    topic_id: str
    topic_name: str
    status: SessionStatus
    time_mode: TimeMode
    time_limit_ms: Optional[int] = None
    strategy: SelectionStrategy
    total_questions: int
    current_question_index: int
    questions_answered: int
    questions_correct: int
    questions_skipped: int
    xp_earned: int
    time_elapsed_ms: int
    is_session_complete: bool
    allowed_operations: List[str]
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, quiz_session: QuizSession) -> "SessionResponse":
        status = quiz_session.status_enum
        return cls(
            id=quiz_session.id,
            curriculum_id=quiz_session.curriculum_id,
            topic_id=quiz_session.topic_id_str,
            topic_name=quiz_session.topic_name,
            status=status,
            time_mode=TimeMode(quiz_session.time_mode),
            time_limit_ms=quiz_session.time_limit_ms,
            strategy=SelectionStrategy(quiz_session.strategy),
            total_questions=quiz_session.total_questions,
            current_question_index=quiz_session.current_question_index,
            questions_answered=quiz_session.questions_answered,
            questions_correct=quiz_session.questions_correct,
            questions_skipped=quiz_session.questions_skipped,
            xp_earned=quiz_session.xp_earned,
            time_elapsed_ms=quiz_session.time_elapsed_ms,
            is_session_complete=quiz_session.is_queue_exhausted,
            allowed_operations=valid_operations(status),
            created_at=as_utc(quiz_session.created_at),
            started_at=as_utc(quiz_session.started_at),
            paused_at=as_utc(quiz_session.paused_at),
            completed_at=as_utc(quiz_session.completed_at),
        )


class CurrentQuestionResponse(BaseModel):
    question: Optional[ClientQuestion] = None
    is_session_complete: bool


class SessionEventResponse(BaseModel):
    """One entry of a session's audit trail."""

    event_type: EventType
    payload: Dict[str, Any]
    created_at: datetime

    @classmethod
    def from_model(cls, event: EventLog) -> "SessionEventResponse":
        return cls(
            event_type=event.event_type,
            payload=event.payload or {},
            created_at=as_utc(event.created_at),
        )
