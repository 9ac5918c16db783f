"""
Kernel Data Models

SQLAlchemy models for curriculum content, mastery progress, quiz sessions
and the audit event log.
"""

from coolscool.kernel.models.base import Base, TimestampMixin, generate_uuid, utcnow
from coolscool.kernel.models.user import User
from coolscool.kernel.models.curriculum import Curriculum, Topic, Concept, Question
from coolscool.kernel.models.progress import ConceptProgress, QuestionAttempt, TopicProgress
from coolscool.kernel.models.session import (
    QuizSession,
    SessionAnswer,
    SessionStatus,
    TimeMode,
    SelectionStrategy,
    TIME_LIMITS_MS,
)
from coolscool.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "utcnow",
    # User
    "User",
    # Curriculum
    "Curriculum",
    "Topic",
    "Concept",
    "Question",
    # Progress
    "ConceptProgress",
    "QuestionAttempt",
    "TopicProgress",
    # Sessions
    "QuizSession",
    "SessionAnswer",
    "SessionStatus",
    "TimeMode",
    "SelectionStrategy",
    "TIME_LIMITS_MS",
    # Event Log
    "EventLog",
    "EventType",
]
