"""
Pydantic schemas for API request/response validation.
"""

from coolscool.schemas.common import ErrorResponse, HealthResponse, PaginatedResponse
from coolscool.schemas.progress import TopicProficiencyResponse, UserProgressResponse
from coolscool.schemas.session import (
    CreateSessionRequest,
    CurrentQuestionResponse,
    EndSessionRequest,
    PauseSessionRequest,
    SessionEventResponse,
    SessionResponse,
    SubmitAnswerRequest,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "PaginatedResponse",
    "TopicProficiencyResponse",
    "UserProgressResponse",
    "CreateSessionRequest",
    "CurrentQuestionResponse",
    "EndSessionRequest",
    "PauseSessionRequest",
    "SessionEventResponse",
    "SessionResponse",
    "SubmitAnswerRequest",
]
