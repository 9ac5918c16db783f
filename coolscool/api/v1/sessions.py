"""
Quiz session endpoints - one route per lifecycle operation.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Query, status
from fastapi.exceptions import RequestValidationError

from coolscool.api.deps import AppSettings, CurrentUser, SessionMachine
from coolscool.config import Settings
from coolscool.kernel.models.session import SessionStatus
from coolscool.orchestration import AnswerFeedback, EndSessionResult, SessionSummary, SkipResult
from coolscool.schemas.common import ErrorResponse, PaginatedResponse
from coolscool.schemas.session import (
    CreateSessionRequest,
    CurrentQuestionResponse,
    EndSessionRequest,
    PauseSessionRequest,
    SessionEventResponse,
    SessionResponse,
    SubmitAnswerRequest,
)

router = APIRouter(
    responses={
        status.HTTP_403_FORBIDDEN: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    },
)


def _check_question_count(data: CreateSessionRequest, settings: Settings) -> None:
    limit = settings.max_question_count
    if data.question_count is not None and data.question_count > limit:
        raise RequestValidationError(
            [
                {
                    "type": "less_than_equal",
                    "loc": ("body", "question_count"),
                    "msg": f"Input should be less than or equal to {limit}",
                    "input": data.question_count,
                    "ctx": {"le": limit},
                }
            ]
        )


@router.post("", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    data: CreateSessionRequest,
    user: CurrentUser,
    machine: SessionMachine,
    settings: AppSettings,
):
    """Create a session over a topic. The clock does not start until /start."""
    _check_question_count(data, settings)
    quiz_session = await machine.create_session(user.id, data.to_input())
    return SessionResponse.from_model(quiz_session)


@router.get("", response_model=PaginatedResponse[SessionResponse])
async def list_sessions(
    user: CurrentUser,
    machine: SessionMachine,
    settings: AppSettings,
    status_filter: Optional[SessionStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, ge=1, le=100),
):
    """List the current user's sessions, newest first."""
    size = page_size or settings.sessions_page_size
    items, total = await machine.list_sessions(user.id, status_filter, page, size)
    return PaginatedResponse.create(
        items=[SessionResponse.from_model(s) for s in items],
        total=total,
        page=page,
        page_size=size,
    )


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: uuid.UUID, user: CurrentUser, machine: SessionMachine):
    return SessionResponse.from_model(await machine.get_session(user.id, session_id))


@router.post("/{session_id}/start", response_model=SessionResponse)
async def start_session(session_id: uuid.UUID, user: CurrentUser, machine: SessionMachine):
    return SessionResponse.from_model(await machine.start_session(user.id, session_id))


@router.get("/{session_id}/question", response_model=CurrentQuestionResponse)
async def get_current_question(session_id: uuid.UUID, user: CurrentUser, machine: SessionMachine):
    """Current question without answer data; null once the queue is exhausted."""
    question = await machine.get_current_question(user.id, session_id)
    return CurrentQuestionResponse(question=question, is_session_complete=question is None)


@router.post("/{session_id}/answer", response_model=AnswerFeedback)
async def submit_answer(
    session_id: uuid.UUID,
    data: SubmitAnswerRequest,
    user: CurrentUser,
    machine: SessionMachine,
):
    return await machine.submit_answer(user.id, session_id, data.answer, data.time_taken_ms)


@router.post("/{session_id}/skip", response_model=SkipResult)
async def skip_question(session_id: uuid.UUID, user: CurrentUser, machine: SessionMachine):
    return await machine.skip_question(user.id, session_id)


@router.post("/{session_id}/pause", response_model=SessionResponse)
async def pause_session(
    session_id: uuid.UUID,
    data: PauseSessionRequest,
    user: CurrentUser,
    machine: SessionMachine,
):
    quiz_session = await machine.pause_session(user.id, session_id, data.elapsed_ms)
    return SessionResponse.from_model(quiz_session)


@router.post("/{session_id}/resume", response_model=SessionResponse)
async def resume_session(session_id: uuid.UUID, user: CurrentUser, machine: SessionMachine):
    return SessionResponse.from_model(await machine.resume_session(user.id, session_id))


@router.post("/{session_id}/end", response_model=EndSessionResult)
async def end_session(
    session_id: uuid.UUID,
    data: EndSessionRequest,
    user: CurrentUser,
    machine: SessionMachine,
):
    """Complete (or abandon) the session and get the topic's band."""
    return await machine.end_session(user.id, session_id, data.completed, data.elapsed_ms)


@router.get("/{session_id}/summary", response_model=SessionSummary)
async def get_session_summary(session_id: uuid.UUID, user: CurrentUser, machine: SessionMachine):
    return await machine.get_session_summary(user.id, session_id)


@router.get("/{session_id}/events", response_model=List[SessionEventResponse])
async def get_session_events(session_id: uuid.UUID, user: CurrentUser, machine: SessionMachine):
    """Audit trail of the session's transitions, answers and skips, oldest first."""
    events = await machine.get_session_events(user.id, session_id)
    return [SessionEventResponse.from_model(e) for e in events]
