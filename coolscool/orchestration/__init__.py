"""Orchestration layer - quiz session lifecycle."""

from coolscool.orchestration.session_state_machine import (
    AnswerFeedback,
    ClientQuestion,
    CreateSessionInput,
    DifficultyBreakdown,
    EndSessionResult,
    SessionStateMachine,
    SessionSummary,
    SkipResult,
    is_session_timed_out,
    to_client_question,
    valid_operations,
)

__all__ = [
    "AnswerFeedback",
    "ClientQuestion",
    "CreateSessionInput",
    "DifficultyBreakdown",
    "EndSessionResult",
    "SessionStateMachine",
    "SessionSummary",
    "SkipResult",
    "is_session_timed_out",
    "to_client_question",
    "valid_operations",
]
