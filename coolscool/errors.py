"""
Domain errors raised by the practice engine.

Each family maps to one HTTP status in coolscool.main; services raise them
and never return error sentinels.
"""

from typing import Optional


class CoolscoolError(Exception):
    """Base class for all engine errors."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(CoolscoolError):
    code = "not_found"


class CurriculumNotFoundError(NotFoundError):
    code = "curriculum_not_found"

    def __init__(self, curriculum_id: object):
        super().__init__(f"Curriculum not found: {curriculum_id}")
        self.curriculum_id = curriculum_id


class TopicNotFoundError(NotFoundError):
    code = "topic_not_found"

    def __init__(self, topic_id: str, curriculum_id: Optional[object] = None):
        super().__init__(f"Topic not found in curriculum: {topic_id}")
        self.topic_id = topic_id
        self.curriculum_id = curriculum_id


class ConceptNotFoundError(NotFoundError):
    code = "concept_not_found"

    def __init__(self, concept_id: str, curriculum_id: Optional[object] = None):
        super().__init__(f"Concept not found in curriculum: {concept_id}")
        self.concept_id = concept_id
        self.curriculum_id = curriculum_id


class QuestionNotFoundError(NotFoundError):
    code = "question_not_found"

    def __init__(self, question_id: object):
        super().__init__(f"Question not found: {question_id}")
        self.question_id = question_id


class SessionNotFoundError(NotFoundError):
    code = "session_not_found"

    def __init__(self, session_id: object):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class ForbiddenError(CoolscoolError):
    """The resource belongs to a different user."""

    code = "forbidden"


class InvalidSessionStateError(CoolscoolError):
    """The operation is not legal for the session's current status."""

    code = "invalid_session_state"

    def __init__(self, message: str, status: Optional[str] = None):
        super().__init__(message)
        self.status = status


class ConflictError(CoolscoolError):
    """A concurrent writer won the race for the same row."""

    code = "conflict"


class InsufficientQuestionsError(CoolscoolError):
    code = "insufficient_questions"

    def __init__(self, available: int, requested: int):
        super().__init__(
            f"Only {available} eligible question(s) for a request of {requested}"
        )
        self.available = available
        self.requested = requested


class AnswerValidationError(CoolscoolError):
    """The submitted answer does not have the shape its question type expects."""

    code = "invalid_answer"
