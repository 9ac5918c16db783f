"""
State machine for the quiz session lifecycle.

    created --start--> active
    active  --pause--> paused --resume--> active
    active  --answer/skip--> active
    active|paused --end(completed)--> completed
    active|paused --end(not completed)--> abandoned

Every operation loads the session, checks ownership then status, mutates,
and flushes under the session's version counter. A writer that loaded an
older version fails with ConflictError and the request rolls back.

An exhausted queue does not complete the session; the caller reads
is_session_complete and calls end_session itself.
"""

import random
import uuid
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, Field
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from coolscool.database import flush_or_conflict
from coolscool.engines.mastery import AttemptInput, Grader, MasteryTracker
from coolscool.engines.mastery.grader import match_pairs_as_dict
from coolscool.engines.proficiency import ProficiencyAggregator, ProficiencyDisplay
from coolscool.engines.selection import QuestionHistoryEntry, QuestionSelector
from coolscool.errors import (
    ForbiddenError,
    InsufficientQuestionsError,
    InvalidSessionStateError,
    SessionNotFoundError,
)
from coolscool.kernel.curriculum import DIFFICULTY_ORDER, CurriculumCatalog, Difficulty, QuestionEntry
from coolscool.kernel.events import EventStore, log_session_transition
from coolscool.kernel.models.base import as_utc, generate_uuid, utcnow
from coolscool.kernel.models.curriculum import Question
from coolscool.kernel.models.event_log import EventLog, EventType
from coolscool.kernel.models.session import (
    QuizSession,
    SelectionStrategy,
    SessionAnswer,
    SessionStatus,
    TimeMode,
)
from coolscool.logging_config import get_logger

logger = get_logger(__name__)

# Operation -> statuses it may be called from
_ALLOWED_FROM: Dict[str, FrozenSet[SessionStatus]] = {
    "start": frozenset({SessionStatus.CREATED}),
    "question": frozenset({SessionStatus.ACTIVE}),
    "answer": frozenset({SessionStatus.ACTIVE}),
    "skip": frozenset({SessionStatus.ACTIVE}),
    "pause": frozenset({SessionStatus.ACTIVE}),
    "resume": frozenset({SessionStatus.PAUSED}),
    "end": frozenset({SessionStatus.ACTIVE, SessionStatus.PAUSED}),
}

def valid_operations(status: SessionStatus) -> List[str]:
    """Operations that may be called on a session in the given status."""
    return sorted(op for op, allowed in _ALLOWED_FROM.items() if SessionStatus(status) in allowed)


def is_session_timed_out(quiz_session: QuizSession) -> bool:
    limit = quiz_session.time_limit_ms
    return limit is not None and quiz_session.time_elapsed_ms >= limit


class CreateSessionInput(BaseModel):
    curriculum_id: uuid.UUID
    topic_id: str
    time_mode: TimeMode = TimeMode.UNLIMITED
    question_count: Optional[int] = Field(default=None, ge=1)
    strategy: SelectionStrategy = SelectionStrategy.ADAPTIVE


class ClientQuestion(BaseModel):
    """A queued question as the student sees it: no answers, no explanations."""

    id: uuid.UUID
    question_id: str
    index: int
    total_questions: int
    concept_id: str
    difficulty: Difficulty
    question_type: str
    question_text: str
    options: Optional[List[Dict[str, Any]]] = None
    hint: Optional[str] = None
    match_left: Optional[List[str]] = None
    match_right: Optional[List[str]] = None
    ordering_items: Optional[List[str]] = None


class AnswerFeedback(BaseModel):
    is_correct: bool
    xp_earned: int
    mastery_achieved: bool
    new_difficulty: Difficulty
    correct_answer: Any = None
    explanation: Optional[str] = None
    questions_answered: int
    questions_correct: int
    session_xp: int
    is_session_complete: bool
    next_question: Optional[ClientQuestion] = None


class SkipResult(BaseModel):
    skipped_question_id: uuid.UUID
    questions_skipped: int
    is_session_complete: bool
    next_question: Optional[ClientQuestion] = None


class DifficultyBreakdown(BaseModel):
    answered: int = 0
    correct: int = 0


class SessionSummary(BaseModel):
    session_id: uuid.UUID
    curriculum_id: uuid.UUID
    topic_id: str
    topic_name: str
    status: SessionStatus
    time_mode: TimeMode
    strategy: SelectionStrategy
    total_questions: int
    questions_answered: int
    questions_correct: int
    questions_skipped: int
    xp_earned: int
    time_elapsed_ms: int
    time_limit_ms: Optional[int] = None
    timed_out: bool = False
    by_difficulty: Dict[Difficulty, DifficultyBreakdown]
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class EndSessionResult(BaseModel):
    summary: SessionSummary
    proficiency: ProficiencyDisplay


def to_client_question(
    question: QuestionEntry,
    index: int,
    total_questions: int,
    rng: random.Random,
) -> ClientQuestion:
    """Strip answer data from a question; match and ordering items are shuffled."""
    options = None
    if question.options:
        options = [
            {k: v for k, v in option.items() if k not in ("is_correct", "correct")}
            for option in question.options
        ]

    match_left = match_right = ordering_items = None
    if question.question_type == "match":
        pairs = match_pairs_as_dict(question)
        match_left = list(pairs.keys())
        match_right = list(pairs.values())
        rng.shuffle(match_right)
    elif question.question_type == "ordering":
        ordering_items = list(question.ordering_items or question.correct_answer or [])
        rng.shuffle(ordering_items)

    return ClientQuestion(
        id=question.id,
        question_id=question.question_id,
        index=index,
        total_questions=total_questions,
        concept_id=question.concept_id,
        difficulty=question.difficulty,
        question_type=question.question_type,
        question_text=question.question_text,
        options=options,
        hint=question.hint,
        match_left=match_left,
        match_right=match_right,
        ordering_items=ordering_items,
    )


class SessionStateMachine:
    """Runs quiz sessions and feeds their answers into the mastery ledger."""

    def __init__(
        self,
        session: AsyncSession,
        selector: Optional[QuestionSelector] = None,
        default_question_count: int = 10,
    ):
        self.session = session
        self.selector = selector or QuestionSelector()
        self.default_question_count = default_question_count
        self.catalog = CurriculumCatalog(session)
        self.tracker = MasteryTracker(session, self.catalog)
        self.aggregator = ProficiencyAggregator(session, self.catalog, self.tracker)
        self.event_store = EventStore(session)

    # -- loading and guards -------------------------------------------------

    async def _load_owned(self, user_id: uuid.UUID, session_id: uuid.UUID) -> QuizSession:
        quiz_session = await self.session.get(QuizSession, session_id)
        if quiz_session is None:
            raise SessionNotFoundError(session_id)
        if quiz_session.user_id != user_id:
            raise ForbiddenError("Session belongs to another user")
        return quiz_session

    @staticmethod
    def _require(quiz_session: QuizSession, operation: str) -> None:
        status = quiz_session.status_enum
        if status not in _ALLOWED_FROM[operation]:
            raise InvalidSessionStateError(
                f"Cannot {operation} a session that is {status.value}",
                status=status.value,
            )

    async def _transition(
        self,
        quiz_session: QuizSession,
        to_status: SessionStatus,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        from_status = quiz_session.status_enum
        quiz_session.status = to_status.value
        await log_session_transition(
            self.session,
            quiz_session_id=quiz_session.id,
            user_id=quiz_session.user_id,
            from_status=from_status.value,
            to_status=to_status.value,
            payload=payload,
        )
        await flush_or_conflict(self.session, "quiz session", quiz_session.id)
        logger.info(
            "Session transition",
            extra={
                "session_id": str(quiz_session.id),
                "from_status": from_status.value,
                "to_status": to_status.value,
            },
        )

    async def _client_question_at(self, quiz_session: QuizSession, index: int) -> Optional[ClientQuestion]:
        if index >= quiz_session.total_questions:
            return None
        question = await self.catalog.get_question(uuid.UUID(quiz_session.question_queue[index]))
        return to_client_question(question, index, quiz_session.total_questions, self.selector.rng)

    # -- lifecycle ----------------------------------------------------------

    async def create_session(self, user_id: uuid.UUID, data: CreateSessionInput) -> QuizSession:
        """
        Create a session over a freshly built question queue.

        The requested count is capped to the eligible pool.

        Raises:
            TopicNotFoundError: topic is not part of the curriculum
            InsufficientQuestionsError: no eligible question at all
        """
        topic = await self.catalog.get_topic(data.curriculum_id, data.topic_id)
        concepts = await self.catalog.list_concepts(data.curriculum_id, data.topic_id)
        questions = await self.catalog.list_questions(data.curriculum_id, data.topic_id)
        progress = await self.tracker.get_topic_progress(user_id, data.curriculum_id, data.topic_id)
        history = await self.build_question_history(user_id, data.curriculum_id, data.topic_id)

        count = data.question_count or self.default_question_count
        try:
            queue = self.selector.build_queue(concepts, questions, data.strategy, count, progress, history)
        except InsufficientQuestionsError as exc:
            if exc.available == 0:
                raise
            logger.info(
                "Question count capped to eligible pool",
                extra={"topic_id": data.topic_id, "requested": count, "available": exc.available},
            )
            queue = self.selector.build_queue(
                concepts, questions, data.strategy, exc.available, progress, history
            )

        quiz_session = QuizSession(
            id=generate_uuid(),
            user_id=user_id,
            curriculum_id=data.curriculum_id,
            topic_id_str=topic.topic_id,
            topic_name=topic.topic_name,
            status=SessionStatus.CREATED.value,
            time_mode=data.time_mode.value,
            time_limit_ms=data.time_mode.time_limit_ms,
            strategy=data.strategy.value,
            question_queue=[str(qid) for qid in queue],
            current_question_index=0,
            questions_answered=0,
            questions_correct=0,
            questions_skipped=0,
            xp_earned=0,
            time_elapsed_ms=0,
        )
        self.session.add(quiz_session)
        await log_session_transition(
            self.session,
            quiz_session_id=quiz_session.id,
            user_id=user_id,
            from_status=None,
            to_status=SessionStatus.CREATED.value,
            payload={"topic_id": topic.topic_id, "strategy": data.strategy.value, "total_questions": len(queue)},
        )
        await flush_or_conflict(self.session, "quiz session", quiz_session.id)

        logger.info(
            "Session created",
            extra={
                "session_id": str(quiz_session.id),
                "user_id": str(user_id),
                "topic_id": topic.topic_id,
                "strategy": data.strategy.value,
                "total_questions": len(queue),
            },
        )
        return quiz_session

    async def start_session(self, user_id: uuid.UUID, session_id: uuid.UUID) -> QuizSession:
        quiz_session = await self._load_owned(user_id, session_id)
        self._require(quiz_session, "start")
        quiz_session.started_at = utcnow()
        await self._transition(quiz_session, SessionStatus.ACTIVE)
        return quiz_session

    async def get_session(self, user_id: uuid.UUID, session_id: uuid.UUID) -> QuizSession:
        """Session state; allowed in any status, terminal included."""
        return await self._load_owned(user_id, session_id)

    async def get_current_question(
        self,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
    ) -> Optional[ClientQuestion]:
        """The current question without answer data, or None once the queue is exhausted."""
        quiz_session = await self._load_owned(user_id, session_id)
        self._require(quiz_session, "question")
        return await self._client_question_at(quiz_session, quiz_session.current_question_index)

    async def submit_answer(
        self,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        user_answer: Any,
        time_taken_ms: int = 0,
    ) -> AnswerFeedback:
        """
        Grade the current question, record the attempt and advance the queue.

        Raises:
            SessionNotFoundError, ForbiddenError
            InvalidSessionStateError: session not active, or queue exhausted
            AnswerValidationError: answer shape does not fit the question type
            ConflictError: another request advanced the session first
        """
        quiz_session = await self._load_owned(user_id, session_id)
        self._require(quiz_session, "answer")
        if quiz_session.is_queue_exhausted:
            raise InvalidSessionStateError(
                "No questions left; end the session", status=quiz_session.status
            )

        index = quiz_session.current_question_index
        question = await self.catalog.get_question(uuid.UUID(quiz_session.question_queue[index]))
        grade = Grader.grade(question, user_answer)

        attempt = await self.tracker.record_attempt(
            user_id,
            quiz_session.curriculum_id,
            question.concept_id,
            AttemptInput(
                difficulty=question.difficulty,
                is_correct=grade.is_correct,
                question_id=question.question_id,
                time_taken_ms=time_taken_ms,
            ),
        )
        await self.aggregator.update_topic_progress(
            user_id, quiz_session.curriculum_id, quiz_session.topic_id_str
        )

        self.session.add(
            SessionAnswer(
                session_id=quiz_session.id,
                question_id=question.id,
                question_index=index,
                user_answer=user_answer,
                is_correct=grade.is_correct,
                xp_earned=attempt.xp_earned,
                time_taken_ms=time_taken_ms,
            )
        )
        quiz_session.questions_answered += 1
        quiz_session.questions_correct += 1 if grade.is_correct else 0
        quiz_session.xp_earned += attempt.xp_earned
        quiz_session.current_question_index = index + 1

        await self.event_store.log(
            event_type=EventType.SESSION_ANSWERED,
            entity_type="quiz_session",
            entity_id=quiz_session.id,
            user_id=user_id,
            payload={
                "question_index": index,
                "question_id": question.question_id,
                "is_correct": grade.is_correct,
                "xp_earned": attempt.xp_earned,
            },
        )
        await flush_or_conflict(self.session, "quiz session", quiz_session.id)

        return AnswerFeedback(
            is_correct=grade.is_correct,
            xp_earned=attempt.xp_earned,
            mastery_achieved=attempt.mastery_achieved,
            new_difficulty=attempt.new_difficulty,
            correct_answer=grade.correct_answer,
            explanation=grade.explanation,
            questions_answered=quiz_session.questions_answered,
            questions_correct=quiz_session.questions_correct,
            session_xp=quiz_session.xp_earned,
            is_session_complete=quiz_session.is_queue_exhausted,
            next_question=await self._client_question_at(quiz_session, index + 1),
        )

    async def skip_question(self, user_id: uuid.UUID, session_id: uuid.UUID) -> SkipResult:
        """Advance past the current question. A skip is not an attempt."""
        quiz_session = await self._load_owned(user_id, session_id)
        self._require(quiz_session, "skip")
        if quiz_session.is_queue_exhausted:
            raise InvalidSessionStateError(
                "No questions left; end the session", status=quiz_session.status
            )

        index = quiz_session.current_question_index
        skipped_id = uuid.UUID(quiz_session.question_queue[index])
        quiz_session.questions_skipped += 1
        quiz_session.current_question_index = index + 1

        await self.event_store.log(
            event_type=EventType.SESSION_SKIPPED,
            entity_type="quiz_session",
            entity_id=quiz_session.id,
            user_id=user_id,
            payload={"question_index": index, "question_id": skipped_id},
        )
        await flush_or_conflict(self.session, "quiz session", quiz_session.id)

        return SkipResult(
            skipped_question_id=skipped_id,
            questions_skipped=quiz_session.questions_skipped,
            is_session_complete=quiz_session.is_queue_exhausted,
            next_question=await self._client_question_at(quiz_session, index + 1),
        )

    async def pause_session(
        self,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        elapsed_ms: int,
    ) -> QuizSession:
        # elapsed_ms is reported by the client and stored as given
        quiz_session = await self._load_owned(user_id, session_id)
        self._require(quiz_session, "pause")
        quiz_session.time_elapsed_ms = elapsed_ms
        quiz_session.paused_at = utcnow()
        await self._transition(quiz_session, SessionStatus.PAUSED, {"elapsed_ms": elapsed_ms})
        return quiz_session

    async def resume_session(self, user_id: uuid.UUID, session_id: uuid.UUID) -> QuizSession:
        quiz_session = await self._load_owned(user_id, session_id)
        self._require(quiz_session, "resume")
        quiz_session.paused_at = None
        await self._transition(quiz_session, SessionStatus.ACTIVE)
        return quiz_session

    async def end_session(
        self,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        completed: bool,
        elapsed_ms: Optional[int] = None,
    ) -> EndSessionResult:
        """Complete or abandon the session and report the topic's band."""
        quiz_session = await self._load_owned(user_id, session_id)
        self._require(quiz_session, "end")

        if elapsed_ms is not None:
            quiz_session.time_elapsed_ms = elapsed_ms
        quiz_session.completed_at = utcnow()
        quiz_session.paused_at = None
        to_status = SessionStatus.COMPLETED if completed else SessionStatus.ABANDONED
        await self._transition(
            quiz_session,
            to_status,
            {
                "questions_answered": quiz_session.questions_answered,
                "questions_correct": quiz_session.questions_correct,
                "xp_earned": quiz_session.xp_earned,
            },
        )

        proficiency = await self.aggregator.update_topic_progress(
            user_id, quiz_session.curriculum_id, quiz_session.topic_id_str
        )
        summary = await self._build_summary(quiz_session)
        return EndSessionResult(summary=summary, proficiency=proficiency.to_display())

    # -- read models --------------------------------------------------------

    async def get_session_summary(self, user_id: uuid.UUID, session_id: uuid.UUID) -> SessionSummary:
        quiz_session = await self._load_owned(user_id, session_id)
        return await self._build_summary(quiz_session)

    async def get_session_events(
        self,
        user_id: uuid.UUID,
        session_id: uuid.UUID,
        limit: int = 100,
    ) -> List[EventLog]:
        """The session's audit trail, oldest first. Readable in any status."""
        quiz_session = await self._load_owned(user_id, session_id)
        return await self.event_store.get_entity_history("quiz_session", quiz_session.id, limit=limit)

    async def _build_summary(self, quiz_session: QuizSession) -> SessionSummary:
        result = await self.session.execute(
            select(SessionAnswer.is_correct, Question.difficulty)
            .join(Question, SessionAnswer.question_id == Question.id)
            .where(SessionAnswer.session_id == quiz_session.id)
        )
        by_difficulty = {d: DifficultyBreakdown() for d in DIFFICULTY_ORDER}
        for is_correct, difficulty in result.all():
            bucket = by_difficulty[Difficulty(difficulty)]
            bucket.answered += 1
            bucket.correct += 1 if is_correct else 0

        return SessionSummary(
            session_id=quiz_session.id,
            curriculum_id=quiz_session.curriculum_id,
            topic_id=quiz_session.topic_id_str,
            topic_name=quiz_session.topic_name,
            status=quiz_session.status_enum,
            time_mode=TimeMode(quiz_session.time_mode),
            strategy=SelectionStrategy(quiz_session.strategy),
            total_questions=quiz_session.total_questions,
            questions_answered=quiz_session.questions_answered,
            questions_correct=quiz_session.questions_correct,
            questions_skipped=quiz_session.questions_skipped,
            xp_earned=quiz_session.xp_earned,
            time_elapsed_ms=quiz_session.time_elapsed_ms,
            time_limit_ms=quiz_session.time_limit_ms,
            timed_out=is_session_timed_out(quiz_session),
            by_difficulty=by_difficulty,
            started_at=as_utc(quiz_session.started_at),
            completed_at=as_utc(quiz_session.completed_at),
        )

    async def list_sessions(
        self,
        user_id: uuid.UUID,
        status: Optional[SessionStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[QuizSession], int]:
        """The user's sessions, newest first. Returns (page of sessions, total)."""
        query = select(QuizSession).where(QuizSession.user_id == user_id)
        count_query = select(func.count(QuizSession.id)).where(QuizSession.user_id == user_id)
        if status is not None:
            query = query.where(QuizSession.status == SessionStatus(status).value)
            count_query = count_query.where(QuizSession.status == SessionStatus(status).value)

        total = (await self.session.execute(count_query)).scalar() or 0
        result = await self.session.execute(
            query.order_by(desc(QuizSession.created_at), desc(QuizSession.id))
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def build_question_history(
        self,
        user_id: uuid.UUID,
        curriculum_id: uuid.UUID,
        topic_id: str,
    ) -> Dict[uuid.UUID, QuestionHistoryEntry]:
        """Latest outcome per question over all of the user's finished sessions in a topic."""
        result = await self.session.execute(
            select(QuizSession.id)
            .where(
                QuizSession.user_id == user_id,
                QuizSession.curriculum_id == curriculum_id,
                QuizSession.topic_id_str == topic_id,
                QuizSession.status.in_([SessionStatus.COMPLETED.value, SessionStatus.ABANDONED.value]),
            )
            .order_by(desc(QuizSession.completed_at), desc(QuizSession.created_at))
        )
        session_ids = list(result.scalars().all())
        if not session_ids:
            return {}
        sessions_ago = {sid: rank for rank, sid in enumerate(session_ids, start=1)}

        answers = await self.session.execute(
            select(SessionAnswer.session_id, SessionAnswer.question_id, SessionAnswer.is_correct)
            .where(SessionAnswer.session_id.in_(session_ids))
        )
        history: Dict[uuid.UUID, QuestionHistoryEntry] = {}
        for sid, question_id, is_correct in answers.all():
            ago = sessions_ago[sid]
            existing = history.get(question_id)
            if existing is None or ago < existing.sessions_ago:
                history[question_id] = QuestionHistoryEntry(
                    question_id=question_id, is_correct=is_correct, sessions_ago=ago
                )
        return history
