"""
Pytest fixtures for the practice engine tests.

Every test gets its own file-backed SQLite database under tmp_path, seeded
with one curriculum:

    fractions (topic 1)
        frac-equiv     familiarity, application, exam_style
        frac-compare   familiarity, application, exam_style
        frac-add       familiarity, application
        frac-vocab     familiarity
    decimals (topic 2)
        dec-place      familiarity

Each declared (concept, difficulty) has three questions cycling through the
five question types. Two ineligible questions are added to "fractions" (an
unsupported type and an undeclared difficulty).
"""

import itertools
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Dict, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from coolscool.config import Settings
from coolscool.database import Database
from coolscool.kernel.identity.jwt import JWTManager
from coolscool.kernel.models.curriculum import Concept, Curriculum, Question, Topic
from coolscool.kernel.models.user import User
from coolscool.main import create_app

TEST_SECRET_KEY = "test-secret-key-for-testing-only-0123456789"

FRACTIONS = "fractions"
DECIMALS = "decimals"

CONCEPTS = {
    FRACTIONS: [
        ("frac-equiv", "Equivalent fractions", ["familiarity", "application", "exam_style"]),
        ("frac-compare", "Comparing fractions", ["familiarity", "application", "exam_style"]),
        ("frac-add", "Adding fractions", ["familiarity", "application"]),
        ("frac-vocab", "Fraction vocabulary", ["familiarity"]),
    ],
    DECIMALS: [
        ("dec-place", "Place value", ["familiarity"]),
    ],
}

QUESTION_TYPES = ("mcq", "true_false", "fill_blank", "ordering", "match")
QUESTIONS_PER_LEVEL = 3
ELIGIBLE_FRACTIONS_QUESTIONS = 3 * 3 + 3 * 3 + 2 * 3 + 1 * 3


def question_content(question_type: str) -> Tuple[Dict[str, Any], Any, Any]:
    """Column values for a question of the given type, plus (correct, wrong) submissions."""
    if question_type == "mcq":
        return (
            {
                "question_text": "Which fraction is equivalent to 1/2?",
                "options": [
                    {"id": "a", "text": "1/3"},
                    {"id": "b", "text": "2/4"},
                    {"id": "c", "text": "3/4"},
                ],
                "correct_answer": "b",
            },
            "b",
            "a",
        )
    if question_type == "true_false":
        return (
            {"question_text": "2/4 is equal to 1/2.", "correct_answer": True},
            True,
            False,
        )
    if question_type == "fill_blank":
        return (
            {"question_text": "1/2 is read as ____.", "correct_answer": "one half"},
            "One half.",
            "one third",
        )
    if question_type == "ordering":
        items = ["1/4", "1/2", "3/4"]
        return (
            {
                "question_text": "Order from smallest to largest.",
                "ordering_items": items,
                "correct_answer": items,
            },
            list(items),
            list(reversed(items)),
        )
    pairs = [{"left": "1/2", "right": "0.5"}, {"left": "1/4", "right": "0.25"}]
    return (
        {"question_text": "Match each fraction to its decimal.", "match_pairs": pairs},
        {"1/2": "0.5", "1/4": "0.25"},
        {"1/2": "0.25", "1/4": "0.5"},
    )


@dataclass
class SeedData:
    curriculum_id: uuid.UUID
    student: User
    other_student: User
    # question primary key -> (correct submission, wrong-but-well-formed submission)
    answer_key: Dict[uuid.UUID, Tuple[Any, Any]] = field(default_factory=dict)
    question_types: Dict[uuid.UUID, str] = field(default_factory=dict)

    def correct(self, question_id: uuid.UUID) -> Any:
        return self.answer_key[question_id][0]

    def wrong(self, question_id: uuid.UUID) -> Any:
        return self.answer_key[question_id][1]


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """A fresh file-backed SQLite database with all tables."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'coolscool-test.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def seed(database: Database) -> SeedData:
    """Seed the curriculum and two students, committed."""
    async with database.session() as session:
        student = User(id=uuid.uuid4(), email="student@example.com", display_name="Student")
        other = User(id=uuid.uuid4(), email="other@example.com", display_name="Other Student")
        curriculum = Curriculum(id=uuid.uuid4(), code="maths-y6", name="Year 6 Maths")
        session.add_all([student, other, curriculum])
        # No relationship() links the content tables, so parents are flushed first
        await session.flush()

        data = SeedData(curriculum_id=curriculum.id, student=student, other_student=other)
        type_cycle = itertools.cycle(QUESTION_TYPES)

        for topic_order, (topic_id, topic_name) in enumerate(
            [(FRACTIONS, "Fractions"), (DECIMALS, "Decimals")], start=1
        ):
            topic = Topic(
                id=uuid.uuid4(),
                curriculum_id=curriculum.id,
                topic_id=topic_id,
                topic_name=topic_name,
                topic_order=topic_order,
            )
            session.add(topic)
            await session.flush()

            for concept_order, (concept_id, concept_name, levels) in enumerate(CONCEPTS[topic_id], start=1):
                concept = Concept(
                    id=uuid.uuid4(),
                    curriculum_id=curriculum.id,
                    topic_pk=topic.id,
                    concept_id=concept_id,
                    concept_name=concept_name,
                    concept_order=concept_order,
                    difficulty_levels=levels,
                )
                session.add(concept)
                await session.flush()

                for level in levels:
                    for n in range(1, QUESTIONS_PER_LEVEL + 1):
                        question_type = next(type_cycle)
                        columns, correct, wrong = question_content(question_type)
                        question = Question(
                            id=uuid.uuid4(),
                            curriculum_id=curriculum.id,
                            concept_pk=concept.id,
                            question_id=f"{concept_id}-{level}-{n}",
                            concept_id_str=concept_id,
                            topic_id_str=topic_id,
                            difficulty=level,
                            question_type=question_type,
                            hint="Think about halves.",
                            explanation_correct="Well done.",
                            explanation_incorrect="Look again at the denominators.",
                            **columns,
                        )
                        session.add(question)
                        data.answer_key[question.id] = (correct, wrong)
                        data.question_types[question.id] = question_type

                if concept_id == "frac-equiv":
                    session.add(
                        Question(
                            id=uuid.uuid4(),
                            curriculum_id=curriculum.id,
                            concept_pk=concept.id,
                            question_id="frac-equiv-essay",
                            concept_id_str=concept_id,
                            topic_id_str=topic_id,
                            difficulty="familiarity",
                            question_type="essay",
                            question_text="Explain equivalent fractions.",
                        )
                    )
                if concept_id == "frac-vocab":
                    session.add(
                        Question(
                            id=uuid.uuid4(),
                            curriculum_id=curriculum.id,
                            concept_pk=concept.id,
                            question_id="frac-vocab-exam",
                            concept_id_str=concept_id,
                            topic_id_str=topic_id,
                            difficulty="exam_style",
                            question_type="true_false",
                            question_text="A numerator is the bottom number.",
                            correct_answer=False,
                        )
                    )

        await session.commit()
    return data


@pytest_asyncio.fixture
async def db_session(database: Database, seed: SeedData) -> AsyncGenerator[AsyncSession, None]:
    """A session on the seeded database; left uncommitted work is rolled back."""
    async with database.session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'coolscool-test.db'}",
        secret_key=TEST_SECRET_KEY,
        algorithm="HS256",
        environment="test",
        rate_limit_enabled=False,
    )


@pytest.fixture
def jwt_manager() -> JWTManager:
    """Create a JWT manager for tests."""
    return JWTManager(
        secret_key=TEST_SECRET_KEY,
        algorithm="HS256",
        access_token_expire_minutes=30,
    )


@pytest.fixture
def auth_headers(seed: SeedData, jwt_manager: JWTManager) -> dict:
    """Bearer headers for the seeded student."""
    token, _ = jwt_manager.create_access_token(user_id=seed.student.id, email=seed.student.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers(seed: SeedData, jwt_manager: JWTManager) -> dict:
    token, _ = jwt_manager.create_access_token(
        user_id=seed.other_student.id, email=seed.other_student.email
    )
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(test_settings: Settings, database: Database, seed: SeedData) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to an app built on the seeded test database."""
    app = create_app(settings=test_settings, database=database)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
