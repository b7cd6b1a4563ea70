"""
Pytest configuration and fixtures for the exam backend tests.
"""
import sys
import os
from types import SimpleNamespace

import pytest
import pytest_asyncio

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Settings require a database URL at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from db.session import build_engine, build_sessionmaker
from models.base import Base
from models.user import Student, Instructor
from models.exam import Exam, Stage, Question, QuestionOption
from models import session, answer, progress  # noqa: F401  register tables

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def engine():
    engine = build_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def create_exam(db, stages, published=True, name="Algebra Basics"):
    """
    Create an exam with one stage per (passing_score, question_count, time_limit)
    tuple. Every question's correct answer is "A".
    """
    instructor = Instructor(name="Dr. Rivera", email=f"rivera+{name}@example.com", password_hash="x")
    db.add(instructor)
    await db.flush()

    exam = Exam(name=name, description="Staged exam", is_published=published, created_by=instructor.instructor_id)
    db.add(exam)
    await db.flush()

    created = []
    for order, (passing_score, question_count, time_limit) in enumerate(stages, start=1):
        stage = Stage(exam_id=exam.exam_id, name=f"Stage {order}", stage_order=order,
                      passing_score=passing_score, time_limit=time_limit)
        db.add(stage)
        await db.flush()

        question_ids = []
        for n in range(question_count):
            question = Question(stage_id=stage.stage_id, question_text=f"S{order} Q{n + 1}",
                                correct_answer="A", explanation=f"Explanation {n + 1}")
            db.add(question)
            await db.flush()
            for label in ("A", "B", "C"):
                db.add(QuestionOption(question_id=question.question_id, option_label=label,
                                      option_text=f"Option {label}"))
            question_ids.append(question.question_id)

        created.append(SimpleNamespace(stage_id=stage.stage_id, stage_order=order,
                                       passing_score=passing_score, question_ids=question_ids))

    await db.commit()
    return SimpleNamespace(exam_id=exam.exam_id, stages=created)


@pytest_asyncio.fixture
async def student(db):
    student = Student(name="Amina", email="amina@example.com", password_hash="x")
    db.add(student)
    await db.commit()
    return student.student_id


@pytest_asyncio.fixture
async def exam(db):
    """Three stages: 5 questions at 60%, 4 at 70%, 3 at 80%."""
    return await create_exam(db, [(60, 5, 10), (70, 4, 15), (80, 3, 20)])


@pytest.fixture
def exam_factory(db):
    async def factory(stages, published=True, name="Another Exam"):
        return await create_exam(db, stages, published=published, name=name)
    return factory
