import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from models.answer import StudentAnswer
from models.session import ExamSession, COMPLETED, IN_PROGRESS
from core.exceptions import NotFoundError
from services.progress_service import ProgressService
from services.scoring import SubmittedAnswer
from services.session_service import SessionService
from services.submission_service import SubmissionService


@pytest.mark.asyncio
async def test_resolve_session_reuses_in_progress_until_completed(db, student, exam):
    sessions = SessionService(db)

    first = await sessions.resolve_session(student, exam.exam_id, 1)
    await db.commit()
    second = await sessions.resolve_session(student, exam.exam_id, 1)
    await db.commit()
    assert first == second

    await sessions.complete_session(first)
    await db.commit()
    third = await sessions.resolve_session(student, exam.exam_id, 1)
    await db.commit()
    assert third != first

    completed = await sessions.get_session(first)
    assert completed.status == COMPLETED
    assert completed.end_time is not None
    assert (await sessions.get_session(third)).status == IN_PROGRESS


@pytest.mark.asyncio
async def test_sessions_are_per_stage(db, student, exam):
    sessions = SessionService(db)
    stage_one = await sessions.resolve_session(student, exam.exam_id, 1)
    stage_two = await sessions.resolve_session(student, exam.exam_id, 2)
    assert stage_one != stage_two


@pytest.mark.asyncio
async def test_completed_session_cannot_be_completed_again(db, student, exam):
    sessions = SessionService(db)
    session_id = await sessions.resolve_session(student, exam.exam_id, 1)
    await sessions.complete_session(session_id)
    with pytest.raises(NotFoundError):
        await sessions.complete_session(session_id)


@pytest.mark.asyncio
async def test_answer_upsert_keeps_latest_selection(db, student, exam):
    question_id = exam.stages[0].question_ids[0]
    session_id = await SessionService(db).resolve_session(student, exam.exam_id, 1)
    submissions = SubmissionService(db)

    await submissions.save_answers(session_id, [SubmittedAnswer(question_id, "B", False)])
    await submissions.save_answers(session_id, [SubmittedAnswer(question_id, "A", True)])
    await db.commit()

    rows = (await db.execute(
        select(StudentAnswer).filter(StudentAnswer.session_id == session_id, StudentAnswer.question_id == question_id)
    )).scalars().all()
    assert len(rows) == 1
    assert rows[0].selected_answer == "A"
    assert rows[0].is_correct is True


@pytest.mark.asyncio
async def test_unlocked_stage_defaults_to_one(db, student, exam):
    assert await ProgressService(db).get_unlocked_stage(student, exam.exam_id) == 1


@pytest.mark.asyncio
async def test_progress_is_monotonic(db, student, exam):
    progress = ProgressService(db)
    for candidate in (3, 2, 5, 4, 1):
        await progress.advance(student, exam.exam_id, candidate)
        await db.commit()
    assert await progress.get_unlocked_stage(student, exam.exam_id) == 5


@pytest.mark.asyncio
async def test_progress_rows_are_per_exam(db, student, exam):
    progress = ProgressService(db)
    await progress.advance(student, exam.exam_id, 3)
    await db.commit()
    assert await progress.get_unlocked_stage(student, exam.exam_id + 1) == 1


@pytest.mark.asyncio
async def test_max_stage_order(db, exam):
    progress = ProgressService(db)
    assert await progress.get_max_stage_order(exam.exam_id) == 3
    assert await progress.get_max_stage_order(exam.exam_id + 100) == 0


@pytest.mark.asyncio
async def test_second_in_progress_session_violates_unique_index(db, student, exam):
    db.add(ExamSession(student_id=student, exam_id=exam.exam_id, current_stage=1, status=IN_PROGRESS))
    await db.commit()

    db.add(ExamSession(student_id=student, exam_id=exam.exam_id, current_stage=1, status=IN_PROGRESS))
    with pytest.raises(IntegrityError):
        await db.commit()
    await db.rollback()

    # Completed attempts at the same stage are not limited
    db.add(ExamSession(student_id=student, exam_id=exam.exam_id, current_stage=1, status=COMPLETED))
    db.add(ExamSession(student_id=student, exam_id=exam.exam_id, current_stage=1, status=COMPLETED))
    await db.commit()


@pytest.mark.asyncio
async def test_resolve_session_reads_back_row_created_concurrently(db, student, exam):
    sessions = SessionService(db)
    existing = await sessions.resolve_session(student, exam.exam_id, 1)
    await db.commit()

    # Simulate another request inserting between our lookup and our insert
    real_lookup = sessions.get_active_session
    calls = []

    async def stale_lookup(*args):
        calls.append(args)
        if len(calls) == 1:
            return None
        return await real_lookup(*args)

    sessions.get_active_session = stale_lookup
    resolved = await sessions.resolve_session(student, exam.exam_id, 1)

    assert resolved == existing
    assert len(calls) == 2
