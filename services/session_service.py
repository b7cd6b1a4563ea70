from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from models.session import ExamSession, IN_PROGRESS, COMPLETED, ACTIVE_SESSION_PREDICATE
from db.session import insert_for
from core.exceptions import InvariantViolation, NotFoundError
from core.logger import logger

class SessionService:
    """
    Lifecycle of exam sessions: one attempt at one stage by one student.

    Does not commit. The caller owns the transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_session(self, session_id: int) -> Optional[ExamSession]:
        result = await self.db.execute(
            select(ExamSession)
            .filter(ExamSession.session_id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_active_session(self, student_id: int, exam_id: int, stage_order: int) -> Optional[ExamSession]:
        result = await self.db.execute(
            select(ExamSession).filter(
                ExamSession.student_id == student_id,
                ExamSession.exam_id == exam_id,
                ExamSession.current_stage == stage_order,
                ExamSession.status == IN_PROGRESS,
            )
        )
        return result.scalar_one_or_none()

    async def resolve_session(self, student_id: int, exam_id: int, stage_order: int) -> int:
        """Return the in-progress session for this attempt, creating it if there is none."""
        session = await self.get_active_session(student_id, exam_id, stage_order)
        if session:
            return session.session_id

        # A concurrent request may insert the same attempt first; the partial
        # unique index turns our insert into a no-op and we read theirs.
        sessions = ExamSession.__table__
        stmt = insert_for(self.db, sessions).values(
            student_id=student_id,
            exam_id=exam_id,
            current_stage=stage_order,
            status=IN_PROGRESS,
        )
        stmt = stmt.on_conflict_do_nothing(
            index_elements=["student_id", "exam_id", "current_stage"],
            index_where=ACTIVE_SESSION_PREDICATE,
        ).returning(sessions.c.session_id)
        session_id = (await self.db.execute(stmt)).scalar_one_or_none()

        if session_id is None:
            session = await self.get_active_session(student_id, exam_id, stage_order)
            if session is None:
                raise InvariantViolation("In-progress session vanished while being created")
            return session.session_id

        logger.info("Exam session created", student_id=student_id, exam_id=exam_id,
                    stage_order=stage_order, session_id=session_id)
        return session_id

    async def complete_session(self, session_id: int):
        """Mark an in-progress session completed. Completed sessions are never reopened."""
        result = await self.db.execute(
            update(ExamSession)
            .filter(ExamSession.session_id == session_id, ExamSession.status == IN_PROGRESS)
            .values(status=COMPLETED, end_time=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"No in-progress session {session_id}")
        logger.info("Exam session completed", session_id=session_id)
