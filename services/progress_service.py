from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, case
from models.progress import StudentStageProgress
from models.exam import Stage
from db.session import insert_for
from core.logger import logger

DEFAULT_UNLOCKED_STAGE = 1

class ProgressService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_unlocked_stage(self, student_id: int, exam_id: int) -> int:
        """Highest stage_order the student may enter. Only stage 1 is open before any pass."""
        result = await self.db.execute(
            select(StudentStageProgress.current_stage_order).filter(
                StudentStageProgress.student_id == student_id,
                StudentStageProgress.exam_id == exam_id,
            )
        )
        current = result.scalar_one_or_none()
        return DEFAULT_UNLOCKED_STAGE if current is None else current

    async def get_max_stage_order(self, exam_id: int) -> int:
        result = await self.db.execute(select(func.max(Stage.stage_order)).filter(Stage.exam_id == exam_id))
        return result.scalar() or 0

    async def advance(self, student_id: int, exam_id: int, candidate_stage_order: int):
        """
        Raise the unlocked stage to candidate_stage_order unless it is already higher.

        Single INSERT ... ON CONFLICT statement, so concurrent advances keep the
        maximum. The ceiling (max stage_order + 1) is the caller's job.
        """
        progress = StudentStageProgress.__table__
        stmt = insert_for(self.db, progress).values(
            student_id=student_id,
            exam_id=exam_id,
            current_stage_order=candidate_stage_order,
        )
        existing = progress.c.current_stage_order
        proposed = stmt.excluded.current_stage_order
        stmt = stmt.on_conflict_do_update(
            index_elements=["student_id", "exam_id"],
            set_={
                "current_stage_order": case((proposed > existing, proposed), else_=existing),
                "updated_at": func.now(),
            },
        )
        await self.db.execute(stmt)
        logger.info("Stage progress advanced", student_id=student_id, exam_id=exam_id,
                    candidate_stage_order=candidate_stage_order)
