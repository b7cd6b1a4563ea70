import asyncio
from dataclasses import dataclass
from typing import Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError, InterfaceError, TimeoutError as PoolTimeoutError
from models.exam import Stage, Question
from models.answer import StudentAnswer
from db.session import insert_for
from services.scoring import SubmittedAnswer, StageScore, score_stage, verify_answers
from services.session_service import SessionService
from services.progress_service import ProgressService
from core.exceptions import ValidationError, InvariantViolation, TransientStoreError
from core.config import settings
from core.logger import logger


@dataclass(frozen=True)
class SubmissionResult:
    session_id: int
    score: StageScore
    unlocked_stage: int


class SubmissionService:
    """
    Handles a stage submission end to end: resolve the attempt, store the
    answers, close the attempt, score it and unlock the next stage on a pass.

    Everything runs in one transaction. Either all of it is committed or
    nothing is.
    """

    def __init__(self, db: AsyncSession, scoring_mode: Optional[str] = None):
        self.db = db
        self.scoring_mode = scoring_mode or settings.SCORING_MODE
        self.sessions = SessionService(db)
        self.progress = ProgressService(db)

    async def submit_stage(
        self,
        student_id: int,
        exam_id: int,
        stage_id: int,
        answers: Iterable[SubmittedAnswer],
    ) -> SubmissionResult:
        try:
            return await asyncio.wait_for(
                self._submit(student_id, exam_id, stage_id, list(answers)),
                timeout=settings.SUBMISSION_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as e:
            await self.db.rollback()
            logger.error("Stage submission timed out", student_id=student_id, stage_id=stage_id)
            raise TransientStoreError("Submission timed out, please retry") from e
        except (OperationalError, InterfaceError, PoolTimeoutError) as e:
            await self.db.rollback()
            logger.error("Database unavailable during submission", student_id=student_id,
                         stage_id=stage_id, error=str(e))
            raise TransientStoreError("Database unavailable, please retry") from e
        except Exception:
            await self.db.rollback()
            raise

    async def _submit(self, student_id: int, exam_id: int, stage_id: int,
                      answers: List[SubmittedAnswer]) -> SubmissionResult:
        stage = await self._load_stage(stage_id)
        if stage.exam_id != exam_id:
            raise ValidationError("stageId does not belong to examId")

        questions = await self._load_questions(stage_id)
        if not questions:
            # Reject before anything is written
            raise InvariantViolation(f"Stage {stage_id} has no questions")

        answers = self._latest_per_question(answers)
        await self._check_questions_exist(answers)
        if self.scoring_mode == "server":
            answers = verify_answers(questions, answers)

        session_id = await self.sessions.resolve_session(student_id, exam_id, stage.stage_order)
        await self.save_answers(session_id, answers)
        await self.sessions.complete_session(session_id)

        score = score_stage(questions, answers, stage.passing_score)
        if score.passed:
            max_stage_order = await self.progress.get_max_stage_order(exam_id)
            next_stage_order = min(stage.stage_order + 1, max_stage_order + 1)
            await self.progress.advance(student_id, exam_id, next_stage_order)
        unlocked_stage = await self.progress.get_unlocked_stage(student_id, exam_id)

        await self.db.commit()
        logger.info(
            "Stage submitted",
            student_id=student_id,
            exam_id=exam_id,
            stage_order=stage.stage_order,
            session_id=session_id,
            score=score.score_percentage,
            passed=score.passed,
            unlocked_stage=unlocked_stage,
        )
        return SubmissionResult(session_id=session_id, score=score, unlocked_stage=unlocked_stage)

    async def _load_stage(self, stage_id: int) -> Stage:
        result = await self.db.execute(select(Stage).filter(Stage.stage_id == stage_id))
        stage = result.scalar_one_or_none()
        if not stage:
            raise ValidationError("Invalid stageId")
        return stage

    async def _load_questions(self, stage_id: int) -> List[Question]:
        result = await self.db.execute(select(Question).filter(Question.stage_id == stage_id))
        return list(result.scalars().all())

    async def _check_questions_exist(self, answers: List[SubmittedAnswer]):
        # Answers may cover questions of other stages, but never unknown ones
        wanted = {a.question_id for a in answers}
        if not wanted:
            return
        result = await self.db.execute(select(Question.question_id).filter(Question.question_id.in_(sorted(wanted))))
        unknown = wanted - set(result.scalars().all())
        if unknown:
            raise ValidationError(f"Unknown questionId: {', '.join(str(q) for q in sorted(unknown))}")

    @staticmethod
    def _latest_per_question(answers: List[SubmittedAnswer]) -> List[SubmittedAnswer]:
        # A question repeated within one request keeps its last answer
        latest = {}
        for answer in answers:
            latest[answer.question_id] = answer
        return list(latest.values())

    async def save_answers(self, session_id: int, answers: List[SubmittedAnswer]):
        """Upsert answers keyed by (session, question). A re-submitted answer overwrites the stored one."""
        if not answers:
            return

        table = StudentAnswer.__table__
        stmt = insert_for(self.db, table).values([
            {
                "session_id": session_id,
                "question_id": a.question_id,
                "selected_answer": a.selected_answer,
                "is_correct": a.is_correct,
            }
            for a in answers
        ])
        stmt = stmt.on_conflict_do_update(
            index_elements=["session_id", "question_id"],
            set_={
                "selected_answer": stmt.excluded.selected_answer,
                "is_correct": stmt.excluded.is_correct,
                "answered_at": func.now(),
            },
        )
        await self.db.execute(stmt)
        logger.info("Answers stored", session_id=session_id, count=len(answers))
