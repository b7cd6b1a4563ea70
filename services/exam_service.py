from collections import defaultdict
from typing import Dict, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from models.exam import Exam, Stage, Question, QuestionOption
from models.user import Instructor
from models.session import ExamSession, COMPLETED
from models.answer import StudentAnswer
from core.exceptions import NotFoundError, ValidationError
from core.config import settings


def as_dict(obj) -> dict:
    """Column values of an ORM row, keyed by column name."""
    return {c.key: getattr(obj, c.key) for c in obj.__table__.columns}


class ExamService:
    """Read-only lookups behind the exam browsing, progress and review endpoints."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_published_exams(self) -> List[dict]:
        """Published exams with instructor name, number of stages and total time."""
        stage_count = (
            select(func.count(Stage.stage_id))
            .where(Stage.exam_id == Exam.exam_id)
            .correlate(Exam)
            .scalar_subquery()
        )
        total_time = (
            select(func.coalesce(func.sum(Stage.time_limit), 0))
            .where(Stage.exam_id == Exam.exam_id)
            .correlate(Exam)
            .scalar_subquery()
        )
        result = await self.db.execute(
            select(
                Exam,
                Instructor.name.label("instructor_name"),
                stage_count.label("stage_count"),
                total_time.label("total_time_minutes"),
            )
            .join(Instructor, Exam.created_by == Instructor.instructor_id)
            .filter(Exam.is_published == True)
            .order_by(Exam.exam_id)
        )
        return [
            {
                **as_dict(exam),
                "instructor_name": instructor_name,
                "stage_count": int(count or 0),
                "total_time_minutes": int(minutes or 0),
            }
            for exam, instructor_name, count, minutes in result.all()
        ]

    async def get_exam_details(self, exam_id: int) -> dict:
        result = await self.db.execute(select(Exam).filter(Exam.exam_id == exam_id))
        exam = result.scalar_one_or_none()
        if not exam:
            raise NotFoundError("Not found")

        result = await self.db.execute(
            select(Stage).filter(Stage.exam_id == exam_id).order_by(Stage.stage_order.asc())
        )
        return {**as_dict(exam), "stages": [as_dict(s) for s in result.scalars().all()]}

    async def get_stage(self, stage_id: int) -> dict:
        """
        Stage with its questions and their options.

        When answers are verified server-side the client has no use for the
        correct answers, so they are left out.
        """
        result = await self.db.execute(select(Stage).filter(Stage.stage_id == stage_id))
        stage = result.scalar_one_or_none()
        if not stage:
            raise NotFoundError("Not found")

        result = await self.db.execute(
            select(Question)
            .filter(Question.stage_id == stage_id)
            .order_by(Question.created_at.asc(), Question.question_id.asc())
        )
        questions = [as_dict(q) for q in result.scalars().all()]
        options = await self._options_by_question([q["question_id"] for q in questions])

        hide_answers = settings.SCORING_MODE == "server"
        for q in questions:
            if hide_answers:
                q.pop("correct_answer", None)
                q.pop("explanation", None)
            q["options"] = options.get(q["question_id"], [])

        return {**as_dict(stage), "questions": questions}

    async def list_student_sessions(self, student_id: int) -> List[dict]:
        """All sessions of a student across exams, newest first."""
        result = await self.db.execute(
            select(ExamSession, Exam.name.label("exam_title"), Exam.is_published)
            .join(Exam, ExamSession.exam_id == Exam.exam_id)
            .filter(ExamSession.student_id == student_id)
            .order_by(ExamSession.start_time.desc(), ExamSession.session_id.desc())
        )
        return [
            {**as_dict(session), "exam_title": title, "is_published": is_published}
            for session, title, is_published in result.all()
        ]

    async def list_exam_sessions(self, exam_id: int, student_id: int) -> List[dict]:
        result = await self.db.execute(
            select(ExamSession)
            .filter(ExamSession.exam_id == exam_id, ExamSession.student_id == student_id)
            .order_by(ExamSession.session_id)
        )
        return [as_dict(s) for s in result.scalars().all()]

    async def get_review(self, student_id: int, exam_id: int, stage_id: int, with_options: bool = False) -> dict:
        """Latest completed attempt at a stage with the answers given in it."""
        result = await self.db.execute(select(Stage).filter(Stage.stage_id == stage_id))
        stage = result.scalar_one_or_none()
        if not stage:
            raise NotFoundError("Stage not found")
        if stage.exam_id != exam_id:
            raise ValidationError("stageId does not belong to examId")

        result = await self.db.execute(
            select(ExamSession)
            .filter(
                ExamSession.student_id == student_id,
                ExamSession.exam_id == exam_id,
                ExamSession.current_stage == stage.stage_order,
                ExamSession.status == COMPLETED,
            )
            .order_by(ExamSession.end_time.desc(), ExamSession.session_id.desc())
            .limit(1)
        )
        session = result.scalar_one_or_none()
        if not session:
            raise NotFoundError("No completed session found")

        result = await self.db.execute(
            select(
                StudentAnswer,
                Question.stage_id,
                Question.question_text,
                Question.correct_answer,
                Question.explanation,
            )
            .join(Question, StudentAnswer.question_id == Question.question_id)
            .filter(StudentAnswer.session_id == session.session_id, Question.stage_id == stage_id)
            .order_by(StudentAnswer.question_id)
        )
        answers = [
            {
                **as_dict(answer),
                "stage_id": q_stage_id,
                "question_text": question_text,
                "correct_answer": correct_answer,
                "explanation": explanation,
            }
            for answer, q_stage_id, question_text, correct_answer, explanation in result.all()
        ]

        if with_options:
            options = await self._options_by_question([a["question_id"] for a in answers])
            for a in answers:
                a["options"] = options.get(a["question_id"], [])

        return {"session": as_dict(session), "answers": answers}

    async def _options_by_question(self, question_ids: List[int]) -> Dict[int, List[dict]]:
        grouped = defaultdict(list)
        if not question_ids:
            return grouped

        result = await self.db.execute(
            select(QuestionOption)
            .filter(QuestionOption.question_id.in_(question_ids))
            .order_by(QuestionOption.option_id)
        )
        for option in result.scalars().all():
            grouped[option.question_id].append(as_dict(option))
        return grouped
