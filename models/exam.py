from sqlalchemy import Column, Integer, String, Text, Boolean, Numeric, ForeignKey, DateTime, UniqueConstraint, CheckConstraint, func
from models.base import Base, TimestampMixin

class Exam(Base, TimestampMixin):
    __tablename__ = "exams"

    exam_id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_published = Column(Boolean, default=False, nullable=False)
    created_by = Column(Integer, ForeignKey("instructors.instructor_id"), index=True, nullable=False)

class Stage(Base):
    __tablename__ = "stages"
    __table_args__ = (
        # stage_order is dense and 1-based within an exam
        UniqueConstraint("exam_id", "stage_order", name="uq_stages_exam_order"),
        CheckConstraint("passing_score >= 0 AND passing_score <= 100", name="ck_stages_passing_score"),
    )

    stage_id = Column(Integer, primary_key=True)
    exam_id = Column(Integer, ForeignKey("exams.exam_id"), index=True, nullable=False)
    name = Column(String(255), nullable=True)
    stage_order = Column(Integer, nullable=False)
    passing_score = Column(Numeric(5, 2), nullable=False)  # percentage, 0-100
    time_limit = Column(Integer, nullable=True)  # minutes

class Question(Base):
    __tablename__ = "questions"

    question_id = Column(Integer, primary_key=True)
    stage_id = Column(Integer, ForeignKey("stages.stage_id"), index=True, nullable=False)
    question_text = Column(Text, nullable=False)
    correct_answer = Column(String(255), nullable=False)
    explanation = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

class QuestionOption(Base):
    __tablename__ = "question_options"

    option_id = Column(Integer, primary_key=True)
    question_id = Column(Integer, ForeignKey("questions.question_id"), index=True, nullable=False)
    option_label = Column(String(10), nullable=True)
    option_text = Column(Text, nullable=False)
