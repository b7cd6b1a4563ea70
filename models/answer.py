from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, DateTime, UniqueConstraint, func
from models.base import Base

class StudentAnswer(Base):
    __tablename__ = "student_answers"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_student_answers_session_question"),
    )

    answer_id = Column(Integer, primary_key=True)
    session_id = Column(Integer, ForeignKey("exam_sessions.session_id"), index=True, nullable=False)
    question_id = Column(Integer, ForeignKey("questions.question_id"), nullable=False)
    selected_answer = Column(String(255), nullable=True)
    is_correct = Column(Boolean, default=False, nullable=False)
    answered_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
