from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index, CheckConstraint, text, func
from models.base import Base

IN_PROGRESS = "in_progress"
COMPLETED = "completed"

class ExamSession(Base):
    __tablename__ = "exam_sessions"
    __table_args__ = (
        CheckConstraint("status IN ('in_progress', 'completed')", name="ck_exam_sessions_status"),
    )

    session_id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("students.student_id"), index=True, nullable=False)
    exam_id = Column(Integer, ForeignKey("exams.exam_id"), index=True, nullable=False)
    current_stage = Column(Integer, nullable=False)  # stage_order being attempted
    status = Column(String(20), default=IN_PROGRESS, server_default=IN_PROGRESS, nullable=False)
    start_time = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)

# At most one in-progress attempt per (student, exam, stage). Also the
# conflict target used when a session is created.
ACTIVE_SESSION_PREDICATE = text("status = 'in_progress'")

Index(
    "uq_exam_sessions_active_attempt",
    ExamSession.student_id,
    ExamSession.exam_id,
    ExamSession.current_stage,
    unique=True,
    postgresql_where=ACTIVE_SESSION_PREDICATE,
    sqlite_where=ACTIVE_SESSION_PREDICATE,
)
