from sqlalchemy import Column, Integer, ForeignKey, DateTime, UniqueConstraint, func
from models.base import Base

class StudentStageProgress(Base):
    __tablename__ = "student_stage_progress"
    __table_args__ = (
        UniqueConstraint("student_id", "exam_id", name="uq_student_stage_progress_student_exam"),
    )

    progress_id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("students.student_id"), index=True, nullable=False)
    exam_id = Column(Integer, ForeignKey("exams.exam_id"), nullable=False)
    # Highest stage_order the student may enter; never decreases
    current_stage_order = Column(Integer, default=1, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
