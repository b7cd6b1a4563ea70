"""initial exam schema

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-16 10:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

def upgrade() -> None:
    op.create_table(
        'students',
        sa.Column('student_id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_students_email', 'students', ['email'], unique=True)

    op.create_table(
        'instructors',
        sa.Column('instructor_id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_instructors_email', 'instructors', ['email'], unique=True)

    op.create_table(
        'exams',
        sa.Column('exam_id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_published', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('instructors.instructor_id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_exams_created_by', 'exams', ['created_by'])

    op.create_table(
        'stages',
        sa.Column('stage_id', sa.Integer(), primary_key=True),
        sa.Column('exam_id', sa.Integer(), sa.ForeignKey('exams.exam_id'), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('stage_order', sa.Integer(), nullable=False),
        sa.Column('passing_score', sa.Numeric(5, 2), nullable=False),
        sa.Column('time_limit', sa.Integer(), nullable=True),
        sa.UniqueConstraint('exam_id', 'stage_order', name='uq_stages_exam_order'),
        sa.CheckConstraint('passing_score >= 0 AND passing_score <= 100', name='ck_stages_passing_score'),
    )
    op.create_index('ix_stages_exam_id', 'stages', ['exam_id'])

    op.create_table(
        'questions',
        sa.Column('question_id', sa.Integer(), primary_key=True),
        sa.Column('stage_id', sa.Integer(), sa.ForeignKey('stages.stage_id'), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('correct_answer', sa.String(255), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_questions_stage_id', 'questions', ['stage_id'])

    op.create_table(
        'question_options',
        sa.Column('option_id', sa.Integer(), primary_key=True),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('questions.question_id'), nullable=False),
        sa.Column('option_label', sa.String(10), nullable=True),
        sa.Column('option_text', sa.Text(), nullable=False),
    )
    op.create_index('ix_question_options_question_id', 'question_options', ['question_id'])

    op.create_table(
        'exam_sessions',
        sa.Column('session_id', sa.Integer(), primary_key=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.student_id'), nullable=False),
        sa.Column('exam_id', sa.Integer(), sa.ForeignKey('exams.exam_id'), nullable=False),
        sa.Column('current_stage', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), server_default='in_progress', nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('in_progress', 'completed')", name='ck_exam_sessions_status'),
    )
    op.create_index('ix_exam_sessions_student_id', 'exam_sessions', ['student_id'])
    op.create_index('ix_exam_sessions_exam_id', 'exam_sessions', ['exam_id'])
    # At most one in-progress attempt per (student, exam, stage)
    op.create_index(
        'uq_exam_sessions_active_attempt',
        'exam_sessions',
        ['student_id', 'exam_id', 'current_stage'],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
    )

    op.create_table(
        'student_answers',
        sa.Column('answer_id', sa.Integer(), primary_key=True),
        sa.Column('session_id', sa.Integer(), sa.ForeignKey('exam_sessions.session_id'), nullable=False),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('questions.question_id'), nullable=False),
        sa.Column('selected_answer', sa.String(255), nullable=True),
        sa.Column('is_correct', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('answered_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('session_id', 'question_id', name='uq_student_answers_session_question'),
    )
    op.create_index('ix_student_answers_session_id', 'student_answers', ['session_id'])

    op.create_table(
        'student_stage_progress',
        sa.Column('progress_id', sa.Integer(), primary_key=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.student_id'), nullable=False),
        sa.Column('exam_id', sa.Integer(), sa.ForeignKey('exams.exam_id'), nullable=False),
        sa.Column('current_stage_order', sa.Integer(), server_default='1', nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('student_id', 'exam_id', name='uq_student_stage_progress_student_exam'),
    )
    op.create_index('ix_student_stage_progress_student_id', 'student_stage_progress', ['student_id'])

def downgrade() -> None:
    op.drop_table('student_stage_progress')
    op.drop_table('student_answers')
    op.drop_index('uq_exam_sessions_active_attempt', table_name='exam_sessions')
    op.drop_table('exam_sessions')
    op.drop_table('question_options')
    op.drop_table('questions')
    op.drop_table('stages')
    op.drop_table('exams')
    op.drop_table('instructors')
    op.drop_table('students')
