"""initial_schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

Creates the results schema:
- users, students, subjects, terms
- exams, questions, exam_questions, student_exam_attempts, student_answers
- results (one row per student/subject/term, with CBT linkage)
- notifications, audit_logs
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    ]


def upgrade() -> None:
    """Create all tables."""
    print("📚 Creating results schema...")

    user_role = sa.Enum('admin', 'teacher', 'student', name='userrole')
    question_type = sa.Enum('multiple_choice', 'true_false', 'fill_blank', 'essay', name='questiontype')
    attempt_status = sa.Enum('not_started', 'in_progress', 'completed', 'abandoned', name='attemptstatus')
    audit_action = sa.Enum(
        'USER_CREATED', 'USER_LOGIN',
        'RESULT_CREATED', 'RESULT_UPDATED', 'RESULT_DELETED', 'RESULT_BULK_SAVED', 'POSITIONS_RECOMPUTED',
        'CBT_SYNCED', 'CBT_REVERTED', 'CBT_OVERRIDDEN',
        'DATA_CREATED', 'DATA_UPDATED',
        name='auditaction',
    )

    # 1. Accounts and academic records
    op.create_table(
        'users',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('username', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('password_hash', sa.Text(), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'students',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=True),
        sa.Column('admission_number', sa.String(length=50), nullable=False),
        sa.Column('student_name', sa.String(length=255), nullable=False),
        sa.Column('class_name', sa.String(length=50), nullable=False),
        sa.Column('parent_name', sa.String(length=255), nullable=True),
        sa.Column('parent_phone_no', sa.String(length=50), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('user_id'),
    )
    op.create_index('ix_students_admission_number', 'students', ['admission_number'], unique=True)
    op.create_index('ix_students_class_name', 'students', ['class_name'])

    op.create_table(
        'subjects',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.UniqueConstraint('code'),
    )

    op.create_table(
        'terms',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('session_name', sa.String(length=20), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('is_current', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_terms_is_current', 'terms', ['is_current'])

    # 2. CBT
    op.create_table(
        'exams',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('subject_id', sa.BigInteger(), nullable=False),
        sa.Column('term_id', sa.BigInteger(), nullable=True),
        sa.Column('teacher_id', sa.BigInteger(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('pass_percentage', sa.DECIMAL(5, 2), nullable=False, server_default='60'),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['subject_id'], ['subjects.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['term_id'], ['terms.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['teacher_id'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_exams_subject_id', 'exams', ['subject_id'])
    op.create_index('ix_exams_term_id', 'exams', ['term_id'])

    op.create_table(
        'questions',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('subject_id', sa.BigInteger(), nullable=False),
        sa.Column('question_type', question_type, nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('options', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('correct_answer', sa.Text(), nullable=True),
        sa.Column('marks', sa.DECIMAL(6, 2), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['subject_id'], ['subjects.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_questions_subject_id', 'questions', ['subject_id'])

    op.create_table(
        'exam_questions',
        sa.Column('exam_id', sa.BigInteger(), nullable=False),
        sa.Column('question_id', sa.BigInteger(), nullable=False),
        sa.Column('question_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('marks_allocated', sa.DECIMAL(6, 2), nullable=False),
        sa.PrimaryKeyConstraint('exam_id', 'question_id'),
        sa.ForeignKeyConstraint(['exam_id'], ['exams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['question_id'], ['questions.id'], ondelete='CASCADE'),
    )

    op.create_table(
        'student_exam_attempts',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('exam_id', sa.BigInteger(), nullable=False),
        sa.Column('student_id', sa.BigInteger(), nullable=False),
        sa.Column('status', attempt_status, nullable=False, server_default='not_started'),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('time_taken', sa.Integer(), nullable=True),
        sa.Column('total_score', sa.DECIMAL(8, 2), nullable=False, server_default='0'),
        sa.Column('percentage', sa.DECIMAL(5, 2), nullable=False, server_default='0'),
        sa.Column('auto_submitted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ip_address', sa.String(length=50), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['exam_id'], ['exams.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('exam_id', 'student_id', name='uq_attempt_exam_student'),
    )
    op.create_index('ix_student_exam_attempts_exam_id', 'student_exam_attempts', ['exam_id'])
    op.create_index('ix_student_exam_attempts_student_id', 'student_exam_attempts', ['student_id'])
    op.create_index('ix_student_exam_attempts_status', 'student_exam_attempts', ['status'])

    op.create_table(
        'student_answers',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('attempt_id', sa.BigInteger(), nullable=False),
        sa.Column('question_id', sa.BigInteger(), nullable=False),
        sa.Column('answer_text', sa.Text(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.Column('marks_obtained', sa.DECIMAL(6, 2), nullable=False, server_default='0'),
        sa.Column('time_spent', sa.Integer(), nullable=True),
        sa.Column('is_flagged', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['attempt_id'], ['student_exam_attempts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['question_id'], ['questions.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('attempt_id', 'question_id', name='uq_answer_attempt_question'),
    )
    op.create_index('ix_student_answers_attempt_id', 'student_answers', ['attempt_id'])

    # 3. Results
    op.create_table(
        'results',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('student_id', sa.BigInteger(), nullable=False),
        sa.Column('subject_id', sa.BigInteger(), nullable=False),
        sa.Column('term_id', sa.BigInteger(), nullable=False),
        sa.Column('teacher_id', sa.BigInteger(), nullable=True),
        sa.Column('ca_score', sa.DECIMAL(5, 2), nullable=False, server_default='0'),
        sa.Column('exam_score', sa.DECIMAL(5, 2), nullable=False, server_default='0'),
        sa.Column('total_score', sa.DECIMAL(5, 2), nullable=False, server_default='0'),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('remark', sa.String(length=255), nullable=True),
        sa.Column('teacher_comment', sa.Text(), nullable=True),
        sa.Column('cbt_exam_attempt_id', sa.BigInteger(), nullable=True),
        sa.Column('is_cbt_exam', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('manual_exam_score', sa.DECIMAL(5, 2), nullable=True),
        sa.Column('cbt_synced_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['subject_id'], ['subjects.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['term_id'], ['terms.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['teacher_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['cbt_exam_attempt_id'], ['student_exam_attempts.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('student_id', 'subject_id', 'term_id', name='uq_result_student_subject_term'),
    )
    op.create_index('ix_results_student_id', 'results', ['student_id'])
    op.create_index('ix_results_cohort', 'results', ['subject_id', 'term_id'])
    op.create_index('ix_results_cbt_exam_attempt_id', 'results', ['cbt_exam_attempt_id'])

    # 4. Notifications and audit
    op.create_table(
        'notifications',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('sender_id', sa.BigInteger(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('notification_type', sa.String(length=50), nullable=False),
        sa.Column('reference_id', sa.BigInteger(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_notification_type', 'notifications', ['notification_type'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=True),
        sa.Column('action', audit_action, nullable=False),
        sa.Column('resource_type', sa.String(length=100), nullable=False),
        sa.Column('resource_id', sa.String(length=100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('extra_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('ip_address', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])

    print("✅ Results schema created")


def downgrade() -> None:
    """Drop all tables."""
    for table in (
        'audit_logs',
        'notifications',
        'results',
        'student_answers',
        'student_exam_attempts',
        'exam_questions',
        'questions',
        'exams',
        'terms',
        'subjects',
        'students',
        'users',
    ):
        op.drop_table(table)

    for enum_name in ('auditaction', 'attemptstatus', 'questiontype', 'userrole'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
