"""term_results

Revision ID: 0003_term_results
Revises: 0002_seed_admin
Create Date: 2026-10-19 14:30:00.000000

Adds compiled term results (per-student average and class position for a
term) and the TERM_RESULTS_COMPILED audit action.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0003_term_results'
down_revision: Union[str, None] = '0002_seed_admin'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create term_results and extend the audit action enum."""
    print("📊 Creating term_results...")

    op.execute("ALTER TYPE auditaction ADD VALUE IF NOT EXISTS 'TERM_RESULTS_COMPILED'")

    op.create_table(
        'term_results',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('student_id', sa.BigInteger(), nullable=False),
        sa.Column('term_id', sa.BigInteger(), nullable=False),
        sa.Column('class_name', sa.String(length=50), nullable=False),
        sa.Column('subjects_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_score', sa.DECIMAL(7, 2), nullable=False, server_default='0'),
        sa.Column('average_score', sa.DECIMAL(5, 2), nullable=False, server_default='0'),
        sa.Column('position', sa.Integer(), nullable=True),
        sa.Column('teacher_comment', sa.Text(), nullable=True),
        sa.Column('principal_comment', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['term_id'], ['terms.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('student_id', 'term_id', name='uq_term_result_student_term'),
    )
    op.create_index('ix_term_results_student_id', 'term_results', ['student_id'])
    op.create_index('ix_term_results_class_term', 'term_results', ['class_name', 'term_id'])

    print("✅ term_results created")


def downgrade() -> None:
    op.drop_index('ix_term_results_class_term', table_name='term_results')
    op.drop_index('ix_term_results_student_id', table_name='term_results')
    op.drop_table('term_results')
    # PostgreSQL cannot drop a single enum value; TERM_RESULTS_COMPILED stays
