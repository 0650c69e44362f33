"""users, evaluation criteria, evaluations and summary lookup

Revision ID: 0001_initial
Revises: None
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(120), nullable=True),
        sa.Column('phone', sa.String(40), nullable=True),
        sa.Column('role', sa.String(50), nullable=True),
        sa.Column('evaluation_summary', sa.JSON(none_as_null=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'evaluation_criteria',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('stage', sa.String(20), nullable=False),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('criteria', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.String(64), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_evaluation_criteria_stage', 'evaluation_criteria', ['stage'])

    op.create_table(
        'evaluations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ref_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('ref_application_id', sa.String(64), nullable=True),
        sa.Column('ref_job_board_id', sa.String(64), nullable=True),
        sa.Column('evaluation_stage', sa.String(20), nullable=False),
        sa.Column('criteria_template_id', sa.Integer(), sa.ForeignKey('evaluation_criteria.id'), nullable=False),
        sa.Column('evaluator_id', sa.Integer(), nullable=True),
        sa.Column('evaluator_name', sa.String(120), nullable=True),
        sa.Column('evaluator_role', sa.String(50), nullable=True),
        sa.Column('scores', sa.JSON(), nullable=False),
        sa.Column('total_score', sa.Float(), nullable=False),
        sa.Column('max_total_score', sa.Float(), nullable=False),
        sa.Column('percentage', sa.Float(), nullable=False),
        sa.Column('feedback', sa.Text(), nullable=False),
        sa.Column('criteria_feedback', sa.JSON(), nullable=True),
        sa.Column('evaluation_date', sa.DateTime(), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('is_finalized', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_visible', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index('ix_evaluations_ref_user_id', 'evaluations', ['ref_user_id'])
    op.create_index('ix_evaluations_evaluation_stage', 'evaluations', ['evaluation_stage'])
    op.create_index('ix_evaluations_evaluation_date', 'evaluations', ['evaluation_date'])

    op.create_table(
        'user_evaluation_summaries',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('overall_average', sa.Float(), nullable=False),
        sa.Column('total_evaluations', sa.Integer(), nullable=False),
        sa.Column('summary', sa.JSON(), nullable=False),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table('user_evaluation_summaries')
    op.drop_index('ix_evaluations_evaluation_date', table_name='evaluations')
    op.drop_index('ix_evaluations_evaluation_stage', table_name='evaluations')
    op.drop_index('ix_evaluations_ref_user_id', table_name='evaluations')
    op.drop_table('evaluations')
    op.drop_index('ix_evaluation_criteria_stage', table_name='evaluation_criteria')
    op.drop_table('evaluation_criteria')
    op.drop_table('users')
