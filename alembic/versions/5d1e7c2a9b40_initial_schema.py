"""initial schema: profile records, commit ledger, temporal events

Revision ID: 5d1e7c2a9b40
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '5d1e7c2a9b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(*names: str) -> list:
    return [
        sa.Column(name, sa.TIMESTAMP(timezone=True), server_default=sa.text('NOW()'), nullable=False)
        for name in names
    ]


def _canonical_table(name: str, *extra: sa.Column) -> None:
    op.create_table(
        name,
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('normalized_name', sa.String(), nullable=False,
                  comment='Lowercased, whitespace-collapsed name used for deduplication'),
        sa.Column('verified', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('attributes', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        *extra,
        *_timestamps('created_at'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(f'ix_{name}_normalized_name', name, ['normalized_name'], unique=True)


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('external_user_id', sa.String(), nullable=False, comment='Identity provider subject'),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('full_name', sa.String(), nullable=True),
        *_timestamps('created_at', 'updated_at'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_user_id'),
    )

    _canonical_table(
        'companies',
        sa.Column('industry', sa.String(), nullable=True),
        sa.Column('website', sa.String(), nullable=True),
        sa.Column('location', sa.String(), nullable=True),
    )
    _canonical_table('skills', sa.Column('category', sa.String(), nullable=True))
    _canonical_table(
        'institutions',
        sa.Column('type', sa.String(), nullable=True),
        sa.Column('country', sa.String(), nullable=True),
    )

    op.create_table(
        'work_experiences',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('company_id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('is_current', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('source_commit_id', sa.UUID(), nullable=True, comment='Commit that materialized this row'),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_work_experiences_user_id', 'work_experiences', ['user_id'])
    op.create_index('ix_work_experiences_company_id', 'work_experiences', ['company_id'])

    op.create_table(
        'user_skills',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('skill_id', sa.UUID(), nullable=False),
        sa.Column('proficiency_level', sa.String(), nullable=True),
        sa.Column('years_of_experience', sa.Integer(), nullable=True),
        sa.Column('is_showcase', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['skill_id'], ['skills.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'skill_id', name='uq_user_skills_user_skill'),
    )
    op.create_index('ix_user_skills_user_id', 'user_skills', ['user_id'])
    op.create_index('ix_user_skills_skill_id', 'user_skills', ['skill_id'])

    op.create_table(
        'user_education',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('institution_id', sa.UUID(), nullable=False),
        sa.Column('degree', sa.String(), nullable=True),
        sa.Column('field_of_study', sa.String(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('grade', sa.String(), nullable=True),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['institution_id'], ['institutions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_education_user_id', 'user_education', ['user_id'])
    op.create_index('ix_user_education_institution_id', 'user_education', ['institution_id'])

    op.create_table(
        'objectives',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(), nullable=True),
        sa.Column('priority', sa.String(), server_default='medium', nullable=False),
        sa.Column('timeframe', sa.String(), nullable=True),
        sa.Column('target_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(), server_default='active', nullable=False),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_objectives_user_id', 'objectives', ['user_id'])

    op.create_table(
        'key_results',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('objective_id', sa.UUID(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('measurement_type', sa.String(), server_default='number', nullable=False),
        sa.Column('target_value', sa.Float(), nullable=True),
        sa.Column('current_value', sa.Float(), server_default='0', nullable=False),
        sa.Column('unit', sa.String(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(), server_default='not_started', nullable=False),
        *_timestamps('created_at'),
        sa.ForeignKeyConstraint(['objective_id'], ['objectives.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_key_results_objective_id', 'key_results', ['objective_id'])

    op.create_table(
        'commit_batches',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('batch_title', sa.String(), nullable=False),
        sa.Column('batch_type', sa.String(), server_default='chat_session', nullable=False,
                  comment='Type: voice_session, chat_session, document_upload, manual'),
        sa.Column('session_summary', sa.Text(), nullable=True),
        sa.Column('ai_insights', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('session_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('batch_status', sa.String(), server_default='active', nullable=False,
                  comment='Status: active, completed, archived'),
        sa.Column('total_commits', sa.Integer(), server_default='0', nullable=False),
        sa.Column('pending_commits', sa.Integer(), server_default='0', nullable=False),
        sa.Column('approved_commits', sa.Integer(), server_default='0', nullable=False),
        sa.Column('rejected_commits', sa.Integer(), server_default='0', nullable=False),
        sa.Column('committed_commits', sa.Integer(), server_default='0', nullable=False),
        *_timestamps('created_at', 'updated_at'),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            'total_commits = pending_commits + approved_commits + rejected_commits + committed_commits',
            name='ck_commit_batches_counters_balanced',
        ),
    )
    op.create_index('ix_commit_batches_user_id', 'commit_batches', ['user_id'])

    op.create_table(
        'conversation_commits',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('batch_id', sa.UUID(), nullable=True),
        sa.Column('conversation_id', sa.String(), nullable=True),
        sa.Column('extraction_type', sa.String(), nullable=False,
                  comment='Type: skill, experience, education, objective, key_result'),
        sa.Column('confidence', sa.Float(), nullable=False),
        sa.Column('original_text_snippet', sa.Text(), nullable=False),
        sa.Column('extracted_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('target_layer', sa.String(), server_default='surface', nullable=False),
        sa.Column('status', sa.String(), server_default='pending', nullable=False,
                  comment='Status: pending, approved, rejected, committed'),
        sa.Column('commit_message', sa.Text(), nullable=True),
        sa.Column('suggested_edits', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('review_notes', sa.Text(), nullable=True),
        sa.Column('reviewed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('committed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps('created_at', 'updated_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['batch_id'], ['commit_batches.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('confidence >= 0 AND confidence <= 1', name='ck_conversation_commits_confidence'),
    )
    op.create_index('ix_conversation_commits_user_id', 'conversation_commits', ['user_id'])
    op.create_index('ix_conversation_commits_batch_id', 'conversation_commits', ['batch_id'])
    op.create_index('ix_conversation_commits_user_status', 'conversation_commits', ['user_id', 'status'])

    op.create_table(
        'temporal_events',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('entity_id', sa.String(), nullable=False),
        sa.Column('entity_name', sa.String(), nullable=True),
        sa.Column('relation_type', sa.String(), nullable=False,
                  comment='Type: job, skill, education, certification, project, okr, todo'),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('t_valid', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('t_invalid', sa.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps('t_created'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_temporal_events_user_valid', 'temporal_events', ['user_id', 't_valid'])
    # At most one open interval per (user, entity, relation)
    op.create_index(
        'uq_temporal_events_open',
        'temporal_events',
        ['user_id', 'entity_id', 'relation_type'],
        unique=True,
        postgresql_where=sa.text('t_invalid IS NULL'),
    )

    op.create_table(
        'usage_counters',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('metric', sa.String(), nullable=False),
        sa.Column('value', sa.Integer(), server_default='0', nullable=False),
        *_timestamps('updated_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'metric', name='uq_usage_counters_user_metric'),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('usage_counters')
    op.drop_index('uq_temporal_events_open', table_name='temporal_events')
    op.drop_index('ix_temporal_events_user_valid', table_name='temporal_events')
    op.drop_table('temporal_events')
    op.drop_index('ix_conversation_commits_user_status', table_name='conversation_commits')
    op.drop_index('ix_conversation_commits_batch_id', table_name='conversation_commits')
    op.drop_index('ix_conversation_commits_user_id', table_name='conversation_commits')
    op.drop_table('conversation_commits')
    op.drop_index('ix_commit_batches_user_id', table_name='commit_batches')
    op.drop_table('commit_batches')
    op.drop_index('ix_key_results_objective_id', table_name='key_results')
    op.drop_table('key_results')
    op.drop_index('ix_objectives_user_id', table_name='objectives')
    op.drop_table('objectives')
    op.drop_index('ix_user_education_institution_id', table_name='user_education')
    op.drop_index('ix_user_education_user_id', table_name='user_education')
    op.drop_table('user_education')
    op.drop_index('ix_user_skills_skill_id', table_name='user_skills')
    op.drop_index('ix_user_skills_user_id', table_name='user_skills')
    op.drop_table('user_skills')
    op.drop_index('ix_work_experiences_company_id', table_name='work_experiences')
    op.drop_index('ix_work_experiences_user_id', table_name='work_experiences')
    op.drop_table('work_experiences')
    for name in ('institutions', 'skills', 'companies'):
        op.drop_index(f'ix_{name}_normalized_name', table_name=name)
        op.drop_table(name)
    op.drop_table('users')
