"""Initial schema - curriculum, mastery ledger, quiz sessions

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Users (provisioned by the auth service)
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Curriculum content (read-only to the engine)
    op.create_table(
        'curricula',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.String(100), unique=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        'topics',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('curriculum_id', sa.Uuid(), sa.ForeignKey('curricula.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('topic_id', sa.String(50), nullable=False),
        sa.Column('topic_name', sa.String(255), nullable=False),
        sa.Column('topic_order', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('curriculum_id', 'topic_id', name='uq_topics_curriculum_topic'),
    )

    op.create_table(
        'concepts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('curriculum_id', sa.Uuid(), sa.ForeignKey('curricula.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('topic_pk', sa.Uuid(), sa.ForeignKey('topics.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('concept_id', sa.String(50), nullable=False),
        sa.Column('concept_name', sa.String(255), nullable=False),
        sa.Column('concept_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('difficulty_levels', sa.JSON(), nullable=False),
        sa.UniqueConstraint('curriculum_id', 'concept_id', name='uq_concepts_curriculum_concept'),
    )

    op.create_table(
        'questions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('curriculum_id', sa.Uuid(), sa.ForeignKey('curricula.id', ondelete='CASCADE'), nullable=False),
        sa.Column('concept_pk', sa.Uuid(), sa.ForeignKey('concepts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('question_id', sa.String(100), nullable=False),
        sa.Column('concept_id_str', sa.String(50), nullable=False),
        sa.Column('topic_id_str', sa.String(50), nullable=False),
        sa.Column('difficulty', sa.String(20), nullable=False),
        sa.Column('cognitive_level', sa.String(20), nullable=False, server_default='recall'),
        sa.Column('question_type', sa.String(20), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('options', sa.JSON(), nullable=True),
        sa.Column('correct_answer', sa.JSON(), nullable=True),
        sa.Column('match_pairs', sa.JSON(), nullable=True),
        sa.Column('ordering_items', sa.JSON(), nullable=True),
        sa.Column('hint', sa.Text(), nullable=True),
        sa.Column('explanation_correct', sa.Text(), nullable=True),
        sa.Column('explanation_incorrect', sa.Text(), nullable=True),
        sa.UniqueConstraint('curriculum_id', 'question_id', name='uq_questions_curriculum_question'),
    )
    op.create_index('ix_questions_curriculum_topic', 'questions', ['curriculum_id', 'topic_id_str'])

    # Mastery ledger
    op.create_table(
        'concept_progress',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('curriculum_id', sa.Uuid(), sa.ForeignKey('curricula.id', ondelete='CASCADE'), nullable=False),
        sa.Column('concept_id_str', sa.String(50), nullable=False),
        sa.Column('topic_id_str', sa.String(50), nullable=False),
        sa.Column('current_difficulty', sa.String(20), nullable=False, server_default='familiarity'),
        sa.Column('total_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_correct', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('xp_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('mastery_data', sa.JSON(), nullable=False),
        sa.Column('last_attempted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            'user_id', 'curriculum_id', 'concept_id_str',
            name='uq_concept_progress_user_curriculum_concept',
        ),
    )
    op.create_index(
        'ix_concept_progress_user_topic', 'concept_progress',
        ['user_id', 'curriculum_id', 'topic_id_str'],
    )

    op.create_table(
        'question_attempts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('curriculum_id', sa.Uuid(), sa.ForeignKey('curricula.id', ondelete='CASCADE'), nullable=False),
        sa.Column('concept_id_str', sa.String(50), nullable=False),
        sa.Column('question_id', sa.String(100), nullable=True),
        sa.Column('difficulty', sa.String(20), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False),
        sa.Column('time_taken_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('xp_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(
        'ix_question_attempts_user_concept', 'question_attempts',
        ['user_id', 'curriculum_id', 'concept_id_str'],
    )

    op.create_table(
        'topic_progress',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('curriculum_id', sa.Uuid(), sa.ForeignKey('curricula.id', ondelete='CASCADE'), nullable=False),
        sa.Column('topic_id_str', sa.String(50), nullable=False),
        sa.Column('proficiency_band', sa.String(50), nullable=False, server_default='not_started'),
        sa.Column('concepts_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('concepts_started', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('concepts_mastered', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_correct', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('xp_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_attempted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            'user_id', 'curriculum_id', 'topic_id_str',
            name='uq_topic_progress_user_curriculum_topic',
        ),
    )

    # Quiz sessions
    op.create_table(
        'quiz_sessions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('curriculum_id', sa.Uuid(), sa.ForeignKey('curricula.id', ondelete='CASCADE'), nullable=False),
        sa.Column('topic_id_str', sa.String(50), nullable=False),
        sa.Column('topic_name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='created'),
        sa.Column('time_mode', sa.String(20), nullable=False, server_default='unlimited'),
        sa.Column('time_limit_ms', sa.Integer(), nullable=True),
        sa.Column('strategy', sa.String(20), nullable=False, server_default='adaptive'),
        sa.Column('question_queue', sa.JSON(), nullable=False),
        sa.Column('current_question_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('questions_answered', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('questions_correct', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('questions_skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('xp_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('time_elapsed_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paused_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_quiz_sessions_user_created', 'quiz_sessions', ['user_id', 'created_at'])
    op.create_index(
        'ix_quiz_sessions_user_topic_status', 'quiz_sessions',
        ['user_id', 'topic_id_str', 'status'],
    )

    op.create_table(
        'session_answers',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('session_id', sa.Uuid(), sa.ForeignKey('quiz_sessions.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('question_id', sa.Uuid(), sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_index', sa.Integer(), nullable=False),
        sa.Column('user_answer', sa.JSON(), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=False),
        sa.Column('xp_earned', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('time_taken_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('session_id', 'question_index', name='uq_session_answers_session_index'),
    )

    # Append-only event log
    op.create_table(
        'event_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('user_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('user_agent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, index=True),
    )
    op.create_index('ix_event_logs_entity', 'event_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_event_logs_user_time', 'event_logs', ['user_id', 'created_at'])


def downgrade() -> None:
    op.drop_table('event_logs')
    op.drop_table('session_answers')
    op.drop_table('quiz_sessions')
    op.drop_table('topic_progress')
    op.drop_table('question_attempts')
    op.drop_table('concept_progress')
    op.drop_table('questions')
    op.drop_table('concepts')
    op.drop_table('topics')
    op.drop_table('curricula')
    op.drop_table('users')
