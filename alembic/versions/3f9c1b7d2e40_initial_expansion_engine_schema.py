"""Initial expansion engine schema

Revision ID: 3f9c1b7d2e40
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c1b7d2e40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at(name='created_at'):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    # ── Ingested account universe ────────────────────────────────────────
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('domain', sa.Text(), nullable=False, unique=True),
        sa.Column('account_id', sa.Text(), nullable=True),
        sa.Column('account_name', sa.Text(), nullable=True),
        sa.Column('website', sa.Text(), nullable=True),
        sa.Column('arr', sa.Float(), nullable=True),
        sa.Column('renewal_date', sa.Date(), nullable=True),
        sa.Column('segment', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=True),
        sa.Column('licensed_seats', sa.Integer(), nullable=True),
        sa.Column('extra', sa.JSON(), nullable=True),
        sa.Column('last_enriched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_enrichment_run_id', sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_customers_account_id', 'customers', ['account_id'])

    op.create_table(
        'telemetry',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('domain', sa.Text(), nullable=False),
        sa.Column('month', sa.Date(), nullable=False),
        sa.Column('active_users_30d', sa.Integer(), nullable=True),
        sa.Column('licensed_seats', sa.Integer(), nullable=True),
        sa.Column('feature_adoption_score', sa.Float(), nullable=True),
        sa.Column('extra', sa.JSON(), nullable=True),
        sa.UniqueConstraint('domain', 'month', name='uq_telemetry_domain_month'),
    )
    op.create_index('ix_telemetry_domain', 'telemetry', ['domain'])

    op.create_table(
        'opportunities',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('account_id', sa.Text(), nullable=False),
        sa.Column('opportunity_id', sa.Text(), nullable=True),
        sa.Column('type', sa.Text(), nullable=True),
        sa.Column('stage', sa.Text(), nullable=True),
        sa.Column('created_date', sa.Date(), nullable=True),
        sa.Column('close_date', sa.Date(), nullable=True),
        sa.Column('amount', sa.Float(), nullable=True),
        sa.Column('extra', sa.JSON(), nullable=True),
    )
    op.create_index('ix_opportunities_account_id', 'opportunities', ['account_id'])

    # ── External events enrichment ───────────────────────────────────────
    op.create_table(
        'external_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('domain', sa.Text(), nullable=False),
        sa.Column('event_type', sa.Text(), nullable=False),
        sa.Column('event_ts', sa.DateTime(timezone=True), nullable=True),
        sa.Column('source', sa.Text(), nullable=True),
        sa.Column('source_url', sa.Text(), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('payload_json', sa.JSON(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_external_events_domain', 'external_events', ['domain'])

    op.create_table(
        'external_search_results',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('domain', sa.Text(), nullable=False),
        sa.Column('query', sa.Text(), nullable=False),
        sa.Column('category', sa.Text(), nullable=True),
        sa.Column('provider', sa.Text(), nullable=True),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), nullable=True),
        sa.Column('snippet', sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_external_search_results_domain', 'external_search_results', ['domain'])

    op.create_table(
        'external_articles_raw',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('domain', sa.Text(), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('published_date', sa.Text(), nullable=True),
        sa.Column('text', sa.Text(), nullable=True),
        sa.Column('content_length', sa.Integer(), nullable=True),
        _created_at('fetched_at'),
    )
    op.create_index('ix_external_articles_raw_domain', 'external_articles_raw', ['domain'])

    # ── Signals + lift ───────────────────────────────────────────────────
    op.create_table(
        'atomic_signals',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('domain', sa.Text(), nullable=False),
        sa.Column('month', sa.Date(), nullable=False),
        sa.Column('signal_type', sa.Text(), nullable=False),
        sa.Column('signal_value', sa.Float(), nullable=False),
        sa.Column('signal_score', sa.Integer(), nullable=False),
        sa.Column('signal_timestamp', sa.Date(), nullable=False),
        sa.Column('signal_version', sa.Text(), nullable=False),
        sa.UniqueConstraint('domain', 'month', 'signal_type', name='uq_atomic_signal_key'),
    )
    op.create_index('ix_atomic_signals_domain', 'atomic_signals', ['domain'])

    op.create_table(
        'lift_stats',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('signal_type', sa.Text(), nullable=False),
        sa.Column('expansion_rate', sa.Float(), nullable=False),
        sa.Column('non_expansion_rate', sa.Float(), nullable=False),
        sa.Column('lift_ratio', sa.Float(), nullable=False),
        sa.Column('sample_size', sa.Integer(), nullable=False),
        sa.Column('lift_stats_version', sa.Text(), nullable=False),
        _created_at('computed_at'),
    )
    op.create_index('ix_lift_stats_signal_type', 'lift_stats', ['signal_type'])

    # ── Prompts + runs ───────────────────────────────────────────────────
    op.create_table(
        'prompts',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('kind', sa.Text(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('version', sa.Text(), nullable=True),
        _created_at(),
    )

    op.create_table(
        'runs',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('evaluation_month', sa.Date(), nullable=False),
        sa.Column('prompt_id', sa.Text(), nullable=True),
        sa.Column('prompt_version', sa.Text(), nullable=True),
        sa.Column('signal_version', sa.Text(), nullable=True),
        sa.Column('lift_stats_version', sa.Text(), nullable=True),
        sa.Column('engine_version', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False),
        sa.Column('processed_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_accounts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_processed_index', sa.Integer(), nullable=True),
        sa.Column('current_step', sa.Text(), nullable=True),
        sa.Column('current_domain', sa.Text(), nullable=True),
        sa.Column('substep_label', sa.Text(), nullable=True),
        sa.Column('config', sa.JSON(), nullable=True),
        _created_at(),
        _created_at('updated_at'),
    )

    op.create_table(
        'run_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('run_id', sa.Text(), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        _created_at('ts'),
        sa.Column('level', sa.Text(), nullable=False),
        sa.Column('domain', sa.Text(), nullable=True),
        sa.Column('step', sa.Text(), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('detail', sa.JSON(), nullable=True),
        sa.UniqueConstraint('run_id', 'seq', name='uq_run_log_seq'),
    )
    op.create_index('ix_run_log_run_id', 'run_log', ['run_id'])

    # ── Per-run scoring artifacts ────────────────────────────────────────
    op.create_table(
        'account_context_snapshots',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('run_id', sa.Text(), nullable=False),
        sa.Column('domain', sa.Text(), nullable=False),
        sa.Column('snapshot_json', sa.JSON(), nullable=False),
        sa.Column('data_quality_score', sa.Integer(), nullable=False),
        _created_at(),
        sa.UniqueConstraint('run_id', 'domain', name='uq_snapshot_run_domain'),
    )
    op.create_index('ix_account_context_snapshots_run_id', 'account_context_snapshots', ['run_id'])

    op.create_table(
        'llm_evaluations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('run_id', sa.Text(), nullable=False),
        sa.Column('domain', sa.Text(), nullable=False),
        sa.Column('prompt_version', sa.Text(), nullable=True),
        sa.Column('signal_version', sa.Text(), nullable=True),
        sa.Column('lift_stats_version', sa.Text(), nullable=True),
        sa.Column('engine_version', sa.Text(), nullable=True),
        sa.Column('model_name', sa.Text(), nullable=True),
        sa.Column('expansion_score', sa.Float(), nullable=False),
        sa.Column('risk_score', sa.Float(), nullable=False),
        sa.Column('recommended_motion', sa.Text(), nullable=False),
        sa.Column('why_now', sa.Text(), nullable=True),
        sa.Column('reasoning', sa.Text(), nullable=True),
        sa.Column('evidence_used', sa.JSON(), nullable=True),
        sa.Column('raw_response', sa.Text(), nullable=True),
        _created_at(),
        sa.UniqueConstraint('run_id', 'domain', name='uq_evaluation_run_domain'),
    )
    op.create_index('ix_llm_evaluations_run_id', 'llm_evaluations', ['run_id'])


def downgrade() -> None:
    for table in (
        'llm_evaluations', 'account_context_snapshots', 'run_log', 'runs', 'prompts',
        'lift_stats', 'atomic_signals', 'external_articles_raw', 'external_search_results',
        'external_events', 'opportunities', 'telemetry', 'customers',
    ):
        op.drop_table(table)
