"""Tests for expansion_engine.pipeline.manager — run orchestration, resume, enrichment runs."""
import json
from datetime import date

import pytest
from unittest.mock import MagicMock, patch

from expansion_engine.errors import (
    AccountNotFoundError, ConfigurationError, EngineError, JudgmentValidationError, RunNotFoundError,
    RunStateError,
)
from expansion_engine.models.evaluation import AccountContextSnapshot, LlmEvaluation
from expansion_engine.models.run import Run
from expansion_engine.models.signal import AtomicSignal, LiftStat
from expansion_engine.pipeline import manager
from expansion_engine.services.db import get_run_config, load_run, update_run
from expansion_engine.services.run_log import get_run_log_entries

JUDGMENT = json.dumps({
    'expansion_score': 75,
    'risk_score': 20,
    'recommended_motion': 'EXPAND',
    'evidence_used': [],
    'why_now': 'Renewal in two quarters.',
    'reasoning': 'Usage is strong.',
})

TELEMETRY = [
    {'domain': 'acme.com', 'month': '2025-03-01', 'active_users_30d': 40, 'licensed_seats': 50,
     'feature_adoption_score': 0.9},
    {'domain': 'beta.io', 'month': '2025-03-01', 'active_users_30d': 10, 'licensed_seats': 50,
     'feature_adoption_score': 0.2},
    {'domain': 'gamma.dev', 'month': '2025-03-01', 'active_users_30d': 5, 'licensed_seats': 5},
]


@pytest.fixture
def accounts(seed_accounts):
    seed_accounts(
        customers=[
            {'domain': 'beta.io', 'account_id': 'B1', 'account_name': 'Beta', 'arr': 30000},
            {'domain': 'acme.com', 'account_id': 'A1', 'account_name': 'Acme', 'arr': 120000},
            {'domain': 'gamma.dev', 'account_id': 'G1', 'account_name': 'Gamma', 'arr': 60000},
        ],
        telemetry=TELEMETRY,
    )


@pytest.fixture
def no_search():
    with patch('expansion_engine.pipeline.enrichment.run_search_and_store', return_value=[]) as mock:
        yield mock


@pytest.fixture
def llm():
    with patch('expansion_engine.services.llm_client.complete', return_value=JUDGMENT) as mock:
        yield mock


def _messages(run_id):
    entries, _ = get_run_log_entries(run_id)
    return [e['message'] for e in entries]


class TestResolveEvaluationMonth:

    def test_latest_telemetry_before_current_month(self, accounts):
        assert manager.resolve_evaluation_month(today=date(2025, 6, 10)) == date(2025, 3, 1)

    def test_current_month_telemetry_excluded(self, accounts):
        assert manager.resolve_evaluation_month(today=date(2025, 3, 20)) == date(2025, 2, 1)

    def test_no_telemetry_uses_previous_month(self):
        assert manager.resolve_evaluation_month(today=date(2025, 1, 15)) == date(2024, 12, 1)


class TestAccountSlice:

    def test_ordered_by_domain(self, accounts):
        assert manager.account_slice() == ['acme.com', 'beta.io', 'gamma.dev']

    def test_start_row_is_one_based(self, accounts):
        assert manager.account_slice(2) == ['beta.io', 'gamma.dev']

    def test_start_row_past_end(self, accounts):
        assert manager.account_slice(10) == []


class TestStartRun:

    def test_prepares_run_without_scoring(self, accounts, no_search, llm, db_session):
        started = manager.start_run({'start_row': 2})
        assert started.total_accounts == 2
        assert started.evaluation_month == date(2025, 3, 1)

        run = load_run(started.run_id)
        assert run.status == 'running'
        assert run.current_step == 'llm_eval'
        assert run.signal_version == 'v1.0'
        assert run.prompt_version == 'v1'
        assert get_run_config(run).run_type == 'full'
        assert get_run_config(run).enrichment_summary()['domains_processed'] == 2

        assert db_session.query(AtomicSignal).count() == 12
        assert db_session.query(LiftStat).count() == 6
        llm.assert_not_called()

        messages = _messages(started.run_id)
        assert 'External events enrichment started' in messages
        assert messages[-2:] == ['Computing atomic signals', 'Computing lift stats']

    def test_invalid_config_rejected(self, accounts):
        with pytest.raises(ValueError):
            manager.start_run({'start_row': 0})

    def test_evaluation_only_skips_enrichment(self, accounts, no_search):
        started = manager.start_evaluation_only_run({})
        no_search.assert_not_called()
        run = load_run(started.run_id)
        assert get_run_config(run).run_type == 'evaluation_only'
        assert get_run_config(run).enrichment_summary() is None

    def test_stage_failure_marks_run_failed(self, accounts, no_search, db_session):
        with patch('expansion_engine.pipeline.manager.compute_lift_stats', side_effect=RuntimeError('disk full')):
            with pytest.raises(RuntimeError):
                manager.start_run({})
        run = db_session.query(Run).one()
        assert run.status == 'failed'
        assert 'Run failed: disk full' in _messages(run.id)


class TestProcessRun:

    def test_scores_every_account(self, accounts, no_search, llm, db_session):
        run_id = manager.start_run({}).run_id
        progress = manager.process_run(run_id)

        assert progress['status'] == 'completed'
        assert progress['current_step'] == 'completed'
        assert progress['processed_count'] == 3
        assert progress['total_accounts'] == 3
        assert progress['external_events_summary']['domains_processed'] == 3
        assert db_session.query(LlmEvaluation).count() == 3
        assert db_session.query(AccountContextSnapshot).count() == 3
        assert llm.call_count == 3

        messages = _messages(run_id)
        assert 'LLM evaluation started' in messages
        assert 'Evaluating acme.com' in messages
        assert 'Done gamma.dev' in messages
        assert messages[-1] == 'LLM evaluation finished'

    def test_on_progress_called_per_account(self, accounts, no_search, llm):
        run_id = manager.start_run({}).run_id
        seen = []
        manager.process_run(run_id, on_progress=lambda p: seen.append(p['processed_count']))
        assert seen == [1, 2, 3]

    def test_completed_run_is_noop(self, accounts, no_search, llm):
        run_id = manager.start_run({}).run_id
        manager.process_run(run_id)
        llm.reset_mock()
        assert manager.process_run(run_id)['status'] == 'completed'
        llm.assert_not_called()

    def test_failed_run_rejected(self, accounts, no_search, llm):
        run_id = manager.start_run({}).run_id
        update_run(run_id, status='failed')
        with pytest.raises(RunStateError):
            manager.process_run(run_id)

    def test_unknown_run(self):
        with pytest.raises(RunNotFoundError):
            manager.process_run('missing')

    def test_account_failure_leaves_run_resumable(self, accounts, no_search, llm, db_session):
        run_id = manager.start_run({}).run_id
        llm.side_effect = [JUDGMENT, TimeoutError('LLM timeout'), JUDGMENT, JUDGMENT]

        with pytest.raises(Exception):
            manager.process_run(run_id)

        run = load_run(run_id)
        assert run.status == 'running'
        assert run.processed_count == 1
        assert run.last_processed_index == 0
        assert run.current_domain == 'beta.io'
        assert any(m.startswith('Evaluation failed for beta.io') for m in _messages(run_id))

        progress = manager.resume_run(run_id)
        assert progress['status'] == 'completed'
        assert progress['processed_count'] == 3
        domains = [d for (d,) in db_session.query(LlmEvaluation.domain).order_by(LlmEvaluation.domain).all()]
        assert domains == ['acme.com', 'beta.io', 'gamma.dev']

    def test_judgment_validation_failure_propagates(self, accounts, no_search, llm):
        run_id = manager.start_run({}).run_id
        llm.return_value = '{"expansion_score": 500}'
        with pytest.raises(JudgmentValidationError):
            manager.process_run(run_id)
        assert load_run(run_id).processed_count == 0


class TestResumeRun:

    def test_completed_is_noop(self, accounts, no_search, llm):
        run_id = manager.start_run({}).run_id
        manager.process_run(run_id)
        assert manager.resume_run(run_id)['status'] == 'completed'
        assert 'Resuming run' not in _messages(run_id)

    def test_resume_skips_done_accounts(self, accounts, no_search, llm, db_session):
        run_id = manager.start_run({}).run_id
        llm.side_effect = [JUDGMENT, RuntimeError('crash')]
        with pytest.raises(EngineError):
            manager.process_run(run_id)

        llm.side_effect = None
        llm.reset_mock()
        manager.resume_run(run_id)
        assert llm.call_count == 2
        assert db_session.query(LlmEvaluation).filter_by(run_id=run_id).count() == 3
        assert 'Resuming run' in _messages(run_id)

    def test_failed_run_cannot_resume(self, accounts, no_search):
        run_id = manager.start_run({}).run_id
        update_run(run_id, status='failed')
        with pytest.raises(RunStateError):
            manager.resume_run(run_id)


class TestEnrichmentOnlyRun:

    def test_unknown_domain(self, accounts):
        with pytest.raises(AccountNotFoundError):
            manager.create_enrichment_run('unknown.org')

    def test_domain_normalized(self, accounts):
        run_id = manager.create_enrichment_run('https://www.ACME.com/')
        config = get_run_config(load_run(run_id))
        assert config.run_type == 'enrichment_only'
        assert config.domain == 'acme.com'

    def test_sync_run_completes_and_marks_customer(self, accounts, no_search):
        run_id = manager.start_enrichment_only_run('acme.com')
        run = load_run(run_id)
        assert run.status == 'completed'
        assert run.current_step == 'completed'
        assert run.total_accounts == 1
        from expansion_engine.services.db import get_customer
        assert get_customer('acme.com').last_enrichment_run_id == run_id
        no_search.assert_called_once()

    def test_failure_marks_run_failed(self, accounts):
        with patch('expansion_engine.pipeline.manager.run_external_events_enrichment',
                   side_effect=ConfigurationError('OPENAI_API_KEY is not set')):
            run_id = manager.start_enrichment_only_run('acme.com')
        run = load_run(run_id)
        assert run.status == 'failed'
        assert 'Enrichment failed: OPENAI_API_KEY is not set' in _messages(run_id)

    def test_enrichment_only_run_cannot_be_processed(self, accounts, no_search):
        run_id = manager.start_enrichment_only_run('acme.com')
        update_run(run_id, status='running')
        with pytest.raises(RunStateError):
            manager.process_run(run_id)

    def test_dispatch_enqueues_job(self, accounts):
        queue = MagicMock()
        with patch('expansion_engine.pipeline.manager._get_queue', return_value=queue):
            run_id, job = manager.dispatch_enrichment('acme.com', 'events/ExpansionEventsV2')
        args = queue.enqueue.call_args.args
        assert args == (manager.run_enrichment_in_background, run_id, 'acme.com', 'events/ExpansionEventsV2')
        assert queue.enqueue.call_args.kwargs['job_timeout'] == 1800
        assert job is queue.enqueue.return_value
        assert load_run(run_id).status == 'running'


class TestDispatch:

    def test_dispatch_process_run(self, accounts, no_search):
        run_id = manager.start_run({}).run_id
        queue = MagicMock()
        with patch('expansion_engine.pipeline.manager._get_queue', return_value=queue):
            manager.dispatch_process_run(run_id)
        assert queue.enqueue.call_args.args == (manager.process_run, run_id)

    def test_dispatch_resume_rejects_failed(self, accounts, no_search):
        run_id = manager.start_run({}).run_id
        update_run(run_id, status='failed')
        with patch('expansion_engine.pipeline.manager._get_queue') as mock_queue:
            with pytest.raises(RunStateError):
                manager.dispatch_resume_run(run_id)
        mock_queue.assert_not_called()


class TestGetRunProgress:

    def test_missing(self):
        assert manager.get_run_progress('missing') is None

    def test_shape(self, accounts, no_search):
        run_id = manager.start_evaluation_only_run({}).run_id
        progress = manager.get_run_progress(run_id)
        assert progress['id'] == run_id
        assert progress['evaluation_month'] == '2025-03-01'
        assert progress['external_events_summary'] is None
