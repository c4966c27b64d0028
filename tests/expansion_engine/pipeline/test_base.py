"""Tests for expansion_engine.pipeline.base — run steps, statuses, summaries."""
from expansion_engine.pipeline.base import EnrichmentSummary, RunStatus, RunStep


class TestRunStep:

    def test_step_order(self):
        assert [s.value for s in RunStep] == [
            'created',
            'external_events_query_builder',
            'external_events_search',
            'external_events_fetch',
            'external_events_extract',
            'external_events_dedupe_store',
            'atomic_signals',
            'lift_stats',
            'llm_eval',
            'completed',
        ]

    def test_statuses(self):
        assert {s.value for s in RunStatus} == {'pending', 'running', 'completed', 'failed', 'partial', 'halted'}


class TestEnrichmentSummary:

    def test_to_config_prefixes_keys(self):
        summary = EnrichmentSummary(domains_processed=2, articles_failed=1, errors=['x'])
        config = summary.to_config()
        assert config['external_events_domains_processed'] == 2
        assert config['external_events_articles_failed'] == 1
        assert config['external_events_errors'] == ['x']

    def test_to_stage_result(self):
        result = EnrichmentSummary(domains_processed=3, domains_skipped=1, articles_failed=2).to_stage_result()
        assert result.step is RunStep.DEDUPE_STORE
        assert result.processed == 3
        assert result.skipped == 1
        assert result.failed == 2
