"""Tests for expansion_engine.services.run_log — append-only log with DB-derived seq."""
import pytest
from unittest.mock import patch

from expansion_engine.errors import EngineError
from expansion_engine.services.run_log import append_run_log, get_max_seq, get_run_log_entries


class TestAppendRunLog:

    def test_seq_starts_at_one_and_increments(self):
        assert append_run_log('r1', 'info', 'first') == 1
        assert append_run_log('r1', 'warn', 'second') == 2
        assert append_run_log('r1', 'error', 'third') == 3

    def test_seq_is_per_run(self):
        append_run_log('r1', 'info', 'a')
        append_run_log('r1', 'info', 'b')
        assert append_run_log('r2', 'info', 'c') == 1

    def test_seq_continues_from_database_max(self):
        for i in range(3):
            append_run_log('r1', 'info', f'm{i}')
        # A restarted process has no in-memory state; seq comes from max(seq)
        assert get_max_seq('r1') == 3
        assert append_run_log('r1', 'info', 'after restart') == 4

    def test_invalid_level_rejected(self):
        with pytest.raises(ValueError):
            append_run_log('r1', 'debug', 'nope')

    def test_stores_domain_step_detail(self):
        append_run_log('r1', 'info', 'Search results for acme.com', domain='acme.com',
                       step='external_events_search', detail={'url_count': 4})
        entries, _ = get_run_log_entries('r1')
        assert entries[0]['domain'] == 'acme.com'
        assert entries[0]['step'] == 'external_events_search'
        assert entries[0]['detail'] == {'url_count': 4}
        assert entries[0]['ts'] is not None

    def test_gives_up_after_repeated_collisions(self):
        with patch('expansion_engine.services.run_log._max_seq', return_value=0):
            append_run_log('r1', 'info', 'takes seq 1')
            with pytest.raises(EngineError):
                append_run_log('r1', 'info', 'always collides')


class TestGetRunLogEntries:

    @pytest.fixture
    def five_entries(self):
        for i in range(1, 6):
            append_run_log('r1', 'info', f'msg {i}')

    def test_ascending_order(self, five_entries):
        entries, has_more = get_run_log_entries('r1')
        assert [e['seq'] for e in entries] == [1, 2, 3, 4, 5]
        assert has_more is False

    def test_since_returns_only_newer(self, five_entries):
        entries, _ = get_run_log_entries('r1', since=3)
        assert [e['seq'] for e in entries] == [4, 5]

    def test_limit_sets_has_more(self, five_entries):
        entries, has_more = get_run_log_entries('r1', since=0, limit=2)
        assert [e['seq'] for e in entries] == [1, 2]
        assert has_more is True

    def test_limit_exact_has_no_more(self, five_entries):
        _, has_more = get_run_log_entries('r1', limit=5)
        assert has_more is False

    def test_tail_returns_latest_ascending(self, five_entries):
        entries, has_more = get_run_log_entries('r1', tail=2)
        assert [e['seq'] for e in entries] == [4, 5]
        assert has_more is True

    def test_tail_larger_than_log(self, five_entries):
        entries, has_more = get_run_log_entries('r1', tail=50)
        assert len(entries) == 5
        assert has_more is False

    def test_limit_capped_at_max(self):
        with patch('expansion_engine.services.run_log.RUN_LOG_MAX_LIMIT', 3):
            for i in range(5):
                append_run_log('r1', 'info', f'm{i}')
            entries, has_more = get_run_log_entries('r1', limit=10000)
        assert len(entries) == 3
        assert has_more is True

    def test_unknown_run_is_empty(self):
        assert get_run_log_entries('missing') == ([], False)
