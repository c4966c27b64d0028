"""Tests for expansion_engine.pipeline.dedupe — collision window and insert."""
from datetime import datetime, timezone

import pytest

from expansion_engine.models.external_event import ExternalEvent
from expansion_engine.pipeline.dedupe import dedupe_and_store, normalize_summary, summaries_match
from expansion_engine.pipeline.event_extract import CandidateEvent


def _candidate(event_type='LAYOFF', ts='2025-03-03', summary='Acme cuts 10% of staff in restructuring',
               domain='acme.com', confidence=0.9):
    return CandidateEvent(domain=domain, event_type=event_type, event_ts=ts, confidence=confidence,
                          summary=summary, source='news.example.com', source_url='https://news.example.com/a')


class TestSummaries:

    def test_normalize(self):
        assert normalize_summary('  Acme, Inc. CUTS staff!! ') == 'acme inc cuts staff'

    def test_exact_match(self):
        assert summaries_match('Acme cuts staff', 'acme cuts staff.')

    def test_substring_requires_length(self):
        assert not summaries_match('cuts', 'Acme cuts staff')
        assert summaries_match('Acme cuts 10% of staff in restructuring',
                               'Acme cuts 10% of staff in restructuring, sources say')

    def test_empty_never_matches(self):
        assert not summaries_match('', '')


class TestDedupeAndStore:

    def test_inserts_new_event(self, db_session):
        assert dedupe_and_store([_candidate()]) == 1
        event = db_session.query(ExternalEvent).one()
        assert event.event_type == 'LAYOFF'
        assert event.source == 'news.example.com'
        assert event.payload_json == {'summary': 'Acme cuts 10% of staff in restructuring', 'confidence': 0.9}

    def test_idempotent(self, db_session):
        dedupe_and_store([_candidate()])
        assert dedupe_and_store([_candidate()]) == 0
        assert db_session.query(ExternalEvent).count() == 1

    def test_within_window_same_summary_is_duplicate(self):
        decisions = []
        dedupe_and_store([_candidate(ts='2025-03-03')])
        dedupe_and_store([_candidate(ts='2025-03-05')],
                         on_decision=lambda action, c, reason: decisions.append((action, reason)))
        assert decisions == [('skip', 'duplicate_summary')]

    def test_within_window_different_summary_still_skipped(self):
        decisions = []
        dedupe_and_store([_candidate(ts='2025-03-03')])
        dedupe_and_store([_candidate(ts='2025-03-06', summary='Second round of cuts announced')],
                         on_decision=lambda action, c, reason: decisions.append((action, reason)))
        assert decisions == [('skip', 'same_type_within_window')]

    def test_outside_window_inserted(self, db_session):
        dedupe_and_store([_candidate(ts='2025-03-03')])
        assert dedupe_and_store([_candidate(ts='2025-03-07')]) == 1
        assert db_session.query(ExternalEvent).count() == 2

    def test_other_type_or_domain_not_a_collision(self):
        dedupe_and_store([_candidate()])
        assert dedupe_and_store([
            _candidate(event_type='HEADCOUNT_DECLINE'),
            _candidate(domain='beta.io'),
        ]) == 2

    def test_collides_within_same_batch(self):
        assert dedupe_and_store([_candidate(), _candidate(ts='2025-03-04')]) == 1

    def test_unparseable_timestamp_inserted_with_null(self, db_session):
        decisions = []
        inserted = dedupe_and_store([_candidate(ts='sometime in spring')],
                                    on_decision=lambda action, c, reason: decisions.append((action, reason)))
        assert inserted == 1
        assert db_session.query(ExternalEvent).one().event_ts is None
        assert decisions == [('insert', 'unparseable_timestamp')]

    def test_timezone_offsets_compared_in_utc(self, db_session):
        db_session.add(ExternalEvent(domain='acme.com', event_type='LAYOFF',
                                     event_ts=datetime(2025, 3, 1, tzinfo=timezone.utc)))
        db_session.commit()
        assert dedupe_and_store([_candidate(ts='2025-03-04T01:00:00+02:00')]) == 0
