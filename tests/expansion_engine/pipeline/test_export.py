"""Tests for expansion_engine.pipeline.export — ranking and CSV output."""
import csv
import io
import math
from datetime import date

import pytest

from expansion_engine.errors import RunNotFoundError
from expansion_engine.models.evaluation import AccountContextSnapshot, LlmEvaluation
from expansion_engine.pipeline.export import (
    EXPORT_COLUMNS, export_filename, format_value, get_export_rows, impact_score,
    linkedin_review_recommended, sort_key, to_csv,
)


def _evaluation(run_id, domain, expansion_score, motion='EXPAND', risk_score=10):
    return LlmEvaluation(run_id=run_id, domain=domain, expansion_score=expansion_score,
                         risk_score=risk_score, recommended_motion=motion,
                         why_now='now', reasoning='because', evidence_used=[])


class TestScoring:

    def test_impact_score(self):
        assert impact_score(80, 100000) == pytest.approx(80 * math.log(100001))

    def test_impact_score_missing_arr(self):
        assert impact_score(80, None) == 0

    def test_linkedin_review_thresholds(self):
        assert linkedin_review_recommended(False, 50000, 70)
        assert not linkedin_review_recommended(False, 49999, 90)
        assert not linkedin_review_recommended(False, 90000, 69)
        assert not linkedin_review_recommended(True, 100000, 80)

    def test_sort_order(self):
        rows = [
            {'domain': 'save', 'recommended_motion': 'SAVE', 'impact_score': 999, 'expansion_score': 99},
            {'domain': 'mon', 'recommended_motion': 'MONITOR', 'impact_score': 1, 'expansion_score': 1},
            {'domain': 'exp-low', 'recommended_motion': 'EXPAND', 'impact_score': 10, 'expansion_score': 50},
            {'domain': 'exp-tie-b', 'recommended_motion': 'EXPAND', 'impact_score': 20, 'expansion_score': 40},
            {'domain': 'exp-tie-a', 'recommended_motion': 'EXPAND', 'impact_score': 20, 'expansion_score': 60},
        ]
        assert [r['domain'] for r in sorted(rows, key=sort_key)] == [
            'exp-tie-a', 'exp-tie-b', 'exp-low', 'mon', 'save',
        ]


class TestGetExportRows:

    def test_unknown_run(self):
        with pytest.raises(RunNotFoundError):
            get_export_rows('missing')

    def test_no_evaluations(self, make_run):
        assert get_export_rows(make_run()) == []

    def test_recent_exec_event_disqualifies_linkedin_review(self, seed_accounts, make_run, db_session):
        seed_accounts(
            customers=[
                {'domain': 'acme.com', 'account_id': 'A1', 'account_name': 'Acme', 'arr': 100000,
                 'renewal_date': '2025-09-30'},
                {'domain': 'beta.io', 'account_id': 'B1', 'account_name': 'Beta', 'arr': 100000},
            ],
            events=[{'domain': 'acme.com', 'event_type': 'EXEC_DEPARTURE_LD',
                     'event_ts': '2025-01-05T00:00:00Z', 'confidence': 0.9}],
        )
        run_id = make_run(evaluation_month=date(2025, 3, 1))
        db_session.add_all([_evaluation(run_id, 'acme.com', 80), _evaluation(run_id, 'beta.io', 80)])
        db_session.add(AccountContextSnapshot(run_id=run_id, domain='acme.com', snapshot_json={},
                                              data_quality_score=85))
        db_session.commit()

        rows = {r['domain']: r for r in get_export_rows(run_id)}
        assert rows['acme.com']['linkedin_review_recommended'] is False
        assert rows['beta.io']['linkedin_review_recommended'] is True
        assert rows['acme.com']['data_quality_score'] == 85
        assert rows['beta.io']['data_quality_score'] is None
        assert rows['acme.com']['renewal_date'] == date(2025, 9, 30)
        assert rows['acme.com']['evidence_used'] == '[]'

    def test_old_exec_event_does_not_disqualify(self, seed_accounts, make_run, db_session):
        seed_accounts(
            customers=[{'domain': 'acme.com', 'account_id': 'A1', 'account_name': 'Acme', 'arr': 100000}],
            events=[{'domain': 'acme.com', 'event_type': 'EXEC_HIRE_LD', 'event_ts': '2023-12-01T00:00:00Z'}],
        )
        run_id = make_run(evaluation_month=date(2025, 3, 1))
        db_session.add(_evaluation(run_id, 'acme.com', 80))
        db_session.commit()
        assert get_export_rows(run_id)[0]['linkedin_review_recommended'] is True

    def test_rows_ranked(self, seed_accounts, make_run, db_session):
        seed_accounts(customers=[
            {'domain': 'big.com', 'arr': 1000000},
            {'domain': 'small.com', 'arr': 1000},
            {'domain': 'risky.com', 'arr': 500000},
        ])
        run_id = make_run()
        db_session.add_all([
            _evaluation(run_id, 'small.com', 90),
            _evaluation(run_id, 'risky.com', 95, motion='SAVE'),
            _evaluation(run_id, 'big.com', 60),
        ])
        db_session.commit()
        assert [r['domain'] for r in get_export_rows(run_id)] == ['big.com', 'small.com', 'risky.com']


class TestCsv:

    def test_header_matches_columns(self):
        assert to_csv([]) == ','.join(EXPORT_COLUMNS) + '\n'

    def test_escaping(self):
        row = {col: '' for col in EXPORT_COLUMNS}
        row['why_now'] = 'a,"b"\nc'
        body = to_csv([row])
        assert '"a,""b""\nc"' in body

    def test_round_trip_recovers_field(self):
        row = {'account_name': 'Acme, Inc.', 'why_now': 'a,"b"\nc', 'linkedin_review_recommended': True}
        parsed = list(csv.DictReader(io.StringIO(to_csv([row]))))
        assert parsed[0]['account_name'] == 'Acme, Inc.'
        assert parsed[0]['why_now'] == 'a,"b"\nc'
        assert parsed[0]['linkedin_review_recommended'] == 'true'

    @pytest.mark.parametrize('value,expected', [
        (None, ''),
        (True, 'true'),
        (False, 'false'),
        (80.0, '80'),
        (12.5, '12.5'),
        (0, '0'),
        (date(2025, 9, 30), '2025-09-30'),
    ])
    def test_format_value(self, value, expected):
        assert format_value(value) == expected

    def test_filename(self):
        assert export_filename(date(2025, 3, 1)) == 'expansion_signal_report_2025-03-01.csv'
        assert export_filename('2025-03-01T00:00:00') == 'expansion_signal_report_2025-03-01.csv'
