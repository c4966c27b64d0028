"""Tests for expansion_engine.pipeline.lift_stats — lift from closed-won history."""
import math
from datetime import date

import pytest

from expansion_engine.models.signal import AtomicSignal, LiftStat
from expansion_engine.pipeline.lift_stats import compute_lift_stats, lift_from_counts
from expansion_engine.pipeline.signals import ALL_SIGNAL_TYPES


class TestLiftFromCounts:

    def test_basic_ratio(self):
        result = lift_from_counts('s', exp_with=3, exp_without=1, other_with=1, other_without=3)
        assert result.expansion_rate == 0.75
        assert result.non_expansion_rate == 0.25
        assert result.lift_ratio == pytest.approx(3.0)
        assert result.sample_size == 8

    def test_zero_denominator_falls_back_to_expansion_rate(self):
        result = lift_from_counts('s', exp_with=2, exp_without=0, other_with=2, other_without=3)
        assert result.non_expansion_rate == 0
        assert result.lift_ratio == 0.5

    def test_no_data(self):
        result = lift_from_counts('s', 0, 0, 0, 0)
        assert (result.expansion_rate, result.non_expansion_rate, result.lift_ratio, result.sample_size) == (0, 0, 0, 0)

    @pytest.mark.parametrize('counts', [(0, 5, 0, 0), (5, 0, 0, 0), (1, 1, 1, 1), (0, 0, 4, 4)])
    def test_always_finite_and_non_negative(self, counts):
        result = lift_from_counts('s', *counts)
        assert math.isfinite(result.lift_ratio)
        assert result.lift_ratio >= 0


class TestComputeLiftStats:

    def _signal(self, domain, month, signal_type, value):
        return AtomicSignal(domain=domain, month=month, signal_type=signal_type, signal_value=value,
                            signal_score=int(value * 100), signal_timestamp=month, signal_version='v1.0')

    def test_one_row_per_signal_type_appended(self, seed_accounts, db_session):
        seed_accounts()
        compute_lift_stats()
        compute_lift_stats()
        assert db_session.query(LiftStat).count() == 2 * len(ALL_SIGNAL_TYPES)

    def test_presence_before_close_date(self, seed_accounts, db_session):
        seed_accounts(opportunities=[
            {'account_id': 'A1', 'type': 'Expansion', 'stage': 'Closed Won', 'close_date': '2025-03-15'},
            {'account_id': 'B1', 'type': 'Renewal', 'stage': 'closed won', 'close_date': '2025-03-15'},
            {'account_id': 'B1', 'type': 'Expansion', 'stage': 'Closed Lost', 'close_date': '2025-03-15'},
        ])
        db_session.add_all([
            self._signal('acme.com', date(2025, 2, 1), 'seat_saturation', 0.9),
            self._signal('beta.io', date(2025, 2, 1), 'seat_saturation', 0.0),
            # outside the 90-day window for beta.io
            self._signal('beta.io', date(2024, 10, 1), 'usage_decline', 1.0),
        ])
        db_session.commit()

        results = {r.signal_type: r for r in compute_lift_stats()}
        saturation = results['seat_saturation']
        assert saturation.sample_size == 2
        assert saturation.expansion_rate == 1.0
        assert saturation.non_expansion_rate == 0.0
        assert saturation.lift_ratio == 1.0
        assert results['usage_decline'].expansion_rate == 0.0
        assert results['usage_decline'].non_expansion_rate == 0.5

    def test_opportunities_without_customer_ignored(self, seed_accounts):
        seed_accounts(opportunities=[
            {'account_id': 'UNKNOWN', 'type': 'Expansion', 'stage': 'Closed Won', 'close_date': '2025-03-15'},
        ])
        assert all(r.sample_size == 0 for r in compute_lift_stats())
