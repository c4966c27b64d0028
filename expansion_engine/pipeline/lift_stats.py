"""
Lift statistics — historical correlation of each signal with realized expansion.

Global recomputation over all Closed Won opportunities. A signal counts as
present for an opportunity when the owning account has a stored signal of
that type with value > 0 for a month inside the LOOKBACK_DAYS before the
close date. One row per signal type is appended on every call.
"""
import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import timedelta
from typing import List

from expansion_engine.config import LIFT_STATS_VERSION
from expansion_engine.database import get_session
from expansion_engine.models.customer import Customer
from expansion_engine.models.opportunity import Opportunity
from expansion_engine.models.signal import AtomicSignal, LiftStat
from expansion_engine.pipeline.signals import ALL_SIGNAL_TYPES

logger = logging.getLogger('pipeline.lift_stats')

CLOSED_WON = 'closed won'
EXPANSION_TYPE = 'expansion'
LOOKBACK_DAYS = 90


@dataclass
class LiftResult:
    signal_type: str
    expansion_rate: float
    non_expansion_rate: float
    lift_ratio: float
    sample_size: int


def lift_from_counts(signal_type, exp_with, exp_without, other_with, other_without) -> LiftResult:
    """
    expansion_rate     = expansions with signal / deals with signal
    non_expansion_rate = expansions without signal / deals without signal
    lift_ratio         = expansion_rate / non_expansion_rate, or expansion_rate when
                         the denominator is 0
    """
    with_total = exp_with + other_with
    without_total = exp_without + other_without
    expansion_rate = exp_with / with_total if with_total else 0.0
    non_expansion_rate = exp_without / without_total if without_total else 0.0
    lift = expansion_rate / non_expansion_rate if non_expansion_rate > 0 else expansion_rate
    if not math.isfinite(lift) or lift < 0:
        lift = 0.0
    return LiftResult(
        signal_type=signal_type,
        expansion_rate=expansion_rate,
        non_expansion_rate=non_expansion_rate,
        lift_ratio=lift,
        sample_size=with_total + without_total,
    )


def _is_closed_won(opp):
    return (opp.stage or '').strip().lower() == CLOSED_WON


def _is_expansion(opp):
    return (opp.type or '').strip().lower() == EXPANSION_TYPE


def compute_lift_stats() -> List[LiftResult]:
    session = get_session()
    try:
        account_to_domain = {
            account_id: domain
            for account_id, domain in session.query(Customer.account_id, Customer.domain).all()
            if account_id
        }
        opportunities = [
            (opp, account_to_domain.get(opp.account_id))
            for opp in session.query(Opportunity).all()
            if _is_closed_won(opp) and opp.close_date
        ]
        opportunities = [(opp, domain) for opp, domain in opportunities if domain]

        # (domain, signal_type) → months where the signal was present
        present = defaultdict(list)
        rows = (session.query(AtomicSignal.domain, AtomicSignal.signal_type, AtomicSignal.month)
                .filter(AtomicSignal.signal_value > 0)
                .all())
        for domain, signal_type, month in rows:
            present[(domain, signal_type)].append(month)

        results = []
        for signal_type in ALL_SIGNAL_TYPES:
            counts = {(True, True): 0, (True, False): 0, (False, True): 0, (False, False): 0}
            for opp, domain in opportunities:
                window_start = opp.close_date - timedelta(days=LOOKBACK_DAYS)
                had_signal = any(window_start <= m <= opp.close_date
                                 for m in present.get((domain, signal_type), ()))
                counts[(_is_expansion(opp), had_signal)] += 1

            result = lift_from_counts(
                signal_type,
                exp_with=counts[(True, True)],
                exp_without=counts[(True, False)],
                other_with=counts[(False, True)],
                other_without=counts[(False, False)],
            )
            session.add(LiftStat(
                signal_type=signal_type,
                expansion_rate=result.expansion_rate,
                non_expansion_rate=result.non_expansion_rate,
                lift_ratio=result.lift_ratio,
                sample_size=result.sample_size,
                lift_stats_version=LIFT_STATS_VERSION,
            ))
            results.append(result)

        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    logger.info("Lift stats computed over %d closed-won opportunities", len(opportunities))
    return results
