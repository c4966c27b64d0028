"""
Context snapshot builder — the document the judge sees for one account.

Stored once per (run, domain). A second call for the same pair returns
the stored snapshot unchanged.
"""
import logging
from datetime import date
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError

from expansion_engine.database import get_session
from expansion_engine.models.customer import Customer
from expansion_engine.models.evaluation import AccountContextSnapshot
from expansion_engine.models.external_event import ExternalEvent
from expansion_engine.models.signal import AtomicSignal, LiftStat
from expansion_engine.models.telemetry import Telemetry
from expansion_engine.pipeline.signals import signal_category
from expansion_engine.schemas.snapshot import (
    AccountProfile, ContextSnapshot, EvaluationContext, SnapshotLiftStat, SnapshotSignal,
)

logger = logging.getLogger('pipeline.context_snapshot')

# Data-quality penalties
PENALTY_NO_SEATS = 20
PENALTY_SHORT_TELEMETRY = 15
PENALTY_NO_LIFT_STATS = 15
PENALTY_LOW_EVENT_CONFIDENCE = 10
MIN_TELEMETRY_MONTHS = 2
MIN_AVG_EVENT_CONFIDENCE = 0.7


def compute_data_quality_score(has_seats: bool, telemetry_months: int, has_lift_stats: bool,
                               avg_event_confidence: Optional[float]) -> int:
    """Start at 100, subtract penalties for missing inputs, clamp to [0, 100]."""
    score = 100
    if not has_seats:
        score -= PENALTY_NO_SEATS
    if telemetry_months < MIN_TELEMETRY_MONTHS:
        score -= PENALTY_SHORT_TELEMETRY
    if not has_lift_stats:
        score -= PENALTY_NO_LIFT_STATS
    # No scored events means nothing to penalize
    if avg_event_confidence is not None and avg_event_confidence < MIN_AVG_EVENT_CONFIDENCE:
        score -= PENALTY_LOW_EVENT_CONFIDENCE
    return max(0, min(100, round(score)))


def _data_quality(session, domain, customer) -> int:
    telemetry_rows = session.query(Telemetry).filter(Telemetry.domain == domain).all()
    has_seats = (customer is not None and customer.licensed_seats is not None) or any(
        row.licensed_seats is not None for row in telemetry_rows
    )
    confidences = [
        c for (c,) in session.query(ExternalEvent.confidence)
        .filter(ExternalEvent.domain == domain, ExternalEvent.confidence.isnot(None))
        .all()
    ]
    avg_confidence = sum(confidences) / len(confidences) if confidences else None
    has_lift_stats = session.query(LiftStat.id).first() is not None
    return compute_data_quality_score(has_seats, len(telemetry_rows), has_lift_stats, avg_confidence)


def _build(session, domain, evaluation_month: date) -> Tuple[int, ContextSnapshot]:
    customer = session.query(Customer).filter(Customer.domain == domain).first()
    signals = (session.query(AtomicSignal)
               .filter(AtomicSignal.domain == domain, AtomicSignal.month == evaluation_month)
               .order_by(AtomicSignal.signal_type)
               .all())
    stats = session.query(LiftStat).order_by(LiftStat.computed_at, LiftStat.id).all()
    score = _data_quality(session, domain, customer)

    snapshot = ContextSnapshot(
        evaluation_context=EvaluationContext(
            evaluation_month=evaluation_month.isoformat(),
            data_quality_score=score,
        ),
        account_profile=AccountProfile(
            account_name=(customer.account_name if customer else '') or domain,
            domain=domain,
            arr=customer.arr if customer else None,
            renewal_date=customer.renewal_date.isoformat() if customer and customer.renewal_date else None,
            segment=customer.segment if customer else None,
        ),
        atomic_signals=[
            SnapshotSignal(
                signal_type=s.signal_type,
                signal_category=signal_category(s.signal_type),
                signal_value=s.signal_value,
                signal_score=s.signal_score,
                signal_timestamp=s.signal_timestamp.isoformat(),
            )
            for s in signals
        ],
        historical_signal_stats=[SnapshotLiftStat(**stat.to_dict()) for stat in stats],
    )
    return score, snapshot


def load_context_snapshot(run_id, domain) -> Optional[Tuple[int, ContextSnapshot]]:
    session = get_session()
    try:
        row = session.query(AccountContextSnapshot).filter_by(run_id=run_id, domain=domain).first()
        if row is None:
            return None
        return row.data_quality_score, ContextSnapshot.model_validate(row.snapshot_json)
    finally:
        session.close()


def build_and_store_context_snapshot(run_id, domain, evaluation_month: date) -> Tuple[int, ContextSnapshot]:
    """Return (data_quality_score, snapshot), building and storing it on first use."""
    existing = load_context_snapshot(run_id, domain)
    if existing is not None:
        return existing

    session = get_session()
    try:
        score, snapshot = _build(session, domain, evaluation_month)
        session.add(AccountContextSnapshot(
            run_id=run_id,
            domain=domain,
            snapshot_json=snapshot.model_dump(mode='json'),
            data_quality_score=score,
        ))
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.info("Snapshot for %s in run %s already stored, reusing it", domain, run_id)
        return load_context_snapshot(run_id, domain)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    return score, snapshot
