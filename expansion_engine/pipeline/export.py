"""
Export / ranking for a completed run.

impact_score = expansion_score × ln(ARR + 1). Rows sort by motion
(EXPAND, MONITOR, SAVE), then impact_score desc, then expansion_score desc.
"""
import csv
import io
import json
import logging
import math
from datetime import date
from typing import Dict, List

from expansion_engine.config import (
    EXEC_EVENT_LOOKBACK_MONTHS, LINKEDIN_REVIEW_MIN_ARR, LINKEDIN_REVIEW_MIN_SCORE,
)
from expansion_engine.database import get_session
from expansion_engine.errors import RunNotFoundError
from expansion_engine.models.customer import Customer
from expansion_engine.models.evaluation import AccountContextSnapshot, LlmEvaluation
from expansion_engine.models.external_event import ExternalEvent
from expansion_engine.models.run import Run
from expansion_engine.services.dates import month_start, parse_date, shift_months

logger = logging.getLogger('pipeline.export')

EXPORT_COLUMNS = [
    'account_name',
    'domain',
    'arr',
    'renewal_date',
    'expansion_score',
    'risk_score',
    'impact_score',
    'recommended_motion',
    'why_now',
    'reasoning',
    'evidence_used',
    'data_quality_score',
    'linkedin_review_recommended',
]

EXEC_EVENT_TYPES = ('EXEC_HIRE_LD', 'EXEC_DEPARTURE_LD')
MOTION_ORDER = {'EXPAND': 0, 'MONITOR': 1, 'SAVE': 2}
UNKNOWN_MOTION_RANK = 1


def impact_score(expansion_score, arr) -> float:
    return (expansion_score or 0) * math.log((arr or 0) + 1)


def linkedin_review_recommended(has_exec_event, arr, expansion_score) -> bool:
    return (not has_exec_event
            and (arr or 0) >= LINKEDIN_REVIEW_MIN_ARR
            and (expansion_score or 0) >= LINKEDIN_REVIEW_MIN_SCORE)


def sort_key(row):
    return (
        MOTION_ORDER.get(row['recommended_motion'], UNKNOWN_MOTION_RANK),
        -row['impact_score'],
        -(row['expansion_score'] or 0),
    )


def _exec_event_domains(session, domains, evaluation_month: date):
    """Domains with an exec hire/departure in the 12 months up to the evaluation month's start."""
    window_end = month_start(evaluation_month)
    window_start = shift_months(window_end, -EXEC_EVENT_LOOKBACK_MONTHS)
    rows = (session.query(ExternalEvent.domain, ExternalEvent.event_ts)
            .filter(ExternalEvent.domain.in_(domains),
                    ExternalEvent.event_type.in_(EXEC_EVENT_TYPES),
                    ExternalEvent.event_ts.isnot(None))
            .all())
    return {
        domain for domain, event_ts in rows
        if window_start <= parse_date(event_ts) <= window_end
    }


def get_export_rows(run_id) -> List[Dict]:
    """Ranked rows for every evaluated account in the run."""
    session = get_session()
    try:
        run = session.get(Run, run_id)
        if run is None:
            raise RunNotFoundError(run_id)

        evaluations = session.query(LlmEvaluation).filter(LlmEvaluation.run_id == run_id).all()
        if not evaluations:
            return []
        domains = [e.domain for e in evaluations]

        customers = {c.domain: c for c in session.query(Customer).filter(Customer.domain.in_(domains)).all()}
        quality = {
            s.domain: s.data_quality_score
            for s in session.query(AccountContextSnapshot).filter(AccountContextSnapshot.run_id == run_id).all()
        }
        flagged = _exec_event_domains(session, domains, run.evaluation_month)
    finally:
        session.close()

    rows = []
    for evaluation in evaluations:
        customer = customers.get(evaluation.domain)
        arr = customer.arr if customer else None
        rows.append({
            'account_name': (customer.account_name if customer else '') or '',
            'domain': evaluation.domain,
            'arr': arr,
            'renewal_date': customer.renewal_date if customer else None,
            'expansion_score': evaluation.expansion_score,
            'risk_score': evaluation.risk_score,
            'impact_score': impact_score(evaluation.expansion_score, arr),
            'recommended_motion': evaluation.recommended_motion,
            'why_now': evaluation.why_now,
            'reasoning': evaluation.reasoning,
            'evidence_used': json.dumps(evaluation.evidence_used or []),
            'data_quality_score': quality.get(evaluation.domain),
            'linkedin_review_recommended': linkedin_review_recommended(
                evaluation.domain in flagged, arr, evaluation.expansion_score,
            ),
        })

    rows.sort(key=sort_key)
    return rows


def format_value(value) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def to_csv(rows: List[Dict]) -> str:
    """
    RFC 4180 style: a field is quoted when it contains a comma, quote or
    newline, with internal quotes doubled. Lines end with "\\n".
    """
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator='\n', quoting=csv.QUOTE_MINIMAL)
    writer.writerow(EXPORT_COLUMNS)
    for row in rows:
        writer.writerow([format_value(row.get(col)) for col in EXPORT_COLUMNS])
    return buf.getvalue()


def export_filename(evaluation_month) -> str:
    month = evaluation_month.isoformat() if isinstance(evaluation_month, date) else str(evaluation_month)[:10]
    return f"expansion_signal_report_{month}.csv"
