"""
Layer 5: dedupe candidate events against stored events, then insert.

A candidate collides with any stored event of the same domain and type
whose timestamp is within DEDUPE_WINDOW_DAYS. Every collision is a skip;
the reason records whether the summaries also matched. Candidates whose
timestamp cannot be parsed are inserted with a null timestamp.
"""
import logging
import re
from datetime import timedelta
from typing import Callable, Iterable

from expansion_engine.config import DEDUPE_WINDOW_DAYS
from expansion_engine.database import get_session
from expansion_engine.models.external_event import ExternalEvent
from expansion_engine.services.dates import parse_datetime

logger = logging.getLogger('pipeline.dedupe')

MIN_SUBSTRING_LENGTH = 20

REASON_DUPLICATE_SUMMARY = 'duplicate_summary'
REASON_SAME_WINDOW = 'same_type_within_window'

_NON_ALNUM_RE = re.compile(r'[^a-z0-9]+')


def normalize_summary(summary) -> str:
    return _NON_ALNUM_RE.sub(' ', (summary or '').lower()).strip()


def summaries_match(a, b) -> bool:
    a, b = normalize_summary(a), normalize_summary(b)
    if not a or not b:
        return False
    if a == b:
        return True
    if len(a) >= MIN_SUBSTRING_LENGTH and len(b) >= MIN_SUBSTRING_LENGTH:
        return a in b or b in a
    return False


def _collisions(session, candidate, ts):
    window = timedelta(days=DEDUPE_WINDOW_DAYS)
    rows = (session.query(ExternalEvent)
            .filter(ExternalEvent.domain == candidate.domain,
                    ExternalEvent.event_type == candidate.event_type,
                    ExternalEvent.event_ts.isnot(None))
            .all())
    return [row for row in rows if abs(parse_datetime(row.event_ts) - ts) <= window]


def dedupe_and_store(candidates: Iterable, on_decision: Callable = None) -> int:
    """
    Insert the candidates that do not collide with stored events. Returns inserted count.

    on_decision(action, candidate, reason) is called with action "skip" or "insert".
    """
    inserted = 0
    session = get_session()
    try:
        for candidate in candidates:
            ts = parse_datetime(candidate.event_ts)
            reason = None

            if ts is not None:
                existing = _collisions(session, candidate, ts)
                if existing:
                    similar = any(summaries_match(candidate.summary, row.summary) for row in existing)
                    reason = REASON_DUPLICATE_SUMMARY if similar else REASON_SAME_WINDOW

            if reason:
                if on_decision:
                    on_decision('skip', candidate, reason)
                continue

            session.add(ExternalEvent(
                domain=candidate.domain,
                event_type=candidate.event_type,
                event_ts=ts,
                source=candidate.source,
                source_url=candidate.source_url,
                confidence=candidate.confidence,
                payload_json=candidate.payload(),
            ))
            session.commit()
            inserted += 1
            if on_decision:
                on_decision('insert', candidate, None if ts else 'unparseable_timestamp')
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
    return inserted
