"""
Ingestion boundary — replaces the ingest tables with already-parsed rows.

Every domain key goes through normalize_domain(). Customers are unique per
domain and telemetry per (domain, month); for duplicates the last row wins.
"""
import logging

from expansion_engine.database import get_session
from expansion_engine.models.customer import Customer
from expansion_engine.models.external_event import ExternalEvent
from expansion_engine.models.opportunity import Opportunity
from expansion_engine.models.telemetry import Telemetry
from expansion_engine.schemas.events import EventPayload
from expansion_engine.services.dates import parse_date, parse_datetime, month_start
from expansion_engine.services.domain import normalize_domain

logger = logging.getLogger('services.ingest')


def _float(value):
    if value is None or value == '':
        return None
    return float(value)


def _int(value):
    if value is None or value == '':
        return None
    return int(float(value))


def _customer_rows(rows):
    by_domain = {}
    for row in rows:
        domain = normalize_domain(row.get('domain') or row.get('website'))
        if not domain:
            logger.warning("Skipping customer without usable domain: %s", row.get('account_name'))
            continue
        by_domain[domain] = Customer(
            domain=domain,
            account_id=row.get('account_id'),
            account_name=(row.get('account_name') or '').strip(),
            website=row.get('website'),
            arr=_float(row.get('arr')),
            renewal_date=parse_date(row.get('renewal_date')),
            segment=row.get('segment'),
            status=row.get('status'),
            licensed_seats=_int(row.get('licensed_seats')),
            extra=row.get('extra'),
        )
    return list(by_domain.values())


def _telemetry_rows(rows):
    by_key = {}
    for row in rows:
        domain = normalize_domain(row.get('domain'))
        month = parse_date(row.get('month'))
        if not domain or month is None:
            continue
        month = month_start(month)
        by_key[(domain, month)] = Telemetry(
            domain=domain,
            month=month,
            active_users_30d=_int(row.get('active_users_30d')),
            licensed_seats=_int(row.get('licensed_seats')),
            feature_adoption_score=_float(row.get('feature_adoption_score')),
            extra=row.get('extra'),
        )
    return list(by_key.values())


def _opportunity_rows(rows):
    return [
        Opportunity(
            account_id=row.get('account_id'),
            opportunity_id=row.get('opportunity_id'),
            type=row.get('type'),
            stage=row.get('stage'),
            created_date=parse_date(row.get('created_date')),
            close_date=parse_date(row.get('close_date')),
            amount=_float(row.get('amount')),
            extra=row.get('extra'),
        )
        for row in rows
        if row.get('account_id')
    ]


def _event_rows(rows):
    events = []
    for row in rows:
        domain = normalize_domain(row.get('domain'))
        if not domain or not row.get('event_type'):
            continue
        confidence = _float(row.get('confidence'))
        payload = row.get('payload_json') or {}
        if 'confidence' not in payload and confidence is not None:
            payload = {**payload, 'confidence': confidence}
        if 'confidence' in payload:
            payload = EventPayload.model_validate(payload).model_dump()
        events.append(ExternalEvent(
            domain=domain,
            event_type=row['event_type'],
            event_ts=parse_datetime(row.get('event_ts')),
            source=row.get('source'),
            source_url=row.get('source_url'),
            confidence=confidence,
            payload_json=payload or None,
        ))
    return events


def store_ingest(customers=(), opportunities=(), events=(), telemetry=()):
    """Clear the ingest tables and insert the given rows. Returns per-table counts."""
    customer_objs = _customer_rows(customers)
    telemetry_objs = _telemetry_rows(telemetry)
    opportunity_objs = _opportunity_rows(opportunities)
    event_objs = _event_rows(events)

    session = get_session()
    try:
        for model in (ExternalEvent, Telemetry, Opportunity, Customer):
            session.query(model).delete()
        session.add_all(customer_objs + opportunity_objs + event_objs + telemetry_objs)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    counts = {
        'customers': len(customer_objs),
        'opportunities': len(opportunity_objs),
        'events': len(event_objs),
        'telemetry': len(telemetry_objs),
    }
    logger.info("Ingest stored: %s", counts)
    return counts
