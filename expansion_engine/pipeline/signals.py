"""
Atomic signal calculator.

Six fixed signals per (domain, evaluation month), derived from that month's
telemetry row and the domain's stored events. Rows are upserted on
(domain, month, signal_type), so recomputation overwrites rather than
duplicates.
"""
import logging
import os
from datetime import date, timedelta
from typing import Dict, List

import yaml

from expansion_engine.config import SIGNAL_VERSION
from expansion_engine.database import get_session
from expansion_engine.models.external_event import ExternalEvent
from expansion_engine.models.signal import AtomicSignal
from expansion_engine.models.telemetry import Telemetry
from expansion_engine.services.dates import parse_date

logger = logging.getLogger('pipeline.signals')

EXPANSION_SIGNAL_TYPES = ('seat_saturation', 'adoption_acceleration', 'feature_adoption_high')
RISK_SIGNAL_TYPES = ('usage_decline', 'layoff_event_recent', 'exec_departure_ld_recent')
ALL_SIGNAL_TYPES = EXPANSION_SIGNAL_TYPES + RISK_SIGNAL_TYPES

_signal_config = None


def _default_config():
    """Hardcoded fallback if YAML is missing."""
    return {
        'version': 'default',
        'lookback_days': 90,
        'seat_saturation': {'cap': 1.0},
        'adoption': {'high_threshold': 0.8, 'medium_threshold': 0.5},
        'usage_decline': {'ratio_threshold': 0.5},
        'event_keywords': {
            'layoff_event_recent': {'types': ['layoff'], 'contains': ['layoff', 'redundancy']},
            'exec_departure_ld_recent': {'types': ['exec_departure_ld'],
                                         'contains': ['exec', 'departure', 'ld']},
        },
    }


def load_signal_config():
    """Load signal thresholds from YAML, with in-memory cache and hardcoded fallback."""
    global _signal_config
    if _signal_config is not None:
        return _signal_config

    config_path = os.path.join(os.path.dirname(__file__), 'signal_config.yaml')
    try:
        with open(config_path, 'r') as f:
            _signal_config = yaml.safe_load(f)
        logger.info("Signal config loaded from YAML (version=%s)", _signal_config.get('version', '?'))
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Signal config YAML not loaded (%s), using defaults", e)
        _signal_config = _default_config()

    return _signal_config


def signal_category(signal_type) -> str:
    if signal_type in EXPANSION_SIGNAL_TYPES:
        return 'EXPANSION'
    if signal_type in RISK_SIGNAL_TYPES:
        return 'RISK'
    return 'REENGAGE'


def _event_matches(event_type, rule) -> bool:
    t = (event_type or '').lower()
    return t in rule.get('types', []) or any(word in t for word in rule.get('contains', []))


def compute_signal_values(telemetry, event_types_in_window, config=None) -> Dict[str, tuple]:
    """
    Pure computation: signal_type → (value, score).

    telemetry is a Telemetry row or None; event_types_in_window are the
    event types of the domain's events inside the lookback window.
    """
    config = config or load_signal_config()
    active = (telemetry.active_users_30d if telemetry else None) or 0
    seats = (telemetry.licensed_seats if telemetry else None) or 0
    adoption = (telemetry.feature_adoption_score if telemetry else None) or 0

    high = config['adoption']['high_threshold']
    medium = config['adoption']['medium_threshold']

    saturation = min(config['seat_saturation']['cap'], active / seats) if seats > 0 else 0
    acceleration = 1 if adoption >= high else 0.5 if adoption >= medium else 0
    adoption_high = 1 if adoption >= high else 0
    decline = 1 if seats > 0 and active / seats < config['usage_decline']['ratio_threshold'] else 0

    rules = config['event_keywords']
    layoff = any(_event_matches(t, rules['layoff_event_recent']) for t in event_types_in_window)
    departure = any(_event_matches(t, rules['exec_departure_ld_recent']) for t in event_types_in_window)

    return {
        'seat_saturation': (saturation, round(saturation * 100)),
        'adoption_acceleration': (acceleration, round(acceleration * 100)),
        'feature_adoption_high': (adoption_high, 100 if adoption_high else 0),
        'usage_decline': (decline, decline * 100),
        'layoff_event_recent': (1 if layoff else 0, 100 if layoff else 0),
        'exec_departure_ld_recent': (1 if departure else 0, 100 if departure else 0),
    }


def _events_in_window(session, domain, window_start: date, window_end: date):
    rows = (session.query(ExternalEvent.event_type, ExternalEvent.event_ts)
            .filter(ExternalEvent.domain == domain, ExternalEvent.event_ts.isnot(None))
            .all())
    types = []
    for event_type, event_ts in rows:
        day = parse_date(event_ts)
        if day is not None and window_start <= day <= window_end:
            types.append(event_type)
    return types


def _upsert(session, domain, month, signal_type, value, score):
    row = (session.query(AtomicSignal)
           .filter_by(domain=domain, month=month, signal_type=signal_type)
           .first())
    if row is None:
        row = AtomicSignal(domain=domain, month=month, signal_type=signal_type)
        session.add(row)
    row.signal_value = float(value)
    row.signal_score = int(score)
    row.signal_timestamp = month
    row.signal_version = SIGNAL_VERSION


def compute_atomic_signals(domains: List[str], evaluation_month: date) -> int:
    """Compute and upsert all six signals for each domain. Returns rows written."""
    config = load_signal_config()
    window_start = evaluation_month - timedelta(days=config.get('lookback_days', 90))
    written = 0

    session = get_session()
    try:
        for domain in domains:
            telemetry = (session.query(Telemetry)
                         .filter_by(domain=domain, month=evaluation_month)
                         .first())
            event_types = _events_in_window(session, domain, window_start, evaluation_month)
            values = compute_signal_values(telemetry, event_types, config)
            for signal_type in ALL_SIGNAL_TYPES:
                value, score = values[signal_type]
                _upsert(session, domain, evaluation_month, signal_type, value, score)
                written += 1
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    logger.info("Atomic signals computed for %d domains (%s)", len(domains), evaluation_month)
    return written
