"""
Append-only run log.

Sequence numbers come from max(seq)+1 in the database, never from an
in-memory counter, so they stay correct across process restarts. Every
entry is mirrored to the process logger.
"""
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from expansion_engine.config import RUN_LOG_MAX_LIMIT
from expansion_engine.database import get_session
from expansion_engine.errors import EngineError
from expansion_engine.models.run_log import RunLogEntry

logger = logging.getLogger('pipeline.run_log')

LEVELS = {
    'info': logging.INFO,
    'warn': logging.WARNING,
    'error': logging.ERROR,
}

_MAX_APPEND_ATTEMPTS = 5


def append_run_log(run_id, level, message, domain=None, step=None, detail=None):
    """
    Append one entry and return its seq.

    Two writers racing for the same seq collide on the (run_id, seq)
    unique constraint; the loser re-reads max(seq) and tries again.
    """
    if level not in LEVELS:
        raise ValueError(f"Invalid log level: {level}")

    logger.log(LEVELS[level], "%s%s", f"{domain}: " if domain else '', message,
               extra={'run_id': run_id, 'domain': domain, 'step': step})

    for _ in range(_MAX_APPEND_ATTEMPTS):
        session = get_session()
        try:
            seq = _max_seq(session, run_id) + 1
            session.add(RunLogEntry(
                run_id=run_id,
                seq=seq,
                level=level,
                domain=domain,
                step=step,
                message=message,
                detail=detail,
            ))
            session.commit()
            return seq
        except IntegrityError:
            session.rollback()
            logger.debug("Run log seq collision for run %s, retrying", run_id)
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    raise EngineError(f"Could not append run log entry for run {run_id}")


def _max_seq(session, run_id):
    value = session.query(func.max(RunLogEntry.seq)).filter(RunLogEntry.run_id == run_id).scalar()
    return int(value or 0)


def get_max_seq(run_id):
    session = get_session()
    try:
        return _max_seq(session, run_id)
    finally:
        session.close()


def get_run_log_entries(run_id, since=0, limit=RUN_LOG_MAX_LIMIT, tail=None):
    """
    Read entries in ascending seq order. Returns (entries, has_more).

    since/limit: entries with seq > since; has_more when more than limit exist.
    tail:        the last `tail` entries; has_more when older entries exist.
    """
    session = get_session()
    try:
        query = session.query(RunLogEntry).filter(RunLogEntry.run_id == run_id)

        if tail is not None:
            tail = max(0, min(int(tail), RUN_LOG_MAX_LIMIT))
            rows = query.order_by(RunLogEntry.seq.desc()).limit(tail + 1).all()
            has_more = len(rows) > tail
            rows = list(reversed(rows[:tail]))
        else:
            limit = max(0, min(int(limit), RUN_LOG_MAX_LIMIT))
            rows = (query.filter(RunLogEntry.seq > int(since or 0))
                    .order_by(RunLogEntry.seq.asc())
                    .limit(limit + 1)
                    .all())
            has_more = len(rows) > limit
            rows = rows[:limit]

        return [row.to_dict() for row in rows], has_more
    finally:
        session.close()
