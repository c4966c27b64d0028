"""
Run persistence helpers — called from the orchestrator and the enrichment runner.

Progress updates are single-row writes so pollers always see a consistent
snapshot of the run.
"""
import logging
import uuid
from datetime import datetime, timezone

from expansion_engine.database import get_session
from expansion_engine.errors import RunNotFoundError
from expansion_engine.models.customer import Customer
from expansion_engine.models.evaluation import LlmEvaluation
from expansion_engine.models.run import Run
from expansion_engine.schemas.run_config import RunConfig

logger = logging.getLogger('services.db')


def create_run(evaluation_month, config: RunConfig, total_accounts, prompt_version=None,
               status='running', current_step='created', versions=None):
    """INSERT a run and return its id."""
    versions = versions or {}
    run_id = str(uuid.uuid4())
    session = get_session()
    try:
        session.add(Run(
            id=run_id,
            evaluation_month=evaluation_month,
            prompt_id=config.prompt_id,
            prompt_version=prompt_version,
            signal_version=versions.get('signal_version'),
            lift_stats_version=versions.get('lift_stats_version'),
            engine_version=versions.get('engine_version'),
            status=status,
            processed_count=0,
            total_accounts=total_accounts,
            current_step=current_step,
            config=config.to_blob(),
        ))
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
    logger.info("Created run %s (%s, %d accounts)", run_id, config.run_type, total_accounts)
    return run_id


def load_run(run_id):
    """Return the Run or None."""
    session = get_session()
    try:
        return session.get(Run, run_id)
    finally:
        session.close()


def require_run(run_id):
    run = load_run(run_id)
    if run is None:
        raise RunNotFoundError(run_id)
    return run


def update_run(run_id, **fields):
    """Single-row UPDATE of the given Run columns."""
    session = get_session()
    try:
        updated = session.query(Run).filter(Run.id == run_id).update(fields, synchronize_session=False)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
    if not updated:
        raise RunNotFoundError(run_id)


def set_progress(run_id, step=None, domain=None, substep=None):
    """Move the live progress pointers. step=None leaves current_step unchanged."""
    fields = {'current_domain': domain, 'substep_label': substep}
    if step is not None:
        fields['current_step'] = str(getattr(step, 'value', step))
    update_run(run_id, **fields)


def get_run_config(run) -> RunConfig:
    return RunConfig.from_blob(run.config)


def merge_run_config(run_id, **values):
    """Merge values into the run's validated config blob."""
    session = get_session()
    try:
        run = session.get(Run, run_id)
        if run is None:
            raise RunNotFoundError(run_id)
        merged = RunConfig.from_blob({**(run.config or {}), **values})
        run.config = merged.to_blob()
        session.commit()
        return merged
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ── Accounts ─────────────────────────────────────────────────────────────────

def list_customer_domains():
    """All customer domains in stable (domain) order."""
    session = get_session()
    try:
        return [row[0] for row in session.query(Customer.domain).order_by(Customer.domain).all()]
    finally:
        session.close()


def list_customers():
    session = get_session()
    try:
        return session.query(Customer).order_by(Customer.domain).all()
    finally:
        session.close()


def get_customer(domain):
    session = get_session()
    try:
        return session.query(Customer).filter(Customer.domain == domain).first()
    finally:
        session.close()


def get_done_domains(run_id):
    """Domains that already have an LlmEvaluation for this run."""
    session = get_session()
    try:
        rows = session.query(LlmEvaluation.domain).filter(LlmEvaluation.run_id == run_id).all()
        return {row[0] for row in rows}
    finally:
        session.close()


def mark_customer_enriched(domain, run_id, when=None):
    session = get_session()
    try:
        session.query(Customer).filter(Customer.domain == domain).update({
            'last_enriched_at': when or datetime.now(timezone.utc),
            'last_enrichment_run_id': run_id,
        }, synchronize_session=False)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
