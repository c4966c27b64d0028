"""
Run orchestrator — sequences the pipeline over a slice of accounts.

  CREATED → QUERY BUILDER → SEARCH → FETCH → EXTRACT → DEDUPE/STORE
          → ATOMIC SIGNALS → LIFT STATS → LLM EVAL → COMPLETED

start_run() prepares a run (enrichment, signals, lift) and stops before the
LLM stage; process_run() / resume_run() score the accounts that do not yet
have an evaluation for the run. Single-account enrichment runs are
dispatched as RQ jobs.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional

from expansion_engine.config import (
    DEFAULT_PROMPT_VERSION, ENGINE_VERSION, ENRICH_JOB_TIMEOUT,
    LIFT_STATS_VERSION, RUN_JOB_TIMEOUT, SIGNAL_VERSION,
)
from expansion_engine.database import get_session
from expansion_engine.errors import AccountNotFoundError, RunStateError
from expansion_engine.models.telemetry import Telemetry
from expansion_engine.pipeline.base import (
    EXTERNAL_EVENTS_STEP, RunStatus, RunStep, StageResult,
)
from expansion_engine.pipeline.context_snapshot import build_and_store_context_snapshot
from expansion_engine.pipeline.enrichment import run_external_events_enrichment
from expansion_engine.pipeline.judge import evaluate_with_llm
from expansion_engine.pipeline.lift_stats import compute_lift_stats
from expansion_engine.pipeline.signals import compute_atomic_signals
from expansion_engine.schemas.run_config import RunConfig
from expansion_engine.services.dates import month_start, shift_months
from expansion_engine.services.db import (
    create_run, get_customer, get_done_domains, get_run_config, list_customer_domains,
    load_run, mark_customer_enriched, require_run, set_progress, update_run,
)
from expansion_engine.services.domain import normalize_domain
from expansion_engine.services.notifications import notify_run_complete, notify_run_failed
from expansion_engine.services.prompts import resolve_evaluation_prompt
from expansion_engine.services.run_log import append_run_log

logger = logging.getLogger('pipeline.manager')


# ── Lazy RQ queue (avoids import-time Redis connection) ─────────────────────

_queue = None


def _get_queue():
    global _queue
    if _queue is None:
        from expansion_engine.extensions import redis_client
        from rq import Queue
        _queue = Queue(connection=redis_client)
    return _queue


@dataclass
class StartedRun:
    run_id: str
    evaluation_month: date
    total_accounts: int

    def to_dict(self):
        return {
            'run_id': self.run_id,
            'evaluation_month': self.evaluation_month.isoformat(),
            'total_accounts': self.total_accounts,
        }


VERSIONS = {
    'signal_version': SIGNAL_VERSION,
    'lift_stats_version': LIFT_STATS_VERSION,
    'engine_version': ENGINE_VERSION,
}


# ── Helpers ──────────────────────────────────────────────────────────────────

def resolve_evaluation_month(today: Optional[date] = None) -> date:
    """Latest telemetry month before the current month, else the first of last month."""
    current = month_start(today or date.today())
    session = get_session()
    try:
        latest = (session.query(Telemetry.month)
                  .filter(Telemetry.month < current)
                  .order_by(Telemetry.month.desc())
                  .first())
    finally:
        session.close()
    if latest is None:
        return shift_months(current, -1)
    return latest[0]


def account_slice(start_row=1) -> List[str]:
    """Customer domains ordered by domain, from the 1-based start_row onward."""
    return list_customer_domains()[max(0, start_row - 1):]


def _coerce_config(config, run_type) -> RunConfig:
    if isinstance(config, RunConfig):
        data = config.model_dump()
    else:
        data = dict(config or {})
    data['run_type'] = run_type
    return RunConfig.model_validate(data)


def _record_stage(run_id, result: StageResult):
    """Persist the step a stage just finished and note any stage errors."""
    set_progress(run_id, result.step)
    if result.errors:
        logger.info("Run %s %s finished with %d errors", run_id, result.step.value, len(result.errors))


def _fail_run(run_id, error):
    message = str(error) or error.__class__.__name__
    logger.error("Run %s failed: %s", run_id, message, exc_info=True)
    append_run_log(run_id, 'error', f"Run failed: {message}", detail={'error': message})
    update_run(run_id, status=RunStatus.FAILED.value, current_domain=None, substep_label=None)
    notify_run_failed(load_run(run_id), message)


def _prepare_scoring(run_id, domains, evaluation_month):
    """Atomic signals for the slice, then global lift stats."""
    set_progress(run_id, RunStep.ATOMIC_SIGNALS)
    append_run_log(run_id, 'info', "Computing atomic signals", step=RunStep.ATOMIC_SIGNALS.value)
    written = compute_atomic_signals(domains, evaluation_month)
    _record_stage(run_id, StageResult(step=RunStep.ATOMIC_SIGNALS, processed=written))

    set_progress(run_id, RunStep.LIFT_STATS)
    append_run_log(run_id, 'info', "Computing lift stats", step=RunStep.LIFT_STATS.value)
    stats = compute_lift_stats()
    _record_stage(run_id, StageResult(step=RunStep.LIFT_STATS, processed=len(stats)))

    set_progress(run_id, RunStep.LLM_EVAL)


def _start(config: RunConfig, with_enrichment: bool) -> StartedRun:
    domains = account_slice(config.start_row)
    evaluation_month = resolve_evaluation_month()
    first_step = RunStep.QUERY_BUILDER if with_enrichment else RunStep.ATOMIC_SIGNALS

    run_id = create_run(
        evaluation_month, config, total_accounts=len(domains),
        prompt_version=config.prompt_version or DEFAULT_PROMPT_VERSION,
        current_step=first_step.value, versions=VERSIONS,
    )

    try:
        if with_enrichment:
            summary = run_external_events_enrichment(run_id, domains, event_prompt_id=config.event_prompt_id)
            _record_stage(run_id, summary.to_stage_result())
        _prepare_scoring(run_id, domains, evaluation_month)
    except Exception as e:
        _fail_run(run_id, e)
        raise

    return StartedRun(run_id=run_id, evaluation_month=evaluation_month, total_accounts=len(domains))


# ── Public API ───────────────────────────────────────────────────────────────

def start_run(config) -> StartedRun:
    """
    Prepare a full run: enrichment over the slice, then signals and lift.

    Does not run the LLM stage; call process_run() (or dispatch_process_run())
    with the returned run id.
    """
    return _start(_coerce_config(config, 'full'), with_enrichment=True)


def start_evaluation_only_run(config) -> StartedRun:
    """Same as start_run() but skips external-event enrichment."""
    return _start(_coerce_config(config, 'evaluation_only'), with_enrichment=False)


def process_run(run_id, on_progress: Callable = None) -> dict:
    """
    Score every account in the run's slice that has no evaluation yet.

    A failure on one account propagates and leaves the run in `running`
    with accurate progress; resume_run() continues from there.
    """
    run = require_run(run_id)
    if run.status == RunStatus.COMPLETED.value:
        return get_run_progress(run_id)
    if run.status == RunStatus.FAILED.value:
        raise RunStateError(f"Run {run_id} has failed and cannot be processed")

    config = get_run_config(run)
    if config.run_type == 'enrichment_only':
        raise RunStateError(f"Run {run_id} is an enrichment-only run")

    domains = account_slice(config.start_row)
    total = len(domains)
    system_prompt = resolve_evaluation_prompt(config.prompt_id)
    prompt_version = run.prompt_version or DEFAULT_PROMPT_VERSION
    done = get_done_domains(run_id)
    processed = sum(1 for d in domains if d in done)

    update_run(run_id, status=RunStatus.RUNNING.value, current_step=RunStep.LLM_EVAL.value,
               current_domain=None, substep_label=None, total_accounts=total)
    append_run_log(run_id, 'info', "LLM evaluation started", step=RunStep.LLM_EVAL.value,
                   detail={'total_customers': total, 'already_done': processed})

    domain = None
    try:
        for index, domain in enumerate(domains):
            set_progress(run_id, RunStep.LLM_EVAL, domain, f"Customer {index + 1} of {total}")
            if domain in done:
                continue

            append_run_log(run_id, 'info', f"Evaluating {domain}", domain=domain, step=RunStep.LLM_EVAL.value)
            _, snapshot = build_and_store_context_snapshot(run_id, domain, run.evaluation_month)
            evaluate_with_llm(run_id, domain, snapshot, system_prompt, prompt_version)
            append_run_log(run_id, 'info', f"Done {domain}", domain=domain, step=RunStep.LLM_EVAL.value)

            processed += 1
            update_run(run_id, processed_count=processed, last_processed_index=index)
            if on_progress:
                on_progress(get_run_progress(run_id))
    except Exception as e:
        logger.error("Evaluation failed for %s in run %s", domain, run_id, exc_info=True)
        append_run_log(run_id, 'error', f"Evaluation failed for {domain}: {e}",
                       domain=domain, step=RunStep.LLM_EVAL.value, detail={'error': str(e)})
        raise

    update_run(run_id, status=RunStatus.COMPLETED.value, current_step=RunStep.COMPLETED.value,
               current_domain=None, substep_label=None, processed_count=processed)
    append_run_log(run_id, 'info', "LLM evaluation finished", step=RunStep.LLM_EVAL.value,
                   detail={'processed_count': processed, 'total_customers': total})

    progress = get_run_progress(run_id)
    notify_run_complete(load_run(run_id), progress.get('external_events_summary'))
    return progress


def resume_run(run_id, on_progress: Callable = None) -> dict:
    """
    Idempotent continuation after a crash or interruption.

    No-op for completed runs. Only accounts without an evaluation for this
    run are scored, in the original order.
    """
    run = require_run(run_id)
    if run.status == RunStatus.COMPLETED.value:
        logger.info("Run %s already completed, nothing to resume", run_id)
        return get_run_progress(run_id)
    if run.status == RunStatus.FAILED.value:
        raise RunStateError(f"Run {run_id} has failed; start a new run instead")
    if get_run_config(run).run_type == 'enrichment_only':
        raise RunStateError(f"Run {run_id} is an enrichment-only run and cannot be resumed")

    append_run_log(run_id, 'info', "Resuming run", step=RunStep.LLM_EVAL.value,
                   detail={'processed_count': run.processed_count or 0,
                           'last_processed_index': run.last_processed_index})
    return process_run(run_id, on_progress=on_progress)


# ── Single-account enrichment ────────────────────────────────────────────────

def create_enrichment_run(domain, event_prompt_id=None) -> str:
    """Create a run scoped to one known domain. Does not run enrichment."""
    normalized = normalize_domain(domain)
    if not normalized or get_customer(normalized) is None:
        raise AccountNotFoundError(domain)

    config = RunConfig(run_type='enrichment_only', domain=normalized, event_prompt_id=event_prompt_id)
    return create_run(
        resolve_evaluation_month(), config, total_accounts=1,
        current_step=RunStep.QUERY_BUILDER.value, versions=VERSIONS,
    )


def run_enrichment_in_background(run_id, domain, event_prompt_id=None) -> str:
    """
    RQ job body. Always leaves the run terminal: `completed`, or `failed`
    with the error in the run log. Returns the final status.
    """
    try:
        run_external_events_enrichment(run_id, [domain], event_prompt_id=event_prompt_id)
        update_run(run_id, status=RunStatus.COMPLETED.value, current_step=RunStep.COMPLETED.value,
                   current_domain=None, substep_label=None, processed_count=1)
        mark_customer_enriched(domain, run_id)
        return RunStatus.COMPLETED.value
    except Exception as e:
        message = str(e) or e.__class__.__name__
        logger.error("Enrichment run %s failed for %s", run_id, domain, exc_info=True)
        append_run_log(run_id, 'error', f"Enrichment failed: {message}", domain=domain,
                       step=EXTERNAL_EVENTS_STEP, detail={'error': message})
        update_run(run_id, status=RunStatus.FAILED.value, current_domain=None, substep_label=None)
        notify_run_failed(load_run(run_id), message)
        return RunStatus.FAILED.value


def dispatch_enrichment(domain, event_prompt_id=None, sync=False):
    """Create an enrichment run and enqueue it. Returns (run_id, job); job is None when sync."""
    run_id = create_enrichment_run(domain, event_prompt_id)
    normalized = normalize_domain(domain)
    if sync:
        run_enrichment_in_background(run_id, normalized, event_prompt_id)
        return run_id, None
    job = _get_queue().enqueue(run_enrichment_in_background, run_id, normalized, event_prompt_id,
                               job_timeout=ENRICH_JOB_TIMEOUT)
    return run_id, job


def start_enrichment_only_run(domain, event_prompt_id=None) -> str:
    """Blocking single-account enrichment. Returns the run id."""
    run_id, _ = dispatch_enrichment(domain, event_prompt_id, sync=True)
    return run_id


def dispatch_process_run(run_id):
    require_run(run_id)
    return _get_queue().enqueue(process_run, run_id, job_timeout=RUN_JOB_TIMEOUT)


def dispatch_resume_run(run_id):
    run = require_run(run_id)
    if run.status == RunStatus.FAILED.value:
        raise RunStateError(f"Run {run_id} has failed; start a new run instead")
    return _get_queue().enqueue(resume_run, run_id, job_timeout=RUN_JOB_TIMEOUT)


# ── Progress ─────────────────────────────────────────────────────────────────

def get_run_progress(run_id) -> Optional[dict]:
    """Run fields plus the enrichment summary, or None if the run does not exist."""
    run = load_run(run_id)
    if run is None:
        return None
    progress = run.to_dict()
    progress['external_events_summary'] = get_run_config(run).enrichment_summary()
    return progress
