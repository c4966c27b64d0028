"""
Engine API — thin HTTP layer over the orchestrator, run log and export.
"""
import logging

from flask import Blueprint, Response, jsonify, request
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from expansion_engine.config import RUN_LOG_MAX_LIMIT
from expansion_engine.errors import NotFoundError, RunNotFoundError, RunStateError
from expansion_engine.pipeline import manager
from expansion_engine.pipeline.base import RunStatus
from expansion_engine.pipeline.export import export_filename, get_export_rows, to_csv
from expansion_engine.services.db import list_customers, require_run
from expansion_engine.services.ingest import store_ingest
from expansion_engine.services.log_formatter import humanize_log_entry
from expansion_engine.services.prompts import list_prompts
from expansion_engine.services.run_log import get_run_log_entries

logger = logging.getLogger('routes.engine')

bp = Blueprint('engine', __name__, url_prefix='/api/engine')


# ── Error mapping ────────────────────────────────────────────────────────────

@bp.errorhandler(NotFoundError)
def _not_found(e):
    return jsonify({'error': str(e)}), 404


@bp.errorhandler(RunStateError)
def _conflict(e):
    return jsonify({'error': str(e)}), 409


@bp.errorhandler(ValidationError)
@bp.errorhandler(ValueError)
def _bad_request(e):
    return jsonify({'error': str(e)}), 400


@bp.errorhandler(Exception)
def _server_error(e):
    if isinstance(e, HTTPException):
        return e
    logger.error("Unhandled error in %s: %s", request.path, e, exc_info=True)
    return jsonify({'error': str(e)}), 500


def _run_config_from_request():
    data = request.get_json(silent=True) or {}
    return {
        'start_row': data.get('start_row', 1),
        'event_prompt_id': data.get('event_prompt_id'),
        'prompt_id': data.get('prompt_id'),
        'prompt_version': data.get('prompt_version'),
    }


def _bounded(name, default):
    value = request.args.get(name, default, type=int)
    if value is None:
        raise ValueError(f"{name} must be an integer")
    return max(0, min(value, RUN_LOG_MAX_LIMIT))


# ── Ingest ───────────────────────────────────────────────────────────────────

@bp.route('/ingest', methods=['POST'])
def ingest():
    """Replace customers/opportunities/events/telemetry with already-parsed rows."""
    data = request.get_json(silent=True) or {}
    counts = store_ingest(
        customers=data.get('customers') or [],
        opportunities=data.get('opportunities') or [],
        events=data.get('events') or [],
        telemetry=data.get('telemetry') or [],
    )
    return jsonify(counts), 201


@bp.route('/customers')
def customers():
    return jsonify([c.to_dict() for c in list_customers()])


@bp.route('/prompts')
def prompts():
    return jsonify(list_prompts())


# ── Runs ─────────────────────────────────────────────────────────────────────

@bp.route('/run', methods=['POST'])
def create_run():
    """Prepare a full run synchronously, then enqueue the LLM stage."""
    started = manager.start_run(_run_config_from_request())
    manager.dispatch_process_run(started.run_id)
    return jsonify(started.to_dict()), 202


@bp.route('/evaluate', methods=['POST'])
def create_evaluation_run():
    """Evaluation-only run: no enrichment, LLM stage enqueued."""
    started = manager.start_evaluation_only_run(_run_config_from_request())
    manager.dispatch_process_run(started.run_id)
    return jsonify(started.to_dict()), 202


@bp.route('/run/<run_id>')
def get_run(run_id):
    """Run progress; ranked results are included once the run has completed."""
    progress = manager.get_run_progress(run_id)
    if progress is None:
        raise RunNotFoundError(run_id)
    if progress['status'] == RunStatus.COMPLETED.value:
        progress['results'] = get_export_rows(run_id)
    return jsonify(progress)


@bp.route('/run/<run_id>/log')
def get_run_log(run_id):
    """Poll with ?since=<seq>&limit=<n>, or ?tail=<n> for the latest entries."""
    require_run(run_id)
    if request.args.get('tail') is not None:
        entries, has_more = get_run_log_entries(run_id, tail=_bounded('tail', RUN_LOG_MAX_LIMIT))
    else:
        entries, has_more = get_run_log_entries(
            run_id,
            since=request.args.get('since', 0, type=int) or 0,
            limit=_bounded('limit', RUN_LOG_MAX_LIMIT),
        )
    if request.args.get('format') == 'human':
        for entry in entries:
            entry['text'] = humanize_log_entry(entry)
    return jsonify({'entries': entries, 'has_more': has_more})


@bp.route('/run/<run_id>/resume', methods=['POST'])
def resume(run_id):
    run = require_run(run_id)
    if run.status == RunStatus.COMPLETED.value:
        return jsonify(manager.get_run_progress(run_id))
    job = manager.dispatch_resume_run(run_id)
    return jsonify({'run_id': run_id, 'job_id': job.id}), 202


@bp.route('/run/<run_id>/export')
def export(run_id):
    run = require_run(run_id)
    body = to_csv(get_export_rows(run_id))
    return Response(
        body,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{export_filename(run.evaluation_month)}"'},
    )


# ── Single-account enrichment ────────────────────────────────────────────────

@bp.route('/enrich', methods=['POST'])
def enrich():
    data = request.get_json(silent=True) or {}
    domain = (data.get('domain') or '').strip()
    if not domain:
        return jsonify({'error': 'domain is required'}), 400
    run_id, job = manager.dispatch_enrichment(domain, data.get('event_prompt_id'))
    return jsonify({'run_id': run_id, 'job_id': job.id if job else None}), 202
