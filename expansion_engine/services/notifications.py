"""
Notifications — Slack webhook integration for run events.

Notification failure never blocks the pipeline.
"""
import logging
import requests

from expansion_engine.config import SLACK_WEBHOOK_URL

logger = logging.getLogger('services.notifications')


def _post(blocks):
    requests.post(SLACK_WEBHOOK_URL, json={"blocks": blocks}, timeout=10)


def notify_run_complete(run, summary=None):
    """Post run completion summary to Slack."""
    if not SLACK_WEBHOOK_URL:
        return

    try:
        month = run.evaluation_month.isoformat() if run.evaluation_month else 'n/a'
        fields = [
            {"type": "mrkdwn", "text": f"*Evaluation month:* {month}"},
            {"type": "mrkdwn", "text": f"*Scored:* {run.processed_count or 0} / {run.total_accounts or 0}"},
        ]
        if summary:
            fields.extend([
                {"type": "mrkdwn", "text": f"*Domains enriched:* {summary.get('domains_processed', 0)}"},
                {"type": "mrkdwn", "text": f"*Events stored:* {summary.get('events_stored', 0)}"},
            ])
        _post([
            {"type": "header", "text": {"type": "plain_text", "text": "Expansion run completed"}},
            {"type": "section", "fields": fields},
            {"type": "context", "elements": [{"type": "mrkdwn", "text": f"Run `{run.id}`"}]},
        ])
        logger.info("Run %s completion notification sent", run.id[:8])
    except Exception:
        logger.error("Failed to send notification for run %s", run.id[:8], exc_info=True)


def notify_run_failed(run, error_message=''):
    """Post run failure alert to Slack."""
    if not SLACK_WEBHOOK_URL:
        return

    try:
        blocks = [
            {"type": "header", "text": {"type": "plain_text", "text": "Expansion run FAILED"}},
            {"type": "section", "fields": [
                {"type": "mrkdwn", "text": f"*Step:* {run.current_step or 'unknown'}"},
                {"type": "mrkdwn", "text": f"*Domain:* {run.current_domain or 'n/a'}"},
            ]},
        ]
        if error_message:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Error:* ```{error_message[:500]}```"},
            })
        _post(blocks)
        logger.info("Run %s failure notification sent", run.id[:8])
    except Exception:
        logger.error("Failed to send failure notification for run %s", run.id[:8], exc_info=True)
