"""
Notifications — Slack webhook integration for CRM events.

Notification failure never blocks the operation that triggered it.
"""
import logging
import requests

from clinic_crm.config import SLACK_WEBHOOK_URL

logger = logging.getLogger('services.notifications')


def _post(blocks, what, clinic_id):
    requests.post(SLACK_WEBHOOK_URL, json={"blocks": blocks}, timeout=10)
    logger.info("%s notification sent", what, extra={'clinic_id': clinic_id})


def notify_stage_deleted(clinic_id, stage_name, target_name, lead_count):
    """Tell the team a pipeline column was removed and where its leads went."""
    if not SLACK_WEBHOOK_URL:
        return

    try:
        blocks = [
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": f"*Stage deleted:* {stage_name} — {lead_count} lead(s) moved to *{target_name}*",
                }
            },
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": f"Clinic `{clinic_id}`"}]
            },
        ]
        _post(blocks, "Stage deletion", clinic_id)

    except Exception:
        logger.error("Failed to send stage deletion notification", exc_info=True,
                     extra={'clinic_id': clinic_id})


def notify_report_failed(report):
    """Post report failure alert to Slack."""
    if not SLACK_WEBHOOK_URL:
        return

    try:
        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": "AI Report FAILED",
                }
            },
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Period:* {report.start_date} → {report.end_date}"},
                    {"type": "mrkdwn", "text": f"*Delivery:* {report.delivery_method}"},
                ]
            },
        ]

        if report.error_message:
            blocks.append({
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*Error:* ```{report.error_message[:500]}```"}
            })

        _post(blocks, f"Report {report.id[:8]} failure", report.clinic_id)

    except Exception:
        logger.error("Failed to send failure notification for report %s", report.id[:8],
                     exc_info=True, extra={'clinic_id': report.clinic_id})
