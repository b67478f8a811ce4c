"""
AI reports — request, dispatch to the external report generator, complete, cancel.

A request is stored as `pending` and handed to an RQ worker. The worker
marks it `processing` and POSTs a signed, minimal payload to the report
generator webhook, which gathers the data itself and later calls back
with the finished content. Cancellation is only possible while the report
is pending or processing; every status move after creation is a
conditional UPDATE so a late callback never overwrites a cancellation.
"""
import logging
import time
from datetime import date

import requests
from jose import jwt
from sqlalchemy import select, update

from clinic_crm import database
from clinic_crm.config import (
    REPORT_WEBHOOK_URL, REPORT_WEBHOOK_SECRET, REPORT_TOKEN_TTL,
    REPORT_DELIVERY_METHODS,
)
from clinic_crm.errors import NotFoundError, ValidationError
from clinic_crm.models._helpers import new_id, utcnow
from clinic_crm.models.ai_report import AIReport
from clinic_crm.models.clinic import Clinic
from clinic_crm.services import realtime
from clinic_crm.services.notifications import notify_report_failed

logger = logging.getLogger('services.reports')

ACTIVE_STATUSES = ('pending', 'processing')


# ── Lazy RQ queue (avoids import-time Redis connection in tests) ─────────

_queue = None

def _get_queue():
    global _queue
    if _queue is None:
        from clinic_crm.extensions import redis_client
        from rq import Queue
        _queue = Queue('reports', connection=redis_client)
    return _queue


# ── Helpers ──────────────────────────────────────────────────────────────

def _parse_date(value, field):
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a YYYY-MM-DD date")


def _transition(session, report_id, from_statuses, **values):
    """Conditional status move; returns True when the row was in from_statuses."""
    result = session.execute(
        update(AIReport)
        .where(AIReport.id == report_id, AIReport.status.in_(from_statuses))
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def _publish(report):
    realtime.publish_change('ai_reports', report.clinic_id, 'update', report.to_dict())


def _reload(session, report_id):
    return session.get(AIReport, report_id, populate_existing=True)


def build_webhook_token(report):
    """Short-lived HS256 token the report generator verifies."""
    now = int(time.time())
    claims = {
        'iss': 'clinic-crm',
        'iat': now,
        'exp': now + REPORT_TOKEN_TTL,
        'data': {'report_request_id': report.id, 'clinica_id': report.clinic_id},
    }
    return jwt.encode(claims, REPORT_WEBHOOK_SECRET, algorithm='HS256')


# ── Public API ───────────────────────────────────────────────────────────

def request_report(clinic_id, start_date, end_date, delivery_method='in_app',
                   recipient_phone=None):
    """Store a pending report and enqueue its dispatch. Returns the AIReport."""
    start = _parse_date(start_date, 'start_date')
    end = _parse_date(end_date, 'end_date')
    if start > end:
        raise ValidationError("start_date must not be after end_date")
    if delivery_method not in REPORT_DELIVERY_METHODS:
        raise ValidationError(f"delivery_method must be one of {REPORT_DELIVERY_METHODS}")
    if delivery_method == 'whatsapp' and not (recipient_phone or '').strip():
        raise ValidationError("recipient_phone is required for whatsapp delivery")

    session = database.get_session()
    try:
        if session.get(Clinic, clinic_id) is None:
            raise NotFoundError('clinic', clinic_id)
        report = AIReport(
            id=new_id(),
            clinic_id=clinic_id,
            start_date=start,
            end_date=end,
            delivery_method=delivery_method,
            recipient_phone=(recipient_phone or '').strip() or None,
            status='pending',
        )
        session.add(report)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    _get_queue().enqueue(dispatch_report, report.id, job_timeout=300)
    logger.info("Report %s queued for %s → %s", report.id[:8], start, end,
                extra={'clinic_id': clinic_id})
    return report


def dispatch_report(report_id):
    """
    RQ job: hand a pending report to the generator webhook.

    Reports cancelled before the worker picked them up are skipped.
    """
    session = database.get_session()
    try:
        if not _transition(session, report_id, ('pending',), status='processing'):
            session.rollback()
            logger.info("Report %s no longer pending, skipping dispatch", report_id[:8])
            return
        session.commit()
        report = _reload(session, report_id)
        _publish(report)

        try:
            if not REPORT_WEBHOOK_URL or not REPORT_WEBHOOK_SECRET:
                raise RuntimeError("REPORT_WEBHOOK_URL / REPORT_WEBHOOK_SECRET not configured")
            payload = {
                'report_request_id': report.id,
                'clinica_id': report.clinic_id,
                'start_date': report.start_date.isoformat(),
                'end_date': report.end_date.isoformat(),
                'delivery_method': report.delivery_method,
                'recipient_phone_number': report.recipient_phone,
                'processing_started_at': utcnow().isoformat(),
            }
            resp = requests.post(
                REPORT_WEBHOOK_URL,
                json=payload,
                headers={'Authorization': f'Bearer {build_webhook_token(report)}'},
                timeout=30,
            )
            resp.raise_for_status()
            logger.info("Report %s handed to generator", report_id[:8],
                        extra={'clinic_id': report.clinic_id})
        except Exception as e:
            logger.error("Report %s dispatch failed", report_id[:8], exc_info=True,
                         extra={'clinic_id': report.clinic_id})
            if _transition(session, report_id, ('processing',),
                           status='failed', error_message=str(e)[:1000]):
                session.commit()
                report = _reload(session, report_id)
                _publish(report)
                notify_report_failed(report)
            else:
                session.rollback()
    finally:
        session.close()


def complete_report(report_id, content=None, pdf_url=None):
    """Generator callback. Applies only while processing; returns whether it did."""
    session = database.get_session()
    try:
        if session.get(AIReport, report_id) is None:
            raise NotFoundError('report', report_id)
        applied = _transition(session, report_id, ('processing',), status='completed',
                              report_content=content, report_pdf_url=pdf_url)
        session.commit()
        report = _reload(session, report_id)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if applied:
        _publish(report)
        logger.info("Report %s completed", report_id[:8], extra={'clinic_id': report.clinic_id})
    else:
        logger.info("Ignoring completion for report %s in status %s", report_id[:8],
                    report.status, extra={'clinic_id': report.clinic_id})
    return applied


def cancel_report(clinic_id, report_id):
    """Cancel a pending/processing report. Returns the updated AIReport."""
    session = database.get_session()
    try:
        report = session.get(AIReport, report_id)
        if report is None or report.clinic_id != clinic_id:
            raise NotFoundError('report', report_id)
        if not _transition(session, report_id, ACTIVE_STATUSES, status='cancelled',
                           error_message='Cancelled by user',
                           report_content=None, report_pdf_url=None):
            raise ValidationError(f"Report already {report.status}, cannot cancel")
        session.commit()
        report = _reload(session, report_id)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    _publish(report)
    logger.info("Report %s cancelled", report_id[:8], extra={'clinic_id': clinic_id})
    return report


def list_reports(clinic_id, limit=50):
    session = database.get_session()
    try:
        return list(session.scalars(
            select(AIReport)
            .where(AIReport.clinic_id == clinic_id)
            .order_by(AIReport.created_at.desc())
            .limit(limit)
        ))
    finally:
        session.close()
