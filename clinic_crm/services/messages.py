"""
Chat messages — a lead's conversation thread, outbound delivery over the
WhatsApp gateway webhook, unread tracking.

Sending stores the message as `pending` and hands it to an RQ worker,
which POSTs a signed gateway payload with up to MESSAGE_DELIVERY_ATTEMPTS
tries and exponential backoff, then marks the message `sent` or `failed`.
Inbound messages (from the lead) are recorded unread until staff open
the thread.
"""
import logging
import re
import time

import requests
from jose import jwt
from sqlalchemy import func, select, update

from clinic_crm import database
from clinic_crm.config import (
    MESSAGE_WEBHOOK_URL, MESSAGE_WEBHOOK_SECRET, MESSAGE_DELIVERY_ATTEMPTS,
    MESSAGE_TOKEN_TTL,
)
from clinic_crm.errors import NotFoundError, ValidationError
from clinic_crm.models._helpers import new_id, utcnow
from clinic_crm.models.clinic import Clinic
from clinic_crm.models.lead import Lead
from clinic_crm.models.message import Message
from clinic_crm.services import realtime

logger = logging.getLogger('services.messages')

MESSAGE_TYPES = ('text', 'image', 'audio', 'document')


# ── Lazy RQ queue (avoids import-time Redis connection in tests) ─────────

_queue = None

def _get_queue():
    global _queue
    if _queue is None:
        from clinic_crm.extensions import redis_client
        from rq import Queue
        _queue = Queue('messages', connection=redis_client)
    return _queue


# ── Helpers ──────────────────────────────────────────────────────────────

def _lead_for_clinic(session, clinic_id, lead_id):
    lead = session.get(Lead, lead_id)
    if lead is None or lead.clinic_id != clinic_id:
        raise NotFoundError('lead', lead_id)
    return lead


def _publish(message, op='update'):
    realtime.publish_change('chat_messages', message.clinic_id, op, message.to_dict())


def _validate_content(content, message_type):
    content = (content or '').strip()
    if not content:
        raise ValidationError("content must not be empty")
    if message_type not in MESSAGE_TYPES:
        raise ValidationError(f"message_type must be one of {list(MESSAGE_TYPES)}")
    return content


def whatsapp_jid(phone):
    """Gateway chat id for a phone number: digits only, @s.whatsapp.net."""
    digits = re.sub(r'\D', '', phone or '')
    return f'{digits}@s.whatsapp.net' if digits else None


def build_message_token(clinic_id):
    """Short-lived HS256 token the gateway verifies."""
    now = int(time.time())
    claims = {
        'iss': 'clinic-crm',
        'iat': now,
        'exp': now + MESSAGE_TOKEN_TTL,
        'clinica_id': clinic_id,
    }
    return jwt.encode(claims, MESSAGE_WEBHOOK_SECRET, algorithm='HS256')


def build_gateway_payload(message, lead, clinic):
    return {
        'event': 'crm.send.message',
        'instance': clinic.whatsapp_instance_name,
        'data': {
            'key': {
                'remoteJid': whatsapp_jid(lead.phone),
                'fromMe': True,
                'id': message.id,
            },
            'pushName': lead.name,
            'message': {'conversation': message.content},
            'messageType': 'conversation' if message.message_type == 'text' else message.message_type,
            'messageTimestamp': int(time.time()),
        },
        'origin': {
            'clinica_id': clinic.id,
            'lead_id': lead.id,
            'ai_enabled': bool(lead.ai_conversation_enabled),
        },
    }


# ── Public API ───────────────────────────────────────────────────────────

def list_messages(clinic_id, lead_id, limit=200):
    """A lead's thread, oldest first."""
    session = database.get_session()
    try:
        _lead_for_clinic(session, clinic_id, lead_id)
        return list(session.scalars(
            select(Message)
            .where(Message.lead_id == lead_id)
            .order_by(Message.created_at, Message.id)
            .limit(limit)
        ))
    finally:
        session.close()


def send_message(clinic_id, lead_id, content, message_type='text'):
    """Store an outbound message as pending and enqueue its delivery."""
    content = _validate_content(content, message_type)

    session = database.get_session()
    try:
        lead = _lead_for_clinic(session, clinic_id, lead_id)
        now = utcnow()
        message = Message(
            id=new_id(),
            clinic_id=clinic_id,
            lead_id=lead_id,
            content=content,
            message_type=message_type,
            sent_by='user',
            read=True,
            delivery_status='pending',
            delivery_attempts=0,
            created_at=now,
            updated_at=now,
        )
        session.add(message)
        lead.last_contact_at = now
        lead.updated_at = now
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    _publish(message, op='insert')
    realtime.publish_change('leads', clinic_id, 'update', lead.to_dict())
    _get_queue().enqueue(deliver_message, message.id, job_timeout=120)
    logger.info("Message %s queued for lead %s", message.id[:8], lead_id[:8],
                extra={'clinic_id': clinic_id})
    return message


def record_inbound_message(clinic_id, lead_id, content, message_type='text'):
    """A message the lead sent; stored unread."""
    content = _validate_content(content, message_type)

    session = database.get_session()
    try:
        lead = _lead_for_clinic(session, clinic_id, lead_id)
        now = utcnow()
        message = Message(
            id=new_id(),
            clinic_id=clinic_id,
            lead_id=lead_id,
            content=content,
            message_type=message_type,
            sent_by='lead',
            read=False,
            delivery_attempts=0,
            created_at=now,
            updated_at=now,
        )
        session.add(message)
        lead.last_contact_at = now
        lead.updated_at = now
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    _publish(message, op='insert')
    realtime.publish_change('leads', clinic_id, 'update', lead.to_dict())
    return message


def unread_counts(clinic_id):
    """{lead_id: unread inbound count} for leads with anything unread."""
    session = database.get_session()
    try:
        rows = session.execute(
            select(Message.lead_id, func.count(Message.id))
            .where(Message.clinic_id == clinic_id,
                   Message.sent_by == 'lead',
                   Message.read.is_(False))
            .group_by(Message.lead_id)
        )
        return {lead_id: count for lead_id, count in rows}
    finally:
        session.close()


def mark_read(clinic_id, lead_id):
    """Mark the lead's inbound messages read. Returns how many changed."""
    session = database.get_session()
    try:
        _lead_for_clinic(session, clinic_id, lead_id)
        unread = list(session.scalars(
            select(Message).where(Message.lead_id == lead_id,
                                  Message.sent_by == 'lead',
                                  Message.read.is_(False))
        ))
        now = utcnow()
        for message in unread:
            message.read = True
            message.updated_at = now
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    for message in unread:
        _publish(message)
    return len(unread)


def _post_with_retries(payload, clinic_id):
    """POST to the gateway; returns (attempts, error or None)."""
    headers = {'Authorization': f'Bearer {build_message_token(clinic_id)}'}
    error = None
    for attempt in range(1, MESSAGE_DELIVERY_ATTEMPTS + 1):
        try:
            resp = requests.post(MESSAGE_WEBHOOK_URL, json=payload, headers=headers, timeout=30)
            resp.raise_for_status()
            return attempt, None
        except requests.RequestException as e:
            error = str(e)
            logger.warning("Gateway attempt %d/%d failed: %s", attempt, MESSAGE_DELIVERY_ATTEMPTS,
                           error, extra={'clinic_id': clinic_id})
            if attempt < MESSAGE_DELIVERY_ATTEMPTS:
                time.sleep(2 ** attempt)
    return MESSAGE_DELIVERY_ATTEMPTS, error


def deliver_message(message_id):
    """
    RQ job: push a pending outbound message to the WhatsApp gateway.

    Messages no longer pending (already delivered by an earlier run) are
    skipped. The final status write is conditional on still being pending.
    """
    session = database.get_session()
    try:
        message = session.get(Message, message_id)
        if message is None or message.delivery_status != 'pending':
            logger.info("Message %s not pending, skipping delivery", message_id[:8])
            return
        lead = session.get(Lead, message.lead_id)
        clinic = session.get(Clinic, message.clinic_id)

        attempts, error = 0, None
        if not MESSAGE_WEBHOOK_URL or not MESSAGE_WEBHOOK_SECRET:
            error = "MESSAGE_WEBHOOK_URL / MESSAGE_WEBHOOK_SECRET not configured"
        elif not clinic.whatsapp_instance_name:
            error = "Clinic has no WhatsApp instance configured"
        elif not whatsapp_jid(lead.phone):
            error = "Lead has no phone number"
        else:
            attempts, error = _post_with_retries(
                build_gateway_payload(message, lead, clinic), clinic.id)

        status = 'failed' if error else 'sent'
        result = session.execute(
            update(Message)
            .where(Message.id == message_id, Message.delivery_status == 'pending')
            .values(delivery_status=status, delivery_attempts=attempts,
                    delivery_error=error[:1000] if error else None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.rollback()
            return
        session.commit()
        message = session.get(Message, message_id, populate_existing=True)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    _publish(message)
    if error:
        logger.error("Message %s delivery failed: %s", message_id[:8], error,
                     extra={'clinic_id': message.clinic_id})
    else:
        logger.info("Message %s delivered after %d attempt(s)", message_id[:8], attempts,
                    extra={'clinic_id': message.clinic_id})
