"""
Chat routes — a lead's message thread, sending, inbound capture, unread counts.
"""
from flask import Blueprint, request, jsonify

from clinic_crm.services import messages

bp = Blueprint('messages', __name__)


@bp.route('/api/clinics/<clinic_id>/leads/<lead_id>/messages')
def list_messages(clinic_id, lead_id):
    thread = messages.list_messages(clinic_id, lead_id)
    return jsonify({'messages': [m.to_dict() for m in thread]})


@bp.route('/api/clinics/<clinic_id>/leads/<lead_id>/messages', methods=['POST'])
def send_message(clinic_id, lead_id):
    """Queue an outbound message; delivery status arrives on the change feed."""
    data = request.get_json(silent=True) or {}
    message = messages.send_message(
        clinic_id, lead_id, data.get('content'), data.get('message_type') or 'text')
    return jsonify(message.to_dict()), 202


@bp.route('/api/clinics/<clinic_id>/leads/<lead_id>/messages/inbound', methods=['POST'])
def inbound_message(clinic_id, lead_id):
    """Gateway callback for a message the lead sent."""
    data = request.get_json(silent=True) or {}
    message = messages.record_inbound_message(
        clinic_id, lead_id, data.get('content'), data.get('message_type') or 'text')
    return jsonify(message.to_dict()), 201


@bp.route('/api/clinics/<clinic_id>/leads/<lead_id>/messages/read', methods=['POST'])
def mark_read(clinic_id, lead_id):
    count = messages.mark_read(clinic_id, lead_id)
    return jsonify({'lead_id': lead_id, 'marked_read': count})


@bp.route('/api/clinics/<clinic_id>/messages/unread')
def unread(clinic_id):
    return jsonify({'unread': messages.unread_counts(clinic_id)})
