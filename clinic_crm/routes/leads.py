"""
Lead routes — inbound lead creation, edits and deletion, AI conversation state, stage moves.
"""
import logging
from flask import Blueprint, request, jsonify

from clinic_crm.errors import ValidationError
from clinic_crm.services import ai_activation
from clinic_crm.services.store import get_store

logger = logging.getLogger('routes.leads')

bp = Blueprint('leads', __name__)


@bp.route('/api/clinics/<clinic_id>/leads', methods=['POST'])
def create_lead(clinic_id):
    """
    Inbound lead (form, integration, first message). Lands in the requested
    stage or the clinic's first one, and gets its AI default resolved at once.
    """
    data = request.get_json(silent=True) or {}
    store = get_store()

    stage_id = data.get('stage_id')
    if stage_id:
        store.read_stage(stage_id, clinic_id)
    else:
        stages = store.list_stages(clinic_id)
        if not stages:
            raise ValidationError("Clinic has no pipeline stages; create one first")
        stage_id = stages[0].id

    lead = store.create_lead(
        clinic_id,
        stage_id,
        name=(data.get('name') or '').strip(),
        origin=data.get('origin'),
        phone=data.get('phone'),
        email=data.get('email'),
    )
    ai_enabled = ai_activation.resolve_ai_enabled(lead.id, clinic_id, store=store)
    return jsonify({**lead.to_dict(), 'ai_conversation_enabled': ai_enabled}), 201


@bp.route('/api/clinics/<clinic_id>/leads/<lead_id>/ai')
def get_lead_ai(clinic_id, lead_id):
    """Effective AI state; resolves and persists the clinic default on first read."""
    enabled = ai_activation.resolve_ai_enabled(lead_id, clinic_id)
    return jsonify({'lead_id': lead_id, 'ai_conversation_enabled': enabled})


@bp.route('/api/clinics/<clinic_id>/leads/<lead_id>/ai/toggle', methods=['POST'])
def toggle_lead_ai(clinic_id, lead_id):
    enabled = ai_activation.toggle_ai_enabled(lead_id, clinic_id)
    return jsonify({'lead_id': lead_id, 'ai_conversation_enabled': enabled})


@bp.route('/api/clinics/<clinic_id>/leads/<lead_id>/ai', methods=['PUT'])
def set_lead_ai(clinic_id, lead_id):
    data = request.get_json(silent=True) or {}
    value = data.get('enabled')
    if not isinstance(value, bool):
        raise ValidationError("enabled must be true or false")
    enabled = ai_activation.set_ai_enabled(lead_id, clinic_id, value)
    return jsonify({'lead_id': lead_id, 'ai_conversation_enabled': enabled})


@bp.route('/api/clinics/<clinic_id>/leads/<lead_id>/stage', methods=['PATCH'])
def move_lead(clinic_id, lead_id):
    """Card drag between columns."""
    data = request.get_json(silent=True) or {}
    stage_id = data.get('stage_id')
    if not stage_id:
        raise ValidationError("stage_id is required")
    lead = get_store().move_lead(lead_id, stage_id, clinic_id)
    return jsonify(lead.to_dict())


@bp.route('/api/clinics/<clinic_id>/leads/<lead_id>', methods=['PATCH'])
def update_lead(clinic_id, lead_id):
    """Edit contact details: any of name, phone, email, origin."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        raise ValidationError("Body must be a non-empty JSON object")
    if isinstance(data.get('name'), str):
        data['name'] = data['name'].strip()
    lead = get_store().update_lead(lead_id, clinic_id, data)
    return jsonify(lead.to_dict())


@bp.route('/api/clinics/<clinic_id>/leads/<lead_id>', methods=['DELETE'])
def delete_lead(clinic_id, lead_id):
    get_store().delete_lead(lead_id, clinic_id)
    logger.info("Lead %s deleted", lead_id[:8], extra={'clinic_id': clinic_id})
    return '', 204
