"""
Settings routes — clinic AI assistant configuration.
"""
from datetime import datetime
from flask import Blueprint, request, jsonify

from clinic_crm.errors import ValidationError
from clinic_crm.services.ai_settings import (
    get_ai_settings, update_ai_settings, is_within_operating_hours,
)

bp = Blueprint('settings', __name__)


@bp.route('/api/clinics/<clinic_id>/ai-settings')
def read_settings(clinic_id):
    return jsonify(get_ai_settings(clinic_id))


@bp.route('/api/clinics/<clinic_id>/ai-settings', methods=['PUT'])
def save_settings(clinic_id):
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("JSON body required")
    return jsonify(update_ai_settings(clinic_id, data))


@bp.route('/api/clinics/<clinic_id>/ai-settings/availability')
def availability(clinic_id):
    """Is the assistant on duty? ?at=<ISO datetime in clinic local time>, default now."""
    at = request.args.get('at')
    if at:
        try:
            when = datetime.fromisoformat(at)
        except ValueError:
            raise ValidationError("at must be an ISO datetime")
    else:
        when = datetime.now()
    settings = get_ai_settings(clinic_id)
    return jsonify({
        'at': when.isoformat(),
        'operating_mode': settings['ai_operating_mode'],
        'available': is_within_operating_hours(settings, when),
    })
