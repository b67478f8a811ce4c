"""
Pipeline routes — stage (kanban column) CRUD, drag-and-drop reorder, delete with lead migration.
"""
import logging
from flask import Blueprint, request, jsonify

from clinic_crm.services.stages import StageLifecycle

logger = logging.getLogger('routes.pipeline')

bp = Blueprint('pipeline', __name__)


def _lifecycle():
    return StageLifecycle()


@bp.route('/api/clinics/<clinic_id>/stages')
def list_stages(clinic_id):
    """Stages in display order."""
    stages = _lifecycle().list_stages(clinic_id)
    return jsonify([s.to_dict() for s in stages])


@bp.route('/api/clinics/<clinic_id>/stages', methods=['POST'])
def create_stage(clinic_id):
    data = request.get_json(silent=True) or {}
    stage = _lifecycle().create_stage(clinic_id, data.get('name', ''))
    return jsonify(stage.to_dict()), 201


@bp.route('/api/clinics/<clinic_id>/stages/<stage_id>', methods=['PATCH'])
def rename_stage(clinic_id, stage_id):
    data = request.get_json(silent=True) or {}
    stage = _lifecycle().rename_stage(clinic_id, stage_id, data.get('name', ''))
    return jsonify(stage.to_dict())


@bp.route('/api/clinics/<clinic_id>/stages/reorder', methods=['POST'])
def reorder_stages(clinic_id):
    """Body: {source_id, target_id} — drop source onto target's slot."""
    data = request.get_json(silent=True) or {}
    new_order = _lifecycle().reorder_stages(
        clinic_id, data.get('source_id'), data.get('target_id'),
    )
    return jsonify({'stages': new_order})


@bp.route('/api/clinics/<clinic_id>/stages/<stage_id>', methods=['DELETE'])
def delete_stage(clinic_id, stage_id):
    """
    Delete a stage. If it still holds leads the body must name
    target_stage_id, otherwise 428 with the lead ids to move.
    """
    data = request.get_json(silent=True) or {}
    result = _lifecycle().delete_stage(clinic_id, stage_id, data.get('target_stage_id'))
    return jsonify({'ok': True, **result})
