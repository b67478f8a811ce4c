"""
Report routes — request, list, cancel AI reports; completion callback from the generator.
"""
from flask import Blueprint, request, jsonify

from clinic_crm.services import reports

bp = Blueprint('reports', __name__)


@bp.route('/api/clinics/<clinic_id>/reports')
def list_reports(clinic_id):
    return jsonify([r.to_dict() for r in reports.list_reports(clinic_id)])


@bp.route('/api/clinics/<clinic_id>/reports', methods=['POST'])
def create_report(clinic_id):
    data = request.get_json(silent=True) or {}
    report = reports.request_report(
        clinic_id,
        data.get('start_date'),
        data.get('end_date'),
        delivery_method=data.get('delivery_method', 'in_app'),
        recipient_phone=data.get('recipient_phone'),
    )
    return jsonify(report.to_dict()), 202


@bp.route('/api/clinics/<clinic_id>/reports/<report_id>/cancel', methods=['POST'])
def cancel_report(clinic_id, report_id):
    report = reports.cancel_report(clinic_id, report_id)
    return jsonify(report.to_dict())


@bp.route('/api/reports/<report_id>/complete', methods=['POST'])
def complete_report(report_id):
    data = request.get_json(silent=True) or {}
    applied = reports.complete_report(
        report_id,
        content=data.get('report_content'),
        pdf_url=data.get('report_pdf_url'),
    )
    return jsonify({'ok': True, 'applied': applied})
