"""
Change feed route — Server-Sent Events stream of row changes for one clinic.

Clients merge events into their local view by row id (see
services.realtime.LiveView); the stream itself gives no ordering or
exactly-once guarantee.
"""
from flask import Blueprint, Response, jsonify, stream_with_context

from clinic_crm.services.realtime import subscribe_to_changes

bp = Blueprint('changes', __name__)

TABLES = {'leads', 'pipeline_stages', 'clinics', 'ai_reports', 'chat_messages'}


@bp.route('/api/clinics/<clinic_id>/changes/<table>')
def change_stream(clinic_id, table):
    if table not in TABLES:
        return jsonify({'error': f"Unknown table '{table}'"}), 404

    def generate():
        for event in subscribe_to_changes(table, clinic_id):
            yield f"event: {event.op}\ndata: {event.to_json()}\n\n"

    return Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )
