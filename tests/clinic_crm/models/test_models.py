"""Tests for clinic_crm.models — row serialization."""
from datetime import date

from clinic_crm.models.ai_report import AIReport
from clinic_crm.models.message import Message


class TestToDict:

    def test_lead_serializes_timestamps(self, store, make_pipeline):
        clinic, stages = make_pipeline('Novo')
        lead = store.create_lead(clinic.id, stages[0].id, name='Ana', origin='Instagram Ads')
        data = lead.to_dict()
        assert data['clinic_id'] == clinic.id
        assert data['stage_id'] == stages[0].id
        assert data['ai_conversation_enabled'] is None
        assert isinstance(data['updated_at'], str)

    def test_stage_includes_order(self, make_pipeline):
        clinic, stages = make_pipeline('Novo', 'Contato')
        assert stages[1].to_dict()['order'] == 1

    def test_clinic_omits_prompts(self, make_clinic):
        clinic = make_clinic(admin_prompt='secret instructions')
        assert set(clinic.to_dict()) == {'id', 'name', 'created_at', 'updated_at'}

    def test_report_dates_are_iso(self, make_clinic, db_session):
        clinic = make_clinic()
        report = AIReport(clinic_id=clinic.id, start_date=date(2026, 1, 1), end_date=date(2026, 1, 31))
        db_session.add(report)
        db_session.commit()
        data = report.to_dict()
        assert data['start_date'] == '2026-01-01'
        assert data['status'] == 'pending'
        assert data['delivery_method'] == 'in_app'

    def test_inbound_message_defaults(self, store, make_pipeline, db_session):
        clinic, stages = make_pipeline('Novo')
        lead = store.create_lead(clinic.id, stages[0].id)
        message = Message(clinic_id=clinic.id, lead_id=lead.id, content='Oi', sent_by='lead')
        db_session.add(message)
        db_session.commit()
        data = message.to_dict()
        assert data['message_type'] == 'text'
        assert data['read'] is False
        assert data['delivery_status'] is None
        assert data['delivery_attempts'] == 0
