"""Tests for clinic_crm.routes.leads — lead intake, edits, deletion, AI state, card moves."""
from clinic_crm.models.lead import Lead


class TestCreateLead:

    def test_lands_in_first_stage_with_ai_resolved(self, client, make_pipeline, db_session):
        clinic, stages = make_pipeline('Novo', 'Contato', ai_active_for_ad_leads_only=True)
        resp = client.post(f'/api/clinics/{clinic.id}/leads',
                           json={'name': ' Joana ', 'origin': 'Instagram Ads'})
        assert resp.status_code == 201
        body = resp.get_json()
        assert body['stage_id'] == stages[0].id
        assert body['name'] == 'Joana'
        assert body['ai_conversation_enabled'] is True
        assert db_session.get(Lead, body['id']).ai_conversation_enabled is True

    def test_explicit_stage(self, client, make_pipeline):
        clinic, stages = make_pipeline('Novo', 'Contato')
        resp = client.post(f'/api/clinics/{clinic.id}/leads', json={'stage_id': stages[1].id})
        assert resp.get_json()['stage_id'] == stages[1].id

    def test_foreign_stage_404(self, client, make_pipeline):
        clinic, _ = make_pipeline('Novo')
        other, other_stages = make_pipeline('X')
        resp = client.post(f'/api/clinics/{clinic.id}/leads', json={'stage_id': other_stages[0].id})
        assert resp.status_code == 404

    def test_clinic_without_stages_400(self, client, make_clinic):
        clinic = make_clinic()
        resp = client.post(f'/api/clinics/{clinic.id}/leads', json={'name': 'Ana'})
        assert resp.status_code == 400


class TestLeadAi:

    def test_get_resolves(self, client, store, make_pipeline):
        clinic, stages = make_pipeline(ai_active_for_all_new_leads=True)
        lead = store.create_lead(clinic.id, stages[0].id)
        resp = client.get(f'/api/clinics/{clinic.id}/leads/{lead.id}/ai')
        assert resp.get_json() == {'lead_id': lead.id, 'ai_conversation_enabled': True}

    def test_toggle_flips_each_call(self, client, store, make_pipeline):
        clinic, stages = make_pipeline()
        lead = store.create_lead(clinic.id, stages[0].id)
        url = f'/api/clinics/{clinic.id}/leads/{lead.id}/ai/toggle'
        assert client.post(url).get_json()['ai_conversation_enabled'] is True
        assert client.post(url).get_json()['ai_conversation_enabled'] is False

    def test_put_sets_value(self, client, store, make_pipeline, db_session):
        clinic, stages = make_pipeline()
        lead = store.create_lead(clinic.id, stages[0].id)
        resp = client.put(f'/api/clinics/{clinic.id}/leads/{lead.id}/ai', json={'enabled': True})
        assert resp.status_code == 200
        assert db_session.get(Lead, lead.id).ai_conversation_enabled is True

    def test_put_requires_bool(self, client, store, make_pipeline):
        clinic, stages = make_pipeline()
        lead = store.create_lead(clinic.id, stages[0].id)
        resp = client.put(f'/api/clinics/{clinic.id}/leads/{lead.id}/ai', json={'enabled': 'yes'})
        assert resp.status_code == 400

    def test_other_clinic_404(self, client, store, make_pipeline, make_clinic):
        clinic, stages = make_pipeline()
        other = make_clinic('Outra')
        lead = store.create_lead(clinic.id, stages[0].id)
        resp = client.post(f'/api/clinics/{other.id}/leads/{lead.id}/ai/toggle')
        assert resp.status_code == 404


class TestMoveLead:

    def test_move(self, client, store, make_pipeline):
        clinic, stages = make_pipeline('A', 'B')
        lead = store.create_lead(clinic.id, stages[0].id)
        resp = client.patch(f'/api/clinics/{clinic.id}/leads/{lead.id}/stage',
                            json={'stage_id': stages[1].id})
        assert resp.status_code == 200
        assert resp.get_json()['stage_id'] == stages[1].id

    def test_missing_stage_id_400(self, client, store, make_pipeline):
        clinic, stages = make_pipeline('A')
        lead = store.create_lead(clinic.id, stages[0].id)
        resp = client.patch(f'/api/clinics/{clinic.id}/leads/{lead.id}/stage', json={})
        assert resp.status_code == 400


class TestUpdateLead:

    def test_patch_edits_contact_details(self, client, store, make_pipeline, db_session):
        clinic, stages = make_pipeline('A')
        lead = store.create_lead(clinic.id, stages[0].id, name='Ana')
        resp = client.patch(f'/api/clinics/{clinic.id}/leads/{lead.id}',
                            json={'name': '  Ana Paula ', 'email': 'ana@example.com'})
        assert resp.status_code == 200
        assert resp.get_json()['name'] == 'Ana Paula'
        assert db_session.get(Lead, lead.id).email == 'ana@example.com'

    def test_patch_stage_through_edit_rejected(self, client, store, make_pipeline):
        clinic, stages = make_pipeline('A', 'B')
        lead = store.create_lead(clinic.id, stages[0].id)
        resp = client.patch(f'/api/clinics/{clinic.id}/leads/{lead.id}',
                            json={'stage_id': stages[1].id})
        assert resp.status_code == 400

    def test_patch_empty_body_rejected(self, client, store, make_pipeline):
        clinic, stages = make_pipeline('A')
        lead = store.create_lead(clinic.id, stages[0].id)
        resp = client.patch(f'/api/clinics/{clinic.id}/leads/{lead.id}', json={})
        assert resp.status_code == 400

    def test_patch_other_clinic_404(self, client, store, make_pipeline, make_clinic):
        clinic, stages = make_pipeline('A')
        lead = store.create_lead(clinic.id, stages[0].id)
        other = make_clinic('Outra')
        resp = client.patch(f'/api/clinics/{other.id}/leads/{lead.id}', json={'name': 'X'})
        assert resp.status_code == 404


class TestDeleteLead:

    def test_delete(self, client, store, make_pipeline, db_session, mock_redis):
        clinic, stages = make_pipeline('A')
        lead = store.create_lead(clinic.id, stages[0].id)
        resp = client.delete(f'/api/clinics/{clinic.id}/leads/{lead.id}')
        assert resp.status_code == 204
        assert db_session.get(Lead, lead.id) is None
        channel, payload = mock_redis.publish.call_args[0]
        assert channel == f'changes:leads:{clinic.id}'
        assert '"op": "delete"' in payload

    def test_delete_twice_404(self, client, store, make_pipeline):
        clinic, stages = make_pipeline('A')
        lead = store.create_lead(clinic.id, stages[0].id)
        client.delete(f'/api/clinics/{clinic.id}/leads/{lead.id}')
        resp = client.delete(f'/api/clinics/{clinic.id}/leads/{lead.id}')
        assert resp.status_code == 404
