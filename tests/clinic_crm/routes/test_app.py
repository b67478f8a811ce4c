"""Tests for create_app() — bearer token gate and error mapping."""
import pytest
from unittest.mock import patch

from clinic_crm import create_app
from clinic_crm.errors import StoreUnavailable


@pytest.fixture
def secured_client():
    with patch('clinic_crm.config.API_TOKEN', 's3cret'):
        app = create_app()
    app.config['TESTING'] = True
    with app.test_client() as c:
        yield c


class TestTokenGate:
    """With API_TOKEN set every route except /health needs the bearer token."""

    def test_missing_token_401(self, secured_client, make_clinic):
        clinic = make_clinic()
        resp = secured_client.get(f'/api/clinics/{clinic.id}/stages')
        assert resp.status_code == 401
        assert resp.get_json() == {'error': 'Unauthorized'}

    def test_wrong_token_401(self, secured_client, make_clinic):
        clinic = make_clinic()
        resp = secured_client.get(f'/api/clinics/{clinic.id}/stages',
                                  headers={'Authorization': 'Bearer nope'})
        assert resp.status_code == 401

    def test_valid_token_passes(self, secured_client, make_clinic):
        clinic = make_clinic()
        resp = secured_client.get(f'/api/clinics/{clinic.id}/stages',
                                  headers={'Authorization': 'Bearer s3cret'})
        assert resp.status_code == 200

    def test_health_is_open(self, secured_client):
        assert secured_client.get('/health').status_code == 200


class TestErrorMapping:

    def test_store_unavailable_maps_to_503(self, client):
        with patch('clinic_crm.services.store.Store.list_stages',
                   side_effect=StoreUnavailable('Database unavailable during list_stages')):
            resp = client.get('/api/clinics/c1/stages')
        assert resp.status_code == 503
        assert 'unavailable' in resp.get_json()['error']

    def test_not_found_maps_to_404(self, client):
        resp = client.patch('/api/clinics/c1/stages/ghost', json={'name': 'X'})
        assert resp.status_code == 404
        assert resp.get_json() == {'error': "stage 'ghost' not found"}
