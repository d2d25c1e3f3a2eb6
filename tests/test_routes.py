"""
Tests for backend/api/routes.py (Flask test client over an in-memory database).

What we test
------------
  - Health check and recommendation endpoint payloads.
  - Domain errors map to HTTP status codes (400 / 404 / 409) with reason codes.
  - The full breeding lifecycle over HTTP: create, confirm, birth, delete, restore.
  - Spreadsheet upload for the herd import.
  - Background reminders get a writer that opens its own session.
"""

import io
from concurrent.futures import ThreadPoolExecutor

import pytest

from app import create_app
from backend.api.routes import get_lifecycle
from backend.models.database import get_session

from conftest import Factory

BODY_DATE = '2025-06-01'


@pytest.fixture
def app():
    app = create_app('sqlite://')
    app.config['TESTING'] = True
    yield app
    app.config['ENGINE'].dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seed(app):
    session = get_session(app.config['ENGINE'])
    yield Factory(session)
    session.close()


def _create_event(client, female_id, material_id, event_date=BODY_DATE):
    return client.post('/api/breeding-events', json={
        'female_id': female_id,
        'technique': 'IA',
        'material_id': material_id,
        'event_date': event_date,
    })


class TestHealth:
    def test_health(self, client, seed):
        seed.female()
        data = client.get('/api/health').get_json()
        assert data['status'] == 'ok'
        assert data['database_type'] == 'SQLite'
        assert data['animals_count'] == 1


class TestRecommendations:
    def test_ranking(self, client, seed):
        heifer_id = seed.female(age_months=30).id
        seed.male(age_months=40)

        response = client.get(f'/api/properties/1/recommendations?date={BODY_DATE}&sex=F')

        assert response.status_code == 200
        data = response.get_json()
        assert data['total'] == 1
        assert data['candidates'][0]['id'] == heifer_id
        assert data['candidates'][0]['score'] == 97.0

    def test_limit(self, client, seed):
        for _ in range(3):
            seed.female(age_months=30)
        data = client.get(f'/api/properties/1/recommendations?date={BODY_DATE}&limit=2').get_json()
        assert len(data['candidates']) == 2

    def test_invalid_sex(self, client):
        response = client.get('/api/properties/1/recommendations?sex=X')
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'invalid_sex'

    def test_invalid_date(self, client):
        response = client.get('/api/properties/1/recommendations?date=01-06-2025')
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'invalid_date'


class TestBreedingEvents:
    def test_create(self, client, seed):
        female_id = seed.female().id
        material_id = seed.material().id

        response = _create_event(client, female_id, material_id)

        assert response.status_code == 201
        data = response.get_json()
        assert data['status'] == 'Em andamento'
        assert data['technique'] == 'IA'

    def test_ineligible_female(self, client, seed):
        female_id = seed.female(age_months=10).id
        material_id = seed.material().id

        response = _create_event(client, female_id, material_id)

        assert response.status_code == 400
        assert response.get_json()['reason'] == 'underage'

    def test_missing_field(self, client):
        response = client.post('/api/breeding-events', json={'technique': 'IA'})
        assert response.status_code == 400
        assert response.get_json()['reason'] == 'missing_field'

    def test_unknown_female(self, client, seed):
        material_id = seed.material().id
        response = _create_event(client, 999, material_id)
        assert response.status_code == 404

    def test_get_unknown_event(self, client):
        assert client.get('/api/breeding-events/42').status_code == 404

    def test_lifecycle(self, client, seed):
        female_id = seed.female().id
        material_id = seed.material().id
        event_id = _create_event(client, female_id, material_id).get_json()['id']

        confirmed = client.post(f'/api/breeding-events/{event_id}/confirm')
        assert confirmed.status_code == 200
        assert confirmed.get_json()['expected_calving_date'] == '2026-04-12'

        again = client.post(f'/api/breeding-events/{event_id}/confirm')
        assert again.status_code == 409

        birth = client.post(f'/api/breeding-events/{event_id}/birth', json={
            'dt_parto': '2026-04-12',
            'tipo_parto': 'Normal',
            'padrao_dias_lactacao': 300,
        })
        assert birth.status_code == 200
        data = birth.get_json()
        assert data['event']['status'] == 'Concluída'
        assert data['lactation_cycle']['expected_dry_off_date'] == '2027-02-06'
        assert data['lactation_cycle_error'] is None

    def test_birth_requires_confirmation(self, client, seed):
        female_id = seed.female().id
        material_id = seed.material().id
        event_id = _create_event(client, female_id, material_id).get_json()['id']

        response = client.post(f'/api/breeding-events/{event_id}/birth', json={
            'dt_parto': '2026-04-12', 'tipo_parto': 'Normal',
        })

        assert response.status_code == 409
        assert response.get_json()['reason'] == 'invalid_transition'

    @pytest.mark.parametrize('body, reason', [
        ({'padrao_dias_lactacao': '300'}, 'invalid_lactation_days'),
        ({'padrao_dias_lactacao': 0}, 'invalid_lactation_days'),
        ({'padrao_dias_lactacao': True}, 'invalid_lactation_days'),
        ({'criar_ciclo_lactacao': 'false'}, 'invalid_field'),
    ])
    def test_birth_rejects_malformed_options(self, client, seed, body, reason):
        female_id = seed.female().id
        material_id = seed.material().id
        event_id = _create_event(client, female_id, material_id).get_json()['id']
        client.post(f'/api/breeding-events/{event_id}/confirm')

        response = client.post(f'/api/breeding-events/{event_id}/birth', json={
            'dt_parto': '2026-04-12', 'tipo_parto': 'Normal', **body,
        })

        assert response.status_code == 400
        assert response.get_json()['reason'] == reason
        event = client.get(f'/api/breeding-events/{event_id}').get_json()
        assert event['status'] == 'Confirmada'

    def test_delete_and_restore(self, client, seed):
        female_id = seed.female().id
        material_id = seed.material().id
        event_id = _create_event(client, female_id, material_id).get_json()['id']

        deleted = client.delete(f'/api/breeding-events/{event_id}')
        assert deleted.get_json()['deleted_at'] is not None
        assert client.post(f'/api/breeding-events/{event_id}/fail').status_code == 409

        restored = client.post(f'/api/breeding-events/{event_id}/restore')
        assert restored.get_json()['deleted_at'] is None


class TestImport:
    def test_upload_animals(self, client):
        csv = 'BRINCO,SEXO,NASCIMENTO,PROPRIEDADE\nA1,F,2021-01-01,1\nA2,M,2020-01-01,1\n'

        response = client.post('/api/animals/import', data={
            'file': (io.BytesIO(csv.encode('utf-8')), 'rebanho.csv'),
        }, content_type='multipart/form-data')

        assert response.status_code == 200
        assert response.get_json()['stats']['added'] == 2

    def test_rejects_other_formats(self, client):
        response = client.post('/api/animals/import', data={
            'file': (io.BytesIO(b'%PDF'), 'rebanho.pdf'),
        }, content_type='multipart/form-data')
        assert response.status_code == 400

    def test_missing_file(self, client):
        response = client.post('/api/breeding-events/import', data={},
                               content_type='multipart/form-data')
        assert response.status_code == 400


class TestReminderExecutor:
    def test_inline_by_default(self, app):
        with app.test_request_context():
            assert get_lifecycle().dispatcher.executor is None

    def test_configured_executor_gets_session_owning_writer(self, app):
        executor = ThreadPoolExecutor(max_workers=1)
        app.config['REMINDER_EXECUTOR'] = executor
        try:
            with app.test_request_context():
                dispatcher = get_lifecycle().dispatcher
            assert dispatcher.executor is executor
            assert dispatcher.handler.__qualname__ == 'reminder_writer.<locals>.write'
        finally:
            executor.shutdown()
