"""
API REST - Rotas de Reprodução
Recomendação de acasalamento e ciclo de vida das coberturas
"""

import os
import tempfile
from datetime import date

from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.utils import secure_filename

from backend.models.database import get_session
from backend.services.errors import (InconsistentInput, IneligibleAnimal, InvalidTransition,
                                     NotFound, UpstreamFailure)
from backend.services.importer import DataImporter
from backend.services.lifecycle import BreedingEventLifecycle
from backend.services.recommendation import RecommendationRanker
from backend.services.reminders import ReminderDispatcher
from backend.services.repository import SqlAlchemyBreedingRepository, reminder_writer


# Criar blueprint
api = Blueprint('api', __name__, url_prefix='/api')


def get_db():
    """Sessão do banco para o request atual"""
    if 'db' not in g:
        g.db = get_session(current_app.config['ENGINE'])
    return g.db


@api.teardown_app_request
def close_db(exception=None):
    db = g.pop('db', None)
    if db is not None:
        db.close()


def get_lifecycle():
    repository = SqlAlchemyBreedingRepository(get_db())
    executor = current_app.config.get('REMINDER_EXECUTOR')
    dispatcher = None
    if executor is not None:
        dispatcher = ReminderDispatcher(reminder_writer(current_app.config['ENGINE']), executor)
    return BreedingEventLifecycle(repository, dispatcher)


# ============================================================================
# ERROS
# ============================================================================

@api.errorhandler(NotFound)
def handle_not_found(e):
    return jsonify({'error': str(e)}), 404


@api.errorhandler(IneligibleAnimal)
def handle_ineligible(e):
    return jsonify({'error': e.message, 'reason': e.reason}), 400


@api.errorhandler(InvalidTransition)
def handle_invalid_transition(e):
    return jsonify({'error': str(e), 'reason': 'invalid_transition'}), 409


@api.errorhandler(UpstreamFailure)
def handle_upstream(e):
    return jsonify({'error': str(e)}), 503


def _parse_date(value, field: str):
    if value is None:
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InconsistentInput(f'Data inválida em {field}: {value}', reason='invalid_date')


def _require(data, field: str):
    if data.get(field) in (None, ''):
        raise InconsistentInput(f'Campo obrigatório: {field}', reason='missing_field')
    return data[field]


def _optional_bool(data, field: str, default: bool) -> bool:
    value = data.get(field)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise InconsistentInput(f'{field} deve ser true ou false: {value!r}', reason='invalid_field')
    return value


def _optional_lactation_days(data, field: str):
    value = data.get(field)
    if value is None:
        return None
    # bool é subclasse de int
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InconsistentInput(f'{field} deve ser um inteiro positivo: {value!r}',
                                reason='invalid_lactation_days')
    return value


# ============================================================================
# RECOMENDAÇÃO
# ============================================================================

@api.route('/properties/<int:property_id>/recommendations', methods=['GET'])
def get_recommendations(property_id):
    """
    GET /api/properties/:id/recommendations
    Ranking de candidatos para reprodução

    Query params:
        - sex: F ou M (default: ambos)
        - limit: máximo de resultados
        - date: data de referência YYYY-MM-DD (default: hoje)
    """
    sex = request.args.get('sex') or None
    limit = request.args.get('limit', type=int)
    reference_date = _parse_date(request.args.get('date'), 'date')

    ranker = RecommendationRanker(SqlAlchemyBreedingRepository(get_db()))
    results = ranker.recommend(property_id, limit=limit, sex=sex, reference_date=reference_date)

    return jsonify({
        'property_id': property_id,
        'total': len(results),
        'candidates': [r.to_dict() for r in results]
    })


# ============================================================================
# COBERTURAS
# ============================================================================

@api.route('/breeding-events', methods=['POST'])
def create_breeding_event():
    """
    POST /api/breeding-events
    Registra nova cobertura após validar as regras de aptidão

    Body:
        - female_id, technique, event_date (obrigatórios)
        - male_id (monta natural), material_id (IA/IATF/TE), donor_id (TE)
        - property_id, notes
    """
    data = request.get_json(silent=True) or {}

    event = get_lifecycle().create_event(
        female_id=_require(data, 'female_id'),
        technique=_require(data, 'technique'),
        event_date=_parse_date(_require(data, 'event_date'), 'event_date'),
        male_id=data.get('male_id'),
        material_id=data.get('material_id'),
        donor_id=data.get('donor_id'),
        property_id=data.get('property_id'),
        notes=data.get('notes'),
    )
    return jsonify(event.to_dict()), 201


@api.route('/breeding-events/<int:event_id>', methods=['GET'])
def get_breeding_event(event_id):
    repository = SqlAlchemyBreedingRepository(get_db())
    return jsonify(repository.get_breeding_event(event_id).to_dict())


@api.route('/breeding-events/<int:event_id>/confirm', methods=['POST'])
def confirm_breeding_event(event_id):
    return jsonify(get_lifecycle().confirm(event_id).to_dict())


@api.route('/breeding-events/<int:event_id>/fail', methods=['POST'])
def fail_breeding_event(event_id):
    data = request.get_json(silent=True) or {}
    failed_on = _parse_date(data.get('failed_on'), 'failed_on')
    return jsonify(get_lifecycle().fail(event_id, failed_on).to_dict())


@api.route('/breeding-events/<int:event_id>/birth', methods=['POST'])
def register_birth(event_id):
    """
    POST /api/breeding-events/:id/birth
    Registra o parto e cria o ciclo de lactação

    Body:
        - dt_parto: data do parto (YYYY-MM-DD)
        - tipo_parto: Normal, Cesárea ou Aborto
        - criar_ciclo_lactacao: default true (Aborto nunca cria ciclo)
        - padrao_dias_lactacao: default 305
        - observacao: opcional
    """
    data = request.get_json(silent=True) or {}

    registration = get_lifecycle().register_birth(
        event_id,
        birth_date=_parse_date(_require(data, 'dt_parto'), 'dt_parto'),
        birth_type=_require(data, 'tipo_parto'),
        create_cycle=_optional_bool(data, 'criar_ciclo_lactacao', True),
        lactation_days=_optional_lactation_days(data, 'padrao_dias_lactacao'),
        notes=data.get('observacao'),
    )
    return jsonify(registration.to_dict())


@api.route('/breeding-events/<int:event_id>', methods=['DELETE'])
def remove_breeding_event(event_id):
    return jsonify(get_lifecycle().remove_event(event_id).to_dict())


@api.route('/breeding-events/<int:event_id>/restore', methods=['POST'])
def restore_breeding_event(event_id):
    return jsonify(get_lifecycle().restore_event(event_id).to_dict())


# ============================================================================
# IMPORTAÇÃO
# ============================================================================

def _import_upload(kind: str):
    if 'file' not in request.files:
        return jsonify({'error': 'Nenhum arquivo enviado'}), 400

    file = request.files['file']
    user = request.form.get('user', 'Sistema')

    if file.filename == '':
        return jsonify({'error': 'Nome de arquivo inválido'}), 400

    if not file.filename.lower().endswith(('.xlsx', '.xls', '.csv')):
        return jsonify({'error': 'Arquivo deve ser Excel (.xlsx ou .xls) ou CSV'}), 400

    suffix = os.path.splitext(secure_filename(file.filename))[1]
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp_file:
        file.save(tmp_file.name)

    try:
        importer = DataImporter(get_db())
        if kind == 'animals':
            stats = importer.import_animals(tmp_file.name, user)
        else:
            stats = importer.import_breeding_events(tmp_file.name, user)
    except Exception as e:
        current_app.logger.exception("Falha na importação de %s", kind)
        return jsonify({'error': f'Erro ao processar arquivo: {str(e)}'}), 500
    finally:
        os.unlink(tmp_file.name)

    return jsonify({
        'success': True,
        'message': 'Importação concluída',
        'stats': stats
    })


@api.route('/animals/import', methods=['POST'])
def import_animals():
    """
    POST /api/animals/import
    Importa cadastro do rebanho (Excel ou CSV)
    """
    return _import_upload('animals')


@api.route('/breeding-events/import', methods=['POST'])
def import_breeding_events():
    """
    POST /api/breeding-events/import
    Importa histórico de coberturas e partos (Excel ou CSV)
    """
    return _import_upload('breeding_events')
