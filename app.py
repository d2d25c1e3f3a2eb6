"""
Aplicação Principal - Flask
Sistema de Reprodução de Búfalos
"""

from flask import Flask, jsonify
from flask_cors import CORS
from sqlalchemy import func
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from backend.models.database import init_database, get_session

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# ============================================================================
# CONFIGURAÇÃO DE BANCO DE DADOS
# ============================================================================

def get_database_url():
    """
    Detecta automaticamente qual banco usar:
    - Produção: PostgreSQL via DATABASE_URL
    - Local: SQLite
    """
    database_url = os.environ.get('DATABASE_URL')

    if database_url:
        logger.info("Usando PostgreSQL (produção)")
        return database_url

    os.makedirs(os.path.join(BASE_DIR, 'database'), exist_ok=True)
    db_path = os.path.join(BASE_DIR, 'database', 'buffalo_breeding.db')
    logger.info("Usando SQLite (local)")
    return f'sqlite:///{db_path}'


def configure_logging():
    logging.basicConfig(
        level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )


# ============================================================================
# APLICAÇÃO
# ============================================================================

def create_app(database_url=None):
    """Cria a aplicação Flask com o banco inicializado"""
    app = Flask(__name__)

    # CORS
    CORS(app)

    # Configurações
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'buffalo-breeding-dev-key')
    app.config['MAX_CONTENT_LENGTH'] = 50 * 1024 * 1024  # 50MB

    app.config['DATABASE_URL'] = database_url or get_database_url()
    app.config['ENGINE'] = init_database(app.config['DATABASE_URL'])
    logger.info("Banco inicializado")

    # Lembretes em segundo plano (0 = no próprio request)
    workers = int(os.environ.get('REMINDER_WORKERS', 0))
    app.config['REMINDER_EXECUTOR'] = ThreadPoolExecutor(max_workers=workers) if workers > 0 else None

    from backend.api.routes import api
    app.register_blueprint(api)

    @app.route('/api/health')
    def health_check():
        """Health check"""
        db = get_session(app.config['ENGINE'])
        try:
            from backend.models.database import Animal
            count = db.query(func.count(Animal.id)).scalar()

            return jsonify({
                'status': 'ok',
                'database': 'connected',
                'database_type': 'PostgreSQL' if app.config['DATABASE_URL'].startswith('postgres') else 'SQLite',
                'animals_count': count,
                'timestamp': datetime.now().isoformat()
            })
        except Exception as e:
            logger.exception("Health check falhou")
            return jsonify({
                'status': 'error',
                'error': str(e)
            }), 500
        finally:
            db.close()

    return app


# ============================================================================
# EXECUTAR
# ============================================================================

if __name__ == '__main__':
    configure_logging()
    app = create_app()

    port = int(os.environ.get('PORT', 5000))

    print("\n" + "="*60)
    print("SISTEMA DE REPRODUÇÃO DE BÚFALOS")
    print("="*60)
    print(f"Banco: {'PostgreSQL' if os.environ.get('DATABASE_URL') else 'SQLite'}")
    print(f"Porta: {port}")
    print("="*60)

    app.run(host='0.0.0.0', port=port, debug=False)
