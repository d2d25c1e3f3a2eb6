"""
Script de Importação Direta
Importa rebanho e histórico reprodutivo diretamente para o banco

Uso:
    python import_data.py animais.xlsx [coberturas.xlsx]
"""

import logging
import sys
import os

from backend.models.database import init_database, get_session
from backend.services.importer import DataImporter

from app import configure_logging, get_database_url

logger = logging.getLogger('import_data')


def main(argv):
    if not argv:
        print(__doc__)
        return 1

    animals_file = argv[0]
    events_file = argv[1] if len(argv) > 1 else None

    logger.info("1. Inicializando banco de dados...")
    engine = init_database(get_database_url())
    db = get_session(engine)
    importer = DataImporter(db)

    failures = 0
    for step, (label, path, run) in enumerate([
        ('animais', animals_file, importer.import_animals),
        ('coberturas', events_file, importer.import_breeding_events),
    ], start=2):
        if path is None:
            continue
        logger.info("%d. Importando %s de %s", step, label, path)
        if not os.path.exists(path):
            logger.error("   Arquivo não encontrado: %s", path)
            failures += 1
            continue
        try:
            stats = run(path, 'Sistema')
        except Exception:
            logger.exception("   Erro ao importar %s", label)
            failures += 1
            continue
        logger.info("   Adicionados: %d | Atualizados: %d | Sem mudanças: %d | Erros: %d",
                    stats['added'], stats['updated'], stats['unchanged'], len(stats['errors']))
        for error in stats['errors'][:10]:
            logger.warning("   %s", error)

    db.close()
    return 1 if failures else 0


if __name__ == '__main__':
    configure_logging()
    sys.exit(main(sys.argv[1:]))
