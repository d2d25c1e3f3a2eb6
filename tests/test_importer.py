"""
Tests for backend/services/importer.py.

What we test
------------
DataImporter.import_animals():
  - Adds new animals, detects unchanged and updated rows on re-import.
  - Bad rows are reported in stats['errors'] without aborting the file.
  - Brazilian and ISO dates, Excel and CSV input.

DataImporter.import_breeding_events():
  - Events are linked to animals by tag.
  - Live births create the matching lactation cycle.
  - Every import is recorded in ImportHistory.
"""

from datetime import date, timedelta

import pandas as pd
import pytest

from backend.models import database as db
from backend.services.importer import DataImporter

ANIMALS_CSV = """BRINCO,NOME,SEXO,NASCIMENTO,RACA,PROPRIEDADE,ATIVO
B001,Mimosa,F,2020-03-05,Murrah,1,sim
B002,,M,05/03/2019,Jafarabadi,1,
,Sem brinco,F,2020-01-01,,1,
B003,Erro,X,2020-01-01,,1,
"""

EVENTS_CSV = """BRINCO_FEMEA,BRINCO_MACHO,ID_MATERIAL,TECNICA,DATA_EVENTO,TIPO_PARTO,DATA_PARTO,STATUS,PROPRIEDADE
B001,B002,,Monta Natural,2023-01-10,Normal,2023-11-20,,1
B001,,,IA,2024-02-01,,,Confirmada,1
B999,,,IA,2024-02-01,,,,1
"""


@pytest.fixture
def importer(session):
    return DataImporter(session)


@pytest.fixture
def animals_file(tmp_path):
    path = tmp_path / 'animais.csv'
    path.write_text(ANIMALS_CSV, encoding='utf-8')
    return str(path)


@pytest.fixture
def events_file(tmp_path):
    path = tmp_path / 'coberturas.csv'
    path.write_text(EVENTS_CSV, encoding='utf-8')
    return str(path)


class TestImportAnimals:
    def test_adds_new_animals(self, importer, session, animals_file):
        stats = importer.import_animals(animals_file)

        assert stats['added'] == 2
        assert len(stats['errors']) == 1
        assert stats['errors'][0].startswith('Linha 3')

        bull = session.query(db.Animal).filter_by(tag='B002').one()
        assert bull.name == 'B002'
        assert bull.sex == 'M'
        assert bull.birth_date == date(2019, 3, 5)
        assert bull.is_active is True

    def test_reimport_is_unchanged(self, importer, animals_file):
        importer.import_animals(animals_file)
        stats = importer.import_animals(animals_file)

        assert (stats['added'], stats['updated'], stats['unchanged']) == (0, 0, 2)

    def test_changed_rows_are_updated(self, importer, session, animals_file, tmp_path):
        importer.import_animals(animals_file)
        changed = tmp_path / 'animais_v2.csv'
        changed.write_text(ANIMALS_CSV.replace('Mimosa', 'Mimosa II'), encoding='utf-8')

        stats = importer.import_animals(str(changed))

        assert (stats['updated'], stats['unchanged']) == (1, 1)
        assert session.query(db.Animal).filter_by(tag='B001').one().name == 'Mimosa II'

    def test_excel_with_lowercase_headers(self, importer, session, tmp_path):
        path = tmp_path / 'animais.xlsx'
        pd.DataFrame([
            {'brinco': 'X10', 'sexo': 'f', 'nascimento': '2021-07-01', 'propriedade': '2'},
        ]).to_excel(path, index=False)

        stats = importer.import_animals(str(path))

        assert stats['added'] == 1
        animal = session.query(db.Animal).one()
        assert (animal.sex, animal.property_id, animal.birth_date) == ('F', 2, date(2021, 7, 1))

    def test_history_is_recorded(self, importer, session, animals_file):
        importer.import_animals(animals_file, user='Maria')

        log = session.query(db.ImportHistory).one()
        assert log.import_type == 'animals'
        assert log.status == 'partial'
        assert log.imported_by == 'Maria'
        assert log.records_added == 2


class TestImportBreedingEvents:
    def test_links_events_and_creates_cycles(self, importer, session, animals_file, events_file):
        importer.import_animals(animals_file)

        stats = importer.import_breeding_events(events_file)

        assert stats['added'] == 2
        assert len(stats['errors']) == 1
        assert 'B999' in stats['errors'][0]

        female = session.query(db.Animal).filter_by(tag='B001').one()
        bull = session.query(db.Animal).filter_by(tag='B002').one()
        events = session.query(db.BreedingEvent).order_by(db.BreedingEvent.event_date).all()

        assert [e.status for e in events] == ['Concluída', 'Confirmada']
        assert events[0].male_id == bull.id
        assert events[0].female_id == female.id

        cycle = session.query(db.LactationCycle).one()
        assert cycle.parturition_date == date(2023, 11, 20)
        assert cycle.expected_dry_off_date == date(2023, 11, 20) + timedelta(days=305)
        assert cycle.breeding_event_id == events[0].id

    def test_completed_without_birth_type_is_rejected(self, importer, session, animals_file, tmp_path):
        importer.import_animals(animals_file)
        path = tmp_path / 'concluidas.csv'
        path.write_text(
            'BRINCO_FEMEA,TECNICA,DATA_EVENTO,STATUS,PROPRIEDADE\n'
            'B001,IA,2024-01-10,Concluída,1\n',
            encoding='utf-8'
        )

        stats = importer.import_breeding_events(str(path))

        assert stats['added'] == 0
        assert 'TIPO_PARTO' in stats['errors'][0]
        assert session.query(db.BreedingEvent).count() == 0

    def test_reimport_does_not_duplicate_cycles(self, importer, session, animals_file, events_file):
        importer.import_animals(animals_file)
        importer.import_breeding_events(events_file)

        stats = importer.import_breeding_events(events_file)

        assert stats['unchanged'] == 2
        assert session.query(db.LactationCycle).count() == 1
        assert session.query(db.BreedingEvent).count() == 2
