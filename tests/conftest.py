"""
Shared pytest fixtures for the breeding engine test suite.

Provides:
  - ``engine`` / ``session``: a fresh in-memory SQLite database per test.
  - ``repository``: ``SqlAlchemyBreedingRepository`` over that session.
  - ``factory``: helpers that insert animals, materials, events and cycles.
  - ``TODAY``: fixed reference date so age/interval math is deterministic.
"""

from datetime import date, timedelta

import pytest

from backend.models import database as db
from backend.services.dates import shift_months
from backend.services.repository import SqlAlchemyBreedingRepository

TODAY = date(2025, 6, 1)
PROPERTY_ID = 1


def born_months_ago(months: int, on: date = TODAY) -> date:
    return shift_months(on, -months)


@pytest.fixture
def engine():
    engine = db.init_database('sqlite://')
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = db.get_session(engine)
    yield session
    session.close()


@pytest.fixture
def repository(session):
    return SqlAlchemyBreedingRepository(session)


class Factory:
    """Inserts ORM rows with sensible defaults"""

    def __init__(self, session):
        self.session = session

    def _save(self, row):
        self.session.add(row)
        self.session.commit()
        return row

    def female(self, age_months=48, **kwargs):
        kwargs.setdefault('birth_date', born_months_ago(age_months))
        return self.animal(sex='F', **kwargs)

    def male(self, age_months=60, **kwargs):
        kwargs.setdefault('birth_date', born_months_ago(age_months))
        return self.animal(sex='M', **kwargs)

    def animal(self, sex, **kwargs):
        kwargs.setdefault('property_id', PROPERTY_ID)
        kwargs.setdefault('is_active', True)
        kwargs.setdefault('name', f'Animal {sex}')
        return self._save(db.Animal(sex=sex, **kwargs))

    def material(self, material_type='Sêmen', **kwargs):
        kwargs.setdefault('is_active', True)
        return self._save(db.GeneticMaterial(material_type=material_type, **kwargs))

    def event(self, female, technique='IA', event_date=None, status='Em andamento', **kwargs):
        kwargs.setdefault('property_id', female.property_id)
        return self._save(db.BreedingEvent(
            female_id=female.id,
            technique=technique,
            event_date=event_date or TODAY - timedelta(days=30),
            status=status,
            **kwargs
        ))

    def outcome(self, female, birth_type, male=None, material=None, event_date=None):
        """Cobertura concluída com resultado registrado"""
        event_date = event_date or TODAY - timedelta(days=400)
        return self.event(
            female,
            technique='Monta Natural' if male else 'IA',
            event_date=event_date,
            status='Concluída',
            male_id=male.id if male else None,
            material_id=material.id if material else None,
            birth_type=birth_type,
            birth_date=event_date + timedelta(days=315),
        )

    def cycle(self, female, parturition_date, standard_days=305, actual_dry_off_date=None):
        return self._save(db.LactationCycle(
            female_id=female.id,
            parturition_date=parturition_date,
            standard_days=standard_days,
            expected_dry_off_date=parturition_date + timedelta(days=standard_days),
            actual_dry_off_date=actual_dry_off_date,
        ))


@pytest.fixture
def factory(session):
    return Factory(session)
