"""
Tests for backend/services/repository.py.

What we test
------------
SqlAlchemyBreedingRepository (in-memory SQLite):
  - ORM rows are converted to domain objects (state union, enums).
  - Missing rows raise NotFound.
  - Eligible candidate listing: property, sex, status and age cutoff.
  - Reproductive history queries ignore soft-deleted events.
  - Batched histories and herd conception statistics.
  - Database errors surface as UpstreamFailure.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from backend.models import database as db
from backend.models.domain import (BirthType, Completed, Confirmed, EventStatus, InProgress,
                                   LactationStatus, Sex, Technique)
from backend.services.errors import NotFound, UpstreamFailure

from conftest import PROPERTY_ID, TODAY


class TestAnimals:
    def test_get_animal(self, repository, factory):
        row = factory.female(age_months=30, name='Estrela')
        animal = repository.get_animal(row.id)
        assert animal.sex == Sex.FEMALE
        assert animal.name == 'Estrela'
        assert animal.deleted is False

    def test_get_missing_animal(self, repository):
        with pytest.raises(NotFound):
            repository.get_animal(999)

    def test_removed_animal_is_flagged(self, repository, factory):
        row = factory.female(deleted_at=datetime.now())
        assert repository.get_animal(row.id).deleted is True

    def test_list_eligible_females(self, repository, factory):
        adult = factory.female(age_months=24)
        factory.female(age_months=12)
        factory.female(age_months=40, is_active=False)
        factory.female(age_months=40, deleted_at=datetime.now())
        factory.female(age_months=40, property_id=2)
        factory.male(age_months=40)
        undated = factory.female(birth_date=None)

        result = repository.list_eligible_females(PROPERTY_ID, 18, TODAY)

        assert [a.id for a in result] == [adult.id, undated.id]

    def test_list_eligible_males(self, repository, factory):
        factory.male(age_months=20)
        bull = factory.male(age_months=30)
        result = repository.list_eligible_males(PROPERTY_ID, 24, TODAY)
        assert [a.id for a in result] == [bull.id]


class TestReproductiveHistory:
    def test_active_gestation(self, repository, factory):
        female = factory.female()
        factory.event(female, status='Falhou')
        active = factory.event(female, status='Confirmada')

        gestation = repository.get_active_gestation(female.id)

        assert gestation.id == active.id
        assert isinstance(gestation.state, Confirmed)

    def test_deleted_gestation_is_ignored(self, repository, factory):
        female = factory.female()
        factory.event(female, deleted_at=datetime.now())
        assert repository.get_active_gestation(female.id) is None

    def test_last_parturition_uses_events_and_cycles(self, repository, factory):
        female = factory.female()
        outcome = factory.outcome(female, 'Normal', event_date=TODAY - timedelta(days=800))
        factory.cycle(female, TODAY - timedelta(days=200))

        assert repository.get_last_parturition(female.id) == TODAY - timedelta(days=200)
        assert outcome.birth_date < TODAY - timedelta(days=200)

    def test_no_parturition(self, repository, factory):
        assert repository.get_last_parturition(factory.female().id) is None

    def test_last_natural_mating(self, repository, factory):
        male = factory.male()
        female = factory.female()
        factory.event(female, technique='Monta Natural', male_id=male.id,
                      event_date=TODAY - timedelta(days=20))
        factory.event(female, technique='Monta Natural', male_id=male.id,
                      event_date=TODAY - timedelta(days=5), status='Falhou')

        assert repository.get_last_natural_mating(male.id) == TODAY - timedelta(days=5)

    def test_breeding_history_includes_semen_from_the_male(self, repository, factory):
        bull = factory.male()
        female = factory.female()
        semen = factory.material(source_animal_id=bull.id)
        factory.outcome(female, 'Normal', male=bull)
        factory.outcome(female, 'Aborto', material=semen)
        factory.event(female, male_id=bull.id, technique='Monta Natural')  # sem resultado

        history = repository.get_breeding_history(bull.id)

        assert sorted(o.birth_type for o in history) == [BirthType.ABORTION, BirthType.NORMAL]

    def test_herd_conception_stats(self, repository, factory):
        female = factory.female()
        factory.outcome(female, 'Normal')
        factory.outcome(female, 'Cesárea')
        factory.outcome(female, 'Aborto')
        removed = factory.outcome(female, 'Aborto')
        removed.deleted_at = datetime.now()
        factory.session.commit()

        stats = repository.get_herd_conception_stats(PROPERTY_ID)

        assert (stats.successes, stats.total) == (2, 3)


class TestBatchQueries:
    def test_lactation_histories(self, repository, factory):
        first = factory.female()
        second = factory.female()
        factory.cycle(first, TODAY - timedelta(days=400), actual_dry_off_date=TODAY - timedelta(days=100))
        factory.cycle(first, TODAY - timedelta(days=30))

        histories = repository.get_lactation_histories([first.id, second.id])

        assert histories[second.id] == []
        assert [c.status for c in histories[first.id]] == [LactationStatus.DRY, LactationStatus.LACTATING]

    def test_active_gestation_ids(self, repository, factory):
        pregnant = factory.female()
        open_cow = factory.female()
        factory.event(pregnant)
        factory.event(open_cow, status='Concluída', birth_type='Normal', birth_date=TODAY)

        assert repository.get_active_gestation_ids([pregnant.id, open_cow.id]) == {pregnant.id}

    def test_empty_batches(self, repository):
        assert repository.get_lactation_histories([]) == {}
        assert repository.get_breeding_histories([]) == {}
        assert repository.get_active_gestation_ids([]) == set()


class TestWrites:
    def test_create_and_update_event(self, repository, factory):
        female = factory.female()
        event = repository.create_breeding_event({
            'female_id': female.id,
            'technique': Technique.AI,
            'event_date': TODAY,
            'status': EventStatus.IN_PROGRESS,
        })
        assert isinstance(event.state, InProgress)
        assert event.technique == Technique.AI

        updated = repository.update_breeding_event(event.id, {
            'status': EventStatus.COMPLETED,
            'birth_type': BirthType.NORMAL,
            'birth_date': TODAY + timedelta(days=315),
        })
        assert updated.state == Completed(birth_date=TODAY + timedelta(days=315), birth_type=BirthType.NORMAL)

    def test_update_missing_event(self, repository):
        with pytest.raises(NotFound):
            repository.update_breeding_event(404, {'deleted_at': datetime.now()})

    def test_create_lactation_cycle_computes_dry_off(self, repository, factory):
        female = factory.female()
        cycle = repository.create_lactation_cycle({
            'female_id': female.id,
            'parturition_date': TODAY,
            'standard_days': 280,
        })
        row = factory.session.get(db.LactationCycle, cycle.id)
        assert row.expected_dry_off_date == TODAY + timedelta(days=280)
        assert cycle.status == LactationStatus.LACTATING

    def test_reminder_is_deduplicated_by_source(self, repository, factory):
        female = factory.female()
        data = {
            'animal_id': female.id,
            'due_date': TODAY,
            'reason': 'Secagem',
            'source_event_type': 'CICLO_LACTACAO',
            'source_event_id': 1,
        }
        first = repository.create_reminder(data)
        second = repository.create_reminder(dict(data))

        assert first == second
        assert factory.session.query(db.Reminder).count() == 1


class TestUpstreamFailure:
    def test_database_errors_are_wrapped(self, repository, monkeypatch):
        def broken(*args, **kwargs):
            raise OperationalError('SELECT', {}, Exception('database is locked'))

        monkeypatch.setattr(repository.session, 'get', broken)

        with pytest.raises(UpstreamFailure):
            repository.get_animal(1)
