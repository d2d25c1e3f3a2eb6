"""
Repositório de Reprodução
Única superfície de acesso a dados usada pelo motor reprodutivo

Responsabilidades:
- Executar queries no banco (SQLAlchemy)
- Converter linhas do ORM em objetos de domínio
- Não contém regra de negócio
"""

import logging
from datetime import date, timedelta
from enum import Enum
from functools import wraps
from typing import Dict, Iterable, List, Optional, Protocol, Set

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.models import database as db
from backend.models.domain import (ACTIVE_STATUSES, Animal, BirthType, BreedingEvent,
                                   BreedingOutcome, Completed, Confirmed, EventStatus,
                                   Failed, GeneticMaterial, HerdStats, InProgress,
                                   LactationCycle, LactationStatus, MaterialType, Sex,
                                   Technique)
from backend.services.dates import shift_months
from backend.services.errors import NotFound, UpstreamFailure

logger = logging.getLogger(__name__)

LIVE_BIRTH_TYPES = [BirthType.NORMAL.value, BirthType.CESAREAN.value]
ACTIVE_STATUS_VALUES = [s.value for s in ACTIVE_STATUSES]


class BreedingRepository(Protocol):
    """Contrato do colaborador de dados consumido pelo motor"""

    def get_animal(self, animal_id: int) -> Animal: ...

    def list_eligible_females(self, property_id: int, min_age_months: int,
                              reference_date: date) -> List[Animal]: ...

    def list_eligible_males(self, property_id: int, min_age_months: int,
                            reference_date: date) -> List[Animal]: ...

    def get_active_gestation(self, female_id: int) -> Optional[BreedingEvent]: ...

    def get_last_parturition(self, female_id: int) -> Optional[date]: ...

    def get_last_natural_mating(self, male_id: int) -> Optional[date]: ...

    def get_genetic_material(self, material_id: int) -> GeneticMaterial: ...

    def get_breeding_event(self, event_id: int) -> BreedingEvent: ...

    def create_breeding_event(self, data: Dict) -> BreedingEvent: ...

    def update_breeding_event(self, event_id: int, data: Dict) -> BreedingEvent: ...

    def create_lactation_cycle(self, data: Dict) -> LactationCycle: ...

    def get_breeding_history(self, animal_id: int) -> List[BreedingOutcome]: ...

    def get_herd_conception_stats(self, property_id: int) -> HerdStats: ...

    def get_lactation_histories(self, female_ids: Iterable[int]) -> Dict[int, List[LactationCycle]]: ...

    def get_breeding_histories(self, male_ids: Iterable[int]) -> Dict[int, List[BreedingOutcome]]: ...

    def get_active_gestation_ids(self, female_ids: Iterable[int]) -> Set[int]: ...

    def create_reminder(self, data: Dict) -> int: ...


def _guarded(method):
    """Converte erros do banco em UpstreamFailure (com rollback)"""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Erro no banco em %s: %s", method.__name__, e)
            raise UpstreamFailure(f"Falha no banco de dados ({method.__name__})") from e
    return wrapper


def _column_value(value):
    return value.value if isinstance(value, Enum) else value


# ============================================================================
# CONVERSÃO ORM -> DOMÍNIO
# ============================================================================

def to_animal(row: db.Animal) -> Animal:
    return Animal(
        id=row.id,
        sex=Sex(row.sex),
        birth_date=row.birth_date,
        is_active=bool(row.is_active),
        deleted=row.deleted_at is not None,
        breed=row.breed,
        name=row.name,
        property_id=row.property_id,
    )


def to_material(row: db.GeneticMaterial) -> GeneticMaterial:
    return GeneticMaterial(
        id=row.id,
        material_type=MaterialType(row.material_type),
        is_active=bool(row.is_active),
        source_animal_id=row.source_animal_id,
    )


def to_cycle(row: db.LactationCycle) -> LactationCycle:
    return LactationCycle(
        id=row.id,
        female_id=row.female_id,
        parturition_date=row.parturition_date,
        standard_days=row.standard_days or 305,
        status=LactationStatus(row.status),
        breeding_event_id=row.breeding_event_id,
    )


def to_event(row: db.BreedingEvent) -> BreedingEvent:
    status = EventStatus(row.status)
    if status == EventStatus.CONFIRMED:
        state = Confirmed(expected_calving_date=row.expected_calving_date)
    elif status == EventStatus.COMPLETED:
        state = Completed(birth_date=row.birth_date, birth_type=BirthType(row.birth_type))
    elif status == EventStatus.FAILED:
        state = Failed(failed_on=row.failed_on)
    else:
        state = InProgress()

    return BreedingEvent(
        id=row.id,
        female_id=row.female_id,
        technique=Technique(row.technique),
        event_date=row.event_date,
        state=state,
        male_id=row.male_id,
        material_id=row.material_id,
        donor_id=row.donor_id,
        property_id=row.property_id,
        deleted_at=row.deleted_at,
    )


class SqlAlchemyBreedingRepository:
    """Implementação do repositório sobre uma sessão SQLAlchemy"""

    def __init__(self, db_session: Session):
        self.session = db_session

    # ========================================================================
    # ANIMAIS
    # ========================================================================

    @_guarded
    def get_animal(self, animal_id: int) -> Animal:
        row = self.session.get(db.Animal, animal_id)
        if not row:
            raise NotFound('Animal', animal_id)
        return to_animal(row)

    def list_eligible_females(self, property_id: int, min_age_months: int,
                              reference_date: date) -> List[Animal]:
        return self._list_eligible(Sex.FEMALE, property_id, min_age_months, reference_date)

    def list_eligible_males(self, property_id: int, min_age_months: int,
                            reference_date: date) -> List[Animal]:
        return self._list_eligible(Sex.MALE, property_id, min_age_months, reference_date)

    @_guarded
    def _list_eligible(self, sex: Sex, property_id: int, min_age_months: int,
                       reference_date: date) -> List[Animal]:
        """
        Animais ativos acima da idade mínima.
        Animais sem data de nascimento também voltam, para que a falta do dado apareça.
        """
        cutoff = shift_months(reference_date, -min_age_months)
        rows = self.session.query(db.Animal).filter(
            db.Animal.property_id == property_id,
            db.Animal.sex == sex.value,
            db.Animal.is_active == True,
            db.Animal.deleted_at.is_(None),
            or_(db.Animal.birth_date.is_(None), db.Animal.birth_date <= cutoff)
        ).order_by(db.Animal.id).all()
        return [to_animal(r) for r in rows]

    # ========================================================================
    # HISTÓRICO REPRODUTIVO
    # ========================================================================

    @_guarded
    def get_active_gestation(self, female_id: int) -> Optional[BreedingEvent]:
        row = self.session.query(db.BreedingEvent).filter(
            db.BreedingEvent.female_id == female_id,
            db.BreedingEvent.status.in_(ACTIVE_STATUS_VALUES),
            db.BreedingEvent.deleted_at.is_(None)
        ).order_by(db.BreedingEvent.event_date.desc()).first()
        return to_event(row) if row else None

    @_guarded
    def get_last_parturition(self, female_id: int) -> Optional[date]:
        from_events = self.session.query(func.max(db.BreedingEvent.birth_date)).filter(
            db.BreedingEvent.female_id == female_id,
            db.BreedingEvent.birth_date.isnot(None),
            db.BreedingEvent.deleted_at.is_(None)
        ).scalar()
        from_cycles = self.session.query(func.max(db.LactationCycle.parturition_date)).filter(
            db.LactationCycle.female_id == female_id
        ).scalar()
        dates = [d for d in (from_events, from_cycles) if d is not None]
        return max(dates) if dates else None

    @_guarded
    def get_last_natural_mating(self, male_id: int) -> Optional[date]:
        return self.session.query(func.max(db.BreedingEvent.event_date)).filter(
            db.BreedingEvent.male_id == male_id,
            db.BreedingEvent.technique == Technique.NATURAL_MATING.value,
            db.BreedingEvent.deleted_at.is_(None)
        ).scalar()

    @_guarded
    def get_genetic_material(self, material_id: int) -> GeneticMaterial:
        row = self.session.get(db.GeneticMaterial, material_id)
        if not row:
            raise NotFound('Material genético', material_id)
        return to_material(row)

    def get_breeding_history(self, animal_id: int) -> List[BreedingOutcome]:
        """Coberturas com resultado do macho (monta natural ou sêmen dele)"""
        return self.get_breeding_histories([animal_id]).get(animal_id, [])

    @_guarded
    def get_herd_conception_stats(self, property_id: int) -> HerdStats:
        base = self.session.query(func.count(db.BreedingEvent.id)).filter(
            db.BreedingEvent.property_id == property_id,
            db.BreedingEvent.birth_type.isnot(None),
            db.BreedingEvent.deleted_at.is_(None)
        )
        total = base.scalar() or 0
        successes = base.filter(db.BreedingEvent.birth_type.in_(LIVE_BIRTH_TYPES)).scalar() or 0
        return HerdStats(successes=successes, total=total)

    # ========================================================================
    # CONSULTAS EM LOTE (RANKING)
    # ========================================================================

    @_guarded
    def get_lactation_histories(self, female_ids: Iterable[int]) -> Dict[int, List[LactationCycle]]:
        ids = list(female_ids)
        histories = {i: [] for i in ids}
        if not ids:
            return histories
        rows = self.session.query(db.LactationCycle).filter(
            db.LactationCycle.female_id.in_(ids)
        ).order_by(db.LactationCycle.parturition_date).all()
        for row in rows:
            histories[row.female_id].append(to_cycle(row))
        return histories

    @_guarded
    def get_breeding_histories(self, male_ids: Iterable[int]) -> Dict[int, List[BreedingOutcome]]:
        ids = list(male_ids)
        histories = {i: [] for i in ids}
        if not ids:
            return histories
        rows = self.session.query(
            db.BreedingEvent.male_id,
            db.GeneticMaterial.source_animal_id,
            db.BreedingEvent.birth_type,
            db.BreedingEvent.event_date
        ).outerjoin(
            db.GeneticMaterial, db.GeneticMaterial.id == db.BreedingEvent.material_id
        ).filter(
            db.BreedingEvent.birth_type.isnot(None),
            db.BreedingEvent.deleted_at.is_(None),
            or_(db.BreedingEvent.male_id.in_(ids), db.GeneticMaterial.source_animal_id.in_(ids))
        ).order_by(db.BreedingEvent.event_date).all()
        for male_id, source_id, birth_type, event_date in rows:
            owner = male_id if male_id in histories else source_id
            histories[owner].append(BreedingOutcome(birth_type=BirthType(birth_type), event_date=event_date))
        return histories

    @_guarded
    def get_active_gestation_ids(self, female_ids: Iterable[int]) -> Set[int]:
        ids = list(female_ids)
        if not ids:
            return set()
        rows = self.session.query(db.BreedingEvent.female_id).filter(
            db.BreedingEvent.female_id.in_(ids),
            db.BreedingEvent.status.in_(ACTIVE_STATUS_VALUES),
            db.BreedingEvent.deleted_at.is_(None)
        ).distinct().all()
        return {r[0] for r in rows}

    # ========================================================================
    # COBERTURAS
    # ========================================================================

    @_guarded
    def get_breeding_event(self, event_id: int) -> BreedingEvent:
        row = self.session.get(db.BreedingEvent, event_id)
        if not row:
            raise NotFound('Cobertura', event_id)
        return to_event(row)

    @_guarded
    def create_breeding_event(self, data: Dict) -> BreedingEvent:
        row = db.BreedingEvent(**{k: _column_value(v) for k, v in data.items()})
        self.session.add(row)
        self.session.commit()
        return to_event(row)

    @_guarded
    def update_breeding_event(self, event_id: int, data: Dict) -> BreedingEvent:
        row = self.session.get(db.BreedingEvent, event_id)
        if not row:
            raise NotFound('Cobertura', event_id)
        for key, value in data.items():
            setattr(row, key, _column_value(value))
        self.session.commit()
        return to_event(row)

    # ========================================================================
    # LACTAÇÃO E LEMBRETES
    # ========================================================================

    @_guarded
    def create_lactation_cycle(self, data: Dict) -> LactationCycle:
        row = db.LactationCycle(**data)
        if row.expected_dry_off_date is None:
            row.expected_dry_off_date = row.parturition_date + timedelta(days=row.standard_days or 305)
        self.session.add(row)
        self.session.commit()
        return to_cycle(row)

    @_guarded
    def create_reminder(self, data: Dict) -> int:
        existing = self.session.query(db.Reminder).filter_by(
            source_event_type=data.get('source_event_type'),
            source_event_id=data.get('source_event_id')
        ).first()
        if existing:
            return existing.id
        row = db.Reminder(**data)
        self.session.add(row)
        self.session.commit()
        return row.id


def reminder_writer(engine):
    """
    Handler de lembretes para execução em segundo plano.

    Cada chamada abre e fecha a própria sessão, já que a sessão do request
    não pode ser usada fora da thread que a criou.
    """
    def write(payload: Dict) -> int:
        session = db.get_session(engine)
        try:
            return SqlAlchemyBreedingRepository(session).create_reminder(payload)
        finally:
            session.close()
    return write
