"""
Ciclo de Vida da Cobertura
Em andamento -> Confirmada -> Concluída (parto), ou Em andamento/Confirmada -> Falhou

O registro do parto cria automaticamente o ciclo de lactação (Normal/Cesárea)
e agenda o lembrete de secagem.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from backend.models.domain import (BirthType, BreedingEvent, Confirmed, EventStatus,
                                   InProgress, LactationCycle, Technique)
from backend.services.eligibility import EligibilityContext, eligibility_validator
from backend.services.errors import InconsistentInput, InvalidTransition, UpstreamFailure
from backend.services.reminders import Reminder, ReminderDispatcher
from backend.services.repository import BreedingRepository

logger = logging.getLogger(__name__)

# Gestação média de búfalas (~10.5 meses)
GESTATION_DAYS = 315
DEFAULT_LACTATION_DAYS = 305
DRY_OFF_REMINDER_DAYS = 60


@dataclass(frozen=True)
class BirthRegistration:
    """Resultado do registro de parto"""
    event: BreedingEvent
    cycle: Optional[LactationCycle] = None
    cycle_error: Optional[str] = None

    def to_dict(self):
        return {
            'event': self.event.to_dict(),
            'lactation_cycle': {
                'id': self.cycle.id,
                'female_id': self.cycle.female_id,
                'parturition_date': self.cycle.parturition_date.isoformat(),
                'standard_days': self.cycle.standard_days,
                'expected_dry_off_date': self.cycle.expected_dry_off_date.isoformat(),
                'status': self.cycle.status.value,
            } if self.cycle else None,
            'lactation_cycle_error': self.cycle_error,
        }


class BreedingEventLifecycle:
    """Máquina de estados de um evento reprodutivo"""

    def __init__(self, repository: BreedingRepository,
                 dispatcher: Optional[ReminderDispatcher] = None):
        self.repository = repository
        self.validator = eligibility_validator
        self.dispatcher = dispatcher or ReminderDispatcher(repository.create_reminder)

    # ========================================================================
    # CRIAÇÃO
    # ========================================================================

    def create_event(self, female_id: int, technique, event_date: date,
                     male_id: Optional[int] = None, material_id: Optional[int] = None,
                     donor_id: Optional[int] = None, property_id: Optional[int] = None,
                     notes: Optional[str] = None) -> BreedingEvent:
        """
        Valida e registra uma nova cobertura (status inicial: Em andamento)
        """
        try:
            technique = Technique(technique)
        except ValueError:
            raise InconsistentInput(f'Técnica desconhecida: {technique}')

        female = self.repository.get_animal(female_id)
        male = self.repository.get_animal(male_id) if male_id is not None else None
        material = self.repository.get_genetic_material(material_id) if material_id is not None else None
        donor = self.repository.get_animal(donor_id) if donor_id is not None else None

        last_natural_mating = None
        if technique == Technique.NATURAL_MATING and male is not None:
            last_natural_mating = self.repository.get_last_natural_mating(male.id)

        context = EligibilityContext(
            female=female,
            technique=technique,
            event_date=event_date,
            active_gestation=self.repository.get_active_gestation(female.id),
            last_parturition=self.repository.get_last_parturition(female.id),
            male=male,
            last_natural_mating=last_natural_mating,
            material=material,
            donor=donor,
        )
        self.validator.validate(context)

        event = self.repository.create_breeding_event({
            'female_id': female.id,
            'male_id': male_id,
            'material_id': material_id,
            'donor_id': donor_id,
            'property_id': property_id if property_id is not None else female.property_id,
            'technique': technique,
            'event_date': event_date,
            'status': EventStatus.IN_PROGRESS,
            'notes': notes,
        })
        logger.info("Cobertura %s registrada: fêmea %s, %s em %s",
                    event.id, female.id, technique.value, event_date)
        return event

    # ========================================================================
    # TRANSIÇÕES
    # ========================================================================

    def confirm(self, event_id: int) -> BreedingEvent:
        """Diagnóstico positivo de gestação"""
        event = self._load(event_id, EventStatus.CONFIRMED)
        if not isinstance(event.state, InProgress):
            raise InvalidTransition(event.status, EventStatus.CONFIRMED.value)

        expected = event.event_date + timedelta(days=GESTATION_DAYS)
        updated = self.repository.update_breeding_event(event_id, {
            'status': EventStatus.CONFIRMED,
            'expected_calving_date': expected,
        })
        logger.info("Cobertura %s confirmada, parto previsto para %s", event_id, expected)
        return updated

    def fail(self, event_id: int, failed_on: Optional[date] = None) -> BreedingEvent:
        """Diagnóstico negativo / perda da gestação"""
        event = self._load(event_id, EventStatus.FAILED)
        if not event.is_active:
            raise InvalidTransition(event.status, EventStatus.FAILED.value)

        updated = self.repository.update_breeding_event(event_id, {
            'status': EventStatus.FAILED,
            'failed_on': failed_on or date.today(),
        })
        logger.info("Cobertura %s marcada como falha", event_id)
        return updated

    def register_birth(self, event_id: int, birth_date: date, birth_type,
                       create_cycle: bool = True, lactation_days: Optional[int] = None,
                       notes: Optional[str] = None) -> BirthRegistration:
        """
        Registra o parto de uma cobertura Confirmada

        Args:
            event_id: ID da cobertura
            birth_date: Data do parto
            birth_type: Normal, Cesárea ou Aborto
            create_cycle: Criar ciclo de lactação (ignorado em Aborto)
            lactation_days: Duração padrão da lactação (default: 305)
            notes: Observações do parto

        Returns:
            BirthRegistration com a cobertura concluída e o ciclo criado (se houver)
        """
        event = self._load(event_id, EventStatus.COMPLETED)
        if not isinstance(event.state, Confirmed):
            raise InvalidTransition(event.status, EventStatus.COMPLETED.value)

        try:
            birth_type = BirthType(birth_type)
        except ValueError:
            raise InconsistentInput(f'Tipo de parto inválido: {birth_type}', reason='invalid_birth_type')
        if birth_date < event.event_date:
            raise InconsistentInput('Data do parto anterior à data da cobertura', reason='invalid_birth_date')
        if birth_date > date.today():
            raise InconsistentInput('Data do parto posterior à data atual', reason='invalid_birth_date')
        if lactation_days is not None and lactation_days <= 0:
            raise InconsistentInput('Duração da lactação deve ser positiva', reason='invalid_lactation_days')

        data = {
            'status': EventStatus.COMPLETED,
            'birth_date': birth_date,
            'birth_type': birth_type,
        }
        if notes:
            data['notes'] = notes
        updated = self.repository.update_breeding_event(event_id, data)
        logger.info("Parto registrado na cobertura %s: %s em %s", event_id, birth_type.value, birth_date)

        if not (birth_type.is_live and create_cycle):
            return BirthRegistration(event=updated)

        try:
            cycle = self.repository.create_lactation_cycle({
                'female_id': event.female_id,
                'breeding_event_id': event.id,
                'parturition_date': birth_date,
                'standard_days': lactation_days or DEFAULT_LACTATION_DAYS,
            })
        except UpstreamFailure as e:
            # O parto já foi gravado e não é desfeito
            logger.exception("Parto da cobertura %s registrado, mas o ciclo de lactação falhou", event_id)
            return BirthRegistration(event=updated, cycle_error=str(e))

        self._schedule_dry_off_reminder(updated, cycle)
        return BirthRegistration(event=updated, cycle=cycle)

    # ========================================================================
    # REMOÇÃO LÓGICA
    # ========================================================================

    def remove_event(self, event_id: int) -> BreedingEvent:
        event = self.repository.get_breeding_event(event_id)
        if event.deleted_at is not None:
            return event
        updated = self.repository.update_breeding_event(event_id, {'deleted_at': datetime.now()})
        logger.info("Cobertura %s removida", event_id)
        return updated

    def restore_event(self, event_id: int) -> BreedingEvent:
        event = self.repository.get_breeding_event(event_id)
        if event.deleted_at is None:
            return event
        if event.status in (EventStatus.IN_PROGRESS, EventStatus.CONFIRMED):
            self.validator.check_no_active_gestation(
                self.repository.get_active_gestation(event.female_id)
            )
        updated = self.repository.update_breeding_event(event_id, {'deleted_at': None})
        logger.info("Cobertura %s restaurada", event_id)
        return updated

    # ========================================================================
    # UTILITÁRIOS
    # ========================================================================

    def _load(self, event_id: int, target: EventStatus) -> BreedingEvent:
        event = self.repository.get_breeding_event(event_id)
        if event.deleted_at is not None:
            raise InvalidTransition(event.status, target.value)
        return event

    def _schedule_dry_off_reminder(self, event: BreedingEvent, cycle: LactationCycle) -> None:
        dry_off = cycle.expected_dry_off_date
        self.dispatcher.dispatch(Reminder(
            animal_id=cycle.female_id,
            property_id=event.property_id,
            due_date=dry_off - timedelta(days=DRY_OFF_REMINDER_DAYS),
            reason=f'Secagem prevista para {dry_off:%d/%m/%Y}. Iniciar manejo de secagem.',
            source_event_type='CICLO_LACTACAO',
            source_event_id=cycle.id,
        ))
