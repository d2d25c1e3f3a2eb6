"""
Tipos de Domínio - Reprodução
Objetos imutáveis trocados entre repositório, validadores, scores e ciclo de vida
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Union


class Sex(str, Enum):
    MALE = 'M'
    FEMALE = 'F'


class Technique(str, Enum):
    """Técnicas reprodutivas"""
    AI = 'IA'
    FIXED_TIME_AI = 'IATF'
    EMBRYO_TRANSFER = 'TE'
    NATURAL_MATING = 'Monta Natural'


class EventStatus(str, Enum):
    IN_PROGRESS = 'Em andamento'
    CONFIRMED = 'Confirmada'
    FAILED = 'Falhou'
    COMPLETED = 'Concluída'


class BirthType(str, Enum):
    NORMAL = 'Normal'
    CESAREAN = 'Cesárea'
    ABORTION = 'Aborto'

    @property
    def is_live(self) -> bool:
        """Normal e Cesárea contam como prenhez bem-sucedida"""
        return self in (BirthType.NORMAL, BirthType.CESAREAN)


class MaterialType(str, Enum):
    SEMEN = 'Sêmen'
    EMBRYO = 'Embrião'
    OOCYTE = 'Óvulo'


class LactationStatus(str, Enum):
    LACTATING = 'Em Lactação'
    DRY = 'Seca'


class Confidence(str, Enum):
    LOW = 'Low'
    MEDIUM = 'Medium'
    HIGH = 'High'


ACTIVE_STATUSES = (EventStatus.IN_PROGRESS, EventStatus.CONFIRMED)


# ============================================================================
# REBANHO
# ============================================================================

@dataclass(frozen=True)
class Animal:
    id: int
    sex: Sex
    birth_date: Optional[date]
    is_active: bool = True
    deleted: bool = False
    breed: Optional[str] = None
    name: Optional[str] = None
    property_id: Optional[int] = None


@dataclass(frozen=True)
class GeneticMaterial:
    id: int
    material_type: MaterialType
    is_active: bool = True
    source_animal_id: Optional[int] = None


@dataclass(frozen=True)
class LactationCycle:
    id: Optional[int]
    female_id: int
    parturition_date: date
    standard_days: int = 305
    status: LactationStatus = LactationStatus.LACTATING
    breeding_event_id: Optional[int] = None

    @property
    def expected_dry_off_date(self) -> date:
        return self.parturition_date + timedelta(days=self.standard_days)


@dataclass(frozen=True)
class BreedingOutcome:
    """Resultado de uma cobertura com tipo de parto registrado"""
    birth_type: BirthType
    event_date: date


@dataclass(frozen=True)
class HerdStats:
    successes: int
    total: int


# ============================================================================
# COBERTURA (união etiquetada por estado)
# ============================================================================

@dataclass(frozen=True)
class InProgress:
    status = EventStatus.IN_PROGRESS


@dataclass(frozen=True)
class Confirmed:
    expected_calving_date: Optional[date] = None
    status = EventStatus.CONFIRMED


@dataclass(frozen=True)
class Completed:
    birth_date: date
    birth_type: BirthType
    status = EventStatus.COMPLETED


@dataclass(frozen=True)
class Failed:
    failed_on: Optional[date] = None
    status = EventStatus.FAILED


EventState = Union[InProgress, Confirmed, Completed, Failed]


@dataclass(frozen=True)
class BreedingEvent:
    """
    Evento reprodutivo. Os dados de parto só existem no estado Completed,
    o que impede combinações inválidas (ex: tipo de parto em cobertura em andamento).
    """
    id: int
    female_id: int
    technique: Technique
    event_date: date
    state: EventState = field(default_factory=InProgress)
    male_id: Optional[int] = None
    material_id: Optional[int] = None
    donor_id: Optional[int] = None
    property_id: Optional[int] = None
    deleted_at: Optional[datetime] = None

    @property
    def status(self) -> EventStatus:
        return self.state.status

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None and self.status in ACTIVE_STATUSES

    def to_dict(self) -> Dict:
        data = {
            'id': self.id,
            'female_id': self.female_id,
            'male_id': self.male_id,
            'material_id': self.material_id,
            'donor_id': self.donor_id,
            'property_id': self.property_id,
            'technique': self.technique.value,
            'event_date': self.event_date.isoformat(),
            'status': self.status.value,
            'deleted_at': self.deleted_at.isoformat() if self.deleted_at else None,
        }
        if isinstance(self.state, Confirmed) and self.state.expected_calving_date:
            data['expected_calving_date'] = self.state.expected_calving_date.isoformat()
        if isinstance(self.state, Completed):
            data['birth_date'] = self.state.birth_date.isoformat()
            data['birth_type'] = self.state.birth_type.value
        if isinstance(self.state, Failed) and self.state.failed_on:
            data['failed_on'] = self.state.failed_on.isoformat()
        return data


# ============================================================================
# RESULTADOS
# ============================================================================

@dataclass(frozen=True)
class ScoreResult:
    """Score de aptidão (IAR) ou valor (IVR) de um candidato"""
    candidate_id: int
    sex: Sex
    score: float
    justifications: List[str] = field(default_factory=list)
    snapshot: Dict = field(default_factory=dict)
    age_months: Optional[int] = None
    name: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'id': self.candidate_id,
            'name': self.name,
            'sex': self.sex.value,
            'age_months': self.age_months,
            'score': self.score,
            'justifications': list(self.justifications),
            'reproductive_data': dict(self.snapshot),
        }
