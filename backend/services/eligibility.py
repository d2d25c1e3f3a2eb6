"""
Validador de Aptidão para Cobertura
Regras de negócio para permitir um novo evento reprodutivo

Todas as verificações são puras: recebem os dados já buscados
(animal, histórico, data proposta) e lançam IneligibleAnimal quando falham.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from backend.models.domain import (Animal, BreedingEvent, GeneticMaterial, MaterialType,
                                   Sex, Technique)
from backend.services.dates import average_months_between, days_between, months_between, years_between
from backend.services.errors import InconsistentInput, IneligibleAnimal

# Idades em meses (mínimo) e anos (máximo)
MIN_AGE_MONTHS = {Sex.FEMALE: 18, Sex.MALE: 24}
MAX_AGE_YEARS = {Sex.FEMALE: 15, Sex.MALE: 12}

MIN_CALVING_INTERVAL_MONTHS = 12
MIN_MALE_REST_DAYS = 3

SEMEN_TECHNIQUES = (Technique.AI, Technique.FIXED_TIME_AI)


def _label(animal: Animal) -> str:
    kind = 'Fêmea' if animal.sex == Sex.FEMALE else 'Macho'
    return f'{kind} "{animal.name or animal.id}"'


@dataclass(frozen=True)
class EligibilityContext:
    """Tudo o que é preciso para validar uma nova cobertura"""
    female: Animal
    technique: Technique
    event_date: date
    active_gestation: Optional[BreedingEvent] = None
    last_parturition: Optional[date] = None
    male: Optional[Animal] = None
    last_natural_mating: Optional[date] = None
    material: Optional[GeneticMaterial] = None
    donor: Optional[Animal] = None


class BreedingEligibilityValidator:
    """Validações de aptidão reprodutiva"""

    # ========================================================================
    # VERIFICAÇÕES INDIVIDUAIS
    # ========================================================================

    def check_active(self, animal: Animal) -> None:
        if animal.deleted:
            raise IneligibleAnimal(
                'inactive_or_removed',
                f'{_label(animal)} foi removido e não pode ser usado para reprodução'
            )
        if not animal.is_active:
            raise IneligibleAnimal(
                'inactive_or_removed',
                f'{_label(animal)} está inativo (morto ou fora da propriedade)'
            )

    def check_min_age(self, animal: Animal, on: date) -> None:
        self._require_birth_date(animal)
        age = months_between(animal.birth_date, on)
        minimum = MIN_AGE_MONTHS[animal.sex]
        if age < minimum:
            raise IneligibleAnimal(
                'underage',
                f'{_label(animal)} não atingiu idade mínima para reprodução. '
                f'Mínimo: {minimum} meses. Idade atual: {age} mês(es)'
            )

    def check_max_age(self, animal: Animal, on: date) -> None:
        self._require_birth_date(animal)
        age = years_between(animal.birth_date, on)
        maximum = MAX_AGE_YEARS[animal.sex]
        if age > maximum:
            raise IneligibleAnimal(
                'overage',
                f'{_label(animal)} ultrapassou idade recomendada para reprodução. '
                f'Máximo: {maximum} anos. Idade atual: {age} anos'
            )

    def check_no_active_gestation(self, active_gestation: Optional[BreedingEvent]) -> None:
        if active_gestation is not None:
            raise IneligibleAnimal(
                'active_gestation',
                f'Fêmea já possui gestação {active_gestation.status.value.lower()} '
                f'(Cobertura ID: {active_gestation.id}, Data: {active_gestation.event_date:%d/%m/%Y})'
            )

    def check_calving_interval(self, last_parturition: Optional[date], on: date) -> None:
        if last_parturition is None:
            return
        interval = average_months_between(last_parturition, on)
        if interval < MIN_CALVING_INTERVAL_MONTHS:
            raise IneligibleAnimal(
                'interval_too_short',
                f'Intervalo mínimo entre partos é de {MIN_CALVING_INTERVAL_MONTHS} meses. '
                f'Último parto: {last_parturition:%d/%m/%Y}. Intervalo atual: {interval} mês(es)'
            )

    def check_male_rest(self, last_natural_mating: Optional[date], on: date) -> None:
        if last_natural_mating is None:
            return
        rest = days_between(last_natural_mating, on)
        if rest < MIN_MALE_REST_DAYS:
            raise IneligibleAnimal(
                'male_overused',
                f'Intervalo mínimo entre coberturas do mesmo reprodutor é de {MIN_MALE_REST_DAYS} dias. '
                f'Última cobertura: {last_natural_mating:%d/%m/%Y}. Intervalo atual: {rest} dia(s)'
            )

    def check_technique(self, technique: Technique, male: Optional[Animal],
                        material: Optional[GeneticMaterial], donor: Optional[Animal]) -> None:
        """Técnica x material genético x participantes"""
        if technique == Technique.NATURAL_MATING:
            if male is None:
                raise InconsistentInput('Monta natural exige um reprodutor')
            if male.sex != Sex.MALE:
                raise InconsistentInput(f'Animal {male.id} não é macho')
            if material is not None or donor is not None:
                raise InconsistentInput('Monta natural não usa material genético nem doadora')
            return

        if male is not None:
            raise InconsistentInput(f'{technique.value} não usa reprodutor em monta')

        expected = MaterialType.EMBRYO if technique == Technique.EMBRYO_TRANSFER else MaterialType.SEMEN
        if material is None:
            raise InconsistentInput(f'{technique.value} exige material genético do tipo {expected.value}')
        if material.material_type != expected:
            raise InconsistentInput(
                f'{technique.value} exige {expected.value}, recebido {material.material_type.value}'
            )
        if not material.is_active:
            raise InconsistentInput(f'Material genético {material.id} está inativo')

        if technique in SEMEN_TECHNIQUES:
            if donor is not None:
                raise InconsistentInput(f'{technique.value} não usa doadora')
            return

        if donor is None:
            raise InconsistentInput('Transferência de embrião exige uma doadora')
        if donor.sex != Sex.FEMALE:
            raise InconsistentInput(f'Doadora {donor.id} não é fêmea')

    # ========================================================================
    # VALIDAÇÃO COMPLETA
    # ========================================================================

    def check_candidate(self, animal: Animal, on: date) -> None:
        """Status e faixa de idade"""
        self.check_active(animal)
        self.check_min_age(animal, on)
        self.check_max_age(animal, on)

    def validate(self, context: EligibilityContext) -> None:
        """
        Valida todas as regras para uma nova cobertura.
        Lança a primeira violação encontrada.
        """
        female = context.female
        on = context.event_date

        if female.sex != Sex.FEMALE:
            raise InconsistentInput(f'Animal {female.id} não é fêmea')

        self.check_candidate(female, on)
        self.check_no_active_gestation(context.active_gestation)
        self.check_calving_interval(context.last_parturition, on)

        self.check_technique(context.technique, context.male, context.material, context.donor)

        if context.technique == Technique.NATURAL_MATING:
            self.check_candidate(context.male, on)
            self.check_male_rest(context.last_natural_mating, on)

        if context.technique == Technique.EMBRYO_TRANSFER:
            self.check_candidate(context.donor, on)

    def _require_birth_date(self, animal: Animal) -> None:
        if animal.birth_date is None:
            raise IneligibleAnimal(
                'missing_birth_date',
                f'{_label(animal)} não possui data de nascimento registrada'
            )


# Instância global
eligibility_validator = BreedingEligibilityValidator()
