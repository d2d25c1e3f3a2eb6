"""
Serviço de Scores Reprodutivos
IAR (Índice de Aptidão Reprodutiva) para fêmeas
IVR (Índice de Valor Reprodutivo) para machos

Referências zootécnicas (búfalos):
- Período de Espera Voluntário (PEV): 63 dias
- Idade ideal para 1ª cobertura: 24-36 meses
- Intervalo Entre Partos (IEP) ideal: até 400 dias
- Pico de lactação: 20-80 dias pós-parto
- Taxa de concepção de referência: 55% (média quando o rebanho não tem histórico)
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from backend.models.domain import (Animal, BreedingOutcome, Confidence, HerdStats,
                                   LactationCycle, LactationStatus, ScoreResult, Sex)
from backend.services.dates import days_between, mean_interval_days, months_between, round_half_up

VOLUNTARY_WAITING_DAYS = 63
LATE_HEIFER_DECAY = 8.33


@dataclass(frozen=True)
class AptitudeFactors:
    """Fatores do IAR, cada um entre 0 e 100"""
    readiness: float
    age_window: float
    history: float
    lactation_load: float


def _missing_birth_date(animal: Animal) -> ScoreResult:
    return ScoreResult(
        candidate_id=animal.id,
        sex=animal.sex,
        score=0.0,
        justifications=['Data de nascimento não registrada - score não calculado'],
        snapshot={'status': 'Dados incompletos'},
        name=animal.name,
    )


# ============================================================================
# IAR - FÊMEAS
# ============================================================================

class FemaleAptitudeScorer:
    """Calculadora do IAR"""

    def __init__(self):
        self.weights = {
            'readiness': 0.50,
            'age_window': 0.15,
            'history': 0.20,
            'lactation_load': 0.15,
        }

    def readiness(self, cycles: int, age_months: int, dpp: Optional[int]) -> float:
        """
        Prontidão fisiológica HOJE (peso 50%)
        """
        # Novilha (nunca pariu)
        if cycles == 0:
            if age_months < 24:
                return 0.0
            if age_months <= 36:
                return 100.0
            # Novilha atrasada: perde 8.33 pontos por mês após os 36 meses
            return max(0.0, 100 - (age_months - 36) * LATE_HEIFER_DECAY)

        # Pós-parto
        if dpp is None:
            return 0.0
        if dpp < VOLUNTARY_WAITING_DAYS:
            return 0.0
        if dpp <= 120:
            return 100.0
        # Dias em aberto elevados
        return max(0.0, 100 - (dpp - 120) * 0.4)

    def age_window(self, age_months: int, cycles: int) -> float:
        """Janela de idade produtiva (peso 15%)"""
        if cycles == 0:
            return 100.0  # já considerado na prontidão
        if age_months < 36:
            return 90.0
        if age_months <= 120:
            return 100.0
        if age_months <= 144:
            return 70.0
        return 30.0

    def history(self, cycles: int, mean_interval: Optional[float]) -> float:
        """Eficiência histórica pelo IEP médio (peso 20%)"""
        if cycles < 2 or mean_interval is None:
            return 85.0
        if mean_interval <= 400:
            return 100.0
        if mean_interval <= 450:
            return 70.0
        if mean_interval <= 500:
            return 40.0
        return 10.0

    def lactation_load(self, status: Optional[LactationStatus], days_in_milk: Optional[int]) -> float:
        """Modulador de lactação (peso 15%)"""
        if status != LactationStatus.LACTATING or days_in_milk is None:
            return 100.0
        if 20 <= days_in_milk <= 80:
            return 60.0
        return 100.0

    def calculate_iar(self, factors: AptitudeFactors) -> float:
        score = (
            factors.readiness * self.weights['readiness']
            + factors.age_window * self.weights['age_window']
            + factors.history * self.weights['history']
            + factors.lactation_load * self.weights['lactation_load']
        )
        return round_half_up(score, 1)

    def score(self, animal: Animal, cycles: List[LactationCycle], reference_date: date) -> ScoreResult:
        """
        Calcula o IAR de uma fêmea a partir do histórico de lactações

        Args:
            animal: Fêmea candidata
            cycles: Todos os ciclos de lactação da fêmea
            reference_date: Data de referência (hoje)
        """
        if animal.birth_date is None:
            return _missing_birth_date(animal)

        age = months_between(animal.birth_date, reference_date)
        number_of_cycles = len(cycles)
        current = max(cycles, key=lambda c: c.parturition_date) if cycles else None

        dpp = days_between(current.parturition_date, reference_date) if current else None
        days_in_milk = dpp if current and current.status == LactationStatus.LACTATING else None
        mean_interval = mean_interval_days([c.parturition_date for c in cycles])
        if mean_interval is not None:
            # IEP em dias inteiros antes das faixas
            mean_interval = round_half_up(mean_interval, 0)

        factors = AptitudeFactors(
            readiness=self.readiness(number_of_cycles, age, dpp),
            age_window=self.age_window(age, number_of_cycles),
            history=self.history(number_of_cycles, mean_interval),
            lactation_load=self.lactation_load(current.status if current else None, days_in_milk),
        )

        return ScoreResult(
            candidate_id=animal.id,
            sex=Sex.FEMALE,
            score=self.calculate_iar(factors),
            justifications=self.justify(factors, number_of_cycles, dpp, age, mean_interval, days_in_milk),
            snapshot={
                'status': self.reproductive_status(factors.readiness, number_of_cycles, dpp),
                'days_post_partum': dpp,
                'days_in_milk': days_in_milk,
                'number_of_cycles': number_of_cycles,
                'mean_calving_interval_days': round(mean_interval) if mean_interval is not None else None,
            },
            age_months=age,
            name=animal.name,
        )

    def justify(self, factors: AptitudeFactors, cycles: int, dpp: Optional[int], age_months: int,
                mean_interval: Optional[float], days_in_milk: Optional[int]) -> List[str]:
        """Motivos do score, na ordem prontidão, histórico, lactação, idade"""
        reasons = []

        if factors.readiness == 0:
            if cycles == 0 and age_months < 24:
                reasons.append('Novilha imatura para cobertura')
            elif dpp is not None and dpp < VOLUNTARY_WAITING_DAYS:
                reasons.append(f'Aguardando Período de Espera Voluntário ({VOLUNTARY_WAITING_DAYS} dias)')
        elif factors.readiness == 100:
            if cycles == 0:
                reasons.append('Idade ideal para primeira cobertura')
            else:
                reasons.append('Janela ideal pós-parto para cobertura')

        if factors.readiness < 70 and dpp is not None and dpp > 120:
            reasons.append(f'Alerta: Dias em Aberto elevados ({dpp} dias)')

        if mean_interval is not None and cycles >= 2:
            if factors.history < 70:
                reasons.append(f'Histórico de Intervalo entre Partos longo ({round(mean_interval)} dias)')
            elif factors.history == 100:
                reasons.append('Histórico de IEP excelente')

        if factors.lactation_load < 100 and days_in_milk is not None:
            reasons.append('Em pico de lactação (alta demanda energética)')

        if factors.age_window == 30:
            reasons.append('Idade avançada (>12 anos) - fim de vida produtiva')

        return reasons

    def reproductive_status(self, readiness: float, cycles: int, dpp: Optional[int]) -> str:
        if readiness == 0:
            if cycles == 0:
                return 'Inapta - Novilha Imatura'
            if dpp is not None and dpp < VOLUNTARY_WAITING_DAYS:
                return 'Inapta - Aguardando PEV'
            return 'Inapta'
        if readiness > 70:
            return 'Apta (Novilha)' if cycles == 0 else 'Apta (Pós-Parto)'
        return 'Aptidão Reduzida - DEA Elevados'


# ============================================================================
# IVR - MACHOS
# ============================================================================

# Número de coberturas a partir do qual o touro pesa mais que a média do rebanho
SHRINKAGE_K = 20
# Teto prático da taxa de concepção, usado para normalizar em 0-100
MAX_CONCEPTION_RATE = 90.0
DEFAULT_HERD_RATE = 55.0

CONFIDENCE_LABELS = {
    Confidence.LOW: 'Baixa',
    Confidence.MEDIUM: 'Média',
    Confidence.HIGH: 'Alta',
}


@dataclass(frozen=True)
class ValueResult:
    raw_rate: float
    tca: float
    score: float
    confidence: Confidence


class MaleValueScorer:
    """Calculadora do IVR (taxa de concepção com regressão bayesiana)"""

    def herd_rate(self, stats: HerdStats) -> float:
        """Taxa de concepção média da propriedade"""
        if stats.total == 0:
            return DEFAULT_HERD_RATE
        return round_half_up(stats.successes / stats.total * 100, 1)

    def raw_rate(self, outcomes: List[BreedingOutcome]) -> float:
        if not outcomes:
            return 0.0
        successes = sum(1 for o in outcomes if o.birth_type.is_live)
        return successes / len(outcomes) * 100

    def calculate_tca(self, n: int, raw_rate: float, herd_rate: float) -> float:
        """
        Taxa de Concepção Ajustada

        TCA = (N * TCB + K * MR) / (N + K)

        Puxa estimativas com poucas coberturas em direção à média do rebanho.
        """
        tca = (n * raw_rate + SHRINKAGE_K * herd_rate) / (n + SHRINKAGE_K)
        return round_half_up(tca, 1)

    def normalize(self, tca: float) -> float:
        score = tca / MAX_CONCEPTION_RATE * 100
        return round_half_up(max(0.0, min(100.0, score)), 1)

    def confidence(self, n: int) -> Confidence:
        if n < 10:
            return Confidence.LOW
        if n < 30:
            return Confidence.MEDIUM
        return Confidence.HIGH

    def calculate_ivr(self, outcomes: List[BreedingOutcome], stats: HerdStats) -> ValueResult:
        n = len(outcomes)
        raw = self.raw_rate(outcomes)
        tca = self.calculate_tca(n, raw, self.herd_rate(stats))
        return ValueResult(raw_rate=raw, tca=tca, score=self.normalize(tca), confidence=self.confidence(n))

    def score(self, animal: Animal, outcomes: List[BreedingOutcome], stats: HerdStats,
              reference_date: date) -> ScoreResult:
        """
        Calcula o IVR de um macho

        Args:
            animal: Macho candidato
            outcomes: Coberturas do macho (ou do seu sêmen) com tipo de parto registrado
            stats: Estatísticas de concepção da propriedade
            reference_date: Data de referência (hoje)
        """
        if animal.birth_date is None:
            return _missing_birth_date(animal)

        result = self.calculate_ivr(outcomes, stats)
        last_event = max((o.event_date for o in outcomes), default=None)

        return ScoreResult(
            candidate_id=animal.id,
            sex=Sex.MALE,
            score=result.score,
            justifications=self.justify(result, len(outcomes)),
            snapshot={
                'total_events': len(outcomes),
                'successes': sum(1 for o in outcomes if o.birth_type.is_live),
                'raw_conception_rate': round_half_up(result.raw_rate, 1),
                'adjusted_conception_rate': round_half_up(result.tca, 1),
                'confidence': result.confidence.value,
                'last_event_date': last_event.isoformat() if last_event else None,
                'days_since_last_event': days_between(last_event, reference_date) if last_event else None,
            },
            age_months=months_between(animal.birth_date, reference_date),
            name=animal.name,
        )

    def justify(self, result: ValueResult, n: int) -> List[str]:
        plural = 's' if n != 1 else ''
        reasons = [
            f'Taxa de Concepção Ajustada: {result.tca:.1f}%',
            f'Confiabilidade: {CONFIDENCE_LABELS[result.confidence]} ({n} cobertura{plural} registrada{plural})',
        ]

        if n < SHRINKAGE_K:
            reasons.append(
                f'Score ajustado para a média do rebanho devido a baixo número de observações (N < {SHRINKAGE_K})'
            )

        if abs(result.raw_rate - result.tca) > 10:
            if result.raw_rate > result.tca:
                reasons.append(f'TC Bruta ({result.raw_rate:.1f}%) ajustada para baixo devido à baixa confiabilidade')
            else:
                reasons.append(f'TC Bruta ({result.raw_rate:.1f}%) ajustada para cima baseada na média do rebanho')

        return reasons


# Instâncias globais
female_scorer = FemaleAptitudeScorer()
male_scorer = MaleValueScorer()
