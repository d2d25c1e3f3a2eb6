"""
Serviço de Recomendação para Acasalamento
Ranqueia fêmeas (IAR) e machos (IVR) aptos de uma propriedade
"""

import logging
from datetime import date
from typing import Dict, List, Optional

from backend.models.domain import Animal, ScoreResult, Sex
from backend.services.dates import years_between
from backend.services.eligibility import MAX_AGE_YEARS, MIN_AGE_MONTHS
from backend.services.errors import InconsistentInput
from backend.services.repository import BreedingRepository
from backend.services.scoring import female_scorer, male_scorer

logger = logging.getLogger(__name__)


class RecommendationRanker:
    """Ranking de candidatos para reprodução (somente leitura)"""

    def __init__(self, repository: BreedingRepository):
        self.repository = repository
        self.female_scorer = female_scorer
        self.male_scorer = male_scorer

    def recommend(self, property_id: int, limit: Optional[int] = None,
                  sex=None, reference_date: Optional[date] = None) -> List[ScoreResult]:
        """
        Encontra os melhores candidatos da propriedade

        Args:
            property_id: ID da propriedade
            limit: Quantos candidatos retornar (None = todos)
            sex: 'F', 'M' ou None para os dois
            reference_date: Data de referência (default: hoje)

        Returns:
            Lista de ScoreResult ordenada por score (maior primeiro), desempate por ID
        """
        if limit is not None and limit < 0:
            raise InconsistentInput(f'Limite inválido: {limit}', reason='invalid_limit')
        try:
            sexes = [Sex(sex)] if sex else [Sex.FEMALE, Sex.MALE]
        except ValueError:
            raise InconsistentInput(f'Sexo inválido: {sex}', reason='invalid_sex')

        today = reference_date or date.today()
        results: Dict[int, ScoreResult] = {}

        if Sex.FEMALE in sexes:
            for result in self._rank_females(property_id, today):
                results.setdefault(result.candidate_id, result)
        if Sex.MALE in sexes:
            for result in self._rank_males(property_id, today):
                results.setdefault(result.candidate_id, result)

        ranked = sorted(results.values(), key=lambda r: (-r.score, r.candidate_id))
        logger.info("Recomendação para propriedade %s: %d candidatos", property_id, len(ranked))

        if limit is not None:
            ranked = ranked[:limit]
        return ranked

    # ========================================================================
    # FÊMEAS
    # ========================================================================

    def _rank_females(self, property_id: int, today: date) -> List[ScoreResult]:
        candidates = self._within_max_age(
            self.repository.list_eligible_females(property_id, MIN_AGE_MONTHS[Sex.FEMALE], today),
            today
        )
        ids = [a.id for a in candidates]

        # Fêmeas prenhes ou com cobertura em andamento não entram no ranking
        pregnant = self.repository.get_active_gestation_ids(ids)
        candidates = [a for a in candidates if a.id not in pregnant]

        histories = self.repository.get_lactation_histories([a.id for a in candidates])
        return [
            self.female_scorer.score(animal, histories.get(animal.id, []), today)
            for animal in candidates
        ]

    # ========================================================================
    # MACHOS
    # ========================================================================

    def _rank_males(self, property_id: int, today: date) -> List[ScoreResult]:
        candidates = self._within_max_age(
            self.repository.list_eligible_males(property_id, MIN_AGE_MONTHS[Sex.MALE], today),
            today
        )
        if not candidates:
            return []

        stats = self.repository.get_herd_conception_stats(property_id)
        histories = self.repository.get_breeding_histories([a.id for a in candidates])
        return [
            self.male_scorer.score(animal, histories.get(animal.id, []), stats, today)
            for animal in candidates
        ]

    # ========================================================================
    # UTILITÁRIOS
    # ========================================================================

    def _within_max_age(self, animals: List[Animal], today: date) -> List[Animal]:
        """Idade máxima (a idade mínima já vem filtrada do repositório)"""
        return [
            a for a in animals
            if a.birth_date is None or years_between(a.birth_date, today) <= MAX_AGE_YEARS[a.sex]
        ]
