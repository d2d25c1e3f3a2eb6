"""
Erros de Domínio - Reprodução
Cada erro carrega informação suficiente para a API responder sem reinterpretar
"""


class BreedingError(Exception):
    """Erro base do motor reprodutivo"""


class NotFound(BreedingError):
    """Animal, cobertura ou material genético inexistente"""

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} não encontrado(a)")


class IneligibleAnimal(BreedingError):
    """
    Rejeição por regra de negócio.

    reason é um código estável (ex: 'underage', 'active_gestation'),
    message é o texto para o usuário.
    """

    def __init__(self, reason: str, message: str = ''):
        self.reason = reason
        self.message = message or reason
        super().__init__(self.message)


class InconsistentInput(IneligibleAnimal):
    """Técnica e material/participantes não combinam"""

    def __init__(self, message: str = '', reason: str = 'technique_mismatch'):
        super().__init__(reason, message)


class InvalidTransition(BreedingError):
    """Transição de status não permitida"""

    def __init__(self, current, target: str):
        self.current = current
        self.target = target
        current_label = getattr(current, 'value', current)
        super().__init__(f"Transição inválida: {current_label} -> {target}")


class UpstreamFailure(BreedingError):
    """Falha no banco de dados"""
