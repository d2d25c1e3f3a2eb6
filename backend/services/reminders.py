"""
Despacho de Lembretes
Efeitos colaterais "melhor esforço": uma falha aqui nunca desfaz nem bloqueia
a operação que originou o lembrete.
"""

import logging
from concurrent.futures import Executor, Future
from dataclasses import asdict, dataclass
from datetime import date
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reminder:
    animal_id: int
    due_date: date
    reason: str
    source_event_type: str
    source_event_id: int
    property_id: Optional[int] = None


class ReminderDispatcher:
    """
    Dispara lembretes sem devolver resultado para quem chamou.

    Sem executor, o handler roda na hora (mesma sessão do request);
    com executor, roda em segundo plano e a falha é registrada pelo callback.
    """

    def __init__(self, handler: Callable[[Dict], object], executor: Optional[Executor] = None):
        self.handler = handler
        self.executor = executor

    def dispatch(self, reminder: Reminder) -> None:
        payload = asdict(reminder)
        if self.executor is None:
            self._run(payload)
            return
        try:
            future = self.executor.submit(self.handler, payload)
        except RuntimeError:
            logger.exception("Não foi possível agendar lembrete para animal %s", reminder.animal_id)
            return
        future.add_done_callback(lambda f: self._log_outcome(f, reminder))

    def _run(self, payload: Dict) -> None:
        try:
            self.handler(payload)
            logger.info("Lembrete agendado: animal %s em %s", payload['animal_id'], payload['due_date'])
        except Exception:
            logger.exception("Falha ao agendar lembrete para animal %s", payload['animal_id'])

    def _log_outcome(self, future: Future, reminder: Reminder) -> None:
        error = future.exception()
        if error is not None:
            logger.error("Falha ao agendar lembrete para animal %s: %s", reminder.animal_id, error,
                         exc_info=error)
        else:
            logger.info("Lembrete agendado: animal %s em %s", reminder.animal_id, reminder.due_date)
