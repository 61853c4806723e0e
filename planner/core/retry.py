# planner/core/retry.py
# Politique de réessai bornée (backoff exponentiel) pour les erreurs transitoires du store.

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from pymongo.errors import AutoReconnect, ConnectionFailure, NetworkTimeout, PyMongoError, WriteConcernError

from planner.core.settings import get_settings

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    AutoReconnect,
    ConnectionFailure,
    NetworkTimeout,
    WriteConcernError,
)


def is_transient(exc: BaseException) -> bool:
    """Vrai pour une erreur réseau/réplica que l'on peut rejouer sans risque.

    Description:
        Les classes connues de pymongo, plus toute `PyMongoError` portant le label
        `TransientTransactionError` (échec de transaction rejouable).
    """
    if isinstance(exc, TRANSIENT_ERRORS):
        return True
    if isinstance(exc, PyMongoError) and exc.has_error_label("TransientTransactionError"):
        return True
    return False


@dataclass(frozen=True)
class RetryPolicy:
    """Réessai borné d'une coroutine.

    Attributes:
        max_attempts (int): Nombre total d'essais (1 = pas de réessai).
        base_delay (float): Délai avant le 2e essai, en secondes ; doublé à chaque essai.
        max_delay (float): Plafond du délai.
    """
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        settings = get_settings()
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_s,
            max_delay=settings.retry_max_delay_s,
        )

    def delay_for(self, attempt: int) -> float:
        """Délai à attendre après l'échec de l'essai `attempt` (1-based)."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        on_retry: Callable[[int, BaseException], None] | None = None,
    ) -> T:
        """Exécute `fn` et rejoue les erreurs transitoires.

        Raises:
            Exception: La dernière erreur si les essais sont épuisés, ou toute erreur non transitoire.
        """
        attempt = 1
        while True:
            try:
                return await fn()
            except Exception as exc:
                if not is_transient(exc) or attempt >= self.max_attempts:
                    raise
                if on_retry is not None:
                    on_retry(attempt, exc)
                await asyncio.sleep(self.delay_for(attempt))
                attempt += 1
