# planner/services/rollover/batch_runner.py
# Exécution par lots concurrents avec isolement des échecs, délai maximal par élément et politique de réessai.

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

from planner.core.retry import RetryPolicy
from planner.db.repositories import chunked

K = TypeVar("K")
R = TypeVar("R")


@dataclass
class BatchOutcome(Generic[K, R]):
    item: K
    value: Optional[R] = None
    error: Optional[BaseException] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchRunner:
    """Traite une liste par tranches de `batch_size`, chaque tranche en concurrence.

    Description:
        Un échec (exception, délai dépassé) reste attaché à son élément et n'interrompt
        ni la tranche ni les suivantes. Les erreurs transitoires du store sont rejouées
        selon la `RetryPolicy` ; chaque essai a son propre délai maximal.
    """

    def __init__(
        self,
        batch_size: int,
        timeout_s: Optional[float],
        retry: RetryPolicy,
        logger: Optional[logging.Logger] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.batch_size = batch_size
        self.timeout_s = timeout_s
        self.retry = retry
        self.logger = logger or logging.getLogger("planner.generic")

    async def run(self, items: Sequence[K], worker: Callable[[K], Awaitable[R]]) -> list[BatchOutcome[K, R]]:
        outcomes: list[BatchOutcome[K, R]] = []
        for index, chunk in enumerate(chunked(list(items), self.batch_size), start=1):
            results = await asyncio.gather(*(self._run_one(item, worker) for item in chunk))
            failed = sum(1 for r in results if not r.ok)
            self.logger.info("Batch %d: %d items, %d failed", index, len(results), failed)
            outcomes.extend(results)
        return outcomes

    async def _run_one(self, item: K, worker: Callable[[K], Awaitable[R]]) -> BatchOutcome[K, R]:
        outcome: BatchOutcome[K, R] = BatchOutcome(item=item)

        async def attempt() -> R:
            outcome.attempts += 1
            if self.timeout_s is None:
                return await worker(item)
            return await asyncio.wait_for(worker(item), timeout=self.timeout_s)

        def on_retry(attempt_no: int, exc: BaseException) -> None:
            self.logger.warning("Retrying %r after attempt %d: %s", item, attempt_no, exc)

        try:
            outcome.value = await self.retry.run(attempt, on_retry=on_retry)
        except Exception as exc:
            outcome.error = exc
        return outcome
