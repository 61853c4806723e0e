# planner/services/progress_cache.py
# Cache de progression d'une instance : recalcul complet depuis les ActivityProgress et calcul de la série (streak).

from __future__ import annotations

import datetime as dt
from typing import Callable, Iterable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from planner.core.logging_config import get_loggers
from planner.core.utils import now
from planner.db.repositories import Repositories
from planner.models._shared import ProgressCache
from planner.models.instance import ScheduleInstance


def compute_streak(completion_dates: Iterable[dt.datetime], today: dt.date) -> int:
    """Jours calendaires consécutifs avec au moins une complétion, en remontant depuis aujourd'hui.

    Description:
        La marche commence à `today` : un jour sans complétion aujourd'hui donne 0,
        et un seul jour manquant interrompt la série.

    Args:
        completion_dates: Dates de complétion (plusieurs par jour possibles).
        today: Jour de départ de la marche.

    Returns:
        int: Longueur de la série.
    """
    days = {d.date() for d in completion_dates if d is not None}
    streak = 0
    cursor = today
    while cursor in days:
        streak += 1
        cursor -= dt.timedelta(days=1)
    return streak


class ProgressCacheService:
    """Recalcul (jamais de patch incrémental) du `progress_cache` d'une instance."""

    def __init__(self, db: AsyncIOMotorDatabase, clock: Callable[[], dt.datetime] = now):
        self.repos = Repositories(db)
        self.clock = clock
        self.logger, self.error_logger, _ = get_loggers()

    async def compute(self, instance: ScheduleInstance) -> ProgressCache:
        week_items = await self.repos.progress.find(
            {"instance_id": instance.id, "week_number": instance.current_week_number},
            projection={"status": 1, "scoring.total_points": 1},
        )
        week_completed = [i for i in week_items if i.get("status") == "completed"]
        total = len(week_items)

        completed_items = await self.repos.progress.find(
            {"instance_id": instance.id, "status": "completed"},
            projection={"completed_at": 1, "scoring.total_points": 1},
        )
        at = self.clock()
        return ProgressCache(
            total_activities=total,
            completed_activities=len(week_completed),
            completion_percentage=round(len(week_completed) / total * 100, 2) if total else 0.0,
            week_points=sum(_points(i) for i in week_completed),
            streak_days=compute_streak((i.get("completed_at") for i in completed_items), at.date()),
            lifetime_completed=len(completed_items),
            lifetime_points=sum(_points(i) for i in completed_items),
            last_updated_at=at,
        )

    async def recompute(self, instance_id: ObjectId) -> Optional[ProgressCache]:
        """Recalculer et écrire le cache ; les échecs sont journalisés puis ignorés.

        Returns:
            ProgressCache | None: Cache écrit, ou None en cas d'échec.
        """
        try:
            doc = await self.repos.instances.get(instance_id)
            if doc is None:
                self.logger.warning("Progress cache skipped: instance %s not found", instance_id)
                return None
            instance = ScheduleInstance.model_validate(doc)
            cache = await self.compute(instance)
            await self.repos.instances.update_fields(
                instance_id,
                {"progress_cache": cache.model_dump(), "updated_at": cache.last_updated_at},
            )
            return cache
        except Exception:
            self.error_logger.exception("Progress cache recompute failed for instance %s", instance_id)
            return None


def _points(item: dict) -> float:
    return float((item.get("scoring") or {}).get("total_points") or 0.0)
