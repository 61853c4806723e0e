# planner/services/snapshots/snapshot_service.py
# Génération et lecture des bilans hebdomadaires (un seul par instance et par semaine).

from __future__ import annotations

import datetime as dt
from typing import Callable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from planner.core.bson_utils import dump_mongo
from planner.core.errors import NotFoundError
from planner.core.logging_config import get_loggers
from planner.core.security import Caller
from planner.core.utils import add_weeks, now, week_end
from planner.db.repositories import Repositories
from planner.models.instance import ScheduleInstance
from planner.models.progress import ActivityProgress
from planner.models.snapshot import SnapshotFilters, WeeklySnapshot
from planner.services.progress_cache import compute_streak

from .insight_generator import InsightEnricher, generate_insights
from .snapshot_aggregator import aggregate_week


class SnapshotService:
    """Service des bilans hebdomadaires.

    Description:
        Un bilan existant n'est jamais écrasé silencieusement : sans
        `force_regenerate`, il est retourné tel quel.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        clock: Callable[[], dt.datetime] = now,
        enricher: Optional[InsightEnricher] = None,
    ):
        self.repos = Repositories(db)
        self.clock = clock
        self.enricher = enricher
        self.logger, self.error_logger, _ = get_loggers()

    async def generate_snapshot(
        self,
        instance_id: ObjectId,
        week_number: Optional[int] = None,
        force_regenerate: bool = False,
        caller: Optional[Caller] = None,
    ) -> WeeklySnapshot:
        """Générer (ou relire) le bilan d'une semaine.

        Args:
            instance_id: Instance concernée.
            week_number: Semaine ; semaine courante par défaut.
            force_regenerate: Recalculer et remplacer un bilan existant.
            caller: Demandeur d'une génération manuelle (None = système).

        Returns:
            WeeklySnapshot: Bilan existant ou nouvellement écrit.

        Raises:
            NotFoundError: Instance inconnue, ou aucun élément pour cette semaine.
            PermissionError: Demandeur sans accès à l'instance.
        """
        snapshot, _ = await self.ensure_snapshot(instance_id, week_number, force_regenerate, caller)
        return snapshot

    async def ensure_snapshot(
        self,
        instance_id: ObjectId,
        week_number: Optional[int] = None,
        force_regenerate: bool = False,
        caller: Optional[Caller] = None,
    ) -> tuple[WeeklySnapshot, bool]:
        """Comme `generate_snapshot`, avec un indicateur « nouveau bilan écrit »."""
        doc = await self.repos.instances.get(instance_id)
        if doc is None:
            raise NotFoundError(f"Instance not found: {instance_id}")
        instance = ScheduleInstance.model_validate(doc)
        if caller is not None and caller.id != instance.assigned_by and not caller.is_coordinator:
            raise PermissionError("Only the assigning professional can generate snapshots")

        week = week_number or instance.current_week_number
        existing = await self.repos.snapshots.find_one({"instance_id": instance_id, "week_number": week})
        if existing is not None and not force_regenerate:
            return WeeklySnapshot.model_validate(existing), False

        snapshot = await self._build(instance, week, generated_by="manual" if caller else "system")

        if existing is not None:
            snapshot.id = existing["_id"]
            snapshot.created_at = existing["created_at"]
            snapshot.regenerated_at = self.clock()
            fields = dump_mongo(snapshot)
            fields.pop("_id", None)
            await self.repos.snapshots.update_fields(existing["_id"], fields)
            self.logger.info("Snapshot regenerated for instance %s week %d", instance_id, week)
            return snapshot, True

        snapshot.id = ObjectId()
        try:
            await self.repos.snapshots.insert(dump_mongo(snapshot))
        except DuplicateKeyError:
            # écrit entre-temps par un autre passage : on garde le premier
            current = await self.repos.snapshots.find_one({"instance_id": instance_id, "week_number": week})
            return WeeklySnapshot.model_validate(current), False
        self.logger.info("Snapshot generated for instance %s week %d", instance_id, week)
        return snapshot, True

    async def _build(self, instance: ScheduleInstance, week: int, generated_by: str) -> WeeklySnapshot:
        item_docs = await self.repos.progress.find({"instance_id": instance.id, "week_number": week})
        if not item_docs:
            raise NotFoundError(f"No progress items for instance {instance.id} week {week}")
        items = [ActivityProgress.model_validate(d) for d in item_docs]

        start = add_weeks(instance.first_week_start_date, week - 1)
        end = week_end(start)
        at = self.clock()

        completed = await self.repos.progress.find(
            {"instance_id": instance.id, "status": "completed", "completed_at": {"$lte": end}},
            projection={"completed_at": 1},
        )
        streak = compute_streak((d.get("completed_at") for d in completed), min(end, at).date())

        aggregate = aggregate_week(items, streak=streak)
        insights = generate_insights(aggregate, generated_at=at)
        if self.enricher is not None:
            try:
                insights = await self.enricher.enrich(aggregate, insights)
            except Exception:
                self.error_logger.exception("Insight enrichment failed for instance %s week %d", instance.id, week)

        return WeeklySnapshot(
            instance_id=instance.id,
            learner_id=instance.learner_id,
            template_id=instance.template_id,
            week_number=week,
            week_start_date=start,
            week_end_date=end,
            metrics=aggregate.metrics,
            daily_breakdown=aggregate.daily,
            activity_type_breakdown=aggregate.types,
            insights=insights,
            generated_by=generated_by,
            created_at=at,
        )

    async def get_snapshots(
        self,
        learner_id: str,
        filters: Optional[SnapshotFilters] = None,
        caller: Optional[Caller] = None,
    ) -> list[WeeklySnapshot]:
        """Bilans d'un apprenant, semaine la plus récente d'abord.

        Description:
            Un apprenant ne lit que ses propres bilans ; un professionnel ne lit que ceux
            des instances qu'il a affectées ; un coordinateur (ou le système, `caller` None)
            lit tout.

        Raises:
            PermissionError: Bilans hors du périmètre du demandeur.
        """
        filters = filters or SnapshotFilters()
        query: dict = {"learner_id": learner_id}
        if filters.instance_id is not None:
            query["instance_id"] = filters.instance_id
        if caller is not None and not caller.is_coordinator and caller.id != learner_id:
            if caller.role == "learner":
                raise PermissionError("Learners can only read their own snapshots")
            assigned = await self.repos.instances.find(
                {"learner_id": learner_id, "assigned_by": caller.id}, projection={"_id": 1}
            )
            assigned_ids = [d["_id"] for d in assigned]
            if not assigned_ids or (filters.instance_id is not None and filters.instance_id not in assigned_ids):
                raise PermissionError("Only the assigning professional can read these snapshots")
            if filters.instance_id is None:
                query["instance_id"] = {"$in": assigned_ids}
        week_range: dict = {}
        if filters.week_from is not None:
            week_range["$gte"] = filters.week_from
        if filters.week_to is not None:
            week_range["$lte"] = filters.week_to
        if week_range:
            query["week_number"] = week_range
        docs = await self.repos.snapshots.find(
            query,
            sort=[("week_number", DESCENDING), ("created_at", DESCENDING)],
            limit=filters.limit,
        )
        return [WeeklySnapshot.model_validate(d) for d in docs]
