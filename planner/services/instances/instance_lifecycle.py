# planner/services/instances/instance_lifecycle.py
# Cycle de vie des instances : affectation (semaine 1 matérialisée), pause / reprise / fin, lectures.

from __future__ import annotations

import datetime as dt
from typing import Callable, Iterable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING

from planner.core.bson_utils import dump_mongo
from planner.core.errors import ConflictError, NotFoundError, PlannerError, StateError, error_code
from planner.core.logging_config import get_loggers
from planner.core.security import Caller
from planner.core.utils import as_datetime, now, week_end, week_start
from planner.db.repositories import Repositories, run_atomic
from planner.models.instance import (
    AssignmentFailure,
    AssignmentResult,
    AssignmentSuccess,
    CompletionReason,
    Customizations,
    ScheduleInstance,
)
from planner.models.template import ScheduleTemplate
from planner.services.progress.activity_progress_tracker import ActivityProgressTracker

from .status_machine import NON_TERMINAL, check_transition


class InstanceLifecycle:
    """Service de cycle de vie des instances.

    Description:
        `active ⇄ paused`, puis `completed` (terminal). Toute transition est une
        mise à jour conditionnée au statut lu.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        clock: Callable[[], dt.datetime] = now,
        tracker: Optional[ActivityProgressTracker] = None,
    ):
        self.db = db
        self.repos = Repositories(db)
        self.clock = clock
        self.tracker = tracker or ActivityProgressTracker(db, clock)
        self.logger, self.error_logger, self.data_logger = get_loggers()

    # ------------------------------------------------------------------ affectation

    async def assign(
        self,
        caller: Caller,
        template_id: ObjectId,
        learner_ids: Iterable[str],
        start_date: Optional[dt.date] = None,
        customizations: Optional[Customizations] = None,
        allow_multiple: bool = False,
    ) -> AssignmentResult:
        """Affecter un gabarit à plusieurs apprenants, chacun indépendamment.

        Description:
            Les erreurs de gabarit (inconnu, archivé, appelant non autorisé) interrompent
            tout ; les erreurs par apprenant (instance déjà en cours...) sont listées
            dans `failed` sans empêcher les autres affectations.

        Args:
            caller: Propriétaire du gabarit ou coordinateur.
            template_id: Version de gabarit à affecter.
            learner_ids: Apprenants (doublons ignorés).
            start_date: Jour de début ; la semaine 1 est la semaine lundi–dimanche qui le contient.
            customizations: Personnalisations appliquées à chaque instance.
            allow_multiple: Autoriser une 2e instance non terminée du même gabarit.

        Returns:
            AssignmentResult: Succès et échecs itemisés.

        Raises:
            NotFoundError: Gabarit inconnu.
            PermissionError: Appelant ni propriétaire ni coordinateur.
            StateError: Gabarit archivé.
        """
        doc = await self.repos.templates.get(template_id)
        if doc is None:
            raise NotFoundError(f"Template not found: {template_id}")
        template = ScheduleTemplate.model_validate(doc)
        if template.owner_id != caller.id and not caller.is_coordinator:
            raise PermissionError("Only the template owner or a coordinator can assign it")
        if template.status == "archived":
            raise StateError("Archived templates cannot be assigned", current=template.status)

        start = start_date or self.clock().date()
        customizations = customizations or Customizations()
        result = AssignmentResult()

        for learner_id in dict.fromkeys(learner_ids):
            try:
                instance_id, items_created = await self._assign_one(
                    template, learner_id, caller, start, customizations, allow_multiple
                )
                result.successful.append(
                    AssignmentSuccess(learner_id=learner_id, instance_id=instance_id, items_created=items_created)
                )
            except (PlannerError, PermissionError) as exc:
                result.failed.append(AssignmentFailure(learner_id=learner_id, error=str(exc), code=error_code(exc)))
            except Exception as exc:
                self.error_logger.exception("Assignment of template %s to %s failed", template.id, learner_id)
                result.failed.append(AssignmentFailure(learner_id=learner_id, error=str(exc), code=error_code(exc)))

        self.logger.info(
            "Template %s assigned by %s: %d ok, %d failed",
            template.id, caller.id, len(result.successful), len(result.failed),
        )
        return result

    async def _assign_one(
        self,
        template: ScheduleTemplate,
        learner_id: str,
        caller: Caller,
        start: dt.date,
        customizations: Customizations,
        allow_multiple: bool,
    ) -> tuple[ObjectId, int]:
        if not allow_multiple:
            version_ids = await self._template_version_ids(template)
            existing = await self.repos.instances.find_one(
                {"template_id": {"$in": version_ids}, "learner_id": learner_id, "status": {"$in": list(NON_TERMINAL)}}
            )
            if existing is not None:
                raise ConflictError(
                    f"Learner {learner_id} already has an open instance of this template",
                    instance_id=str(existing["_id"]),
                )

        first_start = week_start(as_datetime(start))
        at = self.clock()
        instance = ScheduleInstance(
            _id=ObjectId(),
            template_id=template.id,
            template_version=template.version,
            learner_id=learner_id,
            assigned_by=caller.id,
            current_week_number=1,
            first_week_start_date=first_start,
            current_week_start_date=first_start,
            current_week_end_date=week_end(first_start),
            started_at=at,
            customizations=customizations,
            created_at=at,
        )

        async def _work(session):
            # éléments d'abord : une instance visible a toujours sa semaine 1
            try:
                created = await self.tracker.materialize_for(instance, 1, session=session)
                await self.repos.instances.insert(dump_mongo(instance), session=session)
            except Exception:
                # hors transaction, les éléments d'une instance jamais créée sont retirés
                if session is None:
                    await self.repos.progress.delete_many({"instance_id": instance.id})
                raise
            return created

        items_created = await run_atomic(self.db, _work)
        await self.tracker.cache.recompute(instance.id)
        return instance.id, items_created

    async def _template_version_ids(self, template: ScheduleTemplate) -> list[ObjectId]:
        """Ids de toutes les versions du même gabarit racine."""
        root = template.root_template_id or template.id
        docs = await self.repos.templates.find(
            {"$or": [{"_id": root}, {"root_template_id": root}]}, projection={"_id": 1}
        )
        ids = [d["_id"] for d in docs]
        return ids if template.id in ids else ids + [template.id]

    # ------------------------------------------------------------------ transitions

    async def pause(self, caller: Caller, instance_id: ObjectId) -> ScheduleInstance:
        instance = await self._load_visible(caller, instance_id)
        return await self._set_status(instance, "paused", {"paused_at": self.clock()})

    async def resume(self, caller: Caller, instance_id: ObjectId) -> ScheduleInstance:
        instance = await self._load_visible(caller, instance_id)
        return await self._set_status(instance, "active", {"paused_at": None})

    async def end(self, caller: Caller, instance_id: ObjectId) -> ScheduleInstance:
        """Fin explicite (terminal)."""
        instance = await self._load_visible(caller, instance_id)
        return await self.complete(instance, "ended")

    async def complete(self, instance: ScheduleInstance, reason: CompletionReason, *, session=None) -> ScheduleInstance:
        """Passer l'instance à `completed` ; conditionné au statut et à la semaine lus."""
        at = self.clock()
        updated = await self._set_status(
            instance,
            "completed",
            {"completed_at": at, "completion_reason": reason},
            expected_extra={"current_week_number": instance.current_week_number},
            session=session,
        )
        self.logger.info("Instance %s completed (%s) at week %d", instance.id, reason, instance.current_week_number)
        return updated

    async def _set_status(
        self,
        instance: ScheduleInstance,
        target: str,
        fields: dict,
        *,
        expected_extra: Optional[dict] = None,
        session=None,
    ) -> ScheduleInstance:
        check_transition(instance.status, target)
        doc = await self.repos.instances.update_fields(
            instance.id,
            {"status": target, "updated_at": self.clock(), **fields},
            expected={"status": instance.status, **(expected_extra or {})},
            session=session,
        )
        if doc is None:
            raise ConflictError("Instance changed concurrently", instance_id=str(instance.id))
        return ScheduleInstance.model_validate(doc)

    # ------------------------------------------------------------------ lecture

    async def get_instance(self, caller: Caller, instance_id: ObjectId) -> ScheduleInstance:
        return await self._load_visible(caller, instance_id)

    async def load(self, instance_id: ObjectId) -> ScheduleInstance:
        doc = await self.repos.instances.get(instance_id)
        if doc is None:
            raise NotFoundError(f"Instance not found: {instance_id}")
        return ScheduleInstance.model_validate(doc)

    async def get_active_instances(self, learner_id: str) -> list[ScheduleInstance]:
        docs = await self.repos.instances.find(
            {"learner_id": learner_id, "status": "active"}, sort=[("started_at", DESCENDING)]
        )
        return [ScheduleInstance.model_validate(d) for d in docs]

    async def _load_visible(self, caller: Caller, instance_id: ObjectId) -> ScheduleInstance:
        instance = await self.load(instance_id)
        if caller.id not in (instance.learner_id, instance.assigned_by) and not caller.is_coordinator:
            raise PermissionError("Not allowed to access this schedule")
        return instance
