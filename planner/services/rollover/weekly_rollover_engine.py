# planner/services/rollover/weekly_rollover_engine.py
# Bascule hebdomadaire : bilan de la semaine close, poursuite ou fin de l'instance, avance du pointeur et matérialisation de la semaine suivante.

from __future__ import annotations

import datetime as dt
import time
from typing import Any, Callable, Dict, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from planner.core.errors import ConflictError, NotFoundError, error_code
from planner.core.logging_config import get_loggers
from planner.core.retry import RetryPolicy
from planner.core.settings import Settings, get_settings
from planner.core.utils import add_weeks, now, week_end, week_start
from planner.db.repositories import Repositories, run_atomic
from planner.models.instance import CompletionReason, ScheduleInstance
from planner.models.rollover import InstanceRolloverResult, ResetStatus, RolloverReport, RolloverSummary
from planner.models.template import ScheduleTemplate
from planner.services.instances.instance_lifecycle import InstanceLifecycle
from planner.services.instances.status_machine import NON_TERMINAL
from planner.services.progress.activity_progress_tracker import (
    ActivityProgressTracker,
    build_week_items,
    upsert_operations,
)
from planner.services.snapshots.snapshot_service import SnapshotService
from planner.shared.constants import RESET_ERROR_DAYS, RESET_OFFSET_MINUTES, RESET_WARNING_DAYS

from .batch_runner import BatchRunner


def continuation_reason(instance: ScheduleInstance, template: ScheduleTemplate) -> Optional[CompletionReason]:
    """Motif de fin de l'instance à la clôture de sa semaine courante, ou None pour continuer.

    Description:
        - `max_repetitions` atteint (la semaine courante est la dernière autorisée)
        - début de la semaine suivante (date seule) postérieur à la date de fin du gabarit
        Sans date de fin ni maximum, l'instance continue indéfiniment.
    """
    max_repetitions = template.repeat_rules.max_repetitions
    if max_repetitions is not None and instance.current_week_number >= max_repetitions:
        return "max_repetitions"
    next_start = add_weeks(instance.first_week_start_date, instance.current_week_number)
    if template.end_date is not None and next_start.date() > template.end_date.date():
        return "end_date"
    return None


class WeeklyRolloverEngine:
    """Moteur de bascule hebdomadaire.

    Description:
        Tâche périodique idempotente : une instance dont la semaine est close avance
        d'exactement une semaine par passage. Sans transaction MongoDB, les éléments de
        la nouvelle semaine sont écrits d'abord (upserts rejouables), puis le pointeur
        avance par compare-and-set sur le numéro de semaine ; le pointeur ne bouge donc
        jamais sans ses éléments, et un passage concurrent est simplement ignoré.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        clock: Callable[[], dt.datetime] = now,
        settings: Optional[Settings] = None,
        retry: Optional[RetryPolicy] = None,
        snapshots: Optional[SnapshotService] = None,
    ):
        self.db = db
        self.repos = Repositories(db)
        self.clock = clock
        self.settings = settings or get_settings()
        self.retry = retry or RetryPolicy.from_settings()
        self.tracker = ActivityProgressTracker(db, clock)
        self.lifecycle = InstanceLifecycle(db, clock, tracker=self.tracker)
        self.snapshots = snapshots or SnapshotService(db, clock)
        self.logger, self.error_logger, self.data_logger = get_loggers()

    # ------------------------------------------------------------------ points d'entrée

    async def process_weekly_reset(
        self,
        batch_size: Optional[int] = None,
        dry_run: bool = False,
        caller_data: Optional[Dict[str, Any]] = None,
    ) -> RolloverReport:
        """Basculer toutes les instances non terminées dont la semaine est close.

        Args:
            batch_size: Taille des tranches concurrentes (défaut : settings, 25).
            dry_run: Calculer la décision par instance sans rien écrire.
            caller_data: Origine du déclenchement (opérateur, IP), reportée dans le journal JSON.

        Returns:
            RolloverReport: Bilan agrégé et issue par instance.
        """
        started = time.perf_counter()
        at = self.clock()
        instances = await self.due_instances(at)
        self.logger.info("Weekly reset: %d instance(s) due (dry_run=%s)", len(instances), dry_run)

        runner = BatchRunner(
            batch_size=batch_size or self.settings.rollover_batch_size,
            timeout_s=self.settings.rollover_instance_timeout_s,
            retry=self.retry,
            logger=self.logger,
        )
        worker = self._plan_instance if dry_run else self._process_instance
        outcomes = await runner.run(instances, lambda instance: worker(instance, at))

        results: list[InstanceRolloverResult] = []
        for outcome in outcomes:
            if outcome.ok:
                result = outcome.value
                result.attempts = outcome.attempts
            else:
                instance = outcome.item
                self.error_logger.error(
                    "Weekly reset failed for instance %s after %d attempt(s): %r",
                    instance.id, outcome.attempts, outcome.error,
                )
                result = InstanceRolloverResult(
                    instance_id=instance.id,
                    status="error",
                    reason=str(outcome.error) or type(outcome.error).__name__,
                    error_code=error_code(outcome.error),
                    old_week_number=instance.current_week_number,
                    new_week_number=instance.current_week_number,
                    attempts=outcome.attempts,
                )
            results.append(result)

        report = RolloverReport(
            summary=self._summarize(results, total=len(instances), started=started, dry_run=dry_run),
            results=results,
        )
        self.logger.info("Weekly reset done: %s", report.summary.model_dump())
        self.data_logger.log_data("weekly_reset", report.model_dump(), caller_data=caller_data)
        if not dry_run:
            await self._record_run(at, report.summary)
        return report

    async def force_reset_instance(self, instance_id: ObjectId) -> InstanceRolloverResult:
        """Rejouer la bascule d'une seule instance (opérateur) ; la semaine doit être close."""
        instance = await self.lifecycle.load(instance_id)
        attempts = 0

        async def attempt() -> InstanceRolloverResult:
            nonlocal attempts
            attempts += 1
            return await self._process_instance(instance, self.clock())

        result = await self.retry.run(attempt)
        result.attempts = attempts
        self.logger.info("Forced reset of instance %s: %s (%s)", instance_id, result.status, result.reason)
        return result

    async def due_instances(self, at: dt.datetime) -> list[ScheduleInstance]:
        docs = await self.repos.instances.find(
            self._due_query(at),
            sort=[("current_week_end_date", ASCENDING)],
        )
        return [ScheduleInstance.model_validate(d) for d in docs]

    async def get_reset_status(self) -> ResetStatus:
        """État de la bascule : dernier passage, prochaine échéance, instances en attente.

        Description:
            - `error` si le dernier passage date de plus de 8 jours
            - `warning` au-delà de 6 jours, si ce passage a eu des échecs, ou si aucun
              passage n'est enregistré alors que des instances attendent
            - `healthy` sinon
        """
        at = self.clock()
        runs = await self.repos.runs.find({}, sort=[("finished_at", DESCENDING)], limit=1)
        pending = await self.repos.instances.count(self._due_query(at))

        next_reset = week_start(at) + dt.timedelta(minutes=RESET_OFFSET_MINUTES)
        if next_reset <= at:
            next_reset = add_weeks(next_reset, 1)

        if not runs:
            return ResetStatus(
                next_reset_at=next_reset,
                instances_pending_reset=pending,
                system_status="warning" if pending else "healthy",
            )

        last_at = runs[0]["finished_at"]
        last_summary = RolloverSummary.model_validate(runs[0]["summary"])
        days_since = (at.date() - last_at.date()).days
        if days_since > RESET_ERROR_DAYS:
            system_status = "error"
        elif days_since > RESET_WARNING_DAYS or last_summary.failed:
            system_status = "warning"
        else:
            system_status = "healthy"
        return ResetStatus(
            last_reset_at=last_at,
            last_summary=last_summary,
            next_reset_at=next_reset,
            instances_pending_reset=pending,
            system_status=system_status,
        )

    # ------------------------------------------------------------------ par instance

    async def _process_instance(self, instance: ScheduleInstance, at: dt.datetime) -> InstanceRolloverResult:
        # relecture : un autre passage a pu avancer ou terminer l'instance
        fresh = await self.lifecycle.load(instance.id)
        old_week = fresh.current_week_number
        skip_reason = self._skip_reason(fresh, at)
        if skip_reason:
            return self._result(fresh, "skipped", reason=skip_reason)

        # (a) bilan de la semaine close, non bloquant
        snapshot_id, generated = None, False
        try:
            snapshot, generated = await self.snapshots.ensure_snapshot(fresh.id, old_week, force_regenerate=False)
            snapshot_id = snapshot.id
        except NotFoundError as exc:
            self.logger.warning("No snapshot for instance %s week %d: %s", fresh.id, old_week, exc)
        except Exception:
            self.error_logger.exception("Snapshot generation failed for instance %s week %d", fresh.id, old_week)

        # (b) poursuite ou fin
        template = await self._load_template(fresh.template_id)
        reason = continuation_reason(fresh, template)
        if reason is not None:
            try:
                await self.lifecycle.complete(fresh, reason)
            except ConflictError:
                return self._result(fresh, "skipped", reason="instance changed concurrently",
                                    snapshot_id=snapshot_id, snapshot_generated=generated)
            return self._result(fresh, "success", reason=f"completed: {reason}", completed=True,
                                snapshot_id=snapshot_id, snapshot_generated=generated)

        # (c)+(d) avance du pointeur et nouvelle semaine, engagés ensemble
        new_week = old_week + 1
        new_start = add_weeks(fresh.first_week_start_date, old_week)
        try:
            items_created = await run_atomic(
                self.db,
                lambda session: self._advance(fresh, new_week, new_start, at, session),
                use_transactions=self.settings.mongodb_transactions,
            )
        except ConflictError:
            return self._result(fresh, "skipped", reason="week already advanced",
                                snapshot_id=snapshot_id, snapshot_generated=generated)

        self.logger.info("Instance %s advanced to week %d (%d items)", fresh.id, new_week, items_created)
        return self._result(fresh, "success", new_week=new_week, items_created=items_created,
                            snapshot_id=snapshot_id, snapshot_generated=generated)

    async def _advance(
        self,
        instance: ScheduleInstance,
        new_week: int,
        new_start: dt.datetime,
        at: dt.datetime,
        session,
    ) -> int:
        """Éléments de la nouvelle semaine d'abord, compare-and-set du pointeur en dernier."""
        activities = await self.tracker.template_activities(instance.template_id)
        items = build_week_items(instance, activities, new_week, at)
        summary = await self.repos.progress.write_many(upsert_operations(items), session=session)

        cache = instance.progress_cache.for_new_week(len(items), at)
        doc = await self.repos.instances.update_fields(
            instance.id,
            {
                "current_week_number": new_week,
                "current_week_start_date": new_start,
                "current_week_end_date": week_end(new_start),
                "progress_cache": cache.model_dump(),
                "updated_at": at,
            },
            expected={"current_week_number": instance.current_week_number, "status": instance.status},
            session=session,
        )
        if doc is None:
            raise ConflictError("Instance week pointer moved concurrently", instance_id=str(instance.id))
        return summary.upserted

    async def _plan_instance(self, instance: ScheduleInstance, at: dt.datetime) -> InstanceRolloverResult:
        """Décision d'un passage à blanc (aucune écriture)."""
        skip_reason = self._skip_reason(instance, at)
        if skip_reason:
            return self._result(instance, "skipped", reason=skip_reason)
        template = await self._load_template(instance.template_id)
        reason = continuation_reason(instance, template)
        if reason is not None:
            return self._result(instance, "skipped", reason=f"dry run: would complete ({reason})")
        return self._result(
            instance, "skipped",
            reason=f"dry run: would advance to week {instance.current_week_number + 1}",
        )

    # ------------------------------------------------------------------ interne

    @staticmethod
    def _due_query(at: dt.datetime) -> dict:
        return {"status": {"$in": list(NON_TERMINAL)}, "current_week_end_date": {"$lt": at}}

    async def _record_run(self, started_at: dt.datetime, summary: RolloverSummary) -> None:
        """Trace du passage pour l'état de la bascule ; un échec d'écriture n'annule pas le passage."""
        try:
            await self.repos.runs.insert(
                {"started_at": started_at, "finished_at": self.clock(), "summary": summary.model_dump()}
            )
        except Exception:
            self.error_logger.exception("Could not record weekly reset run started at %s", started_at)

    @staticmethod
    def _skip_reason(instance: ScheduleInstance, at: dt.datetime) -> Optional[str]:
        if instance.is_terminal:
            return "instance is completed"
        if instance.current_week_end_date >= at:
            return "week not finished"
        return None

    async def _load_template(self, template_id: ObjectId) -> ScheduleTemplate:
        doc = await self.repos.templates.get(template_id)
        if doc is None:
            raise NotFoundError(f"Template not found: {template_id}")
        return ScheduleTemplate.model_validate(doc)

    @staticmethod
    def _result(
        instance: ScheduleInstance,
        status: str,
        *,
        reason: Optional[str] = None,
        new_week: Optional[int] = None,
        items_created: int = 0,
        completed: bool = False,
        snapshot_id: Optional[ObjectId] = None,
        snapshot_generated: bool = False,
    ) -> InstanceRolloverResult:
        return InstanceRolloverResult(
            instance_id=instance.id,
            status=status,
            reason=reason,
            old_week_number=instance.current_week_number,
            new_week_number=new_week or instance.current_week_number,
            snapshot_id=snapshot_id,
            snapshot_generated=snapshot_generated,
            items_created=items_created,
            completed=completed,
        )

    @staticmethod
    def _summarize(
        results: list[InstanceRolloverResult], *, total: int, started: float, dry_run: bool
    ) -> RolloverSummary:
        return RolloverSummary(
            total=total,
            processed=len(results),
            successful=sum(1 for r in results if r.status == "success"),
            skipped=sum(1 for r in results if r.status == "skipped"),
            failed=sum(1 for r in results if r.status == "error"),
            snapshots_generated=sum(1 for r in results if r.snapshot_generated),
            completed_instances=sum(1 for r in results if r.completed),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            dry_run=dry_run,
        )
