# planner/services/progress/activity_progress_tracker.py
# Éléments de travail hebdomadaires : matérialisation idempotente d'une semaine et actions apprenant (démarrer, terminer, passer, brouillon, quiz).

from __future__ import annotations

import datetime as dt
from typing import Any, Callable, Iterable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, UpdateOne

from planner.core.bson_utils import dump_mongo
from planner.core.errors import ConflictError, NotFoundError, StateError, ValidationError
from planner.core.logging_config import get_loggers
from planner.core.security import Caller
from planner.core.utils import add_weeks, end_of_day, minutes_between, now, start_of_day
from planner.db.repositories import Repositories
from planner.models.activity import QuizConfig, ScheduleActivity
from planner.models.instance import ScheduleInstance
from planner.models.progress import (
    ActivityProgress,
    ActivitySnapshot,
    CompletionData,
    DraftData,
    QuizAttempt,
    QuizAttemptResult,
    QuizSubmission,
    SkipData,
)
from planner.services.progress_cache import ProgressCacheService

from .quiz_grader import grade_quiz
from .scoring import ScoringContext, ScoringRegistry, default_registry

# Clé d'unicité d'un élément : (instance, semaine, activité)
ITEM_KEY = ("instance_id", "week_number", "activity_id")
ITEM_SORT = [("day_of_week", ASCENDING), ("activity_snapshot.order_index", ASCENDING)]


def build_week_items(
    instance: ScheduleInstance,
    activities: Iterable[ScheduleActivity],
    week_number: int,
    created_at: dt.datetime,
) -> list[ActivityProgress]:
    """Construire (sans écrire) les éléments d'une semaine.

    Description:
        - Activités exclues par personnalisation ignorées
        - `scheduled_date` = début de la 1re semaine + (semaine - 1) semaines + jour
        - `due_date` = fin du jour planifié + jours d'échéance ajustés
        - Instructions personnalisées appliquées à la copie figée

    Returns:
        list[ActivityProgress]: Éléments à l'état `pending`.
    """
    custom = instance.customizations
    excluded = set(custom.excluded_activity_ids)
    week_start = add_weeks(instance.first_week_start_date, week_number - 1)

    items: list[ActivityProgress] = []
    for activity in activities:
        key = str(activity.id)
        if key in excluded:
            continue
        scheduled = week_start + dt.timedelta(days=activity.day_of_week)
        due = end_of_day(scheduled) + dt.timedelta(days=custom.adjusted_deadlines.get(key, 0))

        snapshot = ActivitySnapshot(
            activity_id=activity.id,
            template_id=activity.template_id,
            **activity.model_dump(exclude={"id", "template_id", "created_at"}),
        )
        if key in custom.custom_instructions:
            snapshot.instructions = custom.custom_instructions[key]

        items.append(
            ActivityProgress(
                instance_id=instance.id,
                activity_id=activity.id,
                learner_id=instance.learner_id,
                week_number=week_number,
                day_of_week=activity.day_of_week,
                activity_snapshot=snapshot,
                scheduled_date=scheduled,
                due_date=due,
                created_at=created_at,
            )
        )
    return items


def upsert_operations(items: Iterable[ActivityProgress]) -> list[UpdateOne]:
    """Une opération `$setOnInsert` par élément, filtrée sur la clé d'unicité : rejouable sans doublon."""
    operations = []
    for item in items:
        doc = dump_mongo(item)
        doc.pop("_id", None)
        key = {field: doc.pop(field) for field in ITEM_KEY}
        operations.append(UpdateOne(key, {"$setOnInsert": doc}, upsert=True))
    return operations


class ActivityProgressTracker:
    """Service des éléments de travail (ActivityProgress).

    Description:
        Chaque transition est une mise à jour conditionnelle sur le statut lu : un
        statut incompatible lève `StateError`, une course perdue lève `ConflictError`.
        Le cache de progression de l'instance est recalculé après chaque mutation.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        clock: Callable[[], dt.datetime] = now,
        scoring: Optional[ScoringRegistry] = None,
    ):
        self.db = db
        self.repos = Repositories(db)
        self.clock = clock
        self.scoring = scoring or default_registry()
        self.cache = ProgressCacheService(db, clock)
        self.logger, self.error_logger, _ = get_loggers()

    # ------------------------------------------------------------------ matérialisation

    async def materialize_week(self, instance_id: ObjectId, week_number: int) -> int:
        """Matérialiser (ou compléter) les éléments d'une semaine ; sûr à rejouer.

        Returns:
            int: Nombre d'éléments réellement créés.
        """
        doc = await self.repos.instances.get(instance_id)
        if doc is None:
            raise NotFoundError(f"Instance not found: {instance_id}")
        created = await self.materialize_for(ScheduleInstance.model_validate(doc), week_number)
        await self.cache.recompute(instance_id)
        return created

    async def materialize_for(self, instance: ScheduleInstance, week_number: int, *, session=None) -> int:
        activities = await self.template_activities(instance.template_id)
        items = build_week_items(instance, activities, week_number, self.clock())
        if not items:
            return 0
        summary = await self.repos.progress.write_many(upsert_operations(items), session=session)
        self.logger.info(
            "Week %d materialized for instance %s: %d created, %d already present",
            week_number, instance.id, summary.upserted, len(items) - summary.upserted,
        )
        return summary.upserted

    async def template_activities(self, template_id: ObjectId) -> list[ScheduleActivity]:
        docs = await self.repos.activities.find(
            {"template_id": template_id},
            sort=[("day_of_week", ASCENDING), ("order_index", ASCENDING)],
        )
        return [ScheduleActivity.model_validate(d) for d in docs]

    # ------------------------------------------------------------------ actions apprenant

    async def start_item(self, caller: Caller, item_id: ObjectId) -> ActivityProgress:
        """`pending -> in_progress`, horodate `started_at`."""
        item = await self._load_own(caller, item_id)
        updated = await self._transition(item, ("pending",), {"status": "in_progress", "started_at": self.clock()})
        await self.cache.recompute(item.instance_id)
        return updated

    async def complete_item(self, caller: Caller, item_id: ObjectId, data: CompletionData) -> ActivityProgress:
        """`in_progress -> completed` avec calcul du score.

        Description:
            Sans `time_spent` fourni, la durée est calculée en minutes depuis `started_at`
            (au moins 1).
        """
        item = await self._load_own(caller, item_id)
        self._require_status(item, ("in_progress",))
        updated = await self._complete(item, data)
        await self.cache.recompute(item.instance_id)
        return updated

    async def skip_item(self, caller: Caller, item_id: ObjectId, data: SkipData) -> ActivityProgress:
        """`pending|in_progress -> skipped` avec motif."""
        item = await self._load_own(caller, item_id)
        at = self.clock()
        updated = await self._transition(
            item,
            ("pending", "in_progress"),
            {"status": "skipped", "skipped_at": at, "execution_data.skip_reason": data.reason},
        )
        await self.cache.recompute(item.instance_id)
        return updated

    async def save_draft(self, caller: Caller, item_id: ObjectId, data: DraftData) -> ActivityProgress:
        """Enregistre un brouillon sans changer le statut (`pending|in_progress`)."""
        item = await self._load_own(caller, item_id)
        at = self.clock()
        return await self._transition(
            item,
            ("pending", "in_progress"),
            {"execution_data.draft": data.draft, "execution_data.last_saved_at": at},
        )

    async def submit_quiz_attempt(self, caller: Caller, item_id: ObjectId, submission: QuizSubmission) -> QuizAttemptResult:
        """Corriger une tentative de quiz et l'ajouter au journal des tentatives.

        Description:
            - Élément `pending` démarré automatiquement
            - Correction contre les questions figées de l'élément
            - Tentatives bornées par `max_attempts`
            - Une tentative réussie termine l'élément (score quiz transmis au barème)

        Raises:
            ValidationError: L'activité n'est pas un quiz.
            StateError: Élément terminé/passé, ou plus de tentative disponible.
            ConflictError: Une autre tentative a été enregistrée en parallèle.
        """
        item = await self._load_own(caller, item_id)
        config = item.activity_snapshot.config
        if not isinstance(config, QuizConfig):
            raise ValidationError([f"activity {item.activity_id} is not a quiz"])
        self._require_status(item, ("pending", "in_progress"))

        if item.status == "pending":
            item = await self._transition(item, ("pending",), {"status": "in_progress", "started_at": self.clock()})

        used = len(item.attempts)
        if config.max_attempts is not None and used >= config.max_attempts:
            raise StateError("No quiz attempts left", current=item.status, max_attempts=config.max_attempts)

        grade = grade_quiz(config, submission.answers)
        at = self.clock()
        attempt = QuizAttempt(
            attempt_number=used + 1,
            started_at=item.attempts[-1].completed_at if item.attempts else (item.started_at or at),
            completed_at=at,
            score=grade.score,
            passed=grade.passed,
            answers=submission.answers,
        )
        doc = await self.repos.progress.update_fields(
            item.id,
            {"updated_at": at},
            expected={"status": "in_progress", "attempts": {"$size": used}},
            push={"attempts": attempt.model_dump()},
        )
        if doc is None:
            raise ConflictError("Quiz attempt conflicted with a concurrent update", item_id=str(item.id))
        item = ActivityProgress.model_validate(doc)

        if grade.passed:
            completion = CompletionData(
                time_spent=submission.time_spent,
                submission={"answers": submission.answers, "score": grade.score},
                affect=submission.affect,
            )
            item = await self._complete(item, completion, quiz_score=grade.score)
        await self.cache.recompute(item.instance_id)

        return QuizAttemptResult(
            attempt_number=attempt.attempt_number,
            score=grade.score,
            correct_answers=grade.correct_answers,
            total_questions=grade.total_questions,
            passed=grade.passed,
            attempts_left=None if config.max_attempts is None else config.max_attempts - attempt.attempt_number,
            item=item,
        )

    # ------------------------------------------------------------------ lecture

    async def get_item(self, caller: Caller, item_id: ObjectId) -> ActivityProgress:
        return await self._load_own(caller, item_id)

    async def get_week_items(self, caller: Caller, instance_id: ObjectId, week_number: Optional[int] = None) -> list[ActivityProgress]:
        """Éléments d'une semaine (semaine courante par défaut), par jour puis ordre."""
        doc = await self.repos.instances.get(instance_id)
        if doc is None:
            raise NotFoundError(f"Instance not found: {instance_id}")
        instance = ScheduleInstance.model_validate(doc)
        if caller.id not in (instance.learner_id, instance.assigned_by) and not caller.is_coordinator:
            raise PermissionError("Not allowed to read this schedule")
        week = week_number or instance.current_week_number
        docs = await self.repos.progress.find({"instance_id": instance_id, "week_number": week}, sort=ITEM_SORT)
        return [ActivityProgress.model_validate(d) for d in docs]

    async def get_today_items(self, learner_id: str) -> list[ActivityProgress]:
        """Éléments planifiés aujourd'hui sur les instances actives de l'apprenant."""
        instances = await self.repos.instances.find(
            {"learner_id": learner_id, "status": "active"}, projection={"_id": 1}
        )
        if not instances:
            return []
        today = start_of_day(self.clock())
        docs = await self.repos.progress.find(
            {
                "learner_id": learner_id,
                "instance_id": {"$in": [i["_id"] for i in instances]},
                "scheduled_date": {"$gte": today, "$lt": today + dt.timedelta(days=1)},
            },
            sort=[("scheduled_date", ASCENDING), ("activity_snapshot.order_index", ASCENDING)],
        )
        return [ActivityProgress.model_validate(d) for d in docs]

    # ------------------------------------------------------------------ interne

    async def _load_own(self, caller: Caller, item_id: ObjectId) -> ActivityProgress:
        doc = await self.repos.progress.get(item_id)
        if doc is None:
            raise NotFoundError(f"Progress item not found: {item_id}")
        item = ActivityProgress.model_validate(doc)
        if item.learner_id != caller.id:
            raise PermissionError("Learners may only act on their own items")
        return item

    @staticmethod
    def _require_status(item: ActivityProgress, allowed: tuple[str, ...]) -> None:
        if item.status not in allowed:
            raise StateError(
                f"Item is {item.status}; expected one of {', '.join(allowed)}",
                current=item.status,
            )

    async def _transition(self, item: ActivityProgress, allowed: tuple[str, ...], fields: dict[str, Any]) -> ActivityProgress:
        """Mise à jour conditionnée au statut lu (compare-and-set)."""
        self._require_status(item, allowed)
        fields = {**fields, "updated_at": self.clock()}
        doc = await self.repos.progress.update_fields(item.id, fields, expected={"status": item.status})
        if doc is None:
            raise ConflictError("Item changed concurrently", item_id=str(item.id), expected=item.status)
        return ActivityProgress.model_validate(doc)

    async def _complete(self, item: ActivityProgress, data: CompletionData, quiz_score: Optional[float] = None) -> ActivityProgress:
        at = self.clock()
        time_spent = data.time_spent
        if time_spent is None:
            time_spent = max(1, minutes_between(item.started_at, at)) if item.started_at else 1

        scoring = self.scoring.score(
            ScoringContext(
                activity=item.activity_snapshot,
                completed_at=at,
                due_date=item.due_date,
                time_spent=time_spent,
                affect_after=data.affect.after,
                quiz_score=quiz_score,
            )
        )
        return await self._transition(
            item,
            ("in_progress",),
            {
                "status": "completed",
                "completed_at": at,
                "execution_data.time_spent": time_spent,
                "execution_data.submission": data.submission,
                "execution_data.affect": data.affect.model_dump(),
                "execution_data.notes": data.notes,
                "execution_data.attachments": data.attachments,
                "scoring": scoring.model_dump(),
            },
        )
