# planner/services/templates/template_catalog.py
# Catalogue des gabarits : création validée, versionnage à l'édition, archivage logique, lecture.

from __future__ import annotations

import datetime as dt
from typing import Callable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, InsertOne

from planner.core.bson_utils import dump_mongo
from planner.core.errors import ConflictError, NotFoundError, StateError, ValidationError
from planner.core.logging_config import get_loggers
from planner.core.security import Caller
from planner.core.utils import as_datetime, now
from planner.db.repositories import Repositories, run_atomic
from planner.models.activity import ActivityDefinition, ScheduleActivity
from planner.models.template import (
    ScheduleTemplate,
    TemplateChanges,
    TemplateCreated,
    TemplateDefinition,
    TemplateWithActivities,
)

from .template_validator import compute_metadata, sanitize_definition, validate_definition

AUTHOR_ROLES = ("professional", "coordinator")


class TemplateCatalog:
    """Service de gestion des gabarits.

    Description:
        Un gabarit publié n'est jamais modifié en place : `update` crée la version
        suivante et désactive la précédente, ce qui laisse intactes les instances
        existantes (elles gardent leur `template_id` et leurs copies figées).
    """

    def __init__(self, db: AsyncIOMotorDatabase, clock: Callable[[], dt.datetime] = now):
        self.db = db
        self.repos = Repositories(db)
        self.clock = clock
        self.logger, self.error_logger, _ = get_loggers()

    # ------------------------------------------------------------------ écriture

    async def create(self, caller: Caller, definition: TemplateDefinition) -> TemplateCreated:
        """Créer un gabarit (version 1) et ses activités.

        Args:
            caller: Auteur (professionnel ou coordinateur).
            definition: Définition brute.

        Returns:
            TemplateCreated: Ids générés (gabarit + activités dans l'ordre).

        Raises:
            PermissionError: Rôle non autorisé à créer des gabarits.
            ValidationError: Liste complète des règles violées.
        """
        if caller.role not in AUTHOR_ROLES:
            raise PermissionError("Only professionals can create templates")

        clean = sanitize_definition(definition)
        errors = validate_definition(clean, today=self.clock().date(), check_start_date=True)
        if errors:
            raise ValidationError(errors)

        template_id = ObjectId()
        template = self._build_template(clean, owner_id=caller.id, template_id=template_id, version=1)
        template.root_template_id = template_id

        activity_ids = await run_atomic(
            self.db,
            lambda session: self._persist_version(template, clean.activities, session=session),
        )
        self.logger.info("Template %s created by %s (%d activities)", template_id, caller.id, len(activity_ids))
        return TemplateCreated(template_id=template_id, version=1, activity_ids=activity_ids)

    async def update(self, caller: Caller, template_id: ObjectId, changes: TemplateChanges) -> TemplateCreated:
        """Créer la version n+1 d'un gabarit à partir de modifications partielles.

        Description:
            Fusionne `changes` sur la définition courante, revalide (sans contrôle de
            date de début passée), insère la nouvelle version (nouveaux ids, même
            `root_template_id`, `previous_version_id` renseigné) puis désactive l'ancienne.

        Raises:
            NotFoundError: Gabarit inconnu.
            PermissionError: L'appelant n'est ni propriétaire ni coordinateur.
            StateError: Gabarit archivé ou version déjà remplacée.
            ValidationError: Définition fusionnée invalide.
            ConflictError: Une autre édition a remplacé la version entre-temps.
        """
        current = await self._load(template_id)
        self._check_owner(current, caller)
        if current.status == "archived":
            raise StateError("Archived templates cannot be edited", current=current.status)
        if not current.is_active:
            raise StateError("Only the latest version of a template can be edited", current=current.status)

        activities = await self.get_template_activities(template_id)
        data = self._definition_of(current, activities).model_dump()
        data.update(changes.model_dump(exclude_unset=True, exclude_none=True))
        merged = TemplateDefinition.model_validate(data)

        clean = sanitize_definition(merged)
        errors = validate_definition(clean, today=self.clock().date(), check_start_date=False)
        if errors:
            raise ValidationError(errors)

        new_version = current.version + 1
        new_id = ObjectId()
        template = self._build_template(clean, owner_id=current.owner_id, template_id=new_id, version=new_version)
        template.root_template_id = current.root_template_id or current.id
        template.previous_version_id = current.id

        async def _work(session):
            # nouvelle version d'abord : l'ancienne reste active tant que la suivante n'est pas écrite
            activity_ids = await self._persist_version(template, clean.activities, session=session)
            superseded = await self.repos.templates.update_fields(
                current.id,
                {"status": "inactive", "is_active": False, "updated_at": self.clock()},
                expected={"is_active": True, "status": "active"},
                session=session,
            )
            if superseded is None:
                if session is None:
                    await self._discard_version(new_id)
                raise ConflictError("Template was modified concurrently", template_id=str(current.id))
            return activity_ids

        activity_ids = await run_atomic(self.db, _work)
        self.logger.info("Template %s versioned to %s (v%d)", current.id, new_id, new_version)
        return TemplateCreated(template_id=new_id, version=new_version, activity_ids=activity_ids)

    async def archive(self, caller: Caller, template_id: ObjectId) -> ScheduleTemplate:
        """Archivage logique (jamais de suppression physique)."""
        current = await self._load(template_id)
        self._check_owner(current, caller)
        if current.status == "archived":
            return current
        doc = await self.repos.templates.update_fields(
            current.id,
            {"status": "archived", "is_active": False, "updated_at": self.clock()},
        )
        self.logger.info("Template %s archived by %s", template_id, caller.id)
        return ScheduleTemplate.model_validate(doc)

    # ------------------------------------------------------------------ lecture

    async def get(self, template_id: ObjectId, include_activities: bool = True) -> TemplateWithActivities:
        template = await self._load(template_id)
        activities = await self.get_template_activities(template_id) if include_activities else []
        return TemplateWithActivities(template=template, activities=activities)

    async def get_template(self, template_id: ObjectId) -> ScheduleTemplate:
        return await self._load(template_id)

    async def get_template_activities(self, template_id: ObjectId) -> list[ScheduleActivity]:
        docs = await self.repos.activities.find(
            {"template_id": template_id},
            sort=[("day_of_week", ASCENDING), ("order_index", ASCENDING)],
        )
        return [ScheduleActivity.model_validate(d) for d in docs]

    async def list_templates(
        self,
        owner_id: str,
        *,
        category: Optional[str] = None,
        active_only: bool = False,
        limit: int = 50,
    ) -> list[ScheduleTemplate]:
        """Gabarits d'un propriétaire, du plus récent au plus ancien."""
        query: dict = {"owner_id": owner_id}
        if category:
            query["category"] = category
        if active_only:
            query["is_active"] = True
        docs = await self.repos.templates.find(query, sort=[("created_at", DESCENDING)], limit=limit)
        return [ScheduleTemplate.model_validate(d) for d in docs]

    # ------------------------------------------------------------------ interne

    async def _load(self, template_id: ObjectId) -> ScheduleTemplate:
        doc = await self.repos.templates.get(template_id)
        if doc is None:
            raise NotFoundError(f"Template not found: {template_id}")
        return ScheduleTemplate.model_validate(doc)

    @staticmethod
    def _check_owner(template: ScheduleTemplate, caller: Caller) -> None:
        if template.owner_id != caller.id and not caller.is_coordinator:
            raise PermissionError("Only the template owner can do this")

    def _build_template(
        self, definition: TemplateDefinition, *, owner_id: str, template_id: ObjectId, version: int
    ) -> ScheduleTemplate:
        return ScheduleTemplate(
            _id=template_id,
            owner_id=owner_id,
            name=definition.name,
            description=definition.description,
            category=definition.category,
            active_days=definition.active_days,
            start_date=as_datetime(definition.start_date),
            end_date=as_datetime(definition.end_date) if definition.end_date else None,
            repeat_rules=definition.repeat_rules,
            metadata=compute_metadata(definition, version=version),
            created_at=self.clock(),
        )

    async def _persist_version(
        self, template: ScheduleTemplate, activities: list[ActivityDefinition], *, session=None
    ) -> list[ObjectId]:
        """Activités d'abord, gabarit ensuite : un gabarit visible a toujours ses activités."""
        created_at = self.clock()
        docs = [
            ScheduleActivity(
                _id=ObjectId(),
                template_id=template.id,
                created_at=created_at,
                **activity.model_dump(),
            )
            for activity in activities
        ]
        try:
            await self.repos.activities.write_many([InsertOne(dump_mongo(d)) for d in docs], ordered=True, session=session)
            await self.repos.templates.insert(dump_mongo(template), session=session)
        except Exception:
            # hors transaction, une version incomplète est retirée avant de propager l'erreur
            if session is None:
                self.error_logger.exception("Persisting template %s failed, discarding partial writes", template.id)
                await self._discard_version(template.id)
            raise
        return [d.id for d in docs]

    async def _discard_version(self, template_id: ObjectId) -> None:
        await self.repos.activities.delete_many({"template_id": template_id})
        await self.repos.templates.delete_many({"_id": template_id})

    @staticmethod
    def _definition_of(template: ScheduleTemplate, activities: list[ScheduleActivity]) -> TemplateDefinition:
        return TemplateDefinition(
            name=template.name,
            description=template.description,
            category=template.category,
            active_days=template.active_days,
            start_date=template.start_date.date(),
            end_date=template.end_date.date() if template.end_date else None,
            repeat_rules=template.repeat_rules,
            tags=template.metadata.tags,
            activities=[
                ActivityDefinition.model_validate(a.model_dump(exclude={"id", "template_id", "created_at"}))
                for a in activities
            ],
        )
