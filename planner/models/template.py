# planner/models/template.py
# Gabarit de planning hebdomadaire (versionné) et payloads de création / modification.

from __future__ import annotations

import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from planner.core.bson_utils import MongoBaseModel, PyObjectId
from planner.core.utils import now
from planner.models.activity import ActivityDefinition, ScheduleActivity

Category = Literal["therapeutic", "educational", "mixed"]
TemplateStatus = Literal["active", "inactive", "archived"]


class RepeatRules(BaseModel):
    """Règles de répétition.

    Attributes:
        reset_on_repeat (bool): Conservé et validé ; la régénération hebdomadaire s'applique dans tous les cas.
        max_repetitions (int | None): Nombre maximal de semaines ; None = jusqu'à la date de fin.
    """
    reset_on_repeat: bool = True
    max_repetitions: Optional[int] = None


class TemplateMetadata(BaseModel):
    version: int = 1
    total_activities: int = 0
    estimated_weekly_minutes: int = 0
    tags: List[str] = Field(default_factory=list)


class TemplateDefinition(BaseModel):
    """Payload de création d'un gabarit (avant assainissement et validation)."""
    name: str
    description: str = ""
    category: Category = "mixed"
    active_days: List[int] = Field(default_factory=list)
    start_date: dt.date
    end_date: Optional[dt.date] = None
    repeat_rules: RepeatRules = Field(default_factory=RepeatRules)
    tags: List[str] = Field(default_factory=list)
    activities: List[ActivityDefinition] = Field(default_factory=list)


class TemplateChanges(BaseModel):
    """Modifications partielles : seuls les champs fournis remplacent ceux de la version courante."""
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[Category] = None
    active_days: Optional[List[int]] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    repeat_rules: Optional[RepeatRules] = None
    tags: Optional[List[str]] = None
    activities: Optional[List[ActivityDefinition]] = None


class ScheduleTemplate(MongoBaseModel):
    """Document Mongo « ScheduleTemplate ».

    Description:
        Immuable une fois publié : une modification crée une nouvelle version (même
        `root_template_id`, `previous_version_id` renseigné) et désactive la précédente.
        Les dates sont stockées en `datetime` à minuit (pas de `date` nue en BSON).
    """
    owner_id: str
    name: str
    description: str = ""
    category: Category = "mixed"
    active_days: List[int] = Field(default_factory=list)
    start_date: dt.datetime
    end_date: Optional[dt.datetime] = None
    repeat_rules: RepeatRules = Field(default_factory=RepeatRules)
    metadata: TemplateMetadata = Field(default_factory=TemplateMetadata)
    status: TemplateStatus = "active"
    is_active: bool = True
    root_template_id: Optional[PyObjectId] = None
    previous_version_id: Optional[PyObjectId] = None
    created_at: dt.datetime = Field(default_factory=lambda: now())
    updated_at: Optional[dt.datetime] = None

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    @property
    def version(self) -> int:
        return self.metadata.version


class TemplateWithActivities(BaseModel):
    template: ScheduleTemplate
    activities: List[ScheduleActivity] = Field(default_factory=list)


class TemplateCreated(BaseModel):
    """Identifiants générés à la création (ou à la nouvelle version)."""
    template_id: PyObjectId
    version: int
    activity_ids: List[PyObjectId]

    model_config = ConfigDict(arbitrary_types_allowed=True)
