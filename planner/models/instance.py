# planner/models/instance.py
# Instance de planning : affectation d'une version de gabarit à un apprenant, pointeur de semaine et cache de progression.

from __future__ import annotations

import datetime as dt
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from planner.core.bson_utils import MongoBaseModel, PyObjectId
from planner.core.utils import now
from planner.models._shared import ProgressCache

InstanceStatus = Literal["active", "paused", "completed"]
CompletionReason = Literal["max_repetitions", "end_date", "ended"]


class Customizations(BaseModel):
    """Personnalisations par apprenant (clés = id d'activité en chaîne hex).

    Attributes:
        excluded_activity_ids (list[str]): Activités non matérialisées.
        adjusted_deadlines (dict[str, int]): Jours ajoutés à l'échéance.
        custom_instructions (dict[str, str]): Remplace les instructions dans la copie figée.
    """
    excluded_activity_ids: List[str] = Field(default_factory=list)
    adjusted_deadlines: Dict[str, int] = Field(default_factory=dict)
    custom_instructions: Dict[str, str] = Field(default_factory=dict)


class ScheduleInstance(MongoBaseModel):
    """Document Mongo « ScheduleInstance ».

    Description:
        `current_week_number` démarre à 1 et n'avance que d'une unité par bascule.
        La fenêtre courante (lundi 00:00 → dimanche 23:59:59.999) est dérivée de
        `first_week_start_date` et du numéro de semaine.
    """
    template_id: PyObjectId
    template_version: int = 1
    learner_id: str
    assigned_by: str
    current_week_number: int = 1
    first_week_start_date: dt.datetime
    current_week_start_date: dt.datetime
    current_week_end_date: dt.datetime
    status: InstanceStatus = "active"
    started_at: dt.datetime = Field(default_factory=lambda: now())
    paused_at: Optional[dt.datetime] = None
    completed_at: Optional[dt.datetime] = None
    completion_reason: Optional[CompletionReason] = None
    customizations: Customizations = Field(default_factory=Customizations)
    progress_cache: ProgressCache = Field(default_factory=ProgressCache)
    created_at: dt.datetime = Field(default_factory=lambda: now())
    updated_at: Optional[dt.datetime] = None

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    @property
    def is_terminal(self) -> bool:
        return self.status == "completed"


class AssignmentSuccess(BaseModel):
    learner_id: str
    instance_id: PyObjectId
    items_created: int

    model_config = ConfigDict(arbitrary_types_allowed=True)


class AssignmentFailure(BaseModel):
    learner_id: str
    error: str
    code: str


class AssignmentResult(BaseModel):
    """Résultat itemisé d'une affectation : un échec n'empêche pas les autres apprenants."""
    successful: List[AssignmentSuccess] = Field(default_factory=list)
    failed: List[AssignmentFailure] = Field(default_factory=list)


class AssignRequest(BaseModel):
    template_id: PyObjectId
    learner_ids: List[str]
    start_date: Optional[dt.date] = None
    customizations: Customizations = Field(default_factory=Customizations)
    allow_multiple: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)
