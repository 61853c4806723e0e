# planner/models/rollover.py
# Résultats de la bascule hebdomadaire : issue par instance et bilan agrégé.

from __future__ import annotations

import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from planner.core.bson_utils import PyObjectId

RolloverStatus = Literal["success", "skipped", "error"]


class InstanceRolloverResult(BaseModel):
    """Issue de la bascule d'une instance.

    Attributes:
        status: success (avancée ou terminée) | skipped (rien à faire / course perdue) | error.
        reason (str | None): Motif d'un skip ou message d'erreur.
        old_week_number / new_week_number: Pointeur avant / après (identiques si non avancé).
        snapshot_id: Bilan de la semaine close (nouveau ou existant).
        snapshot_generated (bool): Vrai seulement si un nouveau bilan a été écrit.
        items_created (int): Éléments matérialisés pour la nouvelle semaine.
        completed (bool): L'instance est passée à `completed`.
    """
    instance_id: PyObjectId
    status: RolloverStatus
    reason: Optional[str] = None
    error_code: Optional[str] = None
    old_week_number: int
    new_week_number: int
    snapshot_id: Optional[PyObjectId] = None
    snapshot_generated: bool = False
    items_created: int = 0
    completed: bool = False
    attempts: int = 1

    model_config = ConfigDict(arbitrary_types_allowed=True)


class RolloverSummary(BaseModel):
    total: int = 0
    processed: int = 0
    successful: int = 0
    skipped: int = 0
    failed: int = 0
    snapshots_generated: int = 0
    completed_instances: int = 0
    duration_ms: float = 0.0
    dry_run: bool = False


class RolloverReport(BaseModel):
    summary: RolloverSummary = Field(default_factory=RolloverSummary)
    results: List[InstanceRolloverResult] = Field(default_factory=list)


class ResetStatus(BaseModel):
    """État de la bascule hebdomadaire pour l'exploitation.

    Attributes:
        last_reset_at: Fin du dernier passage réel (hors passage à blanc), None si aucun.
        last_summary: Bilan de ce passage.
        next_reset_at: Prochaine bascule planifiée (lundi 00:01).
        instances_pending_reset (int): Instances non terminées dont la semaine est close.
        system_status: healthy | warning | error selon l'ancienneté et l'issue du dernier passage.
    """
    last_reset_at: Optional[dt.datetime] = None
    last_summary: Optional[RolloverSummary] = None
    next_reset_at: dt.datetime
    instances_pending_reset: int = 0
    system_status: Literal["healthy", "warning", "error"] = "healthy"
