# planner/api/routes/snapshots.py
# Routes bilans hebdomadaires : génération manuelle et consultation.

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict

from planner.api.deps import Snapshots
from planner.core.bson_utils import PyObjectId, to_object_id
from planner.core.security import CurrentCaller, get_current_caller
from planner.models.snapshot import SnapshotFilters, WeeklySnapshot

router = APIRouter(
    prefix="/snapshots",
    tags=["snapshots"],
    dependencies=[Depends(get_current_caller)],
)


class GenerateSnapshotIn(BaseModel):
    instance_id: PyObjectId
    week_number: Optional[int] = None
    force_regenerate: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)


@router.post(
    "/generate",
    response_model=WeeklySnapshot,
    summary="Générer le bilan d'une semaine",
    description=(
        "Retourne le bilan existant tel quel, sauf `force_regenerate`.\n\n"
        "- 404 si la semaine n'a aucun élément"
    ),
)
async def generate_snapshot(payload: GenerateSnapshotIn, caller: CurrentCaller, snapshots: Snapshots):
    return await snapshots.generate_snapshot(
        payload.instance_id,
        week_number=payload.week_number,
        force_regenerate=payload.force_regenerate,
        caller=caller,
    )


@router.get(
    "",
    response_model=list[WeeklySnapshot],
    summary="Lister les bilans",
    description=(
        "Semaine la plus récente d'abord.\n\n"
        "- Un apprenant ne lit que ses propres bilans\n"
        "- Un professionnel ne lit que ceux des instances qu'il a affectées"
    ),
)
async def get_snapshots(
    caller: CurrentCaller,
    snapshots: Snapshots,
    learner_id: Optional[str] = Query(default=None),
    instance_id: Optional[str] = Query(default=None),
    week_from: Optional[int] = Query(default=None, ge=1),
    week_to: Optional[int] = Query(default=None, ge=1),
    limit: int = Query(20, ge=1, le=200),
):
    filters = SnapshotFilters(
        instance_id=to_object_id(instance_id, "instance") if instance_id else None,
        week_from=week_from, week_to=week_to, limit=limit)
    return await snapshots.get_snapshots(learner_id or caller.id, filters, caller=caller)
