# planner/api/routes/instances.py
# Routes instances : affectation, instances actives, détail, pause / reprise / fin, éléments d'une semaine.

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from planner.api.deps import Lifecycle, Tracker
from planner.core.bson_utils import to_object_id
from planner.core.security import CurrentCaller, get_current_caller
from planner.models.instance import AssignmentResult, AssignRequest, ScheduleInstance
from planner.models.progress import ActivityProgress

router = APIRouter(
    prefix="/instances",
    tags=["instances"],
    dependencies=[Depends(get_current_caller)],
)


@router.post(
    "/assign",
    response_model=AssignmentResult,
    summary="Affecter un gabarit à des apprenants",
    description=(
        "Crée une instance par apprenant et matérialise la semaine 1.\n\n"
        "- Chaque apprenant est traité indépendamment : les échecs sont listés dans `failed`\n"
        "- Refus (409 par apprenant) si une instance non terminée du même gabarit existe, sauf `allow_multiple`"
    ),
)
async def assign_schedule(payload: AssignRequest, caller: CurrentCaller, lifecycle: Lifecycle):
    return await lifecycle.assign(
        caller,
        payload.template_id,
        payload.learner_ids,
        start_date=payload.start_date,
        customizations=payload.customizations,
        allow_multiple=payload.allow_multiple,
    )


@router.get(
    "/active",
    response_model=list[ScheduleInstance],
    summary="Instances actives d'un apprenant",
    description="Sans `learner_id`, retourne celles de l'appelant. Un apprenant ne peut lire que les siennes.",
)
async def get_active_instances(
    caller: CurrentCaller,
    lifecycle: Lifecycle,
    learner_id: Optional[str] = Query(default=None),
):
    target = learner_id or caller.id
    if target != caller.id and caller.role == "learner":
        raise PermissionError("Learners can only list their own schedules")
    return await lifecycle.get_active_instances(target)


@router.get("/{instance_id}", response_model=ScheduleInstance, summary="Détail d'une instance")
async def get_instance(caller: CurrentCaller, lifecycle: Lifecycle, instance_id: str = Path(...)):
    return await lifecycle.get_instance(caller, to_object_id(instance_id, "instance"))


@router.post("/{instance_id}/pause", response_model=ScheduleInstance, summary="Mettre en pause")
async def pause_instance(caller: CurrentCaller, lifecycle: Lifecycle, instance_id: str = Path(...)):
    return await lifecycle.pause(caller, to_object_id(instance_id, "instance"))


@router.post("/{instance_id}/resume", response_model=ScheduleInstance, summary="Reprendre")
async def resume_instance(caller: CurrentCaller, lifecycle: Lifecycle, instance_id: str = Path(...)):
    return await lifecycle.resume(caller, to_object_id(instance_id, "instance"))


@router.post(
    "/{instance_id}/end",
    response_model=ScheduleInstance,
    summary="Terminer",
    description="Fin explicite ; `completed` est terminal.",
)
async def end_instance(caller: CurrentCaller, lifecycle: Lifecycle, instance_id: str = Path(...)):
    return await lifecycle.end(caller, to_object_id(instance_id, "instance"))


@router.get(
    "/{instance_id}/items",
    response_model=list[ActivityProgress],
    summary="Éléments d'une semaine",
    description="Semaine courante par défaut ; triés par jour puis ordre.",
)
async def get_week_items(
    caller: CurrentCaller,
    tracker: Tracker,
    instance_id: str = Path(...),
    week_number: Optional[int] = Query(default=None, ge=1),
):
    return await tracker.get_week_items(caller, to_object_id(instance_id, "instance"), week_number)
