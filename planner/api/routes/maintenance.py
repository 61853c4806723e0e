# planner/api/routes/maintenance.py
# Routes d'exploitation (coordinateur) : bascule hebdomadaire, état de la bascule et bascule forcée d'une instance.

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Query, Request

from planner.api.deps import Rollover
from planner.api.dto.response_format import SuccessResponse
from planner.core.bson_utils import to_object_id
from planner.core.logging_config import extract_caller_data
from planner.core.security import Caller, require_coordinator
from planner.models.rollover import InstanceRolloverResult, ResetStatus, RolloverReport

router = APIRouter(
    prefix="/maintenance", tags=["maintenance"], dependencies=[Depends(require_coordinator)]
)


@router.post(
    "/weekly-reset",
    response_model=SuccessResponse[RolloverReport],
    summary="Lancer la bascule hebdomadaire",
    description=(
        "Bascule toutes les instances non terminées dont la semaine est close.\n\n"
        "- Rejouable sans effet de bord : une instance déjà avancée est ignorée\n"
        "- `dry_run` calcule les décisions sans rien écrire"
    ),
)
async def weekly_reset(
    request: Request,
    engine: Rollover,
    caller: Annotated[Caller, Depends(require_coordinator)],
    batch_size: Optional[int] = Query(default=None, ge=1, le=500),
    dry_run: bool = Query(default=False),
):
    report = await engine.process_weekly_reset(
        batch_size=batch_size,
        dry_run=dry_run,
        caller_data=extract_caller_data(caller.id, request),
    )
    s = report.summary
    return SuccessResponse[RolloverReport](
        data=report,
        message=f"{s.successful} ok, {s.skipped} skipped, {s.failed} failed",
    )


@router.post(
    "/instances/{instance_id}/force-reset",
    response_model=InstanceRolloverResult,
    summary="Forcer la bascule d'une instance",
    description="Même traitement que la bascule périodique, pour une seule instance (semaine close requise).",
)
async def force_reset_instance(engine: Rollover, instance_id: str = Path(...)):
    return await engine.force_reset_instance(to_object_id(instance_id, "instance"))


@router.get(
    "/weekly-reset/status",
    response_model=ResetStatus,
    summary="État de la bascule hebdomadaire",
    description=(
        "Dernier passage enregistré, prochaine bascule planifiée (lundi 00:01), "
        "nombre d'instances en attente et état global (healthy / warning / error)."
    ),
)
async def weekly_reset_status(engine: Rollover):
    return await engine.get_reset_status()
