# planner/api/routes/templates.py
# Routes gabarits : création, listing, détail, nouvelle version, archivage.

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Path, Query, status

from planner.api.deps import Catalog
from planner.core.bson_utils import to_object_id
from planner.core.security import CurrentCaller, get_current_caller
from planner.models.template import (
    ScheduleTemplate,
    TemplateChanges,
    TemplateCreated,
    TemplateDefinition,
    TemplateWithActivities,
)

router = APIRouter(
    prefix="/templates",
    tags=["templates"],
    dependencies=[Depends(get_current_caller)],
)


@router.post(
    "",
    response_model=TemplateCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Créer un gabarit",
    description=(
        "Assainit puis valide la définition complète ; toutes les règles violées sont "
        "retournées ensemble (422)."
    ),
)
async def create_template(definition: TemplateDefinition, caller: CurrentCaller, catalog: Catalog):
    return await catalog.create(caller, definition)


@router.get(
    "",
    response_model=list[ScheduleTemplate],
    summary="Lister mes gabarits",
    description="Gabarits de l'appelant, du plus récent au plus ancien.",
)
async def list_templates(
    caller: CurrentCaller,
    catalog: Catalog,
    category: Optional[Literal["therapeutic", "educational", "mixed"]] = Query(default=None),
    active_only: bool = Query(default=False, description="Uniquement la version active de chaque gabarit."),
    limit: int = Query(50, ge=1, le=200),
):
    return await catalog.list_templates(caller.id, category=category, active_only=active_only, limit=limit)


@router.get(
    "/{template_id}",
    response_model=TemplateWithActivities,
    summary="Détail d'un gabarit",
)
async def get_template(
    catalog: Catalog,
    template_id: str = Path(..., description="Identifiant du gabarit."),
    include_activities: bool = Query(default=True),
):
    return await catalog.get(to_object_id(template_id, "template"), include_activities=include_activities)


@router.patch(
    "/{template_id}",
    response_model=TemplateCreated,
    summary="Modifier un gabarit (nouvelle version)",
    description=(
        "Ne modifie jamais la version existante : crée la version n+1 et désactive la "
        "précédente. Les instances déjà affectées ne sont pas touchées."
    ),
)
async def update_template(changes: TemplateChanges, caller: CurrentCaller, catalog: Catalog, template_id: str = Path(...)):
    return await catalog.update(caller, to_object_id(template_id, "template"), changes)


@router.delete(
    "/{template_id}",
    response_model=ScheduleTemplate,
    summary="Archiver un gabarit",
    description="Suppression logique : `status=archived`, `is_active=false`.",
)
async def archive_template(caller: CurrentCaller, catalog: Catalog, template_id: str = Path(...)):
    return await catalog.archive(caller, to_object_id(template_id, "template"))
