# planner/api/routes/progress_items.py
# Routes des éléments de travail de l'apprenant : aujourd'hui, détail, démarrer, terminer, passer, brouillon, quiz.

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Path

from planner.api.deps import Tracker
from planner.core.bson_utils import to_object_id
from planner.core.security import CurrentCaller, get_current_caller
from planner.models.progress import (
    ActivityProgress,
    CompletionData,
    DraftData,
    QuizAttemptResult,
    QuizSubmission,
    SkipData,
)

router = APIRouter(
    prefix="/items",
    tags=["progress-items"],
    dependencies=[Depends(get_current_caller)],
)


@router.get(
    "/today",
    response_model=list[ActivityProgress],
    summary="Mes activités du jour",
    description="Éléments planifiés aujourd'hui sur mes instances actives.",
)
async def get_today_items(caller: CurrentCaller, tracker: Tracker):
    return await tracker.get_today_items(caller.id)


@router.get("/{item_id}", response_model=ActivityProgress, summary="Détail d'un élément")
async def get_item(caller: CurrentCaller, tracker: Tracker, item_id: str = Path(...)):
    return await tracker.get_item(caller, to_object_id(item_id, "progress item"))


@router.post("/{item_id}/start", response_model=ActivityProgress, summary="Démarrer")
async def start_item(caller: CurrentCaller, tracker: Tracker, item_id: str = Path(...)):
    return await tracker.start_item(caller, to_object_id(item_id, "progress item"))


@router.post(
    "/{item_id}/complete",
    response_model=ActivityProgress,
    summary="Terminer",
    description="Durée calculée depuis le démarrage si `time_spent` est absent ; score selon le type d'activité.",
)
async def complete_item(
    caller: CurrentCaller,
    tracker: Tracker,
    item_id: str = Path(...),
    data: Optional[CompletionData] = Body(default=None),
):
    return await tracker.complete_item(caller, to_object_id(item_id, "progress item"), data or CompletionData())


@router.post("/{item_id}/skip", response_model=ActivityProgress, summary="Passer")
async def skip_item(
    caller: CurrentCaller,
    tracker: Tracker,
    item_id: str = Path(...),
    data: Optional[SkipData] = Body(default=None),
):
    return await tracker.skip_item(caller, to_object_id(item_id, "progress item"), data or SkipData())


@router.put("/{item_id}/draft", response_model=ActivityProgress, summary="Enregistrer un brouillon")
async def save_draft(caller: CurrentCaller, tracker: Tracker, data: DraftData, item_id: str = Path(...)):
    return await tracker.save_draft(caller, to_object_id(item_id, "progress item"), data)


@router.post(
    "/{item_id}/quiz-attempts",
    response_model=QuizAttemptResult,
    summary="Soumettre une tentative de quiz",
    description="Corrige les réponses, journalise la tentative ; une tentative réussie termine l'élément.",
)
async def submit_quiz_attempt(caller: CurrentCaller, tracker: Tracker, submission: QuizSubmission, item_id: str = Path(...)):
    return await tracker.submit_quiz_attempt(caller, to_object_id(item_id, "progress item"), submission)
