# planner/models/progress.py
# Élément de travail d'une semaine (ActivityProgress) : copie figée de l'activité, statut, exécution, score, tentatives de quiz.

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from planner.core.bson_utils import MongoBaseModel, PyObjectId
from planner.core.utils import now
from planner.models.activity import ActivityDefinition

ItemStatus = Literal["pending", "in_progress", "completed", "skipped"]


class ActivitySnapshot(ActivityDefinition):
    """Copie figée de l'activité au moment de la matérialisation.

    Description:
        Les éditions ultérieures du gabarit créent une nouvelle version et ne touchent
        jamais cette copie ; les instructions personnalisées y sont déjà appliquées.
    """
    activity_id: PyObjectId
    template_id: PyObjectId

    model_config = ConfigDict(arbitrary_types_allowed=True)


class Affect(BaseModel):
    before: Optional[int] = Field(default=None, ge=1, le=5)
    after: Optional[int] = Field(default=None, ge=1, le=5)


class ExecutionData(BaseModel):
    time_spent: Optional[int] = None  # minutes
    submission: Any = None
    affect: Affect = Field(default_factory=Affect)
    notes: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)
    skip_reason: Optional[str] = None
    draft: Any = None
    last_saved_at: Optional[dt.datetime] = None


class ItemScoring(BaseModel):
    points_earned: float = 0.0
    bonus_points: float = 0.0
    penalty_points: float = 0.0
    total_points: float = 0.0
    feedback: Optional[str] = None


class QuizAttempt(BaseModel):
    attempt_number: int
    started_at: dt.datetime
    completed_at: dt.datetime
    score: float
    passed: bool
    answers: Dict[str, Any] = Field(default_factory=dict)


class ActivityProgress(MongoBaseModel):
    """Document Mongo « ActivityProgress ».

    Description:
        Unique par (instance_id, week_number, activity_id). Créé en lot à la
        matérialisation d'une semaine, muté par l'apprenant, jamais supprimé.
    """
    instance_id: PyObjectId
    activity_id: PyObjectId
    learner_id: str
    week_number: int
    day_of_week: int
    activity_snapshot: ActivitySnapshot
    status: ItemStatus = "pending"
    scheduled_date: dt.datetime
    due_date: dt.datetime
    started_at: Optional[dt.datetime] = None
    completed_at: Optional[dt.datetime] = None
    skipped_at: Optional[dt.datetime] = None
    execution_data: ExecutionData = Field(default_factory=ExecutionData)
    scoring: ItemScoring = Field(default_factory=ItemScoring)
    attempts: List[QuizAttempt] = Field(default_factory=list)
    created_at: dt.datetime = Field(default_factory=lambda: now())
    updated_at: Optional[dt.datetime] = None

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    @property
    def activity_type(self) -> str:
        return self.activity_snapshot.config.type


# --- payloads des actions apprenant ---

class CompletionData(BaseModel):
    time_spent: Optional[int] = Field(default=None, ge=0)
    submission: Any = None
    affect: Affect = Field(default_factory=Affect)
    notes: Optional[str] = None
    attachments: List[str] = Field(default_factory=list)


class SkipData(BaseModel):
    reason: Optional[str] = None


class DraftData(BaseModel):
    draft: Any = None


class QuizSubmission(BaseModel):
    answers: Dict[str, Any] = Field(default_factory=dict)
    time_spent: Optional[int] = Field(default=None, ge=0)
    affect: Affect = Field(default_factory=Affect)


class QuizAttemptResult(BaseModel):
    attempt_number: int
    score: float
    correct_answers: int
    total_questions: int
    passed: bool
    attempts_left: Optional[int] = None
    item: ActivityProgress
