# planner/models/activity.py
# Activité d'un gabarit : configuration typée par `type` (union discriminée), barème et métadonnées.

from __future__ import annotations

import datetime as dt
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from planner.core.bson_utils import MongoBaseModel, PyObjectId
from planner.core.utils import now
from planner.shared.constants import DEFAULT_PASSING_SCORE

ActivityType = Literal["quick", "text", "quiz", "video", "checklist", "file"]


class QuickConfig(BaseModel):
    type: Literal["quick"] = "quick"
    requires_confirmation: bool = False


class TextConfig(BaseModel):
    type: Literal["text"] = "text"
    min_words: int = 0
    max_words: Optional[int] = None
    format: Literal["plain", "markdown"] = "plain"


class QuizQuestion(BaseModel):
    """Question de quiz.

    Attributes:
        id (str): Identifiant stable (clé des réponses).
        question (str): Énoncé.
        type: multiple_choice | true_false | short_answer.
        options (list[str]): Choix proposés (questions à choix).
        correct_answer (str | list[str]): Bonne(s) réponse(s).
        points (float): Points de la question (> 0).
    """
    id: str
    question: str
    type: Literal["multiple_choice", "true_false", "short_answer"] = "multiple_choice"
    options: List[str] = Field(default_factory=list)
    correct_answer: Union[str, List[str]]
    points: float = 1.0


class QuizConfig(BaseModel):
    type: Literal["quiz"] = "quiz"
    questions: List[QuizQuestion] = Field(default_factory=list)
    passing_score: float = DEFAULT_PASSING_SCORE
    max_attempts: Optional[int] = None  # None = illimité


class VideoConfig(BaseModel):
    type: Literal["video"] = "video"
    url: str
    provider: Literal["youtube", "vimeo", "custom"] = "custom"
    require_watch_percentage: float = 80.0


class ChecklistItem(BaseModel):
    id: str
    label: str
    required: bool = True


class ChecklistConfig(BaseModel):
    type: Literal["checklist"] = "checklist"
    items: List[ChecklistItem] = Field(default_factory=list)


class FileConfig(BaseModel):
    type: Literal["file"] = "file"
    allowed_types: List[str] = Field(default_factory=list)
    max_size_mb: float = 10.0
    max_files: int = 1


ActivityConfig = Annotated[
    Union[QuickConfig, TextConfig, QuizConfig, VideoConfig, ChecklistConfig, FileConfig],
    Field(discriminator="type"),
]


class ActivityScoring(BaseModel):
    is_required: bool = True
    points_on_completion: float = 10.0
    bonus_points: float = 0.0
    penalty_points: float = 0.0


class ActivityMetadata(BaseModel):
    estimated_duration: int = 15  # minutes
    difficulty: Literal["easy", "medium", "hard"] = "medium"
    focus_tags: List[str] = Field(default_factory=list)


class ActivityDefinition(BaseModel):
    """Définition d'une activité telle que saisie par l'auteur du gabarit.

    Description:
        Les bornes métier (jour dans les jours actifs, ordre unique par jour, durée > 0...)
        sont contrôlées par le validateur de gabarit, qui liste toutes les violations.
    """
    day_of_week: int
    order_index: int = 0
    title: str
    description: str = ""
    instructions: str = ""
    config: ActivityConfig
    scoring: ActivityScoring = Field(default_factory=ActivityScoring)
    metadata: ActivityMetadata = Field(default_factory=ActivityMetadata)

    @property
    def type(self) -> ActivityType:
        return self.config.type


class ScheduleActivity(MongoBaseModel, ActivityDefinition):
    """Document Mongo « ScheduleActivity » (activité rattachée à une version de gabarit)."""
    template_id: PyObjectId
    created_at: dt.datetime = Field(default_factory=lambda: now())

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)
