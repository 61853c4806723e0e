# planner/models/_shared.py
# Types communs à plusieurs modèles (cache de progression d'une instance).

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from planner.core.utils import now


class ProgressCache(BaseModel):
    """Cache de progression d'une instance.

    Description:
        Valeurs dérivées des ActivityProgress de l'instance ; recalculées (jamais
        patchées) après chaque mutation. Les champs « semaine » portent sur la semaine
        courante, les champs « lifetime » sur toute la durée de l'instance.

    Attributes:
        total_activities (int): Éléments de la semaine courante.
        completed_activities (int): Éléments terminés dans la semaine courante.
        completion_percentage (float): 0–100.
        week_points (float): Points gagnés dans la semaine courante.
        streak_days (int): Jours consécutifs (jusqu'à aujourd'hui) avec au moins une complétion.
        lifetime_completed (int): Total des complétions.
        lifetime_points (float): Total des points.
        last_updated_at (datetime | None): Dernier recalcul.
    """
    total_activities: int = 0
    completed_activities: int = 0
    completion_percentage: float = 0.0
    week_points: float = 0.0
    streak_days: int = 0
    lifetime_completed: int = 0
    lifetime_points: float = 0.0
    last_updated_at: Optional[dt.datetime] = Field(default_factory=lambda: now())

    model_config = ConfigDict(populate_by_name=True)

    def for_new_week(self, total_activities: int, at: dt.datetime) -> "ProgressCache":
        """Cache de départ d'une nouvelle semaine : compteurs hebdo à zéro, streak et lifetime conservés."""
        return self.model_copy(
            update={
                "total_activities": total_activities,
                "completed_activities": 0,
                "completion_percentage": 0.0,
                "week_points": 0.0,
                "last_updated_at": at,
            }
        )
