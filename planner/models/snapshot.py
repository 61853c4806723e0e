# planner/models/snapshot.py
# Bilan hebdomadaire figé (WeeklySnapshot) : métriques, ventilations par jour / par type, insights.

from __future__ import annotations

import datetime as dt
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from planner.core.bson_utils import MongoBaseModel, PyObjectId
from planner.core.utils import now


class SnapshotMetrics(BaseModel):
    total: int = 0
    completed: int = 0
    skipped: int = 0
    completion_rate: float = 0.0
    total_points: float = 0.0
    average_score: float = 0.0
    total_time_spent: int = 0
    average_time: float = 0.0
    consistency_score: float = 0.0
    adherence_score: float = 0.0
    streak_at_end_of_week: int = 0
    best_day: Optional[int] = None
    worst_day: Optional[int] = None


class DailyBreakdown(BaseModel):
    day_of_week: int
    total: int = 0
    completed: int = 0
    skipped: int = 0
    completion_rate: float = 0.0
    points: float = 0.0
    average_score: float = 0.0
    time_spent: int = 0
    average_time: float = 0.0


class TypeBreakdown(BaseModel):
    type: str
    total: int = 0
    completed: int = 0
    completion_rate: float = 0.0
    average_score: float = 0.0
    total_time: int = 0
    average_time: float = 0.0


class Insights(BaseModel):
    strengths: List[str] = Field(default_factory=list)
    challenges: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    generated_at: dt.datetime = Field(default_factory=lambda: now())


class WeeklySnapshot(MongoBaseModel):
    """Document Mongo « WeeklySnapshot ».

    Description:
        Un seul par (instance_id, week_number) ; jamais écrasé sans `force_regenerate`.
    """
    instance_id: PyObjectId
    learner_id: str
    template_id: PyObjectId
    week_number: int
    week_start_date: dt.datetime
    week_end_date: dt.datetime
    metrics: SnapshotMetrics = Field(default_factory=SnapshotMetrics)
    daily_breakdown: List[DailyBreakdown] = Field(default_factory=list)
    activity_type_breakdown: List[TypeBreakdown] = Field(default_factory=list)
    insights: Insights = Field(default_factory=Insights)
    generated_by: Literal["system", "manual"] = "system"
    created_at: dt.datetime = Field(default_factory=lambda: now())
    regenerated_at: Optional[dt.datetime] = None

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)


class SnapshotFilters(BaseModel):
    instance_id: Optional[PyObjectId] = None
    week_from: Optional[int] = None
    week_to: Optional[int] = None
    limit: int = Field(default=20, ge=1, le=200)

    model_config = ConfigDict(arbitrary_types_allowed=True)
