# planner/services/snapshots/insight_generator.py
# Insights à base de règles (forces, difficultés, recommandations) et point d'extension pour un enrichissement optionnel.

from __future__ import annotations

import datetime as dt
from typing import Protocol

from planner.models.snapshot import Insights

from .snapshot_aggregator import WeekAggregate

COMPLETION_HIGH = 80.0
COMPLETION_LOW = 50.0
CONSISTENCY_HIGH = 70.0
CONSISTENCY_LOW = 50.0
SCORE_HIGH = 8.0
SCORE_LOW = 5.0
ADHERENCE_HIGH = 80.0


class InsightEnricher(Protocol):
    """Enrichissement best-effort : reçoit les insights calculés et peut en ajouter."""

    async def enrich(self, aggregate: WeekAggregate, insights: Insights) -> Insights: ...


def generate_insights(aggregate: WeekAggregate, generated_at: dt.datetime) -> Insights:
    """Appliquer les règles de seuils aux métriques de la semaine.

    Description:
        - complétion >= 80 : force ; <= 50 : difficulté + découper les activités
        - consistance >= 70 : force ; < 50 : difficulté + répartir sur la semaine
        - score moyen >= 8 : force ; <= 5 : difficulté (si au moins une complétion)
        - adhérence >= 80 : force
        - par type d'activité : mêmes seuils de score
        - période préférée : recommandation
    """
    m = aggregate.metrics
    insights = Insights(generated_at=generated_at)

    if m.completion_rate >= COMPLETION_HIGH:
        insights.strengths.append("High activity completion rate")
        insights.recommendations.append("Keep up the excellent engagement!")
    elif m.completion_rate <= COMPLETION_LOW:
        insights.challenges.append("Low activity completion rate")
        insights.recommendations.append("Try splitting activities into smaller steps")

    if m.consistency_score >= CONSISTENCY_HIGH:
        insights.strengths.append("Good consistency throughout the week")
    elif m.consistency_score < CONSISTENCY_LOW:
        insights.challenges.append("Activities concentrated on few days of the week")
        insights.recommendations.append("Try to distribute activities across the week")

    if m.completed > 0:
        if m.average_score >= SCORE_HIGH:
            insights.strengths.append("High average score")
        elif m.average_score <= SCORE_LOW:
            insights.challenges.append("Low average score")

    if m.completed > 0 and m.adherence_score >= ADHERENCE_HIGH:
        insights.strengths.append("Activities completed on their scheduled day")

    for breakdown in aggregate.types:
        if breakdown.completed == 0:
            continue
        if breakdown.average_score >= SCORE_HIGH:
            insights.strengths.append(f"Good performance on {breakdown.type} activities")
        elif breakdown.average_score <= SCORE_LOW:
            insights.challenges.append(f"Difficulty with {breakdown.type} activities")
            insights.recommendations.append(f"Practice more {breakdown.type} activities")

    if aggregate.preferred_period:
        insights.recommendations.append(f"You are most productive in the {aggregate.preferred_period}")

    return insights
