# planner/services/snapshots/snapshot_aggregator.py
# Agrégation pure des éléments d'une semaine : métriques, ventilation par jour et par type d'activité.

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional

from planner.core.utils import DAYS_PER_WEEK, same_day
from planner.models.progress import ActivityProgress
from planner.models.snapshot import DailyBreakdown, SnapshotMetrics, TypeBreakdown

# tranches horaires (heure de début incluse) pour la période préférée
PERIODS = (("night", 0), ("morning", 5), ("afternoon", 12), ("evening", 18), ("night", 22))


@dataclass
class WeekAggregate:
    metrics: SnapshotMetrics
    daily: list[DailyBreakdown]
    types: list[TypeBreakdown]
    preferred_period: Optional[str] = None
    period_counts: dict[str, int] = field(default_factory=dict)


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def _average(total: float, count: int) -> float:
    return round(total / count, 2) if count else 0.0


def _points(item: ActivityProgress) -> float:
    return item.scoring.total_points


def _time(item: ActivityProgress) -> int:
    return item.execution_data.time_spent or 0


def period_of(hour: int) -> str:
    label = PERIODS[0][0]
    for name, start in PERIODS:
        if hour >= start:
            label = name
    return label


def aggregate_week(items: Iterable[ActivityProgress], *, streak: int = 0) -> WeekAggregate:
    """Calculer les métriques d'une semaine.

    Description:
        - Taux de complétion, points, score moyen et temps moyen (sur les éléments terminés)
        - Mêmes compteurs et moyennes par jour (0–6) et par type d'activité
        - Consistance : jours (0–6) ayant au moins une complétion / 7
        - Adhérence : part des complétions faites le jour calendaire planifié
        - Meilleur / pire jour par taux local ; le pire ne considère que les jours ayant des éléments
        - Période préférée : tranche horaire la plus fréquente des démarrages

    Args:
        items: Éléments de la semaine.
        streak: Série en fin de semaine (reportée telle quelle).

    Returns:
        WeekAggregate: Métriques et ventilations.
    """
    items = list(items)
    completed = [i for i in items if i.status == "completed"]
    skipped = [i for i in items if i.status == "skipped"]

    total_points = sum(_points(i) for i in completed)
    total_time = sum(_time(i) for i in completed)
    on_schedule = sum(1 for i in completed if same_day(i.completed_at, i.scheduled_date))

    daily: list[DailyBreakdown] = []
    for day in range(DAYS_PER_WEEK):
        day_items = [i for i in items if i.day_of_week == day]
        day_done = [i for i in day_items if i.status == "completed"]
        daily.append(
            DailyBreakdown(
                day_of_week=day,
                total=len(day_items),
                completed=len(day_done),
                skipped=sum(1 for i in day_items if i.status == "skipped"),
                completion_rate=_rate(len(day_done), len(day_items)),
                points=sum(_points(i) for i in day_done),
                average_score=_average(sum(_points(i) for i in day_done), len(day_done)),
                time_spent=sum(_time(i) for i in day_done),
                average_time=_average(sum(_time(i) for i in day_done), len(day_done)),
            )
        )

    days_with_items = [d for d in daily if d.total > 0]
    best_day = worst_day = None
    if days_with_items:
        best = max(days_with_items, key=lambda d: d.completion_rate)
        worst = min(days_with_items, key=lambda d: d.completion_rate)
        best_day = best.day_of_week if best.completion_rate > 0 else None
        worst_day = worst.day_of_week

    types: list[TypeBreakdown] = []
    for activity_type in dict.fromkeys(i.activity_type for i in items):
        type_items = [i for i in items if i.activity_type == activity_type]
        type_done = [i for i in type_items if i.status == "completed"]
        types.append(
            TypeBreakdown(
                type=activity_type,
                total=len(type_items),
                completed=len(type_done),
                completion_rate=_rate(len(type_done), len(type_items)),
                average_score=_average(sum(_points(i) for i in type_done), len(type_done)),
                total_time=sum(_time(i) for i in type_done),
                average_time=_average(sum(_time(i) for i in type_done), len(type_done)),
            )
        )

    periods = Counter(period_of(i.started_at.hour) for i in items if i.started_at is not None)
    preferred = periods.most_common(1)[0][0] if periods else None

    metrics = SnapshotMetrics(
        total=len(items),
        completed=len(completed),
        skipped=len(skipped),
        completion_rate=_rate(len(completed), len(items)),
        total_points=total_points,
        average_score=_average(total_points, len(completed)),
        total_time_spent=total_time,
        average_time=_average(total_time, len(completed)),
        consistency_score=_rate(sum(1 for d in daily if d.completed > 0), DAYS_PER_WEEK),
        adherence_score=_rate(on_schedule, len(completed)),
        streak_at_end_of_week=streak,
        best_day=best_day,
        worst_day=worst_day,
    )
    return WeekAggregate(
        metrics=metrics,
        daily=daily,
        types=types,
        preferred_period=preferred,
        period_counts=dict(periods),
    )
