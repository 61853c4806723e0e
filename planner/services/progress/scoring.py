# planner/services/progress/scoring.py
# Règles de score à la complétion, enregistrées par type d'activité.

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional, Protocol

from planner.models.progress import ActivitySnapshot, ItemScoring
from planner.shared.constants import AFFECT_BONUS_POINTS, AFFECT_BONUS_THRESHOLD, TIME_BONUS_POINTS


@dataclass
class ScoringContext:
    """Tout ce qu'une règle peut consulter pour noter une complétion."""
    activity: ActivitySnapshot
    completed_at: dt.datetime
    due_date: dt.datetime
    time_spent: Optional[int] = None
    affect_after: Optional[int] = None
    quiz_score: Optional[float] = None


class ScoringRule(Protocol):
    def score(self, ctx: ScoringContext) -> ItemScoring: ...


class DefaultScoringRule:
    """Barème par défaut.

    Description:
        - base = `points_on_completion`
        - +2 si le temps passé est inférieur à la durée estimée
        - +1 si le ressenti après activité est >= 4 (échelle 1–5)
        - pénalité `penalty_points` si la complétion dépasse l'échéance
        - total = base + bonus - pénalité
    """

    def base(self, ctx: ScoringContext) -> float:
        return ctx.activity.scoring.points_on_completion

    def bonuses(self, ctx: ScoringContext) -> list[tuple[str, float]]:
        bonuses: list[tuple[str, float]] = []
        estimated = ctx.activity.metadata.estimated_duration
        if ctx.time_spent is not None and ctx.time_spent < estimated:
            bonuses.append(("time bonus", TIME_BONUS_POINTS))
        if ctx.affect_after is not None and ctx.affect_after >= AFFECT_BONUS_THRESHOLD:
            bonuses.append(("affect bonus", AFFECT_BONUS_POINTS))
        return bonuses

    def penalty(self, ctx: ScoringContext) -> float:
        if ctx.completed_at > ctx.due_date:
            return ctx.activity.scoring.penalty_points
        return 0.0

    def score(self, ctx: ScoringContext) -> ItemScoring:
        earned = self.base(ctx)
        bonuses = self.bonuses(ctx)
        bonus = sum(points for _, points in bonuses)
        penalty = self.penalty(ctx)

        notes = [f"{label} +{points:g}" for label, points in bonuses]
        if penalty:
            notes.append(f"late penalty -{penalty:g}")
        return ItemScoring(
            points_earned=earned,
            bonus_points=bonus,
            penalty_points=penalty,
            total_points=earned + bonus - penalty,
            feedback="; ".join(notes) or None,
        )


class QuizScoringRule(DefaultScoringRule):
    """Quiz : le bonus de l'activité s'ajoute sur un sans-faute."""

    def bonuses(self, ctx: ScoringContext) -> list[tuple[str, float]]:
        bonuses = super().bonuses(ctx)
        if ctx.quiz_score is not None and ctx.quiz_score >= 100 and ctx.activity.scoring.bonus_points:
            bonuses.append(("perfect quiz", ctx.activity.scoring.bonus_points))
        return bonuses


class ScoringRegistry:
    """Règles par type d'activité, avec repli sur la règle par défaut."""

    def __init__(self, default: Optional[ScoringRule] = None):
        self.default = default or DefaultScoringRule()
        self._rules: dict[str, ScoringRule] = {}

    def register(self, activity_type: str, rule: ScoringRule) -> None:
        self._rules[activity_type] = rule

    def rule_for(self, activity_type: str) -> ScoringRule:
        return self._rules.get(activity_type, self.default)

    def score(self, ctx: ScoringContext) -> ItemScoring:
        return self.rule_for(ctx.activity.config.type).score(ctx)


def default_registry() -> ScoringRegistry:
    registry = ScoringRegistry()
    registry.register("quiz", QuizScoringRule())
    return registry
