# planner/services/templates/template_validator.py
# Assainissement et validation complète d'une définition de gabarit (toutes les violations sont collectées).

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from urllib.parse import urlparse

from planner.models.activity import (
    ActivityDefinition,
    ChecklistConfig,
    FileConfig,
    QuizConfig,
    TextConfig,
    VideoConfig,
)
from planner.models.template import TemplateDefinition, TemplateMetadata
from planner.shared.constants import DEFAULT_TEMPLATE_WEEKS, MIN_TEMPLATE_NAME_LENGTH

CHOICE_QUESTION_TYPES = ("multiple_choice", "true_false")


def _clean_tags(tags: list[str]) -> list[str]:
    seen: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def sanitize_definition(definition: TemplateDefinition) -> TemplateDefinition:
    """Normaliser une définition avant validation.

    Description:
        - Chaînes rognées (nom, description, titres, instructions)
        - Jours actifs dédoublonnés et triés
        - Date de fin par défaut : début + 4 semaines
        - Tags rognés et dédoublonnés

    Returns:
        TemplateDefinition: Nouvelle définition (l'entrée n'est pas modifiée).
    """
    activities = [
        activity.model_copy(
            update={
                "title": activity.title.strip(),
                "description": activity.description.strip(),
                "instructions": activity.instructions.strip(),
            }
        )
        for activity in definition.activities
    ]
    end_date = definition.end_date
    if end_date is None:
        end_date = definition.start_date + dt.timedelta(weeks=DEFAULT_TEMPLATE_WEEKS)

    return definition.model_copy(
        update={
            "name": definition.name.strip(),
            "description": definition.description.strip(),
            "active_days": sorted(set(definition.active_days)),
            "end_date": end_date,
            "tags": _clean_tags(definition.tags),
            "activities": activities,
        }
    )


def _validate_config(activity: ActivityDefinition, label: str) -> list[str]:
    errors: list[str] = []
    config = activity.config

    if isinstance(config, TextConfig):
        if config.min_words < 0:
            errors.append(f"{label}: min_words must be >= 0")
        if config.max_words is not None and config.max_words < config.min_words:
            errors.append(f"{label}: max_words must be >= min_words")

    elif isinstance(config, QuizConfig):
        if not config.questions:
            errors.append(f"{label}: quiz needs at least one question")
        if not 0 <= config.passing_score <= 100:
            errors.append(f"{label}: passing_score must be between 0 and 100")
        if config.max_attempts is not None and config.max_attempts < 1:
            errors.append(f"{label}: max_attempts must be >= 1")
        for q_index, question in enumerate(config.questions, start=1):
            q_label = f"{label}, question {q_index}"
            if not question.question.strip():
                errors.append(f"{q_label}: question text is required")
            if question.points <= 0:
                errors.append(f"{q_label}: points must be > 0")
            if question.type in CHOICE_QUESTION_TYPES:
                if not question.options:
                    errors.append(f"{q_label}: choice question needs options")
                else:
                    expected = question.correct_answer
                    expected = expected if isinstance(expected, list) else [expected]
                    if not expected or any(answer not in question.options for answer in expected):
                        errors.append(f"{q_label}: correct answer must be one of the options")

    elif isinstance(config, VideoConfig):
        parsed = urlparse(config.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            errors.append(f"{label}: video url must be an http(s) URL")
        if not 0 <= config.require_watch_percentage <= 100:
            errors.append(f"{label}: require_watch_percentage must be between 0 and 100")

    elif isinstance(config, ChecklistConfig):
        if not config.items:
            errors.append(f"{label}: checklist needs at least one item")
        ids = [item.id for item in config.items]
        if len(ids) != len(set(ids)):
            errors.append(f"{label}: checklist item ids must be unique")

    elif isinstance(config, FileConfig):
        if not config.allowed_types:
            errors.append(f"{label}: allowed_types must not be empty")
        if config.max_size_mb <= 0:
            errors.append(f"{label}: max_size_mb must be > 0")
        if config.max_files < 1:
            errors.append(f"{label}: max_files must be >= 1")

    return errors


def validate_definition(
    definition: TemplateDefinition,
    *,
    today: dt.date,
    check_start_date: bool = True,
) -> list[str]:
    """Valider une définition (déjà assainie).

    Args:
        definition: Définition à contrôler.
        today: Date de référence pour « début dans le passé ».
        check_start_date: Contrôler que le début n'est pas passé (création uniquement).

    Returns:
        list[str]: Toutes les violations ; vide si la définition est valide.
    """
    errors: list[str] = []

    if len(definition.name) < MIN_TEMPLATE_NAME_LENGTH:
        errors.append(f"name must be at least {MIN_TEMPLATE_NAME_LENGTH} characters")

    if check_start_date and definition.start_date < today:
        errors.append("start_date cannot be in the past")

    if definition.end_date is not None and definition.end_date <= definition.start_date:
        errors.append("end_date must be after start_date")

    if not definition.active_days:
        errors.append("at least one active day is required")
    if any(day < 0 or day > 6 for day in definition.active_days):
        errors.append("active days must be between 0 (Monday) and 6 (Sunday)")

    max_repetitions = definition.repeat_rules.max_repetitions
    if max_repetitions is not None and max_repetitions < 1:
        errors.append("max_repetitions must be >= 1")

    if not definition.activities:
        errors.append("at least one activity is required")

    orders_by_day: dict[int, list[int]] = defaultdict(list)
    for index, activity in enumerate(definition.activities, start=1):
        label = f"activity {index}"
        if not activity.title:
            errors.append(f"{label}: title is required")
        if activity.day_of_week < 0 or activity.day_of_week > 6:
            errors.append(f"{label}: invalid day_of_week {activity.day_of_week}")
        elif activity.day_of_week not in definition.active_days:
            errors.append(f"{label}: day {activity.day_of_week} is not an active day")
        if activity.order_index in orders_by_day[activity.day_of_week]:
            errors.append(f"{label}: order_index {activity.order_index} already used on day {activity.day_of_week}")
        orders_by_day[activity.day_of_week].append(activity.order_index)
        if activity.metadata.estimated_duration <= 0:
            errors.append(f"{label}: estimated_duration must be > 0")
        scoring = activity.scoring
        if min(scoring.points_on_completion, scoring.bonus_points, scoring.penalty_points) < 0:
            errors.append(f"{label}: points cannot be negative")
        errors.extend(_validate_config(activity, label))

    return errors


def compute_metadata(definition: TemplateDefinition, version: int = 1) -> TemplateMetadata:
    """Métadonnées dérivées : nombre d'activités, minutes hebdomadaires estimées, tags."""
    tags = list(definition.tags)
    for activity in definition.activities:
        for tag in activity.metadata.focus_tags:
            tag = tag.strip()
            if tag and tag not in tags:
                tags.append(tag)
    return TemplateMetadata(
        version=version,
        total_activities=len(definition.activities),
        estimated_weekly_minutes=sum(a.metadata.estimated_duration for a in definition.activities),
        tags=tags,
    )
