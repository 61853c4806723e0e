"""Shared fixtures: in-memory Mongo, fixed clock, services and template builders."""

import datetime as dt
import os
import tempfile

# logs et secrets de test, avant tout import de `planner`
os.environ.setdefault("LOGS_DIR", tempfile.mkdtemp(prefix="planner-logs-"))
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("MONGODB_TRANSACTIONS", "false")

import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from planner.core.retry import RetryPolicy
from planner.core.security import Caller
from planner.core.settings import get_settings
from planner.db.seed_indexes import ensure_indexes
from planner.models.template import TemplateDefinition
from planner.services.instances.instance_lifecycle import InstanceLifecycle
from planner.services.progress.activity_progress_tracker import ActivityProgressTracker
from planner.services.rollover.weekly_rollover_engine import WeeklyRolloverEngine
from planner.services.snapshots.snapshot_service import SnapshotService
from planner.services.templates.template_catalog import TemplateCatalog

get_settings.cache_clear()

# lundi
MONDAY = dt.datetime(2025, 3, 3, 9, 0)


class FakeClock:
    """Horloge réglable injectée dans les services."""

    def __init__(self, at: dt.datetime):
        self.at = at

    def __call__(self) -> dt.datetime:
        return self.at

    def set(self, at: dt.datetime) -> None:
        self.at = at

    def advance(self, **delta) -> dt.datetime:
        self.at += dt.timedelta(**delta)
        return self.at


def make_definition(
    start_date: dt.date = MONDAY.date(),
    active_days=(1, 3, 5),
    per_day: int = 2,
    config: dict | None = None,
    **overrides,
) -> TemplateDefinition:
    """Gabarit valide : `per_day` activités sur chaque jour actif (30 min estimées)."""
    activities = [
        {
            "day_of_week": day,
            "order_index": index,
            "title": f"Day {day} activity {index}",
            "instructions": "Do it",
            "config": config or {"type": "quick"},
            "scoring": {"points_on_completion": 10, "bonus_points": 5, "penalty_points": 3},
            "metadata": {"estimated_duration": 30, "focus_tags": ["focus"]},
        }
        for day in active_days
        for index in range(per_day)
    ]
    data = {
        "name": "Morning routine",
        "description": "Weekly plan",
        "category": "therapeutic",
        "active_days": list(active_days),
        "start_date": start_date,
        "end_date": start_date + dt.timedelta(weeks=26),
        "activities": activities,
    }
    data.update(overrides)
    return TemplateDefinition.model_validate(data)


QUIZ_CONFIG = {
    "type": "quiz",
    "passing_score": 70,
    "max_attempts": 2,
    "questions": [
        {"id": "q1", "question": "2 + 2 ?", "options": ["3", "4"], "correct_answer": "4", "points": 1},
        {"id": "q2", "question": "Sky is blue", "type": "true_false", "options": ["true", "false"],
         "correct_answer": "true", "points": 1},
    ],
}


@pytest.fixture
def clock():
    return FakeClock(MONDAY)


@pytest_asyncio.fixture
async def db():
    database = AsyncMongoMockClient()["planner_test"]
    await ensure_indexes(database)
    return database


@pytest.fixture
def professional():
    return Caller(id="pro-1", role="professional")


@pytest.fixture
def learner():
    return Caller(id="learner-1", role="learner")


@pytest.fixture
def coordinator():
    return Caller(id="coord-1", role="coordinator")


@pytest.fixture
def retry():
    return RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def catalog(db, clock):
    return TemplateCatalog(db, clock)


@pytest.fixture
def tracker(db, clock):
    return ActivityProgressTracker(db, clock)


@pytest.fixture
def lifecycle(db, clock, tracker):
    return InstanceLifecycle(db, clock, tracker=tracker)


@pytest.fixture
def snapshots(db, clock):
    return SnapshotService(db, clock)


@pytest.fixture
def engine(db, clock, retry, snapshots):
    return WeeklyRolloverEngine(db, clock, retry=retry, snapshots=snapshots)


@pytest.fixture
def assign(catalog, lifecycle, professional, learner):
    """Crée un gabarit puis l'affecte à l'apprenant ; retourne l'id d'instance."""

    async def _assign(definition: TemplateDefinition | None = None, learner_id: str | None = None, **kwargs):
        created = await catalog.create(professional, definition or make_definition())
        result = await lifecycle.assign(
            professional, created.template_id, [learner_id or learner.id], **kwargs
        )
        assert result.failed == []
        return result.successful[0].instance_id

    return _assign
