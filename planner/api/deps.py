# planner/api/deps.py
# Dépendances FastAPI : base MongoDB et services construits par requête.

from typing import Annotated

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorDatabase

from planner.db.mongodb import get_db
from planner.services.instances.instance_lifecycle import InstanceLifecycle
from planner.services.progress.activity_progress_tracker import ActivityProgressTracker
from planner.services.rollover.weekly_rollover_engine import WeeklyRolloverEngine
from planner.services.snapshots.snapshot_service import SnapshotService
from planner.services.templates.template_catalog import TemplateCatalog

Database = Annotated[AsyncIOMotorDatabase, Depends(get_db)]


def get_template_catalog(db: Database) -> TemplateCatalog:
    return TemplateCatalog(db)


def get_instance_lifecycle(db: Database) -> InstanceLifecycle:
    return InstanceLifecycle(db)


def get_progress_tracker(db: Database) -> ActivityProgressTracker:
    return ActivityProgressTracker(db)


def get_snapshot_service(db: Database) -> SnapshotService:
    return SnapshotService(db)


def get_rollover_engine(db: Database) -> WeeklyRolloverEngine:
    return WeeklyRolloverEngine(db)


Catalog = Annotated[TemplateCatalog, Depends(get_template_catalog)]
Lifecycle = Annotated[InstanceLifecycle, Depends(get_instance_lifecycle)]
Tracker = Annotated[ActivityProgressTracker, Depends(get_progress_tracker)]
Snapshots = Annotated[SnapshotService, Depends(get_snapshot_service)]
Rollover = Annotated[WeeklyRolloverEngine, Depends(get_rollover_engine)]
