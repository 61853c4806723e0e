# planner/db/seed_indexes.py
"""
Idempotent index seeding for the weekly planner.

- Matching by KEYS: if an index with the same keys exists, keep it when options match.
- If options differ (unique / partialFilterExpression), drop & recreate.
- The two uniqueness guarantees of the domain live here:
  one progress item per (instance, week, activity), one snapshot per (instance, week).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple, Union

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.operations import IndexModel

from planner.shared.constants import ACTIVITIES, INSTANCES, PROGRESS, ROLLOVER_RUNS, SNAPSHOTS, TEMPLATES

Direction = Union[int, str]
KeySpec = List[Tuple[str, Direction]]


def _normalize_key(key: Any) -> KeySpec:
    """index_information() returns keys as a list of pairs; list_indexes() as a mapping."""
    pairs = key.items() if isinstance(key, dict) else key
    norm: KeySpec = []
    for k, v in pairs:
        norm.append((k, int(v) if isinstance(v, (int, float)) else str(v)))
    return norm


def _same_options(existing: Dict[str, Any], *, unique: Optional[bool], partial: Optional[Dict[str, Any]]) -> bool:
    if bool(unique) != bool(existing.get("unique", False)):
        return False
    return (partial or None) == (existing.get("partialFilterExpression") or None)


async def ensure_index(db: AsyncIOMotorDatabase, coll_name: str, keys: KeySpec, *,
                       name: Optional[str] = None,
                       unique: Optional[bool] = None,
                       partial: Optional[Dict[str, Any]] = None) -> None:
    coll = db[coll_name]
    info = await coll.index_information()
    existing_name = None
    for ix_name, ix in info.items():
        if _normalize_key(ix.get("key", [])) == keys:
            if _same_options(ix, unique=unique, partial=partial):
                return
            existing_name = ix_name
            break
    if existing_name:
        await coll.drop_index(existing_name)
    opts: Dict[str, Any] = {}
    if name:
        opts["name"] = name
    if unique is not None:
        opts["unique"] = unique
    if partial:
        opts["partialFilterExpression"] = partial
    await coll.create_indexes([IndexModel(keys, **opts)])


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    # ---------- schedule_templates ----------
    await ensure_index(db, TEMPLATES, [("owner_id", ASCENDING), ("created_at", DESCENDING)], name="owner_created")
    await ensure_index(db, TEMPLATES, [("root_template_id", ASCENDING), ("metadata.version", DESCENDING)], name="root_version")

    # ---------- schedule_activities ----------
    await ensure_index(db, ACTIVITIES, [("template_id", ASCENDING), ("day_of_week", ASCENDING), ("order_index", ASCENDING)],
                       name="template_day_order")

    # ---------- schedule_instances ----------
    await ensure_index(db, INSTANCES, [("learner_id", ASCENDING), ("status", ASCENDING)], name="learner_status")
    await ensure_index(db, INSTANCES, [("template_id", ASCENDING), ("learner_id", ASCENDING)], name="template_learner")
    # rollover selection
    await ensure_index(db, INSTANCES, [("status", ASCENDING), ("current_week_end_date", ASCENDING)], name="status_week_end")

    # ---------- activity_progress ----------
    await ensure_index(db, PROGRESS, [("instance_id", ASCENDING), ("week_number", ASCENDING), ("activity_id", ASCENDING)],
                       name="uniq_instance_week_activity", unique=True)
    await ensure_index(db, PROGRESS, [("learner_id", ASCENDING), ("scheduled_date", ASCENDING)], name="learner_scheduled")
    await ensure_index(db, PROGRESS, [("instance_id", ASCENDING), ("completed_at", DESCENDING)], name="instance_completed")

    # ---------- weekly_snapshots ----------
    await ensure_index(db, SNAPSHOTS, [("instance_id", ASCENDING), ("week_number", ASCENDING)],
                       name="uniq_instance_week", unique=True)
    await ensure_index(db, SNAPSHOTS, [("learner_id", ASCENDING), ("week_number", DESCENDING)], name="learner_week")

    # ---------- rollover_runs ----------
    await ensure_index(db, ROLLOVER_RUNS, [("finished_at", DESCENDING)], name="finished_desc")
