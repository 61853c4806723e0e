# planner/db/repositories.py
# Accès au store par entité : un dépôt lié à sa collection (lecture, insertion, mises à jour conditionnelles, écritures groupées bornées).

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from planner.core.settings import get_settings
from planner.shared.constants import ACTIVITIES, INSTANCES, PROGRESS, ROLLOVER_RUNS, SNAPSHOTS, TEMPLATES

T = TypeVar("T")


def _session_kw(session) -> dict[str, Any]:
    return {"session": session} if session is not None else {}


def chunked(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    """Découpe `items` en tranches de `size` éléments au plus."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    for start in range(0, len(items), size):
        yield items[start:start + size]


@dataclass
class WriteSummary:
    """Bilan cumulé d'une écriture groupée (éventuellement découpée en plusieurs bulk_write)."""
    upserted: int = 0
    matched: int = 0
    modified: int = 0
    inserted: int = 0
    chunks: int = 0


class Repository:
    """Dépôt d'une collection.

    Description:
        Lié à son nom de collection à la construction. Les écritures groupées sont
        découpées au plafond `max_atomic_writes` du store.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str, *, max_atomic_writes: Optional[int] = None):
        self.db = db
        self.collection_name = collection_name
        self.collection = db[collection_name]
        self.max_atomic_writes = max_atomic_writes or get_settings().max_atomic_writes

    async def get(self, doc_id: ObjectId, *, session=None) -> Optional[dict]:
        return await self.collection.find_one({"_id": doc_id}, **_session_kw(session))

    async def find_one(self, query: dict, *, session=None) -> Optional[dict]:
        return await self.collection.find_one(query, **_session_kw(session))

    async def find(
        self,
        query: dict,
        *,
        projection: Optional[dict] = None,
        sort: Optional[list[tuple[str, int]]] = None,
        limit: int = 0,
        session=None,
    ) -> list[dict]:
        cursor = self.collection.find(query, projection, sort=sort, limit=limit, **_session_kw(session))
        return [doc async for doc in cursor]

    async def count(self, query: dict, *, session=None) -> int:
        return await self.collection.count_documents(query, **_session_kw(session))

    async def insert(self, doc: dict, *, session=None) -> ObjectId:
        result = await self.collection.insert_one(doc, **_session_kw(session))
        return result.inserted_id

    async def delete_many(self, query: dict, *, session=None) -> int:
        result = await self.collection.delete_many(query, **_session_kw(session))
        return result.deleted_count

    async def update_fields(
        self,
        doc_id: ObjectId,
        fields: dict,
        *,
        expected: Optional[dict] = None,
        push: Optional[dict] = None,
        session=None,
    ) -> Optional[dict]:
        """Mise à jour conditionnelle d'un document.

        Description:
            Applique `$set: fields` (et `$push` éventuel) seulement si le document
            correspond encore à `expected` (compare-and-set).

        Returns:
            dict | None: Document après mise à jour, ou None si rien ne correspondait.
        """
        query = {"_id": doc_id, **(expected or {})}
        update: dict[str, Any] = {}
        if fields:
            update["$set"] = fields
        if push:
            update["$push"] = push
        return await self.collection.find_one_and_update(
            query,
            update,
            return_document=ReturnDocument.AFTER,
            **_session_kw(session),
        )

    async def write_many(self, operations: Sequence[Any], *, ordered: bool = False, session=None) -> WriteSummary:
        """Exécute des opérations pymongo (UpdateOne, InsertOne...) par tranches bornées."""
        summary = WriteSummary()
        for chunk in chunked(list(operations), self.max_atomic_writes):
            result = await self.collection.bulk_write(list(chunk), ordered=ordered, **_session_kw(session))
            summary.upserted += result.upserted_count
            summary.matched += result.matched_count
            summary.modified += result.modified_count
            summary.inserted += result.inserted_count
            summary.chunks += 1
        return summary


class Repositories:
    """Dépôts de toutes les entités, partagés par les services d'une même requête."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.templates = Repository(db, TEMPLATES)
        self.activities = Repository(db, ACTIVITIES)
        self.instances = Repository(db, INSTANCES)
        self.progress = Repository(db, PROGRESS)
        self.snapshots = Repository(db, SNAPSHOTS)
        self.runs = Repository(db, ROLLOVER_RUNS)


async def run_atomic(
    db: AsyncIOMotorDatabase,
    work: Callable[[Any], Awaitable[T]],
    *,
    use_transactions: Optional[bool] = None,
) -> T:
    """Exécute `work(session)` dans une transaction MongoDB si activée, sinon sans session.

    Description:
        Sans transaction, `work` doit lui-même ordonner ses écritures pour que l'état
        reste cohérent en cas d'interruption (écritures idempotentes d'abord,
        compare-and-set en dernier).
    """
    if use_transactions is None:
        use_transactions = get_settings().mongodb_transactions
    if not use_transactions:
        return await work(None)
    async with await db.client.start_session() as session:
        async with session.start_transaction():
            return await work(session)
