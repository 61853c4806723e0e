# planner/db/mongodb.py
# Client MongoDB (motor) construit depuis les settings et accès à la base.

from functools import lru_cache

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from planner.core.settings import get_settings


@lru_cache
def get_client() -> AsyncIOMotorClient:
    """Client motor unique (la connexion réelle est établie au premier appel réseau)."""
    settings = get_settings()
    return AsyncIOMotorClient(settings.mongodb_uri, tz_aware=False)


def get_db() -> AsyncIOMotorDatabase:
    """Base applicative ; sert aussi de dépendance FastAPI (surchargée dans les tests)."""
    return get_client()[get_settings().mongodb_db]


async def ping(db: AsyncIOMotorDatabase | None = None) -> bool:
    """Vrai si le serveur répond à `ping`."""
    database = db if db is not None else get_db()
    result = await database.command("ping")
    return bool(result.get("ok"))
