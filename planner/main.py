# planner/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI

from planner.api.routes import routers
from planner.core.exception_handlers import register_exception_handlers
from planner.core.logging_config import get_loggers
from planner.core.settings import get_settings
from planner.db.mongodb import get_client, get_db
from planner.db.seed_indexes import ensure_indexes

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- startup ---
    logger, _, _ = get_loggers()
    await ensure_indexes(get_db())
    logger.info("%s %s started (%s)", settings.app_name, settings.app_version, settings.environment)

    yield  # l'app tourne ici

    # --- shutdown ---
    get_client().close()


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
register_exception_handlers(app)

for r in routers:
    app.include_router(r)
