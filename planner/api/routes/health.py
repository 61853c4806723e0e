# planner/api/routes/health.py
# Health check : statut de l'API et de MongoDB.

from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from planner.api.deps import Database
from planner.core.logging_config import get_loggers
from planner.core.settings import get_settings

router = APIRouter(tags=["Health"])


class HealthCheck(BaseModel):
    status: str
    timestamp: datetime
    version: str
    checks: dict[str, str]


@router.get(
    "/health",
    response_model=HealthCheck,
    summary="Health check de l'API",
    description="Retourne le statut de l'API et de MongoDB (200 si tout va bien, 503 sinon).",
)
async def health(db: Database) -> JSONResponse:
    settings = get_settings()
    try:
        result = await db.command("ping")
        database = "ok" if result.get("ok") else "error"
    except Exception as exc:
        _, error_logger, _ = get_loggers()
        error_logger.error("Health check: MongoDB unreachable: %s", exc)
        database = "error"

    checks = {"database": database}
    has_errors = any(check != "ok" for check in checks.values())
    response = HealthCheck(
        status="degraded" if has_errors else "ok",
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        checks=checks,
    )
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE if has_errors else status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))
