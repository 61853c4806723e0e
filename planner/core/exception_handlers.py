# planner/core/exception_handlers.py
# Gestionnaires d'exceptions globaux : erreurs métier -> statut HTTP + enveloppe `ErrorResponse`.

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from planner.api.dto.response_format import ErrorResponse
from planner.core.errors import ConflictError, NotFoundError, StateError, ValidationError
from planner.core.logging_config import get_loggers

STATUS_BY_ERROR: list[tuple[type[BaseException], int]] = [
    (ValidationError, 422),
    (NotFoundError, 404),
    (PermissionError, 403),
    (ConflictError, 409),
    (StateError, 409),
]


def register_exception_handlers(app: FastAPI):
    """Enregistre les gestionnaires d'exceptions globaux pour standardiser les réponses."""

    def _domain_handler(status_code: int):
        async def handler(request: Request, exc: Exception):
            return JSONResponse(
                status_code=status_code,
                content=ErrorResponse.from_exception(exc).model_dump(),
            )

        return handler

    for exc_class, status_code in STATUS_BY_ERROR:
        app.add_exception_handler(exc_class, _domain_handler(status_code))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse.from_detail(
                {"code": f"HTTP_{exc.status_code}", "message": exc.detail}
            ).model_dump(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Erreurs de validation Pydantic (payload mal formé)."""
        errors = [
            {
                "field": " -> ".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=ErrorResponse.from_detail(
                {"code": "VALIDATION_ERROR", "message": "Validation failed", "details": errors}
            ).model_dump(),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        _, error_logger, _ = get_loggers()
        error_logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse.from_detail(
                {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"}
            ).model_dump(),
        )
