# planner/core/errors.py
# Taxonomie des erreurs métier. Les refus d'accès utilisent le `PermissionError` natif.

from __future__ import annotations

from typing import Any


class PlannerError(Exception):
    """Erreur métier de base (code stable pour l'API)."""

    code = "PLANNER_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(PlannerError):
    """Payload d'édition invalide : toutes les règles violées sont listées ensemble."""

    code = "VALIDATION_ERROR"

    def __init__(self, errors: list[str], message: str = "Validation failed"):
        super().__init__(message, errors=list(errors))
        self.errors = list(errors)

    def __str__(self) -> str:
        return f"{self.message}: " + "; ".join(self.errors)


class NotFoundError(PlannerError):
    code = "NOT_FOUND"


class ConflictError(PlannerError):
    """Instance active en double, ou transition concurrente perdue."""

    code = "CONFLICT"


class StateError(PlannerError):
    """Opération invalide pour le statut courant."""

    code = "INVALID_STATE"

    def __init__(self, message: str, current: str | None = None, **details: Any):
        super().__init__(message, current=current, **details)
        self.current = current


def error_code(exc: BaseException) -> str:
    """Code stable d'une exception, pour les résultats itemisés (assignations, bascules)."""
    if isinstance(exc, PlannerError):
        return exc.code
    if isinstance(exc, PermissionError):
        return "FORBIDDEN"
    return "INTERNAL_ERROR"
