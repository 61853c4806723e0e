# planner/api/dto/response_format.py
# Enveloppes standard des réponses (succès / erreur) et conversion des erreurs métier.

from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel

from planner.core.errors import PlannerError, error_code

T = TypeVar("T")


class SuccessResponse(BaseModel, Generic[T]):
    """Réponse de succès : `data` porte le résultat, `message` un éventuel commentaire."""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Réponse d'erreur : `error` contient au minimum `code` et `message`."""

    success: bool = False
    error: dict[str, Any]

    @classmethod
    def from_detail(cls, detail: Union[str, dict[str, Any]], code: str = "VALIDATION_ERROR"):
        if isinstance(detail, str):
            return cls(error={"code": code, "message": detail})
        return cls(error={"code": code, **detail})

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorResponse":
        """Construire l'enveloppe depuis une erreur métier (ou un `PermissionError`).

        Description:
            Le code vient de `error_code`; les détails structurés d'une `PlannerError`
            (ex. la liste `errors` d'une validation) sont recopiés tels quels.
        """
        body: dict[str, Any] = {"message": str(getattr(exc, "message", None) or exc)}
        if isinstance(exc, PlannerError):
            body.update({k: v for k, v in exc.details.items() if v is not None})
        return cls.from_detail(body, code=error_code(exc))
