# planner/core/security.py
# Consommation de l'identité : décodage JWT (sub + role), dépendances FastAPI `get_current_caller` / `require_coordinator`.

import datetime as dt
from typing import Annotated, Literal

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError as PydanticValidationError

from planner.core.settings import get_settings
from planner.core.utils import utcnow

Role = Literal["learner", "professional", "coordinator"]

bearer_scheme = HTTPBearer(auto_error=False)


class Caller(BaseModel):
    """Identité de l'appelant, telle que fournie par le service d'authentification.

    Attributes:
        id (str): Identifiant opaque (claim `sub`).
        role (Role): Rôle applicatif (claim `role`).
    """
    id: str
    role: Role = "learner"

    @property
    def is_coordinator(self) -> bool:
        return self.role == "coordinator"


def create_access_token(caller: Caller, expires_delta: dt.timedelta | None = None) -> str:
    """Crée un access token JWT pour `caller`.

    Description:
        Le service n'émet pas de jetons en production ; cette fonction sert aux outils
        d'exploitation et aux tests. Expiration par défaut : 15 minutes.

    Returns:
        str: Jeton JWT signé.
    """
    settings = get_settings()
    expire = utcnow() + (expires_delta or dt.timedelta(minutes=15))
    claims = {"sub": caller.id, "role": caller.role, "exp": expire}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_caller(token: str) -> Caller:
    """Décode un JWT et retourne l'appelant.

    Raises:
        HTTPException: 401 si jeton invalide, expiré, ou claims manquants.
    """
    settings = get_settings()
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise credentials_exception from e

    sub = payload.get("sub")
    if sub is None or not isinstance(sub, str):
        raise credentials_exception
    try:
        return Caller(id=sub, role=payload.get("role", "learner"))
    except PydanticValidationError as e:
        raise credentials_exception from e


async def get_current_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Caller:
    """Dépendance FastAPI : appelant courant depuis l'en-tête `Authorization: Bearer`."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_caller(credentials.credentials)


def require_coordinator(caller: Annotated[Caller, Depends(get_current_caller)]) -> Caller:
    if not caller.is_coordinator:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Coordinator only")
    return caller


CurrentCaller = Annotated[Caller, Depends(get_current_caller)]
