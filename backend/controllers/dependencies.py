"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from backend.repository.data_repository import DataRepository
from backend.services.auth_service import AuthService, InvalidAdminTokenError
from backend.services.availability_service import AvailabilityEngine
from backend.services.provider_client import ProviderTokenCache
from backend.services.resolver_service import ResourceResolver
from backend.utils.config import get_settings


bearer_scheme = HTTPBearer(auto_error=False)


def _from_state(request: Request, attribute: str, label: str):
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_repository(request: Request) -> DataRepository:
    return _from_state(request, "repository", "Repository")


def get_resolver(request: Request) -> ResourceResolver:
    return _from_state(request, "resolver", "Resource resolver")


def get_availability_engine(request: Request) -> AvailabilityEngine:
    return _from_state(request, "availability_engine", "Availability engine")


def get_token_cache(request: Request) -> ProviderTokenCache:
    return _from_state(request, "token_cache", "Provider token cache")


def get_auth_service(request: Request) -> AuthService:
    service = getattr(request.app.state, "auth_service", None)
    if service is None:
        service = AuthService(settings=get_settings())
        request.app.state.auth_service = service
    return service


async def require_admin(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    if not auth_service.auth_enabled:
        return
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header with Bearer token is required",
        )
    try:
        auth_service.validate_bearer_token(credentials.credentials)
    except InvalidAdminTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc
