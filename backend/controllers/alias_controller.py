"""Controller layer for resource alias maintenance and provider token admin."""

from __future__ import annotations

import sqlite3
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from backend.controllers.dependencies import (
    get_repository,
    get_resolver,
    get_token_cache,
    require_admin,
)
from backend.domain.models import AliasKind, ResourceAlias
from backend.repository.data_repository import DataRepository
from backend.services.provider_client import ProviderTokenCache
from backend.services.resolver_service import ResourceResolver
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


class AliasResponse(BaseModel):
    alias_id: int = Field(gt=0)
    resource_id: int = Field(gt=0)
    alias_kind: AliasKind
    alias_value: str

    @classmethod
    def from_domain(cls, alias: ResourceAlias) -> "AliasResponse":
        return cls(
            alias_id=alias.alias_id,
            resource_id=alias.resource_id,
            alias_kind=alias.alias_kind,
            alias_value=alias.alias_value,
        )


class AliasUpsertRequest(BaseModel):
    resource_id: int = Field(gt=0)
    alias_kind: AliasKind
    alias_value: str = Field(min_length=1)
    overwrite: bool = False

    @field_validator("alias_value")
    @classmethod
    def validate_alias_value(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("alias_value must be non-empty")
        return value


class AutoPopulateResponse(BaseModel):
    candidates: int = Field(ge=0)
    total_aliases: int = Field(ge=0)


class TokenClearRequest(BaseModel):
    scope: Optional[str] = None


class TokenClearResponse(BaseModel):
    cleared: bool
    scope: str


@router.get(
    "/resource-aliases",
    response_model=list[AliasResponse],
    status_code=status.HTTP_200_OK,
)
def list_aliases(
    resource_id: Optional[int] = Query(default=None, gt=0),
    repository: DataRepository = Depends(get_repository),
) -> list[AliasResponse]:
    return [AliasResponse.from_domain(item) for item in repository.list_aliases(resource_id)]


@router.post(
    "/resource-aliases",
    response_model=AliasResponse,
    status_code=status.HTTP_200_OK,
)
def upsert_alias(
    payload: AliasUpsertRequest,
    repository: DataRepository = Depends(get_repository),
    resolver: ResourceResolver = Depends(get_resolver),
) -> AliasResponse:
    """Create an alias, or re-point an existing one when ``overwrite`` is set."""
    if repository.get_resource(payload.resource_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"resource_id {payload.resource_id} not found",
        )
    try:
        alias = repository.upsert_alias(
            payload.resource_id,
            payload.alias_kind,
            payload.alias_value,
            overwrite=payload.overwrite,
        )
    except sqlite3.Error as exc:  # pragma: no cover - defensive fallback
        logger.exception("Alias upsert failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store alias",
        ) from exc
    if alias is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="alias_value is empty after normalization",
        )
    resolver.invalidate_cache()
    logger.info(
        "Alias stored | alias_id=%s | resource_id=%s | kind=%s | value=%s",
        alias.alias_id,
        alias.resource_id,
        alias.alias_kind.value,
        alias.alias_value,
    )
    return AliasResponse.from_domain(alias)


@router.post(
    "/resource-aliases/auto-populate",
    response_model=AutoPopulateResponse,
    status_code=status.HTTP_200_OK,
)
def auto_populate_aliases(
    repository: DataRepository = Depends(get_repository),
    resolver: ResourceResolver = Depends(get_resolver),
) -> AutoPopulateResponse:
    candidates = repository.auto_populate_aliases()
    resolver.invalidate_cache()
    return AutoPopulateResponse(candidates=candidates, total_aliases=repository.count_aliases())


@router.delete(
    "/resource-aliases/{alias_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_alias(
    alias_id: int,
    repository: DataRepository = Depends(get_repository),
    resolver: ResourceResolver = Depends(get_resolver),
) -> None:
    if not repository.delete_alias(alias_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"alias_id {alias_id} not found",
        )
    resolver.invalidate_cache()


@router.post(
    "/provider-token/clear",
    response_model=TokenClearResponse,
    status_code=status.HTTP_200_OK,
)
def clear_provider_token(
    payload: Optional[TokenClearRequest] = None,
    token_cache: ProviderTokenCache = Depends(get_token_cache),
) -> TokenClearResponse:
    scope = payload.scope if payload is not None else None
    token_cache.invalidate(scope)
    return TokenClearResponse(cleared=True, scope=scope or "*")
