"""HTTP controller layer for availability checks and the resource catalog."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator

from backend.controllers.dependencies import (
    get_availability_engine,
    get_repository,
    get_resolver,
)
from backend.domain.models import AvailabilityEntry, AvailabilityQuery, AvailabilityResult, Resource
from backend.repository.data_repository import DataRepository
from backend.services.availability_service import (
    AvailabilityEngine,
    AvailabilityValidationError,
)
from backend.services.resolver_service import ResolutionError, ResourceResolver
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["availability"])


class AvailabilityCheckRequest(BaseModel):
    """Input DTO; semantic validation happens in the engine so errors name a field."""

    resource_reference: Optional[str] = None
    resource_foreign_id: Optional[int] = None
    date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    exclude_booking_id: Optional[str] = None
    exclude_title: Optional[str] = None
    exclude_start_time: Optional[str] = None
    exclude_end_time: Optional[str] = None

    @field_validator(
        "resource_reference",
        "date",
        "start_time",
        "end_time",
        "exclude_booking_id",
        "exclude_title",
        "exclude_start_time",
        "exclude_end_time",
    )
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    def to_query(self) -> AvailabilityQuery:
        return AvailabilityQuery(
            resource_reference=self.resource_reference,
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            resource_foreign_id=self.resource_foreign_id,
            exclude_booking_id=self.exclude_booking_id,
            exclude_title=self.exclude_title,
            exclude_start_time=self.exclude_start_time,
            exclude_end_time=self.exclude_end_time,
        )


class ResourceResponse(BaseModel):
    resource_id: int = Field(gt=0)
    name: str
    abbreviation: Optional[str] = None
    resource_type: Optional[str] = None
    capacity: Optional[int] = None

    @classmethod
    def from_domain(cls, resource: Resource) -> "ResourceResponse":
        return cls(
            resource_id=resource.resource_id,
            name=resource.name,
            abbreviation=resource.abbreviation,
            resource_type=resource.resource_type,
            capacity=resource.capacity,
        )


class AvailabilityEntryResponse(BaseModel):
    source: str
    title: str
    start: str
    end: str
    message: str
    resource_id: Optional[int] = None
    identifier: Optional[str] = None

    @classmethod
    def from_domain(cls, entry: AvailabilityEntry) -> "AvailabilityEntryResponse":
        return cls(**entry.to_dict())


class SourceStatusResponse(BaseModel):
    source: str
    ok: bool
    candidate_count: int = Field(ge=0)
    error: Optional[str] = None


class AvailabilityCheckResponse(BaseModel):
    available: bool
    resolved: bool
    resource: Optional[ResourceResponse] = None
    conflicts: list[AvailabilityEntryResponse]
    possible_conflicts: list[AvailabilityEntryResponse]
    warnings: list[AvailabilityEntryResponse]
    adjacent: list[AvailabilityEntryResponse]
    sources: list[SourceStatusResponse]
    failed_sources: list[str]
    unattributed_count: int = Field(ge=0)
    message: str

    @classmethod
    def from_domain(cls, result: AvailabilityResult) -> "AvailabilityCheckResponse":
        return cls(
            available=result.available,
            resolved=result.resolved,
            resource=ResourceResponse.from_domain(result.resource) if result.resource else None,
            conflicts=[AvailabilityEntryResponse.from_domain(item) for item in result.conflicts],
            possible_conflicts=[
                AvailabilityEntryResponse.from_domain(item) for item in result.possible_conflicts
            ],
            warnings=[AvailabilityEntryResponse.from_domain(item) for item in result.warnings],
            adjacent=[AvailabilityEntryResponse.from_domain(item) for item in result.adjacent],
            sources=[
                SourceStatusResponse(
                    source=item.source.value,
                    ok=item.ok,
                    candidate_count=item.candidate_count,
                    error=item.error,
                )
                for item in result.sources
            ],
            failed_sources=[source.value for source in result.failed_sources],
            unattributed_count=result.unattributed_count,
            message=result.message,
        )


class ResolutionPreviewResponse(BaseModel):
    resolved: bool
    resource: Optional[ResourceResponse] = None
    blocking: list[ResourceResponse] = Field(default_factory=list)
    adjacent: list[ResourceResponse] = Field(default_factory=list)


def _run_check(engine: AvailabilityEngine, payload: AvailabilityCheckRequest) -> AvailabilityCheckResponse:
    try:
        result = engine.check_availability(payload.to_query())
        return AvailabilityCheckResponse.from_domain(result)
    except AvailabilityValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"field": exc.field, "message": exc.message},
        ) from exc
    except ResolutionError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected availability check failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check availability",
        ) from exc


@router.post(
    "/availability/check",
    response_model=AvailabilityCheckResponse,
    status_code=status.HTTP_200_OK,
)
def check_availability(
    payload: AvailabilityCheckRequest,
    engine: AvailabilityEngine = Depends(get_availability_engine),
) -> AvailabilityCheckResponse:
    """Answer whether a resource is free for a date and time window."""
    return _run_check(engine, payload)


@router.get(
    "/availability/check",
    response_model=AvailabilityCheckResponse,
    status_code=status.HTTP_200_OK,
)
def check_availability_query(
    resource_reference: Optional[str] = Query(default=None),
    resource_foreign_id: Optional[int] = Query(default=None),
    date: Optional[str] = Query(default=None),
    start_time: Optional[str] = Query(default=None),
    end_time: Optional[str] = Query(default=None),
    exclude_booking_id: Optional[str] = Query(default=None),
    exclude_title: Optional[str] = Query(default=None),
    exclude_start_time: Optional[str] = Query(default=None),
    exclude_end_time: Optional[str] = Query(default=None),
    engine: AvailabilityEngine = Depends(get_availability_engine),
) -> AvailabilityCheckResponse:
    payload = AvailabilityCheckRequest(
        resource_reference=resource_reference,
        resource_foreign_id=resource_foreign_id,
        date=date,
        start_time=start_time,
        end_time=end_time,
        exclude_booking_id=exclude_booking_id,
        exclude_title=exclude_title,
        exclude_start_time=exclude_start_time,
        exclude_end_time=exclude_end_time,
    )
    return _run_check(engine, payload)


@router.get(
    "/resources",
    response_model=list[ResourceResponse],
    status_code=status.HTTP_200_OK,
)
def list_resources(
    repository: DataRepository = Depends(get_repository),
) -> list[ResourceResponse]:
    return [ResourceResponse.from_domain(item) for item in repository.list_resources()]


@router.get(
    "/resources/resolve",
    response_model=ResolutionPreviewResponse,
    status_code=status.HTTP_200_OK,
)
def resolve_resource(
    reference: Optional[str] = Query(default=None),
    foreign_id: Optional[int] = Query(default=None, gt=0),
    abbreviation: Optional[str] = Query(default=None),
    resolver: ResourceResolver = Depends(get_resolver),
    repository: DataRepository = Depends(get_repository),
) -> ResolutionPreviewResponse:
    """Preview what a reference resolves to and which spaces it shares."""
    if not (reference or "").strip() and foreign_id is None and not (abbreviation or "").strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"field": "reference", "message": "reference, foreign_id, or abbreviation is required"},
        )
    resource_id = resolver.resolve(reference, foreign_id=foreign_id, abbreviation=abbreviation)
    if resource_id is None:
        return ResolutionPreviewResponse(resolved=False)

    family = resolver.family(resource_id)
    catalog = {item.resource_id: item for item in repository.list_resources()}
    return ResolutionPreviewResponse(
        resolved=True,
        resource=ResourceResponse.from_domain(catalog[resource_id]),
        blocking=[
            ResourceResponse.from_domain(catalog[item])
            for item in sorted(family.blocking_ids)
            if item in catalog
        ],
        adjacent=[
            ResourceResponse.from_domain(catalog[item])
            for item in sorted(family.adjacent_ids)
            if item in catalog
        ],
    )
