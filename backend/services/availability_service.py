"""Availability engine: one shared answer to "is this resource free?"."""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from datetime import date as date_type
from typing import Optional, Sequence

from backend.domain.constraints import (
    EngineConfig,
    build_engine_config,
    validate_engine_config,
)
from backend.domain.models import (
    AvailabilityQuery,
    AvailabilityResult,
    CandidateBooking,
    ExclusionHint,
    ResourceFamily,
    SourceStatus,
)
from backend.services.conflict_service import classify
from backend.services.dedup_service import apply_exclusion, deduplicate
from backend.services.resolver_service import ResourceResolver
from backend.services.source_adapters import SourceAdapter
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger
from backend.utils.time_utils import parse_time


logger = get_logger(__name__)


class AvailabilityError(Exception):
    """Base exception for availability workflow failures."""


class AvailabilityValidationError(AvailabilityError):
    """Raised when a query is malformed; carries the offending field."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class AvailabilityEngine:
    """Resolve, fan out to every source, deduplicate and classify."""

    def __init__(
        self,
        resolver: ResourceResolver,
        adapters: Sequence[SourceAdapter],
        settings: Optional[Settings] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self._settings = settings or get_settings()
        if config is None:
            config = build_engine_config(self._settings)
        else:
            validate_engine_config(config)
        self._config = config
        self._resolver = resolver
        self._adapters = list(adapters)
        self._date_pattern = re.compile(self._settings.availability_date_regex)

    def _validate(self, query: AvailabilityQuery) -> tuple[str, int, int, Optional[ExclusionHint]]:
        reference = (query.resource_reference or "").strip()
        if not reference and query.resource_foreign_id is None:
            raise AvailabilityValidationError(
                "resource_reference", "a resource name, code, or foreign id is required"
            )
        if query.resource_foreign_id is not None and query.resource_foreign_id <= 0:
            raise AvailabilityValidationError("resource_foreign_id", "must be a positive integer")

        raw_date = (query.date or "").strip()
        if not self._date_pattern.fullmatch(raw_date):
            raise AvailabilityValidationError("date", "must follow YYYY-MM-DD format")
        try:
            date_type.fromisoformat(raw_date)
        except ValueError as exc:
            raise AvailabilityValidationError("date", "is not a valid calendar date") from exc

        start = parse_time(query.start_time)
        if start is None:
            raise AvailabilityValidationError("start_time", "must be a time such as 09:00")
        end = parse_time(query.end_time)
        if end is None:
            raise AvailabilityValidationError("end_time", "must be a time such as 10:00")
        if start >= end:
            raise AvailabilityValidationError("end_time", "must be later than start_time")

        hint: Optional[ExclusionHint] = None
        if query.exclude_booking_id or query.exclude_title:
            exclude_start = parse_time(query.exclude_start_time)
            exclude_end = parse_time(query.exclude_end_time)
            if query.exclude_start_time and exclude_start is None:
                raise AvailabilityValidationError("exclude_start_time", "must be a time such as 09:00")
            if query.exclude_end_time and exclude_end is None:
                raise AvailabilityValidationError("exclude_end_time", "must be a time such as 10:00")
            hint = ExclusionHint(
                booking_id=(query.exclude_booking_id or "").strip() or None,
                title=(query.exclude_title or "").strip() or None,
                start_minutes=exclude_start,
                end_minutes=exclude_end,
            )
        return raw_date, start, end, hint

    def _gather(
        self,
        target_date: str,
        family: ResourceFamily,
    ) -> tuple[list[CandidateBooking], list[SourceStatus]]:
        """Query every adapter concurrently; one failing source never sinks the rest."""
        candidates: list[CandidateBooking] = []
        statuses: list[SourceStatus] = []
        if not self._adapters:
            return candidates, statuses

        workers = min(self._config.adapter_workers, len(self._adapters))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="availability") as pool:
            futures = [
                (adapter, pool.submit(adapter.fetch, target_date, family))
                for adapter in self._adapters
            ]
            for adapter, future in futures:
                try:
                    found = future.result()
                except Exception as exc:
                    logger.exception(
                        "Source adapter failed | source=%s | date=%s",
                        adapter.source.value,
                        target_date,
                    )
                    statuses.append(
                        SourceStatus(source=adapter.source, ok=False, error=str(exc) or type(exc).__name__)
                    )
                    continue
                candidates.extend(found)
                statuses.append(
                    SourceStatus(source=adapter.source, ok=True, candidate_count=len(found))
                )
        return candidates, statuses

    def check_availability(self, query: AvailabilityQuery) -> AvailabilityResult:
        target_date, request_start, request_end, hint = self._validate(query)

        resource_id = self._resolver.resolve(
            query.resource_reference,
            foreign_id=query.resource_foreign_id,
        )
        if resource_id is None:
            logger.info(
                "Availability check unresolved | reference=%s | foreign_id=%s",
                query.resource_reference,
                query.resource_foreign_id,
            )
            return AvailabilityResult(
                available=False,
                resolved=False,
                resource=None,
                conflicts=[],
                possible_conflicts=[],
                warnings=[],
                adjacent=[],
                sources=[],
                message=(
                    f"Resource '{query.resource_reference or query.resource_foreign_id}' "
                    "could not be matched to a known space; availability is unknown"
                ),
            )

        resource = self._resolver.get_resource(resource_id)
        family = self._resolver.family(resource_id)
        candidates, statuses = self._gather(target_date, family)

        attributed = [candidate for candidate in candidates if candidate.resource_id is not None]
        unattributed = len(candidates) - len(attributed)
        if unattributed:
            logger.info(
                "Dropped unattributed candidates | resource_id=%s | date=%s | count=%s",
                resource_id,
                target_date,
                unattributed,
            )

        remaining = apply_exclusion(
            attributed,
            hint,
            request_start=request_start,
            request_end=request_end,
        )
        merged = deduplicate(remaining, overlap_ratio=self._config.dedup_overlap_ratio)
        classification = classify(
            merged,
            request_start=request_start,
            request_end=request_end,
            family=family,
            proximity_minutes=self._config.proximity_minutes,
        )

        available = not classification.conflicts
        failed = [status.source.value for status in statuses if not status.ok]
        if failed:
            message = f"Partial answer: could not reach {', '.join(failed)}"
        elif available:
            message = f"{resource.name} is available"
        else:
            message = f"{resource.name} has {len(classification.conflicts)} conflict(s)"

        logger.info(
            (
                "Availability check completed | resource_id=%s | date=%s | available=%s | "
                "conflicts=%s | possible=%s | warnings=%s | adjacent=%s | failed_sources=%s"
            ),
            resource_id,
            target_date,
            available,
            len(classification.conflicts),
            len(classification.possible_conflicts),
            len(classification.warnings),
            len(classification.adjacent),
            failed,
        )
        return AvailabilityResult(
            available=available,
            resolved=True,
            resource=resource,
            conflicts=classification.conflicts,
            possible_conflicts=classification.possible_conflicts,
            warnings=classification.warnings,
            adjacent=classification.adjacent,
            sources=statuses,
            unattributed_count=unattributed,
            message=message,
        )
