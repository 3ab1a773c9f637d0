"""Interval classification of candidate bookings against a requested slot."""

from __future__ import annotations

from typing import Iterable

from backend.domain.models import (
    AvailabilityEntry,
    CandidateBooking,
    Classification,
    ResourceFamily,
)
from backend.utils.time_utils import format_time, overlaps


_SHARED_SPACE_NOTE = "shared space"


def _span(candidate: CandidateBooking) -> str:
    if candidate.all_day:
        return "all day"
    return f"{format_time(candidate.start_minutes)}-{format_time(candidate.end_minutes)}"


def _entry(candidate: CandidateBooking, message: str) -> AvailabilityEntry:
    if candidate.all_day:
        start, end = "All day", ""
    else:
        start, end = format_time(candidate.start_minutes), format_time(candidate.end_minutes)
    return AvailabilityEntry(
        source=candidate.source,
        title=candidate.title,
        start=start,
        end=end,
        message=message,
        resource_id=candidate.resource_id,
        identifier=candidate.identifier,
    )


def _sort_key(pair: tuple[CandidateBooking, AvailabilityEntry]) -> tuple[int, str, str]:
    candidate, entry = pair
    start = -1 if candidate.all_day or candidate.start_minutes is None else candidate.start_minutes
    return start, entry.title.lower(), entry.identifier or ""


def _ordered(pairs: list[tuple[CandidateBooking, AvailabilityEntry]]) -> list[AvailabilityEntry]:
    return [entry for _, entry in sorted(pairs, key=_sort_key)]


def classify(
    candidates: Iterable[CandidateBooking],
    *,
    request_start: int,
    request_end: int,
    family: ResourceFamily,
    proximity_minutes: int = 15,
) -> Classification:
    """Split candidates into conflicts, possible conflicts, warnings and advisories."""
    conflicts: list[tuple[CandidateBooking, AvailabilityEntry]] = []
    possible: list[tuple[CandidateBooking, AvailabilityEntry]] = []
    warnings: list[tuple[CandidateBooking, AvailabilityEntry]] = []
    adjacent: list[tuple[CandidateBooking, AvailabilityEntry]] = []

    for candidate in candidates:
        if candidate.resource_id is None:
            continue
        on_target = candidate.resource_id == family.target_id
        on_blocking = candidate.resource_id in family.blocking_ids
        where = (
            ""
            if on_target
            else f" in {candidate.resource_label or 'a connected space'} ({_SHARED_SPACE_NOTE})"
        )

        if on_target or on_blocking:
            if candidate.all_day:
                conflicts.append(
                    (candidate, _entry(candidate, f"Conflict: {candidate.title} (all day){where}"))
                )
                continue
            if not candidate.has_times:
                possible.append(
                    (
                        candidate,
                        _entry(
                            candidate,
                            f"Possible conflict: {candidate.title}{where} has no usable time; verify manually",
                        ),
                    )
                )
                continue
            if overlaps(request_start, request_end, candidate.start_minutes, candidate.end_minutes):
                conflicts.append(
                    (candidate, _entry(candidate, f"Conflict: {candidate.title} ({_span(candidate)}){where}"))
                )
                continue
            gap_before = request_start - candidate.end_minutes
            if 0 < gap_before <= proximity_minutes:
                warnings.append(
                    (
                        candidate,
                        _entry(
                            candidate,
                            f"Note: {candidate.title} ends {gap_before} min before{where}",
                        ),
                    )
                )
            gap_after = candidate.start_minutes - request_end
            if 0 < gap_after <= proximity_minutes:
                warnings.append(
                    (
                        candidate,
                        _entry(
                            candidate,
                            f"Note: {candidate.title} starts {gap_after} min after{where}",
                        ),
                    )
                )
            continue

        if candidate.resource_id in family.adjacent_ids:
            occupied = candidate.all_day or (
                candidate.has_times
                and overlaps(request_start, request_end, candidate.start_minutes, candidate.end_minutes)
            )
            if occupied:
                label = candidate.resource_label or f"resource {candidate.resource_id}"
                adjacent.append(
                    (
                        candidate,
                        _entry(
                            candidate,
                            f"Adjacent: {candidate.title} in {label} ({_span(candidate)})",
                        ),
                    )
                )

    return Classification(
        conflicts=_ordered(conflicts),
        possible_conflicts=_ordered(possible),
        warnings=_ordered(warnings),
        adjacent=_ordered(adjacent),
    )
