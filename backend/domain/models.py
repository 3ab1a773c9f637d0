"""Domain models for resource identity and availability reconciliation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class AliasKind(str, Enum):
    FOREIGN_ID = "foreign_id"
    NAME = "name"
    ABBREVIATION = "abbreviation"


class BookingSource(str, Enum):
    LOCAL_EVENT = "local_event"
    EXTERNAL_RESERVATION = "external_reservation"
    CLASS_SCHEDULE = "class_schedule"


@dataclass(frozen=True)
class Resource:
    resource_id: int
    name: str
    abbreviation: Optional[str] = None
    resource_type: Optional[str] = None
    capacity: Optional[int] = None


@dataclass(frozen=True)
class ResourceAlias:
    alias_id: int
    resource_id: int
    alias_kind: AliasKind
    alias_value: str


@dataclass(frozen=True)
class ResourceFamily:
    """A target resource plus the spaces whose bookings affect it."""

    target_id: int
    blocking_ids: frozenset[int] = frozenset()
    adjacent_ids: frozenset[int] = frozenset()

    @property
    def all_ids(self) -> frozenset[int]:
        return frozenset({self.target_id}) | self.blocking_ids | self.adjacent_ids


@dataclass(frozen=True)
class CandidateBooking:
    """Normalized occupancy produced by a source adapter."""

    source: BookingSource
    identifier: str
    title: str
    date: str
    start_minutes: Optional[int] = None
    end_minutes: Optional[int] = None
    all_day: bool = False
    resource_id: Optional[int] = None
    resource_label: str = ""
    recurrence_pattern: Optional[str] = None
    external_reservation_id: Optional[str] = None
    class_key: Optional[str] = None

    @property
    def has_times(self) -> bool:
        return self.start_minutes is not None and self.end_minutes is not None


@dataclass(frozen=True)
class ExclusionHint:
    """Identifies the booking being edited so it is not reported against itself."""

    booking_id: Optional[str] = None
    title: Optional[str] = None
    start_minutes: Optional[int] = None
    end_minutes: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.booking_id and not self.title


@dataclass(frozen=True)
class AvailabilityQuery:
    resource_reference: Optional[str]
    date: Optional[str]
    start_time: Optional[str]
    end_time: Optional[str]
    resource_foreign_id: Optional[int] = None
    exclude_booking_id: Optional[str] = None
    exclude_title: Optional[str] = None
    exclude_start_time: Optional[str] = None
    exclude_end_time: Optional[str] = None


@dataclass(frozen=True)
class AvailabilityEntry:
    """One conflict, possible conflict, warning, or adjacent advisory."""

    source: BookingSource
    title: str
    start: str
    end: str
    message: str
    resource_id: Optional[int] = None
    identifier: Optional[str] = None

    def to_dict(self) -> dict[str, str | int | None]:
        return {
            "source": self.source.value,
            "title": self.title,
            "start": self.start,
            "end": self.end,
            "message": self.message,
            "resource_id": self.resource_id,
            "identifier": self.identifier,
        }


@dataclass(frozen=True)
class Classification:
    conflicts: list[AvailabilityEntry] = field(default_factory=list)
    possible_conflicts: list[AvailabilityEntry] = field(default_factory=list)
    warnings: list[AvailabilityEntry] = field(default_factory=list)
    adjacent: list[AvailabilityEntry] = field(default_factory=list)


@dataclass(frozen=True)
class SourceStatus:
    source: BookingSource
    ok: bool
    candidate_count: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    resolved: bool
    resource: Optional[Resource]
    conflicts: list[AvailabilityEntry]
    possible_conflicts: list[AvailabilityEntry]
    warnings: list[AvailabilityEntry]
    adjacent: list[AvailabilityEntry]
    sources: list[SourceStatus]
    unattributed_count: int = 0
    message: str = ""

    @property
    def failed_sources(self) -> list[BookingSource]:
        return [status.source for status in self.sources if not status.ok]
