"""Source adapters that turn each booking source into candidate bookings."""

from __future__ import annotations

from datetime import date as date_type
from typing import Any, Optional, Protocol

from backend.domain.constraints import build_engine_config
from backend.domain.models import BookingSource, CandidateBooking, Resource, ResourceFamily
from backend.domain.naming import location_match_rank, normalize_reference
from backend.repository.data_repository import DataRepository, EventRecord
from backend.services.provider_client import ScheduleProviderClient
from backend.services.resolver_service import ResourceResolver
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger
from backend.utils.time_utils import MissingPatternPolicy, day_matches, parse_time, pattern_days


logger = get_logger(__name__)


class SourceAdapter(Protocol):
    source: BookingSource

    def fetch(self, target_date: str, family: ResourceFamily) -> list[CandidateBooking]:
        ...


def _weekday(target_date: str) -> int:
    return date_type.fromisoformat(target_date).weekday()


def _times_or_discard(
    source: BookingSource,
    identifier: str,
    raw_start: Any,
    raw_end: Any,
) -> tuple[Optional[int], Optional[int], bool]:
    """Parse a start/end pair; the bool is False when the pair must be discarded."""
    start = parse_time(raw_start)
    end = parse_time(raw_end)
    if start is not None and end is not None and start > end:
        logger.warning(
            "Discarding candidate with start after end | source=%s | id=%s | start=%s | end=%s",
            source.value,
            identifier,
            raw_start,
            raw_end,
        )
        return None, None, False
    return start, end, True


def _in_scope(candidate: CandidateBooking, family: ResourceFamily) -> bool:
    return candidate.resource_id is None or candidate.resource_id in family.all_ids


class LocalEventAdapter:
    """Bookings authored in the portal's own datastore."""

    source = BookingSource.LOCAL_EVENT

    def __init__(
        self,
        repository: DataRepository,
        settings: Optional[Settings] = None,
    ) -> None:
        self._repository = repository
        self._settings = settings or get_settings()

    def fetch(self, target_date: str, family: ResourceFamily) -> list[CandidateBooking]:
        resources = {
            resource.resource_id: resource
            for resource in self._repository.list_resources()
            if resource.resource_id in family.all_ids
        }
        weekday = _weekday(target_date)

        records: list[tuple[EventRecord, Optional[int]]] = [
            (record, record.resource_id)
            for record in self._repository.list_events_for_resources(family.all_ids, target_date)
        ]
        for record in self._repository.list_unlinked_events(target_date):
            matched = self._match_location(record.location, family, resources)
            if matched is not None:
                logger.debug(
                    "Legacy event matched by location | event_id=%s | location=%s | resource_id=%s",
                    record.event_id,
                    record.location,
                    matched,
                )
                records.append((record, matched))

        candidates: list[CandidateBooking] = []
        for record, resource_id in records:
            spans_days = record.end_date is not None and record.end_date != record.start_date
            if spans_days and record.recurring_pattern and weekday not in pattern_days(
                record.recurring_pattern
            ):
                continue
            if record.all_day:
                start, end = None, None
            else:
                start, end, keep = _times_or_discard(
                    self.source, record.event_id, record.start_time, record.end_time
                )
                if not keep:
                    continue
            resource = resources.get(resource_id) if resource_id is not None else None
            candidates.append(
                CandidateBooking(
                    source=self.source,
                    identifier=record.event_id,
                    title=record.title,
                    date=target_date,
                    start_minutes=start,
                    end_minutes=end,
                    all_day=record.all_day,
                    resource_id=resource_id,
                    resource_label=resource.name if resource else (record.location or ""),
                    recurrence_pattern=record.recurring_pattern,
                    external_reservation_id=record.external_reservation_id,
                )
            )
        return candidates

    @staticmethod
    def _match_location(
        location: Optional[str],
        family: ResourceFamily,
        resources: dict[int, Resource],
    ) -> Optional[int]:
        # Best rank wins across the whole family; the target only breaks ties.
        best: Optional[tuple[tuple[int, int], int, int]] = None
        for resource_id in family.all_ids:
            resource = resources.get(resource_id)
            if resource is None:
                continue
            rank = location_match_rank(location, resource.name, resource.abbreviation)
            if rank is None:
                continue
            key = (rank, 0 if resource_id == family.target_id else 1, resource_id)
            if best is None or key < best:
                best = key
        return best[2] if best is not None else None


class ReservationAdapter:
    """Ad-hoc reservations held by the external provider."""

    source = BookingSource.EXTERNAL_RESERVATION

    def __init__(
        self,
        client: ScheduleProviderClient,
        resolver: ResourceResolver,
    ) -> None:
        self._client = client
        self._resolver = resolver

    def fetch(self, target_date: str, family: ResourceFamily) -> list[CandidateBooking]:
        weekday = _weekday(target_date)
        candidates: list[CandidateBooking] = []
        for row in self._client.list_reservations(target_date):
            candidate = self._to_candidate(row, target_date, weekday)
            if candidate is not None and _in_scope(candidate, family):
                candidates.append(candidate)
        return candidates

    def _to_candidate(
        self,
        row: dict[str, Any],
        target_date: str,
        weekday: int,
    ) -> Optional[CandidateBooking]:
        identifier = row.get("resource_reservation_id") or row.get("id") or row.get("reservation_id")
        if identifier is None:
            logger.warning("Skipping reservation without identifier | keys=%s", sorted(row))
            return None
        identifier = str(identifier)

        start_date = str(row.get("start_date") or row.get("begin_date") or target_date)[:10]
        end_date = str(row.get("end_date") or start_date)[:10]
        if start_date > target_date or end_date < target_date:
            return None
        days = row.get("days")
        if days and end_date != start_date and weekday not in pattern_days(str(days)):
            return None

        start, end, keep = _times_or_discard(
            self.source,
            identifier,
            row.get("start_time") or row.get("begin_time"),
            row.get("end_time"),
        )
        if not keep:
            return None

        room = row.get("resource")
        if room is None:
            room = row.get("resource_description") or row.get("resource_name")
        resource_id = self._resolver.resolve_provider_room(room, foreign_id=row.get("resource_id"))
        if isinstance(room, dict):
            label = room.get("description") or room.get("name") or ""
        else:
            label = room or ""

        event = row.get("event") if isinstance(row.get("event"), dict) else {}
        title = (
            row.get("description")
            or row.get("notes")
            or row.get("event_description")
            or event.get("name")
            or row.get("name")
            or "Reservation"
        )
        return CandidateBooking(
            source=self.source,
            identifier=identifier,
            title=str(title),
            date=target_date,
            start_minutes=start,
            end_minutes=end,
            resource_id=resource_id,
            resource_label=str(label),
            recurrence_pattern=str(days) if days else None,
        )


class ClassScheduleAdapter:
    """Recurring class meetings from the provider's class-schedule catalog."""

    source = BookingSource.CLASS_SCHEDULE

    def __init__(
        self,
        client: ScheduleProviderClient,
        resolver: ResourceResolver,
        settings: Optional[Settings] = None,
        missing_pattern_policy: Optional[MissingPatternPolicy] = None,
    ) -> None:
        self._client = client
        self._resolver = resolver
        self._settings = settings or get_settings()
        if missing_pattern_policy is None:
            missing_pattern_policy = build_engine_config(self._settings).missing_pattern_policy
        self._missing_pattern_policy = missing_pattern_policy

    def _active_class_names(self) -> dict[str, str]:
        """Map every id an active/future class is known by to its display name."""
        active: dict[str, str] = {}
        statuses = set(self._settings.class_active_statuses)
        for row in self._client.list_classes():
            status = str(row.get("status") or "").strip().lower()
            if status not in statuses:
                continue
            name = str(row.get("name") or row.get("description") or row.get("course_name") or "")
            for key in ("id", "internal_class_id", "class_id"):
                if row.get(key) is not None:
                    active[str(row[key])] = name
        return active

    def fetch(self, target_date: str, family: ResourceFamily) -> list[CandidateBooking]:
        weekday = _weekday(target_date)
        active = self._active_class_names()
        placeholders = set(self._settings.class_placeholder_rooms)
        candidates: list[CandidateBooking] = []
        skipped = {"inactive": 0, "no_room": 0, "other_day": 0}
        resolved_rooms: dict[tuple[str, str, str], Optional[int]] = {}

        for row in self._client.list_class_schedules():
            internal_id = str(row.get("internal_class_id") or "")
            user_id = str(row.get("class_id") or "")
            class_key = internal_id if internal_id in active else user_id
            if not class_key or class_key not in active:
                skipped["inactive"] += 1
                continue

            room = row.get("room")
            if isinstance(room, dict):
                room_text = room.get("description") or room.get("name") or room.get("abbreviation")
            else:
                room_text = room
            if normalize_reference(room_text if isinstance(room_text, str) else "") in placeholders:
                skipped["no_room"] += 1
                continue

            day = row.get("day")
            pattern = (
                (day.get("description") or day.get("abbreviation"))
                if isinstance(day, dict)
                else day
            )
            if not day_matches(
                str(pattern) if pattern else None,
                weekday,
                missing_policy=self._missing_pattern_policy,
            ):
                skipped["other_day"] += 1
                continue

            identifier = str(row.get("id") or f"{class_key}:{pattern}:{row.get('start_time')}")
            start, end, keep = _times_or_discard(
                self.source, identifier, row.get("start_time"), row.get("end_time")
            )
            if not keep:
                continue

            room_key = (
                str(room_text),
                str(room.get("abbreviation") or "") if isinstance(room, dict) else "",
                str(room.get("id") or "") if isinstance(room, dict) else "",
            )
            if room_key not in resolved_rooms:
                resolved_rooms[room_key] = self._resolver.resolve_provider_room(room)

            block = row.get("block")
            title = active.get(class_key) or (
                block.get("description") if isinstance(block, dict) else None
            ) or "Class"
            candidate = CandidateBooking(
                source=self.source,
                identifier=identifier,
                title=str(title),
                date=target_date,
                start_minutes=start,
                end_minutes=end,
                resource_id=resolved_rooms[room_key],
                resource_label=str(room_text or ""),
                recurrence_pattern=str(pattern) if pattern else None,
                class_key=class_key,
            )
            if _in_scope(candidate, family):
                candidates.append(candidate)

        logger.debug(
            "Class schedules filtered | date=%s | kept=%s | inactive=%s | no_room=%s | other_day=%s",
            target_date,
            len(candidates),
            skipped["inactive"],
            skipped["no_room"],
            skipped["other_day"],
        )
        return candidates
