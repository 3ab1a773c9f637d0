"""Cross-source deduplication and edit-exclusion of candidate bookings."""

from __future__ import annotations

from typing import Iterable, Optional

from backend.domain.models import BookingSource, CandidateBooking, ExclusionHint
from backend.domain.naming import titles_similar
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def overlap_fraction_of_shorter(first: CandidateBooking, second: CandidateBooking) -> float:
    """Overlap length divided by the shorter duration; 0.0 when not comparable."""
    if not first.has_times or not second.has_times:
        return 0.0
    overlap = min(first.end_minutes, second.end_minutes) - max(
        first.start_minutes, second.start_minutes
    )
    if overlap <= 0:
        return 0.0
    shorter = min(
        first.end_minutes - first.start_minutes,
        second.end_minutes - second.start_minutes,
    )
    if shorter <= 0:
        return 0.0
    return overlap / shorter


def _split(
    candidates: Iterable[CandidateBooking],
) -> tuple[list[CandidateBooking], list[CandidateBooking], list[CandidateBooking]]:
    local: list[CandidateBooking] = []
    reservations: list[CandidateBooking] = []
    classes: list[CandidateBooking] = []
    for candidate in candidates:
        if candidate.source is BookingSource.LOCAL_EVENT:
            local.append(candidate)
        elif candidate.source is BookingSource.EXTERNAL_RESERVATION:
            reservations.append(candidate)
        else:
            classes.append(candidate)
    return local, reservations, classes


def deduplicate(
    candidates: Iterable[CandidateBooking],
    *,
    overlap_ratio: float = 0.8,
) -> list[CandidateBooking]:
    """Collapse candidates that describe the same physical booking.

    Local events always win over provider reservations. Class meetings are
    only collapsed among themselves.
    """
    local, reservations, classes = _split(candidates)

    seen_reservation_ids: set[str] = set()
    unique_reservations: list[CandidateBooking] = []
    for reservation in reservations:
        if reservation.identifier in seen_reservation_ids:
            continue
        seen_reservation_ids.add(reservation.identifier)
        unique_reservations.append(reservation)

    synced_ids = {
        event.external_reservation_id for event in local if event.external_reservation_id
    }
    kept_reservations: list[CandidateBooking] = []
    for reservation in unique_reservations:
        if reservation.identifier in synced_ids:
            logger.debug("Reservation already synced locally | reservation_id=%s", reservation.identifier)
            continue
        twin = next(
            (
                event
                for event in local
                if reservation.resource_id is not None
                and event.resource_id == reservation.resource_id
                and overlap_fraction_of_shorter(event, reservation) > overlap_ratio
            ),
            None,
        )
        if twin is not None:
            logger.debug(
                "Reservation overlaps local event; dropping | reservation_id=%s | event_id=%s",
                reservation.identifier,
                twin.identifier,
            )
            continue
        kept_reservations.append(reservation)

    seen_class_meetings: set[tuple[Optional[str], Optional[int]]] = set()
    kept_classes: list[CandidateBooking] = []
    for meeting in classes:
        key = (meeting.class_key or meeting.identifier, meeting.resource_id)
        if key in seen_class_meetings:
            continue
        seen_class_meetings.add(key)
        kept_classes.append(meeting)

    return local + kept_reservations + kept_classes


def apply_exclusion(
    candidates: Iterable[CandidateBooking],
    hint: Optional[ExclusionHint],
    *,
    request_start: int,
    request_end: int,
) -> list[CandidateBooking]:
    """Remove the booking being edited from every source before classification."""
    items = list(candidates)
    if hint is None or hint.is_empty:
        return items

    if hint.booking_id:
        excluded_ids = {hint.booking_id}
        for candidate in items:
            if candidate.identifier == hint.booking_id and candidate.external_reservation_id:
                excluded_ids.add(candidate.external_reservation_id)
        kept = [
            candidate
            for candidate in items
            if candidate.identifier not in excluded_ids
            and candidate.external_reservation_id not in excluded_ids
        ]
        if len(kept) != len(items):
            logger.debug(
                "Excluded by identifier | booking_id=%s | removed=%s",
                hint.booking_id,
                len(items) - len(kept),
            )
            return kept

    if not hint.title:
        return items

    start = hint.start_minutes if hint.start_minutes is not None else request_start
    end = hint.end_minutes if hint.end_minutes is not None else request_end
    kept = [
        candidate
        for candidate in items
        if not (
            titles_similar(candidate.title, hint.title)
            and candidate.start_minutes == start
            and candidate.end_minutes == end
        )
    ]
    if len(kept) != len(items):
        logger.debug("Excluded by title | title=%s | removed=%s", hint.title, len(items) - len(kept))
    return kept
