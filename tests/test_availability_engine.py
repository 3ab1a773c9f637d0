from __future__ import annotations

from dataclasses import replace

import pytest

from backend.domain.models import AvailabilityQuery, BookingSource
from backend.repository.data_repository import DataRepository
from backend.services.availability_service import (
    AvailabilityEngine,
    AvailabilityValidationError,
)
from backend.services.provider_client import ProviderRequestError
from backend.services.resolver_service import ResourceResolver
from backend.services.source_adapters import (
    ClassScheduleAdapter,
    LocalEventAdapter,
    ReservationAdapter,
)
from backend.utils.config import get_settings


TUESDAY = "2026-02-10"


class FakeProviderClient:
    def __init__(self, reservations=None, classes=None, schedules=None, fail: bool = False) -> None:
        self.reservations = reservations or []
        self.classes = classes or []
        self.schedules = schedules or []
        self.fail = fail
        self.calls = 0

    def _guard(self):
        self.calls += 1
        if self.fail:
            raise ProviderRequestError("Provider returned 503")

    def list_reservations(self, target_date):
        self._guard()
        return list(self.reservations)

    def list_classes(self):
        self._guard()
        return list(self.classes)

    def list_class_schedules(self):
        self._guard()
        return list(self.schedules)


def _build_test_settings(tmp_path, filename: str, **overrides):
    get_settings.cache_clear()
    base = get_settings()
    return replace(base, database_path=tmp_path / filename, **overrides)


def _build_engine(tmp_path, filename: str, client: FakeProviderClient | None = None, **overrides):
    settings = _build_test_settings(tmp_path, filename, **overrides)
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_demo_data()
    resolver = ResourceResolver(repository, settings)
    client = client or FakeProviderClient()
    engine = AvailabilityEngine(
        resolver=resolver,
        adapters=[
            LocalEventAdapter(repository, settings),
            ReservationAdapter(client, resolver),
            ClassScheduleAdapter(client, resolver, settings),
        ],
        settings=settings,
    )
    return engine, repository, client


def _query(reference="Room 200", start="09:00", end="10:00", **overrides) -> AvailabilityQuery:
    return AvailabilityQuery(
        resource_reference=reference,
        date=overrides.pop("date", TUESDAY),
        start_time=start,
        end_time=end,
        **overrides,
    )


def test_overlapping_local_event_makes_room_unavailable(tmp_path):
    engine, repository, _ = _build_engine(tmp_path, "engine_staff.db")
    repository.create_event(
        title="Staff Meeting", start_date=TUESDAY, start_time="09:30", end_time="10:30", resource_id=155
    )

    result = engine.check_availability(_query())

    assert result.resolved
    assert not result.available
    assert result.resource is not None and result.resource.resource_id == 155
    assert len(result.conflicts) == 1
    assert result.conflicts[0].title == "Staff Meeting"
    assert result.conflicts[0].start == "9:30am"
    assert result.conflicts[0].end == "10:30am"
    assert all(status.ok for status in result.sources)


def test_class_meeting_on_other_days_does_not_block(tmp_path):
    client = FakeProviderClient(
        classes=[{"id": 10, "name": "Algebra I", "status": "active"}],
        schedules=[
            {
                "id": 1,
                "internal_class_id": 10,
                "room": {"id": 155, "description": "Room 200"},
                "day": {"description": "MWF"},
                "start_time": "1900-01-01T09:00:00Z",
                "end_time": "1900-01-01T10:00:00Z",
            }
        ],
    )
    engine, _, _ = _build_engine(tmp_path, "engine_mwf.db", client)

    result = engine.check_availability(_query())

    assert result.available
    assert result.conflicts == []


def test_class_meeting_on_matching_day_blocks(tmp_path):
    client = FakeProviderClient(
        classes=[{"id": 10, "name": "Algebra I", "status": "active"}],
        schedules=[
            {
                "id": 1,
                "internal_class_id": 10,
                "room": {"id": 155, "description": "Room 200"},
                "day": {"description": "TTh"},
                "start_time": "1900-01-01T09:00:00Z",
                "end_time": "1900-01-01T10:00:00Z",
            }
        ],
    )
    engine, _, _ = _build_engine(tmp_path, "engine_tth.db", client)

    result = engine.check_availability(_query(start="09:30", end="10:30"))

    assert not result.available
    assert [entry.source for entry in result.conflicts] == [BookingSource.CLASS_SCHEDULE]


def test_booking_ending_shortly_before_is_a_warning(tmp_path):
    engine, repository, _ = _build_engine(tmp_path, "engine_assembly.db")
    repository.create_event(
        title="Assembly", start_date=TUESDAY, start_time="08:00", end_time="08:45", resource_id=155
    )

    result = engine.check_availability(_query(start="09:00", end="09:30"))

    assert result.available
    assert result.conflicts == []
    assert len(result.warnings) == 1
    assert "Assembly" in result.warnings[0].message
    assert "15 min before" in result.warnings[0].message


def test_reservation_synced_locally_is_reported_once(tmp_path):
    client = FakeProviderClient(
        reservations=[
            {
                "resource_reservation_id": 9001,
                "resource": {"id": 155, "description": "Room 200"},
                "start_date": TUESDAY,
                "start_time": "09:30",
                "end_time": "10:30",
                "description": "Staff Meeting",
            }
        ]
    )
    engine, repository, _ = _build_engine(tmp_path, "engine_synced.db", client)
    repository.create_event(
        title="Staff Meeting",
        start_date=TUESDAY,
        start_time="09:30",
        end_time="10:30",
        resource_id=155,
        external_reservation_id="9001",
    )

    result = engine.check_availability(_query())

    assert not result.available
    assert len(result.conflicts) == 1
    assert result.conflicts[0].source is BookingSource.LOCAL_EVENT


def test_unresolved_reference_reports_unknown_without_querying_sources(tmp_path):
    engine, _, client = _build_engine(tmp_path, "engine_unresolved.db")

    result = engine.check_availability(_query(reference="Observatory"))

    assert not result.resolved
    assert not result.available
    assert result.resource is None
    assert "Observatory" in result.message
    assert client.calls == 0


def test_failing_source_degrades_to_partial_answer(tmp_path):
    client = FakeProviderClient(fail=True)
    engine, repository, _ = _build_engine(tmp_path, "engine_partial.db", client)
    repository.create_event(
        title="Staff Meeting", start_date=TUESDAY, start_time="09:30", end_time="10:30", resource_id=155
    )

    result = engine.check_availability(_query())

    assert not result.available
    assert len(result.conflicts) == 1
    failed = {source for source in result.failed_sources}
    assert failed == {BookingSource.EXTERNAL_RESERVATION, BookingSource.CLASS_SCHEDULE}
    assert result.message.startswith("Partial answer")
    local_status = next(item for item in result.sources if item.source is BookingSource.LOCAL_EVENT)
    assert local_status.ok and local_status.candidate_count == 1


def test_editing_a_booking_excludes_it_and_its_reservation_twin(tmp_path):
    client = FakeProviderClient(
        reservations=[
            {
                "id": 9001,
                "resource_id": 155,
                "start_date": TUESDAY,
                "start_time": "09:00",
                "end_time": "10:00",
                "description": "Staff Meeting",
            }
        ]
    )
    engine, repository, _ = _build_engine(tmp_path, "engine_exclude.db", client)
    event_id = repository.create_event(
        title="Staff Meeting",
        start_date=TUESDAY,
        start_time="09:00",
        end_time="10:00",
        resource_id=155,
        external_reservation_id="9001",
    )

    assert not engine.check_availability(_query()).available
    result = engine.check_availability(_query(exclude_booking_id=event_id))

    assert result.available
    assert result.conflicts == []


def test_unattributed_reservations_are_counted_not_reported(tmp_path):
    client = FakeProviderClient(
        reservations=[
            {
                "id": 1,
                "resource": "Observatory",
                "start_date": TUESDAY,
                "start_time": "09:00",
                "end_time": "10:00",
            }
        ]
    )
    engine, _, _ = _build_engine(tmp_path, "engine_unattributed.db", client)

    result = engine.check_availability(_query())

    assert result.available
    assert result.unattributed_count == 1


def test_foreign_id_only_query_resolves(tmp_path):
    engine, _, _ = _build_engine(tmp_path, "engine_foreign.db")

    result = engine.check_availability(_query(reference=None, resource_foreign_id=180))

    assert result.resolved
    assert result.resource.name == "Gym"


def test_booking_on_gym_side_blocks_whole_gym(tmp_path):
    engine, repository, _ = _build_engine(tmp_path, "engine_gym.db")
    repository.create_event(
        title="Volleyball", start_date=TUESDAY, start_time="09:00", end_time="10:00", resource_id=181
    )

    gym = engine.check_availability(_query(reference="Gym"))
    other_side = engine.check_availability(_query(reference="Gym Side 2"))

    assert not gym.available
    assert "shared space" in gym.conflicts[0].message
    assert other_side.available
    assert [entry.title for entry in other_side.adjacent] == ["Volleyball"]


def test_legacy_location_naming_a_sibling_is_advisory_only(tmp_path):
    engine, repository, _ = _build_engine(tmp_path, "engine_sibling_location.db")
    repository.create_event(
        title="Lab", start_date=TUESDAY, start_time="09:00", end_time="10:00", location="313A"
    )

    result = engine.check_availability(_query(reference="313"))

    assert result.available
    assert result.conflicts == []
    assert [(entry.title, entry.resource_id) for entry in result.adjacent] == [("Lab", 165)]


def test_back_to_back_booking_is_not_a_warning(tmp_path):
    engine, repository, _ = _build_engine(tmp_path, "engine_back_to_back.db")
    repository.create_event(
        title="Before", start_date=TUESDAY, start_time="08:00", end_time="09:00", resource_id=155
    )

    result = engine.check_availability(_query(start="09:00", end="10:00"))

    assert result.available
    assert result.conflicts == []
    assert result.warnings == []


@pytest.mark.parametrize(
    "query, field",
    [
        (_query(reference="  "), "resource_reference"),
        (_query(date="02/10/2026"), "date"),
        (_query(date="2026-02-30"), "date"),
        (_query(start="noon"), "start_time"),
        (_query(end="later"), "end_time"),
        (_query(start="10:00", end="09:00"), "end_time"),
        (_query(start="10:00", end="10:00"), "end_time"),
        (_query(resource_foreign_id=0), "resource_foreign_id"),
        (_query(exclude_title="Staff Meeting", exclude_start_time="soon"), "exclude_start_time"),
    ],
)
def test_invalid_queries_raise_before_any_io(tmp_path, query, field):
    engine, _, client = _build_engine(tmp_path, "engine_invalid.db")

    with pytest.raises(AvailabilityValidationError) as exc_info:
        engine.check_availability(query)

    assert exc_info.value.field == field
    assert client.calls == 0


def test_same_query_gives_same_answer(tmp_path):
    engine, repository, _ = _build_engine(tmp_path, "engine_repeat.db")
    repository.create_event(
        title="Staff Meeting", start_date=TUESDAY, start_time="09:30", end_time="10:30", resource_id=155
    )

    first = engine.check_availability(_query())
    second = engine.check_availability(_query())

    assert first.available == second.available
    assert [entry.to_dict() for entry in first.conflicts] == [entry.to_dict() for entry in second.conflicts]
