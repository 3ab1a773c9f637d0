from __future__ import annotations

from dataclasses import replace

from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.controllers.alias_controller import router as alias_router
from backend.controllers.availability_controller import router as availability_router
from backend.repository.data_repository import DataRepository
from backend.services.auth_service import AuthService
from backend.services.availability_service import AvailabilityEngine
from backend.services.provider_client import ProviderTokenCache
from backend.services.resolver_service import ResourceResolver
from backend.services.source_adapters import LocalEventAdapter
from backend.utils.config import get_settings


TUESDAY = "2026-02-10"


def _build_test_settings(tmp_path, filename: str, admin_token: str | None):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        admin_token=admin_token,
        provider_client_id=None,
        provider_client_secret=None,
    )


def _build_test_app(tmp_path, admin_token: str | None = None) -> tuple[FastAPI, DataRepository]:
    settings = _build_test_settings(tmp_path, "availability_flow.db", admin_token)
    repository = DataRepository(settings)
    repository.initialize_database()
    repository.seed_demo_data()

    resolver = ResourceResolver(repository=repository, settings=settings)
    engine = AvailabilityEngine(
        resolver=resolver,
        adapters=[LocalEventAdapter(repository=repository, settings=settings)],
        settings=settings,
    )

    app = FastAPI()
    app.include_router(availability_router)
    app.include_router(alias_router)
    app.state.repository = repository
    app.state.resolver = resolver
    app.state.availability_engine = engine
    app.state.token_cache = ProviderTokenCache(settings=settings)
    app.state.auth_service = AuthService(settings=settings)
    return app, repository


def test_availability_check_end_to_end(tmp_path):
    app, repository = _build_test_app(tmp_path)
    repository.create_event(
        title="Staff Meeting", start_date=TUESDAY, start_time="09:30", end_time="10:30", resource_id=155
    )
    repository.create_event(
        title="Assembly", start_date=TUESDAY, start_time="08:00", end_time="08:45", resource_id=155
    )

    with TestClient(app) as client:
        busy = client.post(
            "/availability/check",
            json={
                "resource_reference": "Room 200",
                "date": TUESDAY,
                "start_time": "09:00",
                "end_time": "10:00",
            },
        )
        assert busy.status_code == 200
        body = busy.json()
        assert body["available"] is False
        assert body["resolved"] is True
        assert body["resource"]["resource_id"] == 155
        assert len(body["conflicts"]) == 1
        conflict = body["conflicts"][0]
        assert conflict["source"] == "local_event"
        assert conflict["title"] == "Staff Meeting"
        assert conflict["start"] == "9:30am"
        assert conflict["end"] == "10:30am"
        assert body["failed_sources"] == []

        free = client.get(
            "/availability/check",
            params={
                "resource_reference": "200",
                "date": TUESDAY,
                "start_time": "9am",
                "end_time": "9:30am",
            },
        )
        assert free.status_code == 200
        assert free.json()["available"] is True
        assert [item["title"] for item in free.json()["warnings"]] == ["Assembly"]


def test_availability_check_validation_errors_name_the_field(tmp_path):
    app, _ = _build_test_app(tmp_path)

    with TestClient(app) as client:
        response = client.post(
            "/availability/check",
            json={
                "resource_reference": "Room 200",
                "date": "2026-13-01",
                "start_time": "09:00",
                "end_time": "10:00",
            },
        )
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "date"

        response = client.post(
            "/availability/check",
            json={
                "resource_reference": "Room 200",
                "date": TUESDAY,
                "start_time": "11:00",
                "end_time": "10:00",
            },
        )
        assert response.status_code == 400
        assert response.json()["detail"]["field"] == "end_time"


def test_unresolved_reference_is_not_reported_available(tmp_path):
    app, _ = _build_test_app(tmp_path)

    with TestClient(app) as client:
        response = client.post(
            "/availability/check",
            json={
                "resource_reference": "Observatory",
                "date": TUESDAY,
                "start_time": "09:00",
                "end_time": "10:00",
            },
        )

    assert response.status_code == 200
    body = response.json()
    assert body["resolved"] is False
    assert body["available"] is False
    assert body["resource"] is None


def test_resource_catalog_and_resolution_preview(tmp_path):
    app, _ = _build_test_app(tmp_path)

    with TestClient(app) as client:
        catalog = client.get("/resources")
        assert catalog.status_code == 200
        assert any(item["name"] == "Gym" for item in catalog.json())

        preview = client.get("/resources/resolve", params={"reference": "Gym Side 1"})
        assert preview.status_code == 200
        body = preview.json()
        assert body["resolved"] is True
        assert body["resource"]["resource_id"] == 181
        assert [item["resource_id"] for item in body["blocking"]] == [180]
        assert [item["resource_id"] for item in body["adjacent"]] == [182]

        missing = client.get("/resources/resolve", params={"reference": "Observatory"})
        assert missing.json()["resolved"] is False

        empty = client.get("/resources/resolve")
        assert empty.status_code == 400


def test_admin_alias_flow_requires_token(tmp_path):
    admin_token = "secret-admin-token"
    app, repository = _build_test_app(tmp_path, admin_token=admin_token)
    headers = {"Authorization": f"Bearer {admin_token}"}

    with TestClient(app) as client:
        assert client.get("/admin/resource-aliases").status_code == 401
        assert (
            client.get(
                "/admin/resource-aliases",
                headers={"Authorization": "Bearer wrong"},
            ).status_code
            == 401
        )

        created = client.post(
            "/admin/resource-aliases",
            json={"resource_id": 170, "alias_kind": "name", "alias_value": "Main Hall"},
            headers=headers,
        )
        assert created.status_code == 200
        alias = created.json()
        assert alias["alias_value"] == "main hall"

        # The new alias is visible to availability checks straight away.
        check = client.post(
            "/availability/check",
            json={
                "resource_reference": "Main Hall",
                "date": TUESDAY,
                "start_time": "09:00",
                "end_time": "10:00",
            },
        )
        assert check.json()["resource"]["resource_id"] == 170

        listed = client.get(
            "/admin/resource-aliases",
            params={"resource_id": 170},
            headers=headers,
        )
        assert any(item["alias_id"] == alias["alias_id"] for item in listed.json())

        missing_resource = client.post(
            "/admin/resource-aliases",
            json={"resource_id": 4242, "alias_kind": "name", "alias_value": "Nowhere"},
            headers=headers,
        )
        assert missing_resource.status_code == 404

        deleted = client.delete(f"/admin/resource-aliases/{alias['alias_id']}", headers=headers)
        assert deleted.status_code == 204
        again = client.delete(f"/admin/resource-aliases/{alias['alias_id']}", headers=headers)
        assert again.status_code == 404

        populated = client.post("/admin/resource-aliases/auto-populate", headers=headers)
        assert populated.status_code == 200
        assert populated.json()["total_aliases"] == repository.count_aliases()

        cleared = client.post("/admin/provider-token/clear", headers=headers)
        assert cleared.status_code == 200
        assert cleared.json() == {"cleared": True, "scope": "*"}


def test_admin_endpoints_open_when_no_token_configured(tmp_path):
    app, _ = _build_test_app(tmp_path, admin_token=None)

    with TestClient(app) as client:
        assert client.get("/admin/resource-aliases").status_code == 200


def test_create_app_wires_startup_and_reports_provider_failures(tmp_path):
    from app import create_app

    settings = replace(
        _build_test_settings(tmp_path, "create_app.db", admin_token=None),
        seed_demo_data=True,
    )

    with TestClient(create_app(settings)) as client:
        response = client.post(
            "/availability/check",
            json={
                "resource_reference": "Beit Midrash",
                "date": TUESDAY,
                "start_time": "09:00",
                "end_time": "10:00",
            },
        )

    assert response.status_code == 200
    body = response.json()
    assert body["available"] is True
    assert sorted(body["failed_sources"]) == ["class_schedule", "external_reservation"]
    assert body["message"].startswith("Partial answer")
