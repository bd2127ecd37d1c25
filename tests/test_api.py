"""API tests for the local shell adapter."""

from __future__ import annotations

import asyncio
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient

from faultlog.dependencies import get_report_store
from faultlog.main import app
from faultlog.routers import reports as report_routes
from faultlog.routers.exports import content_disposition
from tests.conftest import make_image_bytes


@pytest.fixture
def client(store):
    app.dependency_overrides[get_report_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client: TestClient, site: str = "Uta", comment: str = "Crack in wall") -> dict:
    response = client.post(
        "/reports",
        data={"site": site, "comment": comment, "lat": "41.0", "lng": "12.0"},
        files=[("files", ("a.jpg", make_image_bytes(), "image/jpeg"))],
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_sites_lists_configured_sites(client) -> None:
    response = client.get("/sites")

    assert response.status_code == 200
    assert "Villacidro 2" in response.json()


def test_create_returns_camel_case_report(client) -> None:
    body = _create(client)

    assert body["status"] == "open"
    assert body["closingComment"] == ""
    assert body["photos"][0]["lat"] == 41.0
    assert body["photos"][0]["dataUrl"].startswith("data:image/jpeg;base64,")


def test_create_without_photos_is_rejected(client) -> None:
    response = client.post("/reports", data={"site": "Uta", "comment": "x"})

    assert response.status_code == 400
    assert response.json()["error"] == "EmptyPhotoSet"


def test_full_lifecycle(client) -> None:
    report_id = _create(client)["id"]

    assert client.post(f"/reports/{report_id}/closing").json() == {"closing_id": report_id}
    bad = client.post(f"/reports/{report_id}/complete", data={"closing_comment": " "})
    assert bad.status_code == 400

    done = client.post(
        f"/reports/{report_id}/complete",
        data={"closing_comment": "Repaired"},
        files=[("files", ("b.jpg", make_image_bytes(), "image/jpeg"))],
    ).json()
    assert done["status"] == "completed"
    assert len(done["closingPhotos"]) == 1

    edit = client.put(f"/reports/{report_id}", json={"comment": "late"})
    assert edit.status_code == 409

    amended = client.post(f"/reports/{report_id}/amend", data={"closing_comment": "Repaired twice"}).json()
    assert amended["closingComment"] == "Repaired twice"

    reopened = client.post(f"/reports/{report_id}/reopen").json()
    assert reopened["status"] == "open"
    assert reopened["closingPhotos"] == []

    assert client.delete(f"/reports/{report_id}").json()["status"] == "deleted"
    assert client.get(f"/reports/{report_id}").status_code == 404


def test_list_filters(client) -> None:
    _create(client, site="Uta", comment="Crack")
    _create(client, site="Rovigo", comment="Leak")

    assert [r["site"] for r in client.get("/reports", params={"site": "Rovigo"}).json()] == ["Rovigo"]
    assert [r["comment"] for r in client.get("/reports", params={"q": "crack"}).json()] == ["Crack"]


def test_markers(client) -> None:
    _create(client)

    body = client.get("/reports/markers").json()

    assert body["center"] == {"lat": 41.0, "lng": 12.0, "accuracy": None}
    assert body["markers"][0]["color"] == "#f97316"
    assert body["markers"][0]["popupText"].startswith("Uta")


def test_position_sample_picks_best_fix(client) -> None:
    fixes = [{"lat": 1.0 + i, "lng": 2.0, "accuracy": a} for i, a in enumerate([20, 8, 15, 3, 30])]

    body = client.post("/position/sample", json={"fixes": fixes, "count": 3}).json()

    assert body["accuracy"] == 8


def test_position_sample_without_fixes_uses_default(client) -> None:
    body = client.post("/position/sample", json={"fixes": []}).json()

    assert (body["lat"], body["lng"]) == (41.8719, 12.5674)


def test_export_download(client) -> None:
    _create(client, site="Uta")
    _create(client, site="Rovigo")

    response = client.get("/exports/json", params={"site": "Uta"})

    assert response.status_code == 200
    assert response.headers["content-disposition"] == 'attachment; filename="export_Uta.json"'
    assert [r["site"] for r in response.json()] == ["Uta"]


def test_export_unknown_format_is_rejected(client) -> None:
    assert client.get("/exports/docx").status_code == 422


def test_export_filename_with_space_is_quoted(client) -> None:
    _create(client, site="Serrotti EST")

    response = client.get("/exports/csv", params={"site": "Serrotti EST"})

    assert response.headers["content-disposition"] == 'attachment; filename="export_Serrotti EST.csv"'


def test_export_filename_with_accents_has_ascii_fallback() -> None:
    assert content_disposition("export_Città.pdf") == (
        'attachment; filename="export_Citta.pdf"; '
        "filename*=UTF-8''export_Citt%C3%A0.pdf"
    )


@pytest.mark.parametrize("path", ["/reports", "/reports/markers", "/exports/csv"])
def test_unknown_status_filter_is_rejected(client, path) -> None:
    assert client.get(path, params={"status": "Completed"}).status_code == 422


def test_photo_routes_run_in_threadpool() -> None:
    for endpoint in (report_routes.create_report, report_routes.complete_report, report_routes.amend_report):
        assert not asyncio.iscoroutinefunction(endpoint)


def _sample_stream(client: TestClient, messages: list, **params) -> tuple:
    with client.websocket_connect(f"/position/stream?{urlencode(params)}") as ws:
        assert ws.receive_json() == {"type": "ready"}
        for message in messages:
            ws.send_json(message)
        seen = []
        while True:
            reply = ws.receive_json()
            if reply["type"] == "position":
                return reply, seen
            seen.append(reply["seen"])


def test_position_stream_picks_best_of_live_fixes(client) -> None:
    fixes = [{"type": "fix", "lat": 1.0 + i, "lng": 2.0, "accuracy": a} for i, a in enumerate([20, 8, 15])]

    position, seen = _sample_stream(client, fixes, count=3, timeout_ms=5000)

    assert (position["lat"], position["accuracy"]) == (2.0, 8)
    assert seen == [1, 2, 3]


def test_position_stream_times_out_with_best_so_far(client) -> None:
    fix = {"type": "fix", "lat": 45.0, "lng": 9.0, "accuracy": 12}

    position, _ = _sample_stream(client, [fix], count=5, timeout_ms=200)

    assert (position["lat"], position["lng"]) == (45.0, 9.0)


def test_position_stream_sensor_error_uses_default(client) -> None:
    position, seen = _sample_stream(client, [{"type": "error"}], count=5, timeout_ms=5000)

    assert (position["lat"], position["lng"]) == (41.8719, 12.5674)
    assert seen == []
