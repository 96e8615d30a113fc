from __future__ import annotations

import pytest

from src.smart_attendance.smart_attendance.main import create_app

OFFICE = {"latitude": 22.4994, "longitude": 91.7773}
NEAR_OFFICE = {"lat": 22.4994, "lng": 91.7779}
FAR_AWAY = {"lat": 22.5200, "lng": 91.8000}

# Capture times in May 2024, well past the default retention window.
T0_MS = 1715590800000
T1_MS = T0_MS + 60_000


@pytest.fixture
def app():
    app = create_app("config.testing")
    yield app
    app.extensions["smart_attendance"].shutdown()


@pytest.fixture
def client(app):
    client = app.test_client()
    client.post("/api/geofences", json={"id": "office", "owner_id": "acme", "radius_meters": 100, **OFFICE})
    return client


def test_check_in_then_check_out(client):
    resp = client.post("/api/attendance/check-in", json={"subject_id": "emp-1", "owner_id": "acme", **NEAR_OFFICE})
    assert resp.status_code == 201
    record = resp.get_json()["attendance"]
    assert record["state"] == "CHECKED_IN"
    assert record["method"] == "MANUAL"
    assert record["inside_geofence_at_check_in"] is True
    assert record["geofence_id"] == "office"

    resp = client.post("/api/attendance/check-out", json={"subject_id": "emp-1", **NEAR_OFFICE})
    assert resp.status_code == 200
    record = resp.get_json()["attendance"]
    assert record["state"] == "CHECKED_OUT"
    assert record["work_minutes"] is not None


def test_second_check_in_is_a_conflict(client):
    body = {"subject_id": "emp-1", "owner_id": "acme", **NEAR_OFFICE}
    assert client.post("/api/attendance/check-in", json=body).status_code == 201

    resp = client.post("/api/attendance/check-in", json=body)

    assert resp.status_code == 409
    assert resp.get_json()["message"] == "already checked in"


def test_check_out_without_check_in_is_a_conflict(client):
    resp = client.post("/api/attendance/check-out", json={"subject_id": "emp-9", **NEAR_OFFICE})

    assert resp.status_code == 409
    assert resp.get_json()["message"] == "not checked in yet"


def test_check_in_outside_geofence_is_recorded(client):
    resp = client.post("/api/attendance/check-in", json={"subject_id": "emp-2", "owner_id": "acme", **FAR_AWAY})

    assert resp.status_code == 201
    assert resp.get_json()["attendance"]["inside_geofence_at_check_in"] is False


def test_missing_coordinate_is_location_unavailable(client):
    resp = client.post("/api/attendance/check-in", json={"subject_id": "emp-1", "owner_id": "acme"})

    assert resp.status_code == 400
    assert resp.get_json()["message"] == "location unavailable"


def test_check_out_unknown_attendance_id_is_not_found(client):
    resp = client.post("/api/attendance/check-out", json={"attendance_id": "nope", **NEAR_OFFICE})

    assert resp.status_code == 404


def test_qr_toggles_between_check_in_and_check_out(client):
    body = {"qr_code": "TEST_QR_TOKEN", "subject_id": "emp-3", "owner_id": "acme", **NEAR_OFFICE}

    first = client.post("/api/attendance/qr", json=body).get_json()
    second = client.post("/api/attendance/qr", json=body).get_json()

    assert first["action"] == "check_in"
    assert first["attendance"]["method"] == "QR_CODE"
    assert second["action"] == "check_out"
    assert second["attendance"]["state"] == "CHECKED_OUT"


def test_qr_rejects_wrong_token(client):
    resp = client.post(
        "/api/attendance/qr",
        json={"qr_code": "WRONG", "subject_id": "emp-3", "owner_id": "acme", **NEAR_OFFICE},
    )

    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Invalid QR code"


def test_today_history_and_override(client):
    client.post("/api/attendance/check-in", json={"subject_id": "emp-4", "owner_id": "acme", **NEAR_OFFICE})

    today = client.get("/api/attendance/today?subject_id=emp-4").get_json()["attendance"]
    assert today["subject_id"] == "emp-4"

    history = client.get("/api/attendance/history?subject_id=emp-4").get_json()["records"]
    assert [r["id"] for r in history] == [today["id"]]

    missing_reason = client.post(f"/api/attendance/{today['id']}/override", json={"admin_id": "boss", "state": "ABSENT"})
    assert missing_reason.status_code == 400

    resp = client.post(
        f"/api/attendance/{today['id']}/override",
        json={"admin_id": "boss", "reason": "sick leave", "state": "ABSENT"},
    )
    assert resp.status_code == 200
    record = resp.get_json()["attendance"]
    assert record["state"] == "ABSENT"
    assert record["overridden"] is True
    assert record["overridden_by"] == "boss"


def test_stats_endpoint(client):
    client.post("/api/attendance/check-in", json={"subject_id": "emp-5", "owner_id": "acme", **NEAR_OFFICE})

    resp = client.get("/api/attendance/stats?subject_id=emp-5")

    assert resp.status_code == 200
    data = resp.get_json()
    assert data["stats"]["present_days"] == 1
    assert "punctuality_rate" in data
    assert "current_streak" in data


def test_stats_rejects_inverted_range(client):
    resp = client.get("/api/attendance/stats?subject_id=emp-5&start=2024-05-10&end=2024-05-01")

    assert resp.status_code == 400


def test_qr_image_is_png(client):
    resp = client.get("/admin/qr/image")

    assert resp.status_code == 200
    assert resp.mimetype == "image/png"
    assert resp.data[:8] == b"\x89PNG\r\n\x1a\n"


def test_geofence_crud_and_evaluate(client):
    listed = client.get("/api/geofences?owner_id=acme").get_json()["geofences"]
    assert [g["id"] for g in listed] == ["office"]

    inside = client.post("/api/geofences/evaluate", json={"owner_id": "acme", **NEAR_OFFICE}).get_json()
    assert inside["inside"] is True and inside["geofence_id"] == "office"

    outside = client.post("/api/geofences/evaluate", json={"owner_id": "acme", **FAR_AWAY}).get_json()
    assert outside["inside"] is False

    assert client.delete("/api/geofences/office").status_code == 200
    assert client.delete("/api/geofences/office").status_code == 404
    assert client.get("/api/geofences?owner_id=acme").get_json()["geofences"] == []


def test_geofence_create_rejects_bad_radius(client):
    resp = client.post("/api/geofences", json={"owner_id": "acme", "radius_meters": 0, **OFFICE})

    assert resp.status_code == 400


def test_location_ingest_flush_history_and_prune(client):
    samples = [
        {**FAR_AWAY, "accuracy": 5, "timestamp": T0_MS},
        {**NEAR_OFFICE, "accuracy": 5, "timestamp": T1_MS},
    ]

    resp = client.post("/api/locations", json={"subject_id": "emp-6", "owner_id": "acme", "samples": samples})
    assert resp.status_code == 201
    data = resp.get_json()
    assert [r["inside"] for r in data["results"]] == [False, True]
    assert data["results"][1]["events"] == [{"geofence_id": "office", "type": "enter"}]
    assert data["pending"] == 2

    again = client.post("/api/locations", json={"subject_id": "emp-6", "owner_id": "acme", "samples": samples})
    assert [r["accepted"] for r in again.get_json()["results"]] == [False, False]

    flushed = client.post("/api/locations/flush").get_json()
    assert flushed["written"] == 2 and flushed["pending"] == 0

    history = client.get("/api/locations/history?subject_id=emp-6").get_json()["samples"]
    assert [s["id"] for s in history] == [f"emp-6-{T1_MS}", f"emp-6-{T0_MS}"]

    pruned = client.post("/api/locations/prune", json={"subject_id": "emp-6"}).get_json()
    assert pruned["remote_deleted"] == 2
    assert pruned["local_deleted"] == 2
    assert client.get("/api/locations/history?subject_id=emp-6").get_json()["samples"] == []


def test_location_flush_reports_remote_outage(app, client):
    client.post(
        "/api/locations",
        json={"subject_id": "emp-7", "owner_id": "acme", "sample": {**NEAR_OFFICE, "timestamp": T0_MS}},
    )
    app.extensions["smart_attendance"].remote.available = False

    resp = client.post("/api/locations/flush")

    assert resp.status_code == 503
    assert resp.get_json()["pending"] == 1


def test_location_ingest_requires_samples(client):
    resp = client.post("/api/locations", json={"subject_id": "emp-8", "owner_id": "acme"})

    assert resp.status_code == 400


def test_location_ingest_reports_each_rejected_sample(client):
    samples = [
        {**NEAR_OFFICE, "timestamp": T0_MS},
        {"lat": 200.0, "lng": 91.7773, "timestamp": T1_MS},
        {**NEAR_OFFICE, "timestamp": T1_MS + 60_000},
    ]

    resp = client.post("/api/locations", json={"subject_id": "emp-10", "owner_id": "acme", "samples": samples})

    assert resp.status_code == 201
    data = resp.get_json()
    assert [r["rejected"] for r in data["results"]] == [False, True, False]
    assert data["results"][1] == {"index": 1, "accepted": False, "rejected": True, "error": "location unavailable"}
    assert data["rejected"] == 1
    assert data["pending"] == 2


def test_location_ingest_with_only_invalid_samples_is_rejected(client):
    resp = client.post(
        "/api/locations",
        json={"subject_id": "emp-11", "owner_id": "acme", "samples": [{"lat": 22.4994}, "not-a-sample"]},
    )

    assert resp.status_code == 400
    assert [r["rejected"] for r in resp.get_json()["results"]] == [True, True]
