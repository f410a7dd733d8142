import json
import logging
import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

os.environ.setdefault("SMARTHOME_ENV", "test")
ROOT_DIR = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT_DIR))

import backend.main as backend_main  # noqa: E402
from backend.db.metrics import MetricStore  # noqa: E402
from backend.db.ownership import OwnershipStore  # noqa: E402
from backend.main import app  # noqa: E402
from backend.observability import LOGGER_NAME  # noqa: E402

PASSWORD = "StrongPass123!"


@pytest.fixture(autouse=True)
def reset_state():
    backend_main.reset_db()
    yield


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def _auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _login(client: TestClient, email: str) -> dict[str, str]:
    response = client.post("/api/v1/auth/register", json={"email": email, "password": PASSWORD})
    assert response.status_code == 201
    response = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200
    return _auth_header(response.json()["access_token"])


def _create_house(client: TestClient, headers: dict[str, str], name: str = "Home") -> int:
    response = client.post("/api/v1/houses", json={"name": name, "address": "1 Main St"}, headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


def _create_room(client: TestClient, headers: dict[str, str], house_id: int, name: str = "Living") -> int:
    response = client.post(
        f"/api/v1/houses/{house_id}/rooms",
        json={"name": name, "room_type": "living"},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["id"]


def _create_device(client: TestClient, headers: dict[str, str], room_id: int, name: str = "Sensor") -> int:
    response = client.post(
        "/api/v1/devices",
        json={"name": name, "device_type": "sensor", "room_id": room_id},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["id"]


def _post_metric(
    client: TestClient,
    headers: dict[str, str],
    device_id: int,
    metric_type: str,
    value: float,
    unit: str,
    measured_at: str | None = None,
) -> dict:
    payload = {"device_id": device_id, "metric_type": metric_type, "metric_value": value, "unit": unit}
    if measured_at:
        payload["measured_at"] = measured_at
    response = client.post("/api/v1/metrics", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def home(client):
    headers = _login(client, "owner@example.com")
    house_id = _create_house(client, headers)
    room_id = _create_room(client, headers, house_id)
    device_id = _create_device(client, headers, room_id)
    return {"headers": headers, "house": house_id, "room": room_id, "device": device_id}


def test_create_metric_defaults_measured_at(client, home):
    body = _post_metric(client, home["headers"], home["device"], "temp", 21.5, "C")
    assert body["device_id"] == home["device"]
    assert body["metric_type"] == "temp"
    assert body["metric_value"] == 21.5
    assert body["measured_at"]


def test_create_metric_requires_authentication(client, home):
    payload = {"device_id": home["device"], "metric_type": "temp", "metric_value": 1.0, "unit": "C"}
    response = client.post("/api/v1/metrics", json=payload)
    assert response.status_code == 401


def test_create_metric_rejects_blank_metric_type(client, home):
    payload = {"device_id": home["device"], "metric_type": "  ", "metric_value": 1.0, "unit": "C"}
    response = client.post("/api/v1/metrics", json=payload, headers=home["headers"])
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_create_metric_rejects_non_numeric_value(client, home):
    payload = {"device_id": home["device"], "metric_type": "temp", "metric_value": "warm", "unit": "C"}
    response = client.post("/api/v1/metrics", json=payload, headers=home["headers"])
    assert response.status_code == 422


def test_create_metric_for_unknown_device_is_not_found(client, home):
    payload = {"device_id": 9999, "metric_type": "temp", "metric_value": 1.0, "unit": "C"}
    response = client.post("/api/v1/metrics", json=payload, headers=home["headers"])
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


def test_create_metric_for_foreign_device_is_denied(client, home):
    intruder = _login(client, "intruder@example.com")
    payload = {"device_id": home["device"], "metric_type": "temp", "metric_value": 1.0, "unit": "C"}
    response = client.post("/api/v1/metrics", json=payload, headers=intruder)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "ACCESS_DENIED"


@pytest.mark.parametrize("aggregate", [json.dumps([{"metric_type": "temp", "fn": "Avg"}]), "avg:temp"])
def test_room_average_aggregate(client, home, aggregate):
    _post_metric(client, home["headers"], home["device"], "temp", 20.0, "C")
    _post_metric(client, home["headers"], home["device"], "temp", 30.0, "C")
    response = client.get(
        f"/api/v1/rooms/{home['room']}/metrics",
        params={"aggregate": aggregate},
        headers=home["headers"],
    )
    assert response.status_code == 200
    rows = response.json()
    assert len(rows) == 1
    assert rows[0]["metric_type"] == "temp"
    assert rows[0]["unit"] == "C"
    assert rows[0]["metric_value"] == pytest.approx(25.0)
    assert rows[0]["aggregate"] == "avg"


def test_foreign_house_metrics_are_denied(client):
    u1 = _login(client, "u1@example.com")
    u2 = _login(client, "u2@example.com")
    h1 = _create_house(client, u1, "H1")
    h2 = _create_house(client, u2, "H2")
    d1 = _create_device(client, u1, _create_room(client, u1, h1))
    d2 = _create_device(client, u2, _create_room(client, u2, h2))
    _post_metric(client, u1, d1, "temp", 1.0, "C")
    _post_metric(client, u2, d2, "temp", 2.0, "C")

    response = client.get(f"/api/v1/houses/{h2}/metrics", headers=u1)
    assert response.status_code == 403
    body = response.json()
    assert body["error"]["code"] == "ACCESS_DENIED"
    assert "metric_value" not in response.text

    latest = client.get(f"/api/v1/houses/{h2}/metrics/latest", headers=u1)
    assert latest.status_code == 403


def test_room_without_devices_returns_empty_list(client, home):
    empty_room = _create_room(client, home["headers"], home["house"], "Attic")
    response = client.get(f"/api/v1/rooms/{empty_room}/metrics", headers=home["headers"])
    assert response.status_code == 200
    assert response.json() == []


def test_time_window_filter(client, home):
    old = _post_metric(client, home["headers"], home["device"], "temp", 10.0, "C", "2026-01-01T00:00:00Z")
    inside = _post_metric(client, home["headers"], home["device"], "temp", 20.0, "C", "2026-01-05T12:00:00Z")
    response = client.get(
        "/api/v1/metrics",
        params={"device": home["device"], "from": "2026-01-02T00:00:00Z", "to": "2026-01-10T00:00:00Z"},
        headers=home["headers"],
    )
    assert response.status_code == 200
    ids = [row["id"] for row in response.json()]
    assert inside["id"] in ids
    assert old["id"] not in ids


def test_from_after_to_is_rejected(client, home):
    response = client.get(
        f"/api/v1/devices/{home['device']}/metrics",
        params={"from": "2026-02-01T00:00:00Z", "to": "2026-01-01T00:00:00Z"},
        headers=home["headers"],
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_filters_are_order_independent(client, home):
    headers = home["headers"]
    _post_metric(client, headers, home["device"], "temp", 18.0, "C", "2026-03-01T08:00:00Z")
    _post_metric(client, headers, home["device"], "temp", 64.4, "F", "2026-03-01T09:00:00Z")
    _post_metric(client, headers, home["device"], "humidity", 40.0, "%", "2026-03-01T10:00:00Z")
    _post_metric(client, headers, home["device"], "temp", 19.0, "C", "2026-03-02T08:00:00Z")
    params = [
        ("unit", "C"),
        ("metric_type", "temp"),
        ("from", "2026-03-01T00:00:00Z"),
        ("to", "2026-03-03T00:00:00Z"),
    ]
    url = f"/api/v1/houses/{home['house']}/metrics"
    forward = client.get(url, params=params, headers=headers)
    backward = client.get(url, params=list(reversed(params)), headers=headers)
    assert forward.status_code == 200
    assert forward.json() == backward.json()
    assert [row["metric_value"] for row in forward.json()] == [18.0, 19.0]


def test_average_matches_sum_over_count(client, home):
    headers = home["headers"]
    for value in (3.0, 4.5, 10.0, 1.5):
        _post_metric(client, headers, home["device"], "power", value, "W")
    _post_metric(client, headers, home["device"], "temp", 99.0, "C")

    flat = client.get(
        f"/api/v1/rooms/{home['room']}/metrics", params={"metric_type": "power"}, headers=headers
    ).json()
    response = client.get(
        f"/api/v1/rooms/{home['room']}/metrics",
        params=[("aggregate", "avg:power"), ("aggregate", "sum:power")],
        headers=headers,
    )
    assert response.status_code == 200
    rows = response.json()
    assert [row["aggregate"] for row in rows] == ["avg", "sum"]
    assert rows[0]["metric_value"] == pytest.approx(rows[1]["metric_value"] / len(flat))


def test_multiple_aggregates_follow_request_order(client, home):
    headers = home["headers"]
    _post_metric(client, headers, home["device"], "temp", 20.0, "C")
    _post_metric(client, headers, home["device"], "temp", 22.0, "C")
    _post_metric(client, headers, home["device"], "humidity", 50.0, "%")
    response = client.get(
        f"/api/v1/devices/{home['device']}/metrics",
        params=[("aggregate", "max:temp"), ("aggregate", "min:humidity"), ("aggregate", "min:temp")],
        headers=headers,
    )
    assert response.status_code == 200
    assert [(row["aggregate"], row["metric_type"], row["metric_value"]) for row in response.json()] == [
        ("max", "temp", 22.0),
        ("min", "humidity", 50.0),
        ("min", "temp", 20.0),
    ]


def test_aggregate_groups_by_unit(client, home):
    headers = home["headers"]
    _post_metric(client, headers, home["device"], "temp", 20.0, "C")
    _post_metric(client, headers, home["device"], "temp", 70.0, "F")
    response = client.get(
        f"/api/v1/houses/{home['house']}/metrics", params={"aggregate": "sum:temp"}, headers=headers
    )
    assert response.status_code == 200
    assert [(row["unit"], row["metric_value"]) for row in response.json()] == [("C", 20.0), ("F", 70.0)]


def test_unknown_aggregate_function_names_field(client, home):
    response = client.get(
        f"/api/v1/rooms/{home['room']}/metrics",
        params={"aggregate": json.dumps([{"metric_type": "temp", "fn": "median"}])},
        headers=home["headers"],
    )
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    detail = error["details"][0]
    assert detail["loc"] == ["query", "aggregate", 0, "fn"]
    assert detail["input"] == "median"


def test_malformed_aggregate_is_rejected(client, home):
    response = client.get(
        f"/api/v1/rooms/{home['room']}/metrics",
        params={"aggregate": "temp"},
        headers=home["headers"],
    )
    assert response.status_code == 422


def test_house_scope_matches_union_of_rooms(client, home):
    headers = home["headers"]
    second_room = _create_room(client, headers, home["house"], "Kitchen")
    second_device = _create_device(client, headers, second_room, "Plug")
    _post_metric(client, headers, home["device"], "temp", 20.0, "C")
    _post_metric(client, headers, second_device, "power", 5.0, "W")

    house_ids = {row["id"] for row in client.get(f"/api/v1/houses/{home['house']}/metrics", headers=headers).json()}
    room_ids = set()
    for room_id in (home["room"], second_room):
        rows = client.get(f"/api/v1/rooms/{room_id}/metrics", headers=headers).json()
        room_ids.update(row["id"] for row in rows)
    assert house_ids == room_ids
    assert len(house_ids) == 2


def test_nested_room_metrics_reject_path_mismatch(client, home):
    headers = home["headers"]
    other_house = _create_house(client, headers, "Cabin")
    _post_metric(client, headers, home["device"], "temp", 20.0, "C")

    ok = client.get(f"/api/v1/houses/{home['house']}/rooms/{home['room']}/metrics", headers=headers)
    assert ok.status_code == 200
    assert len(ok.json()) == 1

    mismatch = client.get(f"/api/v1/houses/{other_house}/rooms/{home['room']}/metrics", headers=headers)
    assert mismatch.status_code == 403

    missing = client.get(f"/api/v1/houses/{home['house']}/rooms/9999/metrics", headers=headers)
    assert missing.status_code == 403


def test_latest_metrics_per_device(client, home):
    headers = home["headers"]
    second_device = _create_device(client, headers, home["room"], "Second")
    _post_metric(client, headers, home["device"], "temp", 20.0, "C", "2026-04-01T08:00:00Z")
    newest = _post_metric(client, headers, home["device"], "temp", 21.0, "C", "2026-04-01T09:00:00Z")
    other = _post_metric(client, headers, second_device, "power", 3.0, "W", "2026-04-01T07:00:00Z")

    room_latest = client.get(f"/api/v1/rooms/{home['room']}/metrics/latest", headers=headers)
    assert room_latest.status_code == 200
    assert [row["id"] for row in room_latest.json()] == [newest["id"], other["id"]]

    house_latest = client.get(f"/api/v1/houses/{home['house']}/metrics/latest", headers=headers)
    assert house_latest.json() == room_latest.json()


def _raise_operational_error(*args, **kwargs):
    raise OperationalError("SELECT secret_column FROM device_metrics", {}, Exception("disk I/O error"))


def _assert_opaque_internal_error(response) -> None:
    assert response.status_code == 500
    body = response.json()
    assert body["error"]["code"] == "INTERNAL_ERROR"
    assert body["error"]["message"] == "Unexpected error"
    assert body["error"]["details"] is None
    assert body["detail"] == "Unexpected error"
    assert "secret_column" not in response.text
    assert "disk I/O" not in response.text


def test_metric_query_failure_is_opaque_and_logged(client, home, monkeypatch, caplog):
    monkeypatch.setattr(MetricStore, "fetch_rows", _raise_operational_error)
    with caplog.at_level(logging.ERROR, logger=LOGGER_NAME):
        response = client.get(f"/api/v1/rooms/{home['room']}/metrics", headers=home["headers"])
    _assert_opaque_internal_error(response)
    events = [getattr(r, "structured", {}).get("event") for r in caplog.records]
    assert "internal_error" in events


def test_metric_insert_failure_is_opaque(client, home, monkeypatch):
    monkeypatch.setattr(MetricStore, "insert", _raise_operational_error)
    payload = {"device_id": home["device"], "metric_type": "temp", "metric_value": 1.0, "unit": "C"}
    response = client.post("/api/v1/metrics", json=payload, headers=home["headers"])
    _assert_opaque_internal_error(response)


def test_database_failure_outside_services_is_opaque(client, home, monkeypatch):
    monkeypatch.setattr(OwnershipStore, "has_edge", _raise_operational_error)
    response = client.get(f"/api/v1/houses/{home['house']}", headers=home["headers"])
    _assert_opaque_internal_error(response)


@pytest.mark.parametrize(
    "params",
    [{"device": "abc"}, {"device": 1, "aggregate": "median:temp"}],
)
def test_validation_errors_share_one_envelope(client, home, params):
    response = client.get("/api/v1/metrics", params=params, headers=home["headers"])
    assert response.status_code == 422
    body = response.json()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["detail"] == body["error"]["message"] == "Invalid request"
    assert body["error"]["details"]


def test_unexpected_error_is_opaque(home, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("internal state leaked")

    monkeypatch.setattr(OwnershipStore, "has_edge", _boom)
    with TestClient(app, raise_server_exceptions=False) as client:
        response = client.get(f"/api/v1/houses/{home['house']}", headers=home["headers"])
    assert response.status_code == 500
    body = response.json()
    assert body["error"]["code"] == "INTERNAL_ERROR"
    assert body["detail"] == "Unexpected error"
    assert "leaked" not in response.text
