"""
API tests for the datapoint query, health and metrics endpoints
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import make_record
from datapoint_collector.core.errors import StorageError
from datapoint_collector.services.datapoint_service import DataPointService
from datapoint_collector.services.datapoint_store import DataPointStorage
from fastapi.testclient import TestClient
from main import create_app

BASE = 1700000000


def _producer():
    producer = MagicMock()
    producer.fetch = AsyncMock()
    producer.aclose = AsyncMock()
    return producer


@pytest.fixture
def populated(storage, fixed_now):
    for offset, value in ((0, 1.5), (10, 2.5), (20, 3.5)):
        storage.write_accepted(make_record(BASE + offset, value=value), fixed_now)
    return storage


@pytest.fixture
def client(populated):
    """Test client over a service backed by in-memory SQLite"""
    service = DataPointService(populated, _producer())
    app = create_app(service=service, collector_enabled=False)
    with TestClient(app) as test_client:
        yield test_client


def test_query_all(client):
    """Test the whole table streams newest first"""
    response = client.get("/data-point")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")
    assert response.json() == [
        {"time": "2023-11-14T22:13:40Z", "value": 3.5},
        {"time": "2023-11-14T22:13:30Z", "value": 2.5},
        {"time": "2023-11-14T22:13:20Z", "value": 1.5},
    ]
    assert "x-request-id" in response.headers


def test_query_range(client):
    response = client.get(
        "/data-point",
        params={"start": "2023-11-14T22:13:30Z", "until": "2023-11-14T22:13:40Z"},
    )

    assert response.status_code == 200
    assert [item["value"] for item in response.json()] == [3.5, 2.5]


def test_query_range_with_offset(client):
    response = client.get("/data-point", params={"until": "2023-11-15T00:13:20+02:00"})

    assert response.status_code == 200
    assert [item["value"] for item in response.json()] == [1.5]


def test_query_empty_range(client):
    response = client.get("/data-point", params={"start": "2030-01-01T00:00:00Z"})

    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.parametrize("params,name", [
    ({"start": "yesterday"}, "start"),
    ({"until": "1700000000"}, "until"),
    ({"start": "2023-11-14 22:13:20"}, "start"),
])
def test_query_invalid_bound(client, params, name):
    """Test malformed bounds answer 400 with a message"""
    response = client.get("/data-point", params=params)

    assert response.status_code == 400
    assert response.json()["message"].startswith(f"failed to parse {name} time")


def test_query_storage_error():
    storage = MagicMock(spec=DataPointStorage)
    storage.query.side_effect = StorageError("database is locked")
    app = create_app(service=DataPointService(storage, _producer()), collector_enabled=False)

    with TestClient(app) as client:
        response = client.get("/data-point")

    assert response.status_code == 500
    assert "database is locked" in response.json()["message"]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_detailed_health(client):
    response = client.get("/health/detailed")

    assert response.status_code == 200
    data = response.json()
    assert data["components"]["database"]["status"] == "healthy"
    assert data["components"]["collector"]["status"] == "disabled"
    assert set(data["log_counts"]) == {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def test_detailed_health_storage_down():
    storage = MagicMock(spec=DataPointStorage)
    storage.ping.side_effect = StorageError("database unreachable")
    app = create_app(service=DataPointService(storage, _producer()), collector_enabled=False)

    with TestClient(app) as client:
        response = client.get("/health/detailed")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_metrics(client):
    """Test Prometheus exposition includes request metrics"""
    client.get("/data-point")
    response = client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
    assert "query_rows_streamed_total" in response.text
