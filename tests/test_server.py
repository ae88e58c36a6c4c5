import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from server.app import create_app
from storage.db import make_engine


@pytest.fixture
def server_engine():
    return make_engine(memory=True)


@pytest.fixture
def client(server_engine):
    return TestClient(create_app(server_engine))


def test_empty_state_is_empty_object(client):
    response = client.get("/state")
    assert response.status_code == 200
    assert response.json() == {}


def test_put_then_get_round_trip(client):
    body = {"pomodorosCompleted": 3, "sessions": [{"mode": "work", "timestamp": 100}]}
    response = client.put("/state", json=body)
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert client.get("/state").json() == body


def test_put_replaces_whole_document(client):
    client.put("/state", json={"a": 1, "b": 2})
    client.put("/state", json={"b": 3})
    assert client.get("/state").json() == {"b": 3}


def test_legacy_api_prefix(client):
    client.put("/api/state", json={"achievements": ["first"]})
    assert client.get("/state").json() == {"achievements": ["first"]}


def test_rejects_non_object_bodies(client):
    assert client.put("/state", content=b"[1, 2]").status_code == 400
    assert client.put("/state", content=b"not json").status_code == 400


def test_rejects_oversized_body(server_engine):
    client = TestClient(create_app(server_engine, max_body_bytes=16))
    response = client.put("/state", json={"blocklist": ["a-very-long-domain.example"]})
    assert response.status_code == 413


def test_storage_failure_returns_500(client, server_engine):
    SQLModel.metadata.drop_all(server_engine)
    response = client.get("/state")
    assert response.status_code == 500
    assert "error" in response.json()
    response = client.put("/state", json={"a": 1})
    assert response.status_code == 500


def test_rejects_non_finite_numbers(client):
    client.put("/state", json={"pomodorosCompleted": 2})
    for body in (b'{"pomodorosCompleted": NaN}', b'{"timerEndTime": Infinity}', b'{"volume": 1e999}'):
        assert client.put("/state", content=body).status_code == 400
    response = client.get("/state")
    assert response.status_code == 200
    assert response.json() == {"pomodorosCompleted": 2}
