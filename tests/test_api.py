"""Tests for the status web API."""

import pytest
from fastapi.testclient import TestClient

from seedbox_maintenance import __version__
from seedbox_maintenance.api import create_app
from seedbox_maintenance.api.app_state import AppState
from seedbox_maintenance.exceptions import SeedboxConnectionError
from seedbox_maintenance.supervisor import Supervisor

from .conftest import FakeClient, make_instance, make_record


@pytest.fixture
def supervisor(metrics):
    clients = {
        "x": FakeClient([make_record("a")], fetch_errors=[SeedboxConnectionError("down")]),
        "y": FakeClient([make_record("b")]),
    }
    return Supervisor([make_instance("x"), make_instance("y")], False, metrics=metrics,
                      client_factory=lambda instance: clients[instance.name])


@pytest.fixture
def app_state(supervisor):
    return AppState(supervisor)


@pytest.fixture
def api(app_state):
    return TestClient(create_app(app_state))


def test_health(api):
    response = api.get("/api/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["version"] == __version__


def test_status_before_first_cycle(api):
    body = api.get("/api/status").json()
    assert body["enforce"] is False
    assert [i["name"] for i in body["instances"]] == ["x", "y"]
    assert all(i["last_cycle"] is None for i in body["instances"])


def test_status_after_cycle(api, supervisor):
    supervisor.run_once()

    body = api.get("/api/status").json()
    x, y = body["instances"]
    assert x["last_cycle"]["success"] is False
    assert x["last_cycle"]["error"] == "down"
    assert y["last_cycle"]["success"] is True
    assert y["last_cycle"]["decisions"]["with_data"] == 1
    assert y["policies"] == ["horse"]


def test_single_instance(api):
    response = api.get("/api/instances/y")
    assert response.status_code == 200
    assert response.json()["url"] == "http://y.example:8080"


def test_unknown_instance(api):
    assert api.get("/api/instances/nope").status_code == 404


def test_poll_all(api, app_state):
    response = api.post("/api/actions/poll")
    assert response.status_code == 200
    assert response.json()["details"]["instances"] == ["x", "y"]
    assert app_state.poll_requests == 1


def test_poll_one(api):
    response = api.post("/api/actions/poll", params={"instance": "x"})
    assert response.json()["details"]["instances"] == ["x"]


def test_poll_unknown_instance(api):
    assert api.post("/api/actions/poll", params={"instance": "nope"}).status_code == 404


def test_metrics_endpoint(api, supervisor):
    supervisor.run_once()
    response = api.get("/metrics")
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert 'seedbox_fetch_failures_total{instance="x"} 1.0' in response.text
