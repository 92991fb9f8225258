import time

import pytest
from fastapi.testclient import TestClient

from fakes import FakeHandle
from sqldrizzler.api import main
from sqldrizzler.api.jobs import JobManager


@pytest.fixture
def client(monkeypatch):
    handles = []

    def factory(config):
        handle = FakeHandle()
        handles.append(handle)
        return handle

    monkeypatch.setattr(main, "job_manager", JobManager(handle_factory=factory))
    with TestClient(main.app) as c:
        c.handles = handles
        yield c


def _wait_for(client, run_id, statuses, timeout=10.0):
    deadline = time.monotonic() + timeout
    body = None
    while time.monotonic() < deadline:
        body = client.get(f"/api/runs/{run_id}").json()
        if body["status"] in statuses:
            return body
        time.sleep(0.05)
    raise AssertionError(f"run {run_id} never reached {statuses}: {body}")


def test_run_completes_with_report(client):
    resp = client.post(
        "/api/runs",
        json={"query": "SELECT 1", "concurrency": 2, "iterations": 3, "interval_s": 0},
    )
    assert resp.status_code == 200
    run_id = resp.json()["run_id"]

    body = _wait_for(client, run_id, {"completed", "failed"})
    assert body["status"] == "completed"
    assert body["progress"] == 100.0
    assert body["stats"]["total"] == 6
    assert body["stats"]["errors"] == 0
    assert "1. Total queries executed: 6" in body["report"]
    assert body["database"] == "root@localhost:3306/your_database_name"
    assert client.handles[0].closed


def test_list_runs(client):
    run_id = client.post("/api/runs", json={"query": "SELECT 1", "concurrency": 1, "iterations": 1}).json()["run_id"]
    _wait_for(client, run_id, {"completed"})
    ids = [run["id"] for run in client.get("/api/runs").json()]
    assert run_id in ids


@pytest.mark.parametrize(
    "payload",
    [
        {"query": ""},
        {"query": "   "},
        {"query": "SELECT 1", "concurrency": 0},
        {"query": "SELECT 1", "iterations": 0},
        {"query": "SELECT 1", "interval_s": -1},
        {"query": "SELECT 1", "host": "db:notaport"},
    ],
)
def test_invalid_runs_rejected(client, payload):
    assert client.post("/api/runs", json=payload).status_code == 422
    assert client.handles == []


def test_stop_running_run(client):
    run_id = client.post(
        "/api/runs",
        json={"query": "SELECT 1", "concurrency": 2, "iterations": 1, "interval_s": 60},
    ).json()["run_id"]
    _wait_for(client, run_id, {"running"})
    assert client.post(f"/api/runs/{run_id}/stop").status_code == 200

    body = _wait_for(client, run_id, {"stopped", "completed", "failed"})
    assert body["status"] == "stopped"
    assert body["stats"]["success"] + body["stats"]["errors"] == body["stats"]["total"]


def test_unknown_run_is_404(client):
    assert client.get("/api/runs/nope").status_code == 404
    assert client.post("/api/runs/nope/stop").status_code == 404
    assert client.delete("/api/runs/nope").status_code == 404


def test_delete_run(client):
    run_id = client.post("/api/runs", json={"query": "SELECT 1", "concurrency": 1, "iterations": 1}).json()["run_id"]
    _wait_for(client, run_id, {"completed"})
    assert client.delete(f"/api/runs/{run_id}").status_code == 200
    assert client.get(f"/api/runs/{run_id}").status_code == 404
