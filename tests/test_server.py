import pytest
from fastapi.testclient import TestClient

from gaterunner.archive import Archive
from gaterunner.dsl import cargo, job, toolchain, wf
from gaterunner.server import create_app


@pytest.fixture
def workflow():
    return wf(
        job("rustfmt", cargo("fmt", "--all", "--", "--check"), toolchain=toolchain("nightly", "rustfmt")),
        job("clippy", cargo("clippy"), toolchain=toolchain("stable", "clippy")),
        name="rust",
    )


@pytest.fixture
def archive(tmp_path):
    return Archive(f"sqlite:///{tmp_path / 'runs.db'}")


@pytest.fixture
def client(workflow, services, archive):
    app = create_app(workflow, services_factory=lambda _event: services, archive=archive)
    return TestClient(app)


def test_push_event_runs_the_pipeline(client, fake_runner):
    resp = client.post("/events", json={"kind": "push", "ref": "main", "sha": "abc123"})

    assert resp.status_code == 202
    body = resp.json()
    assert body["triggered"] is True
    assert body["accepted"] == ["pull_request", "push"]

    # background tasks have completed once the TestClient call returns
    run = client.get(f"/runs/{body['run_id']}").json()
    assert run["status"] == "pass"
    assert run["event"]["ref"] == "main"
    assert [j["name"] for j in run["jobs"]] == ["rustfmt", "clippy"]
    assert fake_runner.commands_for("clippy", "cargo") == [("cargo", "clippy")]


def test_failing_job_is_reported(client, fake_runner):
    fake_runner.exit_codes["cargo clippy"] = 101

    run_id = client.post("/events", json={"kind": "pull_request", "ref": "refs/pull/7/merge"}).json()["run_id"]
    run = client.get(f"/runs/{run_id}").json()

    assert run["status"] == "fail"
    assert run["verdict"]["failures"] == [
        {"job": "clippy", "reason": "CommandFailure", "detail": "'cargo clippy' exited with 101"}
    ]


def test_unaccepted_event_creates_no_run(client, fake_runner):
    resp = client.post("/events", json={"kind": "issue_comment"})

    assert resp.status_code == 200
    assert resp.json()["triggered"] is False
    assert resp.json()["run_id"] is None
    assert fake_runner.calls == []
    assert client.get("/runs").json() == []


def test_unknown_run_is_404(client):
    assert client.get("/runs/does-not-exist").status_code == 404


def test_event_kind_is_required(client):
    assert client.post("/events", json={"ref": "main"}).status_code == 422


def test_list_runs(client):
    client.post("/events", json={"kind": "push"})
    client.post("/events", json={"kind": "push"})
    assert [r["status"] for r in client.get("/runs").json()] == ["pass", "pass"]


def test_runs_stay_visible_without_an_archive(workflow, services):
    client = TestClient(create_app(workflow, services_factory=lambda _event: services))
    run_id = client.post("/events", json={"kind": "push"}).json()["run_id"]
    assert client.get(f"/runs/{run_id}").json()["status"] == "pass"


def test_without_an_archive_only_recent_runs_are_kept(workflow, services):
    client = TestClient(create_app(workflow, services_factory=lambda _event: services, keep_finished=2))

    run_ids = [client.post("/events", json={"kind": "push"}).json()["run_id"] for _ in range(3)]

    assert client.get(f"/runs/{run_ids[0]}").status_code == 404
    assert [client.get(f"/runs/{rid}").json()["status"] for rid in run_ids[1:]] == ["pass", "pass"]
    assert [r["run_id"] for r in client.get("/runs").json()] == run_ids[1:]
