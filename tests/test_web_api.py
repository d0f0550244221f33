"""Tests for FastAPI web API.

Uses TestClient against an app built without lifespan, with settings
and the database pointed at tmp_path.
"""

import logging
import uuid
from pathlib import Path
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from ci_release import __version__
from ci_release.config import Settings
from ci_release.db import Base
from ci_release.runs.models import JobRecord, PipelineRun
from ci_release.errors import ConfigurationError
from ci_release.types import EventContext, JobSpec, TriggerEvent
from ci_release.workflow import parse_workflow_data
from web.app import include_routers
from web.deps import get_app_settings
from web.routers.events import context_from_payload, execute_run

WORKFLOW_YAML = """\
on:
  push:
    branches: [master]
  pull_request:
matrix:
  include:
    - os: ubuntu-latest
      toolchain: x86_64-unknown-linux-musl
      platform: linux
"""


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    ws = tmp_path / "ws"
    ws.mkdir()
    (ws / "pipeline.yaml").write_text(WORKFLOW_YAML)
    return Settings(
        workspace_dir=ws,
        cache_dir=tmp_path / "cache",
        artifacts_dir=tmp_path / "artifacts",
        logs_dir=tmp_path / "logs",
        work_dir=tmp_path / "work",
        db_url=f"sqlite:///{tmp_path}/runs.db",
    )


@pytest.fixture
def session_factory(tmp_path: Path):
    db_file = tmp_path / f"test_{uuid.uuid4().hex[:8]}.db"
    engine = create_engine(f"sqlite:///{db_file}", echo=False)
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def client(settings: Settings, session_factory):
    """Test client for an app without lifespan, so no default database is touched."""
    app = include_routers(FastAPI(title="CI Release API", version=__version__))
    app.state.session_factory = session_factory
    app.dependency_overrides[get_app_settings] = lambda: settings

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def stored_runs(session_factory):
    """One succeeded and one failed run."""
    job = JobSpec(os="ubuntu-latest", toolchain="x86_64-unknown-linux-musl", platform="linux")
    with session_factory() as session:
        ok = PipelineRun(workflow_name="ci", event="push", ref="refs/heads/master", status="pending")
        record = JobRecord.for_job(job)
        ok.jobs.append(record)
        record.mark_succeeded()
        ok.mark_finished()

        bad = PipelineRun(workflow_name="ci", event="pull_request", status="pending")
        bad.mark_failed(code="configuration_error", message="Matrix has no rows")

        session.add_all([ok, bad])
        session.commit()
        return ok.id, bad.id


class TestHealthEndpoints:
    """Tests for health and root endpoints."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__, "database": "ok"}

    def test_health_degraded(self, client):
        with patch("web.routers.health.database_reachable", return_value=False):
            response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["database"] == "unavailable"

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "CI Release API"


class TestConfigEndpoint:
    """Tests for the config endpoint."""

    def test_get_config(self, client, settings):
        response = client.get("/config")
        assert response.status_code == 200
        data = response.json()
        assert data["workspace_dir"] == str(settings.workspace_dir)
        assert data["token_env"] == "GITHUB_TOKEN"

    def test_token_not_exposed(self, client, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_secretvalue")
        response = client.get("/config")
        assert "ghp_secretvalue" not in response.text


class TestRunsEndpoints:
    """Tests for run history endpoints."""

    def test_list_empty(self, client):
        response = client.get("/runs")
        assert response.status_code == 200
        assert response.json() == []

    def test_list_newest_first(self, client, stored_runs):
        ok_id, bad_id = stored_runs
        response = client.get("/runs")
        assert [r["id"] for r in response.json()] == [bad_id, ok_id]

    def test_list_filter_status(self, client, stored_runs):
        ok_id, _ = stored_runs
        response = client.get("/runs", params={"status": "succeeded"})
        assert [r["id"] for r in response.json()] == [ok_id]

    def test_list_invalid_status(self, client):
        response = client.get("/runs", params={"status": "bogus"})
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_status"

    def test_get_run(self, client, stored_runs):
        ok_id, _ = stored_runs
        response = client.get(f"/runs/{ok_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "succeeded"
        assert data["jobs"][0]["job_id"] == "linux-x86_64-unknown-linux-musl"

    def test_get_run_not_found(self, client):
        response = client.get("/runs/999")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "run_not_found"


class TestEventsEndpoint:
    """Tests for event delivery."""

    def test_unsupported_event(self, client):
        response = client.post("/events", headers={"X-GitHub-Event": "release"}, json={})
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "unsupported_event"

    def test_missing_header(self, client):
        response = client.post("/events", json={})
        assert response.status_code == 422

    def test_invalid_workflow(self, client, settings):
        settings.resolve_workflow_file().write_text("matrix: [unterminated\n")
        response = client.post("/events", headers={"X-GitHub-Event": "push"}, json={})
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "configuration_error"

    def test_not_triggered(self, client):
        with patch("web.routers.events.run_pipeline") as mock_run:
            response = client.post(
                "/events",
                headers={"X-GitHub-Event": "push"},
                json={"ref": "refs/heads/feature"},
            )

        assert response.status_code == 200
        assert response.json()["triggered"] is False
        mock_run.assert_not_called()

    def test_triggered_runs_in_background(self, client, settings):
        with patch("web.routers.events.run_pipeline") as mock_run:
            response = client.post(
                "/events",
                headers={"X-GitHub-Event": "push"},
                json={"ref": "refs/heads/master", "after": "deadbeef"},
            )

        assert response.status_code == 202
        assert response.json() == {
            "triggered": True,
            "event": "push",
            "ref": "refs/heads/master",
        }
        mock_run.assert_called_once()
        _, called_settings, context = mock_run.call_args.args
        assert called_settings is settings
        assert context.sha == "deadbeef"


class TestContextFromPayload:
    """Tests for webhook payload parsing."""

    def test_push(self):
        ctx = context_from_payload("push", {"ref": "refs/heads/master", "after": "abc"})
        assert ctx == EventContext(event=TriggerEvent.PUSH, ref="refs/heads/master", sha="abc")
        assert ctx.branch == "master"

    def test_pull_request_head(self):
        payload = {"pull_request": {"head": {"ref": "feature", "sha": "def"}}}
        ctx = context_from_payload("pull_request", payload)
        assert ctx.event == TriggerEvent.PULL_REQUEST
        assert ctx.ref == "feature"
        assert ctx.sha == "def"

    def test_dispatch_without_payload(self):
        ctx = context_from_payload("workflow_dispatch", {})
        assert ctx.event == TriggerEvent.WORKFLOW_DISPATCH
        assert ctx.ref is None


class TestExecuteRun:
    """Background runs log failures instead of losing them."""

    CONTEXT = EventContext(event=TriggerEvent.WORKFLOW_DISPATCH)

    def test_database_error_logged(self, settings, session_factory, caplog):
        workflow = parse_workflow_data({"matrix": {"include": []}})
        error = OperationalError("INSERT", {}, Exception("database is locked"))

        with caplog.at_level(logging.ERROR, logger="web.routers.events"):
            with patch("web.routers.events.run_pipeline", side_effect=error):
                execute_run(session_factory, settings, self.CONTEXT, workflow)

        assert "Background run crashed" in caplog.text
        assert "database is locked" in caplog.text

    def test_pipeline_error_logged(self, settings, session_factory, caplog):
        workflow = parse_workflow_data({"matrix": {"include": []}})
        error = ConfigurationError("Workflow file not found")

        with caplog.at_level(logging.ERROR, logger="web.routers.events"):
            with patch("web.routers.events.run_pipeline", side_effect=error):
                execute_run(session_factory, settings, self.CONTEXT, workflow)

        assert "Background run failed" in caplog.text
        assert "Workflow file not found" in caplog.text
