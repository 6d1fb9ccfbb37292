"""
Tests for the HTTP API

Stores live in a temporary directory and the pipeline is replaced with a
scripted fake through dependency overrides.
"""
import shutil
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from agents.pipeline import build_stores
from integrations.types import IntegrationConfig
from main import app
from routers.deps import get_pipeline_factory, get_stores


class FakePipeline:
    """Stands in for AppGenerationPipeline inside background jobs"""

    def __init__(self, progress_callback=None, projects_dir=Path("/nonexistent")):
        self.progress_callback = progress_callback
        self.projects_dir = projects_dir
        self.fixed = []
        self.targets = []

    def generate_app(self, prompt, app_name=None):
        self.targets.append(app_name)
        self.progress_callback("Phase route (attempt 1)")
        self.progress_callback("Phase build (attempt 1)")
        return {"status": "success", "app_name": app_name or "Notes", "project_dir": "/tmp/Notes", "prompt": prompt}

    def fix_existing(self, project_dir, app_name):
        self.fixed.append((project_dir, app_name))
        return {"status": "error", "app_name": app_name, "error": "cycle: same diagnostics after fix"}


class TestAPI:
    """Test suite for the FastAPI app"""

    @pytest.fixture
    def temp_dir(self):
        temp_dir = Path(tempfile.mkdtemp())
        yield temp_dir
        shutil.rmtree(temp_dir)

    @pytest.fixture
    def stores(self, temp_dir):
        return build_stores(temp_dir / "data")

    @pytest.fixture
    def client(self, stores):
        pipelines = []

        def factory(progress_callback=None):
            pipeline = FakePipeline(progress_callback)
            pipelines.append(pipeline)
            return pipeline

        app.dependency_overrides[get_stores] = lambda: stores
        app.dependency_overrides[get_pipeline_factory] = lambda: factory
        client = TestClient(app)
        client.pipelines = pipelines
        yield client
        app.dependency_overrides.clear()

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_build_job_lifecycle(self, client):
        """The background job runs and its status can be polled"""
        response = client.post("/api/builds", json={"prompt": "A notes app for iPhone"})
        assert response.status_code == 200
        job_id = response.json()["jobId"]

        status = client.get(f"/api/builds/{job_id}").json()

        assert status["status"] == "completed"
        assert status["progress"] == 100
        assert status["result"]["app_name"] == "Notes"
        assert "Phase build (attempt 1)" in status["logs"]

    def test_edit_request_names_app(self, client):
        """An optional app name is handed to the pipeline for edit and fix requests"""
        response = client.post("/api/builds", json={"prompt": "Add a dark mode toggle", "appName": "Journal"})
        job_id = response.json()["jobId"]

        status = client.get(f"/api/builds/{job_id}").json()

        assert status["status"] == "completed"
        assert client.pipelines[0].targets == ["Journal"]
        assert client.post("/api/builds", json={"prompt": "Add a toggle", "appName": "../x"}).status_code == 422

    def test_build_prompt_too_short(self, client):
        response = client.post("/api/builds", json={"prompt": "x"})
        assert response.status_code == 422

    def test_fix_job(self, client):
        response = client.post("/api/builds/fix", json={"appName": "Notes"})
        job_id = response.json()["jobId"]

        status = client.get(f"/api/builds/{job_id}").json()

        assert status["status"] == "failed"
        assert "cycle" in status["error"]
        assert client.pipelines[0].fixed == [(Path("/nonexistent") / "Notes", "Notes")]

    def test_fix_rejects_bad_app_name(self, client):
        response = client.post("/api/builds/fix", json={"appName": "../etc"})
        assert response.status_code == 422

    def test_unknown_job(self, client):
        assert client.get("/api/builds/does-not-exist").status_code == 404

    def test_list_integrations(self, client, stores):
        stores.integrations.set_provider(
            IntegrationConfig(provider="supabase", project_url="https://abc.supabase.co", anon_key="anon"),
            "Notes",
        )

        body = client.get("/api/integrations").json()

        by_id = {item["id"]: item for item in body}
        assert set(by_id) == {"supabase", "revenuecat"}
        assert by_id["supabase"]["apps"] == ["Notes"]
        assert by_id["revenuecat"]["apps"] == []

    def test_integration_status_hides_secrets(self, client, stores):
        stores.integrations.set_provider(
            IntegrationConfig(provider="supabase", project_url="https://abc.supabase.co", anon_key="anon", pat="pat"),
            "Notes",
        )

        body = client.get("/api/integrations/supabase/status/Notes").json()

        assert body["configured"] is True
        assert body["has_pat"] is True
        assert "anon" not in body.values()
        assert "pat" not in body.values()

    def test_unknown_provider(self, client):
        assert client.get("/api/integrations/firebase/status/Notes").status_code == 404

    def test_remove_integration(self, client, stores):
        stores.integrations.set_provider(IntegrationConfig(provider="supabase", project_ref="abc"), "Notes")

        assert client.delete("/api/integrations/supabase/Notes").status_code == 200
        assert client.delete("/api/integrations/supabase/Notes").status_code == 404

    def test_history(self, client, stores):
        stores.history.append("user", "first")
        stores.history.append("assistant", "second")

        assert [m["content"] for m in client.get("/api/history").json()] == ["first", "second"]
        assert [m["content"] for m in client.get("/api/history?limit=1").json()] == ["second"]

        assert client.delete("/api/history").status_code == 200
        assert client.get("/api/history").json() == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
