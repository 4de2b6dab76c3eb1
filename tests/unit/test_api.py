"""Unit tests for the HTTP surface."""

import json

import pytest
from fastapi.testclient import TestClient

from conftest import DESIGN_SPEC_REPLY, REVIEW_PASS, VANILLA_BUILD_REPLY, ScriptedClientFactory
from webforge import __version__
from webforge.api import create_app
from webforge.orchestration import GenerationPipeline

VALID_PAYLOAD = {
    "prompt": "Build a task board",
    "config": {"provider": "anthropic", "apiKey": "sk-test"},
    "outputStack": "vanilla",
}


@pytest.fixture
def factory():
    return ScriptedClientFactory(
        {"design_architect": [DESIGN_SPEC_REPLY], "builder": [VANILLA_BUILD_REPLY], "reviewer": [REVIEW_PASS]}
    )


@pytest.fixture
def client(settings, factory):
    pipeline = GenerationPipeline(settings, client_factory=factory)
    return TestClient(create_app(settings, pipeline=pipeline))


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__}


class TestGenerateValidation:
    """Input problems are rejected before any model call."""

    def test_invalid_json(self, client, factory):
        response = client.post(
            "/api/generate", content="{nope", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Request body must be valid JSON"}
        assert factory.calls == []

    def test_non_object_body(self, client):
        response = client.post("/api/generate", json=["prompt"])
        assert response.status_code == 400
        assert response.json() == {"error": "Request body must be a JSON object"}

    def test_missing_api_key(self, client, factory):
        payload = {**VALID_PAYLOAD, "config": {"provider": "anthropic"}}
        response = client.post("/api/generate", json=payload)
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request")
        assert factory.calls == []

    def test_no_inputs(self, client):
        payload = {**VALID_PAYLOAD, "prompt": "   "}
        response = client.post("/api/generate", json=payload)
        assert response.status_code == 400


class TestGenerateStream:
    """Tests for the NDJSON progress stream."""

    def test_streams_ndjson_until_done(self, client, factory):
        response = client.post("/api/generate", json=VALID_PAYLOAD)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        lines = [json.loads(line) for line in response.text.splitlines() if line.strip()]
        assert lines[0]["type"] == "event"
        assert lines[0]["event"]["type"] == "ingesting"
        assert lines[-1] == {"type": "done"}
        assert {line["file"]["path"] for line in lines if line["type"] == "file"} == {
            "index.html",
            "styles.css",
            "app.js",
            "package.json",
        }
        assert [call["label"] for call in factory.calls] == ["design_architect", "builder", "reviewer"]
