import pytest
from fastapi.testclient import TestClient

from backend.app import main
from backend.app.errors import ExtractionCancelled, FetchError
from backend.app.models import BrandProfile, ExtractionResult, ProviderAttemptRecord


class StubAgent:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.contexts = []

    def extract_with_trail(self, url, context=None):
        self.contexts.append(context)
        if self.error:
            raise self.error
        return self.result


RESULT = ExtractionResult(
    profile=BrandProfile(name="Acme", primary_color="#1E6FD9", secondary_color="#DCE6F2", accent_color="#D91E6F"),
    attempts=[ProviderAttemptRecord(stage="screenshot", provider="screenshot.guru", attempt_index=0, outcome="failure")],
)


@pytest.fixture
def client():
    # No context manager: the startup hook would build a real agent from the environment
    return TestClient(main.app)


def use_agent(monkeypatch, agent):
    monkeypatch.setattr(main, "brand_extractor", agent)
    return agent


def test_root_and_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert "/extract" in client.get("/").json()["endpoints"]


def test_extract_returns_profile_without_trail_by_default(client, monkeypatch):
    use_agent(monkeypatch, StubAgent(result=RESULT))

    response = client.post("/extract", json={"url": "https://acme.example/"})

    assert response.status_code == 200
    body = response.json()
    assert body["brand_profile"]["name"] == "Acme"
    assert body["brand_profile"]["primary_color"] == "#1E6FD9"
    assert body["attempts"] == []


def test_extract_can_include_trail_and_deadline(client, monkeypatch):
    agent = use_agent(monkeypatch, StubAgent(result=RESULT))

    response = client.post(
        "/extract", json={"url": "https://acme.example/", "include_attempts": True, "deadline_seconds": 15}
    )

    assert response.json()["attempts"][0]["provider"] == "screenshot.guru"
    assert agent.contexts[0].deadline is not None


def test_fetch_error_maps_to_bad_gateway(client, monkeypatch):
    use_agent(monkeypatch, StubAgent(error=FetchError("https://down.example/", "network error")))
    assert client.post("/extract", json={"url": "https://down.example/"}).status_code == 502


def test_cancellation_maps_to_gateway_timeout(client, monkeypatch):
    use_agent(monkeypatch, StubAgent(error=ExtractionCancelled("deadline reached")))
    assert client.post("/extract", json={"url": "https://acme.example/"}).status_code == 504


def test_unexpected_error_maps_to_server_error(client, monkeypatch):
    use_agent(monkeypatch, StubAgent(error=RuntimeError("boom")))
    response = client.post("/extract", json={"url": "https://acme.example/"})
    assert response.status_code == 500
    assert "boom" in response.json()["detail"]


def test_invalid_request_is_rejected(client, monkeypatch):
    use_agent(monkeypatch, StubAgent(result=RESULT))
    assert client.post("/extract", json={}).status_code == 422
    assert client.post("/extract", json={"url": "https://acme.example/", "deadline_seconds": -1}).status_code == 422


def test_not_ready_without_agent(client, monkeypatch):
    monkeypatch.setattr(main, "brand_extractor", None)
    assert client.post("/extract", json={"url": "https://acme.example/"}).status_code == 503
