"""Tests for the FastAPI endpoints.

The orchestrator and the history store are swapped in through dependency
overrides, so no provider is ever called.
"""

import json
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from chartinsight.agent.orchestrator import get_orchestrator
from chartinsight.agent.pipeline import InferenceTransportError
from chartinsight.main import app
from chartinsight.middleware.rate_limit import limiter
from chartinsight.storage.analysis_store import get_analysis_store


@pytest.fixture
def overrides(scripted, make_orchestrator, store):
    """Install a scripted orchestrator and a throwaway store."""
    state = {"orchestrator": make_orchestrator(scripted()), "store": store}
    app.dependency_overrides[get_orchestrator] = lambda: state["orchestrator"]
    app.dependency_overrides[get_analysis_store] = lambda: state["store"]
    enabled = limiter.enabled
    limiter.enabled = False
    yield state
    limiter.enabled = enabled
    app.dependency_overrides.clear()


@pytest.fixture
def client(overrides) -> TestClient:
    # No context manager: lifespan (provider logging, database init) stays off
    return TestClient(app)


def sse_events(text: str) -> list:
    return [
        json.loads(frame[len("data: "):])
        for frame in text.split("\n\n")
        if frame.startswith("data: ")
    ]


class TestServiceEndpoints:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "operational"
        assert "multi_timeframe" in data["pipelines"]

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAnalyze:

    def test_default_pipeline(self, client, chart_image):
        response = client.post("/analyze", json={"image": chart_image, "trading_style": "Day Trader"})

        assert response.status_code == 200
        data = response.json()
        assert data["record_id"] is None
        assert data["result"]["pipeline"] == "chained"
        assert data["result"]["trend"] == "Bullish"
        assert data["result"]["degraded"] is False

    def test_stored_with_user_id(self, client, chart_image):
        response = client.post("/analyze", json={"image": chart_image, "user_id": "user-1"})
        record_id = response.json()["record_id"]

        assert record_id

        stored = client.get(f"/analyses/{record_id}")
        assert stored.status_code == 200
        assert stored.json()["user_id"] == "user-1"
        assert stored.json()["result"]["pipeline"] == "chained"

    def test_explicit_pipeline(self, client, chart_image):
        response = client.post("/analyze", json={"image": chart_image, "pipeline": "single_prompt"})

        assert response.json()["result"]["pipeline"] == "single_prompt"

    def test_single(self, client, chart_image):
        response = client.post("/analyze/single", json={"image": chart_image})

        assert response.json()["result"]["pipeline"] == "single_prompt"

    def test_collaborative(self, client, chart_image):
        response = client.post("/analyze/collaborative", json={"image": chart_image})

        result = response.json()["result"]
        assert result["pipeline"] == "debate"
        assert result["decision"] == "adopt_bullish"

    def test_multi_timeframe(self, client, chart_image):
        response = client.post(
            "/analyze/multi-timeframe",
            json={"timeframe_images": [chart_image, "https://example.com/4h.png"]},
        )

        result = response.json()["result"]
        assert result["pipeline"] == "multi_timeframe"
        assert result["counter_trend"] is False

    @pytest.mark.parametrize("body", [
        {},
        {"trading_style": "Scalper"},
        {"timeframe_images": ["a", "b", "c", "d"]},
        {"image": "data:image/png;base64,AAAA", "trading_style": "Market Maker"},
    ])
    def test_invalid_request(self, client, body):
        response = client.post("/analyze", json=body)

        assert response.status_code == 422

    def test_degraded_result_is_not_an_http_error(self, client, overrides, scripted, make_orchestrator, chart_image):
        overrides["orchestrator"] = make_orchestrator(scripted(default=InferenceTransportError("provider down")))

        response = client.post("/analyze", json={"image": chart_image, "user_id": "user-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["result"]["degraded"] is True
        assert data["result"]["trend"] == "Error"
        assert data["record_id"] is not None

    def test_storage_failure_does_not_fail_request(self, client, overrides, chart_image):
        overrides["store"] = AsyncMock()
        overrides["store"].store.side_effect = RuntimeError("disk full")

        response = client.post("/analyze", json={"image": chart_image, "user_id": "user-1"})

        assert response.status_code == 200
        assert response.json()["record_id"] is None
        assert response.json()["result"]["degraded"] is False


class TestAnalyzeStream:

    def test_event_sequence(self, client, chart_image):
        response = client.post("/analyze/stream", json={"image": chart_image, "user_id": "user-1"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = sse_events(response.text)
        assert events[0]["type"] == "pipeline_started"
        assert events[0]["stages"] == ["features", "patterns", "synthesis"]
        assert {e["type"] for e in events[1:-1]} == {"stage_progress"}
        final = events[-1]
        assert final["type"] == "final_result"
        assert final["result"]["pipeline"] == "chained"
        assert final["record_id"]

    def test_degraded_stream(self, client, overrides, scripted, make_orchestrator, chart_image):
        overrides["orchestrator"] = make_orchestrator(scripted({"features": InferenceTransportError("down")}))

        events = sse_events(client.post("/analyze/stream", json={"image": chart_image}).text)

        assert events[-1]["type"] == "final_result"
        assert events[-1]["result"]["degraded"] is True
        assert "record_id" not in events[-1]


class TestQuestions:

    def test_answer_appended_to_record(self, client, chart_image):
        record_id = client.post("/analyze", json={"image": chart_image, "user_id": "user-1"}).json()["record_id"]

        response = client.post("/questions", json={
            "image": chart_image,
            "question": "Is 44000 strong support?",
            "record_id": record_id,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["appended"] is True
        assert data["answer"]["confidence"] == 6

        qa = client.get(f"/analyses/{record_id}").json()["qa"]
        assert qa[0]["question"] == "Is 44000 strong support?"

    def test_without_record(self, client, chart_image):
        response = client.post("/questions", json={"image": chart_image, "question": "Trend?"})

        assert response.json()["appended"] is False
        assert response.json()["answer"]["degraded"] is False

    def test_unknown_record(self, client, chart_image):
        response = client.post("/questions", json={
            "image": chart_image, "question": "Trend?", "record_id": "missing",
        })

        assert response.status_code == 200
        assert response.json()["appended"] is False

    def test_blank_question(self, client, chart_image):
        response = client.post("/questions", json={"image": chart_image, "question": "  "})

        assert response.status_code == 422


class TestHistory:

    def test_list_and_feedback(self, client, chart_image):
        first = client.post("/analyze", json={"image": chart_image, "user_id": "user-1"}).json()["record_id"]
        second = client.post(
            "/analyze/collaborative", json={"image": chart_image, "user_id": "user-1"}
        ).json()["record_id"]

        listing = client.get("/analyses", params={"user_id": "user-1"}).json()

        assert listing["count"] == 2
        assert [a["id"] for a in listing["analyses"]] == [second, first]

        response = client.post(f"/analyses/{first}/feedback", json={"feedback": "helpful"})
        assert response.status_code == 200
        assert client.get(f"/analyses/{first}").json()["feedback"] == "helpful"

    def test_list_requires_user(self, client):
        assert client.get("/analyses").status_code == 422

    def test_unknown_record(self, client):
        assert client.get("/analyses/missing").status_code == 404
        response = client.post("/analyses/missing/feedback", json={"feedback": "unhelpful"})
        assert response.status_code == 404

    def test_invalid_feedback(self, client):
        response = client.post("/analyses/any/feedback", json={"feedback": "meh"})

        assert response.status_code == 422
