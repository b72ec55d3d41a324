"""
Tests for the REST API.
"""
import asyncio

import pytest
from fastapi.testclient import TestClient

from mcbot_events import EventPipeline, PipelineConfig, __version__
from mcbot_events.api import create_app


@pytest.fixture
def pipeline():
    return EventPipeline(PipelineConfig(history_query_limit=2))


@pytest.fixture
def client(pipeline):
    return TestClient(create_app(pipeline))


def seed(pipeline, n):
    async def run():
        for i in range(n):
            await pipeline.hub.create_and_emit(
                "chat", "info", f"alice: {i}", {"username": "alice", "message": str(i)},
            )
    asyncio.run(run())


class TestHealth:

    def test_health(self, client, pipeline):
        seed(pipeline, 1)
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__, "history_size": 1}


class TestHistory:

    def test_default_limit_from_config(self, client, pipeline):
        seed(pipeline, 5)
        events = client.get("/events/history").json()

        assert [e["description"] for e in events] == ["alice: 3", "alice: 4"]
        assert events[0]["data"] == {"username": "alice", "message": "3"}

    def test_filter_and_limit(self, client, pipeline):
        seed(pipeline, 3)
        asyncio.run(pipeline.hub.create_and_emit("death", "error", "机器人死亡"))

        events = client.get("/events/history", params={"kind": "death", "limit": 10}).json()
        assert len(events) == 1
        assert events[0]["severity"] == "error"

    def test_invalid_limit(self, client):
        assert client.get("/events/history", params={"limit": 0}).status_code == 422

    def test_clear(self, client, pipeline):
        seed(pipeline, 3)

        assert client.delete("/events/history").json() == {"cleared": True}
        assert len(pipeline.hub) == 0

    def test_resize(self, client, pipeline):
        seed(pipeline, 3)

        response = client.put("/events/history/size", json={"size": 1})
        assert response.json() == {"capacity": 1, "size": 1}

        assert client.put("/events/history/size", json={"size": -1}).status_code == 422


class TestInject:

    def test_inject_event(self, client, pipeline):
        response = client.post("/events", json={
            "kind": "chat",
            "description": "alice: hi",
            "data": {"username": "alice", "message": "hi"},
        })

        assert response.status_code == 200
        assert response.json()["severity"] == "info"
        assert pipeline.hub.get_history()[0].description == "alice: hi"

    def test_unknown_kind(self, client):
        response = client.post("/events", json={"kind": "teleport", "description": "?"})
        assert response.status_code == 400

    def test_bad_payload(self, client):
        response = client.post("/events", json={
            "kind": "chat", "description": "?", "data": {"block_name": "stone"},
        })
        assert response.status_code == 400

    @pytest.mark.parametrize("position", [{"x": 1}, {"x": "a", "y": 0, "z": 0}, [1, 2, 3]])
    def test_malformed_position(self, client, pipeline, position):
        response = client.post("/events", json={
            "kind": "death", "description": "x", "data": {"position": position},
        })

        assert response.status_code == 400
        assert "position" in response.json()["detail"]
        assert len(pipeline.hub) == 0

    def test_stats(self, client, pipeline):
        seed(pipeline, 2)
        stats = client.get("/events/stats").json()

        assert stats["history"]["size"] == 2
        assert stats["metrics"]["counters"]["hub.emitted"] == 2


class TestNotifierRoutes:

    def test_toggle_enabled(self, client, pipeline):
        response = client.put("/notifier/enabled", json={"enabled": False})

        assert response.json()["enabled"] is False
        assert not pipeline.notifier.enabled

    def test_important_kinds(self, client, pipeline):
        added = client.post("/notifier/important-kinds/move").json()
        assert "move" in added["important_kinds"]

        removed = client.delete("/notifier/important-kinds/chat").json()
        assert "chat" not in removed["important_kinds"]
        assert "chat" not in pipeline.notifier.important_kinds

    def test_status(self, client):
        status = client.get("/notifier").json()

        assert status["enabled"] is True
        assert status["important_kinds"] == sorted(status["important_kinds"])
