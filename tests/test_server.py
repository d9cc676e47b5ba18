"""
Integration tests for the FastAPI debate server.
"""

import asyncio
import json
import os
import sys
import time

import httpx
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from llm_debate.config import OllamaConfig, ServerConfig
from llm_debate.debate.controller import TurnController
from llm_debate.debate.schema import Message, Speaker
from llm_debate.presentation.server import DebateServer
from llm_debate.providers.base import TurnError
from llm_debate.providers.ollama_provider import OllamaTurnProvider
from llm_debate.shared.event_bus import EventBus


def run(coro):
    """Helper to run a coroutine synchronously."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class EchoProvider:
    """Instant provider: replies with the speaker name and the history length."""
    def __init__(self, speaker, error=None):
        self.speaker = speaker
        self.error = error

    async def take_turn(self, history, topic=None):
        if self.error:
            raise TurnError(self.error, status=500)
        if not history:
            return Message(self.speaker, f"{self.speaker.value} opens: {topic}")
        return Message(self.speaker, f"{self.speaker.value} after {len(history)}")


def make_server(providers=None, max_rounds=4):
    providers = providers or {
        Speaker.OPENAI: EchoProvider(Speaker.OPENAI),
        Speaker.LLAMA: EchoProvider(Speaker.LLAMA),
    }
    bus = EventBus()
    controller = TurnController(providers, bus, max_rounds=max_rounds, turn_delay=0)
    return DebateServer(ServerConfig(), bus, controller, providers)


def wait_for_status(client, status, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        state = client.get("/api/debate").json()
        if state["status"] == status:
            return state
        time.sleep(0.02)
    raise AssertionError(f"debate never reached {status!r}")


@pytest.fixture
def client():
    server = make_server()
    with TestClient(server.app) as c:
        yield c


class TestBasicRoutes:

    def test_index(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert "LLM" in r.text

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok", "connections": 0}

    def test_initial_state(self, client):
        state = client.get("/api/debate").json()
        assert state["status"] == "idle"
        assert state["history"] == []
        assert state["current_speaker"] == "openai"
        assert state["max_rounds"] == 4


class TestTurnEndpoints:
    """The stateless single-turn adapters."""

    def test_openai_turn(self, client):
        r = client.post("/api/openai-turn", json={"history": [], "topic": "Mars"})
        assert r.status_code == 200
        assert r.json() == {"speaker": "openai", "content": "openai opens: Mars"}

    def test_llama_turn_with_history(self, client):
        history = [{"speaker": "openai", "content": "hi"}]
        r = client.post("/api/llama-turn", json={"history": history})
        assert r.json() == {"speaker": "llama", "content": "llama after 1"}

    def test_turn_does_not_touch_session(self, client):
        client.post("/api/openai-turn", json={"history": [], "topic": "Mars"})
        assert client.get("/api/debate").json()["history"] == []

    def test_malformed_body(self, client):
        r = client.post("/api/openai-turn", json={"history": [{"speaker": "bob", "content": "x"}]})
        assert r.status_code == 400
        assert "error" in r.json()

    def test_upstream_failure_returns_error(self):
        """A 500 from Ollama becomes a 500 with the upstream status and body."""
        provider = OllamaTurnProvider(OllamaConfig())
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="model crashed"))
        run(provider.initialize(transport=transport))
        server = make_server({
            Speaker.OPENAI: EchoProvider(Speaker.OPENAI),
            Speaker.LLAMA: provider,
        })
        with TestClient(server.app) as c:
            r = c.post("/api/llama-turn", json={"history": [{"speaker": "openai", "content": "hi"}]})
        assert r.status_code == 500
        assert r.json() == {"error": "Ollama error 500: model crashed"}


class TestDebateSession:

    def test_full_debate(self, client):
        r = client.post("/api/debate/start", json={"topic": "Cats"})
        assert r.status_code == 200
        assert r.json()["status"] == "running"

        state = wait_for_status(client, "finished")
        speakers = [m["speaker"] for m in state["history"]]
        assert speakers == ["openai", "llama", "openai", "llama"]
        assert state["history"][0]["content"] == "openai opens: Cats"
        assert state["round_count"] == 4
        assert state["running"] is False

    def test_blank_topic(self, client):
        r = client.post("/api/debate/start", json={"topic": "  "})
        assert r.status_code == 400
        assert r.json()["error"] == "Topic must not be empty"

    def test_failure_keeps_history(self):
        server = make_server({
            Speaker.OPENAI: EchoProvider(Speaker.OPENAI),
            Speaker.LLAMA: EchoProvider(Speaker.LLAMA, error="Ollama error 500: boom"),
        })
        with TestClient(server.app) as c:
            c.post("/api/debate/start", json={"topic": "Cats"})
            state = wait_for_status(c, "errored")
        assert state["error"] == "Ollama error 500: boom"
        assert len(state["history"]) == 1

    def test_resume_requires_stopped_session(self, client):
        r = client.post("/api/debate/resume")
        assert r.status_code == 409
        assert "idle" in r.json()["error"]

    def test_reset(self, client):
        client.post("/api/debate/start", json={"topic": "Cats"})
        wait_for_status(client, "finished")
        state = client.post("/api/debate/reset").json()
        assert state["history"] == []
        assert state["round_count"] == 0
        assert state["current_speaker"] == "openai"
        assert state["status"] == "idle"

    def test_stop_when_idle_is_harmless(self, client):
        assert client.post("/api/debate/stop").json()["status"] == "idle"


class TestExportImport:

    def test_export_text(self, client):
        client.post("/api/debate/start", json={"topic": "Cats"})
        wait_for_status(client, "finished")
        r = client.get("/api/debate/export", params={"format": "txt"})
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/plain")
        assert 'filename="debate-' in r.headers["content-disposition"]
        assert r.text.startswith("Topic: Cats\n\n1. [OPENAI]: openai opens: Cats")

    def test_export_then_import_round_trip(self, client):
        client.post("/api/debate/start", json={"topic": "Cats"})
        before = wait_for_status(client, "finished")
        exported = json.loads(client.get("/api/debate/export", params={"format": "json"}).text)
        assert exported == {"topic": "Cats", "history": before["history"]}

        client.post("/api/debate/reset")
        state = client.post("/api/debate/import", json=exported).json()
        assert state["topic"] == "Cats"
        assert state["history"] == before["history"]
        assert state["status"] == "finished"

    def test_import_non_alternating(self, client):
        body = {"topic": "t", "history": [
            {"speaker": "llama", "content": "me first"},
        ]}
        r = client.post("/api/debate/import", json=body)
        assert r.status_code == 400
        assert "expected openai" in r.json()["error"]

    def test_unknown_export_format(self, client):
        r = client.get("/api/debate/export", params={"format": "pdf"})
        assert r.status_code == 400


class TestWebSocket:

    def test_sync_on_connect(self, client):
        with client.websocket_connect("/ws") as ws:
            msg = ws.receive_json()
        assert msg["type"] == "sync"
        assert msg["payload"]["status"] == "idle"


def collect_frames(ws, done, limit=50):
    """Read /ws frames until ``done(frames)`` holds."""
    frames = []
    while not done(frames):
        if len(frames) >= limit:
            raise AssertionError(f"gave up after {limit} frames: {frames}")
        frames.append(ws.receive_json())
    return frames


def of_type(frames, frame_type):
    return [f["payload"] for f in frames if f["type"] == frame_type]


def wait_for_connections(client, count, timeout=3.0):
    deadline = time.monotonic() + timeout
    while client.get("/health").json()["connections"] != count:
        if time.monotonic() > deadline:
            raise AssertionError("websocket never registered")
        time.sleep(0.02)


class TestWebSocketPush:
    """Session events reach connected browsers once the bus is running."""

    def test_message_and_status_frames(self):
        server = make_server(max_rounds=2)
        with TestClient(server.app) as c:
            c.portal.call(server.bus.start)
            try:
                with c.websocket_connect("/ws") as ws:
                    assert ws.receive_json()["type"] == "sync"
                    wait_for_connections(c, 1)
                    c.post("/api/debate/start", json={"topic": "Cats"})
                    frames = collect_frames(ws, lambda fs: (
                        len(of_type(fs, "message")) == 2
                        and any(s["status"] == "finished" for s in of_type(fs, "status"))
                    ))
            finally:
                c.portal.call(server.bus.stop)

        messages = of_type(frames, "message")
        assert [(m["speaker"], m["round"]) for m in messages] == [("openai", 1), ("llama", 2)]
        assert messages[0]["content"] == "openai opens: Cats"
        statuses = [s["status"] for s in of_type(frames, "status")]
        assert statuses[0] == "running"
        assert statuses[-1] == "finished"
        assert of_type(frames, "error") == []

    def test_error_frame_on_failed_turn(self):
        server = make_server({
            Speaker.OPENAI: EchoProvider(Speaker.OPENAI),
            Speaker.LLAMA: EchoProvider(Speaker.LLAMA, error="Ollama error 500: boom"),
        })
        with TestClient(server.app) as c:
            c.portal.call(server.bus.start)
            try:
                with c.websocket_connect("/ws") as ws:
                    ws.receive_json()
                    wait_for_connections(c, 1)
                    c.post("/api/debate/start", json={"topic": "Cats"})
                    frames = collect_frames(ws, lambda fs: (
                        of_type(fs, "error")
                        and any(s["status"] == "errored" for s in of_type(fs, "status"))
                    ))
            finally:
                c.portal.call(server.bus.stop)

        assert of_type(frames, "error") == [{"speaker": "llama", "error": "Ollama error 500: boom"}]
        errored = [s for s in of_type(frames, "status") if s["status"] == "errored"][-1]
        assert errored["error"] == "Ollama error 500: boom"
        assert len(errored["history"]) == 1
