"""End-to-end tests of the FastAPI app through Starlette's TestClient."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tests.utils import ScriptedProvider, make_tool, reply
from toolgate.chat.executor import WorkspaceFileWriter
from toolgate.chat.types import TextBlock
from toolgate.config import Config
from toolgate.metrics import Metrics
from toolgate.server import create_app


def make_client(
    provider: ScriptedProvider,
    tmp_path: Path,
    *,
    allowed_origins: list[str] | None = None,
    metrics: Metrics | None = None,
) -> TestClient:
    config = Config()
    if allowed_origins is not None:
        config.server.allowed_origins = allowed_origins
    executor = WorkspaceFileWriter(tmp_path / "workspace", chunk_size=5, chunk_delay=0)
    app = create_app(config, provider=provider, executor=executor, metrics=metrics or Metrics())
    return TestClient(app)


def receive_until(ws, event_type: str) -> list[dict]:
    """Collect events up to and including the first one of ``event_type``."""
    events = []
    while True:
        event = ws.receive_json()
        events.append(event)
        if event["type"] == event_type:
            return events


class TestHttpRoutes:
    def test_health(self, tmp_path: Path) -> None:
        with make_client(ScriptedProvider(), tmp_path) as client:
            response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_metrics(self, tmp_path: Path) -> None:
        metrics = Metrics()
        metrics.increment("ws_connections_total", 3)
        with make_client(ScriptedProvider(), tmp_path, metrics=metrics) as client:
            response = client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "ws_connections_total 3" in response.text


class TestChatWebSocket:
    def test_session_created_on_connect(self, tmp_path: Path) -> None:
        with make_client(ScriptedProvider(), tmp_path) as client:
            with client.websocket_connect("/ws") as ws:
                event = ws.receive_json()
        assert event["type"] == "session_created"
        assert len(event["data"]["session_id"]) == 32

    def test_root_path_also_serves_chat(self, tmp_path: Path) -> None:
        with make_client(ScriptedProvider(), tmp_path) as client:
            with client.websocket_connect("/") as ws:
                assert ws.receive_json()["type"] == "session_created"

    def test_text_round_trip(self, tmp_path: Path) -> None:
        provider = ScriptedProvider(reply(TextBlock("Hi there")))
        with make_client(provider, tmp_path) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.send_json({"type": "user_message", "data": {"text": "hello"}})
                events = receive_until(ws, "assistant_message_completed")

        assert [e["type"] for e in events] == [
            "status_update",
            "ai_chunk",
            "status_update",
            "assistant_message_completed",
        ]
        assert events[1]["data"] == {"text": "Hi there"}

    def test_protocol_errors(self, tmp_path: Path) -> None:
        with make_client(ScriptedProvider(), tmp_path) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.send_text("not json")
                assert ws.receive_json() == {"type": "error", "data": {"message": "invalid_json"}}
                ws.send_json({"type": "tool_approval", "data": {"tool_use_id": "x"}})
                assert ws.receive_json() == {"type": "error", "data": {"message": "invalid_payload"}}

    def test_approved_file_written(self, tmp_path: Path) -> None:
        """Approve flow writes into the workspace and streams progress."""
        tool = make_tool(path="notes/hello.txt", content="hello world")
        provider = ScriptedProvider(reply(TextBlock("Creating."), tool), reply(TextBlock("Done.")))
        with make_client(provider, tmp_path) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
                ws.send_json({"type": "user_message", "data": {"text": "make notes"}})
                first = receive_until(ws, "assistant_message_completed")

                request = next(e for e in first if e["type"] == "tool_request")
                assert request["data"]["id"] == tool.id

                ws.send_json({"type": "tool_approval", "data": {"tool_use_id": tool.id, "approved": True}})
                second = receive_until(ws, "assistant_message_completed")

        chunks = [e["data"]["chunk"] for e in second if e["type"] == "tool_chunk"]
        assert chunks == ["hello", " worl", "d"]
        assert second[-1]["data"] == {"reason": "ok"}
        written = tmp_path / "workspace" / "notes" / "hello.txt"
        assert written.read_text(encoding="utf-8") == "hello world"

    def test_disallowed_origin_closed(self, tmp_path: Path) -> None:
        with make_client(ScriptedProvider(), tmp_path, allowed_origins=["http://ok.test"]) as client:
            with client.websocket_connect("/ws", headers={"origin": "http://evil.test"}) as ws:
                with pytest.raises(WebSocketDisconnect) as exc_info:
                    ws.receive_json()
        assert exc_info.value.code == 1008

    def test_allowed_origin_accepted(self, tmp_path: Path) -> None:
        with make_client(ScriptedProvider(), tmp_path, allowed_origins=["http://ok.test"]) as client:
            with client.websocket_connect("/ws", headers={"origin": "http://ok.test"}) as ws:
                assert ws.receive_json()["type"] == "session_created"

    def test_connection_metrics(self, tmp_path: Path) -> None:
        metrics = Metrics()
        with make_client(ScriptedProvider(), tmp_path, metrics=metrics) as client:
            with client.websocket_connect("/ws") as ws:
                ws.receive_json()
            text = client.get("/metrics").text
        assert "ws_connections_total 1" in text
