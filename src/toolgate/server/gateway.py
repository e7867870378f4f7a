"""WebSocket gateway: one ChatSession and orchestrator per connection."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import partial

from fastapi import WebSocket, WebSocketDisconnect

from toolgate.chat.errors import ClientProtocolError
from toolgate.chat.executor import ToolExecutor
from toolgate.chat.orchestrator import SessionOrchestrator
from toolgate.chat.provider import LLMProvider
from toolgate.chat.schemas import ToolApprovalEvent, UserMessageEvent, parse_client_event
from toolgate.chat.session import ChatSession
from toolgate.chat.types import ServerEvent, error, session_created
from toolgate.metrics import Metrics

log = logging.getLogger(__name__)

ORIGIN_REJECTED_CODE = 1008


@dataclass
class Connection:
    """A live client connection and the state it owns."""

    websocket: WebSocket
    session: ChatSession
    orchestrator: SessionOrchestrator
    tasks: set[asyncio.Task[None]] = field(default_factory=set)


class ChatGateway:
    """Accepts chat connections and routes their frames to orchestrators.

    Every inbound frame is dispatched on its own task, so a frame that
    arrives while a turn is streaming is seen at once (and rejected as busy)
    instead of queueing behind the turn.
    """

    def __init__(
        self,
        *,
        provider: LLMProvider,
        executor: ToolExecutor,
        metrics: Metrics,
        allowed_origins: Iterable[str] = ("*",),
    ) -> None:
        self._provider = provider
        self._executor = executor
        self._metrics = metrics
        self._allowed_origins = frozenset(allowed_origins)
        self._connections: dict[str, Connection] = {}
        self._lock = asyncio.Lock()

    def origin_allowed(self, origin: str | None) -> bool:
        if "*" in self._allowed_origins:
            return True
        if not origin:
            return False
        return origin in self._allowed_origins

    def get_connection_count(self) -> int:
        return len(self._connections)

    async def serve(self, websocket: WebSocket) -> None:
        """Run one connection until the client goes away."""
        connection = await self.connect(websocket)
        if connection is None:
            return

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                await self.handle_message(connection, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await self.disconnect(connection)

    async def connect(self, websocket: WebSocket) -> Connection | None:
        """Accept a client, or close it with 1008 if its origin is not allowed."""
        origin = websocket.headers.get("origin")
        await websocket.accept()
        if not self.origin_allowed(origin):
            log.warning("ws_origin_rejected origin=%s", origin)
            await websocket.close(code=ORIGIN_REJECTED_CODE, reason="origin_not_allowed")
            return None

        session = ChatSession()
        orchestrator = SessionOrchestrator(
            session,
            partial(self.safe_send, websocket),
            provider=self._provider,
            executor=self._executor,
            metrics=self._metrics,
        )
        connection = Connection(websocket, session, orchestrator)
        async with self._lock:
            self._connections[session.session_id] = connection

        self._metrics.increment("ws_connections_total")
        log.info("ws_connection_opened session=%s origin=%s", session.session_id, origin)
        await self.safe_send(websocket, session_created(session.session_id))
        return connection

    async def handle_message(self, connection: Connection, raw: str | bytes) -> None:
        """Validate one frame and dispatch it without waiting for the result."""
        try:
            event = parse_client_event(raw)
        except ClientProtocolError as e:
            log.warning("ws_message_rejected session=%s code=%s", connection.session.session_id, e.code)
            await self.safe_send(connection.websocket, error(e.code))
            return

        task = asyncio.create_task(self._dispatch(connection, event))
        connection.tasks.add(task)
        task.add_done_callback(connection.tasks.discard)

    async def _dispatch(
        self,
        connection: Connection,
        event: UserMessageEvent | ToolApprovalEvent,
    ) -> None:
        try:
            await connection.orchestrator.handle_event(event)
        except Exception:
            log.exception("ws_handler_failed session=%s", connection.session.session_id)
            await self.safe_send(connection.websocket, error("internal_error"))

    async def disconnect(self, connection: Connection) -> None:
        """Cancel the connection's work and forget its session."""
        async with self._lock:
            removed = self._connections.pop(connection.session.session_id, None)
        if removed is None:
            return

        pending = list(connection.tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._metrics.increment("ws_disconnects_total")
        log.info("ws_connection_closed session=%s", connection.session.session_id)

    async def safe_send(self, websocket: WebSocket, event: ServerEvent) -> None:
        try:
            await websocket.send_text(event.to_json())
        except Exception as e:
            log.warning("ws_send_failed type=%s: %s", event.type.value, e)

    async def close_all(self, reason: str = "server_shutdown") -> None:
        async with self._lock:
            connections = list(self._connections.values())

        for connection in connections:
            with contextlib.suppress(Exception):
                await connection.websocket.close(code=1001, reason=reason)
            await self.disconnect(connection)
        if connections:
            log.info("Closed %d chat connections", len(connections))
