"""FastAPI application: chat WebSocket, health and metrics endpoints."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from toolgate import __version__
from toolgate.chat.anthropic import AnthropicProvider
from toolgate.chat.executor import ToolExecutor, WorkspaceFileWriter
from toolgate.chat.provider import LLMProvider
from toolgate.config import Config, fetch_secret, get_config
from toolgate.metrics import Metrics
from toolgate.server.gateway import ChatGateway

log = logging.getLogger(__name__)


def create_app(
    config: Config | None = None,
    provider: LLMProvider | None = None,
    executor: ToolExecutor | None = None,
    metrics: Metrics | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Loaded configuration; the global config when omitted
        provider: Model provider; an AnthropicProvider built from config and
            the ANTHROPIC_API_KEY secret when omitted
        executor: Tool executor; a WorkspaceFileWriter when omitted
        metrics: Shared metrics registry
    """
    config = config or get_config()
    metrics = metrics or Metrics()
    owns_provider = provider is None
    if provider is None:
        provider = AnthropicProvider.from_config(config.llm, fetch_secret("ANTHROPIC_API_KEY") or "")
    if executor is None:
        executor = WorkspaceFileWriter.from_config(config.workspace)

    gateway = ChatGateway(
        provider=provider,
        executor=executor,
        metrics=metrics,
        allowed_origins=config.server.allowed_origins,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info("http_server_starting model=%s", provider.model)
        try:
            yield
        finally:
            await gateway.close_all()
            if owns_provider and isinstance(provider, AnthropicProvider):
                await provider.aclose()
            log.info("http_server_stopped")

    app = FastAPI(
        title="toolgate",
        description="Streaming chat with human-approved file tools",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.gateway = gateway
    app.state.metrics = metrics
    app.state.config = config

    app.add_middleware(CORSMiddleware, **_cors_options(config.server.allowed_origins))
    _register_routes(app, gateway, metrics)
    return app


def _cors_options(allowed_origins: list[str]) -> dict[str, Any]:
    if "*" in allowed_origins:
        # Credentials cannot be combined with a literal "*"; echo any origin
        return {
            "allow_origin_regex": ".*",
            "allow_credentials": True,
            "allow_methods": ["*"],
            "allow_headers": ["*"],
        }
    return {
        "allow_origins": list(allowed_origins),
        "allow_credentials": True,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
    }


def _register_routes(app: FastAPI, gateway: ChatGateway, metrics: Metrics) -> None:
    """Register HTTP and WebSocket routes."""

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics_endpoint() -> str:
        return metrics.render()

    @app.websocket("/ws")
    async def chat_ws(websocket: WebSocket) -> None:
        await gateway.serve(websocket)

    @app.websocket("/")
    async def chat_ws_root(websocket: WebSocket) -> None:
        await gateway.serve(websocket)
