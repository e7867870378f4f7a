"""Exception types and upstream error classification.

Three failure families reach the orchestrator:
- ClientProtocolError: a frame from the client could not be understood
- ToolExecutionError: the approved file write failed
- UpstreamError: the provider request failed or its stream broke

classify_upstream_error() maps anything raised during a model turn onto the
small set of codes the client knows how to display.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx


class ClientProtocolError(Exception):
    """Inbound frame rejected.

    Codes: ``invalid_json``, ``invalid_payload``.
    """

    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code


class ToolErrorCode(str, Enum):
    INVALID_PATH = "invalid_path"
    WRITE_FAILED = "write_failed"
    TOOL_ERROR = "tool_error"
    INVALID_TOOL_INPUT = "invalid_tool_input"
    TOOL_EXECUTION_FAILED = "tool_execution_failed"


class ToolExecutionError(Exception):
    """Typed failure raised by a tool executor.

    Attributes:
        code: One of the ToolErrorCode values, as a plain string
        message: Human readable explanation
    """

    def __init__(self, code: str | ToolErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code.value if isinstance(code, ToolErrorCode) else code
        self.message = message


class UpstreamError(Exception):
    """The provider answered with a failure.

    Attributes:
        status: HTTP status code, or None for failures inside the stream
        detail: Parsed JSON error body, raw text, or None
    """

    def __init__(
        self,
        status: int | None,
        detail: Any = None,
        message: str | None = None,
    ) -> None:
        if message is None:
            message = f"anthropic_http_{status}" if status is not None else "anthropic_stream_error"
        super().__init__(message)
        self.status = status
        self.detail = detail


class AIErrorCode(str, Enum):
    """Error codes surfaced to the client for failed model turns."""

    INSUFFICIENT_BALANCE = "ai_insufficient_balance"
    UNAUTHORIZED = "ai_unauthorized"
    RATE_LIMITED = "ai_rate_limited"
    UNAVAILABLE = "ai_unavailable"
    GENERIC = "ai_error"


@dataclass(frozen=True, slots=True)
class ClassifiedError:
    message: str
    detail: str | None = None


_UNAUTHORIZED_TYPES = {"authentication_error", "permission_error"}
_UNAVAILABLE_TYPES = {"overloaded_error", "api_error"}


def classify_upstream_error(exc: BaseException) -> ClassifiedError:
    """Map a failed turn onto an AIErrorCode plus a readable detail.

    The detail is the provider's ``error.message`` when the body carries
    one, otherwise the raw detail, otherwise the exception text.
    """
    status, detail = _status_and_detail(exc)
    provider_message, provider_type = _provider_error(detail)
    detail_text = _detail_to_text(detail)

    readable = provider_message or detail_text or str(exc) or None
    haystack = f"{provider_message or ''} {detail_text or ''} {exc}".lower()

    if "credit balance is too low" in haystack:
        code = AIErrorCode.INSUFFICIENT_BALANCE
    elif status in (401, 403) or provider_type in _UNAUTHORIZED_TYPES:
        code = AIErrorCode.UNAUTHORIZED
    elif status == 429 or provider_type == "rate_limit_error":
        code = AIErrorCode.RATE_LIMITED
    elif (status is not None and status >= 500) or provider_type in _UNAVAILABLE_TYPES:
        code = AIErrorCode.UNAVAILABLE
    elif isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        code = AIErrorCode.UNAVAILABLE
    else:
        code = AIErrorCode.GENERIC

    return ClassifiedError(message=code.value, detail=readable)


def _status_and_detail(exc: BaseException) -> tuple[int | None, Any]:
    if isinstance(exc, UpstreamError):
        return exc.status, exc.detail
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        try:
            return response.status_code, response.json()
        except (httpx.ResponseNotRead, ValueError):
            pass
        try:
            return response.status_code, response.text
        except httpx.ResponseNotRead:
            return response.status_code, None
    status = getattr(exc, "status_code", None)
    return (status if isinstance(status, int) else None), getattr(exc, "detail", None)


def _provider_error(detail: Any) -> tuple[str | None, str | None]:
    """Pull (message, type) out of ``{"error": {"type", "message"}}``."""
    body = detail
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            return None, None
    if not isinstance(body, dict):
        return None, None

    inner = body.get("error")
    if not isinstance(inner, dict):
        # Stream error events carry the inner object directly
        inner = body
    message = inner.get("message")
    error_type = inner.get("type")
    return (
        message if isinstance(message, str) and message else None,
        error_type if isinstance(error_type, str) else None,
    )


def _detail_to_text(detail: Any) -> str | None:
    if detail is None or detail == "":
        return None
    if isinstance(detail, str):
        return detail
    try:
        return json.dumps(detail)
    except (TypeError, ValueError):
        return repr(detail)
