"""Per-session turn orchestration.

The orchestrator is the only writer of a ChatSession. It reacts to client
events, runs model turns through an LLMProvider, gates create_file behind
human approval and feeds tool results back to the model.

Session states, as seen through ``active`` and ``pending_tool``:

    Idle --user_message--> Turn in flight --end--> Idle
                                          --end with tool--> Awaiting approval
    Awaiting approval --approve/deny--> (tool runs) --> Turn in flight (resume)
    Turn in flight --error--> Idle (pending cleared)

History is always appended in the order: assistant blocks of a turn, then the
tool_results for that turn's tool calls, then the next turn. Results known when
the turn ends (invalid input, calls displaced by a later one) are staged and
written before the session is released; the call awaiting approval gets its
result when the client answers.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from toolgate.chat.errors import (
    ToolErrorCode,
    ToolExecutionError,
    UpstreamError,
    classify_upstream_error,
)
from toolgate.chat.executor import ToolDone, ToolExecutor, ToolProgress
from toolgate.chat.provider import LLMProvider
from toolgate.chat.schemas import (
    CreateFileInput,
    ToolApprovalEvent,
    UserMessageEvent,
    validate_tool_input,
)
from toolgate.chat.session import ChatSession
from toolgate.chat.types import (
    CREATE_FILE_TOOL,
    STATUS_FIELDS,
    AssistantBlock,
    ServerEvent,
    ToolResultDenied,
    ToolResultError,
    ToolResultOk,
    ToolResultPayload,
    ToolUseBlock,
    ai_chunk,
    assistant_message_completed,
    error,
    status_update,
    tool_chunk,
    tool_request,
)
from toolgate.metrics import Metrics

log = logging.getLogger(__name__)

SendEvent = Callable[[ServerEvent], Awaitable[None]]

INVALID_INPUT_MESSAGE = "Invalid input received for tool"


class TurnKind(Enum):
    """First turn after a user message, or a turn resuming after a tool result."""

    STREAM = "stream"
    RESUME = "resume"


@dataclass(frozen=True, slots=True)
class DeferredResult:
    """A tool result staged during a turn, appended once the turn completes."""

    tool_use_id: str
    result: ToolResultPayload


class _TurnCallbacks:
    """TurnHandler bound to one turn.

    Guards the provider contract: the first of on_end/on_error decides the
    outcome and later ones are ignored.
    """

    def __init__(
        self,
        kind: TurnKind,
        *,
        emit: SendEvent,
        tool_use: Callable[[ToolUseBlock], Awaitable[None]],
        status: Callable[[dict[str, Any]], Awaitable[None]],
        complete: Callable[[list[AssistantBlock]], Awaitable[None]],
        fail: Callable[[BaseException, TurnKind], Awaitable[None]],
    ) -> None:
        self.kind = kind
        self.outcome: Literal["ok", "error"] | None = None
        self._emit = emit
        self._tool_use = tool_use
        self._status = status
        self._complete = complete
        self._fail = fail

    async def on_text(self, text: str) -> None:
        await self._emit(ai_chunk(text))

    async def on_tool(self, tool: ToolUseBlock) -> None:
        await self._tool_use(tool)

    async def on_status(self, status: dict[str, Any]) -> None:
        await self._status(status)

    async def on_end(self, blocks: list[AssistantBlock]) -> None:
        if self.outcome is not None:
            log.warning("turn_end_ignored kind=%s outcome=%s", self.kind.value, self.outcome)
            return
        self.outcome = "ok"
        await self._complete(blocks)

    async def on_error(self, error: BaseException) -> None:
        if self.outcome is not None:
            log.warning("turn_error_ignored kind=%s outcome=%s: %s", self.kind.value, self.outcome, error)
            return
        self.outcome = "error"
        await self._fail(error, self.kind)


class SessionOrchestrator:
    """Drives one ChatSession.

    Args:
        session: The session this orchestrator owns
        send_event: Async callable delivering a ServerEvent to the client
        provider: Streams model turns
        executor: Runs approved create_file calls
        metrics: Counters and duration histograms, shared process-wide
    """

    def __init__(
        self,
        session: ChatSession,
        send_event: SendEvent,
        *,
        provider: LLMProvider,
        executor: ToolExecutor,
        metrics: Metrics | None = None,
    ) -> None:
        self._session = session
        self._send_event = send_event
        self._provider = provider
        self._executor = executor
        self._metrics = metrics or Metrics()
        self._deferred: list[DeferredResult] = []
        self._tool_running = False

    @property
    def session(self) -> ChatSession:
        return self._session

    @property
    def deferred_results(self) -> tuple[DeferredResult, ...]:
        return tuple(self._deferred)

    @property
    def tool_running(self) -> bool:
        return self._tool_running

    # -------------------------------------------------------------------------
    # Client events
    # -------------------------------------------------------------------------

    async def handle_event(self, event: UserMessageEvent | ToolApprovalEvent) -> None:
        if isinstance(event, UserMessageEvent):
            await self.handle_user_message(event.data.text)
        elif isinstance(event, ToolApprovalEvent):
            await self.handle_tool_approval(event.data.tool_use_id, event.data.approved)
        else:
            raise TypeError(f"Unsupported client event: {type(event).__name__}")

    async def handle_user_message(self, text: str) -> None:
        """Start a turn for a new user message, or reject it while busy."""
        if self._is_busy():
            await self._reject_busy()
            return

        pending = self._session.pending_tool
        if pending is not None:
            # The model must see a result for every tool_use before new input
            log.info("tool_implicitly_denied session=%s tool_use_id=%s", self._session.session_id, pending.id)
            self._session.record_tool_result(pending.id, ToolResultDenied())
            self._session.clear_pending_tool()

        self._session.add_user_message(text)
        self._metrics.increment("ws_user_messages_total")
        await self._run_turns(TurnKind.STREAM)

    async def handle_tool_approval(self, tool_use_id: str, approved: bool) -> None:
        """Resolve the pending tool call and resume the model."""
        pending = self._session.pending_tool
        if pending is None or pending.id != tool_use_id:
            await self._emit(error("no_pending_tool"))
            return
        if self._is_busy():
            await self._reject_busy()
            return

        if not approved:
            log.info("tool_denied session=%s tool_use_id=%s", self._session.session_id, tool_use_id)
            self._session.record_tool_result(tool_use_id, ToolResultDenied())
            self._session.clear_pending_tool()
            await self._run_turns(TurnKind.RESUME)
            return

        self._metrics.increment("tool_approvals_total")
        # Held until the resume turn marks the session active
        self._tool_running = True
        try:
            tool_input = validate_tool_input(pending.input)
            if tool_input is None:
                log.warning(
                    "tool_approval_invalid_input session=%s tool_use_id=%s",
                    self._session.session_id,
                    tool_use_id,
                )
                await self._emit(error("tool_input_invalid"))
                result: ToolResultPayload = ToolResultError(
                    ToolErrorCode.INVALID_TOOL_INPUT.value, INVALID_INPUT_MESSAGE
                )
            else:
                result = await self._execute_tool(tool_use_id, tool_input)

            self._session.record_tool_result(tool_use_id, result)
            self._session.clear_pending_tool()
        finally:
            self._tool_running = False
        await self._run_turns(TurnKind.RESUME)

    def _is_busy(self) -> bool:
        return self._session.active or self._tool_running

    async def _reject_busy(self) -> None:
        self._metrics.increment("ws_busy_rejections_total")
        await self._emit(status_update(busy=True))

    # -------------------------------------------------------------------------
    # Turns
    # -------------------------------------------------------------------------

    async def _run_turns(self, kind: TurnKind) -> None:
        """Run a turn, then resume with the results it staged.

        The session stays active from the end of a turn that staged results
        until they are in history. The model is resumed only when no call from
        that turn still awaits approval.
        """
        while True:
            completed = await self._run_turn(kind)
            # A turn that staged nothing went idle in on_end and owns nothing here
            if not completed or not self._session.active:
                return
            deferred, self._deferred = self._deferred, []
            for staged in deferred:
                log.info(
                    "deferred_result_applied session=%s tool_use_id=%s",
                    self._session.session_id,
                    staged.tool_use_id,
                )
                self._session.record_tool_result(staged.tool_use_id, staged.result)
            if self._session.pending_tool is not None:
                self._session.active = False
                return
            kind = TurnKind.RESUME

    async def _run_turn(self, kind: TurnKind) -> bool:
        """Run one model turn. Returns True if it completed normally."""
        self._session.active = True
        self._metrics.increment("anthropic_requests_total")
        stop = self._metrics.timer()
        callbacks = _TurnCallbacks(
            kind,
            emit=self._emit,
            tool_use=self._on_tool_use,
            status=self._forward_status,
            complete=self._complete_turn,
            fail=self._fail_turn,
        )
        log.debug(
            "turn_start session=%s kind=%s messages=%d",
            self._session.session_id,
            kind.value,
            len(self._session.history),
        )

        try:
            await self._provider.stream_turn(self._session.history, callbacks)
            if callbacks.outcome is None:
                await callbacks.on_error(
                    UpstreamError(None, "stream_incomplete", message="provider_returned_without_result")
                )
        except Exception as exc:
            log.exception("anthropic_%s_exception session=%s", kind.value, self._session.session_id)
            if callbacks.outcome is None:
                await callbacks.on_error(exc)
        finally:
            self._metrics.observe(f"anthropic_{kind.value}_duration_ms", stop())

        return callbacks.outcome == "ok"

    async def _complete_turn(self, blocks: list[AssistantBlock]) -> None:
        self._session.add_assistant_blocks(blocks)
        # Staged results must follow these blocks before anything else runs
        if not self._deferred:
            self._session.active = False
        await self._emit(assistant_message_completed("ok"))

    async def _fail_turn(self, exc: BaseException, kind: TurnKind) -> None:
        classified = classify_upstream_error(exc)
        log.error(
            "anthropic_%s_failed session=%s code=%s detail=%s",
            kind.value,
            self._session.session_id,
            classified.message,
            classified.detail,
        )
        self._metrics.increment("anthropic_errors_total")
        self._session.active = False
        self._session.clear_pending_tool()
        self._deferred = []
        await self._emit(status_update(ai_typing=False))
        await self._emit(error(classified.message, classified.detail))
        await self._emit(assistant_message_completed("error"))

    async def _on_tool_use(self, tool: ToolUseBlock) -> None:
        tool_input = validate_tool_input(tool.input) if tool.name == CREATE_FILE_TOOL else None

        if tool_input is None:
            log.warning(
                "tool_request_invalid_input session=%s tool_use_id=%s name=%s",
                self._session.session_id,
                tool.id,
                tool.name,
            )
            await self._emit(error("tool_input_invalid"))
            self._deferred.append(
                DeferredResult(
                    tool.id,
                    ToolResultError(ToolErrorCode.INVALID_TOOL_INPUT.value, INVALID_INPUT_MESSAGE),
                )
            )
            return

        displaced = self._session.pending_tool
        if displaced is not None:
            # Only one call awaits approval; an earlier one in the same turn is denied
            log.warning(
                "tool_use_replaces_earlier session=%s tool_use_id=%s replaced=%s",
                self._session.session_id,
                tool.id,
                displaced.id,
            )
            self._deferred.append(DeferredResult(displaced.id, ToolResultDenied()))

        normalized = ToolUseBlock(id=tool.id, name=tool.name, input=tool_input.to_dict())
        self._session.set_pending_tool(normalized)
        self._metrics.increment("tool_requests_total")
        await self._emit(tool_request(normalized))

    # -------------------------------------------------------------------------
    # Tool execution
    # -------------------------------------------------------------------------

    async def _execute_tool(self, tool_use_id: str, tool_input: CreateFileInput) -> ToolResultPayload:
        await self._emit(status_update(tool_running=True, file_path=tool_input.path))
        done: ToolDone | None = None
        try:
            async with aclosing(self._executor.create_file(tool_input.path, tool_input.content)) as events:
                async for event in events:
                    if isinstance(event, ToolProgress):
                        if event.chunk:
                            await self._emit(tool_chunk(event.chunk))
                    elif isinstance(event, ToolDone):
                        done = event
        except Exception as exc:
            if isinstance(exc, ToolExecutionError):
                code, message = exc.code, exc.message
            else:
                code, message = ToolErrorCode.TOOL_EXECUTION_FAILED.value, str(exc) or type(exc).__name__
            log.error(
                "tool_execution_failed session=%s tool_use_id=%s code=%s: %s",
                self._session.session_id,
                tool_use_id,
                code,
                message,
            )
            self._metrics.increment("tool_errors_total")
            await self._emit(error("tool_error", message))
            return ToolResultError(code, message)
        finally:
            await self._emit(status_update(tool_running=False))

        if done is None:
            return ToolResultOk(file_path=tool_input.path, size=len(tool_input.content.encode("utf-8")))
        return ToolResultOk(file_path=done.file_path, size=done.size)

    # -------------------------------------------------------------------------
    # Outbound
    # -------------------------------------------------------------------------

    async def _forward_status(self, status: dict[str, Any]) -> None:
        fields = {
            key: value
            for key, value in status.items()
            if key in STATUS_FIELDS and isinstance(value, STATUS_FIELDS[key])
        }
        if fields:
            await self._emit(status_update(**fields))

    async def _emit(self, event: ServerEvent) -> None:
        await self._send_event(event)
