"""Workspace file writer for the create_file tool.

Writes content into a sandboxed workspace directory a slice at a time,
yielding progress after every slice so callers can stream it to the client.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote

import aiofiles

from toolgate.chat.errors import ToolErrorCode, ToolExecutionError
from toolgate.config.schema import WorkspaceConfig

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolProgress:
    """One slice was written. ``chunk`` is its decoded text."""

    chunk: str
    bytes_written: int


@dataclass(frozen=True, slots=True)
class ToolDone:
    """The file is complete and closed."""

    file_path: str
    size: int


ToolEvent = ToolProgress | ToolDone


class ToolExecutor(Protocol):
    """Runs approved create_file calls."""

    def create_file(self, path: str, content: str) -> AsyncGenerator[ToolEvent, None]:
        """Yield ToolProgress per written slice, then one ToolDone.

        Raises:
            ToolExecutionError: with code invalid_path, write_failed or tool_error
        """
        ...


class WorkspaceFileWriter:
    """Creates files under a root directory, never outside it.

    Args:
        root: Workspace directory, created on demand
        chunk_size: Bytes written per slice
        chunk_delay: Seconds to pause between slices
    """

    def __init__(
        self,
        root: str | Path = "workspace",
        *,
        chunk_size: int = 120,
        chunk_delay: float = 0.08,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self._root = Path(root)
        self._chunk_size = chunk_size
        self._chunk_delay = max(chunk_delay, 0.0)

    @classmethod
    def from_config(cls, config: WorkspaceConfig) -> WorkspaceFileWriter:
        return cls(config.root, chunk_size=config.chunk_size, chunk_delay=config.chunk_delay)

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, rel_path: str) -> Path:
        """Resolve a model-supplied path to an absolute path inside the root.

        Backslash separators and percent-encoded dots are checked too, so
        ``..\\x`` and ``%2e%2e/x`` are rejected like ``../x``.

        Raises:
            ToolExecutionError: invalid_path if the path leaves the root,
                names the root itself, or contains a NUL byte
        """
        if "\x00" in rel_path:
            raise ToolExecutionError(ToolErrorCode.INVALID_PATH, "Path contains a NUL byte")

        base = self._root.resolve()
        decoded = unquote(rel_path).replace("\\", "/")
        for candidate in {rel_path, decoded}:
            if "\x00" in candidate or not self._is_inside(base, candidate):
                raise ToolExecutionError(
                    ToolErrorCode.INVALID_PATH, f"Path escapes the workspace: {rel_path}"
                )
        return (base / rel_path).resolve()

    @staticmethod
    def _is_inside(base: Path, rel_path: str) -> bool:
        target = (base / rel_path).resolve()
        return target != base and base in target.parents

    def display_path(self, target: Path) -> str:
        """Path reported to the client and the model, relative to the root's parent."""
        relative = target.relative_to(self._root.resolve())
        return (self._root / relative).as_posix()

    async def create_file(self, path: str, content: str) -> AsyncGenerator[ToolEvent, None]:
        target = self.resolve(path)
        data = content.encode("utf-8")
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        written = 0

        log.info("create_file_start path=%s bytes=%d", target, len(data))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "wb") as handle:
                for start in range(0, len(data), self._chunk_size):
                    piece = data[start : start + self._chunk_size]
                    await handle.write(piece)
                    written += len(piece)
                    last = written >= len(data)
                    yield ToolProgress(chunk=decoder.decode(piece, final=last), bytes_written=written)
                    if not last and self._chunk_delay:
                        await asyncio.sleep(self._chunk_delay)
        except OSError as e:
            log.error("create_file_write_failed path=%s: %s", target, e)
            raise ToolExecutionError(ToolErrorCode.WRITE_FAILED, str(e) or "write_failed") from e
        except Exception as e:
            log.error("create_file_failed path=%s: %s", target, e)
            raise ToolExecutionError(ToolErrorCode.TOOL_ERROR, str(e) or "unknown_tool_error") from e

        log.info("create_file_done path=%s bytes=%d", target, written)
        yield ToolDone(file_path=self.display_path(target), size=written)
