"""Correlation channel: request/response multiplexing over a duplex byte stream.

Every outgoing ExecRequest gets a unique id and a pending future; the reader
task resolves the future when the ExecResponse with the same id arrives.
Responses may arrive in any order. A pending request is always settled:
by its response, by the per-request timeout, or by the channel closing.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..contracts.v1 import ExecRequest, ExecResponse, ExecResult, ReadyMessage
from ..errors import ChannelClosed, CommandError, CommandTimeout, HandshakeTimeout

logger = logging.getLogger("paddle.daemon.ipc")

MAX_LINE_BYTES = 4_000_000


def encode_line(obj: Dict[str, Any]) -> bytes:
    return (json.dumps(obj, ensure_ascii=False) + "\n").encode("utf-8")


async def read_json_line(reader: asyncio.StreamReader) -> Optional[Dict[str, Any]]:
    """Next JSON document from the stream; None at EOF, {} for an unparseable line."""
    line = await reader.readline()
    if not line:
        return None
    try:
        obj = json.loads(line.decode("utf-8", errors="replace"))
    except ValueError:
        return {}
    return obj if isinstance(obj, dict) else {}


class CorrelationChannel:
    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: Any,
        *,
        timeout_seconds: float = 60.0,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._timeout = float(timeout_seconds)
        self._on_close = on_close
        self._pending: Dict[str, asyncio.Future[ExecResponse]] = {}
        self._seq = itertools.count(1)
        self._ready = asyncio.Event()
        self._closed = False
        self._reader_task: Optional[asyncio.Task[None]] = None
        self.helper_pid: Optional[int] = None

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def start(self) -> None:
        if self._reader_task is None:
            self._reader_task = asyncio.get_running_loop().create_task(self._read_loop(), name="paddle-ipc-reader")

    async def wait_ready(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            raise HandshakeTimeout(f"root helper not ready within {timeout:g}s") from None

    def next_id(self) -> str:
        return f"{time.monotonic_ns():x}-{next(self._seq)}"

    async def exec(self, cmd: str, args: Optional[List[str]] = None, cwd: Optional[str] = None) -> ExecResult:
        """Run a command through the root helper.

        Raises CommandError when the command fails, CommandTimeout when no response
        arrives in time, ChannelClosed when the helper goes away.
        """
        if self._closed:
            raise ChannelClosed("root helper channel is closed")
        req = ExecRequest(id=self.next_id(), cmd=cmd, args=list(args or []), cwd=cwd)
        fut: asyncio.Future[ExecResponse] = asyncio.get_running_loop().create_future()
        self._pending[req.id] = fut
        try:
            self._writer.write(encode_line(req.model_dump(exclude_none=True)))
            await self._writer.drain()
            resp = await asyncio.wait_for(fut, self._timeout)
        except asyncio.TimeoutError:
            logger.warning("root exec timed out id=%s cmd=%s", req.id, cmd)
            raise CommandTimeout(self._timeout) from None
        except (BrokenPipeError, ConnectionResetError) as e:
            self._close()
            raise ChannelClosed(f"root helper pipe broken: {e}") from e
        finally:
            self._pending.pop(req.id, None)
        if resp.failed:
            raise CommandError(int(resp.code or 0), resp.stderr or "", resp.stdout or "")
        return ExecResult(stdout=resp.stdout or "", stderr=resp.stderr or "")

    def dispatch(self, msg: Dict[str, Any]) -> None:
        """Route one inbound message: ready handshake or a response by id."""
        if msg.get("type") == "ready" and "id" not in msg:
            try:
                ready = ReadyMessage.model_validate(msg)
            except ValidationError:
                logger.warning("ignoring malformed ready message: %r", msg)
                return
            self.helper_pid = ready.pid or None
            self._ready.set()
            return
        try:
            resp = ExecResponse.model_validate(msg)
        except ValidationError:
            logger.warning("ignoring malformed root helper message: %r", msg)
            return
        fut = self._pending.pop(resp.id, None)
        if fut is None:
            logger.debug("dropping response for unknown id=%s", resp.id)
            return
        if not fut.done():
            fut.set_result(resp)

    async def _read_loop(self) -> None:
        try:
            while True:
                msg = await read_json_line(self._reader)
                if msg is None:
                    break
                if msg:
                    self.dispatch(msg)
        except (ConnectionResetError, asyncio.IncompleteReadError, ValueError) as e:
            logger.error("root helper channel read failed: %s", e)
        finally:
            self._close()

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        pending = list(self._pending.values())
        self._pending.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(ChannelClosed("root helper channel closed"))
        if self._on_close is not None:
            self._on_close()

    async def aclose(self) -> None:
        """Close the write side and settle everything still pending."""
        try:
            self._writer.close()
        except (OSError, RuntimeError):
            pass
        self._on_close = None
        self._close()
        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
