"""Privileged command helper.

Spawned by the supervisor before it drops privilege, with its stdin/stdout
connected to the supervisor's correlation channel. It announces itself with a
ready message, then executes ``exec`` requests: an explicit command and
argument vector in an optional working directory, never through a shell.
Every request with a recoverable id is answered exactly once.

Run as: python -m paddle.daemon.root_helper
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import signal
import sys
from typing import Any, Dict, Optional, Set

from pydantic import ValidationError

from ..contracts.v1 import ExecRequest, ExecResponse, ReadyMessage
from ..util.obslog import setup_logging
from .ipc import MAX_LINE_BYTES, encode_line, read_json_line

logger = logging.getLogger("paddle.root")


async def execute(req: ExecRequest) -> ExecResponse:
    try:
        proc = await asyncio.create_subprocess_exec(
            req.cmd,
            *req.args,
            cwd=req.cwd or None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        code = e.errno if e.errno is not None else errno.EIO
        return ExecResponse(id=req.id, stdout="", stderr=f"{req.cmd}: {e.strerror or e}", code=code)
    out, err = await proc.communicate()
    stdout = out.decode("utf-8", errors="replace")
    stderr = err.decode("utf-8", errors="replace")
    if proc.returncode != 0:
        return ExecResponse(id=req.id, stdout=stdout, stderr=stderr, code=int(proc.returncode or 0))
    return ExecResponse(id=req.id, stdout=stdout, stderr=stderr)


async def handle_message(msg: Dict[str, Any]) -> Optional[ExecResponse]:
    """Validate and run one request; None when the message carries no usable id."""
    try:
        req = ExecRequest.model_validate(msg)
    except ValidationError as e:
        rid = msg.get("id")
        if isinstance(rid, str) and rid:
            logger.warning("rejecting invalid request id=%s", rid)
            return ExecResponse(id=rid, stderr=f"invalid request: {e.error_count()} error(s)", code=errno.EINVAL)
        logger.warning("dropping message without id: %r", msg)
        return None
    logger.debug("exec id=%s cmd=%s args=%s cwd=%s", req.id, req.cmd, req.args, req.cwd)
    return await execute(req)


async def serve(reader: asyncio.StreamReader, writer: Any) -> None:
    writer.write(encode_line(ReadyMessage(pid=os.getpid()).model_dump()))
    await writer.drain()

    inflight: Set[asyncio.Task[None]] = set()

    async def _answer(msg: Dict[str, Any]) -> None:
        resp = await handle_message(msg)
        if resp is None:
            return
        writer.write(encode_line(resp.model_dump(exclude_none=True)))
        await writer.drain()

    while True:
        try:
            msg = await read_json_line(reader)
        except ValueError as e:
            logger.warning("dropping oversized request line: %s", e)
            continue
        if msg is None:
            break
        if not msg:
            logger.warning("dropping unparseable line")
            continue
        task = asyncio.get_running_loop().create_task(_answer(msg))
        inflight.add(task)
        task.add_done_callback(inflight.discard)

    if inflight:
        await asyncio.gather(*inflight, return_exceptions=True)


async def _stdio_streams() -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=MAX_LINE_BYTES)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    transport, protocol = await loop.connect_write_pipe(asyncio.streams.FlowControlMixin, sys.stdout)
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)
    return reader, writer


async def _main() -> None:
    reader, writer = await _stdio_streams()
    await serve(reader, writer)


def main() -> int:
    # stdout is the IPC pipe; logs go to stderr
    setup_logging(component="root", level=logging.INFO, stream=sys.stderr)
    if sys.stdin.isatty() or sys.stdout.isatty():
        logger.error("root helper must run as a child process connected through pipes")
        return 1
    # Terminal signals go to the supervisor; this process exits when its stdin closes.
    signal.signal(signal.SIGINT, signal.SIG_IGN)
    asyncio.run(_main())
    return 0


if __name__ == "__main__":
    sys.exit(main())
