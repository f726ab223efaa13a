"""Supervisor-side management of the root helper process."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Callable, Optional, Tuple

from .ipc import MAX_LINE_BYTES, CorrelationChannel

logger = logging.getLogger("paddle.daemon.root")


async def spawn_root_helper(
    *,
    ready_timeout: float,
    request_timeout: float,
    on_close: Optional[Callable[[], None]] = None,
) -> Tuple[asyncio.subprocess.Process, CorrelationChannel]:
    """Start the helper and wait for its ready handshake.

    Must run before the supervisor drops privilege; the helper keeps the
    supervisor's original credentials. Raises HandshakeTimeout if the helper
    does not report ready in time (the helper is killed first).
    """
    proc = await asyncio.create_subprocess_exec(
        sys.executable,
        "-m",
        "paddle.daemon.root_helper",
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        limit=MAX_LINE_BYTES,
    )
    assert proc.stdout is not None and proc.stdin is not None
    channel = CorrelationChannel(proc.stdout, proc.stdin, timeout_seconds=request_timeout, on_close=on_close)
    channel.start()
    try:
        await channel.wait_ready(ready_timeout)
    except BaseException:
        await stop_root_helper(proc, channel)
        raise
    logger.info("root helper ready pid=%s", channel.helper_pid or proc.pid)
    return proc, channel


async def stop_root_helper(proc: asyncio.subprocess.Process, channel: CorrelationChannel, *, grace: float = 2.0) -> None:
    await channel.aclose()
    if proc.returncode is not None:
        return
    try:
        await asyncio.wait_for(proc.wait(), grace)
        return
    except asyncio.TimeoutError:
        pass
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()
