"""Telemetry listener: one JSON document per connection, no reply.

A client connects, writes a TelemetryPush document and closes (or simply
stops writing). Reading ends at EOF, after MAX_TELEMETRY_BYTES, or after the
connection has been idle for IDLE_TIMEOUT_SECONDS.
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket
from typing import Optional

from pydantic import ValidationError

from ..contracts.v1 import TelemetryPush
from .instance import Paddle

logger = logging.getLogger("paddle.daemon.telemetry")

MAX_TELEMETRY_BYTES = 10 * 1024
IDLE_TIMEOUT_SECONDS = 0.5


async def read_document(
    reader: asyncio.StreamReader,
    *,
    limit: int = MAX_TELEMETRY_BYTES,
    idle_timeout: float = IDLE_TIMEOUT_SECONDS,
) -> bytes:
    buf = bytearray()
    while len(buf) < limit:
        try:
            chunk = await asyncio.wait_for(reader.read(limit - len(buf)), idle_timeout)
        except asyncio.TimeoutError:
            break
        if not chunk:
            break
        buf.extend(chunk)
    return bytes(buf)


def parse_push(raw: bytes) -> Optional[TelemetryPush]:
    text = raw.decode("utf-8", errors="replace").strip()
    if not text:
        return None
    try:
        doc = json.loads(text)
    except ValueError:
        logger.warning("telemetry: malformed json (%d bytes)", len(raw))
        return None
    try:
        return TelemetryPush.model_validate(doc)
    except ValidationError as e:
        logger.warning("telemetry: invalid document: %s", e.errors()[0].get("msg") if e.errors() else e)
        return None


async def handle_connection(paddle: Paddle, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    try:
        raw = await read_document(reader)
        push = parse_push(raw)
        if push is not None and paddle.telemetry_handler is not None:
            await paddle.telemetry_handler(push)
    except Exception:
        logger.exception("telemetry: handler failed")
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError):
            pass


async def start_telemetry_server(paddle: Paddle, sock: socket.socket) -> asyncio.AbstractServer:
    """Serve telemetry on an already bound socket (unix or tcp)."""

    async def _on_conn(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        await handle_connection(paddle, reader, writer)

    if sock.family == getattr(socket, "AF_UNIX", None):
        server = await asyncio.start_unix_server(_on_conn, sock=sock)
    else:
        server = await asyncio.start_server(_on_conn, sock=sock)
    logger.info("telemetry listening on %s", sock.getsockname())
    return server
