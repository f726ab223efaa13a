from __future__ import annotations

import asyncio
import logging
import socket
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import uvicorn
from fastapi import FastAPI

from ..errors import StartupError
from .privilege import chown_path, prepare_unix_socket_path

logger = logging.getLogger("paddle.daemon.serve")


def bind_server_socket(
    *,
    path: Optional[str] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
    owner: Optional[Tuple[str, str]] = None,
) -> Tuple[socket.socket, Dict[str, Any]]:
    """Bind (but do not listen on) a unix socket at ``path`` or a tcp socket at ``host:port``.

    Binding happens while still privileged so a unix socket can be handed to
    ``owner`` (user, group) before the drop.
    """
    if host and port is not None:
        s = socket.socket(socket.AF_INET6 if ":" in host else socket.AF_INET, socket.SOCK_STREAM)
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind((host, port))
        except OSError as e:
            s.close()
            raise StartupError(f"cannot bind {host}:{port}: {e}") from e
        bound_host, bound_port = s.getsockname()[:2]
        return s, {"transport": "tcp", "host": str(bound_host), "port": int(bound_port)}

    if not path:
        raise StartupError("no bind address configured")
    af_unix = getattr(socket, "AF_UNIX", None)
    if af_unix is None:
        raise StartupError("unix sockets are not supported on this platform")
    sock_path = Path(path)
    prepare_unix_socket_path(sock_path)
    s = socket.socket(af_unix, socket.SOCK_STREAM)
    try:
        s.bind(str(sock_path))
    except OSError as e:
        s.close()
        raise StartupError(f"cannot bind {sock_path}: {e}") from e
    if owner is not None:
        chown_path(sock_path, owner[0], owner[1])
    return s, {"transport": "unix", "path": str(sock_path)}


def endpoint_label(endpoint: Dict[str, Any]) -> str:
    if endpoint.get("transport") == "unix":
        return f"unix:{endpoint.get('path')}"
    return f"http://{endpoint.get('host')}:{endpoint.get('port')}"


async def start_http_server(app: FastAPI, sock: socket.socket, *, ready_timeout: float = 5.0) -> Tuple[uvicorn.Server, "asyncio.Task[None]"]:
    """Run uvicorn on ``sock`` in a background task and wait until it accepts."""
    config = uvicorn.Config(app, log_level="warning", access_log=False, lifespan="off")
    server = uvicorn.Server(config)
    # Signals belong to the supervisor.
    server.install_signal_handlers = lambda: None  # type: ignore[method-assign]
    task = asyncio.create_task(server.serve(sockets=[sock]), name="paddle-http")
    loop = asyncio.get_running_loop()
    deadline = loop.time() + ready_timeout
    while not server.started:
        if task.done():
            exc = task.exception()
            raise StartupError(f"http server exited during startup: {exc!r}")
        if loop.time() > deadline:
            server.should_exit = True
            raise StartupError(f"http server did not start within {ready_timeout}s")
        await asyncio.sleep(0.05)
    return server, task


async def stop_http_server(server: uvicorn.Server, task: "asyncio.Task[None]", *, grace: float = 3.0) -> None:
    server.should_exit = True
    try:
        await asyncio.wait_for(task, grace)
    except asyncio.TimeoutError:
        server.force_exit = True
        task.cancel()
    except Exception:
        logger.exception("http server stopped with an error")


def cleanup_unix_socket(endpoint: Dict[str, Any]) -> None:
    if endpoint.get("transport") != "unix":
        return
    try:
        Path(str(endpoint.get("path"))).unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("could not remove %s: %s", endpoint.get("path"), e)
