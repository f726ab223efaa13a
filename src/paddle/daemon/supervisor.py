"""The unprivileged daemon process.

Startup order matters: the root helper is spawned and the listeners are bound
while the process still holds root; modules load next (they may need root to
prepare directories); only then is privilege dropped for good.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import socket
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import uvicorn

from ..contracts.v1 import LifecycleEvent, PaddleConfig
from ..errors import ChannelError, ConfigError, StartupError
from ..kernel.config import config_path, load_config
from ..util.obslog import DATA, setup_logging
from .bus import EventBus
from .http_app import create_app
from .instance import Paddle
from .ipc import CorrelationChannel
from .privilege import drop_privilege
from .root_ops import spawn_root_helper, stop_root_helper
from .runtime import ModuleRuntime
from .serve_ops import bind_server_socket, cleanup_unix_socket, endpoint_label, start_http_server, stop_http_server
from .telemetry_ops import start_telemetry_server

logger = logging.getLogger("paddle.daemon.supervisor")


def log_level(config: PaddleConfig) -> int:
    if config.log.data:
        return DATA
    if config.log.debug:
        return logging.DEBUG
    return logging.INFO


class Supervisor:
    def __init__(self, config: PaddleConfig) -> None:
        self.config = config
        self.stop_event = asyncio.Event()
        self.exit_code = 0
        self.paddle: Optional[Paddle] = None
        self.runtime: Optional[ModuleRuntime] = None
        self._proc: Optional[asyncio.subprocess.Process] = None
        self._channel: Optional[CorrelationChannel] = None
        self._http: Optional[Tuple[uvicorn.Server, "asyncio.Task[None]"]] = None
        self._telemetry: Optional[asyncio.AbstractServer] = None
        self._endpoints: List[Dict[str, Any]] = []
        self._timers: List["asyncio.Task[None]"] = []

    def fatal(self, reason: str) -> None:
        logger.error("fatal: %s", reason)
        self.exit_code = 1
        self.stop_event.set()

    def _on_channel_close(self) -> None:
        self.fatal("root helper exited")

    async def start(self) -> None:
        cfg = self.config
        owner = (cfg.run.user, cfg.run.group)

        self._proc, self._channel = await spawn_root_helper(
            ready_timeout=cfg.root.ready_timeout_seconds,
            request_timeout=cfg.root.timeout_seconds,
            on_close=self._on_channel_close,
        )

        http_sock, http_ep = bind_server_socket(
            path=cfg.http.path if cfg.flags.is_sock else None,
            host=cfg.http.host if cfg.flags.is_inet else None,
            port=cfg.http.port if cfg.flags.is_inet else None,
            owner=owner,
        )
        self._endpoints.append(http_ep)
        stats_sock: Optional[socket.socket] = None
        if cfg.stats.path or (cfg.stats.host and cfg.stats.port is not None):
            stats_sock, stats_ep = bind_server_socket(
                path=cfg.stats.path,
                host=cfg.stats.host,
                port=cfg.stats.port,
                owner=owner,
            )
            self._endpoints.append(stats_ep)

        bus = EventBus(cfg.log)
        self.paddle = Paddle(config=cfg, bus=bus, root=self._channel)
        self.runtime = ModuleRuntime(self.paddle)
        active = await self.runtime.load(cfg.modules)
        logger.info("modules active: %s", ", ".join(m.name for m in active) or "(none)")

        drop_privilege(cfg.run.user, cfg.run.group)

        self._http = await start_http_server(create_app(self.paddle), http_sock)
        logger.info("http listening on %s", endpoint_label(http_ep))
        if stats_sock is not None:
            if self.paddle.telemetry_handler is not None:
                self._telemetry = await start_telemetry_server(self.paddle, stats_sock)
            else:
                stats_sock.close()

        for service in self.paddle.services:
            await self.runtime.notify(LifecycleEvent.START, service)
        self._start_timers()

    def _start_timers(self) -> None:
        assert self.paddle is not None
        interval = self.config.stats.interval_seconds
        for service in self.paddle.services:
            period = service.config.stats_interval_seconds or interval
            service.timer = asyncio.create_task(self._tick(service, period), name=f"paddle-stats-{service.name}")
            self._timers.append(service.timer)
        host = self.paddle.host
        if host is not None:
            host.timer = asyncio.create_task(self._tick(host, interval), name="paddle-stats-host")
            self._timers.append(host.timer)

    async def _tick(self, target: Any, period: float) -> None:
        assert self.runtime is not None
        while not self.stop_event.is_set():
            try:
                await asyncio.wait_for(self.stop_event.wait(), period)
                return
            except asyncio.TimeoutError:
                pass
            await self.runtime.notify(LifecycleEvent.STATS, target)

    async def stop(self) -> None:
        for t in self._timers:
            t.cancel()
        if self._timers:
            await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers.clear()
        if self.runtime is not None:
            await self.runtime.notify(LifecycleEvent.STOP, None)
        if self._telemetry is not None:
            self._telemetry.close()
            await self._telemetry.wait_closed()
        if self._http is not None:
            await stop_http_server(*self._http)
        if self._proc is not None and self._channel is not None:
            await stop_root_helper(self._proc, self._channel)
        for ep in self._endpoints:
            cleanup_unix_socket(ep)

    async def run(self) -> int:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.stop_event.set)
        try:
            await self.start()
            logger.info("paddle running on %s", self.paddle.hostname if self.paddle else "?")
            await self.stop_event.wait()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            await self.stop()
        return self.exit_code


async def _serve(config: PaddleConfig) -> int:
    return await Supervisor(config).run()


def main(argv_config: Optional[str] = None) -> int:
    path: Path = config_path(argv_config)
    setup_logging(component="supervisor")
    try:
        config = load_config(path)
    except ConfigError as e:
        logger.error("%s", e)
        return 1
    setup_logging(component="supervisor", level=log_level(config), fmt=config.log.format, force=True)
    logger.info("config loaded from %s", path)
    try:
        return asyncio.run(_serve(config))
    except (ConfigError, StartupError, ChannelError) as e:
        logger.error("%s", e)
        return 1
