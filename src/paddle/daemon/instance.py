"""Shared daemon state passed by reference to every module."""

from __future__ import annotations

import asyncio
import socket
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Protocol

from ..contracts.v1 import ExecResult, PaddleConfig, ServiceConfig, Stat, TelemetryPush
from ..kernel.store import Store
from .bus import EventBus

RouteHandler = Callable[[Any], Awaitable[Any]]
TelemetryHandler = Callable[[TelemetryPush], Awaitable[None]]


class RootRunner(Protocol):
    """The privileged command path (implemented by CorrelationChannel)."""

    async def exec(self, cmd: str, args: Optional[List[str]] = None, cwd: Optional[str] = None) -> ExecResult: ...


@dataclass
class Route:
    url_path: str
    handler: RouteHandler
    owner: str = ""


@dataclass
class GitState:
    repo: str
    branch: str


@dataclass
class ServiceRun:
    config: ServiceConfig
    git: Optional[GitState] = None
    stats: List[Stat] = field(default_factory=list)
    discord_message_id: Optional[str] = None
    timer: Optional[asyncio.Task[None]] = None
    deploy_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def name(self) -> str:
        return self.config.name


@dataclass
class HostRun:
    hostname: str
    stats: List[Stat] = field(default_factory=list)
    discord_message_id: Optional[str] = None
    timer: Optional[asyncio.Task[None]] = None


@dataclass
class Paddle:
    config: PaddleConfig
    bus: EventBus
    hostname: str = ""
    routes: List[Route] = field(default_factory=list)
    services: List[ServiceRun] = field(default_factory=list)
    host: Optional[HostRun] = None
    root: Optional[RootRunner] = None
    db: Optional[Store] = None
    telemetry_handler: Optional[TelemetryHandler] = None

    def __post_init__(self) -> None:
        if not self.hostname:
            self.hostname = self.config.run.hostname or socket.gethostname()
        if self.host is None:
            self.host = HostRun(hostname=self.hostname)
        if not self.services:
            self.services = [ServiceRun(config=sc) for sc in self.config.services]

    def find_service(self, name: str) -> Optional[ServiceRun]:
        for svc in self.services:
            if svc.name == name:
                return svc
        return None

    def add_route(self, url_path: str, handler: RouteHandler, *, owner: str = "") -> Route:
        for r in self.routes:
            if r.url_path == url_path:
                raise ValueError(f"route already registered: {url_path}")
        route = Route(url_path=url_path, handler=handler, owner=owner)
        self.routes.append(route)
        return route

    def find_route(self, url_path: str) -> Optional[Route]:
        for r in self.routes:
            if r.url_path == url_path:
                return r
        return None
