"""Module lifecycle runtime.

Modules load in configured order. Each module's ``init`` decides whether it is
ACTIVE; a module that returns False or raises is INACTIVE for the rest of the
process lifetime and never receives events. Lifecycle events fan out to
active modules one at a time, in registration order.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from ..contracts.v1 import LifecycleEvent
from ..kernel.store import Store
from ..modules.base import Module, hook
from .instance import Paddle, Route, TelemetryHandler

logger = logging.getLogger("paddle.daemon.runtime")

ModuleFactory = Callable[[], Module]
EventHook = Callable[[LifecycleEvent, Any], Union[None, Awaitable[None]]]


class ModuleState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass
class ModuleEntry:
    module: Module
    state: ModuleState = ModuleState.UNINITIALIZED
    on_event: Optional[EventHook] = None


def builtin_modules() -> Dict[str, ModuleFactory]:
    from ..modules.db import DbModule
    from ..modules.discord import DiscordModule
    from ..modules.git import GitModule
    from ..modules.github import GithubModule
    from ..modules.stats import StatsModule

    return {
        "db": DbModule,
        "stats": StatsModule,
        "github": GithubModule,
        "git": GitModule,
        "discord": DiscordModule,
    }


class ModuleRuntime:
    def __init__(self, paddle: Paddle, registry: Optional[Dict[str, ModuleFactory]] = None) -> None:
        self.paddle = paddle
        self.registry = registry if registry is not None else builtin_modules()
        self.entries: List[ModuleEntry] = []

    @property
    def active(self) -> List[Module]:
        return [e.module for e in self.entries if e.state is ModuleState.ACTIVE]

    def state_of(self, name: str) -> Optional[ModuleState]:
        for e in self.entries:
            if e.module.name == name:
                return e.state
        return None

    async def load(self, names: List[str]) -> List[Module]:
        for name in names:
            factory = self.registry.get(name)
            if factory is None:
                logger.error("unknown module %r", name)
                continue
            if self.state_of(name) is not None:
                logger.warning("module %r listed twice; ignoring", name)
                continue
            await self.register(factory())
        return self.active

    async def register(self, module: Module) -> bool:
        entry = ModuleEntry(module=module)
        self.entries.append(entry)
        log = self.paddle.bus.create_logger(module.log_name or module.name)
        module.attach(self.paddle, log)
        saved = self._snapshot()
        try:
            loaded = bool(await module.init(self.paddle))
        except Exception:
            logger.exception("module %s init failed", module.name)
            loaded = False
        await log.debug(f"Init (load: {str(loaded).lower()})")
        if not loaded:
            self._restore(saved)
            entry.state = ModuleState.INACTIVE
            return False
        entry.state = ModuleState.ACTIVE
        entry.on_event = hook(module, "on_event")
        on_bus = hook(module, "on_bus")
        if on_bus is not None:
            log.listen(on_bus)
        return True

    def _snapshot(self) -> Tuple[List[Route], Optional[TelemetryHandler], Optional[Store]]:
        return list(self.paddle.routes), self.paddle.telemetry_handler, self.paddle.db

    def _restore(self, saved: Tuple[List[Route], Optional[TelemetryHandler], Optional[Store]]) -> None:
        # An inactive module leaves no routes, handlers or store behind.
        routes, handler, db = saved
        self.paddle.routes[:] = routes
        self.paddle.telemetry_handler = handler
        self.paddle.db = db

    async def notify(self, kind: LifecycleEvent, payload: Any = None) -> None:
        for entry in list(self.entries):
            if entry.state is not ModuleState.ACTIVE or entry.on_event is None:
                continue
            try:
                res = entry.on_event(kind, payload)
                if inspect.isawaitable(res):
                    await res
            except Exception:
                logger.exception("module %s failed handling %s", entry.module.name, kind.value)
