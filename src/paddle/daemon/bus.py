"""Event bus built on named loggers.

Every module creates one BusLogger. A log call at an enabled severity is
printed (stdlib logging) and then delivered to every *other* logger that
registered a listener. Structured events (BusEvent) are delivered the same way
but are not subject to severity gating. Delivery is sequential in logger
registration order and the emitting call returns only after every listener
has finished.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

from ..contracts.v1 import BusEvent, LogConfig, Severity
from ..util.obslog import DATA

logger = logging.getLogger("paddle.daemon.bus")

EventKind = Union[Severity, BusEvent]
Listener = Callable[["BusLogger", EventKind, Tuple[Any, ...]], Union[None, Awaitable[None]]]

_LEVELS = {
    Severity.DATA: DATA,
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


def _fmt_arg(arg: Any) -> str:
    if isinstance(arg, str):
        return arg
    dump = getattr(arg, "model_dump", None)
    if callable(dump):
        return str(dump())
    return repr(arg)


class EventBus:
    def __init__(self, log_config: LogConfig) -> None:
        self.log_config = log_config
        self._loggers: List[BusLogger] = []

    def create_logger(self, modname: Optional[str] = None) -> "BusLogger":
        bl = BusLogger(self, modname)
        self._loggers.append(bl)
        return bl

    @property
    def loggers(self) -> List["BusLogger"]:
        return list(self._loggers)

    def enabled(self, severity: Severity) -> bool:
        return bool(getattr(self.log_config, severity.value.lower()))

    async def broadcast(self, source: "BusLogger", kind: EventKind, args: Tuple[Any, ...]) -> None:
        for target in list(self._loggers):
            if target is source or target.listener is None:
                continue
            try:
                res = target.listener(source, kind, args)
                if inspect.isawaitable(res):
                    await res
            except Exception:
                logger.exception("bus listener %s failed on %s from %s", target.name, kind.value, source.name)


class BusLogger:
    def __init__(self, bus: EventBus, modname: Optional[str] = None) -> None:
        self.bus = bus
        self.modname = modname
        self.listener: Optional[Listener] = None
        suffix = modname.lower() if modname else "main"
        self._py = logging.getLogger(f"paddle.{suffix}")

    @property
    def name(self) -> str:
        return self.modname or "paddle"

    def is_root(self) -> bool:
        return self.modname is None

    def prefix(self, kind: EventKind, args: Tuple[Any, ...]) -> str:
        values: List[str] = []
        if not self.is_root():
            values.append(f"[{self.modname}]")
        if kind is not Severity.INFO:
            values.append(kind.value)
        values.extend(_fmt_arg(a) for a in args)
        return " ".join(values)

    def listen(self, listener: Listener) -> None:
        self.listener = listener

    async def log(self, severity: Severity, *args: Any) -> bool:
        enabled = self.bus.enabled(severity)
        if enabled and args:
            self._py.log(_LEVELS[severity], "%s", self.prefix(severity, args))
            await self.bus.broadcast(self, severity, args)
        return enabled

    async def data(self, *args: Any) -> bool:
        return await self.log(Severity.DATA, *args)

    async def debug(self, *args: Any) -> bool:
        return await self.log(Severity.DEBUG, *args)

    async def info(self, *args: Any) -> bool:
        return await self.log(Severity.INFO, *args)

    async def warn(self, *args: Any) -> bool:
        return await self.log(Severity.WARN, *args)

    async def error(self, *args: Any) -> bool:
        return await self.log(Severity.ERROR, *args)

    async def publish(self, kind: BusEvent, *args: Any) -> None:
        if self.bus.enabled(Severity.INFO):
            self._py.info("%s", self.prefix(kind, args))
        await self.bus.broadcast(self, kind, args)
