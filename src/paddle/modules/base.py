from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from ..daemon.bus import BusLogger
    from ..daemon.instance import Paddle


class Module:
    """A pluggable feature unit.

    Subclasses implement ``init`` and may define either of the optional hooks:

        async def on_event(self, kind: LifecycleEvent, payload: Any) -> None
        async def on_bus(self, source: BusLogger, kind: EventKind, args: tuple) -> None

    The runtime looks the hooks up once, when the module becomes active.
    """

    name: str = ""
    log_name: str = ""

    def __init__(self) -> None:
        self.paddle: Optional["Paddle"] = None
        self.log: Optional["BusLogger"] = None

    async def init(self, paddle: "Paddle") -> bool:
        raise NotImplementedError

    def attach(self, paddle: "Paddle", log: "BusLogger") -> None:
        self.paddle = paddle
        self.log = log

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


def hook(module: Any, name: str) -> Any:
    fn = getattr(module, name, None)
    return fn if callable(fn) else None
