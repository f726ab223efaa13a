"""Process-wide logging setup (stdlib logging, text or JSON lines)."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional, TextIO

DATA = 5
logging.addLevelName(DATA, "DATA")

_HANDLER_MARK = "_paddle_handler"


class JsonLineFormatter(logging.Formatter):
    def __init__(self, component: str) -> None:
        super().__init__()
        self.component = component

    def format(self, record: logging.LogRecord) -> str:
        doc = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "component": self.component,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            doc["exc"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False)


def setup_logging(
    *,
    component: str,
    level: int = logging.INFO,
    fmt: str = "text",
    stream: Optional[TextIO] = None,
    force: bool = False,
) -> logging.Logger:
    """Configure the ``paddle`` logger tree once; ``force`` replaces a previous setup."""
    root = logging.getLogger("paddle")
    existing = [h for h in root.handlers if getattr(h, _HANDLER_MARK, False)]
    if existing and not force:
        return root
    for h in existing:
        root.removeHandler(h)

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    if fmt == "json":
        handler.setFormatter(JsonLineFormatter(component))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(message)s", datefmt="%Y-%m-%dT%H:%M:%S"))
    setattr(handler, _HANDLER_MARK, True)
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False
    return root
