"""Small persistent key/value store.

Keys are dotted paths (or lists of segments); each leaf lives in its own JSON
file under a directory tree mirroring the path:

    ['discord', 'api', 'statsMessageId'] -> <dir>/discord/api/statsMessageId.json
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, List, Sequence, Union

from ..errors import StoreError
from ..util.fs import atomic_write_json, read_json

logger = logging.getLogger("paddle.kernel.store")

KeyPath = Union[str, Sequence[str]]

_INVALID = re.compile(r"[^0-9a-zA-Z.]+")


def split_key(key: KeyPath) -> List[str]:
    logic = key if isinstance(key, str) else ".".join(str(part) for part in key)
    if not logic or _INVALID.search(logic):
        raise StoreError(f"invalid characters for path {logic!r}")
    nodes = [n for n in re.split(r"\.+", logic) if n]
    if not nodes:
        raise StoreError(f"empty path {logic!r}")
    return nodes


def safe_segment(name: str) -> str:
    """Encode an arbitrary name as one path segment (``my-api`` -> ``my2dapi``)."""
    return "".join(ch if ch.isascii() and ch.isalnum() else f"{ord(ch):x}" for ch in str(name)) or "0"


class Store:
    def __init__(self, root: Path) -> None:
        self.root = root

    def leaf_path(self, key: KeyPath, *, carve: bool = False) -> Path:
        nodes = split_key(key)
        prop = nodes.pop()
        parent = self.root.joinpath(*nodes)
        if nodes:
            if parent.exists() and not parent.is_dir():
                raise StoreError(f"cannot use store at {parent}: not a directory")
            if carve:
                parent.mkdir(parents=True, exist_ok=True)
        return parent / f"{prop}.json"

    def get(self, key: KeyPath) -> Any:
        path = self.leaf_path(key)
        try:
            value = read_json(path)
        except ValueError as e:
            raise StoreError(f"corrupt value at {path}: {e}") from e
        logger.debug("get %s -> %r", key, value)
        return value

    def put(self, key: KeyPath, value: Any) -> None:
        logger.debug("put %s <- %r", key, value)
        path = self.leaf_path(key, carve=True)
        atomic_write_json(path, value)
