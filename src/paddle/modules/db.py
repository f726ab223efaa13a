from __future__ import annotations

import os
from pathlib import Path

from ..daemon.instance import Paddle
from ..daemon.privilege import resolve_ids
from ..errors import StartupError
from ..kernel.store import Store
from .base import Module


class DbModule(Module):
    """Exposes the persistent key/value store as ``paddle.db``."""

    name = "db"
    log_name = "DB"

    async def init(self, paddle: Paddle) -> bool:
        dir_path = paddle.config.db.dir_path
        if not dir_path:
            return False
        root = Path(dir_path)
        setup_store_dir(root, user=paddle.config.run.user, group=paddle.config.run.group)
        paddle.db = Store(root)
        return True


def setup_store_dir(root: Path, *, user: str, group: str) -> None:
    """Create the store directory and hand it to the run account (mode 0770).

    Ownership changes need privilege; when running unprivileged the directory
    must already be usable by the current account.
    """
    if root.exists() and not root.is_dir():
        raise StartupError(f"cannot use db at {root}: not a directory")
    root.mkdir(parents=True, exist_ok=True)
    if os.geteuid() != 0:
        return
    uid, gid = resolve_ids(user, group)
    os.chown(root, uid, gid)
    os.chmod(root, 0o770)
