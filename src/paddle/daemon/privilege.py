from __future__ import annotations

import grp
import logging
import os
import pwd
import stat
from pathlib import Path
from typing import Tuple

from ..errors import StartupError

logger = logging.getLogger("paddle.daemon.privilege")


def resolve_uid(user: str) -> int:
    u = str(user or "").strip()
    if u.isdigit():
        return int(u)
    try:
        return pwd.getpwnam(u).pw_uid
    except KeyError:
        raise StartupError(f"unknown user: {u!r}") from None


def resolve_gid(group: str) -> int:
    g = str(group or "").strip()
    if g.isdigit():
        return int(g)
    try:
        return grp.getgrnam(g).gr_gid
    except KeyError:
        raise StartupError(f"unknown group: {g!r}") from None


def resolve_ids(user: str, group: str) -> Tuple[int, int]:
    return resolve_uid(user), resolve_gid(group)


def prepare_unix_socket_path(path: Path) -> None:
    """Remove a stale socket at ``path``; anything that is not a socket is an error."""
    try:
        st = path.lstat()
    except FileNotFoundError:
        return
    if not stat.S_ISSOCK(st.st_mode):
        raise StartupError(f"cannot use socket at {path}: exists and is not a socket")
    path.unlink()


def chown_path(path: Path, user: str, group: str) -> None:
    if os.geteuid() != 0:
        logger.debug("not root; leaving ownership of %s unchanged", path)
        return
    uid, gid = resolve_ids(user, group)
    try:
        os.chown(path, uid, gid)
    except OSError as e:
        raise StartupError(f"cannot chown {path}: {e}") from e


def drop_privilege(user: str, group: str) -> Tuple[int, int]:
    """Permanently switch the current process to ``user``/``group``.

    A no-op (with a warning) when not started as root. Returns the effective ids.
    """
    if os.geteuid() != 0:
        logger.warning("not started as root; continuing as uid=%s gid=%s", os.geteuid(), os.getegid())
        return os.geteuid(), os.getegid()
    uid, gid = resolve_ids(user, group)
    try:
        os.setgroups([])
        os.setgid(gid)
        os.setuid(uid)
    except OSError as e:
        raise StartupError(f"cannot drop privilege to {user}:{group}: {e}") from e
    if os.geteuid() != uid or os.getegid() != gid:
        raise StartupError("privilege drop did not take effect")
    logger.info("Running as %s,%s:%s,%s", user, os.geteuid(), group, os.getegid())
    return os.geteuid(), os.getegid()
