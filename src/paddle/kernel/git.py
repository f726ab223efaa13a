from __future__ import annotations

import re
from typing import Awaitable, Callable, List, Optional

from ..contracts.v1 import ExecResult

# (cmd, args, cwd) -> ExecResult; raises CommandError on failure.
CommandRunner = Callable[[str, List[str], Optional[str]], Awaitable[ExecResult]]

_SSH_SCPLIKE = re.compile(r"^(?P<user>[^@]+)@(?P<host>[^:]+):(?P<path>.+)$")


def normalize_git_remote(url: str) -> str:
    u = (url or "").strip()
    if not u:
        return ""
    m = _SSH_SCPLIKE.match(u)
    if m:
        host = m.group("host")
        path = m.group("path")
        if path.endswith(".git"):
            path = path[: -len(".git")]
        return f"https://{host}/{path}"
    if u.startswith("ssh://"):
        u2 = u[len("ssh://") :]
        u2 = u2.split("@", 1)[1] if "@" in u2.split("/", 1)[0] else u2
        if "/" in u2:
            host, path = u2.split("/", 1)
            if path.endswith(".git"):
                path = path[: -len(".git")]
            return f"https://{host}/{path}"
    if u.startswith("http://") or u.startswith("https://"):
        if u.endswith(".git"):
            u = u[: -len(".git")]
        return u.rstrip("/")
    return u


def repo_name_from_remote(url: str) -> str:
    """``git@github.com:acme/api.git`` -> ``api``."""
    norm = normalize_git_remote(url)
    if not norm:
        return ""
    return norm.rstrip("/").rsplit("/", 1)[-1]


def repo_full_name_from_remote(url: str) -> str:
    """``git@github.com:acme/api.git`` -> ``acme/api``."""
    norm = normalize_git_remote(url)
    if not norm:
        return ""
    parts = [p for p in norm.split("://", 1)[-1].split("/") if p]
    if len(parts) < 3:
        return parts[-1] if parts else ""
    return "/".join(parts[-2:])


def output_lines(text: str) -> List[str]:
    """Trimmed command output lines, dropping blanks and single-character noise."""
    return [line.strip() for line in (text or "").split("\n") if len(line.strip()) > 1]


async def git_origin_url(run: CommandRunner, repo_path: str) -> str:
    res = await run("git", ["-C", repo_path, "config", "--get", "remote.origin.url"], None)
    return res.stdout.strip()


async def git_current_branch(run: CommandRunner, repo_path: str) -> Optional[str]:
    """Current branch name, or None on a detached HEAD."""
    res = await run("git", ["-C", repo_path, "branch", "--show-current"], None)
    branch = res.stdout.strip()
    return branch or None


async def git_pull(run: CommandRunner, repo_path: str) -> List[str]:
    res = await run("git", ["-C", repo_path, "pull"], None)
    # git reports progress on stderr even on success
    out = res.stderr if res.stderr.strip() else res.stdout
    return output_lines(out)
