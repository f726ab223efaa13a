from __future__ import annotations

import re
from typing import List

from ..errors import CommandError
from .git import CommandRunner, output_lines

# "Oct 19 10:00:00 host api[123]: listening"
_JOURNAL_LINE = re.compile(r"^[A-Z][a-z]{2} [ \d]?\d \d\d:\d\d:\d\d ")


async def systemctl_restart(run: CommandRunner, unit: str) -> None:
    await run("systemctl", ["restart", unit], None)


async def systemctl_status(run: CommandRunner, unit: str, *, lines: int = 3) -> str:
    """``systemctl status`` output; exit status 3 (unit not active) still carries a report."""
    try:
        res = await run("systemctl", ["status", unit, f"-n{int(lines)}"], None)
    except CommandError as e:
        if e.stdout.strip():
            return e.stdout
        raise
    return res.stdout


def status_excerpt(status_text: str, *, tail: int = 3) -> str:
    """The ``Active:`` state up to ``since``, then the trailing journal messages."""
    lines = output_lines(status_text)
    out: List[str] = []
    journal: List[str] = []
    for line in lines:
        if line.startswith("Active:"):
            out.append(line.split(" since ", 1)[0])
        elif _JOURNAL_LINE.match(line):
            idx = line.find(": ")
            journal.append(line[idx + 2 :] if idx >= 0 else line)
    if tail > 0:
        out.extend(journal[-tail:])
    return "\n".join(out)
