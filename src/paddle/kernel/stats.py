"""Stat list bookkeeping and host statistics.

Human-readable sizes are 1000-based (K, M, G) with one decimal, e.g.
``fmt_human_readable(2_500_000, 10_000_000) == "2.5M (25%)"``.
"""

from __future__ import annotations

import math
import time
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import psutil

from ..contracts.v1 import Stat, StatUpdate


def upsert_stat(stats: List[Stat], update: StatUpdate) -> bool:
    """Apply one update in place. Returns True when the list changed.

    An update without a value removes the stat (no-op when absent); otherwise the
    stat with the same id is replaced, or appended when new.
    """
    for i, stat in enumerate(stats):
        if stat.id != update.id:
            continue
        if update.is_delete:
            del stats[i]
            return True
        stats[i] = update.to_stat()
        return True
    if update.is_delete:
        return False
    stats.append(update.to_stat())
    return True


def replace_stat(stats: List[Stat], stat: Stat) -> None:
    upsert_stat(stats, StatUpdate(id=stat.id, description=stat.description, value=stat.value))


def fmt_round(value: float, precision: int = 0) -> str:
    power = 10 ** int(precision or 0)
    r = math.floor(value * power + 0.5) / power
    return str(int(r)) if r == int(r) else str(r)


def fmt_human_readable(value: float, total: Optional[float] = None) -> str:
    perct = f" ({fmt_round(value * 100 / total)}%)" if total else ""
    unit = ""
    for candidate in ("K", "M", "G"):
        if value <= 1000:
            break
        value /= 1000
        unit = candidate
    return fmt_round(value, 1) + unit + perct


def _fmt_duration(seconds: float) -> str:
    td = timedelta(seconds=int(max(0, seconds)))
    hours, rem = divmod(td.seconds, 3600)
    minutes = rem // 60
    parts = []
    if td.days:
        parts.append(f"{td.days} day{'s' if td.days != 1 else ''}")
    parts.append(f"{hours}:{minutes:02d}")
    return " and ".join(parts)


def uptime_stat() -> Stat:
    now = time.time()
    users = len(psutil.users())
    value = (
        f"Current Time: {datetime.fromtimestamp(now).strftime('%H:%M:%S')}\n"
        f"Up Time: {_fmt_duration(now - psutil.boot_time())}\n"
        f"Logged in: {users} users"
    )
    return Stat(id="uptime", description="Uptime", value=value)


def load_avg_stat() -> Stat:
    one, five, fifteen = psutil.getloadavg()
    return Stat(
        id="loadavg",
        description="Load Average",
        value=f"1min {one:.2f}\n5min {five:.2f}\n15min {fifteen:.2f}",
    )


def mem_info_stat() -> Stat:
    vm = psutil.virtual_memory()
    rows = [("Total", fmt_human_readable(vm.total))]
    rows.append(("Free", fmt_human_readable(vm.free, vm.total)))
    rows.append(("Available", fmt_human_readable(vm.available, vm.total)))
    active = getattr(vm, "active", None)
    if active is not None:
        rows.append(("Active", fmt_human_readable(active, vm.total)))
    return Stat(id="meminfo", description="Memory Info", value="\n".join(f"{k}: {v}" for k, v in rows))


def disk_info_stat(devices: Sequence[str], mounts: Sequence[str]) -> Stat:
    out: List[str] = []
    seen: set[str] = set()
    for part in psutil.disk_partitions(all=False):
        dev = part.device
        mnt = part.mountpoint
        if mnt in seen:
            continue
        if not (any(dev.startswith(d) for d in devices) or mnt in mounts):
            continue
        seen.add(mnt)
        try:
            usage = psutil.disk_usage(mnt)
        except OSError:
            continue
        out.append(
            f"{dev} {fmt_human_readable(usage.used)} ({fmt_round(usage.percent)}%) of {fmt_human_readable(usage.total)}"
        )
    return Stat(id="diskinfo", description="Disk Info", value="\n".join(out))


def collect_host_stats(devices: Sequence[str], mounts: Sequence[str]) -> List[Stat]:
    return [uptime_stat(), load_avg_stat(), mem_info_stat(), disk_info_stat(devices, mounts)]
