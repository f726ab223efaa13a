from __future__ import annotations

from typing import Any

from ..contracts.v1 import LifecycleEvent, TelemetryPush
from ..daemon.instance import HostRun, Paddle
from ..kernel.stats import collect_host_stats, replace_stat, upsert_stat
from .base import Module


class StatsModule(Module):
    """Telemetry pushed by managed services, plus host-wide statistics."""

    name = "stats"
    log_name = "Stats"

    async def init(self, paddle: Paddle) -> bool:
        cfg = paddle.config.stats
        listening = bool(cfg.path) or (bool(cfg.host) and cfg.port is not None)
        if not listening and not cfg.host_stats:
            return False
        if listening:
            paddle.telemetry_handler = self.handle_push
        return True

    async def handle_push(self, push: TelemetryPush) -> None:
        assert self.paddle is not None and self.log is not None
        service = self.paddle.find_service(push.service_name)
        if service is None:
            await self.log.warn("Discarding stats for unknown service", push.service_name)
            return
        changed = 0
        for update in push.stats:
            if upsert_stat(service.stats, update):
                changed += 1
        await self.log.debug(f"Stats for {service.name}: {changed} changed, {len(service.stats)} total")

    async def on_event(self, kind: LifecycleEvent, payload: Any) -> None:
        if kind is LifecycleEvent.STATS and isinstance(payload, HostRun):
            await self.refresh_host(payload)

    async def refresh_host(self, host: HostRun) -> None:
        assert self.paddle is not None and self.log is not None
        cfg = self.paddle.config.stats
        if not cfg.host_stats:
            return
        try:
            stats = collect_host_stats(cfg.devices, cfg.mounts)
        except OSError as e:
            await self.log.error("Could not gather host stats", str(e))
            return
        for stat in stats:
            replace_stat(host.stats, stat)
