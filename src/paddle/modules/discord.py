"""Discord webhook notifier.

Stats messages can be reused: the first publish creates the message and the
returned id is persisted right away; later publishes PATCH that message. When
Discord answers that the message is gone (error code 10008), the stored id is
cleared and the next publish creates a new one. Ids live in the key/value
store (when the db module is active) so reuse survives restarts.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import aiohttp

from ..contracts.v1 import BusEvent, DeployReport, GitCommit, GitPush, IssueComment, IssueEvent, LifecycleEvent
from ..daemon.bus import BusLogger, EventKind
from ..daemon.instance import HostRun, Paddle, ServiceRun
from ..errors import StoreError
from ..kernel import render
from ..kernel.store import safe_segment
from .base import Module

UNKNOWN_MESSAGE = 10008
GREETING = "Keep paddling :sailboat:"

KeyPath = List[str]
Run = Union[ServiceRun, HostRun]


def webhook_url(base: str, message_id: Optional[str] = None) -> str:
    """``base`` (+ ``/messages/<id>``) with ``wait=true`` so Discord returns the message."""
    parts = urlsplit(base)
    path = parts.path.rstrip("/")
    if message_id:
        path += f"/messages/{message_id}"
    query = parse_qsl(parts.query, keep_blank_values=True)
    if not any(k == "wait" for k, _ in query):
        query.append(("wait", "true"))
    return urlunsplit((parts.scheme, parts.netloc, path, urlencode(query), parts.fragment))


def is_unknown_message(status: Optional[int], data: Any) -> bool:
    if status is None or status < 400 or not isinstance(data, dict):
        return False
    try:
        return int(data.get("code") or 0) == UNKNOWN_MESSAGE
    except (TypeError, ValueError):
        return False


def service_key(service: str) -> KeyPath:
    return ["discord", safe_segment(service), "statsMessageId"]


def host_key(hostname: str) -> KeyPath:
    return ["discord", "host", safe_segment(hostname), "statsMessageId"]


class DiscordModule(Module):
    name = "discord"
    log_name = "Discord"

    def __init__(self) -> None:
        super().__init__()
        self._session: Optional[aiohttp.ClientSession] = None
        self.timeout_seconds = 15.0

    @property
    def combined(self) -> bool:
        assert self.paddle is not None
        cfg = self.paddle.config.discord
        return bool(cfg.combined and cfg.url)

    async def init(self, paddle: Paddle) -> bool:
        services = [s for s in paddle.services if s.config.discord is not None]
        if not services and not (paddle.config.discord.combined and paddle.config.discord.url):
            return False
        for service in services:
            assert service.config.discord is not None
            if service.config.discord.reuse_stats_message:
                service.discord_message_id = await self._load_id(service_key(service.name))
        if self.combined and paddle.config.discord.reuse_stats_message and paddle.host is not None:
            paddle.host.discord_message_id = await self._load_id(host_key(paddle.hostname))
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def on_event(self, kind: LifecycleEvent, payload: Any) -> None:
        if kind is LifecycleEvent.START:
            if isinstance(payload, ServiceRun) and payload.config.discord is not None and payload.config.discord.greet:
                await self.post_message(payload.config.discord.url, {"content": GREETING})
        elif kind is LifecycleEvent.STATS:
            if isinstance(payload, HostRun):
                if self.combined:
                    await self.publish_host_stats(payload)
            elif isinstance(payload, ServiceRun) and payload.config.discord is not None and not self.combined:
                await self.publish_service_stats(payload)
        elif kind is LifecycleEvent.STOP:
            await self.close()
        else:
            raise ValueError(f"unknown lifecycle event: {kind!r}")

    async def publish_service_stats(self, service: ServiceRun) -> None:
        assert service.config.discord is not None
        body = {
            "content": f":sailboat:\n**Service**: {service.name}",
            "embeds": [{"fields": fields}] if (fields := render.stat_fields(service.stats)) else [],
        }
        await self.publish_stats(
            service,
            service_key(service.name),
            service.config.discord.url,
            body,
            reuse=service.config.discord.reuse_stats_message,
        )

    async def publish_host_stats(self, host: HostRun) -> None:
        assert self.paddle is not None and self.paddle.config.discord.url
        embeds: List[Dict[str, Any]] = []
        if host.stats:
            embeds.append({"title": host.hostname, "fields": render.stat_fields(host.stats)})
        for service in self.paddle.services:
            if service.stats:
                embeds.append({"title": service.name, "fields": render.stat_fields(service.stats)})
        body = {"content": f":sailboat:\n**Host**: {host.hostname}", "embeds": embeds[: render.MAX_EMBEDS]}
        await self.publish_stats(
            host,
            host_key(host.hostname),
            self.paddle.config.discord.url,
            body,
            reuse=self.paddle.config.discord.reuse_stats_message,
        )

    async def publish_stats(self, run: Run, key: KeyPath, url: str, body: Dict[str, Any], *, reuse: bool) -> None:
        assert self.log is not None
        message_id = run.discord_message_id if reuse else None
        if message_id is None:
            status, data = await self.request_webhook("POST", webhook_url(url), body)
            new_id = data.get("id") if isinstance(data, dict) else None
            if reuse and status == 200 and new_id:
                run.discord_message_id = str(new_id)
                await self._store_id(key, run.discord_message_id)
                await self.log.debug(f"Reusing message {run.discord_message_id}")
            return
        status, data = await self.request_webhook("PATCH", webhook_url(url, message_id), body)
        if is_unknown_message(status, data):
            await self.log.warn(f"Message {message_id} no longer exists; will create a new one")
            run.discord_message_id = None
            await self._store_id(key, None)

    # ------------------------------------------------------------------
    # Bus
    # ------------------------------------------------------------------

    async def on_bus(self, source: BusLogger, kind: EventKind, args: Tuple[Any, ...]) -> None:
        if not args:
            return
        head = args[0]
        if kind is BusEvent.GIT_PUSH and isinstance(head, GitPush):
            commits = [a for a in args[1:] if isinstance(a, GitCommit)]
            await self.notify_service(head.service, render.fmt_push_message(head, commits))
        elif kind is BusEvent.ISSUE and isinstance(head, IssueEvent):
            await self.notify_service(head.service, render.fmt_issue(head))
        elif kind is BusEvent.ISSUE_COMMENT and isinstance(head, IssueComment):
            await self.notify_service(head.service, render.fmt_issue_comment(head))
        elif kind is BusEvent.DEPLOY and isinstance(head, DeployReport):
            await self.notify_service(head.service, render.fmt_deploy(head))

    async def notify_service(self, service_name: str, content: str) -> None:
        assert self.paddle is not None
        service = self.paddle.find_service(service_name)
        url: Optional[str] = None
        if service is not None and service.config.discord is not None:
            url = service.config.discord.url
        elif self.combined:
            url = self.paddle.config.discord.url
        if url:
            await self.post_message(url, {"content": content})

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def post_message(self, url: str, body: Dict[str, Any]) -> None:
        await self.request_webhook("POST", webhook_url(url), body)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_seconds))
        return self._session

    async def request_webhook(self, method: str, url: str, body: Dict[str, Any]) -> Tuple[Optional[int], Any]:
        """Send one webhook request. Returns (status, decoded JSON or None); never raises for I/O errors."""
        assert self.log is not None
        await self.log.data(method, url, body)
        session = await self._get_session()
        try:
            async with session.request(method, url, json=body) as resp:
                status = resp.status
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await self.log.error("Request error", method, repr(e))
            return None, None
        data: Any = None
        if text:
            try:
                data = json.loads(text)
            except ValueError:
                data = None
        if status not in (200, 204):
            await self.log.warn(f"Bad status {status}", text[:300])
        else:
            await self.log.debug(f"Status {status}")
        return status, data

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _load_id(self, key: KeyPath) -> Optional[str]:
        assert self.paddle is not None and self.log is not None
        if self.paddle.db is None:
            return None
        try:
            value = self.paddle.db.get(key)
        except (StoreError, OSError) as e:
            await self.log.error("Could not read message id", ".".join(key), str(e))
            return None
        return str(value) if value else None

    async def _store_id(self, key: KeyPath, value: Optional[str]) -> None:
        assert self.paddle is not None and self.log is not None
        if self.paddle.db is None:
            return
        try:
            self.paddle.db.put(key, value)
        except (StoreError, OSError) as e:
            await self.log.error("Could not persist message id", ".".join(key), str(e))
