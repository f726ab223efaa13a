"""GitHub webhook receiver.

Each service with a ``github`` section gets a route at
``github.url_path + service.github.url_path``. Verified deliveries are turned
into normalized bus events (GIT-PUSH, ISSUE, ISSUE-COMMENT); this module never
calls other modules directly.

Status codes: 200 handled, 400 bad or missing signature, 404 unknown event,
405 wrong method, 500 wrong content type, malformed body or handler failure.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request, Response

from ..contracts.v1 import BusEvent, GitCommit, GitPush, IssueComment, IssueEvent
from ..daemon.instance import Paddle, ServiceRun
from .base import Module

SIGNATURE_HEADER = "x-hub-signature-256"
EVENT_HEADER = "x-github-event"


class GithubEvent(str, Enum):
    PING = "ping"
    PUSH = "push"
    ISSUES = "issues"
    ISSUE_COMMENT = "issue_comment"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["GithubEvent"]:
        try:
            return cls(str(raw or "").strip())
        except ValueError:
            return None


def sign_body(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def check_signature(secret: str, header: Optional[str], body: bytes) -> Tuple[bool, str]:
    """(ok, reason). ``header`` is ``sha256=<hex>``."""
    if not isinstance(header, str) or not header:
        return False, "missing signature"
    algo, _, sign = header.partition("=")
    if algo != "sha256" or not sign:
        return False, f"unsupported signature algo {algo!r}"
    if not hmac.compare_digest(sign.strip().lower(), sign_body(secret, body)):
        return False, "bad signature"
    return True, ""


def _user(obj: Any) -> str:
    if not isinstance(obj, dict):
        return ""
    return str(obj.get("login") or obj.get("username") or obj.get("name") or "")


def push_event(service: str, payload: Dict[str, Any]) -> Tuple[GitPush, List[GitCommit]]:
    repo = payload["repository"]
    push = GitPush(
        service=service,
        username=_user(payload.get("pusher")),
        repo=str(repo.get("name") or ""),
        full_name=str(repo.get("full_name") or ""),
        url=str(repo.get("html_url") or ""),
        ref=str(payload.get("ref") or ""),
    )
    commits = [
        GitCommit(
            id=str(c.get("id") or ""),
            message=str(c.get("message") or ""),
            username=_user(c.get("author")),
            timestamp=str(c.get("timestamp") or ""),
            url=str(c.get("url") or ""),
        )
        for c in payload.get("commits") or []
    ]
    return push, commits


def issue_event(service: str, payload: Dict[str, Any]) -> IssueEvent:
    issue = payload["issue"]
    return IssueEvent(
        service=service,
        action=str(payload.get("action") or ""),
        repo=str((payload.get("repository") or {}).get("full_name") or ""),
        number=int(issue.get("number") or 0),
        title=str(issue.get("title") or ""),
        url=str(issue.get("html_url") or ""),
        username=_user(payload.get("sender") or issue.get("user")),
    )


def issue_comment_event(service: str, payload: Dict[str, Any]) -> IssueComment:
    issue = payload["issue"]
    comment = payload["comment"]
    return IssueComment(
        service=service,
        action=str(payload.get("action") or ""),
        repo=str((payload.get("repository") or {}).get("full_name") or ""),
        number=int(issue.get("number") or 0),
        title=str(issue.get("title") or ""),
        url=str(comment.get("html_url") or issue.get("html_url") or ""),
        username=_user(comment.get("user")),
        body=str(comment.get("body") or ""),
    )


class GithubModule(Module):
    name = "github"
    log_name = "GitHub"

    async def init(self, paddle: Paddle) -> bool:
        services = [s for s in paddle.services if s.config.github is not None]
        if not services:
            return False
        for service in services:
            assert service.config.github is not None
            url_path = paddle.config.github.url_path + service.config.github.url_path
            paddle.add_route(url_path, self._route_handler(service), owner=self.name)
            assert self.log is not None
            await self.log.debug("Add route", url_path)
        return True

    def _route_handler(self, service: ServiceRun):
        async def _handle(request: Request) -> Response:
            return await self.handle_request(service, request)

        return _handle

    async def handle_request(self, service: ServiceRun, request: Request) -> Response:
        assert self.log is not None and service.config.github is not None
        if request.method != "POST":
            await self.log.warn("Method not allowed", request.method)
            return Response(status_code=405)

        content_type = request.headers.get("content-type", "").split(";", 1)[0].strip().lower()
        if content_type != "application/json":
            await self.log.warn("Unsupported content type", content_type or "(none)")
            return Response(status_code=500)

        body = await request.body()
        await self.log.data("Payload", body.decode("utf-8", errors="replace"))

        secret = service.config.github.secret
        if isinstance(secret, str) and secret:
            ok, reason = check_signature(secret, request.headers.get(SIGNATURE_HEADER), body)
            if not ok:
                client = request.client.host if request.client else "?"
                await self.log.warn(reason.capitalize(), client, request.url.path)
                return Response(status_code=400)

        raw_event = request.headers.get(EVENT_HEADER)
        await self.log.debug("Event", raw_event or "(none)")
        try:
            payload = json.loads(body.decode("utf-8"))
        except ValueError as e:
            await self.log.warn("Malformed payload", str(e))
            return Response(status_code=500)
        if not isinstance(payload, dict):
            await self.log.warn("Malformed payload", type(payload).__name__)
            return Response(status_code=500)

        event = GithubEvent.parse(raw_event)
        if event is None:
            await self.log.warn("Unhandled event", raw_event or "(none)")
            return Response(status_code=404)
        try:
            return await self.dispatch(event, service, payload)
        except Exception as e:
            await self.log.error(f"Handler for {event.value} failed:", repr(e))
            return Response(status_code=500)

    async def dispatch(self, event: GithubEvent, service: ServiceRun, payload: Dict[str, Any]) -> Response:
        assert self.log is not None
        if event is GithubEvent.PING:
            return Response(content="pong", media_type="text/plain", status_code=200)
        if event is GithubEvent.PUSH:
            push, commits = push_event(service.name, payload)
            await self.log.publish(BusEvent.GIT_PUSH, push, *commits)
            return Response(status_code=200)
        if event is GithubEvent.ISSUES:
            await self.log.publish(BusEvent.ISSUE, issue_event(service.name, payload))
            return Response(status_code=200)
        if event is GithubEvent.ISSUE_COMMENT:
            await self.log.publish(BusEvent.ISSUE_COMMENT, issue_comment_event(service.name, payload))
            return Response(status_code=200)
        raise AssertionError(f"unhandled github event: {event!r}")
