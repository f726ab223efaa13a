import asyncio
import tempfile
import unittest
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from aiohttp import web
from aiohttp import test_utils

from paddle.contracts.v1 import BusEvent, DeployReport, GitCommit, GitPush, LifecycleEvent, PaddleConfig, Stat
from paddle.daemon.bus import EventBus
from paddle.daemon.instance import Paddle
from paddle.daemon.runtime import ModuleRuntime
from paddle.kernel.store import Store
from paddle.modules.discord import GREETING, DiscordModule, host_key, service_key, webhook_url

HOOK = "https://discord.com/api/webhooks/1/abc"


class _ScriptedDiscord(DiscordModule):
    def __init__(self, replies: List[Tuple[Optional[int], Any]]) -> None:
        super().__init__()
        self.replies = list(replies)
        self.requests: List[Tuple[str, str, Dict[str, Any]]] = []

    async def request_webhook(self, method: str, url: str, body: Dict[str, Any]) -> Tuple[Optional[int], Any]:
        self.requests.append((method, url, body))
        if self.replies:
            return self.replies.pop(0)
        return 204, None


def _paddle(store_dir: Optional[str] = None, **discord: Any) -> Paddle:
    cfg = PaddleConfig.model_validate(
        {
            "run": {"hostname": "box"},
            "log": {"info": False, "warn": False, "error": False},
            "discord": discord,
            "services": [
                {"name": "api", "discord": {"url": HOOK, "reuse_stats_message": True, "greet": True}},
                {"name": "web"},
            ],
        }
    )
    paddle = Paddle(config=cfg, bus=EventBus(cfg.log))
    if store_dir:
        paddle.db = Store(Path(store_dir))
    return paddle


class TestWebhookUrl(unittest.TestCase):
    def test_urls(self) -> None:
        self.assertEqual(webhook_url(HOOK), HOOK + "?wait=true")
        self.assertEqual(webhook_url(HOOK + "/", "99"), HOOK + "/messages/99?wait=true")
        self.assertEqual(webhook_url(HOOK + "?thread_id=5", "99"), HOOK + "/messages/99?thread_id=5&wait=true")

    def test_keys_are_store_safe(self) -> None:
        self.assertEqual(service_key("my-api"), ["discord", "my2dapi", "statsMessageId"])
        self.assertEqual(host_key("box"), ["discord", "host", "box", "statsMessageId"])


class TestStatsMessageReuse(unittest.TestCase):
    def test_create_patch_unknown_create(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            paddle = _paddle(td)
            mod = _ScriptedDiscord(
                [
                    (200, {"id": "111"}),
                    (200, {"id": "111"}),
                    (404, {"message": "Unknown Message", "code": 10008}),
                    (200, {"id": "222"}),
                ]
            )
            api = paddle.find_service("api")
            assert api is not None
            api.stats.append(Stat(id="reqs", description="Requests", value="42"))

            async def _run() -> None:
                await ModuleRuntime(paddle, {"discord": lambda: mod}).load(["discord"])
                for _ in range(4):
                    await mod.on_event(LifecycleEvent.STATS, api)

            asyncio.run(_run())
            methods = [(m, u) for m, u, _ in mod.requests]
            self.assertEqual(
                methods,
                [
                    ("POST", HOOK + "?wait=true"),
                    ("PATCH", HOOK + "/messages/111?wait=true"),
                    ("PATCH", HOOK + "/messages/111?wait=true"),
                    ("POST", HOOK + "?wait=true"),
                ],
            )
            body = mod.requests[0][2]
            self.assertEqual(body["content"], ":sailboat:\n**Service**: api")
            self.assertEqual(body["embeds"][0]["fields"], [{"name": "Requests", "value": "42", "inline": True}])
            self.assertEqual(api.discord_message_id, "222")
            self.assertEqual(paddle.db.get(service_key("api")), "222")  # type: ignore[union-attr]

    def test_persisted_id_is_reused_after_restart(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            Store(Path(td)).put(service_key("api"), "777")
            paddle = _paddle(td)
            mod = _ScriptedDiscord([(200, {"id": "777"})])

            async def _run() -> None:
                await ModuleRuntime(paddle, {"discord": lambda: mod}).load(["discord"])
                await mod.on_event(LifecycleEvent.STATS, paddle.find_service("api"))

            asyncio.run(_run())
            self.assertEqual(mod.requests[0][:2], ("PATCH", HOOK + "/messages/777?wait=true"))

    def test_transport_error_keeps_state(self) -> None:
        paddle = _paddle()
        mod = _ScriptedDiscord([(None, None), (200, {"id": "5"})])
        api = paddle.find_service("api")

        async def _run() -> None:
            await ModuleRuntime(paddle, {"discord": lambda: mod}).load(["discord"])
            await mod.on_event(LifecycleEvent.STATS, api)
            await mod.on_event(LifecycleEvent.STATS, api)

        asyncio.run(_run())
        self.assertEqual([m for m, _, _ in mod.requests], ["POST", "POST"])
        self.assertEqual(api.discord_message_id, "5")  # type: ignore[union-attr]

    def test_combined_host_message(self) -> None:
        paddle = _paddle(url="https://discord.com/api/webhooks/2/host", combined=True)
        assert paddle.host is not None
        paddle.host.stats.append(Stat(id="loadavg", description="Load Average", value="1min 0.10"))
        paddle.find_service("web").stats.append(Stat(id="up", value="yes"))  # type: ignore[union-attr]
        mod = _ScriptedDiscord([(200, {"id": "9"})])

        async def _run() -> None:
            await ModuleRuntime(paddle, {"discord": lambda: mod}).load(["discord"])
            await mod.on_event(LifecycleEvent.STATS, paddle.find_service("api"))
            await mod.on_event(LifecycleEvent.STATS, paddle.host)

        asyncio.run(_run())
        ((method, url, body),) = mod.requests
        self.assertEqual((method, url), ("POST", "https://discord.com/api/webhooks/2/host?wait=true"))
        self.assertEqual([e["title"] for e in body["embeds"]], ["box", "web"])
        self.assertEqual(paddle.host.discord_message_id, "9")


class TestBusNotifications(unittest.TestCase):
    def test_greeting_and_bus_events(self) -> None:
        paddle = _paddle()
        mod = _ScriptedDiscord([])

        async def _run() -> None:
            await ModuleRuntime(paddle, {"discord": lambda: mod}).load(["discord"])
            for svc in paddle.services:
                await mod.on_event(LifecycleEvent.START, svc)
            gh = paddle.bus.create_logger("GitHub")
            commit = GitCommit(id="0123456789", message="Fix it\nmore", username="alice", timestamp="2026-10-19T10:00:00Z")
            await gh.publish(BusEvent.GIT_PUSH, GitPush(service="api", repo="api", full_name="acme/api", ref="refs/heads/main", username="alice"), commit)
            await gh.publish(BusEvent.GIT_PUSH, GitPush(service="web", repo="web"))
            await paddle.bus.create_logger("Git").publish(BusEvent.DEPLOY, DeployReport(service="api", step="pull", text="Already up to date."))

        asyncio.run(_run())
        contents = [b["content"] for _, _, b in mod.requests]
        self.assertEqual(len(contents), 3)
        self.assertEqual(contents[0], GREETING)
        self.assertIn("alice pushed to acme/api", contents[1])
        self.assertIn("Fix it (alice on Mon, Oct 19, 26) 0123456", contents[1])
        self.assertIn("Already up to date.", contents[2])

    def test_inactive_without_targets(self) -> None:
        cfg = PaddleConfig.model_validate({"run": {"hostname": "box"}, "services": [{"name": "web"}]})
        paddle = Paddle(config=cfg, bus=EventBus(cfg.log))
        self.assertEqual(asyncio.run(ModuleRuntime(paddle, {"discord": DiscordModule}).load(["discord"])), [])


class TestWebhookTransport(unittest.TestCase):
    def test_request_webhook_against_local_server(self) -> None:
        received: List[Tuple[str, str, Dict[str, Any]]] = []

        async def _create(request: web.Request) -> web.Response:
            received.append((request.method, request.path_qs, await request.json()))
            return web.json_response({"id": "42"})

        async def _patch(request: web.Request) -> web.Response:
            received.append((request.method, request.path_qs, await request.json()))
            return web.json_response({"message": "Unknown Message", "code": 10008}, status=404)

        async def _run() -> List[Tuple[Optional[int], Any]]:
            app = web.Application()
            app.router.add_post("/api/webhooks/1/abc", _create)
            app.router.add_patch("/api/webhooks/1/abc/messages/42", _patch)
            server = test_utils.TestServer(app)
            await server.start_server()
            paddle = _paddle()
            mod = DiscordModule()
            await ModuleRuntime(paddle, {"discord": lambda: mod}).load(["discord"])
            base = str(server.make_url("/api/webhooks/1/abc"))
            try:
                return [
                    await mod.request_webhook("POST", webhook_url(base), {"content": "hi"}),
                    await mod.request_webhook("PATCH", webhook_url(base, "42"), {"content": "again"}),
                ]
            finally:
                await mod.close()
                await server.close()

        results = asyncio.run(_run())
        self.assertEqual(results[0], (200, {"id": "42"}))
        self.assertEqual(results[1], (404, {"message": "Unknown Message", "code": 10008}))
        self.assertEqual([(m, p) for m, p, _ in received], [("POST", "/api/webhooks/1/abc?wait=true"), ("PATCH", "/api/webhooks/1/abc/messages/42?wait=true")])


if __name__ == "__main__":
    unittest.main()
