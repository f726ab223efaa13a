import asyncio
import unittest
from typing import Any, List, Tuple

from fastapi.testclient import TestClient

from paddle.contracts.v1 import BusEvent, LifecycleEvent, LogConfig, PaddleConfig
from paddle.daemon.bus import EventBus
from paddle.daemon.http_app import create_app
from paddle.daemon.instance import Paddle
from paddle.daemon.runtime import ModuleRuntime, ModuleState
from paddle.modules.base import Module
from paddle.modules.github import GithubModule, sign_body

CALLS: List[Tuple[str, Any]] = []


class _Recorder(Module):
    def __init__(self, name: str, load: Any = True) -> None:
        super().__init__()
        self.name = name
        self.log_name = name.capitalize()
        self._load = load

    async def init(self, paddle: Paddle) -> bool:
        if isinstance(self._load, Exception):
            raise self._load
        return bool(self._load)

    async def on_event(self, kind: LifecycleEvent, payload: Any) -> None:
        await asyncio.sleep(0)
        CALLS.append((self.name, kind))


class _Broken(_Recorder):
    async def on_event(self, kind: LifecycleEvent, payload: Any) -> None:
        raise RuntimeError("hook failed")


def _paddle() -> Paddle:
    cfg = PaddleConfig(log=LogConfig(info=False, debug=False), run={"hostname": "box"})
    return Paddle(config=cfg, bus=EventBus(cfg.log))


class TestModuleRuntime(unittest.TestCase):
    def setUp(self) -> None:
        CALLS.clear()

    def test_activation_and_inactive_modules_never_notified(self) -> None:
        async def _run() -> ModuleRuntime:
            registry = {
                "a": lambda: _Recorder("a"),
                "b": lambda: _Recorder("b", load=False),
                "c": lambda: _Recorder("c", load=RuntimeError("init failed")),
                "d": lambda: _Recorder("d"),
            }
            rt = ModuleRuntime(_paddle(), registry)
            await rt.load(["a", "b", "c", "missing", "d", "a"])
            await rt.notify(LifecycleEvent.START, None)
            return rt

        with self.assertLogs("paddle.daemon.runtime", level="WARNING"):
            rt = asyncio.run(_run())
        self.assertEqual([m.name for m in rt.active], ["a", "d"])
        self.assertIs(rt.state_of("b"), ModuleState.INACTIVE)
        self.assertIs(rt.state_of("c"), ModuleState.INACTIVE)
        self.assertIsNone(rt.state_of("missing"))
        self.assertEqual(CALLS, [("a", LifecycleEvent.START), ("d", LifecycleEvent.START)])

    def test_failing_hook_does_not_block_later_modules(self) -> None:
        async def _run() -> None:
            rt = ModuleRuntime(_paddle(), {"x": lambda: _Broken("x"), "y": lambda: _Recorder("y")})
            await rt.load(["x", "y"])
            await rt.notify(LifecycleEvent.STATS, None)

        with self.assertLogs("paddle.daemon.runtime", level="ERROR"):
            asyncio.run(_run())
        self.assertEqual(CALLS, [("y", LifecycleEvent.STATS)])

    def test_registered_module_gets_logger_and_paddle(self) -> None:
        async def _run() -> Module:
            paddle = _paddle()
            rt = ModuleRuntime(paddle, {"a": lambda: _Recorder("a")})
            (mod,) = await rt.load(["a"])
            self.assertIs(mod.paddle, paddle)
            return mod

        mod = asyncio.run(_run())
        assert mod.log is not None
        self.assertEqual(mod.log.name, "A")


class _HalfWay(Module):
    name = "halfway"
    log_name = "HalfWay"

    async def init(self, paddle: Paddle) -> bool:
        async def _handle(request: Any) -> Any:
            return None

        async def _telemetry(push: Any) -> None:
            return None

        paddle.add_route("/halfway", _handle, owner=self.name)
        paddle.telemetry_handler = _telemetry
        raise RuntimeError("failed after registering")


class TestNoPartialActivation(unittest.TestCase):
    def test_failed_init_rolls_back_registrations(self) -> None:
        async def _run() -> Tuple[ModuleRuntime, Paddle]:
            paddle = _paddle()

            async def _keep(request: Any) -> Any:
                return None

            paddle.add_route("/existing", _keep, owner="other")
            rt = ModuleRuntime(paddle, {"halfway": _HalfWay})
            await rt.load(["halfway"])
            return rt, paddle

        with self.assertLogs("paddle.daemon.runtime", level="ERROR"):
            rt, paddle = asyncio.run(_run())
        self.assertIs(rt.state_of("halfway"), ModuleState.INACTIVE)
        self.assertEqual([r.url_path for r in paddle.routes], ["/existing"])
        self.assertIsNone(paddle.telemetry_handler)

    def test_inactive_github_module_serves_nothing(self) -> None:
        cfg = PaddleConfig.model_validate(
            {
                "run": {"hostname": "box"},
                "log": {"info": False, "warn": False, "error": False},
                "services": [
                    {"name": "api", "github": {"url_path": "/api", "secret": "s"}},
                    {"name": "web", "github": {"url_path": "/web", "secret": "s"}},
                ],
            }
        )
        paddle = Paddle(config=cfg, bus=EventBus(cfg.log))
        seen: List[Any] = []
        paddle.bus.create_logger("Spy").listen(lambda src, kind, args: seen.append(kind))

        async def _taken(request: Any) -> Any:
            return None

        # The second service's path is already owned, so github init fails half way.
        paddle.add_route("/web", _taken, owner="other")
        rt = ModuleRuntime(paddle, {"github": GithubModule})
        with self.assertLogs("paddle.daemon.runtime", level="ERROR"):
            asyncio.run(rt.load(["github"]))
        self.assertIs(rt.state_of("github"), ModuleState.INACTIVE)
        self.assertEqual([r.url_path for r in paddle.routes], ["/web"])

        body = b'{"ref": "refs/heads/main", "repository": {"name": "api"}}'
        headers = {
            "content-type": "application/json",
            "x-github-event": "push",
            "x-hub-signature-256": "sha256=" + sign_body("s", body),
        }
        resp = TestClient(create_app(paddle)).post("/api", content=body, headers=headers)
        self.assertEqual(resp.status_code, 404)
        self.assertNotIn(BusEvent.GIT_PUSH, seen)


if __name__ == "__main__":
    unittest.main()
