"""Auto-deploy: pull and restart a service when a matching push arrives on the bus.

Per service: UNCONFIGURED -> DETECTING (on start) -> WATCHING. A push matches
when its repository equals the configured (or detected) repository and its
ref is ``refs/heads/<branch>``. Pull and restart run sequentially under the
service's deploy lock; a failed pull is never followed by a restart.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from ..contracts.v1 import BusEvent, DeployReport, ExecResult, GitPush, LifecycleEvent
from ..daemon.bus import BusLogger, EventKind
from ..daemon.instance import GitState, Paddle, ServiceRun
from ..errors import ChannelClosed, CommandError
from ..kernel.git import git_current_branch, git_origin_url, git_pull, repo_name_from_remote
from ..kernel.systemd import status_excerpt, systemctl_restart, systemctl_status
from .base import Module


class GitModule(Module):
    name = "git"
    log_name = "Git"

    async def init(self, paddle: Paddle) -> bool:
        return any(s.config.git is not None for s in paddle.services)

    async def _run(self, cmd: str, args: List[str], cwd: Optional[str]) -> ExecResult:
        assert self.paddle is not None
        if self.paddle.root is None:
            raise ChannelClosed("root helper unavailable")
        return await self.paddle.root.exec(cmd, args, cwd)

    async def on_event(self, kind: LifecycleEvent, payload: Any) -> None:
        if kind is LifecycleEvent.START and isinstance(payload, ServiceRun) and payload.config.git is not None:
            await self.configure(payload)

    async def configure(self, service: ServiceRun) -> Optional[GitState]:
        assert self.log is not None and service.config.git is not None
        declared = service.config.git
        detected_repo = ""
        detected_branch: Optional[str] = None
        try:
            detected_repo = repo_name_from_remote(await git_origin_url(self._run, service.config.path))
            detected_branch = await git_current_branch(self._run, service.config.path)
            await self.log.info(f"Detected repo {detected_repo}/{detected_branch or '(detached)'}")
        except CommandError as e:
            await self.log.error(f"Could not determine branch info for {service.name}", e.stderr.strip() or str(e))

        repo = declared.repo or detected_repo
        branch = declared.branch or detected_branch
        if declared.repo and detected_repo and declared.repo != detected_repo:
            await self.log.warn(f"Overriding repo name {detected_repo} with {declared.repo}")
        if not repo or not branch:
            await self.log.error(f"Not watching {service.name}: repository or branch unknown")
            service.git = None
            return None
        service.git = GitState(repo=repo, branch=branch)
        return service.git

    async def on_bus(self, source: BusLogger, kind: EventKind, args: Tuple[Any, ...]) -> None:
        if kind is not BusEvent.GIT_PUSH or not args or not isinstance(args[0], GitPush):
            return
        assert self.paddle is not None
        push = args[0]
        for service in self.paddle.services:
            if matches(service, push):
                await self.deploy(service)

    async def deploy(self, service: ServiceRun) -> None:
        assert service.config.git is not None
        if not service.config.git.pull:
            return
        async with service.deploy_lock:
            if not await self.pull(service):
                return
            if service.config.git.restart:
                await self.restart(service)

    async def pull(self, service: ServiceRun) -> bool:
        assert self.paddle is not None and self.log is not None and service.git is not None
        header = f"Pulling repository {service.git.repo} @{self.paddle.hostname}\n"
        try:
            lines = await git_pull(self._run, service.config.path)
        except CommandError as e:
            text = e.stderr.strip() or str(e)
            await self.log.error(header, text)
            await self.log.publish(BusEvent.DEPLOY, DeployReport(service=service.name, step="pull", text=header + text, ok=False, code=e.code))
            return False
        text = "\n".join(lines)
        await self.log.info(header, text)
        await self.log.publish(BusEvent.DEPLOY, DeployReport(service=service.name, step="pull", text=header + text))
        return True

    async def restart(self, service: ServiceRun) -> bool:
        assert self.paddle is not None and self.log is not None
        unit = service.config.unit_name
        header = f"Restarting service {service.name} @{self.paddle.hostname}\n"
        try:
            await systemctl_restart(self._run, unit)
        except CommandError as e:
            text = e.stderr.strip() or str(e)
            await self.log.error(header, text)
            await self.log.publish(BusEvent.DEPLOY, DeployReport(service=service.name, step="restart", text=header + text, ok=False, code=e.code))
            return False
        try:
            text = status_excerpt(await systemctl_status(self._run, unit))
        except CommandError as e:
            text = f"status unavailable: {e.stderr.strip() or e}"
        await self.log.info(header, text)
        await self.log.publish(BusEvent.DEPLOY, DeployReport(service=service.name, step="restart", text=header + text))
        return True


def matches(service: ServiceRun, push: GitPush) -> bool:
    if service.git is None or service.config.git is None:
        return False
    if service.git.repo not in {push.repo, push.full_name}:
        return False
    return push.ref == f"refs/heads/{service.git.branch}"
