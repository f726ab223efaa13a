"""Exception hierarchy shared by the supervisor, the root helper channel and modules."""

from __future__ import annotations


class PaddleError(Exception):
    pass


class ConfigError(PaddleError):
    """Missing or invalid configuration. Fatal at startup."""


class StartupError(PaddleError):
    """Privilege or filesystem problem while bootstrapping. Fatal at startup."""


class StoreError(PaddleError):
    pass


class CommandError(PaddleError):
    """A command executed through the root helper failed.

    ``code`` is the exit status for a command that ran, or an errno value when
    the command could not be spawned.
    """

    def __init__(self, code: int, stderr: str = "", stdout: str = "") -> None:
        self.code = int(code)
        self.stderr = stderr or ""
        self.stdout = stdout or ""
        detail = self.stderr.strip() or self.stdout.strip()
        super().__init__(f"command failed (code={self.code}): {detail}" if detail else f"command failed (code={self.code})")


class CommandTimeout(CommandError):
    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = float(timeout_seconds)
        super().__init__(-1, f"no response from root helper within {self.timeout_seconds:g}s")


class ChannelError(PaddleError):
    pass


class ChannelClosed(ChannelError):
    """The root helper transport closed; privileged operations are unavailable."""


class HandshakeTimeout(ChannelError):
    """The root helper did not report ready within the startup window."""
