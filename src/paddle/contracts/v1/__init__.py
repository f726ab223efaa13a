from .config import (
    ConfigFlags,
    DbConfig,
    DiscordConfig,
    GithubConfig,
    HttpConfig,
    LogConfig,
    PaddleConfig,
    RootConfig,
    RunConfig,
    ServiceConfig,
    ServiceDiscordConfig,
    ServiceGitConfig,
    ServiceGithubConfig,
    StatsConfig,
)
from .events import (
    BusEvent,
    DeployReport,
    GitCommit,
    GitPush,
    IssueComment,
    IssueEvent,
    LifecycleEvent,
    Severity,
)
from .ipc import IPC_VERSION, ExecRequest, ExecResponse, ExecResult, ReadyMessage
from .stats import Stat, StatUpdate, TelemetryPush

__all__ = [
    "BusEvent",
    "ConfigFlags",
    "DbConfig",
    "DeployReport",
    "DiscordConfig",
    "ExecRequest",
    "ExecResponse",
    "ExecResult",
    "GitCommit",
    "GitPush",
    "GithubConfig",
    "HttpConfig",
    "IPC_VERSION",
    "IssueComment",
    "IssueEvent",
    "LifecycleEvent",
    "LogConfig",
    "PaddleConfig",
    "ReadyMessage",
    "RootConfig",
    "RunConfig",
    "ServiceConfig",
    "ServiceDiscordConfig",
    "ServiceGitConfig",
    "ServiceGithubConfig",
    "Severity",
    "Stat",
    "StatUpdate",
    "StatsConfig",
    "TelemetryPush",
]
