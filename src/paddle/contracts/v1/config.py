"""Daemon configuration contracts (validated from config.yaml)."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RunConfig(BaseModel):
    user: str = "www-data"
    group: str = "www-data"
    hostname: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class HttpConfig(BaseModel):
    """Webhook listener bind address: either host+port or a unix socket path."""

    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=0, le=65535)
    path: Optional[str] = "/run/paddle.sock"

    model_config = ConfigDict(extra="forbid")


class LogConfig(BaseModel):
    data: bool = False
    debug: bool = False
    info: bool = True
    warn: bool = True
    error: bool = True
    format: Literal["text", "json"] = "text"

    model_config = ConfigDict(extra="forbid")


class DbConfig(BaseModel):
    dir_path: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class RootConfig(BaseModel):
    ready_timeout_seconds: float = Field(default=0.5, gt=0)
    timeout_seconds: float = Field(default=60.0, gt=0)

    model_config = ConfigDict(extra="forbid")


class StatsConfig(BaseModel):
    path: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=0, le=65535)
    interval_seconds: float = Field(default=300.0, gt=0)
    host_stats: bool = True
    devices: List[str] = Field(default_factory=lambda: ["/dev/sda"])
    mounts: List[str] = Field(default_factory=lambda: ["/"])

    model_config = ConfigDict(extra="forbid")


class GithubConfig(BaseModel):
    url_path: str = ""

    model_config = ConfigDict(extra="forbid")


class DiscordConfig(BaseModel):
    """Host-level Discord settings; ``combined`` posts one stats message for the host."""

    url: Optional[str] = None
    combined: bool = False
    reuse_stats_message: bool = True

    model_config = ConfigDict(extra="forbid")


class ServiceGitConfig(BaseModel):
    repo: Optional[str] = None
    branch: Optional[str] = None
    pull: bool = False
    restart: bool = False

    model_config = ConfigDict(extra="forbid")


class ServiceGithubConfig(BaseModel):
    url_path: str = ""
    secret: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ServiceDiscordConfig(BaseModel):
    url: str
    reuse_stats_message: bool = False
    greet: bool = True

    model_config = ConfigDict(extra="forbid")


class ServiceConfig(BaseModel):
    name: str = Field(min_length=1)
    path: str = ""
    location: str = ""
    proxy: str = ""
    unit: Optional[str] = None
    stats_interval_seconds: Optional[float] = Field(default=None, gt=0)
    git: Optional[ServiceGitConfig] = None
    github: Optional[ServiceGithubConfig] = None
    discord: Optional[ServiceDiscordConfig] = None

    model_config = ConfigDict(extra="forbid")

    @property
    def unit_name(self) -> str:
        return self.unit or self.name


class ConfigFlags(BaseModel):
    is_inet: bool = False
    is_sock: bool = False


class PaddleConfig(BaseModel):
    run: RunConfig = Field(default_factory=RunConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    log: LogConfig = Field(default_factory=LogConfig)
    db: DbConfig = Field(default_factory=DbConfig)
    root: RootConfig = Field(default_factory=RootConfig)
    stats: StatsConfig = Field(default_factory=StatsConfig)
    github: GithubConfig = Field(default_factory=GithubConfig)
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    modules: List[str] = Field(default_factory=lambda: ["db", "stats", "github", "git", "discord"])
    services: List[ServiceConfig] = Field(default_factory=list)
    flags: ConfigFlags = Field(default_factory=ConfigFlags, exclude=True)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check(self) -> "PaddleConfig":
        if isinstance(self.http.host, str) and self.http.host and isinstance(self.http.port, int):
            self.flags = ConfigFlags(is_inet=True)
        elif isinstance(self.http.path, str) and self.http.path:
            self.flags = ConfigFlags(is_sock=True)
        else:
            raise ValueError("check http.host+http.port or http.path for the bind address")
        names = [s.name for s in self.services]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"duplicate service names: {', '.join(dupes)}")
        paths = [self.github.url_path + s.github.url_path for s in self.services if s.github is not None]
        clashes = sorted({p for p in paths if paths.count(p) > 1})
        if clashes:
            raise ValueError(f"duplicate github route paths: {', '.join(clashes)}")
        return self
