"""Bus event kinds and the normalized payloads carried on the bus."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class Severity(str, Enum):
    DATA = "DATA"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class BusEvent(str, Enum):
    """Structured events published on the bus (not subject to severity gating)."""

    GIT_PUSH = "GIT-PUSH"
    ISSUE = "ISSUE"
    ISSUE_COMMENT = "ISSUE-COMMENT"
    DEPLOY = "DEPLOY"


class LifecycleEvent(str, Enum):
    START = "start"
    STATS = "stats"
    STOP = "stop"


class GitPush(BaseModel):
    host: str = "GitHub"
    service: str = ""
    username: str = ""
    repo: str = ""
    full_name: str = ""
    url: str = ""
    ref: str = ""

    model_config = ConfigDict(extra="forbid")


class GitCommit(BaseModel):
    id: str = ""
    message: str = ""
    username: str = ""
    timestamp: str = ""
    url: str = ""

    model_config = ConfigDict(extra="forbid")


class IssueEvent(BaseModel):
    host: str = "GitHub"
    service: str = ""
    action: str = ""
    repo: str = ""
    number: int = 0
    title: str = ""
    url: str = ""
    username: str = ""

    model_config = ConfigDict(extra="forbid")


class IssueComment(BaseModel):
    host: str = "GitHub"
    service: str = ""
    action: str = ""
    repo: str = ""
    number: int = 0
    title: str = ""
    url: str = ""
    username: str = ""
    body: str = ""

    model_config = ConfigDict(extra="forbid")


class DeployReport(BaseModel):
    service: str
    step: str
    text: str
    ok: bool = True
    code: Optional[int] = None

    model_config = ConfigDict(extra="forbid")
