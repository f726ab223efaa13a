"""Root helper IPC contracts (supervisor <-> privileged helper).

One JSON document per line over the helper's stdin/stdout pipes:
- supervisor -> helper: ExecRequest
- helper -> supervisor: ReadyMessage once at startup, then one ExecResponse per request id
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

IPC_VERSION = 1


class ExecRequest(BaseModel):
    v: Literal[1] = IPC_VERSION
    id: str = Field(min_length=1)
    type: Literal["exec"] = "exec"
    cmd: str = Field(min_length=1)
    args: List[str] = Field(default_factory=list)
    cwd: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ExecResponse(BaseModel):
    v: Literal[1] = IPC_VERSION
    id: str
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    code: Optional[int] = None

    model_config = ConfigDict(extra="forbid")

    @property
    def failed(self) -> bool:
        return self.code is not None


class ReadyMessage(BaseModel):
    v: Literal[1] = IPC_VERSION
    type: Literal["ready"] = "ready"
    pid: int = 0

    model_config = ConfigDict(extra="forbid")


class ExecResult(BaseModel):
    """Successful command output as seen by the supervisor."""

    stdout: str = ""
    stderr: str = ""
