"""Telemetry contracts.

Services push a single JSON document per connection on the telemetry socket:

    {"serviceName": "api", "stats": [{"id": "reqs", "description": "Requests", "value": "42"}]}

A stat update that omits ``value`` deletes the stat; an explicit ``null`` is
an ordinary value.
"""

from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field


class Stat(BaseModel):
    id: str
    description: str = ""
    value: Any = None


class StatUpdate(BaseModel):
    id: str = Field(min_length=1)
    description: str = ""
    value: Any = None

    model_config = ConfigDict(extra="ignore")

    @property
    def is_delete(self) -> bool:
        return "value" not in self.model_fields_set

    def to_stat(self) -> Stat:
        return Stat(id=self.id, description=self.description, value=self.value)


class TelemetryPush(BaseModel):
    service_name: str = Field(alias="serviceName", min_length=1)
    stats: List[StatUpdate] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore", populate_by_name=True)
