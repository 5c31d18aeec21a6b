"""Catalog records: tool servers, their tools and connection bookkeeping.

JSON exposed to the UI uses camelCase, so every record serializes by alias.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ServerStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class ToolInputSchema(BaseModel):
    """Structural subset of JSON Schema describing a tool's arguments.

    Unknown keywords (``additionalProperties``, ``$defs``...) are kept so the
    literal schema can be handed to the LLM unchanged.
    """

    model_config = ConfigDict(extra="allow")

    type: str = "object"
    properties: dict[str, Any] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)

    def required_keys(self) -> list[str]:
        """Names the schema marks as required.

        Includes properties flagged with a per-property ``required: true``,
        which some servers emit instead of the top-level list.
        """
        keys = list(self.required)
        for name, prop in self.properties.items():
            if isinstance(prop, dict) and prop.get("required") is True and name not in keys:
                keys.append(name)
        return keys

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ToolDescriptor(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    description: str = ""
    input_schema: ToolInputSchema = Field(default_factory=ToolInputSchema)
    output_schema: dict[str, Any] | None = None


class ToolServer(CamelModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    url: str
    name: str
    connected: bool = False
    status: ServerStatus = ServerStatus.DISCONNECTED
    connected_at: datetime | None = None
    last_ping: datetime | None = None
    error_message: str | None = None
    tools: list[ToolDescriptor] = Field(default_factory=list)

    def get_tool(self, name: str) -> ToolDescriptor | None:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None


class ConnectionRecord(CamelModel):
    server_id: str
    server_url: str
    is_active: bool = True
    created_at: datetime
    last_activity: datetime


class CatalogStats(CamelModel):
    total_servers: int = 0
    connected_servers: int = 0
    active_connections: int = 0
    total_tools: int = 0
