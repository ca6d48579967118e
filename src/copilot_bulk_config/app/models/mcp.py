"""MCP Server models.

Supports the two server types accepted by the Copilot coding agent settings:
- Local: command (+ optional args, env)
- Remote (http): url (+ optional headers)

The serialized form ({"mcpServers": {...}}) is the exact shape stored in the
repository settings field, so configurations from other MCP-aware tools can
be reused as-is.
"""

import json
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class HttpServer(BaseModel):
    """Remote MCP server reached over HTTP."""

    model_config = ConfigDict(extra="allow")

    type: Literal["http"] = Field(..., description="Server type discriminator")
    url: str = Field(..., min_length=1, description="Server URL")
    headers: dict[str, str] | None = Field(default=None, description="HTTP headers sent to the server")
    tools: list[str] = Field(..., description="Tools to enable: ['*'] for all, [] for none, or specific names")


class LocalServer(BaseModel):
    """MCP server started as a local process."""

    model_config = ConfigDict(extra="allow")

    type: Literal["local"] = Field(..., description="Server type discriminator")
    command: str = Field(..., min_length=1, description="Command to execute")
    args: list[str] | None = Field(default=None, description="Arguments to pass to the command")
    env: dict[str, str] | None = Field(default=None, description="Environment variables")
    tools: list[str] = Field(..., description="Tools to enable: ['*'] for all, [] for none, or specific names")


ServerSpec = Annotated[Union[HttpServer, LocalServer], Field(discriminator="type")]


class MCPConfiguration(BaseModel):
    """Full contents of one repository's MCP settings field."""

    model_config = ConfigDict(populate_by_name=True)

    servers: dict[str, ServerSpec] = Field(
        default_factory=dict,
        alias="mcpServers",
        description="Map of server name -> server spec",
    )

    def to_wire(self) -> dict:
        """Return the {"mcpServers": {...}} dict written to the settings field."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return json.dumps(self.to_wire(), indent=2)

    def server_names(self) -> list[str]:
        return list(self.servers)
