"""Hybrid MCP settings channel: API first, browser automation as fallback.

Secrets and variables never come through here; they always go through the
repository client.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from copilot_bulk_config.app.errors import ChannelUnavailableError
from copilot_bulk_config.app.models.mcp import MCPConfiguration
from copilot_bulk_config.app.models.repository import Repository
from copilot_bulk_config.app.services.logging_service import get_logger

logger = get_logger(__name__)


class ChannelMode(str, Enum):
    """Which routes the channel may use."""
    HYBRID = "hybrid"
    API_ONLY = "api-only"
    BROWSER_ONLY = "browser-only"


@dataclass(frozen=True)
class ChannelRead:
    config: MCPConfiguration | None
    route: str


class RouteChannel(Protocol):
    route: str

    async def read(self, repo: Repository) -> MCPConfiguration | None: ...

    async def write(self, repo: Repository, mcp_config: MCPConfiguration) -> None: ...


class SettingsChannel(Protocol):
    """What the engine needs to read and write one repository's MCP settings."""

    async def read(self, repo: Repository) -> ChannelRead: ...

    async def write(self, repo: Repository, mcp_config: MCPConfiguration, route: str) -> str: ...


class HybridSettingsChannel:
    """Routes reads and writes between the API and UI channels."""

    def __init__(
        self,
        mode: ChannelMode,
        api: RouteChannel | None = None,
        ui: RouteChannel | None = None,
    ):
        if mode is not ChannelMode.BROWSER_ONLY and api is None:
            raise ValueError(f"{mode.value} mode needs an API channel")
        if mode is not ChannelMode.API_ONLY and ui is None:
            raise ValueError(f"{mode.value} mode needs a browser channel")
        self.mode = mode
        self._api = api
        self._ui = ui

    async def read(self, repo: Repository) -> ChannelRead:
        if self.mode is ChannelMode.BROWSER_ONLY:
            return ChannelRead(await self._ui.read(repo), self._ui.route)
        try:
            return ChannelRead(await self._api.read(repo), self._api.route)
        except ChannelUnavailableError:
            if self.mode is ChannelMode.API_ONLY:
                raise
            logger.info("API path unavailable, falling back to browser automation")
        return ChannelRead(await self._ui.read(repo), self._ui.route)

    async def write(self, repo: Repository, mcp_config: MCPConfiguration, route: str) -> str:
        """Write through ``route`` (the one the read used); return the route that succeeded."""
        if route == "browser" or self.mode is ChannelMode.BROWSER_ONLY:
            await self._ui.write(repo, mcp_config)
            return self._ui.route
        try:
            await self._api.write(repo, mcp_config)
            return self._api.route
        except ChannelUnavailableError:
            if self.mode is ChannelMode.API_ONLY:
                raise
            logger.warning("API write failed, falling back to browser automation")
        await self._ui.write(repo, mcp_config)
        return self._ui.route
