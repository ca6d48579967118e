"""Browser automation channel for the MCP settings field.

Used when no API endpoint answers (or when forced with --browser-only).
Each call opens its own page in the shared session, navigates to the
repository's coding agent settings and drives the field through the
locator.

Saving has a known weak postcondition: success means "no error banner
appeared after the settle delay". A save the page silently dropped cannot
be told apart from a successful one here.
"""

import json
from typing import Protocol

from pydantic import ValidationError

from copilot_bulk_config.app import config
from copilot_bulk_config.app.errors import (
    FieldNotFoundError,
    PermissionDeniedError,
    RemoteConfigParseError,
    SaveFailedError,
    SessionExpiredError,
)
from copilot_bulk_config.app.models.mcp import MCPConfiguration
from copilot_bulk_config.app.models.repository import Repository
from copilot_bulk_config.app.services.browser_session import PageDriver
from copilot_bulk_config.app.services.field_locator import FieldLocator
from copilot_bulk_config.app.services.logging_service import get_logger

logger = get_logger(__name__)

ACCESS_DENIED_MARKERS = ("You don't have permission", "Access denied", "You must be a repository administrator")
SIGN_IN_MARKERS = ("Sign in to GitHub",)
SAVE_BUTTON_LABELS = ("Save MCP configuration", "Save configuration", "Save")
SUBMIT_KEYS = "ControlOrMeta+Enter"
SELECT_ALL_KEYS = "ControlOrMeta+a"


class PageSession(Protocol):
    """The part of BrowserSession the UI channel relies on."""

    debug: bool

    async def ensure_authenticated(self) -> None: ...

    def mark_unauthenticated(self) -> None: ...

    def page(self): ...


def parse_field_text(text: str, repository: str | None = None) -> MCPConfiguration | None:
    """Decode the settings field. Empty means no configuration is stored."""
    stripped = text.strip()
    if not stripped:
        return None
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError as e:
        raise RemoteConfigParseError(f"MCP configuration field is not valid JSON: {e}", repository) from e
    if not isinstance(data, dict) or "mcpServers" not in data:
        raise RemoteConfigParseError('MCP configuration field has no "mcpServers" object', repository)
    try:
        return MCPConfiguration.model_validate(data)
    except ValidationError as e:
        raise RemoteConfigParseError(f"MCP configuration field failed validation: {e}", repository) from e


def settings_url(repo: Repository) -> str:
    return config.GITHUB_WEB_URL + config.SETTINGS_PAGE_PATH.format(owner=repo.owner, repo=repo.name)


class UISettingsChannel:
    """Reads and writes the MCP configuration by driving the settings page."""

    route = "browser"

    def __init__(self, session: PageSession, locator: FieldLocator | None = None):
        self._session = session
        self._locator = locator or FieldLocator()

    async def _open_settings(self, page: PageDriver, repo: Repository) -> None:
        url = settings_url(repo)
        logger.info(f"Navigating to {url}")
        status = await page.navigate(url)

        if "/login" in page.current_url() or any([await page.has_text(m) for m in SIGN_IN_MARKERS]):
            self._session.mark_unauthenticated()
            raise SessionExpiredError("Browser session is no longer signed in to GitHub", repo.full_name)
        if status == 404:
            raise PermissionDeniedError(
                f"Coding agent settings not available for {repo.full_name} (HTTP 404)", repo.full_name
            )
        for marker in ACCESS_DENIED_MARKERS:
            if await page.has_text(marker):
                raise PermissionDeniedError(f"Access denied to settings for {repo.full_name}", repo.full_name)

    async def _locate(self, page: PageDriver, repo: Repository):
        try:
            return await self._locator.locate(page)
        except FieldNotFoundError as e:
            e.repository = repo.full_name
            if self._session.debug:
                await page.capture(f"field-not-found-{repo.full_name}")
            raise

    async def read(self, repo: Repository) -> MCPConfiguration | None:
        await self._session.ensure_authenticated()
        async with self._session.page() as page:
            await self._open_settings(page, repo)
            handle = await self._locate(page, repo)
        if handle.is_empty:
            logger.info("MCP configuration field is empty")
            return None
        return parse_field_text(handle.text, repo.full_name)

    async def _save(self, page: PageDriver) -> None:
        for label in SAVE_BUTTON_LABELS:
            if await page.click_button(label):
                logger.debug(f"Clicked save button: {label}")
                return
        logger.debug(f"No save button found, submitting with {SUBMIT_KEYS}")
        await page.press(SUBMIT_KEYS)

    async def write(self, repo: Repository, mcp_config: MCPConfiguration) -> None:
        await self._session.ensure_authenticated()
        async with self._session.page() as page:
            await self._open_settings(page, repo)
            await self._locate(page, repo)

            await page.press(SELECT_ALL_KEYS)
            await page.type_text(mcp_config.to_json())
            await self._save(page)
            await page.wait(config.SAVE_SETTLE_MS)

            banner = await page.error_banner_text()
            if banner:
                if self._session.debug:
                    await page.capture(f"save-failed-{repo.full_name}")
                raise SaveFailedError(f"Settings page reported an error after saving: {banner}", repo.full_name)

        # No error banner is the only success signal the page gives
        logger.info("Updated MCP configuration via browser automation")
