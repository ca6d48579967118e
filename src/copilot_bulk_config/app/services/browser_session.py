"""Shared browser session for UI automation.

One browser and one authenticated context are shared by every repository
pipeline of a run; each pipeline works in its own page so navigation never
interferes across repositories, while cookies and auth headers are shared.
The session is an explicitly owned handle passed to the UI channel.

Pages are driven through the small ``PageDriver`` capability (focus moves,
key presses, typing, text reads) so the field locator can be exercised
against recorded fixture pages instead of a live site.
"""

import asyncio
import re
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Protocol

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from copilot_bulk_config.app import config
from copilot_bulk_config.app.errors import AuthenticationError
from copilot_bulk_config.app.services.logging_service import get_logger

logger = get_logger(__name__)

LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]

ERROR_BANNER_SELECTORS = [
    ".flash-error",
    ".alert-error",
    ".Banner--error",
    "[role='alert'][data-variant='danger']",
    "[role='alert'].flash-error",
]

_FOCUSED_TEXT_JS = """
() => {
  const el = document.activeElement;
  if (!el || el === document.body) return "";
  if (el.tagName === "TEXTAREA" || el.tagName === "INPUT") return el.value || "";
  const editor = el.closest(".cm-content, .CodeMirror, [contenteditable='true']");
  return (editor || el).innerText || el.textContent || "";
}
"""

_PREVIOUS_FOCUSABLE_TEXT_JS = """
() => {
  const selector = "a[href], button, input, select, textarea, summary, "
    + "[tabindex]:not([tabindex='-1']), [contenteditable='true']";
  const nodes = Array.from(document.querySelectorAll(selector))
    .filter((n) => !n.disabled && n.offsetParent !== null);
  const index = nodes.indexOf(document.activeElement);
  if (index <= 0) return "";
  const prev = nodes[index - 1];
  return prev.getAttribute("aria-label") || prev.innerText || prev.textContent || "";
}
"""

_FIND_TEXT_JS = """
(term) => {
  const selection = window.getSelection();
  if (selection) selection.removeAllRanges();
  return window.find(term, false, false, true);
}
"""


class PageDriver(Protocol):
    """What the UI channel and field locator need from a browser page."""

    async def navigate(self, url: str) -> int | None: ...

    def current_url(self) -> str: ...

    async def focused_text(self) -> str: ...

    async def previous_focusable_text(self) -> str: ...

    async def find_text(self, term: str) -> bool: ...

    async def focus_next(self) -> None: ...

    async def focus_previous(self) -> None: ...

    async def press(self, keys: str) -> None: ...

    async def type_text(self, text: str) -> None: ...

    async def wait(self, ms: int) -> None: ...

    async def has_text(self, phrase: str) -> bool: ...

    async def click_button(self, label: str) -> bool: ...

    async def error_banner_text(self) -> str | None: ...

    async def capture(self, prefix: str) -> None: ...


class PlaywrightPageDriver:
    """PageDriver over a Playwright page."""

    def __init__(self, page: Page) -> None:
        self._page = page

    async def navigate(self, url: str) -> int | None:
        response = await self._page.goto(url, wait_until="load", timeout=config.NAVIGATION_TIMEOUT_MS)
        await self._page.wait_for_timeout(config.PAGE_SETTLE_MS)
        return response.status if response else None

    def current_url(self) -> str:
        return self._page.url

    async def focused_text(self) -> str:
        return await self._page.evaluate(_FOCUSED_TEXT_JS)

    async def previous_focusable_text(self) -> str:
        return await self._page.evaluate(_PREVIOUS_FOCUSABLE_TEXT_JS)

    async def find_text(self, term: str) -> bool:
        return bool(await self._page.evaluate(_FIND_TEXT_JS, term))

    async def focus_next(self) -> None:
        await self._page.keyboard.press("Tab")

    async def focus_previous(self) -> None:
        await self._page.keyboard.press("Shift+Tab")

    async def press(self, keys: str) -> None:
        await self._page.keyboard.press(keys)

    async def type_text(self, text: str) -> None:
        # insert_text avoids editor auto-closing of brackets and quotes
        await self._page.keyboard.insert_text(text)

    async def wait(self, ms: int) -> None:
        await self._page.wait_for_timeout(ms)

    async def has_text(self, phrase: str) -> bool:
        return await self._page.get_by_text(phrase).first.is_visible()

    async def click_button(self, label: str) -> bool:
        button = self._page.get_by_role("button", name=label).first
        if not await button.is_visible():
            return False
        await button.click()
        return True

    async def error_banner_text(self) -> str | None:
        for selector in ERROR_BANNER_SELECTORS:
            banner = self._page.locator(selector).first
            if await banner.is_visible():
                text = (await banner.text_content() or "").strip()
                return text or selector
        return None

    async def capture(self, prefix: str) -> None:
        config.DEBUG_DIR.mkdir(parents=True, exist_ok=True)
        stem = f"{re.sub(r'[^A-Za-z0-9_.-]+', '-', prefix)}-{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        await self._page.screenshot(path=str(config.DEBUG_DIR / f"{stem}.png"), full_page=True)
        (config.DEBUG_DIR / f"{stem}.html").write_text(await self._page.content(), encoding="utf-8")
        logger.info(f"Saved debug capture {stem} to {config.DEBUG_DIR}")

    async def close(self) -> None:
        await self._page.close()


class BrowserSession:
    """Owned handle over the shared browser, context and authentication state.

    ``ensure_authenticated()`` starts and authenticates the browser once, under a
    lock, no matter how many pipelines ask concurrently. A pipeline that
    finds itself signed out calls ``mark_unauthenticated()``; the next
    ``ensure_authenticated()`` re-authenticates.
    """

    def __init__(
        self,
        token_provider: Callable[[], Awaitable[str]],
        debug: bool = False,
        interactive: bool = False,
    ) -> None:
        self._token_provider = token_provider
        self.debug = debug
        self.interactive = interactive
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._authenticated = False
        self._headless = not (debug or interactive)
        self._lock = asyncio.Lock()

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    @property
    def is_started(self) -> bool:
        return self._context is not None

    def _require_context(self) -> BrowserContext:
        if self._context is None:
            raise RuntimeError("Browser session not started")
        return self._context

    async def _launch(self, headless: bool, storage_state: dict | None = None) -> None:
        if self._playwright is None:
            raise RuntimeError("Playwright not started")
        self._browser = await self._playwright.chromium.launch(
            headless=headless,
            slow_mo=1000 if self.debug else 0,
            args=LAUNCH_ARGS,
        )
        self._context = await self._browser.new_context(storage_state=storage_state)
        self._context.set_default_timeout(config.FIELD_INTERACTION_TIMEOUT_MS)
        self._context.set_default_navigation_timeout(config.NAVIGATION_TIMEOUT_MS)
        self._headless = headless

    async def start(self) -> None:
        if self.is_started:
            return
        self._playwright = await async_playwright().start()
        await self._launch(self._headless)
        logger.info(f"Browser automation initialized (headless: {self._headless}, interactive: {self.interactive})")

    async def ensure_authenticated(self) -> None:
        """Start and authenticate the shared session if needed."""
        async with self._lock:
            if not self.is_started:
                await self.start()
            if not self.is_authenticated:
                await self.authenticate(await self._token_provider())

    def mark_unauthenticated(self) -> None:
        if self.is_authenticated:
            logger.warning("Browser session lost authentication; it will be re-authenticated")
        self._authenticated = False

    async def authenticate(self, token: str) -> None:
        self._require_context()
        if self.interactive:
            await self._authenticate_interactively()
        else:
            await self._authenticate_with_token(token)
        self._authenticated = True

    async def _authenticate_with_token(self, token: str) -> None:
        context = self._require_context()
        await context.set_extra_http_headers({"Authorization": f"token {token}"})
        page = await context.new_page()
        try:
            response = await page.goto(f"{config.GITHUB_API_URL}/user")
            status = response.status if response else None
        finally:
            await page.close()
        if status != 200:
            raise AuthenticationError(f"GitHub API authentication failed with status: {status}")
        logger.info("GitHub authentication verified - using token-based authentication")

    async def _profile_visible(self) -> bool:
        page = await self._require_context().new_page()
        try:
            await page.goto(config.PROFILE_SETTINGS_URL)
            await page.wait_for_timeout(config.PAGE_SETTLE_MS)
            return await page.get_by_text("Public profile").first.is_visible()
        finally:
            await page.close()

    async def _authenticate_interactively(self) -> None:
        if await self._profile_visible():
            logger.info("Already authenticated to GitHub")
        else:
            if self._headless:
                # Sign-in needs a visible window
                await self._relaunch(headless=False)
            login_page = await self._require_context().new_page()
            try:
                await login_page.goto(config.LOGIN_URL)
                print("\n🔑 Interactive GitHub authentication required")
                print("   Sign in to GitHub in the browser window that just opened.")
                await asyncio.to_thread(input, "   Press Enter here after you have signed in... ")
            finally:
                await login_page.close()

            if not await self._profile_visible():
                raise AuthenticationError(
                    "GitHub authentication verification failed. Please ensure you are signed in to GitHub."
                )
            logger.info("GitHub authentication verified successfully")

        if not self.debug and not self._headless:
            await self.switch_to_headless()

    async def _relaunch(self, headless: bool) -> None:
        context = self._require_context()
        state = await context.storage_state()
        await context.close()
        if self._browser is not None:
            await self._browser.close()
        await self._launch(headless, storage_state=state)

    async def switch_to_headless(self) -> None:
        """Restart the browser headless, carrying cookies and storage over."""
        if self._headless or not self.is_started:
            return
        print("   Switching to background mode for automated configuration...")
        await self._relaunch(headless=True)
        logger.info("Switched to headless mode for automated processing")

    @asynccontextmanager
    async def page(self) -> AsyncIterator[PlaywrightPageDriver]:
        """Open a page for one repository pipeline; closed on exit."""
        driver = PlaywrightPageDriver(await self._require_context().new_page())
        try:
            yield driver
        finally:
            if not self.debug:
                await driver.close()

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        self._authenticated = False
        logger.info("Browser automation cleaned up")
