"""Heuristic location of the MCP configuration field on the settings page.

The coding agent settings page offers no stable selector for the MCP
configuration editor, so the field is found by moving keyboard focus and
inspecting whatever is focused. Strategies run in a fixed order; the first
one that lands on a region the content classifier accepts wins.

This is best-effort pattern matching over a page we do not control. The
classifier accepts:

- text containing a structural token of the configuration format
  (``mcpServers``, ``"type"``, ``"command"``, ``"url"``, ``"tools"``)
- text that parses as a JSON object of plausible size
- empty text whose preceding focusable element carries a label keyword
  (weakest signal: an empty editor right after its label)

Strategies only talk to the page through ``PageDriver``, so each one can be
tested against a fixture page.
"""

import asyncio
import json
from dataclasses import dataclass

from copilot_bulk_config.app import config
from copilot_bulk_config.app.errors import FieldNotFoundError
from copilot_bulk_config.app.services.browser_session import PageDriver
from copilot_bulk_config.app.services.logging_service import get_logger

logger = get_logger(__name__)

PRIMARY_SEARCH_TERM = "MCP configuration"

# Ranked label strings for the multi-term search
SEARCH_TERMS = [
    "MCP configuration",
    "mcpServers",
    "Model Context Protocol",
    "MCP servers",
    "JSON",
]

# Generic "move to next region" shortcuts
REGION_SHORTCUTS = ["F6", "Shift+F6", "Control+F6"]


class ContentClassifier:
    """Decides whether focused text looks like the MCP configuration field."""

    STRUCTURAL_TOKENS = ("mcpServers", '"type"', '"command"', '"url"', '"tools"')
    LABEL_KEYWORDS = ("mcp", "configuration", "json")
    MIN_JSON_LENGTH = 2
    MAX_JSON_LENGTH = 100_000

    def has_structural_token(self, text: str) -> bool:
        return any(token in text for token in self.STRUCTURAL_TOKENS)

    def is_json_object(self, text: str) -> bool:
        stripped = text.strip()
        if not (self.MIN_JSON_LENGTH <= len(stripped) <= self.MAX_JSON_LENGTH):
            return False
        if not stripped.startswith("{"):
            return False
        try:
            return isinstance(json.loads(stripped), dict)
        except json.JSONDecodeError:
            return False

    def is_labelled_empty(self, text: str, previous_text: str) -> bool:
        if text.strip():
            return False
        previous = previous_text.lower()
        return any(keyword in previous for keyword in self.LABEL_KEYWORDS)

    def classify(self, text: str, previous_text: str = "") -> bool:
        return (
            self.has_structural_token(text)
            or self.is_json_object(text)
            or self.is_labelled_empty(text, previous_text)
        )


@dataclass(frozen=True)
class FieldHandle:
    """The located field: focus is on it when the locator returns."""

    strategy: str
    text: str

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


class LocatorStrategy:
    """One way of steering focus onto the configuration field."""

    name = "strategy"

    async def attempt(self, page: PageDriver, classifier: ContentClassifier) -> FieldHandle | None:
        raise NotImplementedError

    async def check_focus(self, page: PageDriver, classifier: ContentClassifier) -> FieldHandle | None:
        text = await page.focused_text()
        previous = "" if text.strip() else await page.previous_focusable_text()
        if classifier.classify(text, previous):
            return FieldHandle(strategy=self.name, text=text)
        return None

    async def step_and_check(
        self,
        page: PageDriver,
        classifier: ContentClassifier,
        steps: int,
        backward: bool = False,
    ) -> FieldHandle | None:
        for _ in range(steps):
            if backward:
                await page.focus_previous()
            else:
                await page.focus_next()
            handle = await self.check_focus(page, classifier)
            if handle:
                return handle
        return None

    async def search_and_step(
        self,
        page: PageDriver,
        classifier: ContentClassifier,
        term: str,
        steps: int,
        backward: bool = False,
    ) -> FieldHandle | None:
        if not await page.find_text(term):
            return None
        await page.press("Escape")
        handle = await self.check_focus(page, classifier)
        if handle:
            return handle
        return await self.step_and_check(page, classifier, steps, backward=backward)


class SearchShortcutStrategy(LocatorStrategy):
    """Search for the field label, then tab a few steps from the hit."""

    name = "search-shortcut"

    def __init__(self, term: str = PRIMARY_SEARCH_TERM, steps: int = config.LOCATOR_SEARCH_STEPS):
        self.term = term
        self.steps = steps

    async def attempt(self, page, classifier):
        return await self.search_and_step(page, classifier, self.term, self.steps)


class SequentialTabStrategy(LocatorStrategy):
    """Tab through the page from the current position."""

    name = "sequential-tab"

    def __init__(self, max_steps: int = config.LOCATOR_MAX_TAB_STEPS):
        self.max_steps = max_steps

    async def attempt(self, page, classifier):
        return await self.step_and_check(page, classifier, self.max_steps)


class MultiTermSearchStrategy(LocatorStrategy):
    """Search each ranked term; step forward, then backward, from every hit."""

    name = "multi-term-search"

    def __init__(self, terms: list[str] | None = None, steps: int = config.LOCATOR_SEARCH_STEPS):
        self.terms = terms if terms is not None else list(SEARCH_TERMS)
        self.steps = steps

    async def attempt(self, page, classifier):
        for term in self.terms:
            for backward in (False, True):
                handle = await self.search_and_step(page, classifier, term, self.steps, backward=backward)
                if handle:
                    return handle
        return None


class AlternateShortcutStrategy(LocatorStrategy):
    """Cycle focus regions with generic shortcuts."""

    name = "alternate-shortcut"

    def __init__(self, shortcuts: list[str] | None = None):
        self.shortcuts = shortcuts if shortcuts is not None else list(REGION_SHORTCUTS)

    async def attempt(self, page, classifier):
        for keys in self.shortcuts:
            await page.press(keys)
            handle = await self.check_focus(page, classifier)
            if handle:
                return handle
        return None


class ScrollAndTabStrategy(LocatorStrategy):
    """Scroll a page down at a time and tab a few steps after each scroll."""

    name = "scroll-and-tab"

    def __init__(
        self,
        iterations: int = config.LOCATOR_SCROLL_ITERATIONS,
        steps: int = config.LOCATOR_SCROLL_TAB_STEPS,
        settle_ms: int = 500,
    ):
        self.iterations = iterations
        self.steps = steps
        self.settle_ms = settle_ms

    async def attempt(self, page, classifier):
        for _ in range(self.iterations):
            await page.press("PageDown")
            await page.wait(self.settle_ms)
            handle = await self.step_and_check(page, classifier, self.steps)
            if handle:
                return handle
        return None


def default_strategies() -> list[LocatorStrategy]:
    return [
        SearchShortcutStrategy(),
        SequentialTabStrategy(),
        MultiTermSearchStrategy(),
        AlternateShortcutStrategy(),
        ScrollAndTabStrategy(),
    ]


class FieldLocator:
    """Runs strategies in order until one finds the configuration field."""

    def __init__(
        self,
        strategies: list[LocatorStrategy] | None = None,
        classifier: ContentClassifier | None = None,
        timeout: float = config.FIELD_LOCATE_TIMEOUT_SECONDS,
    ):
        self.strategies = strategies if strategies is not None else default_strategies()
        self.classifier = classifier or ContentClassifier()
        self.timeout = timeout

    @property
    def strategy_names(self) -> list[str]:
        return [s.name for s in self.strategies]

    def only(self, names: list[str]) -> "FieldLocator":
        """Locator using just the named strategies, in the given order."""
        by_name = {s.name: s for s in self.strategies}
        unknown = [n for n in names if n not in by_name]
        if unknown:
            raise ValueError(f"Unknown locator strategies: {', '.join(unknown)}")
        return FieldLocator([by_name[n] for n in names], self.classifier, self.timeout)

    async def _run(self, page: PageDriver) -> FieldHandle:
        for strategy in self.strategies:
            logger.debug(f"Trying locator strategy: {strategy.name}")
            handle = await strategy.attempt(page, self.classifier)
            if handle:
                logger.info(f"Found MCP configuration field via {strategy.name}")
                return handle
        raise FieldNotFoundError(
            f"Could not locate MCP configuration field (tried: {', '.join(self.strategy_names)})"
        )

    async def locate(self, page: PageDriver) -> FieldHandle:
        try:
            return await asyncio.wait_for(self._run(page), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise FieldNotFoundError(f"Locating the MCP configuration field timed out after {self.timeout:.0f}s")
