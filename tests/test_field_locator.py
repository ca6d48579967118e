"""Tests for the field locator against recorded fixture pages.

Each fixture page is built so that every strategy ahead of the one under
test comes up empty, which also pins down the fixed strategy order.
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakePage
from copilot_bulk_config.app.errors import FieldNotFoundError
from copilot_bulk_config.app.services.field_locator import (
    ContentClassifier,
    FieldLocator,
    SequentialTabStrategy,
    default_strategies,
)

FIELD = '{"mcpServers": {"files": {"type": "local", "command": "npx", "tools": []}}}'


def _links(count: int, prefix: str = "Link") -> list[str]:
    return [f"{prefix} {i}" for i in range(count)]


class TestContentClassifier:
    @pytest.mark.parametrize("text, previous, expected", [
        ('{"mcpServers": {}}', "", True),
        ('"command": "npx",', "", True),
        ('{"servers": 1}', "", True),
        ("[1, 2]", "", False),
        ("{", "", False),
        ("Save", "", False),
        ("", "MCP configuration", True),
        ("   ", "JSON editor", True),
        ("", "Repository name", False),
        ("", "", False),
    ])
    def test_classify(self, text, previous, expected):
        assert ContentClassifier().classify(text, previous) is expected

    def test_oversized_json_rejected(self):
        classifier = ContentClassifier()
        huge = '{"a": "' + "x" * classifier.MAX_JSON_LENGTH + '"}'
        assert not classifier.is_json_object(huge)


class TestStrategies:
    @pytest.mark.asyncio
    async def test_search_shortcut(self):
        page = FakePage(
            ["Skip to content", "Code", "Learn more", FIELD],
            landmarks={"MCP configuration": 2},
        )
        handle = await FieldLocator().locate(page)
        assert handle.strategy == "search-shortcut"
        assert handle.text == FIELD
        assert "Escape" in page.pressed

    @pytest.mark.asyncio
    async def test_sequential_tab(self):
        page = FakePage(["Home", "Settings", "General", "Copilot", "Coding agent", FIELD])
        handle = await FieldLocator().locate(page)
        assert handle.strategy == "sequential-tab"

    @pytest.mark.asyncio
    async def test_multi_term_search_forward(self):
        page = FakePage(
            _links(30) + [FIELD] + _links(5, "Footer"),
            landmarks={"Model Context Protocol": 29},
        )
        handle = await FieldLocator().locate(page)
        assert handle.strategy == "multi-term-search"
        assert handle.text == FIELD

    @pytest.mark.asyncio
    async def test_multi_term_search_backward(self):
        focusables = _links(35)
        focusables[30] = FIELD
        page = FakePage(focusables, landmarks={"JSON": 32})
        handle = await FieldLocator().locate(page)
        assert handle.strategy == "multi-term-search"
        assert page.index == 30

    @pytest.mark.asyncio
    async def test_alternate_shortcut(self):
        page = FakePage(_links(24) + [FIELD], shortcuts={"Shift+F6": 24})
        handle = await FieldLocator().locate(page)
        assert handle.strategy == "alternate-shortcut"

    @pytest.mark.asyncio
    async def test_scroll_and_tab_finds_labelled_empty_field(self):
        page = FakePage(
            ["Home", "Docs", "Pricing"],
            scroll_reveals=[["Overview", "Policies"], ["MCP configuration", ""]],
        )
        handle = await FieldLocator().locate(page)
        assert handle.strategy == "scroll-and-tab"
        assert handle.is_empty
        assert page.pressed.count("PageDown") == 2

    @pytest.mark.asyncio
    async def test_nothing_found(self):
        page = FakePage(["Home", "Docs"])
        with pytest.raises(FieldNotFoundError, match="search-shortcut"):
            await FieldLocator().locate(page)

    @pytest.mark.asyncio
    async def test_locate_is_time_bounded(self):
        class SlowPage(FakePage):
            async def focus_next(self):
                await asyncio.sleep(10)

        locator = FieldLocator(strategies=[SequentialTabStrategy(5)], timeout=0.05)
        with pytest.raises(FieldNotFoundError, match="timed out"):
            await locator.locate(SlowPage(["Home"]))


class TestLocatorComposition:
    def test_default_order(self):
        assert [s.name for s in default_strategies()] == [
            "search-shortcut",
            "sequential-tab",
            "multi-term-search",
            "alternate-shortcut",
            "scroll-and-tab",
        ]

    def test_only_reorders_and_filters(self):
        locator = FieldLocator().only(["scroll-and-tab", "sequential-tab"])
        assert locator.strategy_names == ["scroll-and-tab", "sequential-tab"]

    def test_only_rejects_unknown_names(self):
        with pytest.raises(ValueError, match="ocr"):
            FieldLocator().only(["ocr"])

    @pytest.mark.asyncio
    async def test_disabled_strategy_is_skipped(self):
        page = FakePage(
            ["Skip to content", "Code", "Learn more", FIELD],
            landmarks={"MCP configuration": 2},
        )
        handle = await FieldLocator().only(["sequential-tab"]).locate(page)
        assert handle.strategy == "sequential-tab"
