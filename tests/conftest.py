from __future__ import annotations

import json
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import pytest


# Ensure src/ is on sys.path so `import copilot_bulk_config` works without installation.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from copilot_bulk_config.app import config  # noqa: E402
from copilot_bulk_config.app.errors import AuthenticationError, RepositoryNotFoundError  # noqa: E402
from copilot_bulk_config.app.models.repository import Repository  # noqa: E402


@pytest.fixture(autouse=True)
def app_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    # Keep tests hermetic: logs, debug captures and endpoint overrides go to tmp.
    home = tmp_path / "bulk-config-home"
    monkeypatch.setattr(config, "APP_HOME", home)
    monkeypatch.setattr(config, "LOGS_DIR", home / "logs")
    monkeypatch.setattr(config, "REPO_LOGS_DIR", home / "logs" / "repos")
    monkeypatch.setattr(config, "DEBUG_DIR", home / "debug")
    monkeypatch.setattr(config, "API_ENDPOINTS_FILE", home / "api-endpoints.yaml")
    return home


# ── fakes ────────────────────────────────────────────────────────────────

class FakeRepositoryClient:
    """In-memory RepositoryClient recording every call."""

    def __init__(self, repositories: list[Repository] | None = None, token: str = "gho_test"):
        self.repositories = {r.full_name: r for r in repositories or []}
        self.token = token
        self.calls: list[tuple] = []
        self.secrets: dict[str, dict[str, str]] = {}
        self.variables: dict[str, dict[str, str]] = {}
        self.fail_secret_for: dict[str, Exception] = {}

    async def list_repositories(self, owner_only: bool = False) -> list[Repository]:
        self.calls.append(("list_repositories", owner_only))
        return list(self.repositories.values())

    async def get_repository(self, full_name: str) -> Repository:
        self.calls.append(("get_repository", full_name))
        if full_name not in self.repositories:
            raise RepositoryNotFoundError(f"Could not resolve to a Repository: {full_name}", full_name)
        return self.repositories[full_name]

    async def set_secret(self, full_name: str, name: str, value: str) -> None:
        self.calls.append(("set_secret", full_name, name))
        if full_name in self.fail_secret_for:
            raise self.fail_secret_for[full_name]
        self.secrets.setdefault(full_name, {})[name] = value

    async def set_variable(self, full_name: str, name: str, value: str) -> None:
        self.calls.append(("set_variable", full_name, name))
        self.variables.setdefault(full_name, {})[name] = value

    async def get_token(self) -> str:
        self.calls.append(("get_token",))
        if not self.token:
            raise AuthenticationError("not logged in")
        return self.token


def make_repo(full_name: str, admin: bool = True, topics: tuple[str, ...] = ()) -> Repository:
    return Repository.from_full_name(full_name, has_admin_access=admin, topics=topics)


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def write_text(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class FakePage:
    """Recorded-page stand-in for PageDriver.

    ``focusables`` are the texts of the page's focusable regions in tab
    order. ``landmarks`` map a search term to the position of the first
    focusable after the text hit. ``shortcuts`` map a key combination to the
    region it focuses. Each PageDown appends the next ``scroll_reveals``
    batch (lazy-loaded content) and puts the caret before it.
    """

    def __init__(
        self,
        focusables: list[str],
        landmarks: dict[str, int] | None = None,
        shortcuts: dict[str, int] | None = None,
        scroll_reveals: list[list[str]] | None = None,
        buttons: tuple[str, ...] = (),
        visible_texts: tuple[str, ...] = (),
        status: int | None = 200,
        redirect_url: str | None = None,
        error_banner: str | None = None,
    ):
        self.values = list(focusables)
        self.landmarks = landmarks or {}
        self.shortcuts = shortcuts or {}
        self.scroll_reveals = [list(batch) for batch in scroll_reveals or []]
        self.buttons = buttons
        self.visible_texts = visible_texts
        self.status = status
        self.redirect_url = redirect_url
        self.error_banner = error_banner

        self.index: int | None = -1
        self.caret: int | None = None
        self.selected_all = False
        self.url = ""
        self.navigations: list[str] = []
        self.pressed: list[str] = []
        self.typed: list[str] = []
        self.clicked: list[str] = []
        self.captures: list[str] = []

    # navigation

    async def navigate(self, url: str) -> int | None:
        self.navigations.append(url)
        self.url = self.redirect_url or url
        self.index, self.caret, self.selected_all = -1, None, False
        return self.status

    def current_url(self) -> str:
        return self.url

    # focus

    async def focused_text(self) -> str:
        if self.index is None or self.index < 0:
            return ""
        return self.values[self.index]

    async def previous_focusable_text(self) -> str:
        if self.index is None or self.index <= 0:
            return ""
        return self.values[self.index - 1]

    async def find_text(self, term: str) -> bool:
        if term not in self.landmarks:
            return False
        self.index, self.caret = None, self.landmarks[term]
        return True

    async def focus_next(self) -> None:
        position = self.caret if self.index is None else self.index + 1
        self.index = position if position < len(self.values) else -1
        self.caret = None
        self.selected_all = False

    async def focus_previous(self) -> None:
        position = self.caret - 1 if self.index is None else self.index - 1
        self.index = position if position >= -1 else len(self.values) - 1
        self.caret = None
        self.selected_all = False

    async def press(self, keys: str) -> None:
        self.pressed.append(keys)
        if keys in self.shortcuts:
            self.index, self.caret = self.shortcuts[keys], None
        elif keys == "PageDown" and self.scroll_reveals:
            self.index, self.caret = None, len(self.values)
            self.values.extend(self.scroll_reveals.pop(0))
        elif keys == "ControlOrMeta+a":
            self.selected_all = True

    async def type_text(self, text: str) -> None:
        self.typed.append(text)
        if self.index is None or self.index < 0:
            return
        if self.selected_all:
            self.values[self.index] = text
        else:
            self.values[self.index] += text
        self.selected_all = False

    async def wait(self, ms: int) -> None:
        return None

    # page content

    async def has_text(self, phrase: str) -> bool:
        return any(phrase in text for text in self.visible_texts)

    async def click_button(self, label: str) -> bool:
        if label not in self.buttons:
            return False
        self.clicked.append(label)
        return True

    async def error_banner_text(self) -> str | None:
        return self.error_banner

    async def capture(self, prefix: str) -> None:
        self.captures.append(prefix)


class FakeSession:
    """BrowserSession stand-in handing out one FakePage."""

    def __init__(self, page: FakePage, debug: bool = False):
        self.debug = debug
        self.fake_page = page
        self.authenticated = True
        self.ensure_calls = 0

    async def ensure_authenticated(self) -> None:
        self.ensure_calls += 1
        self.authenticated = True

    def mark_unauthenticated(self) -> None:
        self.authenticated = False

    @asynccontextmanager
    async def page(self):
        yield self.fake_page
