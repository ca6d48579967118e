"""Configuration and constants."""

import os
from pathlib import Path

# Base storage directory (logs, debug captures, endpoint overrides)
APP_HOME = Path(os.environ.get("COPILOT_BULK_CONFIG_HOME", Path.home() / ".copilot-bulk-config"))

# Sub-directories
LOGS_DIR = APP_HOME / "logs"
REPO_LOGS_DIR = LOGS_DIR / "repos"
DEBUG_DIR = APP_HOME / "debug"

# Optional override for the speculative MCP API endpoints
API_ENDPOINTS_FILE = APP_HOME / "api-endpoints.yaml"

# GitHub locations
GITHUB_WEB_URL = os.environ.get("COPILOT_BULK_CONFIG_WEB_URL", "https://github.com")
GITHUB_API_URL = os.environ.get("COPILOT_BULK_CONFIG_API_URL", "https://api.github.com")
GITHUB_API_VERSION = "2022-11-28"
SETTINGS_PAGE_PATH = "/{owner}/{repo}/settings/copilot/coding_agent"
LOGIN_URL = f"{GITHUB_WEB_URL}/login"
PROFILE_SETTINGS_URL = f"{GITHUB_WEB_URL}/settings/profile"
USER_AGENT = "copilot-bulk-config"

# Processing defaults
DEFAULT_CONCURRENCY = 3
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 2.0

# Timeouts
NAVIGATION_TIMEOUT_MS = 30_000
FIELD_INTERACTION_TIMEOUT_MS = 10_000
FIELD_LOCATE_TIMEOUT_SECONDS = 120.0
REPO_WORKFLOW_TIMEOUT_SECONDS = 600.0
GH_CALL_TIMEOUT_SECONDS = 60.0
HTTP_REQUEST_TIMEOUT_SECONDS = 15.0

# Settle delays for the settings page (milliseconds)
PAGE_SETTLE_MS = 2_000
SAVE_SETTLE_MS = 3_000

# Field locator bounds
LOCATOR_MAX_TAB_STEPS = int(os.environ.get("COPILOT_BULK_CONFIG_MAX_TAB_STEPS", "20"))
LOCATOR_SEARCH_STEPS = 3
LOCATOR_SCROLL_ITERATIONS = 8
LOCATOR_SCROLL_TAB_STEPS = 5

# Speculative MCP endpoints: no documented API exists, so these are tried
# in order (cross product with the accept headers) before falling back to
# browser automation.
DEFAULT_API_ENDPOINTS = [
    "{api}/repos/{owner}/{repo}/copilot/mcp",
    "{api}/repos/{owner}/{repo}/copilot/servers",
    "{api}/repos/{owner}/{repo}/copilot/configuration",
    "{api}/repos/{owner}/{repo}/settings/copilot",
    "{api}/repos/{owner}/{repo}/settings/copilot/mcp",
    "{api}/repos/{owner}/{repo}/settings/copilot/coding-agent",
    "{api}/repos/{owner}/{repo}/settings/copilot/coding_agent",
]

DEFAULT_API_ACCEPT_HEADERS = [
    "application/vnd.github+json",
    "application/vnd.github.v3+json",
    "application/vnd.github.preview+json",
    "application/vnd.github.copilot-preview+json",
]

API_WRITE_METHODS = ("PUT", "PATCH", "POST")


def ensure_directories() -> None:
    """Create required directories if they don't exist."""
    for directory in [APP_HOME, LOGS_DIR, REPO_LOGS_DIR, DEBUG_DIR]:
        directory.mkdir(parents=True, exist_ok=True)
