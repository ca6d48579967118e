"""Configuration file loading.

Reads the three input files of a run:
1. Repository selection (YAML): which repositories to configure
2. MCP configuration (JSON or YAML): {"mcpServers": {...}}
3. Secrets/variables (YAML, optional): values may reference the environment
   as "{{ env.NAME }}", resolved once here

Every problem is raised as ConfigurationError before any repository is touched.
"""

import json
import os
import re
import string
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from copilot_bulk_config.app import config
from copilot_bulk_config.app.errors import ConfigurationError
from copilot_bulk_config.app.models.mcp import MCPConfiguration
from copilot_bulk_config.app.models.repository import RepoSelection
from copilot_bulk_config.app.models.secrets import SecretsAndVariables
from copilot_bulk_config.app.services.logging_service import get_logger

logger = get_logger(__name__)

ENV_REFERENCE = re.compile(r"\{\{\s*env\.(\w+)\s*\}\}")

# Placeholders an endpoint URL template may use
ENDPOINT_FIELDS = frozenset({"api", "owner", "repo"})


def _read_text(path: Path, label: str) -> str:
    if not path.exists():
        raise ConfigurationError(f"{label} file not found: {path}")
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Failed to read {label} file {path}: {e}") from e


def _load_yaml(path: Path, label: str) -> Any:
    try:
        return yaml.safe_load(_read_text(path, label))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse {label} file {path}: {e}") from e


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "<root>"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def load_repo_selection(path: str | Path) -> RepoSelection:
    """Load and validate the repository selection file."""
    path = Path(path)
    data = _load_yaml(path, "repository config")
    if not isinstance(data, dict):
        raise ConfigurationError(f"Repository config {path} must be a mapping")
    try:
        return RepoSelection.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid repository config {path}: {_format_validation_error(e)}") from e


def parse_mcp_document(text: str, suffix: str = "") -> Any:
    """Decode an MCP config document by extension, auto-detecting otherwise.

    JSON is tried first when the extension says nothing, since that is the
    format MCP-aware tools write.
    """
    suffix = suffix.lower()
    if suffix == ".json":
        return json.loads(text)
    if suffix in (".yaml", ".yml"):
        return yaml.safe_load(text)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return yaml.safe_load(text)


def validate_mcp_document(data: Any, source: str) -> MCPConfiguration:
    """Validate a decoded MCP config document."""
    if not isinstance(data, dict):
        raise ConfigurationError(f"MCP config {source} must be an object")
    if "mcpServers" not in data:
        raise ConfigurationError(f'MCP config {source} must have an "mcpServers" object property')
    extra_keys = sorted(k for k in data if k != "mcpServers")
    if extra_keys:
        raise ConfigurationError(
            f'MCP config {source} must have exactly one top-level key "mcpServers" (found also: {", ".join(extra_keys)})'
        )
    if not isinstance(data["mcpServers"], dict):
        raise ConfigurationError(f'MCP config {source} "mcpServers" must be an object')
    try:
        return MCPConfiguration.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid MCP config {source}: {_format_validation_error(e)}") from e


def load_mcp_config(path: str | Path) -> MCPConfiguration:
    """Load and validate the MCP configuration file."""
    path = Path(path)
    text = _read_text(path, "MCP config")
    try:
        data = parse_mcp_document(text, path.suffix)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to parse MCP config {path}: {e}") from e

    mcp_config = validate_mcp_document(data, str(path))
    for name, server in mcp_config.servers.items():
        logger.debug(f"Loaded MCP server: {name} (type={server.type})")
    return mcp_config


def resolve_environment_references(value: str, environ: dict[str, str] | None = None) -> str:
    """Replace {{ env.NAME }} with the environment value.

    Unset variables become an empty string with a warning.
    """
    environ = os.environ if environ is None else environ

    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        if name not in environ:
            logger.warning(f"Environment variable {name} is not set, using empty string")
            return ""
        return environ[name]

    return ENV_REFERENCE.sub(_substitute, value)


def load_secrets(path: str | Path, environ: dict[str, str] | None = None) -> SecretsAndVariables:
    """Load the secrets/variables file and resolve environment references."""
    path = Path(path)
    data = _load_yaml(path, "secrets config")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Secrets config {path} must be a mapping")
    for key in ("secrets", "variables"):
        if data.get(key) is not None and not isinstance(data[key], dict):
            raise ConfigurationError(f'Secrets config "{key}" must be an object')
    try:
        loaded = SecretsAndVariables.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid secrets config {path}: {_format_validation_error(e)}") from e

    return SecretsAndVariables(
        secrets={k: resolve_environment_references(v, environ) for k, v in loaded.secrets.items()},
        variables={k: resolve_environment_references(v, environ) for k, v in loaded.variables.items()},
    )


def _check_endpoint_template(template: str, path: Path) -> None:
    try:
        fields = {field for _, field, _, _ in string.Formatter().parse(template) if field is not None}
    except ValueError as e:
        raise ConfigurationError(f"Malformed API endpoint template '{template}' in {path}: {e}")
    unknown = sorted(fields - ENDPOINT_FIELDS)
    if unknown:
        raise ConfigurationError(
            f"API endpoint template '{template}' in {path} uses unknown placeholder(s) "
            f"{', '.join(unknown)} (allowed: {', '.join(sorted(ENDPOINT_FIELDS))})"
        )


def load_endpoint_candidates(path: str | Path | None = None) -> list[tuple[str, str]]:
    """Return the ordered (url template, accept header) candidates for the API channel.

    The file (default: APP_HOME/api-endpoints.yaml, used only if present) may
    hold ``endpoints`` and ``accept_headers`` lists; either falls back to the
    built-in defaults when omitted.
    """
    endpoints = list(config.DEFAULT_API_ENDPOINTS)
    accept_headers = list(config.DEFAULT_API_ACCEPT_HEADERS)

    explicit = path is not None
    path = Path(path) if explicit else config.API_ENDPOINTS_FILE
    if explicit or path.exists():
        data = _load_yaml(path, "API endpoints")
        if not isinstance(data, dict):
            raise ConfigurationError(f"API endpoints file {path} must be a mapping")
        for key in ("endpoints", "accept_headers"):
            value = data.get(key)
            if value is not None and (not isinstance(value, list) or not all(isinstance(v, str) for v in value)):
                raise ConfigurationError(f'API endpoints file "{key}" must be a list of strings')
        for template in data.get("endpoints") or []:
            _check_endpoint_template(template, path)
        endpoints = data.get("endpoints") or endpoints
        accept_headers = data.get("accept_headers") or accept_headers
        logger.info(f"Loaded {len(endpoints)} API endpoints from {path}")

    return [(endpoint, accept) for endpoint in endpoints for accept in accept_headers]
