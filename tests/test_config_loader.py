"""Tests for loading the repository, MCP, secrets and endpoint files."""

from __future__ import annotations

import logging

import pytest

from conftest import write_json, write_text
from copilot_bulk_config.app.errors import ConfigurationError
from copilot_bulk_config.app.models.mcp import HttpServer, LocalServer
from copilot_bulk_config.app.services import config_loader
from copilot_bulk_config.app.services.config_loader import (
    load_endpoint_candidates,
    load_mcp_config,
    load_repo_selection,
    load_secrets,
    resolve_environment_references,
)


# ── helpers ──────────────────────────────────────────────────────────────

def _write_mcp_config(path, servers: dict):
    """Write an MCP config file with the given mcpServers dict."""
    return write_json(path, {"mcpServers": servers})


# ── tests ────────────────────────────────────────────────────────────────

class TestMCPConfigLoading:
    def test_local_and_http_servers(self, tmp_path):
        path = _write_mcp_config(tmp_path / "mcp.json", {
            "github": {"type": "http", "url": "https://api.example/mcp", "tools": ["*"], "headers": {"X-Key": "k"}},
            "files": {"type": "local", "command": "npx", "args": ["-y", "fs-mcp"], "tools": []},
        })
        loaded = load_mcp_config(path)
        assert isinstance(loaded.servers["github"], HttpServer)
        assert isinstance(loaded.servers["files"], LocalServer)
        assert loaded.servers["files"].args == ["-y", "fs-mcp"]

    def test_http_server_without_url_rejected(self, tmp_path):
        path = _write_mcp_config(tmp_path / "mcp.json", {
            "github": {"type": "http", "tools": ["t1"]},
        })
        with pytest.raises(ConfigurationError, match="url"):
            load_mcp_config(path)

    def test_local_server_without_command_rejected(self, tmp_path):
        path = _write_mcp_config(tmp_path / "mcp.json", {"files": {"type": "local", "tools": []}})
        with pytest.raises(ConfigurationError, match="command"):
            load_mcp_config(path)

    def test_missing_tools_rejected(self, tmp_path):
        path = _write_mcp_config(tmp_path / "mcp.json", {"files": {"type": "local", "command": "npx"}})
        with pytest.raises(ConfigurationError, match="tools"):
            load_mcp_config(path)

    def test_unknown_server_type_rejected(self, tmp_path):
        path = _write_mcp_config(tmp_path / "mcp.json", {"x": {"type": "sse", "url": "https://x", "tools": []}})
        with pytest.raises(ConfigurationError):
            load_mcp_config(path)

    def test_extra_top_level_key_rejected(self, tmp_path):
        path = write_json(tmp_path / "mcp.json", {"mcpServers": {}, "inputs": []})
        with pytest.raises(ConfigurationError, match="exactly one top-level key"):
            load_mcp_config(path)

    def test_missing_top_level_key_rejected(self, tmp_path):
        path = write_json(tmp_path / "mcp.json", {"servers": {}})
        with pytest.raises(ConfigurationError, match="mcpServers"):
            load_mcp_config(path)

    def test_yaml_mcp_config(self, tmp_path):
        path = write_text(tmp_path / "mcp.yaml", (
            "mcpServers:\n"
            "  files:\n"
            "    type: local\n"
            "    command: npx\n"
            "    tools: ['*']\n"
        ))
        assert load_mcp_config(path).server_names() == ["files"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_mcp_config(tmp_path / "nope.json")

    def test_wire_shape_round_trips(self, tmp_path):
        servers = {"github": {"type": "http", "url": "https://x", "tools": ["t1"]}}
        path = _write_mcp_config(tmp_path / "mcp.json", servers)
        assert load_mcp_config(path).to_wire() == {"mcpServers": servers}


class TestRepoSelectionLoading:
    def test_explicit_list(self, tmp_path):
        path = write_text(tmp_path / "repos.yaml", "repositories:\n  - me/one\n  - me/two\n")
        selection = load_repo_selection(path)
        assert selection.repositories == ["me/one", "me/two"]
        assert not selection.all_accessible_repos

    def test_all_accessible_with_filters_and_options(self, tmp_path):
        path = write_text(tmp_path / "repos.yaml", (
            "all_accessible_repos: true\n"
            "filters:\n"
            "  owner_only: true\n"
            "  topics: [copilot]\n"
            "  exclude: [me/old]\n"
            "options:\n"
            "  concurrency: 5\n"
        ))
        selection = load_repo_selection(path)
        assert selection.filters.owner_only
        assert selection.filters.topics == ["copilot"]
        assert selection.options.concurrency == 5

    def test_neither_source_rejected(self, tmp_path):
        path = write_text(tmp_path / "repos.yaml", "filters:\n  owner_only: true\n")
        with pytest.raises(ConfigurationError, match="either"):
            load_repo_selection(path)

    def test_both_sources_rejected(self, tmp_path):
        path = write_text(tmp_path / "repos.yaml", "repositories: [me/one]\nall_accessible_repos: true\n")
        with pytest.raises(ConfigurationError, match="both"):
            load_repo_selection(path)

    def test_malformed_entry_rejected(self, tmp_path):
        path = write_text(tmp_path / "repos.yaml", "repositories: [justaname]\n")
        with pytest.raises(ConfigurationError, match="owner/name"):
            load_repo_selection(path)

    def test_invalid_yaml(self, tmp_path):
        path = write_text(tmp_path / "repos.yaml", "repositories: [unclosed\n")
        with pytest.raises(ConfigurationError, match="parse"):
            load_repo_selection(path)


class TestSecretsLoading:
    def test_environment_references_resolved(self, tmp_path):
        path = write_text(tmp_path / "secrets.yaml", (
            "secrets:\n"
            "  API_KEY: '{{ env.TEST_API_KEY }}'\n"
            "variables:\n"
            "  REGION: eu-{{env.TEST_REGION}}\n"
            "  DEBUG: true\n"
            "  TIMEOUT: 30000\n"
        ))
        loaded = load_secrets(path, environ={"TEST_API_KEY": "s3cret", "TEST_REGION": "west"})
        assert loaded.secrets == {"API_KEY": "s3cret"}
        assert loaded.variables == {"REGION": "eu-west", "DEBUG": "true", "TIMEOUT": "30000"}

    def test_unset_reference_becomes_empty_with_warning(self, tmp_path, caplog):
        caplog.set_level(logging.WARNING, logger=config_loader.__name__)
        path = write_text(tmp_path / "secrets.yaml", "secrets:\n  TOKEN: '{{ env.MISSING_VAR }}'\n")
        loaded = load_secrets(path, environ={})
        assert loaded.secrets == {"TOKEN": ""}
        assert "MISSING_VAR" in caplog.text

    def test_empty_file_is_empty(self, tmp_path):
        path = write_text(tmp_path / "secrets.yaml", "")
        assert load_secrets(path).is_empty

    def test_non_mapping_section_rejected(self, tmp_path):
        path = write_text(tmp_path / "secrets.yaml", "secrets: [a, b]\n")
        with pytest.raises(ConfigurationError, match="secrets"):
            load_secrets(path)

    def test_plain_value_untouched(self):
        assert resolve_environment_references("literal", environ={}) == "literal"


class TestEndpointCandidates:
    def test_defaults_are_cross_product(self):
        candidates = load_endpoint_candidates()
        urls = {url for url, _ in candidates}
        accepts = {accept for _, accept in candidates}
        assert len(candidates) == len(urls) * len(accepts)
        assert candidates[0] == ("{api}/repos/{owner}/{repo}/copilot/mcp", "application/vnd.github+json")

    def test_override_file(self, tmp_path):
        path = write_text(tmp_path / "endpoints.yaml", (
            "endpoints:\n"
            "  - '{api}/repos/{owner}/{repo}/copilot/agent/mcp'\n"
            "accept_headers:\n"
            "  - application/json\n"
        ))
        assert load_endpoint_candidates(path) == [
            ("{api}/repos/{owner}/{repo}/copilot/agent/mcp", "application/json"),
        ]

    def test_home_override_picked_up(self, app_home):
        write_text(app_home / "api-endpoints.yaml", "endpoints: ['{api}/x/{owner}/{repo}']\n")
        candidates = load_endpoint_candidates()
        assert {url for url, _ in candidates} == {"{api}/x/{owner}/{repo}"}

    def test_invalid_override_rejected(self, tmp_path):
        path = write_text(tmp_path / "endpoints.yaml", "endpoints: '{api}/single'\n")
        with pytest.raises(ConfigurationError, match="list of strings"):
            load_endpoint_candidates(path)

    def test_unknown_placeholder_rejected(self, tmp_path):
        path = write_text(tmp_path / "endpoints.yaml", "endpoints: ['{api}/repos/{repository}/copilot/mcp']\n")
        with pytest.raises(ConfigurationError, match="repository"):
            load_endpoint_candidates(path)

    def test_malformed_template_rejected(self, tmp_path):
        path = write_text(tmp_path / "endpoints.yaml", "endpoints: ['{api}/repos/{owner/{repo}']\n")
        with pytest.raises(ConfigurationError, match="Malformed"):
            load_endpoint_candidates(path)
