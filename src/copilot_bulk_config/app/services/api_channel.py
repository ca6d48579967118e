"""API-first MCP settings channel.

GitHub documents no endpoint for the coding agent MCP configuration, so this
channel negotiates one: it walks a ranked list of (URL, Accept header)
candidates and adopts the first that answers with a payload decoding to a
valid MCPConfiguration. The adopted candidate and envelope shape are tried
first for the following writes.

404 and 403 responses only move on to the next candidate. When every
candidate is exhausted the channel raises ChannelUnavailableError and the
caller decides whether to fall back to browser automation.
"""

import json
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from copilot_bulk_config.app import config
from copilot_bulk_config.app.errors import ChannelUnavailableError
from copilot_bulk_config.app.models.mcp import MCPConfiguration
from copilot_bulk_config.app.models.repository import Repository
from copilot_bulk_config.app.services.logging_service import get_logger

logger = get_logger(__name__)

# Envelope keys tried in order; None means the payload is the config itself
ENVELOPES: tuple[str | None, ...] = (None, "servers", "mcp", "configuration")

SUCCESS_STATUSES = (200, 201, 204)


@dataclass(frozen=True)
class EndpointCandidate:
    url_template: str
    accept: str

    def url_for(self, repo: Repository) -> str:
        return self.url_template.format(api=config.GITHUB_API_URL, owner=repo.owner, repo=repo.name)


def decode_envelope(data: object) -> tuple[MCPConfiguration, str | None] | None:
    """Try each known response shape; return the config and the envelope used."""
    if not isinstance(data, dict):
        return None
    for envelope in ENVELOPES:
        if envelope is None:
            candidate = data if "mcpServers" in data else None
        elif envelope == "servers":
            candidate = {"mcpServers": data["servers"]} if "servers" in data else None
        else:
            candidate = data.get(envelope)
        if not isinstance(candidate, dict):
            continue
        try:
            return MCPConfiguration.model_validate(candidate), envelope
        except ValidationError:
            continue
    return None


def encode_envelope(mcp_config: MCPConfiguration, envelope: str | None) -> dict:
    wire = mcp_config.to_wire()
    if envelope is None:
        return wire
    if envelope == "servers":
        return {"servers": wire["mcpServers"]}
    return {envelope: wire}


class ApiSettingsChannel:
    """Reads and writes MCP configuration through speculative REST endpoints."""

    route = "api"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token: str,
        candidates: list[tuple[str, str]],
        write_methods: tuple[str, ...] = config.API_WRITE_METHODS,
    ) -> None:
        self._http = http_client
        self._token = token
        self._candidates = [EndpointCandidate(url, accept) for url, accept in candidates]
        self._write_methods = write_methods
        self._adopted: EndpointCandidate | None = None
        self._adopted_envelope: str | None = None

    def _headers(self, accept: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": accept,
            "X-GitHub-Api-Version": config.GITHUB_API_VERSION,
            "User-Agent": config.USER_AGENT,
        }

    def _ranked(self) -> list[EndpointCandidate]:
        if self._adopted is None:
            return list(self._candidates)
        return [self._adopted] + [c for c in self._candidates if c != self._adopted]

    def _log_rejection(self, method: str, url: str, response: httpx.Response) -> None:
        if response.status_code == 404:
            return
        if response.status_code == 403:
            logger.warning(f"Access denied for {method} {url}: {response.text[:200]}")
        else:
            logger.debug(f"{method} {url} returned {response.status_code}: {response.text[:200]}")

    async def read(self, repo: Repository) -> MCPConfiguration | None:
        for candidate in self._ranked():
            url = candidate.url_for(repo)
            try:
                response = await self._http.get(url, headers=self._headers(candidate.accept))
            except httpx.HTTPError as e:
                logger.debug(f"Error trying endpoint {url}: {e}")
                continue

            if response.status_code == 204:
                logger.info(f"Adopted {url} (no configuration present)")
                self._adopted = candidate
                return None
            if response.status_code != 200:
                self._log_rejection("GET", url, response)
                continue

            try:
                decoded = decode_envelope(response.json())
            except ValueError:
                # Not JSON, or not decodable text at all
                decoded = None
            if decoded is None:
                logger.debug(f"Unrecognized response structure from {url}")
                continue

            mcp_config, envelope = decoded
            if self._adopted != candidate:
                logger.info(f"Adopted MCP endpoint {url} (Accept: {candidate.accept})")
            self._adopted = candidate
            self._adopted_envelope = envelope
            return mcp_config

        raise ChannelUnavailableError(f"No MCP API endpoint answered for {repo.full_name}", repo.full_name)

    async def write(self, repo: Repository, mcp_config: MCPConfiguration) -> None:
        payload = encode_envelope(mcp_config, self._adopted_envelope)
        for candidate in self._ranked():
            url = candidate.url_for(repo)
            headers = {**self._headers(candidate.accept), "Content-Type": "application/json"}
            for method in self._write_methods:
                try:
                    response = await self._http.request(method, url, headers=headers, json=payload)
                except httpx.HTTPError as e:
                    logger.debug(f"Error updating endpoint {method} {url}: {e}")
                    continue
                if response.status_code in SUCCESS_STATUSES:
                    logger.info(f"Updated MCP configuration via {method} {url}")
                    self._adopted = candidate
                    return
                self._log_rejection(method, url, response)
                if response.status_code == 404:
                    # Other methods on a missing resource will 404 too
                    break

        raise ChannelUnavailableError(
            f"Could not find working API endpoint to update MCP configuration for {repo.full_name}",
            repo.full_name,
        )
