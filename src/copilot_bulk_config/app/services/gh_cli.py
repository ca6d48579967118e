"""GitHub CLI wrapper.

Repository listing, secrets, variables and the auth token all go through the
``gh`` executable, which already holds the user's credentials. Commands are
run without a shell; secret values are passed on stdin, never in argv.
"""

import asyncio
import json
import shutil
from typing import Protocol, runtime_checkable

from copilot_bulk_config.app import config
from copilot_bulk_config.app.errors import (
    AuthenticationError,
    GhCliError,
    PermissionDeniedError,
    RepositoryNotFoundError,
)
from copilot_bulk_config.app.models.repository import Repository
from copilot_bulk_config.app.services.logging_service import get_logger

logger = get_logger(__name__)

REPO_VIEW_FIELDS = "name,owner,repositoryTopics,viewerCanAdminister"

AUTH_MARKERS = ("gh auth login", "not logged in", "HTTP 401", "Bad credentials", "authentication required")
NOT_FOUND_MARKERS = ("HTTP 404", "Could not resolve to a Repository", "Not Found")
PERMISSION_MARKERS = ("HTTP 403", "Resource not accessible", "must have admin rights")


@runtime_checkable
class RepositoryClient(Protocol):
    """Authenticated access to repository metadata, secrets and variables."""

    async def list_repositories(self, owner_only: bool = False) -> list[Repository]:
        """List repositories visible to the authenticated user."""
        ...

    async def get_repository(self, full_name: str) -> Repository:
        """Fetch one repository by owner/name."""
        ...

    async def set_secret(self, full_name: str, name: str, value: str) -> None:
        ...

    async def set_variable(self, full_name: str, name: str, value: str) -> None:
        ...

    async def get_token(self) -> str:
        """Return a bearer token for the authenticated user."""
        ...


def classify_gh_error(stderr: str, returncode: int | None, repository: str | None = None) -> Exception:
    """Map gh stderr output onto the error taxonomy."""
    message = stderr.strip() or f"gh exited with status {returncode}"
    if any(marker in stderr for marker in AUTH_MARKERS):
        return AuthenticationError(f"GitHub CLI not authenticated. Run \"gh auth login\" first. ({message})")
    if any(marker in stderr for marker in NOT_FOUND_MARKERS):
        return RepositoryNotFoundError(message, repository)
    if any(marker in stderr for marker in PERMISSION_MARKERS):
        return PermissionDeniedError(message, repository)
    return GhCliError(message, repository, returncode)


def parse_repo_view(data: dict) -> Repository:
    """Build a Repository from ``gh repo view --json`` output."""
    topics = data.get("repositoryTopics") or []
    return Repository(
        owner=data["owner"]["login"],
        name=data["name"],
        has_admin_access=bool(data.get("viewerCanAdminister")),
        topics=tuple(t["name"] if isinstance(t, dict) else str(t) for t in topics),
    )


def parse_rest_repo(data: dict) -> Repository:
    """Build a Repository from a REST ``/user/repos`` item."""
    permissions = data.get("permissions") or {}
    return Repository.from_full_name(
        data["full_name"],
        has_admin_access=bool(permissions.get("admin")),
        topics=tuple(data.get("topics") or ()),
    )


class GitHubCLI:
    """Async wrapper around the gh executable."""

    def __init__(self, executable: str = "gh", timeout: float = config.GH_CALL_TIMEOUT_SECONDS) -> None:
        self._executable = executable
        self._timeout = timeout

    async def _run(self, *args: str, stdin: str | None = None, repository: str | None = None) -> str:
        if shutil.which(self._executable) is None:
            raise AuthenticationError(
                f"GitHub CLI ({self._executable}) not found. Install it from https://cli.github.com/"
            )

        logger.debug(f"Running: {self._executable} {args[0]} {args[1] if len(args) > 1 else ''}")
        process = await asyncio.create_subprocess_exec(
            self._executable,
            *args,
            stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(stdin.encode("utf-8") if stdin is not None else None),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise GhCliError(f"gh {args[0]} timed out after {self._timeout:.0f}s", repository)

        if process.returncode != 0:
            raise classify_gh_error(stderr.decode("utf-8", errors="replace"), process.returncode, repository)
        return stdout.decode("utf-8", errors="replace")

    async def check_authentication(self) -> None:
        await self._run("auth", "status")
        logger.info("GitHub CLI authentication verified")

    async def get_token(self) -> str:
        token = (await self._run("auth", "token")).strip()
        if not token:
            raise AuthenticationError("GitHub CLI returned an empty token. Run \"gh auth login\" first.")
        return token

    async def list_repositories(self, owner_only: bool = False) -> list[Repository]:
        affiliation = "owner" if owner_only else "owner,collaborator,organization_member"
        output = await self._run(
            "api",
            "--paginate",
            f"/user/repos?per_page=100&affiliation={affiliation}",
            "--jq",
            ".[]",
        )
        repositories = []
        for line in output.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                repositories.append(parse_rest_repo(json.loads(line)))
            except (json.JSONDecodeError, KeyError) as e:
                raise GhCliError(f"Unexpected gh api output: {e}") from e
        logger.info(f"Listed {len(repositories)} accessible repositories")
        return repositories

    async def get_repository(self, full_name: str) -> Repository:
        output = await self._run("repo", "view", full_name, "--json", REPO_VIEW_FIELDS, repository=full_name)
        try:
            return parse_repo_view(json.loads(output))
        except (json.JSONDecodeError, KeyError) as e:
            raise GhCliError(f"Unexpected gh repo view output for {full_name}: {e}", full_name) from e

    async def set_secret(self, full_name: str, name: str, value: str) -> None:
        await self._run("secret", "set", name, "--repo", full_name, stdin=value, repository=full_name)
        logger.info(f"Set secret {name}")

    async def set_variable(self, full_name: str, name: str, value: str) -> None:
        await self._run("variable", "set", name, "--repo", full_name, "--body", value, repository=full_name)
        logger.info(f"Set variable {name}")
