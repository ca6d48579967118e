"""Repository discovery.

Turns a RepoSelection into the concrete repositories to configure:

- explicit list: each entry is resolved with one ``get_repository`` call;
  entries that fail to resolve are logged and dropped (authentication
  failures still abort the run). Repeated entries collapse onto their
  first appearance.
- all accessible: one ``list_repositories`` call (owner-only applied by the
  client), then in-memory filters in this order: topics (any match),
  exclusions, name patterns.

Repositories without admin access are removed in both cases and counted.
"""

from dataclasses import dataclass, field
from fnmatch import fnmatchcase

from copilot_bulk_config.app.errors import AuthenticationError, BulkConfigError
from copilot_bulk_config.app.models.repository import RepoFilters, RepoSelection, Repository
from copilot_bulk_config.app.services.gh_cli import RepositoryClient
from copilot_bulk_config.app.services.logging_service import get_logger

logger = get_logger(__name__)


@dataclass
class SelectionResult:
    repositories: list[Repository] = field(default_factory=list)
    excluded_no_admin: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)


def apply_filters(repositories: list[Repository], filters: RepoFilters) -> list[Repository]:
    """Apply topic, exclusion and pattern filters (owner-only is server-side)."""
    selected = repositories
    if filters.topics:
        wanted = set(filters.topics)
        selected = [r for r in selected if wanted.intersection(r.topics)]
    if filters.exclude:
        excluded = {e.lower() for e in filters.exclude}
        selected = [r for r in selected if r.full_name.lower() not in excluded]
    if filters.patterns:
        selected = [
            r for r in selected
            if any(fnmatchcase(r.full_name.lower(), p.lower()) for p in filters.patterns)
        ]
    return selected


def _dedupe(entries: list[str]) -> list[str]:
    seen: set[str] = set()
    unique = []
    for entry in entries:
        key = entry.strip().lower()
        if key in seen:
            logger.debug(f"Ignoring repeated repository entry {entry}")
            continue
        seen.add(key)
        unique.append(entry.strip())
    return unique


class RepositorySelector:
    """Resolves a selection file against the repository client."""

    def __init__(self, client: RepositoryClient) -> None:
        self._client = client

    async def _resolve_explicit(self, entries: list[str], result: SelectionResult) -> list[Repository]:
        resolved = []
        for entry in _dedupe(entries):
            try:
                resolved.append(await self._client.get_repository(entry))
            except AuthenticationError:
                raise
            except BulkConfigError as e:
                logger.error(f"Failed to get info for repository {entry}: {e}")
                result.unresolved.append(entry)
        return resolved

    async def select(self, selection: RepoSelection) -> SelectionResult:
        result = SelectionResult()

        if selection.repositories is not None:
            candidates = await self._resolve_explicit(selection.repositories, result)
        else:
            candidates = await self._client.list_repositories(owner_only=selection.filters.owner_only)
            candidates = apply_filters(candidates, selection.filters)

        for repo in candidates:
            if repo.has_admin_access:
                result.repositories.append(repo)
            else:
                logger.warning(f"Skipping {repo.full_name}: no admin access")
                result.excluded_no_admin.append(repo.full_name)

        logger.info(
            f"Selected {len(result.repositories)} repositories "
            f"({len(result.excluded_no_admin)} without admin access, {len(result.unresolved)} unresolved)"
        )
        return result
