"""Run models: merge policy, per-repository results and the run summary."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from copilot_bulk_config.app.models.mcp import MCPConfiguration


class MergePolicy(str, Enum):
    """How a new MCP configuration is combined with the one already present."""
    SKIP_EXISTING = "skip"
    MERGE_KEEP_EXISTING = "merge"
    MERGE_OVERWRITE = "merge-overwrite"
    FORCE_REPLACE = "force-overwrite"


class RepoState(str, Enum):
    """Pipeline state of one repository."""
    PENDING = "pending"
    READING_CONFIG = "reading_config"
    MERGING = "merging"
    NO_CHANGE_NEEDED = "no_change_needed"
    WRITING = "writing"
    APPLYING_SECRETS = "applying_secrets"
    DONE = "done"


class MCPChange(BaseModel):
    """Before/after view of the MCP configuration for one repository."""
    before: MCPConfiguration | None = Field(default=None, description="Configuration read from the repository")
    after: MCPConfiguration = Field(..., description="Merged configuration")
    policy: MergePolicy
    route: str = Field(default="api", description="'api' or 'browser'")
    written: bool = Field(default=False, description="Whether a write was issued")


class OperationResult(BaseModel):
    """Outcome for one repository in one run."""
    repository: str = Field(..., description="owner/name")
    success: bool = False
    mcp: MCPChange | None = None
    secrets_applied: list[str] = Field(default_factory=list)
    variables_applied: list[str] = Field(default_factory=list)
    error: str | None = None
    error_category: str | None = Field(default=None, description="config, permission, transient or fatal")
    state: RepoState = RepoState.PENDING
    attempts: int = 0
    duration_seconds: float = 0.0


class RepositoryFailure(BaseModel):
    repository: str
    error: str
    category: str


class OperationSummary(BaseModel):
    """Aggregate of every repository's result."""
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    writes_performed: int = 0
    excluded_no_admin: int = 0
    errors: list[RepositoryFailure] = Field(default_factory=list)
    duration_seconds: float = 0.0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    dry_run: bool = False

    @classmethod
    def from_results(
        cls,
        results: list[OperationResult],
        duration_seconds: float,
        excluded_no_admin: int = 0,
        dry_run: bool = False,
    ) -> "OperationSummary":
        failed = [r for r in results if not r.success]
        return cls(
            total=len(results),
            succeeded=len(results) - len(failed),
            failed=len(failed),
            writes_performed=sum(1 for r in results if r.mcp is not None and r.mcp.written),
            excluded_no_admin=excluded_no_admin,
            errors=[
                RepositoryFailure(
                    repository=r.repository,
                    error=r.error or "Unknown error",
                    category=r.error_category or "transient",
                )
                for r in failed
            ],
            duration_seconds=duration_seconds,
            dry_run=dry_run,
        )
