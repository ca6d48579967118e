"""Repository selection models.

A selection file names its targets either explicitly or as "all accessible
repositories" narrowed by filters:

    all_accessible_repos: true
    filters:
      owner_only: true
      topics: [copilot-enabled]
      exclude: [me/archived]
      patterns: ["me/*-service"]
    options:
      concurrency: 3
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Repository(BaseModel):
    """A repository resolved at discovery time. Immutable for the run."""

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., description="Owner login")
    name: str = Field(..., description="Repository name")
    has_admin_access: bool = Field(default=False, description="Whether the caller can administer settings")
    topics: tuple[str, ...] = Field(default=(), description="Topic labels")

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_full_name(cls, full_name: str, **kwargs) -> "Repository":
        owner, _, name = full_name.partition("/")
        return cls(owner=owner, name=name, **kwargs)


class RepoFilters(BaseModel):
    """Filters applied to the "all accessible" candidate set."""
    owner_only: bool = Field(default=False, description="Only repositories owned by the user")
    topics: list[str] = Field(default_factory=list, description="Keep repositories having any of these topics")
    exclude: list[str] = Field(default_factory=list, description="owner/name entries to drop")
    patterns: list[str] = Field(default_factory=list, description="Shell-style globs matched against owner/name")


class ProcessingOptions(BaseModel):
    """Processing hints; explicit CLI flags take precedence."""
    concurrency: int | None = Field(default=None, ge=1)
    verbose: bool | None = None
    max_attempts: int | None = Field(default=None, ge=1)


class RepoSelection(BaseModel):
    """Contents of the repository selection file."""

    repositories: list[str] | None = None
    all_accessible_repos: bool = False
    filters: RepoFilters = Field(default_factory=RepoFilters)
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)

    @model_validator(mode="after")
    def _exactly_one_source(self) -> "RepoSelection":
        if self.repositories is None and not self.all_accessible_repos:
            raise ValueError('must specify either "repositories" or "all_accessible_repos"')
        if self.repositories is not None and self.all_accessible_repos:
            raise ValueError('cannot specify both "repositories" and "all_accessible_repos"')
        for entry in self.repositories or []:
            owner, sep, name = entry.partition("/")
            if not sep or not owner or not name or "/" in name:
                raise ValueError(f'repository "{entry}" must be in "owner/name" form')
        return self
