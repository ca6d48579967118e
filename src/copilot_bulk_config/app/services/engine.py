"""Configuration engine.

Runs one bulk configuration:

1. load and validate every input file (nothing touched on failure)
2. resolve repositories
3. dry run: print what would be done; apply: process repositories in
   batches of ``concurrency``, each batch fully finished before the next

Per repository the pipeline is strictly sequential:

    pending -> reading_config -> merging -> (no_change_needed | writing)
            -> applying_secrets -> done

Transient failures restart the pipeline from pending after a fixed delay, up
to ``max_attempts``. Permission failures are recorded at once. Authentication
failures abort the whole run once the current batch has finished.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_fixed

from copilot_bulk_config.app import config
from copilot_bulk_config.app.errors import AuthenticationError, BulkConfigError
from copilot_bulk_config.app.models.mcp import MCPConfiguration
from copilot_bulk_config.app.models.operation import (
    MCPChange,
    MergePolicy,
    OperationResult,
    OperationSummary,
    RepoState,
)
from copilot_bulk_config.app.models.repository import RepoSelection, Repository
from copilot_bulk_config.app.models.secrets import SecretsAndVariables
from copilot_bulk_config.app.services import report_service
from copilot_bulk_config.app.services.api_channel import ApiSettingsChannel
from copilot_bulk_config.app.services.browser_session import BrowserSession
from copilot_bulk_config.app.services.config_loader import (
    load_endpoint_candidates,
    load_mcp_config,
    load_repo_selection,
    load_secrets,
)
from copilot_bulk_config.app.services.gh_cli import RepositoryClient
from copilot_bulk_config.app.services.logging_service import get_logger, repository_context, set_console_level
from copilot_bulk_config.app.services.merge_service import merge_configurations, needs_write
from copilot_bulk_config.app.services.repo_selector import RepositorySelector, SelectionResult
from copilot_bulk_config.app.services.settings_channel import ChannelMode, HybridSettingsChannel, SettingsChannel
from copilot_bulk_config.app.services.ui_channel import UISettingsChannel

logger = get_logger(__name__)


def is_retryable(error: BaseException) -> bool:
    """Permission, configuration and authentication failures are final; everything else is retried."""
    if isinstance(error, AuthenticationError):
        return False
    return getattr(error, "retryable", True)


T = TypeVar("T")


@dataclass
class RunOptions:
    """Everything the CLI passes to a run. None means "use the file hint or default"."""
    repos_file: Path
    mcp_config_file: Path
    secrets_file: Path | None = None
    merge_policy: MergePolicy = MergePolicy.SKIP_EXISTING
    dry_run: bool = False
    concurrency: int | None = None
    verbose: bool | None = None
    max_attempts: int | None = None
    retry_delay: float = config.DEFAULT_RETRY_DELAY_SECONDS
    channel_mode: ChannelMode = ChannelMode.HYBRID
    interactive_auth: bool = False
    debug: bool = False
    api_endpoints_file: Path | None = None


@dataclass
class RunInputs:
    selection: RepoSelection
    mcp_config: MCPConfiguration
    secrets: SecretsAndVariables
    endpoints: list[tuple[str, str]]


@dataclass
class _RunContext:
    channel: SettingsChannel
    mcp_config: MCPConfiguration
    secrets: SecretsAndVariables
    policy: MergePolicy
    max_attempts: int
    retry_delay: float


def iter_batches(items: list[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive slices of at most ``size`` items, in order."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def load_inputs(options: RunOptions) -> RunInputs:
    """Load and validate every input file. Raises ConfigurationError."""
    selection = load_repo_selection(options.repos_file)
    mcp_config = load_mcp_config(options.mcp_config_file)
    secrets = load_secrets(options.secrets_file) if options.secrets_file else SecretsAndVariables()
    endpoints = load_endpoint_candidates(options.api_endpoints_file)
    logger.info(
        f"Loaded {len(mcp_config.servers)} MCP servers, {len(secrets.secrets)} secrets, "
        f"{len(secrets.variables)} variables"
    )
    return RunInputs(selection=selection, mcp_config=mcp_config, secrets=secrets, endpoints=endpoints)


class ConfigurationEngine:
    """Applies one MCP configuration, secrets and variables to many repositories.

    ``channel`` replaces the API/browser channel built for apply runs; the
    repository client is always used for discovery, secrets and variables.
    """

    def __init__(self, client: RepositoryClient, channel: SettingsChannel | None = None):
        self._client = client
        self._channel = channel

    async def select_repositories(self, selection: RepoSelection) -> SelectionResult:
        return await RepositorySelector(self._client).select(selection)

    @asynccontextmanager
    async def _open_channel(self, options: RunOptions, inputs: RunInputs) -> AsyncIterator[SettingsChannel]:
        if self._channel is not None:
            yield self._channel
            return

        mode = options.channel_mode
        token = await self._client.get_token()
        session = None
        if mode is not ChannelMode.API_ONLY:
            session = BrowserSession(self._client.get_token, debug=options.debug, interactive=options.interactive_auth)

        async with httpx.AsyncClient(timeout=config.HTTP_REQUEST_TIMEOUT_SECONDS) as http_client:
            api = None
            if mode is not ChannelMode.BROWSER_ONLY:
                api = ApiSettingsChannel(http_client, token, inputs.endpoints)
            ui = UISettingsChannel(session) if session is not None else None
            try:
                if mode is ChannelMode.BROWSER_ONLY:
                    await session.ensure_authenticated()
                yield HybridSettingsChannel(mode, api=api, ui=ui)
            finally:
                if session is not None and session.is_started:
                    await session.close()

    async def configure(self, options: RunOptions) -> OperationSummary:
        started = time.monotonic()
        inputs = load_inputs(options)

        hints = inputs.selection.options
        concurrency = options.concurrency or hints.concurrency or config.DEFAULT_CONCURRENCY
        max_attempts = options.max_attempts or hints.max_attempts or config.DEFAULT_MAX_ATTEMPTS
        if options.verbose or hints.verbose:
            set_console_level(logging.DEBUG)
        policy = options.merge_policy
        logger.info(f"Merge policy: {policy.value}")

        selection = await self.select_repositories(inputs.selection)
        repositories = selection.repositories
        excluded = len(selection.excluded_no_admin)

        if options.dry_run:
            report_service.print_dry_run(repositories, inputs.mcp_config, inputs.secrets, policy)
            return OperationSummary(
                total=len(repositories),
                succeeded=len(repositories),
                excluded_no_admin=excluded,
                duration_seconds=time.monotonic() - started,
                dry_run=True,
            )

        if not repositories:
            logger.warning("No repositories to configure")
            return OperationSummary(excluded_no_admin=excluded, duration_seconds=time.monotonic() - started)

        results: list[OperationResult] = []
        async with self._open_channel(options, inputs) as channel:
            context = _RunContext(
                channel=channel,
                mcp_config=inputs.mcp_config,
                secrets=inputs.secrets,
                policy=policy,
                max_attempts=max_attempts,
                retry_delay=options.retry_delay,
            )
            batches = list(iter_batches(repositories, concurrency))
            for index, batch in enumerate(batches, 1):
                logger.info(f"Processing batch {index}/{len(batches)} ({len(batch)} repositories)")
                results.extend(await self._process_batch(batch, context))

        summary = OperationSummary.from_results(
            results,
            duration_seconds=time.monotonic() - started,
            excluded_no_admin=excluded,
        )
        logger.info(
            f"Run finished: {summary.succeeded}/{summary.total} succeeded, "
            f"{summary.writes_performed} MCP writes, {summary.failed} failed"
        )
        return summary

    async def _process_batch(self, batch: list[Repository], context: _RunContext) -> list[OperationResult]:
        outcomes = await asyncio.gather(
            *(self._process_repository(repo, context) for repo in batch),
            return_exceptions=True,
        )
        for outcome in outcomes:
            # Only run-aborting errors escape a pipeline
            if isinstance(outcome, BaseException):
                raise outcome
        return list(outcomes)

    async def _process_repository(self, repo: Repository, context: _RunContext) -> OperationResult:
        with repository_context(repo.full_name):
            result = OperationResult(repository=repo.full_name)
            started = time.monotonic()
            logger.info("Starting configuration")

            retrying = AsyncRetrying(
                stop=stop_after_attempt(context.max_attempts),
                wait=wait_fixed(context.retry_delay),
                retry=retry_if_exception(is_retryable),
                before_sleep=lambda retry_state: logger.warning(
                    f"Attempt {retry_state.attempt_number}/{context.max_attempts} failed: {result.error}; "
                    f"retrying in {context.retry_delay:g}s"
                ),
                reraise=True,
            )
            try:
                async for attempt in retrying:
                    with attempt:
                        result.attempts = attempt.retry_state.attempt_number
                        await self._attempt(repo, context, result)
            except AuthenticationError:
                raise
            except Exception:
                logger.error(
                    f"Failed after {result.attempts} attempt(s) in state {result.state.value}: {result.error}"
                )
            else:
                result.success = True
                result.error = None
                result.error_category = None

            result.duration_seconds = time.monotonic() - started
            if result.success:
                logger.info(f"Configured successfully in {result.duration_seconds:.1f}s")
            return result

    async def _attempt(self, repo: Repository, context: _RunContext, result: OperationResult) -> None:
        """One pass of the pipeline; records the failure on ``result`` and re-raises it."""
        try:
            await asyncio.wait_for(
                self._run_pipeline(repo, context, result),
                timeout=config.REPO_WORKFLOW_TIMEOUT_SECONDS,
            )
        except AuthenticationError:
            raise
        except BulkConfigError as e:
            result.error = e.message
            result.error_category = e.category
            raise
        except asyncio.TimeoutError:
            result.error = f"Repository workflow timed out after {config.REPO_WORKFLOW_TIMEOUT_SECONDS:.0f}s"
            result.error_category = "transient"
            raise
        except Exception as e:
            logger.exception(f"Unexpected error on attempt {result.attempts}")
            result.error = str(e) or type(e).__name__
            result.error_category = "transient"
            raise

    def _transition(self, result: OperationResult, state: RepoState) -> None:
        logger.debug(f"{result.state.value} -> {state.value}")
        result.state = state

    async def _run_pipeline(self, repo: Repository, context: _RunContext, result: OperationResult) -> None:
        result.state = RepoState.PENDING
        result.secrets_applied = []
        result.variables_applied = []

        self._transition(result, RepoState.READING_CONFIG)
        current = await context.channel.read(repo)

        self._transition(result, RepoState.MERGING)
        final = merge_configurations(current.config, context.mcp_config, context.policy)
        change = MCPChange(before=current.config, after=final, policy=context.policy, route=current.route)
        if result.mcp is not None and result.mcp.written:
            # A write from an earlier attempt already landed
            change.written = True
        result.mcp = change

        if needs_write(current.config, final):
            self._transition(result, RepoState.WRITING)
            change.route = await context.channel.write(repo, final, current.route)
            change.written = True
            logger.info(f"MCP configuration written via {change.route} ({', '.join(final.server_names())})")
        else:
            self._transition(result, RepoState.NO_CHANGE_NEEDED)
            logger.info("MCP configuration already up to date, no write needed")

        self._transition(result, RepoState.APPLYING_SECRETS)
        for name, value in context.secrets.secrets.items():
            await self._client.set_secret(repo.full_name, name, value)
            result.secrets_applied.append(name)
        for name, value in context.secrets.variables.items():
            await self._client.set_variable(repo.full_name, name, value)
            result.variables_applied.append(name)

        self._transition(result, RepoState.DONE)
