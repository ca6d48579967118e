"""Console output for runs: dry-run preview, final summary, repository table."""

from copilot_bulk_config.app.models.mcp import HttpServer, MCPConfiguration
from copilot_bulk_config.app.models.operation import MergePolicy, OperationSummary
from copilot_bulk_config.app.models.repository import Repository
from copilot_bulk_config.app.models.secrets import SecretsAndVariables
from copilot_bulk_config.app.services.logging_service import repository_log_path

POLICY_DESCRIPTIONS = {
    MergePolicy.SKIP_EXISTING: "skip repositories that already have a configuration",
    MergePolicy.MERGE_KEEP_EXISTING: "merge, keeping existing servers on name collision",
    MergePolicy.MERGE_OVERWRITE: "merge, replacing existing servers on name collision",
    MergePolicy.FORCE_REPLACE: "replace any existing configuration",
}


def describe_server(name: str, server) -> str:
    target = server.url if isinstance(server, HttpServer) else " ".join([server.command, *(server.args or [])])
    tools = ", ".join(server.tools) if server.tools else "none"
    return f"{name} ({server.type}: {target}; tools: {tools})"


def render_dry_run(
    repositories: list[Repository],
    mcp_config: MCPConfiguration,
    secrets: SecretsAndVariables,
    policy: MergePolicy,
) -> str:
    lines = [
        "",
        "🔍 DRY RUN - no changes will be made",
        "",
        f"Merge policy: {policy.value} ({POLICY_DESCRIPTIONS[policy]})",
        "",
        f"Repositories ({len(repositories)}):",
    ]
    lines += [f"  • {repo.full_name}" for repo in repositories]
    lines += ["", f"MCP servers ({len(mcp_config.servers)}):"]
    lines += [f"  • {describe_server(name, server)}" for name, server in mcp_config.servers.items()]
    if secrets.secrets:
        lines += ["", f"Secrets ({len(secrets.secrets)}):"]
        lines += [f"  • {name} = ***" for name in secrets.secrets]
    if secrets.variables:
        lines += ["", f"Variables ({len(secrets.variables)}):"]
        lines += [f"  • {name} = {value}" for name, value in secrets.variables.items()]
    return "\n".join(lines)


def render_summary(summary: OperationSummary) -> str:
    title = "Dry run summary" if summary.dry_run else "Configuration summary"
    lines = [
        "",
        f"📊 {title}",
        f"  Total repositories: {summary.total}",
        f"  ✅ Succeeded:       {summary.succeeded}",
        f"  ❌ Failed:          {summary.failed}",
    ]
    if not summary.dry_run:
        lines.append(f"  ✏️  MCP writes:      {summary.writes_performed}")
    if summary.excluded_no_admin:
        lines.append(f"  ⚠️  Skipped (no admin access): {summary.excluded_no_admin}")
    lines.append(f"  ⏱️  Duration:        {summary.duration_seconds:.1f}s")

    if summary.errors:
        lines += ["", "Failed repositories:"]
        for failure in summary.errors:
            lines.append(f"  ❌ {failure.repository} [{failure.category}]: {failure.error}")
            lines.append(f"     log: {repository_log_path(failure.repository)}")
    return "\n".join(lines)


def render_repository_table(repositories: list[Repository], excluded_no_admin: list[str]) -> str:
    width = max([len(r.full_name) for r in repositories] + [len(n) for n in excluded_no_admin] + [10])
    lines = [f"{'REPOSITORY':<{width}}  ADMIN  TOPICS"]
    for repo in repositories:
        lines.append(f"{repo.full_name:<{width}}  {'yes':<5}  {', '.join(repo.topics)}")
    for full_name in excluded_no_admin:
        lines.append(f"{full_name:<{width}}  {'no':<5}")
    lines.append("")
    lines.append(f"{len(repositories)} repositories selected, {len(excluded_no_admin)} without admin access")
    return "\n".join(lines)


def print_dry_run(repositories, mcp_config, secrets, policy) -> None:
    print(render_dry_run(repositories, mcp_config, secrets, policy))


def print_summary(summary: OperationSummary) -> None:
    print(render_summary(summary))
