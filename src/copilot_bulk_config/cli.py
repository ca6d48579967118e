"""CLI entry point for copilot-bulk-config."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from copilot_bulk_config.app import config
from copilot_bulk_config.app.errors import AuthenticationError, BulkConfigError, ConfigurationError
from copilot_bulk_config.app.models.operation import MergePolicy
from copilot_bulk_config.app.services.config_loader import load_mcp_config, load_repo_selection, load_secrets
from copilot_bulk_config.app.services.engine import ConfigurationEngine, RunOptions
from copilot_bulk_config.app.services.gh_cli import GitHubCLI
from copilot_bulk_config.app.services.logging_service import setup_logging
from copilot_bulk_config.app.services.report_service import print_summary, render_repository_table
from copilot_bulk_config.app.services.settings_channel import ChannelMode


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1 (got {value})")
    return number


def non_negative_float(value: str) -> float:
    number = float(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative (got {value})")
    return number


def _add_input_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--repos", "-r", required=True, type=Path, help="Repository selection file (YAML)")
    parser.add_argument("--mcp-config", "-m", required=True, type=Path, help="MCP configuration file (JSON or YAML)")
    parser.add_argument("--secrets", "-s", type=Path, help="Secrets and variables file (YAML)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="copilot-bulk-config",
        description="Apply Copilot coding agent MCP configuration, secrets and variables across repositories",
    )
    parser.add_argument("--version", "-v", action="store_true", help="Show version and exit")
    subparsers = parser.add_subparsers(dest="command")

    configure = subparsers.add_parser("configure", help="Apply configuration to the selected repositories")
    _add_input_arguments(configure)

    policy = configure.add_mutually_exclusive_group()
    policy.add_argument(
        "--skip-existing", dest="merge_policy", action="store_const", const=MergePolicy.SKIP_EXISTING,
        help="Leave repositories that already have an MCP configuration untouched (default)",
    )
    policy.add_argument(
        "--merge", dest="merge_policy", action="store_const", const=MergePolicy.MERGE_KEEP_EXISTING,
        help="Add new servers, keep existing servers on name collision",
    )
    policy.add_argument(
        "--merge-overwrite", dest="merge_policy", action="store_const", const=MergePolicy.MERGE_OVERWRITE,
        help="Add new servers, replace existing servers on name collision",
    )
    policy.add_argument(
        "--force-overwrite", dest="merge_policy", action="store_const", const=MergePolicy.FORCE_REPLACE,
        help="Replace any existing MCP configuration",
    )
    policy.add_argument(
        "--merge-policy", dest="merge_policy", type=MergePolicy, choices=list(MergePolicy),
        metavar="{" + ",".join(p.value for p in MergePolicy) + "}",
        help="Merge policy by name",
    )
    configure.set_defaults(merge_policy=MergePolicy.SKIP_EXISTING)

    channel = configure.add_mutually_exclusive_group()
    channel.add_argument(
        "--api-only", dest="channel_mode", action="store_const", const=ChannelMode.API_ONLY,
        help="Never fall back to browser automation",
    )
    channel.add_argument(
        "--browser-only", dest="channel_mode", action="store_const", const=ChannelMode.BROWSER_ONLY,
        help="Skip the API and use browser automation only",
    )
    configure.set_defaults(channel_mode=ChannelMode.HYBRID)

    configure.add_argument("--dry-run", action="store_true", help="Show what would be done without changing anything")
    configure.add_argument(
        "--concurrency", "-c", type=positive_int,
        help=f"Repositories processed concurrently (default: {config.DEFAULT_CONCURRENCY})",
    )
    configure.add_argument("--verbose", action="store_true", default=None, help="Verbose console logging")
    configure.add_argument(
        "--max-attempts", type=positive_int,
        help=f"Attempts per repository for transient failures (default: {config.DEFAULT_MAX_ATTEMPTS})",
    )
    configure.add_argument(
        "--retry-delay", type=non_negative_float, default=config.DEFAULT_RETRY_DELAY_SECONDS,
        help=f"Seconds between attempts (default: {config.DEFAULT_RETRY_DELAY_SECONDS:g})",
    )
    configure.add_argument(
        "--interactive-auth", action="store_true",
        help="Sign in to GitHub in a browser window instead of using the gh token",
    )
    configure.add_argument("--debug", action="store_true", help="Visible, slowed-down browser with debug captures")
    configure.add_argument("--api-endpoints", type=Path, help="YAML file overriding the MCP API endpoint candidates")

    validate = subparsers.add_parser("validate", help="Validate input files without touching any repository")
    _add_input_arguments(validate)

    list_repos = subparsers.add_parser("list-repos", help="Show the repositories a selection file resolves to")
    list_repos.add_argument("--repos", "-r", required=True, type=Path, help="Repository selection file (YAML)")

    subparsers.add_parser("check-auth", help="Verify the GitHub CLI is installed and signed in")

    return parser


def run_validate(args) -> int:
    try:
        selection = load_repo_selection(args.repos)
        mcp_config = load_mcp_config(args.mcp_config)
        secrets = load_secrets(args.secrets) if args.secrets else None
    except ConfigurationError as e:
        print(f"❌ {e}")
        return 1

    if selection.repositories is not None:
        print(f"✓ Repository config: {len(selection.repositories)} repositories listed")
    else:
        print("✓ Repository config: all accessible repositories (with filters)")
    print(f"✓ MCP config: {len(mcp_config.servers)} servers ({', '.join(mcp_config.server_names()) or 'none'})")
    if secrets is not None:
        print(f"✓ Secrets config: {len(secrets.secrets)} secrets, {len(secrets.variables)} variables")
    print("\n✅ All configuration files are valid")
    return 0


async def run_configure(args) -> int:
    options = RunOptions(
        repos_file=args.repos,
        mcp_config_file=args.mcp_config,
        secrets_file=args.secrets,
        merge_policy=args.merge_policy,
        dry_run=args.dry_run,
        concurrency=args.concurrency,
        verbose=args.verbose,
        max_attempts=args.max_attempts,
        retry_delay=args.retry_delay,
        channel_mode=args.channel_mode,
        interactive_auth=args.interactive_auth,
        debug=args.debug,
        api_endpoints_file=args.api_endpoints,
    )
    summary = await ConfigurationEngine(GitHubCLI()).configure(options)
    print_summary(summary)
    return 1 if summary.failed else 0


async def run_list_repos(args) -> int:
    selection = load_repo_selection(args.repos)
    result = await ConfigurationEngine(GitHubCLI()).select_repositories(selection)
    print(render_repository_table(result.repositories, result.excluded_no_admin))
    for entry in result.unresolved:
        print(f"⚠️  Could not resolve {entry}")
    return 0


async def run_check_auth(args) -> int:
    await GitHubCLI().check_authentication()
    print("✅ GitHub CLI is authenticated")
    return 0


COMMANDS = {
    "configure": run_configure,
    "list-repos": run_list_repos,
    "check-auth": run_check_auth,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point for copilot-bulk-config."""
    # Force UTF-8 stdout/stderr on Windows to handle emoji in print()
    if sys.platform == "win32" and hasattr(sys.stdout, "reconfigure"):
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from copilot_bulk_config import __version__
        print(f"copilot-bulk-config v{__version__}")
        return 0
    if args.command is None:
        parser.print_help()
        return 2

    if args.command == "validate":
        setup_logging(logging.WARNING, log_to_file=False)
        return run_validate(args)

    config.ensure_directories()
    setup_logging(logging.DEBUG if getattr(args, "verbose", None) else logging.INFO)
    try:
        return asyncio.run(COMMANDS[args.command](args))
    except AuthenticationError as e:
        print(f"\n🔒 Authentication failed: {e}")
        return 1
    except BulkConfigError as e:
        print(f"\n❌ {e}")
        return 1
    except KeyboardInterrupt:
        print("\n⏹️  Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
