"""MCP configuration merging.

Pure functions: no I/O, no logging side effects on the inputs. Given the
configuration read from a repository (or None when the field is empty) and
the incoming configuration, produce the configuration that should be stored.

| Policy          | existing is None | existing present                         |
|-----------------|------------------|------------------------------------------|
| skip            | incoming         | existing unchanged                       |
| merge           | incoming         | union, existing wins on name collision   |
| merge-overwrite | incoming         | union, incoming wins on name collision   |
| force-overwrite | incoming         | incoming                                 |
"""

from copilot_bulk_config.app.models.mcp import MCPConfiguration
from copilot_bulk_config.app.models.operation import MergePolicy


def merge_configurations(
    existing: MCPConfiguration | None,
    incoming: MCPConfiguration,
    policy: MergePolicy,
) -> MCPConfiguration:
    """Combine ``existing`` and ``incoming`` according to ``policy``.

    ``incoming`` is never inspected when the policy is skip and a
    configuration already exists.
    """
    if existing is None:
        return incoming

    if policy is MergePolicy.SKIP_EXISTING:
        return existing

    if policy is MergePolicy.MERGE_KEEP_EXISTING:
        servers = dict(existing.servers)
        for name, spec in incoming.servers.items():
            servers.setdefault(name, spec)
        return MCPConfiguration(servers=servers)

    if policy is MergePolicy.MERGE_OVERWRITE:
        return MCPConfiguration(servers={**existing.servers, **incoming.servers})

    if policy is MergePolicy.FORCE_REPLACE:
        return incoming

    raise ValueError(f"Unknown merge policy: {policy}")


def needs_write(existing: MCPConfiguration | None, final: MCPConfiguration) -> bool:
    """Whether ``final`` differs from what the repository already holds.

    Comparison is structural (server by server, field by field), so key
    order in the remote JSON does not matter.
    """
    if existing is None:
        return True
    return existing != final
