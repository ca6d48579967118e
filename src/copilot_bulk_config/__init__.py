"""Copilot Bulk Config - apply MCP configuration, secrets and variables across GitHub repositories."""

__version__ = "1.0.0"
