"""Repository-aware logging service.

Provides console output plus persistent file logs organized by repository.

Log structure:
    ~/.copilot-bulk-config/logs/
    ├── run.log                     # Discovery, channel setup, summary
    └── repos/
        └── {owner}__{name}.log     # Per-repository pipeline logs
"""

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

from copilot_bulk_config.app import config

# Context variable for repository-aware logging
_current_repository: ContextVar[Optional[str]] = ContextVar("repository", default=None)

# Log format
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def ensure_log_dirs() -> None:
    """Create log directories if they don't exist."""
    config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    config.REPO_LOGS_DIR.mkdir(exist_ok=True)


def repo_log_name(full_name: str) -> str:
    return full_name.replace("/", "__") + ".log"


class RepositoryFileHandler(logging.Handler):
    """Handler that writes to repository-specific log files.

    Uses a context variable to determine which repository pipeline emitted
    the record. Each asyncio task gets its own copy of the context, so
    concurrent pipelines never write into each other's files.
    """

    def __init__(self):
        super().__init__()
        self._file_handlers: dict[str, logging.FileHandler] = {}
        self._run_handler: Optional[logging.FileHandler] = None
        ensure_log_dirs()

    def _get_run_handler(self) -> logging.FileHandler:
        """Get or create the global run log handler."""
        if self._run_handler is None:
            self._run_handler = logging.FileHandler(config.LOGS_DIR / "run.log", encoding="utf-8")
            self._run_handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
        return self._run_handler

    def _get_repository_handler(self, full_name: str) -> logging.FileHandler:
        """Get or create a repository-specific log handler."""
        if full_name not in self._file_handlers:
            handler = logging.FileHandler(config.REPO_LOGS_DIR / repo_log_name(full_name), encoding="utf-8")
            handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
            self._file_handlers[full_name] = handler
        return self._file_handlers[full_name]

    def emit(self, record: logging.LogRecord) -> None:
        """Write log record to the appropriate file."""
        try:
            full_name = _current_repository.get()
            if full_name:
                self._get_repository_handler(full_name).emit(record)
                return
            self._get_run_handler().emit(record)
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """Close all file handlers."""
        if self._run_handler:
            self._run_handler.close()
        for handler in self._file_handlers.values():
            handler.close()
        self._file_handlers.clear()
        super().close()


class RepositoryContextFilter(logging.Filter):
    """Prefix console records with the repository they belong to."""

    def filter(self, record: logging.LogRecord) -> bool:
        full_name = _current_repository.get()
        record.repository = f"[{full_name}] " if full_name else ""
        return True


class repository_context:
    """Context manager for repository-scoped logging."""

    def __init__(self, full_name: Optional[str] = None):
        self.full_name = full_name
        self._token = None

    def __enter__(self) -> "repository_context":
        if self.full_name:
            self._token = _current_repository.set(self.full_name)
        return self

    def __exit__(self, *args) -> None:
        if self._token:
            _current_repository.reset(self._token)


# Global handler instances
_repository_file_handler: Optional[RepositoryFileHandler] = None
_console_handler: Optional[logging.Handler] = None


def setup_logging(level: int = logging.INFO, log_to_file: bool = True) -> None:
    """Configure logging with console and per-repository file output.

    Call this once at startup.
    """
    global _repository_file_handler, _console_handler

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.addFilter(RepositoryContextFilter())
    console_handler.setFormatter(logging.Formatter("%(levelname)-7s | %(repository)s%(message)s"))
    root_logger.addHandler(console_handler)
    _console_handler = console_handler

    if log_to_file:
        _repository_file_handler = RepositoryFileHandler()
        _repository_file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(_repository_file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    if log_to_file:
        logging.debug(f"Logging initialized. Logs dir: {config.LOGS_DIR}")


def set_console_level(level: int) -> None:
    """Change console verbosity after startup."""
    root_logger = logging.getLogger()
    if level < root_logger.level:
        root_logger.setLevel(level)
    if _console_handler is not None:
        _console_handler.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)


def repository_log_path(full_name: str) -> Path:
    """Path of the log file written for one repository."""
    return config.REPO_LOGS_DIR / repo_log_name(full_name)
