"""Exception hierarchy.

Each error carries a ``category`` (reported in the run summary) and a
``retryable`` flag read by the engine's per-repository retry policy:

- config:     bad/missing/contradictory input, raised pre-flight, aborts the run
- fatal:      no usable credential, aborts the run
- permission: the caller cannot administer the repository, fails that repository only
- transient:  network, UI automation and parse failures, retried per repository
"""


class BulkConfigError(Exception):
    """Base application exception."""

    category = "transient"
    retryable = True

    def __init__(self, message: str, repository: str | None = None):
        self.message = message
        self.repository = repository
        super().__init__(message)


class ConfigurationError(BulkConfigError):
    """Invalid or contradictory input files/flags."""

    category = "config"
    retryable = False


class AuthenticationError(BulkConfigError):
    """No valid GitHub credential could be obtained."""

    category = "fatal"
    retryable = False


class PermissionDeniedError(BulkConfigError):
    """The authenticated user cannot change this repository's settings."""

    category = "permission"
    retryable = False


class RepositoryNotFoundError(PermissionDeniedError):
    """The repository does not exist or is not visible to the user."""


class TransientError(BulkConfigError):
    """Failure that may succeed on a later attempt."""


class GhCliError(TransientError):
    """The gh command failed for a reason other than auth/permission."""

    def __init__(self, message: str, repository: str | None = None, returncode: int | None = None):
        self.returncode = returncode
        super().__init__(message, repository)


class ChannelUnavailableError(TransientError):
    """Every API candidate was exhausted without a usable response."""


class FieldNotFoundError(TransientError):
    """No locator strategy could identify the MCP configuration field."""


class RemoteConfigParseError(TransientError):
    """The configuration field held text that is not a valid MCP configuration."""


class SaveFailedError(TransientError):
    """The settings page showed an error banner after saving."""


class SessionExpiredError(TransientError):
    """The browser session was signed out mid-run."""
