"""userhub application exception hierarchy.

All application errors derive from :class:`UserhubError` so route handlers
can translate them into HTTP responses with a single ``except`` clause when
needed.
"""


class UserhubError(Exception):
    """Base class for all userhub application errors."""


class ConfigError(UserhubError):
    """Invalid or missing configuration."""


class StorageError(UserhubError):
    """A write-store or read-store operation failed."""


class InvalidRequestError(UserhubError, ValueError):
    """The request body could not be parsed or failed validation."""


class InjectedFaultError(UserhubError):
    """Synthetic failure raised while fault-injection mode is enabled."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"Intentional test failure (FAULT_MODE) in {operation}")
        self.operation = operation

