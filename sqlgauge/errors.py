"""Exception taxonomy for the exporter.

ConfigError is fatal at startup. Everything else is scoped to a single tick of
a single probe (or a single liveness check) and never escapes the scheduler.
"""

from __future__ import annotations


class SqlGaugeError(Exception):
    """Base class for all exporter errors."""


class ConfigError(SqlGaugeError):
    """Raised when the exporter configuration cannot be loaded or validated."""


class ConnectError(SqlGaugeError):
    """Raised when a liveness check fails (network unreachable, auth rejected)."""


class HandleClosedError(ConnectError):
    """Raised when the connection handle is closed and must be reopened."""


class QueryTimeoutError(SqlGaugeError):
    """Raised when a probe query exceeds the configured deadline."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"query exceeded {timeout:g}s deadline")


class QueryError(SqlGaugeError):
    """Raised when a probe query fails for any reason other than the deadline."""

    def __init__(self, message: str, connection_invalidated: bool = False) -> None:
        self.connection_invalidated = connection_invalidated
        super().__init__(message)


class CoercionError(SqlGaugeError):
    """A result cell could not be turned into a number."""

    def __init__(self, raw_text: str | None = None) -> None:
        self.raw_text = raw_text
        detail = f": {raw_text!r}" if raw_text is not None else ""
        super().__init__(f"value is not numeric{detail}")
