"""
Custom Exception Classes for the OPC UA Data Logger

Hierarchical exception structure for error handling across services.
Only EndpointConnectionError (startup) and ConfigError reach the process
boundary; tick-level errors are logged and swallowed by their task.
"""


class OpcLoggerError(Exception):
    """Base exception for all data logger errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(OpcLoggerError):
    """Configuration-related errors"""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = errors or []
        super().__init__(f"Config Error: {message}", recoverable=False)


class EndpointConnectionError(OpcLoggerError):
    """Connect or session-create failure against the remote endpoint"""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        attempts: int = 0,
        recoverable: bool = False,
    ):
        self.endpoint = endpoint
        self.attempts = attempts
        super().__init__(f"Connection Error: {message}", recoverable)


class ReadTimeoutError(EndpointConnectionError):
    """A session read did not complete within the configured timeout"""

    def __init__(self, timeout_s: float, endpoint: str | None = None):
        self.timeout_s = timeout_s
        super().__init__(
            f"Read timed out after {timeout_s}s",
            endpoint=endpoint,
            recoverable=True,
        )


class TickError(OpcLoggerError):
    """A single logging tick failed (read, format or file write)"""

    def __init__(self, message: str, task: str = "logging", cause: BaseException | None = None):
        self.task = task
        self.cause = cause
        super().__init__(f"Tick Error [{task}]: {message}", recoverable=True)


class FormatError(TickError):
    """Batch read result could not be aligned with the configured points"""

    def __init__(self, message: str, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"{message} (expected {expected}, got {actual})")


class KeepAliveError(OpcLoggerError):
    """Keep-alive ping failed"""

    def __init__(self, message: str, node_id: str | None = None, cause: BaseException | None = None):
        self.node_id = node_id
        self.cause = cause
        super().__init__(f"Keep-alive Error: {message}", recoverable=True)


class ShutdownError(OpcLoggerError):
    """Failure while releasing the session on the shutdown path"""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(f"Shutdown Error: {message}", recoverable=True)
