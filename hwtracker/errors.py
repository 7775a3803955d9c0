"""Exception hierarchy for the hardware price tracker."""

from typing import Any, Optional


class TrackerError(Exception):
    """Base class for all tracker errors."""
    pass


class ConfigError(TrackerError):
    """Raised when configuration is missing or malformed."""
    pass


class FetchError(TrackerError):
    """Raised when an HTTP fetch fails or returns a non-2xx status."""
    pass


class BrowserTimeoutError(TrackerError):
    """Raised when a browser navigation or selector wait exceeds its timeout."""
    pass


class RpcError(TrackerError):
    """Base class for remote tool-invocation failures."""
    pass


class RpcConnectionError(RpcError):
    """Raised when the RPC connection cannot be established."""
    pass


class RpcNotConnectedError(RpcError):
    """Raised when a call is attempted without an open connection."""
    pass


class RpcCallTimeoutError(RpcError):
    """Raised when a call receives no response within its timeout."""

    def __init__(self, method: str):
        super().__init__(f"MCP call timeout for method: {method}")
        self.method = method


class RpcRemoteError(RpcError):
    """Error object returned by the remote side for a call."""

    def __init__(self, code: Any, message: str, data: Optional[Any] = None):
        super().__init__(f"MCP Error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class McpValidationError(TrackerError):
    """Raised when an outbound relay payload cannot be sent."""
    pass


class PersistenceError(TrackerError):
    """Raised when a database write fails."""
    pass
