"""Exception hierarchy for tool routing."""

from typing import Any, Dict, Optional


class ToolRouterError(Exception):
    """Base exception for all routing failures."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ProviderStartupError(ToolRouterError):
    """Raised when a provider process cannot be started or fails its handshake."""

    pass


class TransportError(ToolRouterError):
    """Raised when a provider session is closed, broken or timed out."""

    pass


class ProtocolError(ToolRouterError):
    """Raised when a provider answers with a malformed or error response."""

    def __init__(self, message: str, error: Any = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.error = error


class ToolNotFoundError(ToolRouterError):
    """Raised when no provider advertises the requested tool."""

    def __init__(self, tool_key: str):
        super().__init__(f"Tool '{tool_key}' not found")
        self.tool_key = tool_key


class ProviderMissingError(ToolRouterError):
    """Raised when a registered tool points at a provider that is not connected."""

    def __init__(self, provider: str, tool_key: str):
        super().__init__(f"Provider '{provider}' not found for tool '{tool_key}'")
        self.provider = provider
        self.tool_key = tool_key


class ToolInvocationError(ToolRouterError):
    """
    Raised when a provider reports that a tool call failed.

    ``payload`` is the provider's own error object (or the ``isError`` result),
    untouched.
    """

    def __init__(self, provider: str, tool_id: str, payload: Any):
        super().__init__(f"Tool '{tool_id}' on provider '{provider}' failed", {"payload": payload})
        self.provider = provider
        self.tool_id = tool_id
        self.payload = payload


class ToolNameCollisionError(ToolRouterError):
    """Raised when two providers publish the same key under the ``error`` or ``namespace`` policy."""

    def __init__(self, tool_key: str, existing: str, incoming: str):
        super().__init__(
            f"Tool '{tool_key}' from provider '{incoming}' collides with provider '{existing}'"
        )
        self.tool_key = tool_key
        self.existing = existing
        self.incoming = incoming


class ManagerStateError(ToolRouterError):
    """Raised when the manager is used outside the READY state."""

    pass
