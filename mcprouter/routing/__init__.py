"""
Routing - one tool namespace over many MCP provider processes.

Each configured provider is started as a subprocess and asked for its tool
catalog. The registry maps every tool key to the provider that owns it, and
the manager dispatches calls to the right provider by name.

    caller --call_tool("read_file")--> ToolManager --> ToolRegistry
                                            |
                                            +--> ProviderConnection("fs") --stdio--> fs-server
"""

from mcprouter.routing.errors import (
    ManagerStateError,
    ProtocolError,
    ProviderMissingError,
    ProviderStartupError,
    ToolInvocationError,
    ToolNameCollisionError,
    ToolNotFoundError,
    ToolRouterError,
    TransportError,
)
from mcprouter.routing.schema import CollisionPolicy, LaunchSpec, ToolDescription, ToolRoute
from mcprouter.routing.connection import ProviderConnection
from mcprouter.routing.registry import ToolRegistry
from mcprouter.routing.manager import ManagerState, ToolManager

__all__ = [
    "CollisionPolicy",
    "LaunchSpec",
    "ToolDescription",
    "ToolRoute",
    "ProviderConnection",
    "ToolRegistry",
    "ManagerState",
    "ToolManager",
    "ToolRouterError",
    "ProviderStartupError",
    "TransportError",
    "ProtocolError",
    "ToolNotFoundError",
    "ProviderMissingError",
    "ToolInvocationError",
    "ToolNameCollisionError",
    "ManagerStateError",
]
