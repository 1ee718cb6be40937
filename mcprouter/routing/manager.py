"""Tool manager - starts providers, builds the registry and dispatches calls by name."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional

from mcprouter.routing.connection import ProviderConnection
from mcprouter.routing.errors import (
    ManagerStateError,
    ProviderMissingError,
    ToolNotFoundError,
)
from mcprouter.routing.registry import ToolRegistry
from mcprouter.routing.schema import JSON, CollisionPolicy, LaunchSpec, ToolDescription, ToolRoute

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[str, LaunchSpec], ProviderConnection]


class ManagerState(Enum):
    """Lifecycle of a ToolManager."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


class ToolManager:
    """
    The single entry point for calling provider tools by name.

    Providers are started one after another in the order of ``configs``.
    Initialization is all-or-nothing: if any provider fails to start, answer
    its handshake or list its tools, the providers already started are
    stopped and the error is raised.

    Because registration follows configuration order, the ``last_wins``
    policy is deterministic: the provider listed later owns a shared name.

    Example:
        >>> with ToolManager.initialize({"fs": LaunchSpec(command="fs-server")}) as manager:
        ...     manager.call_tool("read_file", {"path": "README.md"})
    """

    def __init__(
        self,
        configs: Mapping[str, LaunchSpec],
        policy: CollisionPolicy = CollisionPolicy.LAST_WINS,
        separator: str = "__",
        connection_factory: ConnectionFactory = ProviderConnection.initialize,
    ):
        self._configs = dict(configs)
        self._connection_factory = connection_factory
        self._connections: Dict[str, ProviderConnection] = {}
        self.registry = ToolRegistry(policy=policy, separator=separator)
        self.state = ManagerState.UNINITIALIZED

    @classmethod
    def initialize(
        cls,
        configs: Mapping[str, LaunchSpec],
        policy: CollisionPolicy = CollisionPolicy.LAST_WINS,
        separator: str = "__",
        connection_factory: ConnectionFactory = ProviderConnection.initialize,
    ) -> "ToolManager":
        """Build a manager and bring every configured provider up."""
        manager = cls(configs, policy=policy, separator=separator, connection_factory=connection_factory)
        manager.start()
        return manager

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start all providers and register their tools."""
        if self.state is not ManagerState.UNINITIALIZED:
            raise ManagerStateError(f"Cannot start a manager in state {self.state.value}")

        self.state = ManagerState.INITIALIZING
        try:
            for name, spec in self._configs.items():
                connection = self._connection_factory(name, spec)
                self._connections[name] = connection
                self.registry.register(name, connection.list_tools())
        except BaseException:
            self.state = ManagerState.FAILED
            self._release()
            raise

        self.state = ManagerState.READY
        logger.info(
            "Tool manager ready: %d providers, %d tools", len(self._connections), len(self.registry)
        )

    def close(self) -> None:
        """Stop every provider. The manager cannot be used afterwards."""
        self._release()
        if self.state is not ManagerState.FAILED:
            self.state = ManagerState.CLOSED

    def _release(self) -> None:
        connections, self._connections = self._connections, {}
        for connection in connections.values():
            connection.close()

    def __enter__(self) -> "ToolManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Dispatch ──────────────────────────────────────────────────────────

    def call_tool(self, tool_key: str, arguments: Optional[JSON] = None) -> JSON:
        """
        Invoke a tool by its key.

        Raises:
            ToolNotFoundError: no provider advertises ``tool_key``.
            ProviderMissingError: the owning provider is not connected.
            ToolInvocationError: the provider reported a failure.
            TransportError: the provider could not be reached.
        """
        if self.state is not ManagerState.READY:
            raise ManagerStateError(f"Tool manager is {self.state.value}, not ready")

        route = self.registry.resolve(tool_key)
        if route is None:
            raise ToolNotFoundError(tool_key)

        connection = self._connections.get(route.provider)
        if connection is None:
            raise ProviderMissingError(route.provider, tool_key)

        logger.debug("Calling %s on provider %s as %s", tool_key, route.provider, route.tool_id)
        return connection.invoke_tool(route.tool_id, arguments if arguments is not None else {})

    def resolve(self, tool_key: str) -> Optional[ToolRoute]:
        return self.registry.resolve(tool_key)

    # ── Catalog ───────────────────────────────────────────────────────────

    def list_available_tools(self) -> List[ToolDescription]:
        """
        All tools across all providers, named by the key ``call_tool`` accepts.

        Shared names are de-duplicated with the registry's collision policy.
        Empty when no providers are configured.
        """
        return self.registry.list_tools()

    def catalog_of(self, provider: str) -> List[ToolDescription]:
        return self.registry.catalog_of(provider)

    @property
    def providers(self) -> List[str]:
        return list(self._connections)
