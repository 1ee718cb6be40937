"""Tool registry - maps externally visible tool keys to (provider, tool id)."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from mcprouter.routing.errors import ToolNameCollisionError
from mcprouter.routing.schema import CollisionPolicy, ToolDescription, ToolRoute, namespaced_key

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Aggregates provider catalogs into one tool namespace.

    Every registered key resolves to exactly one :class:`ToolRoute`. When two
    tools produce the same key, ``policy`` decides:

    - ``last_wins``: the tool registered later replaces the earlier one.
    - ``namespace``: keys are ``<provider><separator><tool>``. If two
      providers still produce the same key because a name contains the
      separator, :class:`ToolNameCollisionError` is raised.
    - ``error``: :class:`ToolNameCollisionError` is raised.

    The registry is filled once and read afterwards; lookups never touch a
    provider.
    """

    def __init__(
        self,
        policy: CollisionPolicy = CollisionPolicy.LAST_WINS,
        separator: str = "__",
    ):
        self.policy = CollisionPolicy(policy)
        self.separator = separator
        self._routes: Dict[str, ToolRoute] = {}
        self._descriptions: Dict[str, ToolDescription] = {}
        self._catalogs: Dict[str, List[ToolDescription]] = {}

    # ── Registration ──────────────────────────────────────────────────────

    def key_for(self, provider: str, tool_id: str) -> str:
        """The tool key a provider's tool is published under."""
        if self.policy is CollisionPolicy.NAMESPACE:
            return namespaced_key(provider, tool_id, self.separator)
        return tool_id

    def register(self, provider: str, catalog: Iterable[ToolDescription]) -> None:
        """Add every tool of one provider's catalog."""
        catalog = list(catalog)
        self._catalogs[provider] = catalog

        for tool in catalog:
            key = self.key_for(provider, tool.name)
            existing = self._routes.get(key)
            if existing is not None:
                if self.policy is CollisionPolicy.ERROR:
                    raise ToolNameCollisionError(key, existing.provider, provider)
                if self.policy is CollisionPolicy.NAMESPACE and existing.provider != provider:
                    # e.g. "a" + "b__c" and "a__b" + "c" both give "a__b__c"
                    raise ToolNameCollisionError(key, existing.provider, provider)
                logger.warning(
                    "Tool %r from provider %s replaces the one from provider %s",
                    key, provider, existing.provider,
                )
            self._routes[key] = ToolRoute(provider, tool.name)
            self._descriptions[key] = tool.renamed(key)

        logger.info("Registered %d tools from provider %s", len(catalog), provider)

    # ── Lookup ────────────────────────────────────────────────────────────

    def resolve(self, tool_key: str) -> Optional[ToolRoute]:
        return self._routes.get(tool_key)

    def catalog_of(self, provider: str) -> List[ToolDescription]:
        """Tools exactly as the given provider advertised them."""
        return list(self._catalogs.get(provider, []))

    def list_tools(self) -> List[ToolDescription]:
        """
        The merged catalog across all providers.

        Each entry is named by its tool key, and the description comes from
        the provider the key resolves to, so this list and :meth:`resolve`
        always agree.
        """
        return list(self._descriptions.values())

    def providers(self) -> List[str]:
        return list(self._catalogs)

    def __contains__(self, tool_key: object) -> bool:
        return tool_key in self._routes

    def __len__(self) -> int:
        return len(self._routes)
