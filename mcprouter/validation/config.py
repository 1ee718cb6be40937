"""
mcprouter Configuration - Configuration loading and validation.

This module provides the Config class for loading MCP server declarations
from both global (~/.mcprouter/config.yaml) and local (.mcprouter/config.yaml)
sources.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from mcprouter.routing.schema import CollisionPolicy, LaunchSpec


class ConfigError(Exception):
    """Raised when there's a configuration error."""

    pass


class ServerConfig(LaunchSpec):
    """Configuration for a single MCP server."""

    enabled: bool = True

    def launch_spec(self) -> LaunchSpec:
        return LaunchSpec(command=self.command, args=self.args, env=self.env, timeout=self.timeout)


class RoutingConfig(BaseModel):
    """How tool names from different servers are combined."""

    collision_policy: CollisionPolicy = CollisionPolicy.LAST_WINS
    namespace_separator: str = "__"


class RouterConfig(BaseModel):
    """Complete mcprouter configuration schema."""

    servers: Dict[str, ServerConfig] = Field(default_factory=dict)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)


class Config:
    """
    mcprouter configuration manager.

    Handles loading, merging, and validating configuration from:
    - Global: ~/.mcprouter/config.yaml
    - Local: .mcprouter/config.yaml (project-specific)

    Local configuration overrides global configuration. Servers keep the
    order they are written in, which is also the order they are started and
    registered in.

    Example:
        >>> config = Config.load()
        >>> manager = ToolManager.initialize(config.launch_specs(), policy=config.collision_policy)
    """

    GLOBAL_CONFIG_DIR = Path.home() / ".mcprouter"
    LOCAL_CONFIG_DIR = Path(".mcprouter")

    def __init__(
        self,
        global_config: Optional[Dict[str, Any]] = None,
        local_config: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize Config.

        Args:
            global_config: Global configuration dictionary.
            local_config: Local (project) configuration dictionary.
        """
        self._global_config = global_config or {}
        self._local_config = local_config or {}
        self._merged: Optional[RouterConfig] = None

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """
        Load configuration from default locations.

        Args:
            path: Explicit config file. When given, only this file is read.

        Returns:
            Config instance with loaded configuration.
        """
        if path is not None:
            path = Path(path)
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return cls(local_config=cls._load_yaml(path))

        global_config = cls._load_yaml(cls.GLOBAL_CONFIG_DIR / "config.yaml")
        local_config = cls._load_yaml(cls._find_local_config())

        return cls(global_config=global_config, local_config=local_config)

    @classmethod
    def _load_yaml(cls, path: Optional[Path]) -> Dict[str, Any]:
        """Load YAML file if it exists."""
        if path is None or not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return data

    @classmethod
    def _find_local_config(cls) -> Optional[Path]:
        """Find the local config file by walking up the directory tree."""
        current = Path.cwd()
        while current != current.parent:
            config_path = current / cls.LOCAL_CONFIG_DIR / "config.yaml"
            if config_path.exists():
                return config_path
            current = current.parent
        return None

    def get_merged_config(self) -> Dict[str, Any]:
        """Get the merged configuration as a dictionary."""
        return self._deep_merge(self._global_config.copy(), self._local_config)

    @property
    def merged(self) -> RouterConfig:
        """Get the validated merged configuration."""
        if self._merged is None:
            try:
                self._merged = RouterConfig(**self.get_merged_config())
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._merged

    def launch_specs(self) -> Dict[str, LaunchSpec]:
        """Launch specs of all enabled servers, in declaration order."""
        return {
            name: server.launch_spec()
            for name, server in self.merged.servers.items()
            if server.enabled
        }

    @property
    def collision_policy(self) -> CollisionPolicy:
        return self.merged.routing.collision_policy

    @property
    def namespace_separator(self) -> str:
        return self.merged.routing.namespace_separator

    def add_server(self, name: str, server: Dict[str, Any], global_: bool = False) -> None:
        """
        Declare a server.

        Args:
            name: Server name, used as the provider name.
            server: Mapping with ``command`` and optional ``args``, ``env``, ``timeout``.
            global_: Whether to add it globally or locally.
        """
        config = self._global_config if global_ else self._local_config
        config.setdefault("servers", {})[name] = server
        self._merged = None  # Reset cache

    def save(self, path: Optional[Path] = None) -> None:
        """
        Save configuration to files.

        Args:
            path: Write the merged configuration to this single file instead.
        """
        if path is not None:
            self._save_yaml(Path(path), self.get_merged_config())
            return

        if self._global_config:
            self._save_yaml(self.GLOBAL_CONFIG_DIR / "config.yaml", self._global_config)

        local_path = self._find_local_config() or self.LOCAL_CONFIG_DIR / "config.yaml"
        if self._local_config:
            self._save_yaml(local_path, self._local_config)

    def _save_yaml(self, path: Path, data: Dict[str, Any]) -> None:
        """Save data to a YAML file."""
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result
