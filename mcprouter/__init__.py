"""
mcprouter - one tool-calling interface over many MCP servers.

Start every configured MCP server, collect their tools into a single
namespace and call any tool by name without knowing which server hosts it.

Architecture:
- Providers are subprocesses speaking JSON-RPC over stdio
- Servers are declared in .mcprouter/config.yaml (local) or ~/.mcprouter/config.yaml
- Tool names are resolved through one registry with an explicit collision policy
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"

from mcprouter.routing.manager import ToolManager
from mcprouter.routing.schema import LaunchSpec, ToolDescription
from mcprouter.validation.config import Config

__all__ = [
    "ToolManager",
    "LaunchSpec",
    "ToolDescription",
    "Config",
    "__version__",
]
