"""Shared fixtures."""

import json
import sys
from pathlib import Path

import pytest

from mcprouter.routing.schema import LaunchSpec

FAKE_SERVER = Path(__file__).parent / "fake_mcp_server.py"


@pytest.fixture
def fake_spec():
    """Build a LaunchSpec that runs the fake MCP server."""

    def make(mode="normal", tools=None, timeout=10.0, **env):
        env = dict(env)
        env["FAKE_MODE"] = mode
        if tools is not None:
            env["FAKE_TOOLS"] = json.dumps(tools)
        return LaunchSpec(
            command=sys.executable,
            args=["-u", str(FAKE_SERVER)],
            env=env,
            timeout=timeout,
        )

    return make
