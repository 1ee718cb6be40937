"""Tests for the stdio provider connection, against a real subprocess."""

import json
import logging

import pytest

from mcprouter.routing.connection import ProviderConnection
from mcprouter.routing.errors import (
    ProtocolError,
    ProviderStartupError,
    ToolInvocationError,
    TransportError,
)
from mcprouter.routing.schema import LaunchSpec


class TestStartup:
    """Tests for process start and handshake."""

    def test_initialize_handshake(self, fake_spec):
        """Test a healthy server completes the handshake."""
        with ProviderConnection.initialize("fake", fake_spec()) as connection:
            assert connection.is_running
            assert connection.server_info == {"name": "fake", "version": "1.0"}

    def test_missing_executable(self):
        """Test a command that does not exist fails startup."""
        spec = LaunchSpec(command="/nonexistent/mcp-server-binary")

        with pytest.raises(ProviderStartupError) as exc_info:
            ProviderConnection.initialize("ghost", spec)

        assert "ghost" in str(exc_info.value)

    def test_malformed_handshake(self, fake_spec):
        """Test a non-JSON handshake answer fails startup."""
        with pytest.raises(ProviderStartupError) as exc_info:
            ProviderConnection.initialize("garbage", fake_spec(mode="garbage"))

        assert isinstance(exc_info.value.__cause__, ProtocolError)

    def test_handshake_timeout(self, fake_spec):
        """Test a server that never answers fails startup after the deadline."""
        with pytest.raises(ProviderStartupError) as exc_info:
            ProviderConnection.initialize("silent", fake_spec(mode="silent", timeout=0.5))

        assert isinstance(exc_info.value.__cause__, TransportError)

    def test_process_exits_before_handshake(self, fake_spec):
        """Test a server that exits immediately fails startup."""
        with pytest.raises(ProviderStartupError):
            ProviderConnection.initialize("quitter", fake_spec(mode="exit"))

    def test_failed_handshake_stops_process(self, fake_spec):
        """Test the subprocess is not left behind when the handshake fails."""
        connection = ProviderConnection("silent", fake_spec(mode="silent", timeout=0.5))
        connection.start()
        process = connection._process

        with pytest.raises(TransportError):
            connection.handshake()

        assert not connection.is_running
        assert process.poll() is not None


class TestRequests:
    """Tests for requests on a live connection."""

    @pytest.fixture
    def connection(self, fake_spec):
        connection = ProviderConnection.initialize("fake", fake_spec(FAKE_SECRET="s3cret"))
        yield connection
        connection.close()

    def test_list_tools_verbatim(self, connection):
        """Test every catalog entry is copied as-is."""
        tools = connection.list_tools()

        assert [t.name for t in tools] == ["echo", "fail", "crash", "die", "env"]
        assert tools[0].description == "Echo the arguments back"
        assert tools[0].parameters == {"type": "object", "properties": {"text": {"type": "string"}}}

    def test_send_request_returns_result(self, connection):
        """Test send_request returns the decoded result object."""
        result = connection.send_request("tools/list")

        assert len(result["tools"]) == 5

    def test_send_request_error_response(self, connection):
        """Test a JSON-RPC error becomes a ProtocolError carrying the error."""
        with pytest.raises(ProtocolError) as exc_info:
            connection.send_request("resources/list")

        assert exc_info.value.error["code"] == -32601
        assert connection.is_running

    def test_invoke_tool_passes_arguments(self, connection):
        """Test arguments reach the provider and the result comes back untouched."""
        result = connection.invoke_tool("echo", {"text": "hi", "n": 2})

        assert result == {"content": [{"type": "text", "text": json.dumps({"n": 2, "text": "hi"})}]}

    def test_invoke_tool_is_error_result(self, connection):
        """Test an isError result raises ToolInvocationError with the result payload."""
        with pytest.raises(ToolInvocationError) as exc_info:
            connection.invoke_tool("fail", {})

        assert exc_info.value.payload["isError"] is True
        assert exc_info.value.payload["content"][0]["text"] == "boom"
        assert exc_info.value.tool_id == "fail"

    def test_invoke_tool_rpc_error(self, connection):
        """Test a JSON-RPC error from tools/call raises ToolInvocationError unchanged."""
        with pytest.raises(ToolInvocationError) as exc_info:
            connection.invoke_tool("crash", {})

        assert exc_info.value.payload == {
            "code": -32000,
            "message": "tool crashed",
            "data": {"name": "crash"},
        }

    def test_env_overrides_reach_process(self, connection):
        """Test env overrides from the launch spec are visible to the provider."""
        result = connection.invoke_tool("env", {"key": "FAKE_SECRET"})

        assert result["content"][0]["text"] == "s3cret"

    def test_provider_exit_during_call(self, connection):
        """Test a provider that dies mid-call raises TransportError, now and later."""
        with pytest.raises(TransportError):
            connection.invoke_tool("die", {})

        assert not connection.is_running
        with pytest.raises(TransportError):
            connection.invoke_tool("echo", {})

    def test_request_after_close(self, connection):
        """Test requests on a closed connection raise TransportError."""
        connection.close()
        connection.close()

        with pytest.raises(TransportError):
            connection.send_request("tools/list")

    def test_close_releases_pipes(self, connection):
        """Test close leaves no pipe of the subprocess open."""
        process = connection._process

        connection.close()

        assert process.poll() is not None
        assert process.stdin.closed
        assert process.stdout.closed
        assert process.stderr.closed


class TestProtocolDetails:
    """Tests for pagination and interleaved server messages."""

    def test_paginated_catalog(self, fake_spec):
        """Test tools/list pages are followed until nextCursor is absent."""
        with ProviderConnection.initialize("paged", fake_spec(mode="paginate")) as connection:
            tools = connection.list_tools()

        assert [t.name for t in tools] == ["echo", "fail", "crash", "die", "env"]

    def test_notifications_are_skipped(self, fake_spec, caplog):
        """Test server notifications and stderr chatter do not disturb responses."""
        caplog.set_level(logging.DEBUG, logger="mcprouter.routing.connection")

        with ProviderConnection.initialize("noisy", fake_spec(mode="noisy")) as connection:
            result = connection.invoke_tool("echo", {"text": "x"})

        assert result["content"][0]["text"] == '{"text": "x"}'

    def test_malformed_entries_are_skipped(self, fake_spec):
        """Test catalog entries without a name or with a non-text description are dropped."""
        tools = [
            {"name": "good", "description": "ok", "inputSchema": {"type": "object"}},
            {"description": "nameless"},
            {"name": "bare"},
            {"name": "odd", "description": ["not", "text"], "inputSchema": {"type": "object"}},
        ]
        with ProviderConnection.initialize("mixed", fake_spec(tools=tools)) as connection:
            catalog = connection.list_tools()

        assert [t.name for t in catalog] == ["good", "bare"]
        assert catalog[1].description == ""
        assert catalog[1].parameters == {"type": "object", "properties": {}}

    def test_server_ping_is_answered(self, fake_spec):
        """Test a ping the server sends mid-request gets an empty result."""
        with ProviderConnection.initialize("pinger", fake_spec(mode="ping")) as connection:
            result = connection.invoke_tool("echo", {})

        assert json.loads(result["content"][0]["text"]) == {"id": "srv-1", "jsonrpc": "2.0", "result": {}}

    def test_unknown_server_request_is_refused(self, fake_spec):
        """Test other server requests get a method-not-found error instead of silence."""
        spec = fake_spec(mode="ping", FAKE_SERVER_METHOD="sampling/createMessage")
        with ProviderConnection.initialize("sampler", spec) as connection:
            result = connection.invoke_tool("echo", {})

        answer = json.loads(result["content"][0]["text"])
        assert answer["id"] == "srv-1"
        assert answer["error"]["code"] == -32601
