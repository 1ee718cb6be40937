"""Provider connection: one MCP server subprocess spoken to over stdio (JSON-RPC)."""

from __future__ import annotations

import json
import logging
import os
import queue
import subprocess
import threading
import time
from typing import Any, Dict, List, Optional

from mcprouter import __version__
from mcprouter.routing.errors import (
    ProtocolError,
    ProviderStartupError,
    ToolInvocationError,
    TransportError,
)
from mcprouter.routing.schema import JSON, LaunchSpec, ToolDescription

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

_EOF = None


class ProviderConnection:
    """
    A live session with one provider process.

    Requests are newline-delimited JSON-RPC messages on the child's stdin;
    responses are read from its stdout by a background thread and matched by
    id. Only one request is in flight at a time.

    Use :meth:`initialize` to get a connection that has completed the MCP
    handshake. A connection that times out or loses its process is closed and
    every later request raises :class:`TransportError`.
    """

    def __init__(self, name: str, spec: LaunchSpec):
        self.name = name
        self.spec = spec
        self.server_info: Dict[str, Any] = {}
        self._process: Optional[subprocess.Popen] = None
        self._request_id = 0
        self._lock = threading.Lock()
        self._messages: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._closed_reason: Optional[str] = None
        self._readers: List[threading.Thread] = []

    @classmethod
    def initialize(cls, name: str, spec: LaunchSpec) -> "ProviderConnection":
        """Start the provider and perform the handshake."""
        connection = cls(name, spec)
        connection.start()
        try:
            connection.handshake()
        except (TransportError, ProtocolError) as exc:
            connection.close()
            raise ProviderStartupError(
                f"Provider '{name}' failed its handshake: {exc.message}",
                details=exc.details,
            ) from exc
        return connection

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def start(self) -> None:
        """Spawn the provider subprocess and its reader threads."""
        if self.is_running:
            return

        merged_env = {**os.environ, **self.spec.env}
        try:
            self._process = subprocess.Popen(
                [self.spec.command] + list(self.spec.args),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=merged_env,
            )
        except OSError as exc:
            raise ProviderStartupError(
                f"Cannot start provider '{self.name}': {self.spec.command}: {exc}"
            ) from exc

        self._closed_reason = None
        self._messages = queue.Queue()
        logger.info("Started provider %s (pid %s)", self.name, self._process.pid)
        self._readers = [
            threading.Thread(
                target=self._pump_stdout,
                args=(self._process, self._messages),
                name=f"{self.name}-stdout",
                daemon=True,
            ),
            threading.Thread(
                target=self._pump_stderr,
                args=(self._process,),
                name=f"{self.name}-stderr",
                daemon=True,
            ),
        ]
        for reader in self._readers:
            reader.start()

    def handshake(self) -> Dict[str, Any]:
        """Perform the MCP ``initialize`` exchange."""
        result = self.send_request("initialize", {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": "mcprouter", "version": __version__},
        })
        if not isinstance(result, dict):
            raise ProtocolError("initialize returned a non-object result", details={"result": result})
        self.server_info = result.get("serverInfo") or {}
        self.notify("notifications/initialized")
        return result

    def close(self) -> None:
        """Terminate the provider subprocess. Safe to call more than once."""
        process, self._process = self._process, None
        if self._closed_reason is None:
            self._closed_reason = "connection closed"
        if process is None:
            return
        if process.poll() is None:
            try:
                process.terminate()
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
        if process.stdin is not None:
            try:
                process.stdin.close()
            except OSError:
                pass
        # Output pipes stay open while a reader is blocked on them (a child of
        # the provider may still hold the write end).
        readers, self._readers = self._readers, []
        for reader, stream in zip(readers, (process.stdout, process.stderr)):
            if reader is not threading.current_thread():
                reader.join(timeout=1)
            if stream is not None and not reader.is_alive():
                stream.close()
        logger.info("Stopped provider %s", self.name)

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def __enter__(self) -> "ProviderConnection":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Reader threads ────────────────────────────────────────────────────

    def _pump_stdout(self, process: subprocess.Popen, messages: queue.Queue) -> None:
        try:
            for raw in iter(process.stdout.readline, b""):
                messages.put(raw)
        except (OSError, ValueError):
            pass
        messages.put(_EOF)

    def _pump_stderr(self, process: subprocess.Popen) -> None:
        try:
            for raw in iter(process.stderr.readline, b""):
                logger.debug("[%s] %s", self.name, raw.decode(errors="replace").rstrip())
        except (OSError, ValueError):
            pass

    # ── JSON-RPC ──────────────────────────────────────────────────────────

    def _write(self, message: Dict[str, Any]) -> None:
        if not self.is_running:
            raise TransportError(
                f"Provider '{self.name}' is not running",
                details={"reason": self._closed_reason or "not started"},
            )
        line = json.dumps(message) + "\n"
        try:
            self._process.stdin.write(line.encode())
            self._process.stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            self._fail(f"write failed: {exc}")
            raise TransportError(f"Provider '{self.name}' transport error: {exc}") from exc

    def _fail(self, reason: str) -> None:
        logger.warning("Provider %s failed: %s", self.name, reason)
        self._closed_reason = reason
        self.close()

    def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a JSON-RPC notification (no response expected)."""
        message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        with self._lock:
            self._write(message)

    def _exchange(self, method: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Send one request and return the whole response object for it."""
        with self._lock:
            self._request_id += 1
            request_id = self._request_id
            request: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
            if params is not None:
                request["params"] = params

            logger.debug("-> %s #%d %s", self.name, request_id, method)
            self._write(request)

            deadline = time.monotonic() + self.spec.timeout
            while True:
                remaining = deadline - time.monotonic()
                try:
                    raw = self._messages.get(timeout=max(remaining, 0))
                except queue.Empty:
                    self._fail(f"{method} timed out after {self.spec.timeout}s")
                    raise TransportError(
                        f"Provider '{self.name}' did not answer {method} within {self.spec.timeout}s"
                    )
                if raw is _EOF:
                    self._fail("provider closed its output")
                    raise TransportError(f"Provider '{self.name}' closed connection (empty response)")
                if not raw.strip():
                    continue

                try:
                    message = json.loads(raw.decode())
                except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                    raise ProtocolError(
                        f"Provider '{self.name}' sent undecodable output",
                        details={"line": raw[:200].decode(errors="replace")},
                    ) from exc
                if not isinstance(message, dict):
                    raise ProtocolError(
                        f"Provider '{self.name}' sent a non-object message", details={"message": message}
                    )

                if "method" in message and "id" in message:
                    self._answer_server_request(message)
                    continue
                if message.get("id") != request_id or "method" in message:
                    # Server notifications or stray replies
                    logger.debug("<- %s skipped %s", self.name, message.get("method", message.get("id")))
                    continue
                if "result" not in message and "error" not in message:
                    raise ProtocolError(
                        f"Provider '{self.name}' response has neither result nor error",
                        details={"response": message},
                    )
                logger.debug("<- %s #%d", self.name, request_id)
                return message

    def _answer_server_request(self, message: Dict[str, Any]) -> None:
        """Reply to a request the provider sent us. Only ``ping`` is supported."""
        reply: Dict[str, Any] = {"jsonrpc": "2.0", "id": message["id"]}
        if message["method"] == "ping":
            reply["result"] = {}
        else:
            reply["error"] = {"code": -32601, "message": f"Method not found: {message['method']}"}
        logger.debug("<- %s server request %s", self.name, message["method"])
        self._write(reply)

    def send_request(self, method: str, params: Optional[Dict[str, Any]] = None) -> JSON:
        """Send a method-named request and return its decoded ``result``."""
        response = self._exchange(method, params)
        if "error" in response:
            err = response["error"]
            code = err.get("code") if isinstance(err, dict) else None
            text = err.get("message") if isinstance(err, dict) else err
            raise ProtocolError(f"MCP error {code}: {text}", error=err)
        return response["result"]

    # ── MCP Protocol ──────────────────────────────────────────────────────

    def list_tools(self) -> List[ToolDescription]:
        """Fetch the full tool catalog, following ``nextCursor`` pages."""
        tools: List[ToolDescription] = []
        cursor = None
        while True:
            result = self.send_request("tools/list", {"cursor": cursor} if cursor else None)
            raw_tools = result.get("tools") if isinstance(result, dict) else None
            if not isinstance(raw_tools, list):
                raise ProtocolError(
                    f"Provider '{self.name}' tools/list has no 'tools' array", details={"result": result}
                )
            for raw in raw_tools:
                try:
                    tools.append(ToolDescription.from_mcp(raw))
                except ProtocolError as exc:
                    logger.warning("Provider %s: skipping tool entry: %s", self.name, exc)
            cursor = result.get("nextCursor")
            if not cursor:
                return tools

    def invoke_tool(self, tool_id: str, arguments: JSON) -> JSON:
        """
        Call a tool by its provider-local id.

        The result object is returned exactly as the provider sent it. Errors
        the provider reports, either as a JSON-RPC error or as a result with
        ``isError`` set, raise :class:`ToolInvocationError` with that payload.
        """
        response = self._exchange("tools/call", {"name": tool_id, "arguments": arguments})
        if "error" in response:
            raise ToolInvocationError(self.name, tool_id, response["error"])
        result = response["result"]
        if isinstance(result, dict) and result.get("isError"):
            raise ToolInvocationError(self.name, tool_id, result)
        return result
