"""Stdio integration tests for the Desktop Commander MCP Server.

Test scenarios:
1. Start the MCP server subprocess
2. Start a long-running command through desktop_cmd_run
3. Send SIGINT to the server
4. Verify: the session is terminated, the server is still alive
5. Verify: the server exits cleanly once stdin closes

These tests are marked with @pytest.mark.integration for selective execution:
    pytest -m integration tests/test_stdio_integration.py
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import signal
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
SRC_DIR = PROJECT_ROOT / "src"


# ============================================================================
# MCP Protocol Helpers
# ============================================================================


class MCPClient:
    """Simple MCP client for testing.

    Communicates with MCP server via stdin/stdout using JSON-RPC 2.0 protocol.
    """

    def __init__(self, process: asyncio.subprocess.Process):
        self.process = process
        self._request_id = 0
        self._read_task: asyncio.Task | None = None
        self._responses: dict[int, asyncio.Future] = {}

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def _write(self, message: dict) -> None:
        assert self.process.stdin is not None
        self.process.stdin.write((json.dumps(message) + "\n").encode())
        await self.process.stdin.drain()

    async def send_request(self, method: str, params: dict | None = None) -> dict:
        """Send a JSON-RPC request and wait for response."""
        request_id = self._next_id()
        request: dict = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            request["params"] = params

        response_future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._responses[request_id] = response_future
        await self._write(request)

        try:
            return await asyncio.wait_for(response_future, timeout=30.0)
        except asyncio.TimeoutError:
            del self._responses[request_id]
            raise TimeoutError(f"No response for request {request_id}: {method}")

    async def send_notification(self, method: str, params: dict | None = None) -> None:
        """Send a JSON-RPC notification (no response expected)."""
        notification: dict = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            notification["params"] = params
        await self._write(notification)

    async def read_messages(self) -> None:
        """Read messages from server stdout in background."""
        assert self.process.stdout is not None
        while True:
            line = await self.process.stdout.readline()
            if not line:
                break
            try:
                message = json.loads(line.decode())
            except json.JSONDecodeError:
                continue
            future = self._responses.pop(message.get("id"), None)
            if future is not None and not future.done():
                future.set_result(message)

    async def start_reading(self) -> None:
        self._read_task = asyncio.create_task(self.read_messages())

    async def stop_reading(self) -> None:
        if self._read_task:
            self._read_task.cancel()
            try:
                await self._read_task
            except asyncio.CancelledError:
                pass

    async def initialize(self) -> dict:
        """Send MCP initialize request followed by the initialized notification."""
        response = await self.send_request("initialize", {
            "protocolVersion": "2024-11-05",
            "capabilities": {},
            "clientInfo": {"name": "test-client", "version": "1.0.0"},
        })
        await self.send_notification("notifications/initialized")
        return response

    async def list_tools(self) -> dict:
        return await self.send_request("tools/list", {})

    async def call_tool_text(self, name: str, arguments: dict) -> str:
        """Send tools/call and return the text of the first content item."""
        response = await self.send_request("tools/call", {"name": name, "arguments": arguments})
        return response["result"]["content"][0]["text"]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def server_env(tmp_path: Path) -> dict[str, str]:
    env = {k: v for k, v in os.environ.items() if not k.startswith("DCM_")}
    env["PYTHONPATH"] = str(SRC_DIR) + os.pathsep + env.get("PYTHONPATH", "")
    env["DCM_CONFIG_FILE"] = str(tmp_path / "config.json")
    env["DCM_TIMEOUT_MS"] = "200"
    return env


async def _start_server(env: dict[str, str]) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        sys.executable, "-m", "desktop_commander",
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
        env=env,
    )


async def _stop_server(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        process.kill()
        await process.wait()


# ============================================================================
# Integration Tests
# ============================================================================


@pytest.mark.integration
@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signal handling")
class TestStdioServer:
    """End-to-end tests over the stdio transport."""

    @pytest.mark.asyncio
    async def test_run_and_read_over_stdio(self, server_env: dict[str, str]):
        process = await _start_server(server_env)
        client = MCPClient(process)
        await client.start_reading()
        try:
            init = await client.initialize()
            assert init["result"]["serverInfo"]["name"] == "desktop-commander-mcp"

            tools = await client.list_tools()
            names = [tool["name"] for tool in tools["result"]["tools"]]
            assert "desktop_cmd_run" in names
            assert "desktop_cmd_block" not in names

            text = await client.call_tool_text("desktop_cmd_run", {"command": "echo hello"})
            assert "Initial output:\nhello\n" in text

            pid = int(re.search(r"PID (\d+)", text).group(1))
            text = await client.call_tool_text("desktop_cmd_output", {"pid": pid})
            assert text.startswith("Process completed with exit code 0")
        finally:
            await client.stop_reading()
            await _stop_server(process)

    @pytest.mark.asyncio
    async def test_sigint_terminates_sessions_not_server(self, server_env: dict[str, str]):
        """SIGINT (mode=cancel) ends the running session; the server keeps serving."""
        process = await _start_server(server_env)
        client = MCPClient(process)
        await client.start_reading()
        try:
            await client.initialize()

            text = await client.call_tool_text("desktop_cmd_run", {"command": "sleep 30"})
            assert "Command is still running" in text
            pid = int(re.search(r"PID (\d+)", text).group(1))

            os.kill(process.pid, signal.SIGINT)

            sessions = ""
            for _ in range(40):
                await asyncio.sleep(0.1)
                sessions = await client.call_tool_text("desktop_cmd_list_sessions", {})
                if sessions == "No active sessions":
                    break
            assert sessions == "No active sessions"
            assert process.returncode is None

            completed = await client.call_tool_text("desktop_cmd_list_completed", {})
            assert f"PID: {pid}" in completed

            # Closing stdin ends the stdio transport and the server exits.
            assert process.stdin is not None
            process.stdin.close()
            await asyncio.wait_for(process.wait(), timeout=10)
            assert process.returncode == 0
        finally:
            await client.stop_reading()
            await _stop_server(process)
