"""RPC client tests against an in-memory WebSocket."""

import asyncio
import json
import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from hwtracker.errors import (
    RpcCallTimeoutError,
    RpcConnectionError,
    RpcNotConnectedError,
    RpcRemoteError,
)
from hwtracker.mcp_client import ConnectionState, McpClient

_CLOSED = object()


class FakeWebSocket:
    """Queue-backed stand-in for a websockets client connection."""

    def __init__(self, responder=None):
        self.responder = responder
        self.sent = []
        self.close_code = None
        self.close_reason = ""
        self._incoming = asyncio.Queue()

    def push(self, message):
        self._incoming.put_nowait(json.dumps(message))

    async def send(self, raw):
        request = json.loads(raw)
        self.sent.append(request)
        if self.responder is not None:
            reply = self.responder(request)
            if reply is not None:
                self.push(reply)

    async def close(self, code=1000, reason=""):
        if self.close_code is None:
            self.close_code = code
            self.close_reason = reason
            self._incoming.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        raw = await self._incoming.get()
        if raw is _CLOSED:
            raise StopAsyncIteration
        return raw


def _connector(ws):
    async def connect(url):
        return ws

    return connect


class TestMcpClient(unittest.IsolatedAsyncioTestCase):
    async def test_list_tools_empty(self):
        ws = FakeWebSocket(lambda req: {"jsonrpc": "2.0", "id": req["id"], "result": {"tools": []}})
        client = McpClient(connector=_connector(ws))
        await client.connect()

        self.assertEqual(await client.list_tools(), [])
        self.assertEqual(ws.sent[0]["method"], "tools/list")
        self.assertEqual(ws.sent[0]["jsonrpc"], "2.0")
        await client.disconnect()

    async def test_list_tools_parses_schema(self):
        tools = [{"name": "store_scrape", "description": "Persist", "inputSchema": {"type": "object"}}]
        ws = FakeWebSocket(lambda req: {"id": req["id"], "result": {"tools": tools}})
        async with McpClient(connector=_connector(ws)) as client:
            result = await client.list_tools()
        self.assertEqual(result[0].name, "store_scrape")
        self.assertEqual(result[0].input_schema, {"type": "object"})

    async def test_call_tool_sends_name_and_arguments(self):
        ws = FakeWebSocket(lambda req: {"id": req["id"], "result": {"ok": True}})
        async with McpClient(connector=_connector(ws)) as client:
            result = await client.call_tool("store_scrape", {"scrape": {}})
        self.assertEqual(result, {"ok": True})
        self.assertEqual(ws.sent[0]["method"], "tools/call")
        self.assertEqual(ws.sent[0]["params"], {"name": "store_scrape", "arguments": {"scrape": {}}})

    async def test_unknown_id_is_ignored(self):
        def responder(req):
            ws.push({"id": "999", "result": "stray"})
            return {"id": req["id"], "result": "mine"}

        ws = FakeWebSocket(responder)
        async with McpClient(connector=_connector(ws)) as client:
            self.assertEqual(await client.call_method("ping"), "mine")
            self.assertEqual(client.pending_count, 0)

    async def test_timeout_then_late_response_is_noop(self):
        ws = FakeWebSocket()
        client = McpClient(connector=_connector(ws), call_timeout=0.05)
        await client.connect()

        with self.assertRaises(RpcCallTimeoutError) as ctx:
            await client.call_method("tools/list")
        self.assertEqual(str(ctx.exception), "MCP call timeout for method: tools/list")
        self.assertEqual(client.pending_count, 0)

        ws.push({"id": ws.sent[0]["id"], "result": {"tools": []}})
        await asyncio.sleep(0.01)
        self.assertTrue(client.is_connected)
        await client.disconnect()

    async def test_concurrent_calls_resolve_by_id(self):
        held = []

        def responder(req):
            held.append(req)
            if len(held) == 2:
                for queued in reversed(held):
                    ws.push({"id": queued["id"], "result": queued["params"]["n"]})
            return None

        ws = FakeWebSocket(responder)
        async with McpClient(connector=_connector(ws)) as client:
            first, second = await asyncio.gather(
                client.call_method("echo", {"n": 1}),
                client.call_method("echo", {"n": 2}),
            )
        self.assertEqual((first, second), (1, 2))
        self.assertNotEqual(ws.sent[0]["id"], ws.sent[1]["id"])

    async def test_remote_error(self):
        ws = FakeWebSocket(
            lambda req: {"id": req["id"], "error": {"code": -32601, "message": "Method not found"}}
        )
        async with McpClient(connector=_connector(ws)) as client:
            with self.assertRaises(RpcRemoteError) as ctx:
                await client.call_method("nope")
        self.assertEqual(ctx.exception.code, -32601)
        self.assertEqual(str(ctx.exception), "MCP Error -32601: Method not found")

    async def test_close_fails_pending_calls(self):
        ws = FakeWebSocket()
        client = McpClient(connector=_connector(ws), call_timeout=5)
        await client.connect()

        call = asyncio.create_task(client.call_method("slow"))
        await asyncio.sleep(0.01)
        await ws.close(1001, "going away")

        with self.assertRaises(RpcConnectionError):
            await call
        info = await client.wait_disconnected()
        self.assertEqual((info.code, info.reason), (1001, "going away"))
        self.assertEqual(client.state, ConnectionState.DISCONNECTED)

    async def test_call_without_connection(self):
        with self.assertRaises(RpcNotConnectedError):
            await McpClient().call_method("tools/list")

    async def test_disconnect_when_not_connected_is_noop(self):
        client = McpClient()
        self.assertIsNone(await client.disconnect())
        self.assertEqual(client.state, ConnectionState.DISCONNECTED)

    async def test_connect_timeout_retries_then_fails(self):
        attempts = []

        async def hang(url):
            attempts.append(url)
            await asyncio.sleep(10)

        client = McpClient(url="ws://mcp.test/ws", timeout=0.02, retry_attempts=2, retry_delay=0, connector=hang)
        with self.assertRaises(RpcConnectionError) as ctx:
            await client.connect()
        self.assertIn("Connection timeout", str(ctx.exception))
        self.assertEqual(len(attempts), 2)
        self.assertEqual(client.state, ConnectionState.DISCONNECTED)

    async def test_connection_refused(self):
        async def refuse(url):
            raise ConnectionRefusedError(111, "Connection refused")

        client = McpClient(retry_attempts=1, connector=refuse)
        with self.assertRaises(RpcConnectionError) as ctx:
            await client.connect()
        self.assertIn("Make sure the MCP server is running", str(ctx.exception))

    async def test_from_config(self):
        client = McpClient.from_config({"url": "ws://h:1/ws", "timeout": 5, "retry_attempts": 3, "retry_delay": 0.5})
        self.assertEqual(client.url, "ws://h:1/ws")
        self.assertEqual(client.retry_attempts, 3)
        self.assertEqual(client.call_timeout, 5.0)


if __name__ == "__main__":
    unittest.main()
