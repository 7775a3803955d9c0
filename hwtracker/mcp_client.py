"""Async JSON-RPC client for the remote storage tool service (MCP over WebSocket).

One WebSocket carries every call. Each outbound request gets a fresh id and a
future in the pending map; a background reader resolves futures by id. Calls
time out independently and a late response for a timed-out id is dropped.
"""

import asyncio
import itertools
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import websockets
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed
from websockets.exceptions import ConnectionClosed, WebSocketException

from hwtracker.config_loader import DEFAULT_MCP_URL
from hwtracker.errors import (
    RpcCallTimeoutError,
    RpcConnectionError,
    RpcNotConnectedError,
    RpcRemoteError,
)

_RETRYABLE_CONNECT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class McpTool:
    """A remote tool as advertised by `tools/list`."""

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "McpTool":
        return cls(
            name=str(data.get("name", "")),
            description=str(data.get("description") or ""),
            input_schema=dict(data.get("inputSchema") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": self.input_schema}


@dataclass(frozen=True)
class DisconnectInfo:
    code: Optional[int]
    reason: str


class McpClient:
    """Client for a JSON-RPC 2.0 tool service reachable over one WebSocket."""

    def __init__(
        self,
        url: str = DEFAULT_MCP_URL,
        timeout: float = 30.0,
        retry_attempts: int = 1,
        retry_delay: float = 1.0,
        call_timeout: Optional[float] = None,
        connector: Optional[Callable[[str], Any]] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.call_timeout = call_timeout if call_timeout is not None else timeout
        self.retry_attempts = max(1, int(retry_attempts))
        self.retry_delay = retry_delay
        self.connector = connector or websockets.connect

        self.state = ConnectionState.DISCONNECTED
        self.last_disconnect: Optional[DisconnectInfo] = None
        self._ws = None
        self._reader_task: Optional[asyncio.Task] = None
        self._closed: Optional[asyncio.Event] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._pending_lock = asyncio.Lock()
        self._call_ids = itertools.count(1)

    @classmethod
    def from_config(cls, mcp_config: Dict[str, Any]) -> "McpClient":
        return cls(
            url=mcp_config.get("url", DEFAULT_MCP_URL),
            timeout=float(mcp_config.get("timeout", 30.0)),
            retry_attempts=int(mcp_config.get("retry_attempts", 1)),
            retry_delay=float(mcp_config.get("retry_delay", 1.0)),
        )

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    async def connect(self) -> None:
        """Open the connection, retrying with a fixed delay between attempts."""
        if self.is_connected:
            return

        self.state = ConnectionState.CONNECTING
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_fixed(self.retry_delay),
                retry=retry_if_exception_type(_RETRYABLE_CONNECT_ERRORS),
                before_sleep=lambda state: logger.warning(
                    f"Retrying MCP connection in {self.retry_delay}s "
                    f"({state.outcome.exception()!r})"
                ),
                reraise=True,
            ):
                with attempt:
                    await self._open(attempt.retry_state.attempt_number)
        except asyncio.TimeoutError as e:
            self.state = ConnectionState.DISCONNECTED
            raise RpcConnectionError(
                f"Connection timeout: no answer from {self.url} within {self.timeout}s "
                f"after {self.retry_attempts} attempt(s)"
            ) from e
        except _RETRYABLE_CONNECT_ERRORS as e:
            self.state = ConnectionState.DISCONNECTED
            if isinstance(e, ConnectionRefusedError):
                message = (
                    f"Failed to connect to MCP server at {self.url}. "
                    f"Make sure the MCP server is running and accessible. {e}"
                )
            else:
                message = f"Failed to connect to MCP server after {self.retry_attempts} attempts: {e}"
            raise RpcConnectionError(message) from e

    async def _open(self, attempt: int) -> None:
        logger.info(f"Connecting to MCP server at {self.url} (attempt {attempt}/{self.retry_attempts})...")
        ws = await asyncio.wait_for(self.connector(self.url), timeout=self.timeout)
        self._ws = ws
        self._closed = asyncio.Event()
        self.last_disconnect = None
        self.state = ConnectionState.CONNECTED
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        logger.info("Connected to MCP server")

    async def disconnect(self) -> Optional[DisconnectInfo]:
        """Close the connection. A no-op when not connected."""
        if not self.is_connected or self._ws is None:
            return None

        await self._ws.close()
        if self._reader_task is not None:
            await self._reader_task
        logger.info("Disconnected from MCP server")
        return self.last_disconnect

    async def wait_disconnected(self) -> Optional[DisconnectInfo]:
        """Wait until the current connection closes and return its close code/reason."""
        if self._closed is None:
            return self.last_disconnect
        await self._closed.wait()
        return self.last_disconnect

    async def _read_loop(self, ws) -> None:
        try:
            async for raw in ws:
                await self._handle_message(raw)
        except ConnectionClosed:
            pass
        except WebSocketException as e:
            logger.error(f"MCP WebSocket error: {e}")
        finally:
            await self._on_closed(ws)

    async def _on_closed(self, ws) -> None:
        if ws is not self._ws:
            return
        info = DisconnectInfo(
            code=getattr(ws, "close_code", None),
            reason=getattr(ws, "close_reason", None) or "",
        )
        self.state = ConnectionState.DISCONNECTED
        self.last_disconnect = info
        self._ws = None
        logger.info(f"MCP connection closed: {info.code} - {info.reason}")

        async with self._pending_lock:
            orphaned = list(self._pending.values())
            self._pending.clear()
        for future in orphaned:
            if not future.done():
                future.set_exception(RpcConnectionError("MCP connection closed before response"))

        if self._closed is not None:
            self._closed.set()

    async def _handle_message(self, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to parse MCP message: {e}")
            return
        if not isinstance(message, dict) or message.get("id") is None:
            return

        call_id = str(message["id"])
        async with self._pending_lock:
            future = self._pending.pop(call_id, None)
        if future is None or future.done():
            logger.debug(f"Ignoring MCP response for unknown call id {call_id}")
            return

        error = message.get("error")
        if error:
            if isinstance(error, dict):
                future.set_exception(
                    RpcRemoteError(error.get("code"), str(error.get("message", "")), error.get("data"))
                )
            else:
                future.set_exception(RpcRemoteError(None, str(error)))
        else:
            future.set_result(message.get("result"))

    async def call_method(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Send one request and wait for its correlated response."""
        if not self.is_connected or self._ws is None:
            raise RpcNotConnectedError("Not connected to MCP server")

        call_id = str(next(self._call_ids))
        future = asyncio.get_running_loop().create_future()
        async with self._pending_lock:
            self._pending[call_id] = future

        request: Dict[str, Any] = {"jsonrpc": "2.0", "id": call_id, "method": method}
        if params is not None:
            request["params"] = params

        try:
            await self._ws.send(json.dumps(request))
            return await asyncio.wait_for(future, timeout=self.call_timeout)
        except asyncio.TimeoutError:
            raise RpcCallTimeoutError(method) from None
        except ConnectionClosed as e:
            raise RpcConnectionError(f"MCP connection closed while calling {method}: {e}") from e
        finally:
            async with self._pending_lock:
                self._pending.pop(call_id, None)

    async def list_tools(self) -> List[McpTool]:
        logger.info("Discovering available MCP tools...")
        result = await self.call_method("tools/list")
        tools = result.get("tools") if isinstance(result, dict) else None
        tools = tools or []
        logger.info(f"Found {len(tools)} available tools")
        return [McpTool.from_dict(tool) for tool in tools if isinstance(tool, dict)]

    async def call_tool(self, tool_name: str, arguments: Dict[str, Any]) -> Any:
        logger.info(f"Calling MCP tool: {tool_name}")
        return await self.call_method("tools/call", {"name": tool_name, "arguments": arguments})
