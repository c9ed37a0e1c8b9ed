"""Client-side transports for XSWD sessions.

Transports only move text; they know nothing about ids, handshakes or
events. Sessions drive them.

Architecture:
- DuplexTransport is the PROTOCOL for persistent full-duplex channels
  (the wallet's XSWD WebSocket). Inbound frames are read as an async
  iterator that ends when the remote side closes.
- ExchangeTransport is the PROTOCOL for single request/response
  channels (a daemon's JSON-RPC HTTP endpoint).
- Mock implementations keep everything in memory for tests.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Protocol, runtime_checkable

import httpx
import websockets
from websockets.exceptions import ConnectionClosedError, WebSocketException

from .config import SessionConfig
from .errors import TransportError

logger = logging.getLogger(__name__)


@runtime_checkable
class DuplexTransport(Protocol):
    """Protocol for persistent full-duplex transports.

    The transport handles:
    - Connection management
    - Sending text frames
    - Yielding inbound frames until the connection closes
    """

    async def open(self) -> None:
        """Establish the connection.

        Raises:
            TransportError: If the connection cannot be established
        """
        ...

    async def send(self, text: str) -> None:
        """Send one text frame."""
        ...

    def frames(self) -> AsyncIterator[str | bytes]:
        """Yield inbound frames.

        Ends normally when the remote side closes; raises TransportError
        when the connection is lost.
        """
        ...

    async def close(self) -> None:
        """Close the connection gracefully."""
        ...


@runtime_checkable
class ExchangeTransport(Protocol):
    """Protocol for single request/response transports."""

    async def open(self) -> None: ...

    async def exchange(self, text: str) -> str:
        """Send one complete message and return the complete reply."""
        ...

    async def close(self) -> None: ...


class WebSocketTransport:
    """Transport over a WebSocket (the wallet's XSWD endpoint)."""

    def __init__(self, url: str, open_timeout: float | None = 10.0) -> None:
        self.url = url
        self.open_timeout = open_timeout
        self._ws: Any = None  # websockets ClientConnection

    async def open(self) -> None:
        if self._ws is not None:
            raise TransportError("WebSocket is already open")
        try:
            self._ws = await websockets.connect(
                self.url,
                open_timeout=self.open_timeout,
                ping_interval=30,
                ping_timeout=10,
                max_size=None,
            )
        except (OSError, TimeoutError, WebSocketException) as e:
            raise TransportError(f"Failed to connect to {self.url}: {e}") from e
        logger.info(f"WebSocket connected to {self.url}")

    async def send(self, text: str) -> None:
        if not self._ws:
            raise TransportError("WebSocket not connected")
        try:
            await self._ws.send(text)
        except WebSocketException as e:
            raise TransportError(f"WebSocket send failed: {e}") from e

    async def frames(self) -> AsyncIterator[str | bytes]:
        if not self._ws:
            raise TransportError("WebSocket not connected")
        try:
            async for data in self._ws:
                yield data
        except ConnectionClosedError as e:
            raise TransportError(f"WebSocket connection lost: {e}") from e

    async def close(self) -> None:
        if self._ws:
            await self._ws.close()
            self._ws = None
            logger.info(f"WebSocket to {self.url} closed")


class HTTPExchangeTransport:
    """Transport over HTTP POST to a JSON-RPC endpoint.

    Each exchange posts one request body and returns the response body.
    """

    def __init__(self, url: str, timeout: float | None = 30.0) -> None:
        self.url = url
        self.timeout = timeout
        self._http_client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))

    async def exchange(self, text: str) -> str:
        if not self._http_client:
            raise TransportError("HTTP client not open")
        try:
            response = await self._http_client.post(
                self.url,
                content=text.encode("utf-8"),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP exchange with {self.url} failed: {e}") from e
        return response.text

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class _CannedReplies:
    """Canned result/error replies keyed by method name."""

    def __init__(self) -> None:
        self._results: dict[str, Any] = {}
        self._errors: dict[str, dict[str, Any]] = {}

    def set_response(self, method: str, result: Any) -> None:
        """Set the result for a method; a callable receives the params."""
        self._errors.pop(method, None)
        self._results[method] = result

    def set_error(self, method: str, message: str, code: int = -32000) -> None:
        self._results.pop(method, None)
        self._errors[method] = {"message": message, "code": code}

    def reply_for(self, request: dict[str, Any]) -> dict[str, Any] | None:
        method = request.get("method", "")
        base = {"jsonrpc": "2.0", "id": request.get("id")}
        if method in self._errors:
            return {**base, "error": self._errors[method]}
        if method in self._results:
            result = self._results[method]
            if callable(result):
                result = result(request.get("params"))
            return {**base, "result": result}
        return None


class MockDuplexTransport(_CannedReplies):
    """Mock duplex transport for testing.

    Records sent frames and lets tests push inbound frames. Answers the
    handshake with ``auth_reply`` (unless None) and requests whose method
    has a canned response.

    Usage:
        transport = MockDuplexTransport()
        transport.set_response("DERO.Ping", "Pong ")
        session = PrimarySession(app_info, transport=transport)
        await session.initialize()
        assert await session.send(Entity.DAEMON, "DERO.Ping") == "Pong "
    """

    def __init__(
        self,
        auth_reply: dict[str, Any] | None = None,
        fail_open: BaseException | None = None,
    ) -> None:
        super().__init__()
        self.auth_reply = auth_reply if auth_reply is not None else {"accepted": True, "message": ""}
        self.answer_handshake = True
        self.fail_open = fail_open
        self.opened = False
        self.closed = False
        self._sent: list[str] = []
        self._inbox: asyncio.Queue[str | bytes | BaseException | None] = asyncio.Queue()

    @property
    def sent(self) -> list[dict[str, Any]]:
        """Decoded copies of every frame sent."""
        return [json.loads(text) for text in self._sent]

    def push(self, frame: str | bytes | dict[str, Any]) -> None:
        """Queue an inbound frame (dicts are JSON-encoded)."""
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._inbox.put_nowait(frame)

    def push_error(self, error: BaseException) -> None:
        """Make the frame stream fail, as a dropped connection would."""
        self._inbox.put_nowait(error)

    def close_remote(self) -> None:
        """End the frame stream, as a remote close would."""
        self._inbox.put_nowait(None)

    async def open(self) -> None:
        if self.fail_open is not None:
            raise self.fail_open
        self.opened = True

    async def send(self, text: str) -> None:
        if self.closed:
            raise TransportError("Mock transport closed")
        self._sent.append(text)
        message = json.loads(text)
        # The handshake identity carries an id but is not a call
        if "method" not in message:
            if self.answer_handshake:
                self.push(self.auth_reply)
            return
        reply = self.reply_for(message)
        if reply is not None:
            self.push(reply)

    async def frames(self) -> AsyncIterator[str | bytes]:
        while True:
            item = await self._inbox.get()
            if item is None:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(None)


class MockExchangeTransport(_CannedReplies):
    """Mock request/response transport for testing.

    Unknown methods get a JSON-RPC "method not found" error reply.
    """

    def __init__(self, fail_with: BaseException | None = None) -> None:
        super().__init__()
        self.fail_with = fail_with
        self.opened = False
        self.closed = False
        self._sent: list[str] = []

    @property
    def sent(self) -> list[dict[str, Any]]:
        return [json.loads(text) for text in self._sent]

    async def open(self) -> None:
        self.opened = True

    async def exchange(self, text: str) -> str:
        if self.closed:
            raise TransportError("Mock transport closed")
        self._sent.append(text)
        if self.fail_with is not None:
            raise self.fail_with
        request = json.loads(text)
        reply = self.reply_for(request) or {
            "jsonrpc": "2.0",
            "id": request.get("id"),
            "error": {"message": "Method not found", "code": -32601},
        }
        return json.dumps(reply)

    async def close(self) -> None:
        self.closed = True


# Factory functions


def create_websocket_transport(config: SessionConfig) -> WebSocketTransport:
    """Create the primary transport for a config.

    Args:
        config: Endpoint configuration (``secure`` selects wss://)

    Returns:
        WebSocketTransport for the XSWD endpoint
    """
    return WebSocketTransport(config.websocket_url)


def create_http_transport(config: SessionConfig) -> HTTPExchangeTransport:
    """Create the fallback transport for a config.

    Args:
        config: Endpoint configuration (``secure`` selects https://)

    Returns:
        HTTPExchangeTransport for the JSON-RPC endpoint
    """
    return HTTPExchangeTransport(config.http_url, timeout=config.request_timeout)
