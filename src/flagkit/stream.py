"""Push channel: WebSocket client abstraction and implementations."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto

import aiohttp


class MessageType(Enum):
    """WebSocket message type."""

    TEXT = auto()
    BINARY = auto()
    CLOSE = auto()


@dataclass
class WsMessage:
    """WebSocket message."""

    type: MessageType
    payload: str | bytes = b""

    @staticmethod
    def text(s: str) -> WsMessage:
        return WsMessage(type=MessageType.TEXT, payload=s)

    @staticmethod
    def close() -> WsMessage:
        return WsMessage(type=MessageType.CLOSE)


class ConnectionState(Enum):
    """WebSocket connection state."""

    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    CLOSING = auto()


class WsError(Exception):
    """WebSocket error."""

    class Code(Enum):
        NOT_CONNECTED = auto()
        ALREADY_CONNECTED = auto()
        CONNECTION_FAILED = auto()

    def __init__(self, message: str, code: WsError.Code) -> None:
        super().__init__(message)
        self.code = code


class WsClient(ABC):
    """Abstract WebSocket client.

    ``receive`` waits for the next message and returns a CLOSE message once
    the peer has gone away.
    """

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...

    @abstractmethod
    async def receive(self) -> WsMessage:
        ...

    @property
    @abstractmethod
    def state(self) -> ConnectionState:
        ...


class AiohttpWsClient(WsClient):
    """WebSocket client backed by aiohttp."""

    def __init__(self, url: str, connect_timeout: float = 10.0, heartbeat: float | None = 30.0) -> None:
        self._url = url
        self._connect_timeout = connect_timeout
        self._heartbeat = heartbeat
        self._state = ConnectionState.DISCONNECTED
        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def connect(self) -> None:
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            raise WsError("Already connected", WsError.Code.ALREADY_CONNECTED)
        self._state = ConnectionState.CONNECTING
        session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=None, connect=self._connect_timeout)
        )
        try:
            self._ws = await session.ws_connect(self._url, heartbeat=self._heartbeat)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            await session.close()
            self._state = ConnectionState.DISCONNECTED
            raise WsError(f"Failed to connect to {self._url}: {e}", WsError.Code.CONNECTION_FAILED) from e
        self._session = session
        self._state = ConnectionState.CONNECTED

    async def disconnect(self) -> None:
        self._state = ConnectionState.CLOSING
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._session is not None:
            await self._session.close()
            self._session = None
        self._state = ConnectionState.DISCONNECTED

    async def receive(self) -> WsMessage:
        if self._ws is None or self._state != ConnectionState.CONNECTED:
            raise WsError("Not connected", WsError.Code.NOT_CONNECTED)
        msg = await self._ws.receive()
        if msg.type == aiohttp.WSMsgType.TEXT:
            return WsMessage.text(msg.data)
        if msg.type == aiohttp.WSMsgType.BINARY:
            return WsMessage(type=MessageType.BINARY, payload=msg.data)
        if msg.type == aiohttp.WSMsgType.ERROR:
            raise WsError(f"WebSocket error: {self._ws.exception()}", WsError.Code.CONNECTION_FAILED)
        return WsMessage.close()


class InMemoryWsClient(WsClient):
    """In-memory WebSocket client for testing."""

    def __init__(self, fail_connect: bool = False) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._recv_queue: asyncio.Queue[WsMessage] = asyncio.Queue()
        self.fail_connect = fail_connect
        self.connect_count = 0

    @property
    def state(self) -> ConnectionState:
        return self._state

    async def connect(self) -> None:
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            raise WsError("Already connected", WsError.Code.ALREADY_CONNECTED)
        self.connect_count += 1
        if self.fail_connect:
            raise WsError("Connection refused", WsError.Code.CONNECTION_FAILED)
        self._state = ConnectionState.CONNECTED

    async def disconnect(self) -> None:
        self._state = ConnectionState.CLOSING
        self._state = ConnectionState.DISCONNECTED

    async def receive(self) -> WsMessage:
        if self._state != ConnectionState.CONNECTED:
            raise WsError("Not connected", WsError.Code.NOT_CONNECTED)
        msg = await self._recv_queue.get()
        if msg.type == MessageType.CLOSE:
            self._state = ConnectionState.DISCONNECTED
        return msg

    def inject_message(self, msg: WsMessage) -> None:
        self._recv_queue.put_nowait(msg)

    def inject_close(self) -> None:
        """Simulate the server dropping the connection."""
        self._recv_queue.put_nowait(WsMessage.close())
