"""ClientRuntime: process-side cache of evaluated flags."""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, Protocol

import structlog

from .config import ClientConfig
from .events import (
    ConnectionEvent,
    ErrorEvent,
    EventChannel,
    EventEmitter,
    EventHandler,
    ReadyEvent,
    Subscription,
    UpdateEvent,
)
from .exceptions import FlagKitError, FlagKitErrorCodes
from .metrics import snapshot_fetch_errors_total, stream_messages_total
from .models import EvaluationContext, FlagEvaluationResult
from .stream import AiohttpWsClient, MessageType, WsClient
from .transport import HttpSnapshotClient

logger = structlog.stdlib.get_logger(__name__)

_MISSING: Any = object()

FLAG_UPDATE = "flag_update"


class RuntimeState(Enum):
    """Lifecycle of a ClientRuntime. CLOSED is terminal."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    CLOSED = "closed"


class SnapshotFetcher(Protocol):
    """Source of evaluated flags."""

    async def fetch_snapshot(
        self, context: EvaluationContext | None = None
    ) -> dict[str, FlagEvaluationResult]: ...

    async def evaluate(
        self, flag_key: str, context: EvaluationContext | None = None
    ) -> FlagEvaluationResult: ...


StreamFactory = Callable[[str], WsClient]


def _wire_form(result: FlagEvaluationResult) -> str:
    return json.dumps(result.to_dict(), sort_keys=True, default=str)


def _flags_differ(
    old: Mapping[str, FlagEvaluationResult], new: Mapping[str, FlagEvaluationResult]
) -> bool:
    """Compare two flag maps entry by entry in their wire form.

    ``1``, ``1.0`` and ``True`` are distinct flag values even though they
    compare equal with ``==``.
    """
    if len(old) != len(new):
        return True
    for key, result in new.items():
        previous = old.get(key)
        if previous is None or _wire_form(previous) != _wire_form(result):
            return True
    return False


def _as_error(e: Exception) -> FlagKitError:
    if isinstance(e, FlagKitError):
        return e
    return FlagKitError(
        code=FlagKitErrorCodes.HTTP_ERROR,
        message=f"Failed to fetch flag snapshot: {e}",
        cause=e,
    )


class ClientRuntime:
    """Caches an environment's evaluated flags and keeps them fresh.

    The cache is written only by the initial fetch, poll ticks, context
    re-fetches and push messages. Those writers hold ``_write_lock`` and
    either swap the whole map or replace it with a patched copy, so getters
    always see a complete map without waiting.
    """

    def __init__(
        self,
        config: ClientConfig,
        fetcher: SnapshotFetcher | None = None,
        stream_factory: StreamFactory | None = None,
        context: EvaluationContext | None = None,
    ) -> None:
        self._config = config
        self._fetcher: SnapshotFetcher = fetcher or HttpSnapshotClient(config)
        self._stream_factory: StreamFactory = stream_factory or (
            lambda url: AiohttpWsClient(url, connect_timeout=config.timeout_seconds)
        )
        self._context = context
        self._flags: dict[str, FlagEvaluationResult] = {}
        self._state = RuntimeState.UNINITIALIZED
        self._events = EventEmitter()
        self._write_lock = asyncio.Lock()
        self._poll_task: asyncio.Task[None] | None = None
        self._stream_task: asyncio.Task[None] | None = None
        self._ws: WsClient | None = None

    async def __aenter__(self) -> ClientRuntime:
        await self.initialize()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def state(self) -> RuntimeState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is RuntimeState.READY

    @property
    def stream_url(self) -> str:
        base = self._config.stream_url.rstrip("/")
        return f"{base}/sdk/v1/{self._config.key_type}/{self._config.sdk_key}/stream"

    def on(self, channel: EventChannel, handler: EventHandler) -> Subscription:
        """Subscribe to a runtime event channel."""
        return self._events.subscribe(channel, handler)

    async def initialize(self) -> None:
        """Load the first snapshot and start background refresh.

        Raises:
            FlagKitError: when the fetch fails (the runtime stays
                uninitialized) or the runtime has been closed.
        """
        async with self._write_lock:
            if self._state is RuntimeState.READY:
                return
            if self._state is RuntimeState.CLOSED:
                raise FlagKitError(FlagKitErrorCodes.CLOSED, "FlagKit runtime is closed")
            self._state = RuntimeState.INITIALIZING
            try:
                flags = await self._fetcher.fetch_snapshot(self._context)
            except asyncio.CancelledError:
                self._reset_after_failed_init()
                raise
            except Exception as e:
                self._reset_after_failed_init()
                failure: FlagKitError | None = _as_error(e)
            else:
                failure = None
                if self._state is RuntimeState.CLOSED:
                    raise FlagKitError(FlagKitErrorCodes.CLOSED, "FlagKit runtime was closed during initialization")
                self._flags = flags
                self._state = RuntimeState.READY
                self._start_background_tasks()

        if failure is not None:
            snapshot_fetch_errors_total.add(1, {"phase": "initialize"})
            logger.error("initial flag fetch failed", error=str(failure))
            await self._events.publish(ErrorEvent(error=failure))
            raise failure

        logger.info("flagkit runtime ready", flags=len(flags))
        await self._events.publish(ReadyEvent(flag_count=len(flags)))

    async def refresh(self) -> bool:
        """Run one poll tick: re-fetch and swap the map if it changed.

        A failed fetch emits an error event and keeps the cached map.
        Returns whether the map changed.
        """
        self._ensure_ready()
        error: Exception | None = None
        changed = False
        async with self._write_lock:
            try:
                flags = await self._fetcher.fetch_snapshot(self._context)
            except Exception as e:
                error = e
            else:
                if self._state is not RuntimeState.READY:
                    return False
                changed = _flags_differ(self._flags, flags)
                if changed:
                    self._flags = flags

        if error is not None:
            snapshot_fetch_errors_total.add(1, {"phase": "poll"})
            logger.warning("flag poll failed, keeping cached flags", error=str(error))
            await self._events.publish(ErrorEvent(error=_as_error(error)))
            return False
        if changed:
            logger.debug("flags updated by poll", flags=len(flags))
            await self._events.publish(UpdateEvent(flags=dict(flags)))
        return changed

    async def update_context(
        self, context: EvaluationContext, reevaluate: bool = True
    ) -> None:
        """Replace the evaluation context, re-fetching flags for it when asked.

        Raises:
            FlagKitError: when the re-fetch fails; the cached map is kept.
        """
        self._context = context
        if not reevaluate or self._state is not RuntimeState.READY:
            return
        async with self._write_lock:
            try:
                flags = await self._fetcher.fetch_snapshot(context)
            except Exception as e:
                failure: FlagKitError | None = _as_error(e)
            else:
                failure = None
                if self._state is not RuntimeState.READY:
                    return
                self._flags = flags

        if failure is not None:
            snapshot_fetch_errors_total.add(1, {"phase": "context"})
            await self._events.publish(ErrorEvent(error=failure))
            raise failure
        await self._events.publish(UpdateEvent(flags=dict(flags)))

    def get_context(self) -> EvaluationContext | None:
        return self._context

    async def evaluate_flag(
        self, flag_key: str, context: EvaluationContext | None = None
    ) -> FlagEvaluationResult | None:
        """Ask the server to evaluate one flag; ``None`` on any failure."""
        try:
            return await self._fetcher.evaluate(flag_key, context or self._context)
        except Exception as e:
            logger.warning("flag evaluation request failed", flag_key=flag_key, error=str(e))
            return None

    def get_boolean_flag(self, key: str, default: bool = False) -> bool:
        value = self._lookup(key)
        if isinstance(value, bool):
            return value
        return self._fallback(key, value, default)

    def get_string_flag(self, key: str, default: str = "") -> str:
        value = self._lookup(key)
        if isinstance(value, str):
            return value
        return self._fallback(key, value, default)

    def get_number_flag(self, key: str, default: float = 0) -> float:
        value = self._lookup(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        return self._fallback(key, value, default)

    def get_json_flag(self, key: str, default: Any = None) -> Any:
        value = self._lookup(key)
        if value is _MISSING or value is None:
            return self._fallback(key, value, default)
        return value

    def get_flag(self, key: str) -> FlagEvaluationResult | None:
        """Full evaluation details of one flag."""
        self._ensure_ready()
        return self._flags.get(key)

    def get_all_flags(self) -> dict[str, FlagEvaluationResult]:
        self._ensure_ready()
        return dict(self._flags)

    async def close(self) -> None:
        """Stop background work and drop the cache. Safe to call repeatedly."""
        if self._state is RuntimeState.CLOSED:
            return
        self._state = RuntimeState.CLOSED

        current = asyncio.current_task()
        tasks = [t for t in (self._poll_task, self._stream_task) if t is not None]
        self._poll_task = None
        self._stream_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            if task is current:
                continue
            with contextlib.suppress(asyncio.CancelledError):
                await task

        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.disconnect()
            except Exception as e:
                logger.warning("failed to close push connection", error=str(e))

        self._flags = {}
        self._events.clear()
        logger.info("flagkit runtime closed")

    def _ensure_ready(self) -> None:
        if self._state is not RuntimeState.READY:
            raise FlagKitError(
                FlagKitErrorCodes.NOT_INITIALIZED,
                "FlagKit runtime is not initialized. Call initialize() before accessing flags.",
            )

    def _lookup(self, key: str) -> Any:
        self._ensure_ready()
        flag = self._flags.get(key)
        return _MISSING if flag is None else flag.value

    def _fallback(self, key: str, value: Any, default: Any) -> Any:
        if value is _MISSING:
            logger.debug("flag not found, returning default", flag_key=key)
        else:
            logger.debug("flag value has unexpected type, returning default", flag_key=key)
        return default

    def _reset_after_failed_init(self) -> None:
        if self._state is RuntimeState.INITIALIZING:
            self._state = RuntimeState.UNINITIALIZED

    def _start_background_tasks(self) -> None:
        if self._config.polling_interval > 0:
            self._poll_task = asyncio.create_task(self._poll_loop())
        if self._config.enable_streaming:
            self._stream_task = asyncio.create_task(self._stream_loop())

    async def _poll_loop(self) -> None:
        while self._state is RuntimeState.READY:
            await asyncio.sleep(self._config.polling_interval)
            if self._state is not RuntimeState.READY:
                return
            try:
                await self.refresh()
            except Exception as e:
                logger.error("flag polling error", error=str(e))

    async def _stream_loop(self) -> None:
        url = self.stream_url
        while self._state is RuntimeState.READY:
            ws = self._stream_factory(url)
            self._ws = ws
            try:
                await ws.connect()
            except Exception as e:
                logger.warning("push connection failed", url=url, error=str(e))
                await self._events.publish(ErrorEvent(error=e))
            else:
                logger.info("push connection open", url=url)
                await self._events.publish(ConnectionEvent(connected=True))
                try:
                    await self._pump(ws)
                except Exception as e:
                    logger.warning("push connection error", error=str(e))
                    await self._events.publish(ErrorEvent(error=e))
                try:
                    await ws.disconnect()
                except Exception as e:
                    logger.warning("failed to close push connection", error=str(e))
                logger.info("push connection closed", url=url)
                await self._events.publish(ConnectionEvent(connected=False))
            if self._ws is ws:
                self._ws = None
            if self._state is not RuntimeState.READY:
                return
            await asyncio.sleep(self._config.reconnect_delay)

    async def _pump(self, ws: WsClient) -> None:
        while self._state is RuntimeState.READY:
            msg = await ws.receive()
            if msg.type is MessageType.CLOSE:
                return
            if msg.type is MessageType.TEXT:
                await self._handle_message(msg.payload)

    async def _handle_message(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("ignoring unparseable push message")
            return
        if not isinstance(message, Mapping):
            logger.warning("ignoring push message that is not an object")
            return
        msg_type = message.get("type")
        stream_messages_total.add(1, {"type": str(msg_type)})
        if msg_type != FLAG_UPDATE:
            logger.debug("ignoring push message", type=msg_type)
            return
        data = message.get("data")
        if not isinstance(data, Mapping):
            logger.warning("ignoring flag_update without data")
            return
        try:
            result = FlagEvaluationResult.from_dict(data)
        except ValueError as e:
            logger.warning("ignoring malformed flag_update", error=str(e))
            return

        async with self._write_lock:
            if self._state is not RuntimeState.READY:
                return
            flags = dict(self._flags)
            flags[result.flag_key] = result
            self._flags = flags
        logger.debug("flag updated by push", flag_key=result.flag_key)
        await self._events.publish(UpdateEvent(flags=dict(flags)))
