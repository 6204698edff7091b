"""Runtime events and their publish/subscribe channels."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import ClassVar

import structlog

from .models import FlagEvaluationResult

logger = structlog.stdlib.get_logger(__name__)


class EventChannel(StrEnum):
    """Channels a ClientRuntime publishes on."""

    READY = "ready"
    UPDATE = "update"
    ERROR = "error"
    CONNECTION = "connection"


@dataclass
class RuntimeEvent:
    """Base of all runtime events."""

    channel: ClassVar[EventChannel]
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), kw_only=True
    )


@dataclass
class ReadyEvent(RuntimeEvent):
    """The first snapshot has been loaded."""

    channel: ClassVar[EventChannel] = EventChannel.READY
    flag_count: int = 0


@dataclass
class UpdateEvent(RuntimeEvent):
    """The cached flags changed; ``flags`` is the new map."""

    channel: ClassVar[EventChannel] = EventChannel.UPDATE
    flags: dict[str, FlagEvaluationResult] = field(default_factory=dict)


@dataclass
class ErrorEvent(RuntimeEvent):
    """A fetch or push-channel failure."""

    channel: ClassVar[EventChannel] = EventChannel.ERROR
    error: Exception | None = None


@dataclass
class ConnectionEvent(RuntimeEvent):
    """The push connection opened or closed."""

    channel: ClassVar[EventChannel] = EventChannel.CONNECTION
    connected: bool = False


EventHandler = Callable[[RuntimeEvent], Awaitable[None] | None]


class Subscription:
    """Handle returned by ``EventEmitter.subscribe``."""

    def __init__(self, emitter: EventEmitter, channel: EventChannel, handler: EventHandler) -> None:
        self._emitter = emitter
        self.channel = channel
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Stop receiving events. Calling it again does nothing."""
        if self._active:
            self._emitter._remove(self)
            self._active = False


class EventEmitter:
    """Per-channel publish/subscribe.

    Handlers may be plain or async callables. A failing handler is logged
    and never stops delivery to the others.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[EventChannel, list[Subscription]] = {}

    def subscribe(self, channel: EventChannel, handler: EventHandler) -> Subscription:
        subscription = Subscription(self, EventChannel(channel), handler)
        self._subscriptions.setdefault(subscription.channel, []).append(subscription)
        return subscription

    def subscriber_count(self, channel: EventChannel) -> int:
        return len(self._subscriptions.get(channel, []))

    def clear(self) -> None:
        """Drop every subscription."""
        for subscriptions in self._subscriptions.values():
            for subscription in subscriptions:
                subscription._active = False
        self._subscriptions.clear()

    async def publish(self, event: RuntimeEvent) -> None:
        for subscription in list(self._subscriptions.get(event.channel, [])):
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    "event handler failed",
                    channel=str(event.channel),
                    error=str(e),
                )

    def _remove(self, subscription: Subscription) -> None:
        subscriptions = self._subscriptions.get(subscription.channel, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
