"""Event categories and subscriber fan-out."""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from .errors import InvalidCategoryError

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class EventCategory(str, Enum):
    """Categories a subscriber can listen to."""

    CONNECTED = "connected"          # transport opened
    DISCONNECTED = "disconnected"    # transport closed
    AUTHENTICATED = "authenticated"  # credential upgrade succeeded
    EVENT = "event"                  # kernel event (and notifications)
    NOTIFICATION = "notification"    # kernel notification only
    ERROR = "error"                  # transport or server error
    DISCOVERED = "discovered"        # service discovery completed

    @classmethod
    def parse(cls, value: "EventCategory | str") -> "EventCategory":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            valid = ", ".join(c.value for c in cls)
            raise InvalidCategoryError(
                f"Unknown event category: {value!r} (expected one of: {valid})"
            ) from None


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConnectionEvent:
    """Payload of ``connected`` / ``disconnected``."""

    url: str | None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    """Payload of ``error``."""

    message: str
    context: str | None = None
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class DiscoveryEvent:
    """Payload of ``discovered``."""

    services: tuple[str, ...]
    ck_version: str | None = None
    domain: str | None = None


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class Subscription:
    """Handle returned by :meth:`EventDispatcher.subscribe`.

    Calling it (or :meth:`unsubscribe`) removes exactly this registration.
    """

    __slots__ = ("category", "handler", "_dispatcher", "_active")

    def __init__(self, dispatcher: "EventDispatcher", category: EventCategory, handler: Handler):
        self.category = category
        self.handler = handler
        self._dispatcher = dispatcher
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._dispatcher._remove(self)

    __call__ = unsubscribe

    def __repr__(self) -> str:
        return f"<Subscription {self.category.value} {self.handler!r} active={self._active}>"


class EventDispatcher:
    """Named subscriber lists with isolated, ordered fan-out.

    Handlers run synchronously in registration order. A handler that raises
    is logged and skipped; the remaining handlers still run and dispatch()
    itself never raises. Coroutine handlers are scheduled on the running
    loop.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[EventCategory, list[Subscription]] = {
            category: [] for category in EventCategory
        }
        self._lock = threading.RLock()
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, category: EventCategory | str, handler: Handler) -> Subscription:
        """Register ``handler`` for ``category``.

        Raises:
            InvalidCategoryError: ``category`` is not an EventCategory.
        """
        parsed = EventCategory.parse(category)
        if not callable(handler):
            raise TypeError("handler must be callable")
        subscription = Subscription(self, parsed, handler)
        with self._lock:
            self._subscriptions[parsed].append(subscription)
        return subscription

    def subscriber_count(self, category: EventCategory | str) -> int:
        parsed = EventCategory.parse(category)
        with self._lock:
            return len(self._subscriptions[parsed])

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscriptions[subscription.category]
            for index, candidate in enumerate(subscribers):
                if candidate is subscription:
                    del subscribers[index]
                    break

    def clear(self) -> None:
        with self._lock:
            for subscribers in self._subscriptions.values():
                for subscription in subscribers:
                    subscription._active = False
                subscribers.clear()

    def dispatch(self, category: EventCategory | str, payload: Any = None) -> int:
        """Invoke every handler of ``category``; returns how many ran."""
        parsed = EventCategory.parse(category)
        with self._lock:
            snapshot = tuple(self._subscriptions[parsed])

        invoked = 0
        for subscription in snapshot:
            # Unsubscribed by an earlier handler in this same dispatch
            if not subscription.active:
                continue
            invoked += 1
            try:
                result = subscription.handler(payload)
                if inspect.isawaitable(result):
                    self._schedule(parsed, result)
            except Exception:
                logger.exception(
                    "Event handler failed",
                    extra={"category": parsed.value, "handler": repr(subscription.handler)},
                )
        return invoked

    def _schedule(self, category: EventCategory, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "Async event handler failed",
                    exc_info=t.exception(),
                    extra={"category": category.value},
                )

        task.add_done_callback(_done)


__all__ = [
    "ConnectionEvent",
    "DiscoveryEvent",
    "ErrorEvent",
    "EventCategory",
    "EventDispatcher",
    "Handler",
    "Subscription",
]
