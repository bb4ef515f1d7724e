"""Request/response correlation over the persistent transport.

A correlated request is an outbound message paired with a predicate that
recognises its reply among the inbound stream. Every pending entry resolves
exactly once: on the first matching message, when its deadline passes, or
when the transport goes away.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Hashable

from .errors import DuplicateRequestError, RequestTimeoutError
from .messages import InboundMessage

logger = logging.getLogger(__name__)

Predicate = Callable[[InboundMessage], bool]


class PendingRequest:
    """One in-flight correlated exchange."""

    __slots__ = ("name", "key", "predicate", "timeout", "_future", "_timer")

    def __init__(
        self,
        name: str,
        predicate: Predicate,
        timeout: float,
        future: asyncio.Future,
        key: Hashable | None = None,
    ):
        self.name = name
        self.key = key
        self.predicate = predicate
        self.timeout = timeout
        self._future = future
        self._timer: asyncio.TimerHandle | None = None

    @property
    def done(self) -> bool:
        return self._future.done()

    async def wait(self) -> InboundMessage:
        """Wait for the matching message.

        Raises:
            RequestTimeoutError: No match before the deadline.
            TransportClosedError: The transport closed first.
        """
        return await self._future

    def _settle(self, result: Any = None, error: BaseException | None = None) -> bool:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._future.done():
            return False
        if error is not None:
            self._future.set_exception(error)
        else:
            self._future.set_result(result)
        return True

    def __repr__(self) -> str:
        state = "done" if self.done else "pending"
        return f"<PendingRequest {self.name} key={self.key!r} {state}>"


class PendingRequestRegistry:
    """Correlates inbound messages with pending requests.

    All methods must run on the event loop thread; the inbound handler,
    deadline timers and the close handler are its only mutators.

    Example:
        >>> pending = registry.register(
        ...     lambda m: m.type == "token_upgraded", timeout=10.0,
        ...     key=("upgrade_token",), name="upgrade_token",
        ... )
        >>> await transport.send(request)
        >>> reply = await pending.wait()
    """

    def __init__(self) -> None:
        self._pending: list[PendingRequest] = []

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request: object) -> bool:
        return request in self._pending

    @property
    def pending(self) -> tuple[PendingRequest, ...]:
        return tuple(self._pending)

    def register(
        self,
        predicate: Predicate,
        timeout: float,
        *,
        key: Hashable | None = None,
        name: str = "request",
    ) -> PendingRequest:
        """Start tracking a request whose reply satisfies ``predicate``.

        Raises:
            DuplicateRequestError: A request with the same ``key`` is pending.
        """
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if key is not None and any(p.key == key for p in self._pending):
            raise DuplicateRequestError(f"{name} already pending for {key!r}")

        loop = asyncio.get_running_loop()
        request = PendingRequest(name, predicate, timeout, loop.create_future(), key)
        request._timer = loop.call_later(timeout, self._expire, request)
        request._future.add_done_callback(lambda _f: self._on_done(request))
        self._pending.append(request)
        logger.debug("Correlated request registered", extra={"request": name, "key": key})
        return request

    def resolve(self, message: InboundMessage) -> PendingRequest | None:
        """Offer an inbound message; resolve and return the first match."""
        for request in tuple(self._pending):
            if request.done:
                continue
            try:
                matched = request.predicate(message)
            except Exception:
                logger.exception(
                    "Correlation predicate raised", extra={"request": request.name}
                )
                continue
            if matched:
                self._discard(request)
                request._settle(result=message)
                logger.debug(
                    "Correlated request resolved",
                    extra={"request": request.name, "message_type": message.type},
                )
                return request
        return None

    def cancel(self, request: PendingRequest) -> None:
        """Drop a request without a reply, e.g. when sending it failed."""
        self._discard(request)
        if request._timer is not None:
            request._timer.cancel()
            request._timer = None
        if not request.done:
            request._future.cancel()

    def fail_all(self, error: BaseException | Callable[[], BaseException]) -> int:
        """Fail every pending request and clear the set.

        ``error`` may be a factory; each request then gets its own instance.
        """
        make_error = error if callable(error) else None
        pending, self._pending = self._pending, []
        failed = 0
        reason = None
        for request in pending:
            exc = make_error() if make_error is not None else error
            reason = str(exc)
            if request._settle(error=exc):
                failed += 1
        if failed:
            logger.info("Failed pending requests", extra={"count": failed, "reason": reason})
        return failed

    def _expire(self, request: PendingRequest) -> None:
        request._timer = None
        self._discard(request)
        if request._settle(error=RequestTimeoutError(request.name, request.timeout)):
            logger.warning(
                "Correlated request timed out",
                extra={"request": request.name, "timeout": request.timeout},
            )

    def _on_done(self, request: PendingRequest) -> None:
        # Covers waiters that were cancelled while still pending
        if request._timer is not None:
            request._timer.cancel()
            request._timer = None
        self._discard(request)

    def _discard(self, request: PendingRequest) -> None:
        try:
            self._pending.remove(request)
        except ValueError:
            pass


__all__ = ["PendingRequest", "PendingRequestRegistry", "Predicate"]
