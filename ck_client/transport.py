"""Persistent transport session.

``TransportSession`` owns one bidirectional text connection at a time,
decodes inbound frames into message envelopes, routes them to the
correlation registry and the message callback, and reopens the connection
after an unexpected close.

The socket itself comes from a ``TransportProvider``. The default provider
uses the ``websockets`` library; tests and alternative runtimes inject
their own.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, AsyncIterator, Callable, Protocol, runtime_checkable

from .correlation import PendingRequestRegistry
from .errors import ConnectError, MessageDecodeError, NotConnectedError, TransportClosedError
from .messages import InboundMessage, OutboundMessage, decode_message, encode_message, is_exchange_only

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Provider protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class TransportConnection(Protocol):
    """An open text-frame connection."""

    async def send(self, message: str) -> None:
        ...

    async def close(self) -> None:
        ...

    def __aiter__(self) -> AsyncIterator[str | bytes]:
        """Yield inbound frames; stop on a clean close, raise on failure."""
        ...


@runtime_checkable
class TransportProvider(Protocol):
    """Factory for transport connections."""

    async def connect(self, uri: str) -> TransportConnection:
        ...


class WebSocketTransportProvider:
    """Opens connections with the ``websockets`` client."""

    def __init__(self, *, open_timeout: float = 10.0, **connect_kwargs: Any):
        self._open_timeout = open_timeout
        self._connect_kwargs = connect_kwargs

    async def connect(self, uri: str) -> TransportConnection:
        import websockets

        return await websockets.connect(
            uri,
            open_timeout=self._open_timeout,
            **self._connect_kwargs,
        )


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class TransportState(str, Enum):
    """Transport lifecycle states."""

    IDLE = "idle"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    RECONNECTING = "reconnecting"


class TransportSession:
    """Lifecycle, routing and reconnect policy for one transport.

    Callbacks (all synchronous, all optional):
        on_open(uri): the connection is open
        on_message(message): a decoded, non exchange-only message arrived
        on_close(reason, expected): the connection closed; ``expected`` is
            True when close() was called
        on_reconnect_failed(error): a reconnect attempt failed

    Example:
        >>> session = TransportSession(
        ...     WebSocketTransportProvider(), registry,
        ...     on_message=handle, reconnect=True, reconnect_delay=3.0,
        ... )
        >>> await session.open("ws://localhost:56001")
        >>> await session.send({"type": "ping"})
        >>> await session.close()
    """

    def __init__(
        self,
        provider: TransportProvider,
        registry: PendingRequestRegistry | None = None,
        *,
        on_open: Callable[[str], None] | None = None,
        on_message: Callable[[InboundMessage], None] | None = None,
        on_close: Callable[[str | None, bool], None] | None = None,
        on_reconnect_failed: Callable[[BaseException], None] | None = None,
        reconnect: bool = True,
        reconnect_delay: float = 3.0,
        max_reconnect_attempts: int | None = None,
    ):
        self._provider = provider
        self._registry = registry
        self._on_open = on_open
        self._on_message = on_message
        self._on_close = on_close
        self._on_reconnect_failed = on_reconnect_failed
        self._reconnect = reconnect
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_attempts = max_reconnect_attempts

        self._state = TransportState.IDLE
        self._uri: str | None = None
        self._connection: TransportConnection | None = None
        self._reader: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._closing = False

        # Stats
        self.messages_received = 0
        self.messages_sent = 0
        self.decode_errors = 0
        self.reconnect_count = 0

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is TransportState.OPEN

    @property
    def uri(self) -> str | None:
        return self._uri

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "uri": self._uri,
            "messages_received": self.messages_received,
            "messages_sent": self.messages_sent,
            "decode_errors": self.decode_errors,
            "reconnect_count": self.reconnect_count,
        }

    async def open(self, uri: str) -> None:
        """Establish the connection.

        Raises:
            ConnectError: The provider could not connect.
        """
        if self._state in (TransportState.OPEN, TransportState.OPENING):
            raise ConnectError(f"Transport already {self._state.value}")

        self._uri = uri
        self._closing = False
        self._state = TransportState.OPENING
        logger.debug("Opening transport", extra={"uri": uri})
        try:
            connection = await self._provider.connect(uri)
        except asyncio.CancelledError:
            self._state = TransportState.CLOSED
            raise
        except Exception as e:
            self._state = TransportState.CLOSED
            raise ConnectError(f"Could not connect to {uri}: {e}") from e

        if self._closing:
            # close() was called while we were connecting
            await connection.close()
            self._state = TransportState.CLOSED
            raise ConnectError("Transport closed while opening")

        self._connection = connection
        self._state = TransportState.OPEN
        self._reader = asyncio.create_task(self._read_loop(connection))
        logger.info("Transport open", extra={"uri": uri})
        if self._on_open is not None:
            self._on_open(uri)

    async def send(self, message: OutboundMessage | dict[str, Any]) -> None:
        """Send one message.

        Raises:
            NotConnectedError: The transport is not open.
        """
        if self._state is not TransportState.OPEN or self._connection is None:
            raise NotConnectedError(f"Transport not connected (state: {self._state.value})")
        await self._connection.send(encode_message(message))
        self.messages_sent += 1

    async def close(self) -> None:
        """Close the connection and stop reconnecting. Idempotent."""
        self._closing = True
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None

        connection, reader = self._connection, self._reader
        if connection is None:
            if self._state is not TransportState.IDLE:
                self._state = TransportState.CLOSED
            return

        self._state = TransportState.CLOSING
        try:
            await connection.close()
        except Exception as e:
            logger.debug("Error while closing transport", extra={"error": str(e)})
        if reader is not None and reader is not asyncio.current_task():
            try:
                await reader
            except asyncio.CancelledError:
                pass

        # The reader normally finishes the teardown; cover a reader that
        # was cancelled before it could
        if self._connection is connection:
            self._handle_closed(connection, "closed by client")

    # -----------------------------------------------------------------------
    # Inbound
    # -----------------------------------------------------------------------

    async def _read_loop(self, connection: TransportConnection) -> None:
        reason: str | None = None
        try:
            async for frame in connection:
                self._route(frame)
        except asyncio.CancelledError:
            reason = "reader cancelled"
            raise
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.warning("Transport read failed", extra={"error": reason})
        finally:
            self._handle_closed(connection, reason)

    def _route(self, frame: str | bytes) -> None:
        try:
            message = decode_message(frame)
        except MessageDecodeError as e:
            self.decode_errors += 1
            logger.warning("Dropping undecodable frame", extra={"error": str(e)})
            return

        self.messages_received += 1
        if self._registry is not None:
            self._registry.resolve(message)
        if is_exchange_only(message):
            return
        if self._on_message is not None:
            try:
                self._on_message(message)
            except Exception:
                logger.exception(
                    "Message handler failed", extra={"message_type": message.type}
                )

    def _handle_closed(self, connection: TransportConnection, reason: str | None) -> None:
        if self._connection is not connection:
            return
        self._connection = None
        self._reader = None
        expected = self._closing
        self._state = TransportState.CLOSED

        if self._registry is not None:
            message = f"Connection lost: {reason or 'transport closed'}"
            self._registry.fail_all(lambda: TransportClosedError(message))

        logger.info(
            "Transport closed",
            extra={"uri": self._uri, "reason": reason, "expected": expected},
        )
        if self._on_close is not None:
            try:
                self._on_close(reason, expected)
            except Exception:
                logger.exception("Close handler failed")

        if not expected and self._reconnect and self._uri is not None:
            self._state = TransportState.RECONNECTING
            self._reconnect_task = asyncio.get_running_loop().create_task(
                self._reconnect_loop(self._uri)
            )

    # -----------------------------------------------------------------------
    # Reconnect
    # -----------------------------------------------------------------------

    async def _reconnect_loop(self, uri: str) -> None:
        attempts = 0
        try:
            while not self._closing:
                await asyncio.sleep(self._reconnect_delay)
                attempts += 1
                self.reconnect_count += 1
                logger.info(
                    "Reconnecting transport",
                    extra={"uri": uri, "attempt": attempts, "delay": self._reconnect_delay},
                )
                try:
                    await self.open(uri)
                    return
                except ConnectError as e:
                    if self._closing:
                        return
                    exhausted = (
                        self._max_reconnect_attempts is not None
                        and attempts >= self._max_reconnect_attempts
                    )
                    # Final state is visible to the failure callback
                    self._state = TransportState.CLOSED if exhausted else TransportState.RECONNECTING
                    logger.warning(
                        "Reconnect failed",
                        extra={"uri": uri, "attempt": attempts, "error": str(e)},
                    )
                    if exhausted:
                        logger.error(
                            "Giving up on reconnect", extra={"uri": uri, "attempts": attempts}
                        )
                    if self._on_reconnect_failed is not None:
                        try:
                            self._on_reconnect_failed(e)
                        except Exception:
                            logger.exception("Reconnect failure handler failed")
                    if exhausted:
                        return
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None


__all__ = [
    "TransportConnection",
    "TransportProvider",
    "TransportSession",
    "TransportState",
    "WebSocketTransportProvider",
]
