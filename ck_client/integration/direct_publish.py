"""Direct publish: fire-and-forget messages straight onto the bus.

Bypasses the gateway. There is no acknowledgement and no client-side
authorisation; the bus decides what it accepts.

Example:
    >>> from ck_client.integration import NatsDirectPublisher
    >>>
    >>> publisher = NatsDirectPublisher("nats://localhost:4222")
    >>> await publisher.connect()
    >>> await publisher.publish("ck.UI.Bakery.input", {"action": "mix"})
    >>> await publisher.close()
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, Sequence, runtime_checkable

from ..errors import NotConnectedError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class DirectPublisher(Protocol):
    """Anything that can publish a payload on a subject."""

    async def connect(self) -> None:
        ...

    async def publish(self, subject: str, payload: Any) -> None:
        ...

    async def close(self) -> None:
        ...


def encode_payload(payload: Any) -> bytes:
    """str is UTF-8 encoded, bytes pass through, anything else becomes JSON."""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


# ---------------------------------------------------------------------------
# NATS
# ---------------------------------------------------------------------------


class NatsDirectPublisher:
    """Publishes with ``nats-py``.

    ``nats`` is imported on connect so the client works without the
    ``nats`` extra installed. Tests pass an already-open ``connection``.
    """

    def __init__(
        self,
        servers: str | Sequence[str] = "nats://localhost:4222",
        *,
        connection: Any = None,
        **connect_kwargs: Any,
    ):
        self._servers = [servers] if isinstance(servers, str) else list(servers)
        self._connect_kwargs = connect_kwargs
        self._nc = connection
        self.published = 0

    @property
    def connected(self) -> bool:
        return self._nc is not None and not getattr(self._nc, "is_closed", False)

    async def connect(self) -> None:
        if self.connected:
            return
        import nats

        self._nc = await nats.connect(servers=self._servers, **self._connect_kwargs)
        logger.info("Direct publisher connected", extra={"servers": self._servers})

    async def publish(self, subject: str, payload: Any) -> None:
        """Publish and return without waiting for any reply.

        Raises:
            NotConnectedError: connect() has not been called.
        """
        if not self.connected:
            raise NotConnectedError("Direct publisher not connected")
        await self._nc.publish(subject, encode_payload(payload))
        self.published += 1
        logger.debug("Published", extra={"subject": subject})

    async def close(self) -> None:
        nc, self._nc = self._nc, None
        if nc is None:
            return
        try:
            await nc.drain()
        except Exception as e:
            logger.debug("Drain failed, closing", extra={"error": str(e)})
            await nc.close()


__all__ = ["DirectPublisher", "NatsDirectPublisher", "encode_payload"]
