"""Shared fakes for unit tests: an in-memory transport and a stub gateway."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import httpx
import pytest

_END = object()


# ---------------------------------------------------------------------------
# In-memory transport
# ---------------------------------------------------------------------------


class FakeConnection:
    """Text-frame connection driven by the test.

    ``feed`` queues an inbound frame, ``drop`` makes the reader fail,
    ``end`` closes cleanly from the server side.
    """

    def __init__(self, responder: Callable[[dict], list[dict] | None] | None = None):
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._responder = responder
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionError("connection is closed")
        data = json.loads(message)
        self.sent.append(data)
        if self._responder is not None:
            for reply in self._responder(data) or ():
                self.feed(reply)

    def feed(self, message: dict[str, Any] | str) -> None:
        frame = message if isinstance(message, str) else json.dumps(message)
        self._inbox.put_nowait(frame)

    def drop(self, reason: str = "connection reset") -> None:
        self._inbox.put_nowait(ConnectionError(reason))

    def end(self) -> None:
        self._inbox.put_nowait(_END)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(_END)

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        while True:
            item = await self._inbox.get()
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            yield item


class FakeTransportProvider:
    """Hands out FakeConnections; set ``fail`` to refuse new connections."""

    def __init__(
        self,
        greeting: dict[str, Any] | None = None,
        responder: Callable[[dict], list[dict] | None] | None = None,
    ):
        self.greeting = greeting
        self.responder = responder
        self.fail = False
        self.uris: list[str] = []
        self.connections: list[FakeConnection] = []

    async def connect(self, uri: str) -> FakeConnection:
        self.uris.append(uri)
        if self.fail:
            raise OSError("connection refused")
        connection = FakeConnection(self.responder)
        if self.greeting is not None:
            connection.feed(self.greeting)
        self.connections.append(connection)
        return connection

    @property
    def latest(self) -> FakeConnection:
        return self.connections[-1]


# ---------------------------------------------------------------------------
# Stub gateway (HTTP)
# ---------------------------------------------------------------------------


def discovery_document() -> dict[str, Any]:
    return {
        "ck_version": "1.3.18",
        "domain": "test.local",
        "services": {
            "gateway": {
                "urn": "ckp://Gateway",
                "endpoints": {"http": "http://gw.test/api", "emit": "http://gw.test/emit"},
                "capabilities": ["emit"],
            },
            "websocket": {
                "urn": "ckp://Gateway.WebSocket",
                "endpoints": {"ws": "ws://gw.test/ws", "wss": "wss://gw.test/ws"},
            },
        },
        "kernels": [
            {"name": "UI.Bakery", "urn": "ckp://Kernel#UI.Bakery:v1.0", "type": "node:cold"},
            {"name": "System.Registry", "urn": "ckp://Kernel#System.Registry:v0.1"},
        ],
    }


class StubGateway:
    """httpx.MockTransport handler serving discovery and emit."""

    def __init__(self, document: dict[str, Any] | None = None):
        self.document = document if document is not None else discovery_document()
        self.discovery_status = 200
        self.discovery_body: str | None = None
        self.emit_status = 200
        self.emit_reply: dict[str, Any] = {"txId": "tx-1", "kernel": "UI.Bakery"}
        self.requests: list[httpx.Request] = []

    @property
    def discovery_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/.well-known/ck-services"]

    @property
    def emit_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/.well-known/ck-services":
            if self.discovery_body is not None:
                return httpx.Response(self.discovery_status, text=self.discovery_body)
            return httpx.Response(self.discovery_status, json=self.document)
        if request.method == "POST":
            return httpx.Response(self.emit_status, json=self.emit_reply)
        return httpx.Response(404, json={"error": "not found"})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def http_client(gateway: StubGateway) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(gateway.handler))


@pytest.fixture
def provider() -> FakeTransportProvider:
    return FakeTransportProvider(
        greeting={
            "type": "connected",
            "token": "anon",
            "actor": "a",
            "roles": ["anonymous"],
        }
    )


@pytest.fixture
def settle():
    """Let queued reader and callback work run on the loop."""

    async def _settle(rounds: int = 10) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle
