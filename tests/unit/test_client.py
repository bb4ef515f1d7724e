"""Tests for ConceptKernelClient."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from ck_client.client import (
    AuthResult,
    ClientState,
    ConceptKernelClient,
    ConceptKernelClientSync,
    EmitResult,
    KernelBootstrapConfig,
)
from ck_client.config import AuthCredentials, ConnectionOptions
from ck_client.errors import (
    AuthError,
    AuthRequiredError,
    BootstrapError,
    ConnectError,
    DiscoveryError,
    DuplicateRequestError,
    EmitError,
    NotConnectedError,
    RequestTimeoutError,
    ServiceUnavailableError,
    TransportClosedError,
)
from ck_client.events import ConnectionEvent, DiscoveryEvent, ErrorEvent
from ck_client.messages import KernelEvent

GATEWAY_URL = "http://gw.test"


def runtime_responder(message: dict) -> list[dict] | None:
    """Answers upgrade_token and bootstrap_kernel like the runtime does."""
    if message["type"] == "upgrade_token":
        credentials = message["credentials"]
        if credentials["password"] != "secret":
            return [{"type": "error", "message": "Invalid credentials", "context": "upgrade_token"}]
        return [{
            "type": "token_upgraded",
            "token": "t2",
            "actor": credentials["username"],
            "roles": ["user"],
        }]
    if message["type"] == "bootstrap_kernel":
        if message["kernel"] == "Taken":
            return [{"type": "error", "message": "Kernel already exists", "context": "bootstrap_kernel"}]
        return [{
            "type": "kernel_bootstrapped",
            "kernel": message["kernel"],
            "timestamp": "2024-01-01T00:00:00Z",
            "processUrn": "ckp://Process#KernelBootstrap-1",
        }]
    return None


def make_options(**overrides) -> ConnectionOptions:
    settings = {"reconnect_delay": 0.05, "session_wait": 0.5}
    settings.update(overrides)
    return ConnectionOptions(**settings)


async def connect(http_client, provider, **overrides) -> ConceptKernelClient:
    return await ConceptKernelClient.connect(
        GATEWAY_URL,
        make_options(**overrides),
        http_client=http_client,
        transport_provider=provider,
    )


# ---------------------------------------------------------------------------
# Connect
# ---------------------------------------------------------------------------


class TestConnect:
    """Tests for the connect sequence."""

    def test_empty_gateway_url_rejected(self):
        with pytest.raises(ValueError):
            ConceptKernelClient("")

    @pytest.mark.asyncio
    async def test_connect_discovers_and_opens_transport(self, http_client, provider, settle):
        ck = await connect(http_client, provider)
        await settle()

        assert ck.available_services() == ["gateway", "websocket"]
        assert provider.uris == ["ws://gw.test/ws"]
        assert ck.transport_connected
        assert ck.state is ClientState.READY
        assert ck.ck_version == "1.3.18"
        assert ck.domain == "test.local"
        await ck.close()

    @pytest.mark.asyncio
    async def test_connect_without_auto_connect(self, http_client, provider):
        ck = await connect(http_client, provider, auto_connect=False)

        assert provider.uris == []
        assert ck.state is ClientState.READY
        with pytest.raises(NotConnectedError):
            await ck.authenticate("alice", "secret")
        await ck.close()

    @pytest.mark.asyncio
    async def test_connect_without_websocket_service(self, http_client, gateway, provider):
        del gateway.document["services"]["websocket"]
        ck = await connect(http_client, provider)

        assert provider.uris == []
        assert not ck.transport_connected
        await ck.close()

    @pytest.mark.asyncio
    async def test_websocket_without_endpoint_fails(self, http_client, gateway, provider):
        gateway.document["services"]["websocket"]["endpoints"] = {}
        with pytest.raises(ConnectError):
            await connect(http_client, provider)

    @pytest.mark.asyncio
    async def test_discovery_failure_aborts(self, http_client, gateway, provider):
        gateway.discovery_status = 500
        with pytest.raises(DiscoveryError):
            await connect(http_client, provider)
        assert provider.uris == []

    @pytest.mark.asyncio
    async def test_transport_failure_aborts(self, http_client, provider):
        provider.fail = True
        with pytest.raises(ConnectError):
            await connect(http_client, provider)

    @pytest.mark.asyncio
    async def test_connect_with_auth_option(self, http_client, provider):
        provider.responder = runtime_responder
        ck = await connect(http_client, provider, auth=AuthCredentials("alice", "secret"))

        assert ck.authenticated
        assert ck.state is ClientState.AUTHENTICATED
        assert ck.actor == "alice"
        await ck.close()

    @pytest.mark.asyncio
    async def test_connect_with_bad_auth_aborts(self, http_client, provider):
        provider.responder = runtime_responder
        with pytest.raises(AuthError):
            await connect(http_client, provider, auth=AuthCredentials("alice", "wrong"))
        assert provider.latest.closed

    @pytest.mark.asyncio
    async def test_async_context_manager(self, http_client, provider):
        async with ConceptKernelClient(
            GATEWAY_URL, make_options(), http_client=http_client, transport_provider=provider
        ) as ck:
            assert ck.transport_connected
        assert ck.state is ClientState.DISCONNECTED
        assert provider.latest.closed


# ---------------------------------------------------------------------------
# Emit
# ---------------------------------------------------------------------------


class TestEmit:
    """Tests for one-shot emit."""

    @pytest.mark.asyncio
    async def test_emit_posts_to_gateway_http_endpoint(self, http_client, gateway, provider):
        """POST to the gateway's http endpoint with the compact JSON body."""
        gateway.document = {"services": {"gateway": {"endpoints": {"http": "http://h/emit"}}}}
        ck = await connect(http_client, provider)

        await ck.emit("gateway", {"a": 1})

        request = gateway.emit_requests[0]
        assert str(request.url) == "http://h/emit"
        assert request.content == b'{"a":1}'
        assert request.headers["X-CK-Kernel"] == "gateway"
        assert request.headers["Content-Type"] == "application/json"
        assert "Authorization" not in request.headers
        assert "X-CK-TxId" not in request.headers
        await ck.close()

    @pytest.mark.asyncio
    async def test_emit_returns_result(self, http_client, gateway, provider):
        gateway.emit_reply = {"txId": "tx-9", "processUrn": "ckp://Process#9", "queued": True}
        ck = await connect(http_client, provider, auto_connect=False)

        result = await ck.emit("UI.Bakery", {"action": "mix"}, tx_id="tx-9")

        assert isinstance(result, EmitResult)
        assert result.tx_id == "tx-9"
        assert result.process_urn == "ckp://Process#9"
        assert result.model_extra == {"queued": True}
        assert gateway.emit_requests[0].headers["X-CK-TxId"] == "tx-9"
        assert str(gateway.emit_requests[0].url) == "http://gw.test/emit"
        await ck.close()

    @pytest.mark.asyncio
    async def test_emit_prefers_matching_service(self, http_client, gateway, provider):
        """A service whose URN contains the target is used before the gateway."""
        gateway.document["services"]["bakery"] = {
            "urn": "ckp://Kernel#UI.Bakery:v1.0",
            "endpoints": {"http": "http://bakery.test/in"},
        }
        ck = await connect(http_client, provider, auto_connect=False)

        await ck.emit("UI.Bakery", {})
        assert str(gateway.emit_requests[0].url) == "http://bakery.test/in"
        await ck.close()

    @pytest.mark.asyncio
    async def test_emit_sends_bearer_token(self, http_client, gateway, provider):
        provider.responder = runtime_responder
        ck = await connect(http_client, provider)
        await ck.authenticate("alice", "secret")

        await ck.emit("UI.Bakery", {"action": "mix"})
        assert gateway.emit_requests[0].headers["Authorization"] == "Bearer t2"
        await ck.close()

    @pytest.mark.asyncio
    async def test_emit_before_discovery(self, http_client):
        ck = ConceptKernelClient(GATEWAY_URL, make_options(), http_client=http_client)
        with pytest.raises(ServiceUnavailableError):
            await ck.emit("UI.Bakery", {})

    @pytest.mark.asyncio
    async def test_emit_without_gateway_service(self, http_client, gateway, provider):
        gateway.document = {"services": {"other": {"endpoints": {"ws": "ws://x"}}}}
        ck = await connect(http_client, provider, auto_connect=False)
        with pytest.raises(ServiceUnavailableError):
            await ck.emit("UI.Bakery", {})
        await ck.close()

    @pytest.mark.asyncio
    async def test_emit_http_error(self, http_client, gateway, provider):
        """Non-2xx carries the server's error text and status."""
        gateway.emit_status = 403
        gateway.emit_reply = {"error": "Forbidden: kernel requires auth"}
        ck = await connect(http_client, provider, auto_connect=False)

        with pytest.raises(EmitError) as exc_info:
            await ck.emit("UI.Bakery", {})
        assert exc_info.value.status_code == 403
        assert "Forbidden" in str(exc_info.value)
        await ck.close()

    @pytest.mark.asyncio
    async def test_emit_network_error(self, gateway, provider):
        def handler(request):
            if request.method == "POST":
                raise httpx.ConnectError("refused", request=request)
            return gateway.handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        ck = await connect(client, provider, auto_connect=False)
        with pytest.raises(EmitError):
            await ck.emit("UI.Bakery", {})
        await ck.close()

    @pytest.mark.asyncio
    async def test_emit_does_not_refetch_fresh_discovery(self, http_client, gateway, provider):
        ck = await connect(http_client, provider, auto_connect=False)
        await ck.emit("UI.Bakery", {})
        await ck.discover()
        assert len(gateway.discovery_requests) == 1
        await ck.close()


# ---------------------------------------------------------------------------
# Session, authentication, bootstrap
# ---------------------------------------------------------------------------


class TestAuthentication:
    """Tests for the credential upgrade."""

    @pytest.mark.asyncio
    async def test_anonymous_then_authenticated(self, http_client, provider, settle):
        """connected greeting gives an anonymous session; upgrade authenticates it."""
        provider.responder = runtime_responder
        ck = await connect(http_client, provider)
        await settle()

        assert ck.session is not None
        assert ck.actor == "a"
        assert ck.roles == ("anonymous",)
        assert not ck.authenticated

        seen = []
        ck.on("authenticated", seen.append)
        result = await ck.authenticate("alice", "secret")

        assert result == AuthResult(token="t2", actor="alice", roles=("user",))
        assert result.as_dict() == {"token": "t2", "actor": "alice", "roles": ["user"]}
        assert ck.authenticated
        assert ck.actor == "alice"
        assert ck.token == "t2"
        assert ck.state is ClientState.AUTHENTICATED
        assert seen == [result]

        sent = provider.latest.sent[0]
        assert sent == {
            "type": "upgrade_token",
            "current_token": "anon",
            "credentials": {"username": "alice", "password": "secret"},
        }
        await ck.close()

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, http_client, provider, settle):
        provider.responder = runtime_responder
        ck = await connect(http_client, provider)
        await settle()
        errors = []
        ck.on("error", errors.append)

        with pytest.raises(AuthError, match="Invalid credentials"):
            await ck.authenticate("alice", "wrong")

        assert not ck.authenticated
        assert ck.actor == "a"
        assert errors == [ErrorEvent(message="Invalid credentials", context="upgrade_token")]
        await ck.close()

    @pytest.mark.asyncio
    async def test_authentication_timeout(self, http_client, provider):
        ck = await connect(http_client, provider)

        with pytest.raises(AuthError) as exc_info:
            await ck.authenticate("alice", "secret", timeout=0.05)
        assert isinstance(exc_info.value.__cause__, RequestTimeoutError)
        assert ck.pending_requests == 0
        await ck.close()

    @pytest.mark.asyncio
    async def test_concurrent_authentication_rejected(self, http_client, provider, settle):
        ck = await connect(http_client, provider)
        await settle()
        first = asyncio.ensure_future(ck.authenticate("alice", "secret", timeout=1.0))
        await settle()

        with pytest.raises(DuplicateRequestError):
            await ck.authenticate("bob", "secret")

        provider.latest.feed({"type": "token_upgraded", "token": "t2", "actor": "alice", "roles": ["user"]})
        assert (await first).actor == "alice"
        await ck.close()

    @pytest.mark.asyncio
    async def test_connection_loss_fails_authentication(self, http_client, provider, settle):
        ck = await connect(http_client, provider, reconnect=False)
        await settle()
        pending = asyncio.ensure_future(ck.authenticate("alice", "secret"))
        await settle()

        provider.latest.drop()
        with pytest.raises(AuthError) as exc_info:
            await pending
        assert isinstance(exc_info.value.__cause__, TransportClosedError)
        assert ck.session is None
        await ck.close()


class TestBootstrapKernel:
    """Tests for kernel bootstrap."""

    @pytest.mark.asyncio
    async def test_requires_authentication(self, http_client, provider, settle):
        """Unauthenticated bootstrap fails before anything is sent."""
        ck = await connect(http_client, provider)
        await settle()

        with pytest.raises(AuthRequiredError):
            await ck.bootstrap_kernel({"kernel": "X"})
        assert provider.latest.sent == []
        await ck.close()

    @pytest.mark.asyncio
    async def test_requires_transport(self, http_client, provider):
        ck = await connect(http_client, provider, auto_connect=False)
        with pytest.raises(NotConnectedError):
            await ck.bootstrap_kernel(KernelBootstrapConfig(kernel="X"))
        await ck.close()

    @pytest.mark.asyncio
    async def test_bootstrap_after_authentication(self, http_client, provider):
        provider.responder = runtime_responder
        ck = await connect(http_client, provider, auth=AuthCredentials("alice", "secret"))
        events = []
        ck.on("event", events.append)

        result = await ck.bootstrap_kernel(
            {"kernel": "Recipes.Catalog", "kernelType": "node:cold", "edges": ["UI.Bakery"]}
        )

        assert result.kernel == "Recipes.Catalog"
        assert result.process_urn == "ckp://Process#KernelBootstrap-1"
        sent = provider.latest.sent[-1]
        assert sent["type"] == "bootstrap_kernel"
        assert sent["actor"] == "alice"
        assert sent["kernel_type"] == "node:cold"
        assert sent["edges"] == ["UI.Bakery"]
        # Replies are consumed by the exchange, not fanned out
        assert events == []
        await ck.close()

    @pytest.mark.asyncio
    async def test_bootstrap_rejected(self, http_client, provider):
        provider.responder = runtime_responder
        ck = await connect(http_client, provider, auth=AuthCredentials("alice", "secret"))

        with pytest.raises(BootstrapError, match="already exists"):
            await ck.bootstrap_kernel(KernelBootstrapConfig(kernel="Taken"))
        await ck.close()

    @pytest.mark.asyncio
    async def test_bootstrap_timeout(self, http_client, provider):
        provider.responder = runtime_responder
        ck = await connect(http_client, provider, auth=AuthCredentials("alice", "secret"))
        provider.responder = None
        provider.latest._responder = None

        with pytest.raises(BootstrapError, match="timeout"):
            await ck.bootstrap_kernel(KernelBootstrapConfig(kernel="Slow"), timeout=0.05)
        await ck.close()

    def test_config_requires_kernel(self):
        with pytest.raises(ValueError):
            KernelBootstrapConfig.from_mapping({"description": "no name"})


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class TestEventFanOut:
    """Tests for routing pushed messages to subscribers."""

    @pytest.mark.asyncio
    async def test_event_and_notification_routing(self, http_client, provider, settle):
        ck = await connect(http_client, provider)
        events, notifications, errors = [], [], []
        ck.on("event", events.append)
        ck.on("notification", notifications.append)
        ck.on("error", errors.append)

        provider.latest.feed({"type": "event", "kernel": "UI.Bakery", "data": {"step": 1}})
        provider.latest.feed({"type": "notification", "kernel": "UI.Bakery", "data": {"done": True}})
        provider.latest.feed({"type": "error", "message": "Kernel crashed"})
        provider.latest.feed({"type": "heartbeat"})
        await settle()

        assert [e.type for e in events] == ["event", "notification"]
        assert all(isinstance(e, KernelEvent) for e in events)
        assert [n.data for n in notifications] == [{"done": True}]
        assert errors == [ErrorEvent(message="Kernel crashed")]
        await ck.close()

    @pytest.mark.asyncio
    async def test_connected_and_disconnected_events(self, http_client, provider):
        ck = ConceptKernelClient(
            GATEWAY_URL, make_options(), http_client=http_client, transport_provider=provider
        )
        connected, disconnected, discovered = [], [], []
        ck.on("connected", connected.append)
        ck.on("disconnected", disconnected.append)
        ck.on("discovered", discovered.append)

        await ck.start()
        await ck.disconnect()

        assert connected == [ConnectionEvent(url="ws://gw.test/ws")]
        assert disconnected == [ConnectionEvent(url="ws://gw.test/ws", reason=None)]
        assert discovered == [
            DiscoveryEvent(services=("gateway", "websocket"), ck_version="1.3.18", domain="test.local")
        ]
        await ck.close()

    @pytest.mark.asyncio
    async def test_unsubscribe_via_handle(self, http_client, provider, settle):
        ck = await connect(http_client, provider)
        events = []
        unsubscribe = ck.on("event", events.append)
        unsubscribe()

        provider.latest.feed({"type": "event", "kernel": "K"})
        await settle()
        assert events == []
        await ck.close()


# ---------------------------------------------------------------------------
# Reconnect and teardown
# ---------------------------------------------------------------------------


class TestReconnect:
    """Tests for transport loss after a successful connect."""

    @pytest.mark.asyncio
    async def test_failed_reconnect_surfaces_as_error_event(self, http_client, provider, settle):
        loop = asyncio.get_running_loop()
        ck = await connect(http_client, provider, reconnect_delay=0.05)
        failures = []
        ck.on("error", lambda e: failures.append(e) if e.message == "Reconnect failed" else None)

        provider.fail = True
        dropped_at = loop.time()
        provider.latest.drop()
        while not failures:
            await asyncio.sleep(0.01)

        assert loop.time() - dropped_at >= 0.05 * 0.99
        assert len(provider.uris) >= 2
        assert isinstance(failures[0].error, ConnectError)
        assert ck.state is ClientState.CONNECTING_TRANSPORT
        await ck.close()

    @pytest.mark.asyncio
    async def test_exhausted_reconnect_ends_disconnected(self, http_client, provider):
        """Running out of reconnect attempts leaves the client DISCONNECTED."""
        ck = await connect(http_client, provider, reconnect_delay=0.01, max_reconnect_attempts=1)
        failures = []
        ck.on("error", lambda e: failures.append(e) if e.message == "Reconnect failed" else None)

        provider.fail = True
        provider.latest.drop()
        while not failures:
            await asyncio.sleep(0.01)

        assert len(provider.uris) == 2
        assert ck.state is ClientState.DISCONNECTED
        assert not ck.transport_connected
        await ck.close()

    @pytest.mark.asyncio
    async def test_successful_reconnect_restores_session(self, http_client, provider, settle):
        ck = await connect(http_client, provider, reconnect_delay=0.01)
        provider.latest.drop()

        while len(provider.connections) < 2:
            await asyncio.sleep(0.01)
        await settle()
        assert ck.transport_connected
        assert ck.actor == "a"
        await ck.close()


class TestTeardown:
    """Tests for disconnect/close."""

    @pytest.mark.asyncio
    async def test_disconnect_keeps_discovery_cache(self, http_client, gateway, provider):
        ck = await connect(http_client, provider)
        await ck.disconnect()

        assert ck.state is ClientState.DISCONNECTED
        assert ck.session is None
        assert not ck.transport_connected
        assert ck.available_services() == ["gateway", "websocket"]
        await ck.emit("UI.Bakery", {"ok": True})
        assert len(gateway.discovery_requests) == 1
        await ck.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [1, 4])
    async def test_disconnect_fails_pending_requests(self, http_client, provider, settle, count):
        ck = await connect(http_client, provider)
        await settle()
        pending = [
            asyncio.ensure_future(
                ck.request({"type": "query", "n": n}, lambda m: False, timeout=5.0)
            )
            for n in range(count)
        ]
        await settle()
        assert ck.pending_requests == count

        await ck.disconnect()
        results = await asyncio.gather(*pending, return_exceptions=True)
        assert all(isinstance(r, TransportClosedError) for r in results)
        assert ck.pending_requests == 0
        await ck.close()

    @pytest.mark.asyncio
    async def test_custom_request(self, http_client, provider, settle):
        provider.responder = lambda m: [{"type": "pong", "n": m["n"]}] if m["type"] == "ping" else None
        ck = await connect(http_client, provider)

        reply = await ck.request(
            {"type": "ping", "n": 7},
            lambda m: m.type == "pong" and m.raw.get("n") == 7,
            timeout=1.0,
        )
        assert reply.raw == {"type": "pong", "n": 7}
        await ck.close()

    @pytest.mark.asyncio
    async def test_request_without_type_is_caller_error(self, http_client, provider, settle):
        """A malformed message raises ValueError and nothing is registered or sent."""
        ck = await connect(http_client, provider)
        await settle()

        with pytest.raises(ValueError):
            await ck.request({"kernel": "X"}, lambda m: True, timeout=1.0)

        assert ck.pending_requests == 0
        assert provider.latest.sent == []
        assert ck.transport_connected
        await ck.close()

    @pytest.mark.asyncio
    async def test_status(self, http_client, provider, settle):
        ck = await connect(http_client, provider)
        await settle()
        status = ck.status()

        assert status.discovered
        assert status.transport_connected
        assert not status.authenticated
        assert status.actor == "a"
        assert status.available_services == ["gateway", "websocket"]
        assert status.cache_age is not None
        await ck.close()

    @pytest.mark.asyncio
    async def test_close_closes_owned_http_client(self, gateway, provider):
        ck = ConceptKernelClient(GATEWAY_URL, make_options(), transport_provider=provider)
        http = ck._http
        await ck.close()
        assert http.is_closed


# ---------------------------------------------------------------------------
# Direct publish
# ---------------------------------------------------------------------------


class RecordingPublisher:
    def __init__(self):
        self.published = []
        self.closed = False

    async def connect(self):
        pass

    async def publish(self, subject, payload):
        self.published.append((subject, payload))

    async def close(self):
        self.closed = True


class TestPublish:
    """Tests for the direct publish passthrough."""

    @pytest.mark.asyncio
    async def test_publish_delegates(self, http_client, provider):
        publisher = RecordingPublisher()
        ck = ConceptKernelClient(
            GATEWAY_URL, make_options(), http_client=http_client,
            transport_provider=provider, publisher=publisher,
        )
        await ck.publish("ck.UI.Bakery.input", {"action": "mix"})
        await ck.close()

        assert publisher.published == [("ck.UI.Bakery.input", {"action": "mix"})]
        assert publisher.closed

    @pytest.mark.asyncio
    async def test_close_releases_http_client_when_publisher_fails(self, provider):
        """A failing publisher close still closes the owned HTTP client."""

        class BrokenPublisher(RecordingPublisher):
            async def close(self):
                raise ConnectionError("bus unreachable")

        ck = ConceptKernelClient(
            GATEWAY_URL, make_options(), transport_provider=provider, publisher=BrokenPublisher(),
        )
        http = ck._http

        with pytest.raises(ConnectionError):
            await ck.close()
        assert http.is_closed

    @pytest.mark.asyncio
    async def test_publish_without_publisher(self, http_client):
        ck = ConceptKernelClient(GATEWAY_URL, make_options(), http_client=http_client)
        with pytest.raises(ServiceUnavailableError):
            await ck.publish("subject", "payload")


# ---------------------------------------------------------------------------
# Sync wrapper
# ---------------------------------------------------------------------------


class TestSyncClient:
    """Tests for ConceptKernelClientSync."""

    def test_discover_and_emit(self, gateway, provider):
        http = httpx.AsyncClient(transport=httpx.MockTransport(gateway.handler))
        with ConceptKernelClientSync(GATEWAY_URL, http_client=http, transport_provider=provider) as ck:
            services = ck.discover()
            result = ck.emit("UI.Bakery", {"action": "mix"})
            status = ck.status()

        assert "gateway" in services
        assert result.tx_id == "tx-1"
        assert json.loads(gateway.emit_requests[0].content) == {"action": "mix"}
        assert not status.transport_connected
        assert provider.uris == []
