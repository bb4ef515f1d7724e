"""ConceptKernel client: discovery, one-shot emit and the live session."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Hashable

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .config import ConnectionOptions
from .correlation import PendingRequestRegistry, Predicate
from .discovery import DiscoveryCache, DiscoverySnapshot, KernelInfo, ServiceEntry, ServiceMap
from .errors import (
    AuthError,
    AuthRequiredError,
    BootstrapError,
    ConnectError,
    DiscoveryError,
    EmitError,
    NotConnectedError,
    RequestTimeoutError,
    ServiceUnavailableError,
    TransportClosedError,
)
from .events import (
    ConnectionEvent,
    DiscoveryEvent,
    ErrorEvent,
    EventCategory,
    EventDispatcher,
    Handler,
    Subscription,
)
from .integration.direct_publish import DirectPublisher
from .messages import (
    DEFAULT_ACTOR,
    DEFAULT_BFO_CLASS,
    BootstrapKernelRequest,
    ConnectedMessage,
    ErrorMessage,
    InboundMessage,
    KernelBootstrappedMessage,
    KernelEvent,
    OutboundMessage,
    TokenUpgradedMessage,
    UnknownMessage,
    UpgradeTokenRequest,
    encode_message,
)
from .transport import TransportProvider, TransportSession, TransportState, WebSocketTransportProvider

logger = logging.getLogger(__name__)

UPGRADE_TOKEN = "upgrade_token"
BOOTSTRAP_KERNEL = "bootstrap_kernel"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class ClientState(str, Enum):
    """Client lifecycle states."""

    DISCONNECTED = "disconnected"
    DISCOVERING = "discovering"
    CONNECTING_TRANSPORT = "connecting_transport"
    READY = "ready"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True, slots=True)
class Session:
    """Identity attached to the open transport."""

    token: str | None
    actor: str | None
    roles: tuple[str, ...] = ()
    authenticated: bool = False


@dataclass(frozen=True, slots=True)
class AuthResult:
    """Result of a successful credential upgrade."""

    token: str
    actor: str | None
    roles: tuple[str, ...]

    def as_dict(self) -> dict[str, Any]:
        return {"token": self.token, "actor": self.actor, "roles": list(self.roles)}


@dataclass(slots=True)
class KernelBootstrapConfig:
    """Kernel to create with :meth:`ConceptKernelClient.bootstrap_kernel`."""

    kernel: str
    kernel_type: str | None = None
    description: str = ""
    edges: Sequence[str] = field(default_factory=tuple)
    bfo_class: str = DEFAULT_BFO_CLASS

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "KernelBootstrapConfig":
        """Accept both snake_case and the gateway's camelCase keys."""
        if not data.get("kernel"):
            raise ValueError("Bootstrap config requires 'kernel'")
        return cls(
            kernel=data["kernel"],
            kernel_type=data.get("kernel_type", data.get("kernelType")),
            description=data.get("description") or "",
            edges=tuple(data.get("edges") or ()),
            bfo_class=data.get("bfo_class") or data.get("bfoClass") or DEFAULT_BFO_CLASS,
        )


BootstrapResult = KernelBootstrappedMessage


class EmitResult(BaseModel):
    """Gateway reply to a one-shot emit. Unknown fields are kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    tx_id: str | None = Field(default=None, alias="txId")
    process_urn: str | None = Field(default=None, alias="processUrn")
    kernel: str | None = None
    message: str | None = None
    payload: Any = None


@dataclass(slots=True)
class ConnectionStatus:
    """Snapshot of the client's connection state."""

    state: ClientState
    discovered: bool
    last_discovery: float | None
    cache_age: float | None
    transport_connected: bool
    authenticated: bool
    actor: str | None
    roles: tuple[str, ...]
    available_services: list[str]


def _error_detail(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        detail = body.get("error") or body.get("message")
        return str(detail) if detail else None
    return None


# ---------------------------------------------------------------------------
# Async Client
# ---------------------------------------------------------------------------


class ConceptKernelClient:
    """Async client for a ConceptKernel gateway.

    Discovery and emit use plain HTTP and work without the websocket. The
    websocket carries pushed events, the credential upgrade and kernel
    bootstrap.

    Example:
        >>> ck = await ConceptKernelClient.connect("http://localhost:56000")
        >>> ck.on("event", lambda event: print(event.kernel, event.data))
        >>> result = await ck.emit("UI.Bakery", {"action": "mix"})
        >>> print(result.tx_id)
        >>> await ck.close()
    """

    def __init__(
        self,
        gateway_url: str,
        options: ConnectionOptions | None = None,
        *,
        transport_provider: TransportProvider | None = None,
        http_client: httpx.AsyncClient | None = None,
        publisher: DirectPublisher | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not gateway_url:
            raise ValueError(
                'gateway_url is required (e.g. "http://localhost:56000" for local discovery)'
            )
        self._gateway_url = gateway_url.rstrip("/")
        self._options = options or ConnectionOptions()
        self._provider = transport_provider or WebSocketTransportProvider()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self._options.request_timeout)
        self._publisher = publisher

        self._dispatcher = EventDispatcher()
        self._registry = PendingRequestRegistry()
        self._discovery = DiscoveryCache(
            self._gateway_url,
            self._http,
            ttl=self._options.cache_timeout,
            request_timeout=self._options.request_timeout,
            clock=clock,
            on_refresh=self._on_discovered,
        )
        self._transport: TransportSession | None = None
        self._transport_uri: str | None = None
        self._session: Session | None = None
        self._session_ready = asyncio.Event()
        self._state = ClientState.DISCONNECTED

    @classmethod
    async def connect(
        cls,
        gateway_url: str,
        options: ConnectionOptions | None = None,
        **kwargs: Any,
    ) -> "ConceptKernelClient":
        """Create a client, discover services and open the live session.

        Raises:
            DiscoveryError: The service map could not be fetched.
            ConnectError: The websocket could not be opened.
            AuthError: The credential upgrade failed.
        """
        client = cls(gateway_url, options, **kwargs)
        try:
            await client.start()
        except Exception:
            await client.close()
            raise
        return client

    async def __aenter__(self) -> "ConceptKernelClient":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def start(self) -> None:
        """Run discovery, then the optional transport and auth stages."""
        logger.info("Connecting to gateway", extra={"gateway_url": self._gateway_url})
        self._state = ClientState.DISCOVERING
        try:
            await self._discovery.get()
        except DiscoveryError:
            self._state = ClientState.DISCONNECTED
            raise

        if self._options.auto_connect and self.has_service("websocket"):
            await self.open_transport()
            if self._options.auth is not None:
                await self.authenticate(
                    self._options.auth.username,
                    self._options.auth.password,
                )
        else:
            logger.info(
                "Skipping transport",
                extra={"auto_connect": self._options.auto_connect},
            )
            self._state = ClientState.READY

    # -----------------------------------------------------------------------
    # Properties
    # -----------------------------------------------------------------------

    @property
    def gateway_url(self) -> str:
        return self._gateway_url

    @property
    def options(self) -> ConnectionOptions:
        return self._options

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def token(self) -> str | None:
        return self._session.token if self._session else None

    @property
    def actor(self) -> str | None:
        return self._session.actor if self._session else None

    @property
    def roles(self) -> tuple[str, ...]:
        return self._session.roles if self._session else ()

    @property
    def authenticated(self) -> bool:
        return bool(self._session and self._session.authenticated)

    @property
    def transport(self) -> TransportSession | None:
        return self._transport

    @property
    def transport_connected(self) -> bool:
        return self._transport is not None and self._transport.is_open

    @property
    def discovery(self) -> DiscoveryCache:
        return self._discovery

    @property
    def pending_requests(self) -> int:
        return len(self._registry)

    @property
    def ck_version(self) -> str | None:
        snapshot = self._discovery.snapshot
        return snapshot.ck_version if snapshot else None

    @property
    def domain(self) -> str | None:
        snapshot = self._discovery.snapshot
        return snapshot.domain if snapshot else None

    # -----------------------------------------------------------------------
    # Discovery
    # -----------------------------------------------------------------------

    async def discover(self, force_refresh: bool = False) -> ServiceMap:
        """Return the service map, refetching it when stale or forced."""
        return await self._discovery.get(force_refresh)

    def get_service(self, name: str) -> ServiceEntry | None:
        snapshot = self._discovery.snapshot
        if snapshot is None:
            return None
        return snapshot.services.get(name)

    def has_service(self, name: str) -> bool:
        return self.get_service(name) is not None

    def available_services(self) -> list[str]:
        snapshot = self._discovery.snapshot
        return list(snapshot.services) if snapshot else []

    def kernels(self) -> list[KernelInfo]:
        snapshot = self._discovery.snapshot
        return list(snapshot.kernels) if snapshot else []

    def find_kernel(self, query: str) -> KernelInfo | None:
        """Find a discovered kernel by name or partial URN."""
        return self._discovery.find_kernel(query)

    def _on_discovered(self, snapshot: DiscoverySnapshot) -> None:
        self._dispatcher.dispatch(
            EventCategory.DISCOVERED,
            DiscoveryEvent(
                services=tuple(snapshot.services),
                ck_version=snapshot.ck_version,
                domain=snapshot.domain,
            ),
        )

    # -----------------------------------------------------------------------
    # One-shot emit
    # -----------------------------------------------------------------------

    def _resolve_emit_endpoint(self, target: str) -> str:
        snapshot = self._discovery.snapshot
        if snapshot is None:
            raise ServiceUnavailableError("Service discovery has not been performed")

        candidates: list[ServiceEntry] = []
        exact = snapshot.services.get(target)
        if exact is not None:
            candidates.append(exact)
        else:
            candidates.extend(
                entry for entry in snapshot.services.values()
                if entry.urn and target in entry.urn
            )
        gateway = snapshot.services.get("gateway")
        if gateway is not None:
            candidates.append(gateway)

        if not candidates:
            raise ServiceUnavailableError("Gateway service not available")
        for entry in candidates:
            if entry.request_endpoint:
                return entry.request_endpoint
        raise ServiceUnavailableError("Gateway emit endpoint not found")

    def _build_headers(self, target: str, tx_id: str | None = None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-CK-Kernel": target,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if tx_id:
            headers["X-CK-TxId"] = tx_id
        return headers

    async def emit(
        self,
        target: str,
        payload: Any,
        *,
        tx_id: str | None = None,
    ) -> EmitResult:
        """Send one payload to a kernel over HTTP.

        Does not need the websocket. The current token, if any, is attached.

        Args:
            target: Kernel name or URN (e.g. ``UI.Bakery``).
            payload: JSON-serialisable body.
            tx_id: Optional transaction id forwarded as ``X-CK-TxId``.

        Raises:
            ServiceUnavailableError: No discovery yet or no emit endpoint.
            EmitError: Network failure or non-2xx reply.
        """
        endpoint = self._resolve_emit_endpoint(target)
        headers = self._build_headers(target, tx_id)

        body = json.dumps(payload, separators=(",", ":"))
        logger.debug("Emitting", extra={"kernel": target, "endpoint": endpoint})
        try:
            response = await self._http.post(
                endpoint,
                content=body,
                headers=headers,
                timeout=self._options.request_timeout,
            )
        except httpx.TimeoutException as e:
            raise EmitError(f"Emit timed out: {e}") from e
        except httpx.HTTPError as e:
            raise EmitError(f"Emit failed: {e}") from e

        if not response.is_success:
            detail = _error_detail(response)
            raise EmitError(
                detail or f"Emit failed: {response.status_code}",
                response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise EmitError("Emit reply is not JSON", response.status_code) from e
        if not isinstance(data, dict):
            return EmitResult(payload=data)
        return EmitResult.model_validate(data)

    # -----------------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------------

    async def open_transport(self) -> None:
        """Open the websocket of the discovered ``websocket`` service.

        Raises:
            ConnectError: No websocket endpoint, or the connection failed.
        """
        if self.transport_connected:
            return
        service = self.get_service("websocket")
        uri = service.stream_endpoint if service else None
        if not uri:
            raise ConnectError("No websocket endpoint found")

        if self._transport is not None:
            await self._transport.close()
        self._state = ClientState.CONNECTING_TRANSPORT
        transport = TransportSession(
            self._provider,
            self._registry,
            on_open=self._on_transport_open,
            on_message=self._on_transport_message,
            on_close=self._on_transport_close,
            on_reconnect_failed=self._on_reconnect_failed,
            reconnect=self._options.reconnect,
            reconnect_delay=self._options.reconnect_delay,
            max_reconnect_attempts=self._options.max_reconnect_attempts,
        )
        self._transport = transport
        self._transport_uri = uri
        try:
            await transport.open(uri)
        except ConnectError as e:
            self._transport = None
            self._state = ClientState.DISCONNECTED
            self._dispatcher.dispatch(
                EventCategory.ERROR,
                ErrorEvent(message="WebSocket connection failed", error=e),
            )
            raise

    def _require_transport(self) -> TransportSession:
        transport = self._transport
        if transport is None or not transport.is_open:
            raise NotConnectedError("WebSocket not connected. Call connect() first.")
        return transport

    def _on_transport_open(self, uri: str) -> None:
        self._state = ClientState.READY
        self._dispatcher.dispatch(EventCategory.CONNECTED, ConnectionEvent(url=uri))

    def _on_transport_message(self, message: InboundMessage) -> None:
        if isinstance(message, ConnectedMessage):
            self._set_session(
                Session(
                    token=message.token,
                    actor=message.actor,
                    roles=message.roles,
                    authenticated=False,
                )
            )
            self._state = ClientState.READY
        elif isinstance(message, KernelEvent):
            self._dispatcher.dispatch(EventCategory.EVENT, message)
            if message.is_notification:
                self._dispatcher.dispatch(EventCategory.NOTIFICATION, message)
        elif isinstance(message, ErrorMessage):
            self._dispatcher.dispatch(
                EventCategory.ERROR,
                ErrorEvent(message=message.message, context=message.context),
            )
        elif isinstance(message, UnknownMessage):
            logger.debug("Ignoring unknown message", extra={"message_type": message.type})

    def _on_transport_close(self, reason: str | None, expected: bool) -> None:
        uri = self._transport_uri
        self._set_session(None)
        if expected:
            self._state = ClientState.DISCONNECTED
        elif self._options.reconnect:
            self._state = ClientState.CONNECTING_TRANSPORT
        else:
            self._state = ClientState.DISCONNECTED
        self._dispatcher.dispatch(
            EventCategory.DISCONNECTED, ConnectionEvent(url=uri, reason=reason)
        )
        if reason and not expected:
            self._dispatcher.dispatch(
                EventCategory.ERROR,
                ErrorEvent(message="WebSocket error", context=reason),
            )

    def _on_reconnect_failed(self, error: BaseException) -> None:
        if self._transport is not None and self._transport.state is TransportState.CLOSED:
            # Reconnect attempts exhausted
            self._state = ClientState.DISCONNECTED
        self._dispatcher.dispatch(
            EventCategory.ERROR,
            ErrorEvent(message="Reconnect failed", error=error),
        )

    def _set_session(self, session: Session | None) -> None:
        self._session = session
        if session is None:
            self._session_ready.clear()
        else:
            self._session_ready.set()

    # -----------------------------------------------------------------------
    # Correlated requests
    # -----------------------------------------------------------------------

    async def _exchange(
        self,
        message: OutboundMessage | dict[str, Any],
        match: Predicate,
        timeout: float,
        *,
        key: Hashable | None = None,
        name: str = "request",
    ) -> InboundMessage:
        transport = self._require_transport()
        # Malformed messages are the caller's error, not a connection failure
        encode_message(message)
        # Register before sending so a fast reply cannot be missed
        pending = self._registry.register(match, timeout, key=key, name=name)
        try:
            await transport.send(message)
        except NotConnectedError:
            self._registry.cancel(pending)
            raise
        except Exception as e:
            self._registry.cancel(pending)
            raise TransportClosedError(f"Send failed: {e}") from e
        return await pending.wait()

    async def request(
        self,
        message: OutboundMessage | dict[str, Any],
        match: Predicate,
        *,
        timeout: float,
        key: Hashable | None = None,
    ) -> InboundMessage:
        """Send a message and wait for the first inbound message matching it.

        Raises:
            NotConnectedError: The websocket is not open.
            DuplicateRequestError: A request with ``key`` is already pending.
            RequestTimeoutError: Nothing matched within ``timeout`` seconds.
            TransportClosedError: The websocket closed first.
            ValueError: A dict message has no ``type``.
        """
        name = message.get("type", "request") if isinstance(message, dict) else message.type
        return await self._exchange(message, match, timeout, key=key, name=name)

    async def authenticate(
        self,
        username: str,
        password: str,
        *,
        timeout: float | None = None,
    ) -> AuthResult:
        """Upgrade the anonymous session with username/password.

        Raises:
            NotConnectedError: The websocket is not open.
            AuthError: Rejected, timed out, or the connection dropped.
        """
        self._require_transport()
        if self._session is None and self._options.session_wait > 0:
            try:
                await asyncio.wait_for(self._session_ready.wait(), self._options.session_wait)
            except asyncio.TimeoutError:
                logger.debug("No session greeting before authenticate")

        def match(message: InboundMessage) -> bool:
            if isinstance(message, TokenUpgradedMessage):
                return True
            return isinstance(message, ErrorMessage) and message.context == UPGRADE_TOKEN

        logger.info("Authenticating", extra={"username": username})
        request = UpgradeTokenRequest(self.token, username, password)
        try:
            reply = await self._exchange(
                request,
                match,
                timeout or self._options.auth_timeout,
                key=(UPGRADE_TOKEN,),
                name=UPGRADE_TOKEN,
            )
        except RequestTimeoutError as e:
            raise AuthError("Authentication timeout") from e
        except TransportClosedError as e:
            raise AuthError(f"Authentication failed: {e}") from e

        if isinstance(reply, ErrorMessage):
            raise AuthError(reply.message or "Authentication failed")
        assert isinstance(reply, TokenUpgradedMessage)

        self._set_session(
            Session(token=reply.token, actor=reply.actor, roles=reply.roles, authenticated=True)
        )
        self._state = ClientState.AUTHENTICATED
        result = AuthResult(token=reply.token, actor=reply.actor, roles=reply.roles)
        logger.info("Authenticated", extra={"actor": reply.actor, "roles": list(reply.roles)})
        self._dispatcher.dispatch(EventCategory.AUTHENTICATED, result)
        return result

    async def bootstrap_kernel(
        self,
        config: KernelBootstrapConfig | Mapping[str, Any],
        *,
        timeout: float | None = None,
    ) -> BootstrapResult:
        """Create a kernel on the runtime.

        Raises:
            NotConnectedError: The websocket is not open.
            AuthRequiredError: The session is not authenticated.
            BootstrapError: Rejected, timed out, or the connection dropped.
        """
        if not isinstance(config, KernelBootstrapConfig):
            config = KernelBootstrapConfig.from_mapping(config)
        self._require_transport()
        if not self.authenticated:
            raise AuthRequiredError("Authentication required for kernel bootstrap")

        kernel = config.kernel

        def match(message: InboundMessage) -> bool:
            if isinstance(message, KernelBootstrappedMessage):
                return message.kernel == kernel
            return (
                isinstance(message, ErrorMessage)
                and message.context == BOOTSTRAP_KERNEL
                and message.raw.get("kernel") in (None, kernel)
            )

        request = BootstrapKernelRequest(
            kernel=kernel,
            actor=self.actor or DEFAULT_ACTOR,
            kernel_type=config.kernel_type,
            bfo_class=config.bfo_class,
            description=config.description,
            edges=tuple(config.edges),
        )
        logger.info("Bootstrapping kernel", extra={"kernel": kernel})
        try:
            reply = await self._exchange(
                request,
                match,
                timeout or self._options.bootstrap_timeout,
                key=(BOOTSTRAP_KERNEL, kernel),
                name=BOOTSTRAP_KERNEL,
            )
        except RequestTimeoutError as e:
            raise BootstrapError("Bootstrap timeout") from e
        except TransportClosedError as e:
            raise BootstrapError(f"Bootstrap failed: {e}") from e

        if isinstance(reply, ErrorMessage):
            raise BootstrapError(reply.message or "Bootstrap failed")
        assert isinstance(reply, KernelBootstrappedMessage)
        return reply

    # -----------------------------------------------------------------------
    # Events and direct publish
    # -----------------------------------------------------------------------

    def on(self, category: EventCategory | str, handler: Handler) -> Subscription:
        """Subscribe ``handler`` to a category; call the result to unsubscribe.

        Raises:
            InvalidCategoryError: Unknown category.
        """
        return self._dispatcher.subscribe(category, handler)

    async def publish(self, subject: str, payload: Any) -> None:
        """Fire-and-forget publish through the injected direct publisher.

        Raises:
            ServiceUnavailableError: No publisher was configured.
        """
        if self._publisher is None:
            raise ServiceUnavailableError("No direct publisher configured")
        await self._publisher.publish(subject, payload)

    # -----------------------------------------------------------------------
    # Status and teardown
    # -----------------------------------------------------------------------

    def status(self) -> ConnectionStatus:
        snapshot = self._discovery.snapshot
        return ConnectionStatus(
            state=self._state,
            discovered=snapshot is not None,
            last_discovery=snapshot.fetched_at if snapshot else None,
            cache_age=self._discovery.age,
            transport_connected=self.transport_connected,
            authenticated=self.authenticated,
            actor=self.actor,
            roles=self.roles,
            available_services=self.available_services(),
        )

    async def disconnect(self) -> None:
        """Close the websocket and forget the session. Keeps discovery."""
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()
        self._set_session(None)
        self._state = ClientState.DISCONNECTED

    async def close(self) -> None:
        """Disconnect and release the HTTP client and publisher."""
        try:
            await self.disconnect()
            if self._publisher is not None:
                await self._publisher.close()
        finally:
            if self._owns_http and not self._http.is_closed:
                await self._http.aclose()


# ---------------------------------------------------------------------------
# Sync Client Wrapper
# ---------------------------------------------------------------------------


class ConceptKernelClientSync:
    """Blocking wrapper for discovery and emit.

    Runs its own event loop and never opens the websocket.

    Example:
        >>> with ConceptKernelClientSync("http://localhost:56000") as ck:
        ...     ck.discover()
        ...     ck.emit("System.Registry", {"action": "query"})
    """

    def __init__(
        self,
        gateway_url: str,
        options: ConnectionOptions | None = None,
        **kwargs: Any,
    ):
        options = replace(options or ConnectionOptions(), auto_connect=False)
        self._loop = asyncio.new_event_loop()
        self._async_client = ConceptKernelClient(gateway_url, options, **kwargs)

    def _run(self, coro):
        """Run coroutine on the wrapper's loop."""
        return self._loop.run_until_complete(coro)

    def __enter__(self) -> "ConceptKernelClientSync":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        if self._loop.is_closed():
            return
        try:
            self._run(self._async_client.close())
        finally:
            self._loop.close()

    def discover(self, force_refresh: bool = False) -> ServiceMap:
        return self._run(self._async_client.discover(force_refresh))

    def emit(self, target: str, payload: Any, *, tx_id: str | None = None) -> EmitResult:
        return self._run(self._async_client.emit(target, payload, tx_id=tx_id))

    def find_kernel(self, query: str) -> KernelInfo | None:
        return self._async_client.find_kernel(query)

    def status(self) -> ConnectionStatus:
        return self._async_client.status()


__all__ = [
    "AuthResult",
    "BootstrapResult",
    "ClientState",
    "ConceptKernelClient",
    "ConceptKernelClientSync",
    "ConnectionStatus",
    "EmitResult",
    "KernelBootstrapConfig",
    "Session",
]
