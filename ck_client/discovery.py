"""Service discovery with a time-limited cache.

The gateway publishes its service map at ``/.well-known/ck-services``. The
document is validated with pydantic before it is allowed to replace the
cached snapshot, so a truncated or malformed response can never overwrite a
good map.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Mapping

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .errors import DiscoveryError

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/ck-services"


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


class ServiceEndpoints(BaseModel):
    """Protocol-tagged endpoint URIs of one service."""

    model_config = ConfigDict(frozen=True)

    http: str | None = None
    https: str | None = None
    ws: str | None = None
    wss: str | None = None
    emit: str | None = None


class ServiceEntry(BaseModel):
    """One discovered remote capability."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    urn: str = ""
    endpoints: ServiceEndpoints = Field(default_factory=ServiceEndpoints)
    capabilities: tuple[str, ...] = ()

    @property
    def request_endpoint(self) -> str | None:
        """Endpoint for one-shot requests (``emit`` preferred over ``http``)."""
        return self.endpoints.emit or self.endpoints.http

    @property
    def stream_endpoint(self) -> str | None:
        """Websocket endpoint (plain ``ws`` preferred over ``wss``)."""
        return self.endpoints.ws or self.endpoints.wss


class KernelInfo(BaseModel):
    """A kernel listed by the gateway. Extra fields are kept as reported."""

    model_config = ConfigDict(frozen=True, extra="allow")

    name: str
    urn: str = ""

    def matches(self, query: str) -> bool:
        return self.name == query or (bool(self.urn) and query in self.urn)


class DiscoveryDocument(BaseModel):
    """Body of ``GET /.well-known/ck-services``."""

    ck_version: str | None = None
    domain: str | None = None
    services: dict[str, ServiceEntry] = Field(default_factory=dict)
    kernels: list[KernelInfo] = Field(default_factory=list)

    @field_validator("services", mode="before")
    @classmethod
    def _name_services(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        named = {}
        for name, entry in value.items():
            if isinstance(entry, dict):
                entry = {**entry, "name": name}
            named[name] = entry
        return named

    @field_validator("services", "kernels", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return {} if info.field_name == "services" else []
        return value


# Read-only view of service name -> ServiceEntry
ServiceMap = Mapping[str, ServiceEntry]


@dataclass(frozen=True, slots=True)
class DiscoverySnapshot:
    """One complete discovery result and the time it was fetched."""

    services: ServiceMap
    kernels: tuple[KernelInfo, ...]
    ck_version: str | None
    domain: str | None
    fetched_at: float

    @classmethod
    def from_document(cls, doc: DiscoveryDocument, fetched_at: float) -> "DiscoverySnapshot":
        return cls(
            services=MappingProxyType(dict(doc.services)),
            kernels=tuple(doc.kernels),
            ck_version=doc.ck_version,
            domain=doc.domain,
            fetched_at=fetched_at,
        )


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class DiscoveryCache:
    """Holds the last discovered service map and refetches it when stale.

    Example:
        >>> cache = DiscoveryCache("http://localhost:56000", http_client, ttl=60)
        >>> services = await cache.get()
        >>> services["gateway"].request_endpoint
    """

    def __init__(
        self,
        gateway_url: str,
        http_client: httpx.AsyncClient,
        *,
        ttl: float = 60.0,
        request_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        on_refresh: Callable[[DiscoverySnapshot], None] | None = None,
    ):
        self._url = gateway_url.rstrip("/") + DISCOVERY_PATH
        self._http = http_client
        self._ttl = ttl
        self._timeout = request_timeout
        self._clock = clock
        self._on_refresh = on_refresh
        self._snapshot: DiscoverySnapshot | None = None
        self._lock = asyncio.Lock()
        self.fetch_count = 0

    @property
    def url(self) -> str:
        return self._url

    @property
    def snapshot(self) -> DiscoverySnapshot | None:
        return self._snapshot

    @property
    def age(self) -> float | None:
        """Seconds since the held snapshot was fetched, or None."""
        snapshot = self._snapshot
        if snapshot is None:
            return None
        return self._clock() - snapshot.fetched_at

    def is_fresh(self) -> bool:
        age = self.age
        return age is not None and age < self._ttl

    def invalidate(self) -> None:
        """Force the next get() to fetch, keeping the map as a fallback."""
        snapshot = self._snapshot
        if snapshot is not None:
            self._snapshot = DiscoverySnapshot(
                services=snapshot.services,
                kernels=snapshot.kernels,
                ck_version=snapshot.ck_version,
                domain=snapshot.domain,
                fetched_at=float("-inf"),
            )

    async def get(self, force_refresh: bool = False) -> ServiceMap:
        """Return the service map, fetching it if stale or forced.

        Raises:
            DiscoveryError: The fetch failed and nothing is cached.
        """
        if not force_refresh and self.is_fresh():
            return self._snapshot.services  # type: ignore[union-attr]

        async with self._lock:
            # Another caller may have refreshed while we waited
            if not force_refresh and self.is_fresh():
                return self._snapshot.services  # type: ignore[union-attr]

            try:
                snapshot = await self._fetch()
            except DiscoveryError as e:
                previous = self._snapshot
                if previous is None:
                    raise
                logger.warning(
                    "Service discovery failed, keeping cached services",
                    extra={"url": self._url, "error": str(e)},
                )
                return previous.services

            self._snapshot = snapshot
            logger.info(
                "Service discovery complete",
                extra={"url": self._url, "services": list(snapshot.services)},
            )
            if self._on_refresh is not None:
                self._on_refresh(snapshot)
            return snapshot.services

    async def _fetch(self) -> DiscoverySnapshot:
        self.fetch_count += 1
        logger.debug("Fetching service discovery", extra={"url": self._url})
        try:
            response = await self._http.get(self._url, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise DiscoveryError(f"Service discovery timed out: {e}") from e
        except httpx.HTTPError as e:
            raise DiscoveryError(f"Service discovery failed: {e}") from e

        if not response.is_success:
            raise DiscoveryError(
                f"Service discovery failed: {response.status_code} {response.reason_phrase}",
                response.status_code,
            )

        try:
            doc = DiscoveryDocument.model_validate(response.json())
        except ValueError as e:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
            raise DiscoveryError(f"Invalid discovery document: {e}") from e

        return DiscoverySnapshot.from_document(doc, self._clock())

    def find_kernel(self, query: str) -> KernelInfo | None:
        """Find a kernel by exact name or by containment in its URN."""
        snapshot = self._snapshot
        if snapshot is None:
            return None
        for kernel in snapshot.kernels:
            if kernel.matches(query):
                return kernel
        return None


__all__ = [
    "DISCOVERY_PATH",
    "DiscoveryCache",
    "DiscoveryDocument",
    "DiscoverySnapshot",
    "KernelInfo",
    "ServiceEndpoints",
    "ServiceEntry",
    "ServiceMap",
]
