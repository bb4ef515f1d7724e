"""Connection configuration for the ConceptKernel client."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_GATEWAY_URL = "http://localhost:56000"


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(slots=True)
class AuthCredentials:
    """Username/password pair used for the credential upgrade."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"AuthCredentials(username={self.username!r}, password='***')"


@dataclass(slots=True)
class ConnectionOptions:
    """Options recognised by :meth:`ConceptKernelClient.connect`.

    All durations are in seconds.

    Attributes:
        auto_connect: Open the websocket when a ``websocket`` service is
            discovered (default: True)
        auth: Credentials to upgrade the anonymous session with
        cache_timeout: Lifetime of the discovered service map (default: 60)
        reconnect: Reopen the websocket after an unexpected close
            (default: True)
        reconnect_delay: Fixed delay before each reconnect attempt
            (default: 3)
        max_reconnect_attempts: Stop reconnecting after this many failed
            attempts (default: unlimited)
        request_timeout: Per-call timeout for discovery and emit
            (default: 10)
        auth_timeout: Deadline for the credential upgrade (default: 10)
        bootstrap_timeout: Deadline for kernel bootstrap (default: 30)
        session_wait: How long authenticate() waits for the server's
            ``connected`` greeting before sending without a token
            (default: 2)
    """

    auto_connect: bool = True
    auth: AuthCredentials | None = None
    cache_timeout: float = 60.0
    reconnect: bool = True
    reconnect_delay: float = 3.0
    max_reconnect_attempts: int | None = None
    request_timeout: float = 10.0
    auth_timeout: float = 10.0
    bootstrap_timeout: float = 30.0
    session_wait: float = 2.0

    @classmethod
    def from_env(cls) -> "ConnectionOptions":
        """Load options from ``CK_*`` environment variables.

        Optional:
            CK_AUTO_CONNECT: Open the websocket on connect (default: true)
            CK_USERNAME / CK_PASSWORD: Credentials for the upgrade
            CK_CACHE_TIMEOUT: Discovery cache lifetime in seconds
            CK_RECONNECT: Auto-reconnect the websocket (default: true)
            CK_RECONNECT_DELAY: Reconnect delay in seconds
            CK_REQUEST_TIMEOUT: HTTP timeout in seconds
        """
        auth = None
        username = os.environ.get("CK_USERNAME")
        if username:
            auth = AuthCredentials(
                username=username,
                password=os.environ.get("CK_PASSWORD", ""),
            )
        return cls(
            auto_connect=_env_bool("CK_AUTO_CONNECT", True),
            auth=auth,
            cache_timeout=float(os.environ.get("CK_CACHE_TIMEOUT", "60.0")),
            reconnect=_env_bool("CK_RECONNECT", True),
            reconnect_delay=float(os.environ.get("CK_RECONNECT_DELAY", "3.0")),
            request_timeout=float(os.environ.get("CK_REQUEST_TIMEOUT", "10.0")),
        )


__all__ = ["AuthCredentials", "ConnectionOptions", "DEFAULT_GATEWAY_URL"]
