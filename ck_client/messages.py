"""Websocket message envelopes.

Inbound frames are JSON objects keyed by ``type``. They are decoded once, at
the transport boundary, into one of a closed set of frozen dataclasses; the
correlation and dispatch layers only ever see these types.

Inbound:
    connected            session bootstrap with the anonymous token
    event, notification  kernel events (fan-out)
    error                server-side error, optionally tagged with the
                         operation that caused it (``context``)
    token_upgraded       reply to ``upgrade_token`` (exchange-only)
    kernel_bootstrapped  reply to ``bootstrap_kernel`` (exchange-only)

Outbound:
    upgrade_token, bootstrap_kernel
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Union

from .errors import MessageDecodeError

DEFAULT_ACTOR = "ckp://System.Oidc.User#anonymous"
DEFAULT_BFO_CLASS = "ckp://BFO#Continuant"


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConnectedMessage:
    """Welcome frame carrying the anonymous session."""

    token: str | None
    actor: str | None
    roles: tuple[str, ...]
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    type = "connected"


@dataclass(frozen=True, slots=True)
class KernelEvent:
    """An ``event`` or ``notification`` pushed by a kernel."""

    type: str
    kernel: str | None
    tx_id: str | None
    timestamp: str | None
    data: Any
    process_urn: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def is_notification(self) -> bool:
        return self.type == "notification"


@dataclass(frozen=True, slots=True)
class ErrorMessage:
    message: str
    context: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    type = "error"


@dataclass(frozen=True, slots=True)
class TokenUpgradedMessage:
    token: str
    actor: str | None
    roles: tuple[str, ...]
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    type = "token_upgraded"


@dataclass(frozen=True, slots=True)
class KernelBootstrappedMessage:
    kernel: str
    timestamp: str | None
    process_urn: str | None
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    type = "kernel_bootstrapped"


@dataclass(frozen=True, slots=True)
class UnknownMessage:
    """Any frame whose ``type`` this client does not understand."""

    type: str
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)


InboundMessage = Union[
    ConnectedMessage,
    KernelEvent,
    ErrorMessage,
    TokenUpgradedMessage,
    KernelBootstrappedMessage,
    UnknownMessage,
]

# Replies consumed by request correlation and never fanned out.
EXCHANGE_ONLY_TYPES = (TokenUpgradedMessage, KernelBootstrappedMessage)


def is_exchange_only(message: InboundMessage) -> bool:
    return isinstance(message, EXCHANGE_ONLY_TYPES)


def _roles(value: Any, default: tuple[str, ...] = ()) -> tuple[str, ...]:
    if not value:
        return default
    if isinstance(value, str):
        return (value,)
    return tuple(str(role) for role in value)


def decode_message(frame: str | bytes) -> InboundMessage:
    """Decode one inbound frame.

    Raises:
        MessageDecodeError: The frame is not a JSON object with a string
            ``type`` field.
    """
    try:
        data = json.loads(frame)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MessageDecodeError(f"Invalid JSON frame: {e}") from e

    if not isinstance(data, dict):
        raise MessageDecodeError("Frame is not a JSON object")
    msg_type = data.get("type")
    if not isinstance(msg_type, str):
        raise MessageDecodeError("Frame has no 'type' field")

    if msg_type == "connected":
        return ConnectedMessage(
            token=data.get("token"),
            actor=data.get("actor"),
            roles=_roles(data.get("roles"), ("anonymous",)),
            raw=data,
        )
    if msg_type in ("event", "notification"):
        return KernelEvent(
            type=msg_type,
            kernel=data.get("kernel"),
            tx_id=data.get("txId"),
            timestamp=data.get("timestamp"),
            data=data.get("data"),
            process_urn=data.get("processUrn"),
            raw=data,
        )
    if msg_type == "error":
        return ErrorMessage(
            message=str(data.get("message") or "Unknown error"),
            context=data.get("context"),
            raw=data,
        )
    if msg_type == "token_upgraded":
        token = data.get("token")
        if not token:
            raise MessageDecodeError("token_upgraded frame carries no token")
        return TokenUpgradedMessage(
            token=token,
            actor=data.get("actor"),
            roles=_roles(data.get("roles")),
            raw=data,
        )
    if msg_type == "kernel_bootstrapped":
        return KernelBootstrappedMessage(
            kernel=str(data.get("kernel", "")),
            timestamp=data.get("timestamp"),
            process_urn=data.get("processUrn"),
            raw=data,
        )
    return UnknownMessage(type=msg_type, raw=data)


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UpgradeTokenRequest:
    current_token: str | None
    username: str
    password: str = field(repr=False)

    type = "upgrade_token"

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "current_token": self.current_token,
            "credentials": {"username": self.username, "password": self.password},
        }


@dataclass(frozen=True, slots=True)
class BootstrapKernelRequest:
    kernel: str
    actor: str = DEFAULT_ACTOR
    kernel_type: str | None = None
    bfo_class: str = DEFAULT_BFO_CLASS
    description: str = ""
    edges: tuple[str, ...] = ()

    type = "bootstrap_kernel"

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {
            "type": self.type,
            "actor": self.actor,
            "kernel": self.kernel,
            "bfo_class": self.bfo_class,
            "description": self.description,
            "edges": list(self.edges),
        }
        if self.kernel_type is not None:
            wire["kernel_type"] = self.kernel_type
        return wire


OutboundMessage = Union[UpgradeTokenRequest, BootstrapKernelRequest]


def encode_message(message: OutboundMessage | dict[str, Any]) -> str:
    """Serialize an outbound message (or a raw dict) to a text frame."""
    if isinstance(message, dict):
        if "type" not in message:
            raise ValueError("Outbound message needs a 'type' field")
        return json.dumps(message)
    return json.dumps(message.to_wire())


__all__ = [
    "BootstrapKernelRequest",
    "ConnectedMessage",
    "DEFAULT_ACTOR",
    "DEFAULT_BFO_CLASS",
    "ErrorMessage",
    "InboundMessage",
    "KernelBootstrappedMessage",
    "KernelEvent",
    "OutboundMessage",
    "TokenUpgradedMessage",
    "UnknownMessage",
    "UpgradeTokenRequest",
    "decode_message",
    "encode_message",
    "is_exchange_only",
]
