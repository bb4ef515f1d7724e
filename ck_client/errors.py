"""Exception hierarchy for the ConceptKernel client."""

from __future__ import annotations


class CKClientError(Exception):
    """Base exception for ConceptKernel client errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DiscoveryError(CKClientError):
    """Service discovery failed and no cached services are available."""
    pass


class ConnectError(CKClientError):
    """The persistent transport could not be established."""
    pass


class NotConnectedError(CKClientError):
    """An operation needed an open transport and there was none."""
    pass


class AuthError(CKClientError):
    """Credential upgrade was rejected, timed out or lost its connection."""
    pass


class AuthRequiredError(CKClientError):
    """An operation needed an authenticated session."""
    pass


class ServiceUnavailableError(CKClientError):
    """The requested service or endpoint is not in the discovered map."""
    pass


class BootstrapError(CKClientError):
    """Kernel bootstrap was rejected, timed out or lost its connection."""
    pass


class EmitError(CKClientError):
    """One-shot emit request failed."""
    pass


class RequestTimeoutError(CKClientError):
    """A correlated request received no matching response in time."""

    def __init__(self, name: str, timeout: float):
        super().__init__(f"{name} timed out after {timeout:g}s")
        self.name = name
        self.timeout = timeout


class TransportClosedError(CKClientError):
    """The transport closed while a correlated request was pending."""
    pass


class MessageDecodeError(CKClientError):
    """An inbound frame was not a valid message envelope."""
    pass


class InvalidCategoryError(CKClientError, ValueError):
    """Subscription to an event category that does not exist."""
    pass


class DuplicateRequestError(CKClientError, ValueError):
    """A correlated request with the same key is already in flight."""
    pass


__all__ = [
    "AuthError",
    "AuthRequiredError",
    "BootstrapError",
    "CKClientError",
    "ConnectError",
    "DiscoveryError",
    "DuplicateRequestError",
    "EmitError",
    "InvalidCategoryError",
    "MessageDecodeError",
    "NotConnectedError",
    "RequestTimeoutError",
    "ServiceUnavailableError",
    "TransportClosedError",
]
