"""ConceptKernel client SDK.

Discovers the services a ConceptKernel gateway advertises, sends one-shot
payloads to kernels over HTTP, and keeps a websocket session open for pushed
events, the credential upgrade and kernel bootstrap.

Example:
    >>> from ck_client import ConceptKernelClient
    >>> ck = await ConceptKernelClient.connect("http://localhost:56000")
    >>> ck.on("event", lambda event: print(event.kernel, event.data))
    >>> await ck.authenticate("alice", "secret")
    >>> await ck.emit("UI.Bakery", {"action": "mix"})

Blocking use (discovery and emit only):
    >>> from ck_client import ConceptKernelClientSync
    >>> with ConceptKernelClientSync("http://localhost:56000") as ck:
    ...     ck.emit("System.Registry", {"action": "query"})
"""

from .client import (
    AuthResult,
    BootstrapResult,
    ClientState,
    ConceptKernelClient,
    ConceptKernelClientSync,
    ConnectionStatus,
    EmitResult,
    KernelBootstrapConfig,
    Session,
)
from .config import DEFAULT_GATEWAY_URL, AuthCredentials, ConnectionOptions
from .discovery import KernelInfo, ServiceEndpoints, ServiceEntry, ServiceMap
from .errors import (
    AuthError,
    AuthRequiredError,
    BootstrapError,
    CKClientError,
    ConnectError,
    DiscoveryError,
    DuplicateRequestError,
    EmitError,
    InvalidCategoryError,
    MessageDecodeError,
    NotConnectedError,
    RequestTimeoutError,
    ServiceUnavailableError,
    TransportClosedError,
)
from .events import ConnectionEvent, DiscoveryEvent, ErrorEvent, EventCategory, Subscription
from .messages import ErrorMessage, KernelBootstrappedMessage, KernelEvent

__all__ = [
    "AuthCredentials",
    "AuthError",
    "AuthRequiredError",
    "AuthResult",
    "BootstrapError",
    "BootstrapResult",
    "CKClientError",
    "ClientState",
    "ConceptKernelClient",
    "ConceptKernelClientSync",
    "ConnectError",
    "ConnectionEvent",
    "ConnectionOptions",
    "ConnectionStatus",
    "DEFAULT_GATEWAY_URL",
    "DiscoveryError",
    "DiscoveryEvent",
    "DuplicateRequestError",
    "EmitError",
    "EmitResult",
    "ErrorEvent",
    "ErrorMessage",
    "EventCategory",
    "InvalidCategoryError",
    "KernelBootstrapConfig",
    "KernelBootstrappedMessage",
    "KernelEvent",
    "KernelInfo",
    "MessageDecodeError",
    "NotConnectedError",
    "RequestTimeoutError",
    "ServiceEndpoints",
    "ServiceEntry",
    "ServiceMap",
    "ServiceUnavailableError",
    "Session",
    "Subscription",
    "TransportClosedError",
]
__version__ = "0.1.0"
