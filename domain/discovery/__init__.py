from .entity import ClientHandle, Node, ServiceRecord
from .exceptions import (
    AcquireTimeoutError,
    DiscoveryError,
    DiscoveryExhaustedError,
    FatalSetupError,
    NoInstancesError,
    NotYetDiscoveredError,
    RegistryUnavailableError,
    SessionClosedError,
    TransientDiscoveryError,
)
from .registry import ServiceRegistry
from .transport import Transport, TransportFactory

__all__ = [
    "ClientHandle",
    "Node",
    "ServiceRecord",
    "ServiceRegistry",
    "Transport",
    "TransportFactory",
    "DiscoveryError",
    "FatalSetupError",
    "TransientDiscoveryError",
    "RegistryUnavailableError",
    "NoInstancesError",
    "DiscoveryExhaustedError",
    "NotYetDiscoveredError",
    "AcquireTimeoutError",
    "SessionClosedError",
]
