"""Service discovery adapters (Consul) and session wiring."""
from .consul_registry import ConsulRegistry, normalize_address, parse_health_entries
from .factory import create_discovery_session, create_registry

__all__ = [
    "ConsulRegistry",
    "normalize_address",
    "parse_health_entries",
    "create_discovery_session",
    "create_registry",
]
