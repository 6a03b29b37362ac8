from __future__ import annotations

from typing import Optional

from application.services.discovery_session import DiscoverySession
from core.config import DiscoverySettings, GrpcClientSettings
from domain.discovery.transport import TransportFactory
from grpc_app.client import GrpcTransportFactory

from .consul_registry import ConsulRegistry


def create_registry(cfg: DiscoverySettings, debug: bool = False) -> ConsulRegistry:
    return ConsulRegistry(
        cfg.registry_address,
        datacenter=cfg.datacenter,
        token=cfg.token,
        passing_only=cfg.passing_only,
        timeout=cfg.request_timeout,
        max_retries=cfg.request_retries,
        debug=debug,
    )


def create_discovery_session(
    cfg: DiscoverySettings,
    grpc_cfg: GrpcClientSettings,
    transport_factory: Optional[TransportFactory] = None,
    debug: bool = False,
) -> DiscoverySession:
    return DiscoverySession(
        cfg,
        registry=create_registry(cfg, debug=debug),
        transport_factory=transport_factory or GrpcTransportFactory(grpc_cfg),
    )
