from __future__ import annotations

import itertools
import time
from typing import Dict, List, Optional, Sequence, Tuple

import grpc
from grpc_health.v1 import health_pb2, health_pb2_grpc

from core.config import GrpcClientSettings, GrpcTlsSettings
from core.logging_config import get_logger
from domain.discovery.entity import Node
from domain.discovery.exceptions import NoInstancesError
from domain.discovery.registry import ServiceRegistry
from domain.discovery.transport import Transport


logger = get_logger(__name__)


class GrpcClientConfigError(ValueError):
    """Malformed client configuration (TLS material, options)."""


def _read(path: str, what: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as exc:
        raise GrpcClientConfigError(f"cannot read TLS {what} file {path}: {exc}") from exc


def load_channel_credentials(tls: GrpcTlsSettings) -> Optional[grpc.ChannelCredentials]:
    """Build channel credentials from PEM files; None when TLS is disabled.

    cert and key must be configured together (mutual TLS); ca is optional and
    falls back to the system roots.
    """
    if not tls.enabled:
        return None
    if bool(tls.cert) != bool(tls.key):
        raise GrpcClientConfigError("GRPC client TLS needs both cert and key (or neither)")
    root_certificates = _read(tls.ca, "CA") if tls.ca else None
    private_key = _read(tls.key, "key") if tls.key else None
    certificate_chain = _read(tls.cert, "cert") if tls.cert else None
    return grpc.ssl_channel_credentials(
        root_certificates=root_certificates,
        private_key=private_key,
        certificate_chain=certificate_chain,
    )


class GrpcTransport(Transport):
    """grpc.aio channels to instances resolved through the service registry.

    One channel is cached per target; instances are picked round-robin.
    Registry lookups are cached per service for ``resolve_ttl`` seconds
    (0 disables the cache).
    """

    def __init__(
        self,
        registry: ServiceRegistry,
        *,
        credentials: Optional[grpc.ChannelCredentials] = None,
        options: Sequence[Tuple[str, object]] = (),
        resolve_ttl: float = 0.0,
    ) -> None:
        self.registry = registry
        self._credentials = credentials
        self._options: List[Tuple[str, object]] = list(options)
        self._channels: Dict[str, grpc.aio.Channel] = {}
        self._cursor = itertools.count()
        self._resolve_ttl = resolve_ttl
        self._resolved: Dict[str, Tuple[float, List[Node]]] = {}

    @property
    def secure(self) -> bool:
        return self._credentials is not None

    @property
    def targets(self) -> List[str]:
        return list(self._channels)

    async def _nodes(self, service_name: str) -> List[Node]:
        cached = self._resolved.get(service_name)
        if cached is not None and time.monotonic() < cached[0]:
            return cached[1]
        records = await self.registry.lookup(service_name)
        nodes = [node for record in records for node in record.nodes]
        if not nodes:
            raise NoInstancesError(service_name)
        if self._resolve_ttl > 0:
            self._resolved[service_name] = (time.monotonic() + self._resolve_ttl, nodes)
        return nodes

    async def resolve(self, service_name: str) -> str:
        nodes = await self._nodes(service_name)
        node = nodes[next(self._cursor) % len(nodes)]
        return node.target

    async def channel(self, service_name: str) -> grpc.aio.Channel:
        target = await self.resolve(service_name)
        channel = self._channels.get(target)
        if channel is None:
            if self._credentials is not None:
                channel = grpc.aio.secure_channel(target, self._credentials, options=self._options)
            else:
                channel = grpc.aio.insecure_channel(target, options=self._options)
            self._channels[target] = channel
            logger.info("grpc_channel_opened", service=service_name, target=target, secure=self.secure)
        return channel

    async def check_health(self, service_name: str, timeout: float = 3.0) -> bool:
        """Standard grpc.health.v1 check against one resolved instance."""
        channel = await self.channel(service_name)
        stub = health_pb2_grpc.HealthStub(channel)
        reply = await stub.Check(health_pb2.HealthCheckRequest(service=""), timeout=timeout)
        return reply.status == health_pb2.HealthCheckResponse.SERVING

    async def close(self) -> None:
        self._resolved.clear()
        channels, self._channels = self._channels, {}
        for target, channel in channels.items():
            await channel.close()
            logger.debug("grpc_channel_closed", target=target)


class GrpcTransportFactory:
    """Pure setup: validates options and TLS material, never queries the registry."""

    def __init__(self, settings: GrpcClientSettings) -> None:
        self._settings = settings

    def _options(self) -> List[Tuple[str, object]]:
        options: List[Tuple[str, object]] = [
            ("grpc.keepalive_time_ms", self._settings.keepalive_time_ms),
            ("grpc.max_receive_message_length", self._settings.max_receive_message_length),
        ]
        if self._settings.server_name_override:
            options.append(("grpc.ssl_target_name_override", self._settings.server_name_override))
        return options

    def __call__(self, registry: ServiceRegistry) -> GrpcTransport:
        if self._settings.keepalive_time_ms <= 0:
            raise GrpcClientConfigError("keepalive_time_ms must be positive")
        credentials = load_channel_credentials(self._settings.tls)
        return GrpcTransport(
            registry,
            credentials=credentials,
            options=self._options(),
            resolve_ttl=self._settings.resolve_cache_ttl,
        )
