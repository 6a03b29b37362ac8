"""Pytest bootstrap configuration.

Shared fakes for the service registry and the transport factory so discovery
tests never touch a real Consul agent.
"""
import os

# Keep settings deterministic regardless of a developer .env
os.environ.setdefault("DISCOVERY__ENABLED", "false")

from typing import Iterable, List, Optional, Union

import pytest

from core.config import DiscoverySettings, RetrySettings
from domain.discovery.entity import Node, ServiceRecord
from domain.discovery.registry import ServiceRegistry
from domain.discovery.transport import Transport


LookupResult = Union[Iterable[ServiceRecord], BaseException]


class FakeRegistry(ServiceRegistry):
    """Scripted lookups: each call consumes one response, the last one repeats."""

    def __init__(self, responses: Optional[List[LookupResult]] = None, address: str = "consul:8500"):
        self.address = address
        self._responses = list(responses or [[]])
        self.calls = 0
        self.closed = False

    async def lookup(self, service_name: str) -> List[ServiceRecord]:
        self.calls += 1
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, BaseException):
            raise item
        return list(item)

    async def close(self) -> None:
        self.closed = True


class FakeTransport(Transport):
    def __init__(self, registry: ServiceRegistry):
        self.registry = registry
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class CountingFactory:
    def __init__(self, error: Optional[Exception] = None):
        self.calls = 0
        self.error = error
        self.created: List[FakeTransport] = []

    def __call__(self, registry: ServiceRegistry) -> FakeTransport:
        self.calls += 1
        if self.error is not None:
            raise self.error
        transport = FakeTransport(registry)
        self.created.append(transport)
        return transport


def orders_record(address: str = "10.0.0.5", port: str = "9090", node_id: str = "n1") -> ServiceRecord:
    return ServiceRecord(
        name="orders",
        nodes=(Node(id=node_id, address=address, metadata={"port": port}),),
    )


def make_discovery_settings(**overrides) -> DiscoverySettings:
    retry = overrides.pop("retry", None) or RetrySettings(backoff=0.01)
    params = dict(registry_address="consul:8500", service_name="orders", retry=retry)
    params.update(overrides)
    return DiscoverySettings(**params)


@pytest.fixture
def factory() -> CountingFactory:
    return CountingFactory()
