import logging

import httpx
import pytest

from domain.discovery.exceptions import RegistryUnavailableError
from infrastructure.discovery import create_registry
from infrastructure.discovery.consul_registry import ConsulRegistry, normalize_address, parse_health_entries

from conftest import make_discovery_settings


def _entry(service_id, address, port, meta=None, node_address="192.168.1.10", name="orders"):
    return {
        "Node": {"Node": "agent-1", "Address": node_address},
        "Service": {
            "ID": service_id,
            "Service": name,
            "Address": address,
            "Port": port,
            "Meta": meta or {},
            "Tags": [],
        },
        "Checks": [],
    }


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("consul:8500", "http://consul:8500"),
        ("https://consul.example.com/", "https://consul.example.com"),
        (" 127.0.0.1:8500 ", "http://127.0.0.1:8500"),
    ],
)
def test_normalize_address(raw, expected):
    assert normalize_address(raw) == expected


def test_normalize_address_rejects_empty():
    with pytest.raises(ValueError):
        normalize_address("   ")


def test_parse_groups_by_version_and_falls_back_to_node_address():
    records = parse_health_entries([
        _entry("orders-1", "10.0.0.5", 9090, {"version": "1.0.0"}),
        _entry("orders-2", "", 9091, {"version": "1.0.0"}),
        _entry("orders-3", "10.0.0.7", 0, {"version": "2.0.0"}),
    ])

    assert [(r.name, r.version, len(r.nodes)) for r in records] == [
        ("orders", "1.0.0", 2),
        ("orders", "2.0.0", 1),
    ]
    first, second = records[0].nodes
    assert (first.id, first.address, first.port) == ("orders-1", "10.0.0.5", "9090")
    assert second.address == "192.168.1.10"
    assert records[1].nodes[0].port is None


@pytest.fixture
async def make_registry():
    """Build ConsulRegistry instances over httpx.MockTransport and close them afterwards."""
    created = []

    def _make(handler, **kwargs):
        kwargs.setdefault("max_retries", 0)
        registry = ConsulRegistry("consul:8500", transport=httpx.MockTransport(handler), **kwargs)
        created.append(registry)
        return registry

    yield _make
    for registry in created:
        await registry.close()


@pytest.mark.asyncio
async def test_lookup_queries_health_endpoint(make_registry):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["token"] = request.headers.get("X-Consul-Token")
        return httpx.Response(200, json=[_entry("orders-1", "10.0.0.5", 9090)])

    registry = make_registry(handler, datacenter="dc1", token="secret")
    records = await registry.lookup("orders")

    assert seen == {
        "path": "/v1/health/service/orders",
        "params": {"passing": "true", "dc": "dc1"},
        "token": "secret",
    }
    assert records[0].name == "orders"
    assert records[0].nodes[0].target == "10.0.0.5:9090"


@pytest.mark.asyncio
async def test_lookup_escapes_service_name_as_one_path_segment(make_registry):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["raw_path"] = request.url.raw_path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json=[])

    registry = make_registry(handler)
    assert await registry.lookup("orders/v2?x=1") == []

    path, _, _ = seen["raw_path"].partition(b"?")
    assert path == b"/v1/health/service/orders%2Fv2%3Fx%3D1"
    assert seen["params"] == {"passing": "true"}


@pytest.mark.asyncio
async def test_lookup_unknown_service_returns_empty_list(make_registry):
    registry = make_registry(lambda request: httpx.Response(200, json=[]), passing_only=False)
    assert await registry.lookup("missing") == []


@pytest.mark.asyncio
async def test_lookup_server_error_is_transient(make_registry):
    registry = make_registry(lambda request: httpx.Response(500, text="rpc error"))
    with pytest.raises(RegistryUnavailableError) as exc_info:
        await registry.lookup("orders")
    assert exc_info.value.service_name == "orders"
    assert exc_info.value.address == "consul:8500"
    assert "rpc error" in str(exc_info.value)


@pytest.mark.asyncio
async def test_lookup_acl_rejection_is_transient(make_registry):
    registry = make_registry(lambda request: httpx.Response(403, text="ACL not found"), token="stale")
    with pytest.raises(RegistryUnavailableError, match="ACL not found"):
        await registry.lookup("orders")


@pytest.mark.asyncio
async def test_lookup_connection_error_is_transient(make_registry):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RegistryUnavailableError):
        await make_registry(handler).lookup("orders")


@pytest.mark.asyncio
async def test_lookup_retries_transient_status_once(make_registry):
    responses = [httpx.Response(503), httpx.Response(200, json=[_entry("orders-1", "10.0.0.5", 9090)])]
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return responses.pop(0)

    records = await make_registry(handler, max_retries=1).lookup("orders")

    assert len(calls) == 2
    assert records[0].nodes[0].id == "orders-1"


@pytest.mark.asyncio
async def test_debug_logs_requests(make_registry, caplog):
    registry = make_registry(lambda request: httpx.Response(200, json=[]), debug=True)
    with caplog.at_level(logging.DEBUG, logger="infrastructure.external.api_clients.base"):
        await registry.lookup("orders")
    messages = [record.getMessage() for record in caplog.records]
    assert any(m.startswith("API Request: GET http://consul:8500/v1/health/service/orders") for m in messages)
    assert any(m.startswith("API Response: 200") for m in messages)


def test_factory_passes_registry_settings():
    cfg = make_discovery_settings(datacenter="dc2", token="t", request_timeout=2.5, request_retries=3)
    registry = create_registry(cfg, debug=True)
    assert registry.address == "consul:8500"
    assert registry.base_url == "http://consul:8500"
    assert (registry.datacenter, registry.timeout, registry.max_retries, registry.debug) == ("dc2", 2.5, 3, True)
    assert registry.default_headers["X-Consul-Token"] == "t"
