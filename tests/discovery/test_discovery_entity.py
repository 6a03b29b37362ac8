import pytest

from domain.discovery.entity import ClientHandle, Node, ServiceRecord
from domain.discovery.exceptions import NotYetDiscoveredError


@pytest.mark.parametrize(
    "address, metadata, expected",
    [
        ("10.0.0.5", {"port": "9090"}, "10.0.0.5:9090"),
        ("10.0.0.5:7000", {"port": "9090"}, "10.0.0.5:7000"),
        ("orders.internal", {}, "orders.internal"),
        ("::1", {"port": "9090"}, "[::1]:9090"),
        ("[::1]:7000", {"port": "9090"}, "[::1]:7000"),
    ],
)
def test_node_target(address, metadata, expected):
    assert Node(id="n", address=address, metadata=metadata).target == expected


def test_node_metadata_is_read_only():
    meta = {"port": "9090"}
    node = Node(id="n1", address="10.0.0.5", metadata=meta)
    meta["port"] = "1"
    assert node.port == "9090"
    with pytest.raises(TypeError):
        node.metadata["port"] = "1"  # type: ignore[index]


def test_with_records_keeps_transport():
    transport = object()
    handle = ClientHandle(transport=transport)
    record = ServiceRecord(name="orders", nodes=[Node(id="n1", address="10.0.0.5")])

    updated = handle.with_records([record])

    assert updated.transport is transport
    assert updated.records == (record,)
    assert updated.primary_service_name == "orders"
    assert handle.records == ()
    with pytest.raises(NotYetDiscoveredError):
        handle.primary_service_name
