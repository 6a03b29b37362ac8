import asyncio
import time

import pytest

from application.services.discovery_session import DiscoverySession
from core.config import RetrySettings
from domain.discovery.exceptions import (
    AcquireTimeoutError,
    DiscoveryExhaustedError,
    FatalSetupError,
    NotYetDiscoveredError,
    SessionClosedError,
)

from conftest import CountingFactory, FakeRegistry, make_discovery_settings, orders_record


async def _eventually(predicate, timeout: float = 2.0, step: float = 0.01) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(step)


def test_rejects_empty_configuration(factory):
    with pytest.raises(ValueError):
        DiscoverySession(make_discovery_settings(service_name=""), FakeRegistry(), factory)
    with pytest.raises(ValueError):
        DiscoverySession(make_discovery_settings(registry_address="  "), FakeRegistry(), factory)


@pytest.mark.asyncio
async def test_concurrent_acquire_builds_transport_once(factory):
    registry = FakeRegistry([[orders_record()]])
    session = DiscoverySession(make_discovery_settings(), registry, factory)
    try:
        handles = await asyncio.gather(*(session.acquire() for _ in range(10)))
        assert factory.calls == 1
        assert all(h.transport is factory.created[0] for h in handles)
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_failing_registry_retries_until_closed(factory):
    registry = FakeRegistry([RuntimeError("connection refused")])
    session = DiscoverySession(
        make_discovery_settings(retry=RetrySettings(backoff=0.02)), registry, factory
    )
    try:
        handle = await session.acquire()
        await asyncio.sleep(0.3)
        assert registry.calls >= 5
        assert session.lookup_attempts == registry.calls
        assert session.current.records == ()
        assert not session.is_discovered
        assert handle.transport is session.current.transport
        assert "connection refused" in session.snapshot()["last_error"]
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_publishes_records_after_failures_and_stops(factory):
    registry = FakeRegistry([[], RuntimeError("boom"), [orders_record()]])
    session = DiscoverySession(make_discovery_settings(), registry, factory)
    try:
        first = await session.acquire()
        handle = await session.wait_discovered(timeout=2.0)
        assert handle.primary_service_name == "orders"
        assert registry.calls == 3

        # read-merge-write keeps the transport built during setup
        assert handle.transport is first.transport
        assert [n.target for n in handle.nodes] == ["10.0.0.5:9090"]

        await asyncio.sleep(0.1)
        assert registry.calls == 3
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_setup_failure_is_returned_to_every_caller():
    registry = FakeRegistry([[orders_record()]])
    factory = CountingFactory(error=ValueError("bad TLS config"))
    session = DiscoverySession(make_discovery_settings(), registry, factory)

    with pytest.raises(FatalSetupError) as first:
        await session.acquire()
    with pytest.raises(FatalSetupError) as second:
        await session.acquire(timeout=0.1)
    with pytest.raises(FatalSetupError):
        await session.wait_discovered(timeout=0.1)

    assert first.value is second.value
    assert isinstance(first.value.__cause__, ValueError)
    assert session.init_error is first.value
    assert factory.calls == 1
    await asyncio.sleep(0.05)
    assert registry.calls == 0
    await session.close()


@pytest.mark.asyncio
async def test_primary_service_name_before_discovery_raises(factory):
    session = DiscoverySession(make_discovery_settings(), FakeRegistry([[]]), factory)
    try:
        handle = await session.acquire()
        assert not handle.discovered
        with pytest.raises(NotYetDiscoveredError):
            handle.primary_service_name
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_bounded_retry_exhausts(factory):
    registry = FakeRegistry([[]])
    session = DiscoverySession(
        make_discovery_settings(retry=RetrySettings(backoff=0.01, max_attempts=3)), registry, factory
    )
    try:
        with pytest.raises(DiscoveryExhaustedError) as exc_info:
            await session.wait_discovered(timeout=2.0)
        assert exc_info.value.attempts == 3
        assert registry.calls == 3
        # the transport stays usable even though discovery gave up
        assert (await session.acquire()).transport is factory.created[0]
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_exponential_backoff_with_jitter_still_discovers(factory):
    registry = FakeRegistry([[], [], [orders_record()]])
    retry = RetrySettings(backoff=0.005, exponential=True, max_backoff=0.02, jitter=0.005, max_attempts=5)
    session = DiscoverySession(make_discovery_settings(retry=retry), registry, factory)
    try:
        handle = await session.wait_discovered(timeout=2.0)
        assert handle.primary_service_name == "orders"
        assert registry.calls == 3
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_wait_discovered_times_out_but_keeps_retrying(factory):
    registry = FakeRegistry([[]])
    session = DiscoverySession(make_discovery_settings(), registry, factory)
    try:
        with pytest.raises(AcquireTimeoutError):
            await session.wait_discovered(timeout=0.05)
        calls = registry.calls
        await asyncio.sleep(0.1)
        assert registry.calls > calls
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_wait_discovered_timeout_covers_setup_and_discovery():
    class SlowFactory(CountingFactory):
        def __call__(self, registry):
            time.sleep(0.15)
            return super().__call__(registry)

    session = DiscoverySession(make_discovery_settings(), FakeRegistry([[]]), SlowFactory())
    try:
        started = time.perf_counter()
        with pytest.raises(AcquireTimeoutError) as exc_info:
            await session.wait_discovered(timeout=0.2)
        elapsed = time.perf_counter() - started
        assert exc_info.value.timeout == 0.2
        assert elapsed < 0.3
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_cancel_shared_discovery(factory):
    failures = [RuntimeError("connection refused")] * 5
    registry = FakeRegistry([*failures, [orders_record()]])
    session = DiscoverySession(
        make_discovery_settings(retry=RetrySettings(backoff=0.02)), registry, factory
    )
    try:
        waiter = asyncio.create_task(session.wait_discovered())
        await asyncio.sleep(0.03)
        assert not waiter.done()
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        handle = await session.wait_discovered(timeout=2.0)
        assert handle.primary_service_name == "orders"
        assert registry.calls == 6
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_acquire_timeout_from_settings(factory):
    session = DiscoverySession(make_discovery_settings(acquire_timeout=0.05), FakeRegistry([[]]), factory)
    try:
        with pytest.raises(AcquireTimeoutError) as exc_info:
            await session.wait_discovered()
        assert exc_info.value.timeout == 0.05
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_continuous_refresh_replaces_records(factory):
    v1 = orders_record(address="10.0.0.5")
    v2 = orders_record(address="10.0.0.6", node_id="n2")
    registry = FakeRegistry([[v1], [v2]])
    session = DiscoverySession(make_discovery_settings(refresh_interval=0.02), registry, factory)
    try:
        first = await session.wait_discovered(timeout=2.0)
        await _eventually(lambda: session.current.records == (v2,))
        assert session.current.transport is first.transport
        assert registry.calls >= 2
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_close_stops_loop_and_releases_transport(factory):
    registry = FakeRegistry([[]])
    session = DiscoverySession(make_discovery_settings(), registry, factory)
    await session.acquire()
    waiter = asyncio.create_task(session.wait_discovered())
    await asyncio.sleep(0.05)

    await session.close()
    calls = registry.calls
    await asyncio.sleep(0.05)

    assert registry.calls == calls
    assert factory.created[0].closed
    with pytest.raises(SessionClosedError):
        await waiter
    with pytest.raises(SessionClosedError):
        await session.acquire()
    # idempotent
    await session.close()


@pytest.mark.asyncio
async def test_empty_then_found_scenario(factory):
    registry = FakeRegistry([[], [], [orders_record(address="10.0.0.5", port="9090", node_id="n1")]])
    session = DiscoverySession(
        make_discovery_settings(registry_address="consul:8500", service_name="orders",
                                retry=RetrySettings(backoff=0.05)),
        registry,
        factory,
    )
    loop = asyncio.get_running_loop()
    started = loop.time()
    try:
        handle = await session.wait_discovered(timeout=2.0)
        elapsed = loop.time() - started
        assert handle.primary_service_name == "orders"
        node = handle.nodes[0]
        assert (node.id, node.address, node.port) == ("n1", "10.0.0.5", "9090")
        # two backoff intervals, well under a third
        assert 0.09 <= elapsed < 0.5
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_snapshot_reports_discovered_records(factory):
    session = DiscoverySession(make_discovery_settings(), FakeRegistry([[orders_record()]]), factory)
    try:
        await session.wait_discovered(timeout=2.0)
        snap = session.snapshot()
        assert snap["ready"] and snap["discovered"]
        assert snap["service_name"] == "orders"
        assert snap["records"][0]["nodes"] == [{"id": "n1", "address": "10.0.0.5", "port": "9090"}]
        assert snap["init_error"] is None
    finally:
        await session.close()
