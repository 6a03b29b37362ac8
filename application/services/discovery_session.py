"""
服务发现会话（application/services）- 懒加载并共享注册中心解析的 RPC 客户端

一个会话对应一个目标服务：
- 首次 ``acquire`` 时只执行一次传输对象构造（one-shot guard），并发调用者等待同一结果；
- 构造失败记录为致命错误，之后所有调用者都会收到该错误；
- 后台任务按重试策略查询注册中心，成功后原子替换句柄（保留传输对象，附加新记录）。
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    stop_never,
    wait_exponential,
    wait_fixed,
    wait_random,
)

from core.config import DiscoverySettings, RetrySettings
from core.logging_config import get_logger
from domain.discovery.entity import ClientHandle, ServiceRecord
from domain.discovery.exceptions import (
    AcquireTimeoutError,
    DiscoveryExhaustedError,
    FatalSetupError,
    NoInstancesError,
    RegistryUnavailableError,
    SessionClosedError,
    TransientDiscoveryError,
)
from domain.discovery.registry import ServiceRegistry
from domain.discovery.transport import Transport, TransportFactory


logger = get_logger(__name__)


def _consume_exception(fut: "asyncio.Future[Any]") -> None:
    # Futures nobody awaited must not warn about unretrieved exceptions
    if not fut.cancelled():
        fut.exception()


class DiscoverySession:
    """注册中心发现会话，由组合根创建并注入使用方。"""

    def __init__(
        self,
        settings: DiscoverySettings,
        registry: ServiceRegistry,
        transport_factory: TransportFactory,
    ) -> None:
        if not settings.registry_address or not settings.registry_address.strip():
            raise ValueError("registry address must not be empty")
        if not settings.service_name or not settings.service_name.strip():
            raise ValueError("service name must not be empty")

        self._settings = settings
        self._registry = registry
        self._transport_factory = transport_factory

        self._init_guard = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._handle: Optional[ClientHandle] = None
        self._ready: Optional[asyncio.Future[ClientHandle]] = None
        self._discovered: Optional[asyncio.Future[ClientHandle]] = None
        self._init_error: Optional[FatalSetupError] = None
        self._refresh_task: Optional[asyncio.Task] = None
        self._lookup_attempts = 0
        self._last_error: Optional[str] = None
        self._closed = False

    # ------------------------------------------------------------------
    # 状态
    # ------------------------------------------------------------------
    @property
    def service_name(self) -> str:
        return self._settings.service_name

    @property
    def registry(self) -> ServiceRegistry:
        return self._registry

    @property
    def current(self) -> Optional[ClientHandle]:
        return self._handle

    @property
    def is_ready(self) -> bool:
        return self._handle is not None

    @property
    def is_discovered(self) -> bool:
        return self._handle is not None and self._handle.discovered

    @property
    def init_error(self) -> Optional[FatalSetupError]:
        return self._init_error

    @property
    def lookup_attempts(self) -> int:
        return self._lookup_attempts

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> Dict[str, Any]:
        handle = self._handle
        records: List[ServiceRecord] = list(handle.records) if handle else []
        return {
            "service_name": self.service_name,
            "registry_address": self._settings.registry_address,
            "ready": self.is_ready,
            "discovered": self.is_discovered,
            "closed": self._closed,
            "lookup_attempts": self._lookup_attempts,
            "init_error": str(self._init_error) if self._init_error else None,
            "last_error": self._last_error,
            "records": [
                {
                    "name": record.name,
                    "version": record.version,
                    "nodes": [
                        {"id": node.id, "address": node.address, "port": node.port}
                        for node in record.nodes
                    ],
                }
                for record in records
            ],
        }

    # ------------------------------------------------------------------
    # 获取客户端
    # ------------------------------------------------------------------
    async def acquire(self, timeout: Optional[float] = None) -> ClientHandle:
        """获取共享客户端句柄（传输对象可用即返回，不等待服务发现完成）。

        Raises:
            FatalSetupError: 传输对象构造失败（每次调用都会返回同一错误）
            AcquireTimeoutError: 超时
            SessionClosedError: 会话已关闭
        """
        if self._closed:
            raise SessionClosedError(self.service_name)
        ready = await self._ensure_initialized()
        await self._await(ready, timeout)
        assert self._handle is not None
        return self._handle

    async def wait_discovered(self, timeout: Optional[float] = None) -> ClientHandle:
        """获取句柄并等待首次服务发现成功，返回带服务记录的句柄。

        ``timeout`` 覆盖整个等待过程（传输对象就绪 + 首次发现），而不是分别计时。
        """
        if timeout is None:
            timeout = self._settings.acquire_timeout
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        await self.acquire(timeout)
        assert self._discovered is not None
        remaining = None if deadline is None else max(0.0, deadline - loop.time())
        await self._await(self._discovered, remaining, reported=timeout)
        assert self._handle is not None
        return self._handle

    async def _await(
        self,
        fut: "asyncio.Future[ClientHandle]",
        timeout: Optional[float],
        reported: Optional[float] = None,
    ) -> None:
        if timeout is None:
            timeout = self._settings.acquire_timeout
        try:
            # shield: 调用方取消或超时不影响共享 future
            await asyncio.wait_for(asyncio.shield(fut), timeout)
        except asyncio.TimeoutError as exc:
            raise AcquireTimeoutError(self.service_name, reported if reported is not None else timeout) from exc

    async def _ensure_initialized(self) -> "asyncio.Future[ClientHandle]":
        if self._ready is not None:
            return self._ready
        async with self._init_guard:
            if self._ready is None:
                loop = asyncio.get_running_loop()
                self._ready = loop.create_future()
                self._ready.add_done_callback(_consume_exception)
                self._discovered = loop.create_future()
                self._discovered.add_done_callback(_consume_exception)
                await self._initialize()
        return self._ready

    async def _initialize(self) -> None:
        assert self._ready is not None
        try:
            transport = self._transport_factory(self._registry)
        except Exception as exc:
            error = FatalSetupError(
                f"error setting up gRPC client: {exc}", service_name=self.service_name
            )
            error.__cause__ = exc
            self._init_error = error
            self._ready.set_exception(error)
            logger.error(
                "grpc_transport_setup_failed",
                service=self.service_name,
                registry=self._settings.registry_address,
                error=str(exc),
            )
            return

        async with self._write_lock:
            self._handle = ClientHandle(transport=transport)
        self._ready.set_result(self._handle)
        logger.info("grpc_transport_ready", service=self.service_name)

        self._refresh_task = asyncio.create_task(
            self._refresh_loop(), name=f"discovery-refresh:{self.service_name}"
        )

    # ------------------------------------------------------------------
    # 后台服务发现
    # ------------------------------------------------------------------
    def _build_retrying(self, policy: RetrySettings) -> AsyncRetrying:
        if policy.exponential:
            wait = wait_exponential(multiplier=policy.backoff, max=policy.max_backoff)
        else:
            wait = wait_fixed(policy.backoff)
        if policy.jitter > 0:
            wait = wait + wait_random(0, policy.jitter)
        stop = stop_after_attempt(policy.max_attempts) if policy.max_attempts else stop_never
        return AsyncRetrying(
            stop=stop,
            wait=wait,
            retry=retry_if_exception_type(TransientDiscoveryError),
            before_sleep=self._log_retry,
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else None
        logger.warning(
            "service_discovery_retry",
            service=self.service_name,
            attempt=retry_state.attempt_number,
            retry_in=delay,
            error=str(error),
        )

    async def _lookup_once(self) -> List[ServiceRecord]:
        self._lookup_attempts += 1
        logger.info(
            "service_discovery_attempt",
            service=self.service_name,
            registry=self._settings.registry_address,
            attempt=self._lookup_attempts,
        )
        try:
            records = await self._registry.lookup(self.service_name)
        except TransientDiscoveryError as exc:
            self._last_error = str(exc)
            raise
        except Exception as exc:
            self._last_error = str(exc)
            raise RegistryUnavailableError(
                self._settings.registry_address, str(exc), service_name=self.service_name
            ) from exc

        if not records:
            error = NoInstancesError(self.service_name)
            self._last_error = str(error)
            raise error

        for record in records:
            for node in record.nodes:
                logger.info(
                    "service_instance",
                    service=record.name,
                    version=record.version or None,
                    instance_id=node.id,
                    address=node.address,
                    port=node.port or "not available in metadata",
                )
        self._last_error = None
        return list(records)

    async def _discover(self) -> List[ServiceRecord]:
        try:
            async for attempt in self._build_retrying(self._settings.retry):
                with attempt:
                    return await self._lookup_once()
        except RetryError as exc:
            raise DiscoveryExhaustedError(
                self.service_name, exc.last_attempt.attempt_number
            ) from exc.last_attempt.exception()
        raise AssertionError("unreachable")  # pragma: no cover

    async def _publish(self, records: List[ServiceRecord]) -> None:
        async with self._write_lock:
            current = self._handle
            assert current is not None
            # read-merge-write：保留已有传输对象，只替换服务记录
            self._handle = current.with_records(records)
            handle = self._handle
        if self._discovered is not None and not self._discovered.done():
            self._discovered.set_result(handle)
        logger.info(
            "service_discovered",
            service=self.service_name,
            records=len(records),
            nodes=len(handle.nodes),
        )

    async def _refresh_loop(self) -> None:
        interval = self._settings.refresh_interval
        while True:
            try:
                records = await self._discover()
            except DiscoveryExhaustedError as exc:
                self._last_error = str(exc)
                if self._discovered is not None and not self._discovered.done():
                    self._discovered.set_exception(exc)
                    logger.error("service_discovery_exhausted", service=self.service_name, attempts=exc.attempts)
                    return
                # 持续刷新模式下保留上一次成功的记录
                logger.warning("service_refresh_exhausted", service=self.service_name, attempts=exc.attempts)
            else:
                await self._publish(records)
            if interval is None:
                return
            await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------
    async def close(self) -> None:
        """停止后台任务并关闭传输对象；重复调用无副作用。"""
        if self._closed:
            return
        self._closed = True

        task = self._refresh_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._refresh_task = None

        if self._discovered is not None and not self._discovered.done():
            self._discovered.set_exception(SessionClosedError(self.service_name))

        handle = self._handle
        if handle is not None:
            transport: Transport = handle.transport
            await transport.close()
        logger.info("discovery_session_closed", service=self.service_name)
