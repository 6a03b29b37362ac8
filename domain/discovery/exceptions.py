"""
服务发现异常 - 区分致命的初始化失败与可重试的注册中心错误
"""
from __future__ import annotations

from typing import Optional


class DiscoveryError(Exception):
    """服务发现异常基类"""

    def __init__(self, message: str, *, service_name: Optional[str] = None) -> None:
        self.message = message
        self.service_name = service_name
        super().__init__(message)


class FatalSetupError(DiscoveryError):
    """Transport construction failed; recorded once and never retried."""


class TransientDiscoveryError(DiscoveryError):
    """Registry-side failure that the discovery loop retries."""


class RegistryUnavailableError(TransientDiscoveryError):
    def __init__(self, address: str, reason: str, *, service_name: Optional[str] = None) -> None:
        self.address = address
        self.reason = reason
        super().__init__(
            f"error retrieving service {service_name or '?'} from registry {address}: {reason}",
            service_name=service_name,
        )


class NoInstancesError(TransientDiscoveryError):
    def __init__(self, service_name: str) -> None:
        super().__init__(f"no instances found for service {service_name}", service_name=service_name)


class DiscoveryExhaustedError(DiscoveryError):
    """Bounded retry policy gave up before the first successful discovery."""

    def __init__(self, service_name: str, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            f"service {service_name} not discovered after {attempts} attempts",
            service_name=service_name,
        )


class NotYetDiscoveredError(DiscoveryError):
    def __init__(self) -> None:
        super().__init__("no service records discovered yet")


class AcquireTimeoutError(DiscoveryError):
    def __init__(self, service_name: str, timeout: Optional[float]) -> None:
        self.timeout = timeout
        super().__init__(
            f"timed out after {timeout}s waiting for client of service {service_name}",
            service_name=service_name,
        )


class SessionClosedError(DiscoveryError):
    def __init__(self, service_name: Optional[str] = None) -> None:
        super().__init__("discovery session is closed", service_name=service_name)


__all__ = [
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
