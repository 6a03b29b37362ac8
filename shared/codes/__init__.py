"""
Shared business codes used across layers (Domain/Core/API).

This package exposes BusinessCode at `shared.codes`; the HTTP status each
code maps to lives in `core.exceptions`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_VALIDATION_ERROR = 10003
    INVALID_ID = 10004

    # Business errors (2xxxx)
    CUSTOMER_NOT_FOUND = 20001
    CUSTOMER_ALREADY_EXISTS = 20002
    NOT_FOUND = 20006  # Generic resource not found

    # Auth errors (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003
    DISCOVERY_ERROR = 40004  # Registry lookup / client bootstrap failures

    # Rate limiting (5xxxx)
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
