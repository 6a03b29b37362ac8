"""
API客户端模块

提供与外部REST API（如 Consul HTTP API）集成的客户端基类
"""
from .base import BaseAPIClient, APIResponse, APIError

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
]
