"""
传输对象接口 - 通过注册中心解析地址的 RPC 客户端
"""
from abc import ABC, abstractmethod
from typing import Callable

from .registry import ServiceRegistry


class Transport(ABC):
    """RPC 传输对象抽象：构造时只做配置，不查询注册中心"""

    registry: ServiceRegistry

    @abstractmethod
    async def close(self) -> None:
        """关闭全部底层连接"""


# 每个会话只调用一次；配置错误时抛出异常
TransportFactory = Callable[[ServiceRegistry], Transport]
