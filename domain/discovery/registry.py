"""
服务注册中心接口 - 定义服务查询的抽象接口
"""
from abc import ABC, abstractmethod
from typing import List

from .entity import ServiceRecord


class ServiceRegistry(ABC):
    """注册中心抽象接口 - 只定义能查什么，不管怎么查"""

    #: 注册中心地址（如 consul:8500）
    address: str

    @abstractmethod
    async def lookup(self, service_name: str) -> List[ServiceRecord]:
        """按服务名查询全部服务记录；可能返回空列表。

        Raises:
            TransientDiscoveryError: 注册中心不可达或返回异常
        """

    async def close(self) -> None:
        """释放底层连接（默认无操作）"""
        return None
