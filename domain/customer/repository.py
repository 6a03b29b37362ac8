"""
客户仓储接口 - 定义数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List
from .entity import Customer


class CustomerRepository(ABC):
    """客户仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, customer: Customer) -> Customer:
        """创建客户（分配ID）"""
        pass

    @abstractmethod
    async def get_by_id(self, customer_id: int) -> Optional[Customer]:
        pass

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[Customer]:
        pass

    @abstractmethod
    async def get_all(self) -> List[Customer]:
        pass

    @abstractmethod
    async def update(self, customer: Customer) -> Customer:
        pass

    @abstractmethod
    async def delete(self, customer_id: int) -> bool:
        """删除客户，返回是否存在"""
        pass
