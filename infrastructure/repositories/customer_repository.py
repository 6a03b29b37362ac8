"""
客户仓储实现 - 进程内存储（Lambda 容器复用期间保留数据）
"""
from __future__ import annotations

import asyncio
import itertools
from dataclasses import replace
from typing import Dict, List, Optional

from domain.customer.entity import Customer
from domain.customer.repository import CustomerRepository


class InMemoryCustomerRepository(CustomerRepository):
    """内存版客户仓储，返回副本避免调用方修改内部状态"""

    def __init__(self) -> None:
        self._items: Dict[int, Customer] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def create(self, customer: Customer) -> Customer:
        async with self._lock:
            stored = replace(customer, id=next(self._ids))
            self._items[stored.id] = stored
            return replace(stored)

    async def get_by_id(self, customer_id: int) -> Optional[Customer]:
        item = self._items.get(customer_id)
        return replace(item) if item else None

    async def get_by_email(self, email: str) -> Optional[Customer]:
        email = email.lower()
        for item in self._items.values():
            if item.email.lower() == email:
                return replace(item)
        return None

    async def get_all(self) -> List[Customer]:
        return [replace(item) for item in self._items.values()]

    async def update(self, customer: Customer) -> Customer:
        async with self._lock:
            if customer.id not in self._items:
                raise KeyError(customer.id)
            self._items[customer.id] = replace(customer)
            return replace(customer)

    async def delete(self, customer_id: int) -> bool:
        async with self._lock:
            return self._items.pop(customer_id, None) is not None
