"""
客户用例端口 - 表现层（HTTP/Lambda）只依赖此协议
"""
from __future__ import annotations

from typing import List, Protocol

from domain.customer.entity import Customer, CustomerKPI


class CustomerUseCases(Protocol):
    async def get_customers(self) -> List[Customer]:
        ...

    async def get_customer_by_id(self, customer_id: int) -> Customer:
        ...

    async def create_customer(self, customer: Customer) -> Customer:
        ...

    async def update_customer(self, customer: Customer) -> Customer:
        ...

    async def delete_customer(self, customer_id: int) -> None:
        ...

    async def get_kpi(self) -> CustomerKPI:
        ...
