"""
客户应用服务（application/services）- 编排仓储并实现客户用例
"""
from __future__ import annotations

import statistics
from datetime import datetime, timezone
from typing import List

from core.logging_config import get_logger
from domain.common.exceptions import (
    CustomerAlreadyExistsException,
    CustomerNotFoundException,
    DomainValidationException,
    InvalidCustomerIdException,
)
from domain.customer.entity import Customer, CustomerKPI
from domain.customer.repository import CustomerRepository


logger = get_logger(__name__)


def validate_id(customer_id: int) -> None:
    """ID 必须为正整数"""
    if customer_id <= 0:
        raise InvalidCustomerIdException(customer_id, reason="customer ID must be a positive integer")


class CustomerApplicationService:
    """客户应用服务 - 处理应用层逻辑"""

    def __init__(self, repository: CustomerRepository):
        self._repository = repository

    async def get_customers(self) -> List[Customer]:
        return await self._repository.get_all()

    async def get_customer_by_id(self, customer_id: int) -> Customer:
        validate_id(customer_id)
        customer = await self._repository.get_by_id(customer_id)
        if customer is None:
            raise CustomerNotFoundException(customer_id)
        return customer

    async def create_customer(self, customer: Customer) -> Customer:
        """创建客户（邮箱唯一）"""
        if await self._repository.get_by_email(customer.email) is not None:
            raise CustomerAlreadyExistsException(customer.email)
        now = datetime.now(timezone.utc)
        customer.created_at = now
        customer.updated_at = now
        created = await self._repository.create(customer)
        logger.info("customer_created", customer_id=created.id)
        return created

    async def update_customer(self, customer: Customer) -> Customer:
        """更新客户；邮箱变更时校验唯一性"""
        if customer.id is None:
            raise DomainValidationException("missing required field", field="id")
        existing = await self.get_customer_by_id(customer.id)
        if customer.email != existing.email:
            owner = await self._repository.get_by_email(customer.email)
            if owner is not None and owner.id != existing.id:
                raise CustomerAlreadyExistsException(customer.email)
        try:
            existing.update_from(customer)
        except ValueError as exc:
            raise DomainValidationException(str(exc)) from exc
        updated = await self._repository.update(existing)
        logger.info("customer_updated", customer_id=updated.id)
        return updated

    async def delete_customer(self, customer_id: int) -> None:
        validate_id(customer_id)
        if not await self._repository.delete(customer_id):
            raise CustomerNotFoundException(customer_id)
        logger.info("customer_deleted", customer_id=customer_id)

    async def get_kpi(self) -> CustomerKPI:
        """平均年龄与年龄标准差（总体标准差）"""
        ages = [c.age for c in await self._repository.get_all()]
        if not ages:
            return CustomerKPI(average_age=0.0, age_std_deviation=0.0, total=0)
        return CustomerKPI(
            average_age=round(statistics.fmean(ages), 2),
            age_std_deviation=round(statistics.pstdev(ages), 2),
            total=len(ages),
        )
