"""
API依赖项 - 用例服务与服务发现会话
"""
import re

from fastapi import Depends, HTTPException, Request, status

from application.ports.customers import CustomerUseCases
from application.services.customer_service import CustomerApplicationService
from application.services.discovery_session import DiscoverySession
from domain.common.exceptions import InvalidCustomerIdException
from domain.customer.repository import CustomerRepository
from infrastructure.repositories.customer_repository import InMemoryCustomerRepository


_ID_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MAX = 2**63 - 1

# 进程级仓储：Lambda 容器复用期间共享
_customer_repository = InMemoryCustomerRepository()


def get_customer_repository() -> CustomerRepository:
    return _customer_repository


async def get_customer_service(
    repository: CustomerRepository = Depends(get_customer_repository),
) -> CustomerUseCases:
    return CustomerApplicationService(repository)


def parse_customer_id(customer_id: str) -> int:
    """路径参数必须是 64 位十进制整数，否则返回 400（而不是 422）

    只接受 ASCII 数字，拒绝 int() 额外放行的下划线、首尾空白和非 ASCII 数字。
    """
    if not _ID_PATTERN.fullmatch(customer_id):
        raise InvalidCustomerIdException(customer_id)
    value = int(customer_id)
    if not -_INT64_MAX - 1 <= value <= _INT64_MAX:
        raise InvalidCustomerIdException(customer_id)
    return value


def get_discovery_session(request: Request) -> DiscoverySession:
    session = getattr(request.app.state, "discovery_session", None)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="service discovery is disabled",
        )
    return session
