"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class CustomerNotFoundException(BusinessException):
    def __init__(self, customer_id: Optional[int] = None):
        details = {"customer_id": customer_id} if customer_id is not None else None
        super().__init__(
            code=BusinessCode.CUSTOMER_NOT_FOUND,
            message="Customer not found",
            error_type="CustomerNotFound",
            details=details,
        )


class CustomerAlreadyExistsException(BusinessException):
    def __init__(self, email: str):
        super().__init__(
            code=BusinessCode.CUSTOMER_ALREADY_EXISTS,
            message=f"Email {email} already registered",
            error_type="CustomerAlreadyExists",
            details={"email": email},
            field="email",
        )


class InvalidCustomerIdException(BusinessException):
    def __init__(self, raw_id: object, reason: str = "invalid customer ID format"):
        super().__init__(
            code=BusinessCode.INVALID_ID,
            message=reason,
            error_type="InvalidCustomerId",
            details={"id": str(raw_id)},
            field="id",
        )


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )
