"""
客户领域实体 - 包含核心业务规则
"""
from datetime import date, datetime, timezone
from typing import Optional
from dataclasses import dataclass
import re


EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


@dataclass
class Customer:
    """客户实体 - 领域核心"""

    id: Optional[int]
    name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    age: int = 0
    birth_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后的业务规则验证"""
        self.validate_name()
        self.validate_email()
        self.validate_age()

    def validate_name(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("missing required field: name")
        if not self.last_name or not self.last_name.strip():
            raise ValueError("missing required field: last_name")

    def validate_email(self) -> None:
        if not re.match(EMAIL_PATTERN, self.email or ""):
            raise ValueError("invalid email format")

    def validate_age(self) -> None:
        if self.age <= 0 or self.age > 150:
            raise ValueError("invalid age")

    def update_from(self, other: "Customer") -> None:
        """业务规则：整体更新资料（ID 与创建时间不变）"""
        other.validate_name()
        other.validate_email()
        other.validate_age()
        self.name = other.name
        self.last_name = other.last_name
        self.email = other.email
        self.phone = other.phone
        self.age = other.age
        self.birth_date = other.birth_date
        self.updated_at = datetime.now(timezone.utc)


@dataclass(frozen=True)
class CustomerKPI:
    """客户统计指标"""

    average_age: float
    age_std_deviation: float
    total: int
