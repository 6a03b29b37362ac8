"""
Customer DTOs (Pydantic v2) used at the HTTP / Lambda boundary.
"""
from __future__ import annotations

from datetime import date
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from domain.common.exceptions import DomainValidationException
from domain.customer.entity import Customer, CustomerKPI


class CustomerJson(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=32)
    age: int = Field(..., gt=0, le=150)
    birth_date: Optional[date] = None

    @field_validator("name", "last_name")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("missing required field")
        return v

    def to_domain(self, customer_id: Optional[int] = None) -> Customer:
        try:
            return Customer(
                id=customer_id if customer_id is not None else self.id,
                name=self.name,
                last_name=self.last_name,
                email=str(self.email),
                phone=self.phone,
                age=self.age,
                birth_date=self.birth_date,
            )
        except ValueError as exc:
            raise DomainValidationException(str(exc)) from exc

    @classmethod
    def from_domain(cls, customer: Customer) -> "CustomerJson":
        return cls(
            id=customer.id,
            name=customer.name,
            last_name=customer.last_name,
            email=customer.email,
            phone=customer.phone,
            age=customer.age,
            birth_date=customer.birth_date,
        )


class GetCustomersResponse(BaseModel):
    customers: List[CustomerJson]


class GetCustomerResponse(BaseModel):
    # single customer is still keyed "customers" on the wire
    customers: CustomerJson


class KPIJson(BaseModel):
    average_age: float
    age_std_deviation: float
    total: int

    @classmethod
    def from_domain(cls, kpi: CustomerKPI) -> "KPIJson":
        return cls(average_age=kpi.average_age, age_std_deviation=kpi.age_std_deviation, total=kpi.total)
