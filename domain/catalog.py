"""Domain Entities - Catalog records consumed by the booking engine"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Branch(BaseModel):
    """Branch Entity"""
    branch_id: UUID = Field(default_factory=uuid4)
    name: str
    state: str
    city: str
    address: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Config:
        from_attributes = True

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match on name, city, state or address"""
        term = term.lower()
        return any(term in value.lower() for value in (self.name, self.city, self.state, self.address))


class Space(BaseModel):
    """Bookable space, owned by a branch"""
    space_id: UUID = Field(default_factory=uuid4)
    branch_id: UUID
    name: str
    description: Optional[str] = None
    capacity: int = Field(gt=0)
    price_per_hour: Decimal = Field(ge=0)
    active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Config:
        from_attributes = True


class Customer(BaseModel):
    """Customer Entity"""
    customer_id: UUID = Field(default_factory=uuid4)
    name: str
    email: str
    phone: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Config:
        from_attributes = True

    def matches(self, term: str) -> bool:
        term = term.lower()
        return term in self.name.lower() or term in self.email.lower()
