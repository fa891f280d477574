"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID
from typing import List, Optional

from domain.enums import PaymentMethod, PaymentPurpose


# ============================================================================
# CATALOG SCHEMAS
# ============================================================================

class CreateBranchRequest(BaseModel):
    """Create branch request DTO"""
    name: str
    state: str
    city: str
    address: str


class UpdateBranchRequest(BaseModel):
    """Update branch request DTO"""
    name: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    address: Optional[str] = None


class BranchResponse(BaseModel):
    """Branch response DTO"""
    branch_id: UUID
    name: str
    state: str
    city: str
    address: str
    created_at: datetime
    updated_at: datetime


class CreateSpaceRequest(BaseModel):
    """Create space request DTO"""
    name: str
    description: Optional[str] = None
    capacity: int
    price_per_hour: Decimal
    active: bool = True


class UpdateSpaceRequest(BaseModel):
    """Update space request DTO"""
    name: Optional[str] = None
    description: Optional[str] = None
    capacity: Optional[int] = None
    price_per_hour: Optional[Decimal] = None
    active: Optional[bool] = None


class SpaceResponse(BaseModel):
    """Space response DTO"""
    space_id: UUID
    branch_id: UUID
    name: str
    description: Optional[str] = None
    capacity: int
    price_per_hour: Decimal
    active: bool
    created_at: datetime
    updated_at: datetime


class CreateCustomerRequest(BaseModel):
    """Create customer request DTO"""
    name: str
    email: str
    phone: Optional[str] = None


class UpdateCustomerRequest(BaseModel):
    """Update customer request DTO"""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class CustomerResponse(BaseModel):
    """Customer response DTO"""
    customer_id: UUID
    name: str
    email: str
    phone: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# RESERVATION SCHEMAS
# ============================================================================

class CreateReservationRequest(BaseModel):
    """Create reservation request DTO"""
    customer_id: UUID
    check_in_date: date
    check_out_date: date
    start_time: time
    end_time: time
    occupant_count: int
    deposit_pct: Decimal = Field(default=Decimal("0"), description="Informational deposit percentage (0-100)")
    notes: Optional[str] = None


class ReservationResponse(BaseModel):
    """Reservation response DTO"""
    reservation_id: UUID
    space_id: UUID
    branch_id: UUID
    customer_id: UUID
    check_in_date: date
    check_out_date: date
    start_time: time
    end_time: time
    occupant_count: int
    status: str
    total_amount: Decimal
    deposit_pct: Decimal
    notes: Optional[str] = None
    created_at: datetime
    modified_at: datetime
    version: int


# ============================================================================
# PAYMENT SCHEMAS
# ============================================================================

class RegisterPaymentRequest(BaseModel):
    """Register payment request DTO"""
    amount: Decimal
    method: PaymentMethod
    purpose: Optional[PaymentPurpose] = None
    external_ref: Optional[str] = None


class ConfirmPaymentRequest(BaseModel):
    """Confirm payment request DTO"""
    external_ref: Optional[str] = None
    paid_at: Optional[datetime] = None


class PaymentResponse(BaseModel):
    """Payment response DTO"""
    payment_id: UUID
    reservation_id: UUID
    amount: Decimal
    method: str
    purpose: str
    status: str
    external_ref: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime


class ReservationBalanceResponse(BaseModel):
    """Ledger position of a reservation"""
    reservation_id: UUID
    reservation_status: str
    total_amount: Decimal
    committed_amount: Decimal
    paid_amount: Decimal
    remaining: Decimal
    payments: List[PaymentResponse]


class PaymentReportResponse(PaymentResponse):
    """Payment joined with reservation, space, branch and customer"""
    check_in_date: date
    check_out_date: date
    start_time: time
    end_time: time
    reservation_status: str
    total_amount: Decimal
    deposit_pct: Decimal
    customer_id: UUID
    space_id: UUID
    space_name: Optional[str] = None
    branch_id: UUID
    branch_name: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None


# ============================================================================
# ERROR SCHEMAS
# ============================================================================

class ErrorResponse(BaseModel):
    """Business error DTO"""
    error: str
    detail: str
    details: dict = {}
