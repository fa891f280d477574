"""Domain Entities - Aggregates"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from datetime import datetime
from typing import Optional
from decimal import Decimal

from domain.enums import ReservationStatus, PaymentStatus, PaymentMethod, PaymentPurpose
from domain.exceptions import InvalidInputError, InvalidAmountError, CannotDeletePaidPaymentError
from domain.value_objects import BookingPeriod, TimeInterval
from domain.catalog import utc_now


class Reservation(BaseModel):
    """Reservation Aggregate Root Entity"""

    # Identity
    reservation_id: UUID = Field(default_factory=uuid4)

    # References to the catalog
    space_id: UUID
    branch_id: UUID
    customer_id: UUID

    # Value Objects
    period: BookingPeriod
    occupant_count: int
    total_amount: Decimal
    deposit_pct: Decimal = Decimal("0")
    notes: Optional[str] = None

    status: ReservationStatus = ReservationStatus.PENDING

    # Metadata
    created_at: datetime = Field(default_factory=utc_now)
    modified_at: datetime = Field(default_factory=utc_now)
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        space_id: UUID,
        branch_id: UUID,
        customer_id: UUID,
        period: BookingPeriod,
        occupant_count: int,
        total_amount: Decimal,
        deposit_pct: Decimal = Decimal("0"),
        notes: Optional[str] = None
    ) -> "Reservation":
        """Create new PENDING reservation with validation"""
        period.ensure_valid()
        Reservation._validate_occupant_count(occupant_count)
        Reservation._validate_deposit_pct(deposit_pct)
        if total_amount < 0:
            raise InvalidAmountError("Total amount cannot be negative")

        return Reservation(
            space_id=space_id,
            branch_id=branch_id,
            customer_id=customer_id,
            period=period,
            occupant_count=occupant_count,
            total_amount=total_amount,
            deposit_pct=deposit_pct,
            notes=notes,
            status=ReservationStatus.PENDING
        )

    # ==================== STATE TRANSITION METHODS ====================
    def confirm(self) -> None:
        """Mark reservation as fully paid"""
        if self.status == ReservationStatus.CONFIRMED:
            return
        if self.status != ReservationStatus.PENDING:
            raise ValueError(
                f"Cannot confirm reservation with status {self.status.value}"
            )

        self.status = ReservationStatus.CONFIRMED
        self._touch()

    def cancel(self) -> None:
        """Cancel reservation. Terminal and irreversible."""
        if self.status == ReservationStatus.CANCELLED:
            return

        self.status = ReservationStatus.CANCELLED
        self._touch()

    # ==================== QUERY METHODS ====================
    def effective_interval(self) -> TimeInterval:
        return self.period.effective_interval()

    def is_active(self) -> bool:
        """Check if reservation still blocks its interval"""
        return self.status != ReservationStatus.CANCELLED

    def sort_key(self):
        return (self.period.check_in_date, self.period.start_time, self.created_at, str(self.reservation_id))

    # ==================== PRIVATE METHODS ====================
    @staticmethod
    def _validate_occupant_count(occupant_count: int) -> None:
        if isinstance(occupant_count, bool) or not isinstance(occupant_count, int) or occupant_count <= 0:
            raise InvalidInputError("occupant_count", "Occupant count must be a positive integer")

    @staticmethod
    def _validate_deposit_pct(deposit_pct: Decimal) -> None:
        if deposit_pct < 0 or deposit_pct > 100:
            raise InvalidInputError("deposit_pct", "Deposit percentage must be between 0 and 100")

    def _touch(self) -> None:
        self.modified_at = utc_now()
        self.version += 1


class Payment(BaseModel):
    """Payment Aggregate Root Entity"""

    # Identity
    payment_id: UUID = Field(default_factory=uuid4)
    reservation_id: UUID

    amount: Decimal
    method: PaymentMethod
    purpose: PaymentPurpose = PaymentPurpose.DEPOSIT
    status: PaymentStatus = PaymentStatus.PENDING
    external_ref: Optional[str] = None
    paid_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utc_now)

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def register(
        reservation_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        purpose: PaymentPurpose = PaymentPurpose.DEPOSIT,
        external_ref: Optional[str] = None
    ) -> "Payment":
        """Create new PENDING payment"""
        if amount is None or amount <= 0:
            raise InvalidAmountError("Payment amount must be greater than 0")

        return Payment(
            reservation_id=reservation_id,
            amount=amount,
            method=method,
            purpose=purpose,
            external_ref=external_ref,
            status=PaymentStatus.PENDING
        )

    # ==================== STATE TRANSITION METHODS ====================
    def confirm(self, external_ref: Optional[str] = None, paid_at: Optional[datetime] = None) -> None:
        """Mark payment as PAID. Re-confirming only refreshes reference and timestamp."""
        self.status = PaymentStatus.PAID
        self.paid_at = paid_at or utc_now()
        if external_ref:
            self.external_ref = external_ref

    def ensure_deletable(self) -> None:
        if self.status == PaymentStatus.PAID:
            raise CannotDeletePaidPaymentError(self.payment_id)
