"""Domain Services - Pure booking rules

Nothing here touches storage. The application layer calls these inside its
transactions so the same rule is applied by every creation and payment path.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional
from uuid import UUID

from domain.entities import Reservation, Payment
from domain.enums import ReservationStatus, PaymentStatus, COMMITTED_PAYMENT_STATUSES
from domain.value_objects import BookingPeriod, TimeInterval, PaymentSummary

DEFAULT_EPSILON = Decimal("0.0001")
CENTS = Decimal("0.01")


# ==================== CONFLICT DETECTION ====================

def intervals_conflict(a: TimeInterval, b: TimeInterval) -> bool:
    """Half-open overlap: a.start < b.end and b.start < a.end"""
    return a.overlaps(b)


def find_conflicting_reservation(
    candidate: TimeInterval,
    reservations: Iterable[Reservation],
    space_id: Optional[UUID] = None,
    exclude_id: Optional[UUID] = None
) -> Optional[Reservation]:
    """Return the first active reservation overlapping candidate, if any"""
    for existing in reservations:
        if space_id is not None and existing.space_id != space_id:
            continue
        if exclude_id is not None and existing.reservation_id == exclude_id:
            continue
        if not existing.is_active():
            continue
        if intervals_conflict(candidate, existing.effective_interval()):
            return existing
    return None


# ==================== PRICING ====================

def calculate_total_amount(period: BookingPeriod, price_per_hour: Decimal, places: int = 2) -> Decimal:
    """Elapsed hours x hourly rate, rounded to the currency precision only at the end"""
    hours = period.effective_interval().hours()
    total = hours * Decimal(price_per_hour)
    return total.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


# ==================== LEDGER ====================

def committed_amount(payments: Iterable[Payment]) -> Decimal:
    return sum((p.amount for p in payments if p.status in COMMITTED_PAYMENT_STATUSES), Decimal("0"))


def paid_amount(payments: Iterable[Payment]) -> Decimal:
    return sum((p.amount for p in payments if p.status == PaymentStatus.PAID), Decimal("0"))


def summarize_payments(reservation: Reservation, payments: Iterable[Payment]) -> PaymentSummary:
    payments = list(payments)
    committed = committed_amount(payments)
    return PaymentSummary(
        total_amount=reservation.total_amount,
        committed_amount=committed,
        paid_amount=paid_amount(payments),
        remaining=reservation.total_amount - committed
    )


def exceeds_remaining(amount: Decimal, remaining: Decimal, epsilon: Decimal = DEFAULT_EPSILON) -> bool:
    return amount > remaining + epsilon


def derive_status(reservation: Reservation, payments: Iterable[Payment]) -> ReservationStatus:
    """Reconcile reservation status from its payment set.

    Only PENDING reservations move, and only forward to CONFIRMED once paid
    payments cover a positive total.
    """
    if reservation.status != ReservationStatus.PENDING:
        return reservation.status

    total = reservation.total_amount
    if total > 0 and paid_amount(payments) >= total:
        return ReservationStatus.CONFIRMED
    return ReservationStatus.PENDING
