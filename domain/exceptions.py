"""Domain Exceptions - Booking engine error taxonomy"""
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID


class BookingError(ValueError):
    """Base class for business errors raised by the booking engine.

    Every error carries a machine readable ``code``, the HTTP status a
    transport layer should answer with, and a ``details`` mapping with the
    structured values a client needs to render a specific message.
    """

    code = "booking_error"
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message, "details": self.details}


# ==================== CLIENT INPUT ====================

class InvalidInputError(BookingError):
    """Missing or malformed field"""

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(
            message or f"Invalid or missing field: {field}",
            code=f"invalid_{field}",
            details={"field": field},
        )
        self.field = field


class InvalidTimeRangeError(BookingError):
    code = "invalid_time_range"


class CapacityExceededError(BookingError):
    code = "capacity_exceeded"

    def __init__(self, capacity: int, occupant_count: int):
        super().__init__(
            f"Occupant count {occupant_count} exceeds space capacity {capacity}",
            details={"capacity": capacity, "occupant_count": occupant_count},
        )
        self.capacity = capacity
        self.occupant_count = occupant_count


class InvalidAmountError(BookingError):
    code = "invalid_amount"


class AmountExceedsRemainingError(BookingError):
    code = "amount_exceeds_remaining"

    def __init__(self, amount: Decimal, remaining: Decimal):
        super().__init__(
            f"Payment amount {amount} exceeds remaining balance {remaining}",
            details={"amount": str(amount), "remaining": str(remaining)},
        )
        self.amount = amount
        self.remaining = remaining


class CannotDeletePaidPaymentError(BookingError):
    code = "cannot_delete_paid_payment"

    def __init__(self, payment_id: UUID):
        super().__init__(
            "Paid payments cannot be deleted",
            details={"payment_id": str(payment_id)},
        )


# ==================== NOT FOUND ====================

class NotFoundError(BookingError):
    code = "not_found"
    status_code = 404
    resource = "resource"

    def __init__(self, resource_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{self.resource.capitalize()} not found",
            details={"id": str(resource_id)},
        )
        self.resource_id = resource_id


class SpaceNotFoundError(NotFoundError):
    code = "space_not_found"
    resource = "space"


class BranchNotFoundError(NotFoundError):
    code = "branch_not_found"
    resource = "branch"


class CustomerNotFoundError(NotFoundError):
    code = "customer_not_found"
    resource = "customer"


class ReservationNotFoundError(NotFoundError):
    code = "reservation_not_found"
    resource = "reservation"


class PaymentNotFoundError(NotFoundError):
    code = "payment_not_found"
    resource = "payment"


# ==================== CONFLICTS ====================

class ConflictingReservationError(BookingError):
    code = "conflicting_reservation"
    status_code = 409

    def __init__(self, space_id: UUID, conflicting_id: Optional[UUID] = None):
        details = {"space_id": str(space_id)}
        if conflicting_id is not None:
            details["conflicting_reservation_id"] = str(conflicting_id)
        super().__init__(
            "Requested interval overlaps an existing reservation for this space",
            details=details,
        )
        self.space_id = space_id
        self.conflicting_id = conflicting_id


class DuplicateCustomerEmailError(BookingError):
    code = "email_already_in_use"
    status_code = 409


class ResourceInUseError(BookingError):
    """Catalog record still referenced by live data"""

    code = "resource_in_use"
    status_code = 409

    def __init__(self, resource_id: Any, message: str, count: int):
        super().__init__(message, details={"id": str(resource_id), "count": count})
        self.resource_id = resource_id
        self.count = count


class BranchHasSpacesError(ResourceInUseError):
    code = "branch_has_spaces"

    def __init__(self, branch_id: UUID, count: int):
        super().__init__(branch_id, f"Branch still has {count} space(s)", count)


class SpaceHasActiveReservationsError(ResourceInUseError):
    code = "space_has_active_reservations"

    def __init__(self, space_id: UUID, count: int):
        super().__init__(space_id, f"Space still has {count} active reservation(s)", count)


class CustomerHasActiveReservationsError(ResourceInUseError):
    code = "customer_has_active_reservations"

    def __init__(self, customer_id: UUID, count: int):
        super().__init__(customer_id, f"Customer still has {count} active reservation(s)", count)


# ==================== INFRASTRUCTURE ====================

class DirectoryUnavailableError(BookingError):
    """Storage or collaborator lookup failed; safe to retry at the caller"""

    code = "unavailable"
    status_code = 503
