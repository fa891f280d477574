"""Application Services - Business use cases"""
from uuid import UUID
from datetime import date, time, datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from domain.repositories import UnitOfWork, SpaceDirectory, CustomerDirectory
from domain.entities import Reservation, Payment
from domain.catalog import Branch, Space, Customer, utc_now
from domain.enums import ReservationStatus, PaymentStatus, PaymentMethod, PaymentPurpose
from domain.exceptions import (
    BookingError, InvalidInputError, InvalidAmountError, AmountExceedsRemainingError,
    CapacityExceededError, ConflictingReservationError, DirectoryUnavailableError,
    SpaceNotFoundError, BranchNotFoundError, CustomerNotFoundError,
    ReservationNotFoundError, PaymentNotFoundError, DuplicateCustomerEmailError,
    BranchHasSpacesError, SpaceHasActiveReservationsError, CustomerHasActiveReservationsError
)
from domain.services import (
    DEFAULT_EPSILON, calculate_total_amount, derive_status, exceeds_remaining,
    find_conflicting_reservation, summarize_payments
)
from domain.value_objects import BookingPeriod, PaymentSummary, TimeInterval
from infrastructure.app_logger import get_logger

logger = get_logger(__name__)


def branch_lock(branch_id: UUID) -> Tuple[str, UUID]:
    return ("branch", branch_id)


def space_lock(space_id: UUID) -> Tuple[str, UUID]:
    return ("space", space_id)


def customer_lock(customer_id: UUID) -> Tuple[str, UUID]:
    return ("customer", customer_id)


def reservation_lock(reservation_id: UUID) -> Tuple[str, UUID]:
    return ("reservation", reservation_id)


async def _lookup(call, *args):
    """Run a collaborator lookup, mapping unexpected failures to Unavailable"""
    try:
        return await call(*args)
    except BookingError:
        raise
    except Exception as e:
        logger.error("Directory lookup %s failed: %s", getattr(call, "__name__", call), e)
        raise DirectoryUnavailableError(f"Directory lookup failed: {e}") from e


def _to_decimal(value, field: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidInputError(field)
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInputError(field)
    if not result.is_finite():
        raise InvalidInputError(field)
    return result


class CatalogService:
    """Thin data-entry layer for branches, spaces and customers.

    Lock order matches the booking services: branch, then space, then
    customer, then reservation.
    """

    def __init__(self, uow: UnitOfWork):
        self.uow = uow
        self.catalog = uow.catalog
        self.reservations = uow.reservations

    # ==================== BRANCHES ====================

    async def create_branch(self, name: str, state: str, city: str, address: str) -> Branch:
        values = self._require_text(name=name, state=state, city=city, address=address)
        branch = Branch(**values)
        return await self.catalog.save_branch(branch)

    async def get_branch(self, branch_id: UUID) -> Branch:
        branch = await self.catalog.get_branch(branch_id)
        if not branch:
            raise BranchNotFoundError(branch_id)
        return branch

    async def search_branches(self, q: Optional[str] = None) -> List[Branch]:
        """Newest first; ``q`` matches name, city, state or address"""
        branches = await self.catalog.find_branches()
        if q and q.strip():
            branches = [b for b in branches if b.matches(q.strip())]
        branches.sort(key=lambda b: b.name)
        branches.sort(key=lambda b: b.created_at, reverse=True)
        return branches

    async def update_branch(
        self,
        branch_id: UUID,
        name: Optional[str] = None,
        state: Optional[str] = None,
        city: Optional[str] = None,
        address: Optional[str] = None
    ) -> Branch:
        branch = await self.get_branch(branch_id)
        changes = {k: v for k, v in (("name", name), ("state", state), ("city", city), ("address", address))
                   if v is not None}
        if not changes:
            raise InvalidInputError("fields", "No valid fields to update")

        for field, value in self._require_text(**changes).items():
            setattr(branch, field, value)
        branch.updated_at = utc_now()
        return await self.catalog.save_branch(branch)

    async def remove_branch(self, branch_id: UUID) -> None:
        """Delete a branch that no longer owns any space"""
        async with self.uow.transaction(branch_lock(branch_id)):
            await self.get_branch(branch_id)
            spaces = await self.catalog.find_spaces_by_branch(branch_id)
            if spaces:
                logger.warning("Refused to delete branch %s: %d space(s) left", branch_id, len(spaces))
                raise BranchHasSpacesError(branch_id, len(spaces))
            await self.catalog.delete_branch(branch_id)
        logger.info("Branch %s removed", branch_id)

    # ==================== SPACES ====================

    async def create_space(
        self,
        branch_id: UUID,
        name: str,
        capacity: int,
        price_per_hour: Decimal,
        description: Optional[str] = None,
        active: bool = True
    ) -> Space:
        if not name or not name.strip():
            raise InvalidInputError("name")
        self._validate_capacity(capacity)
        price = self._validate_price(price_per_hour)

        async with self.uow.transaction(branch_lock(branch_id)):
            await self.get_branch(branch_id)
            space = Space(
                branch_id=branch_id,
                name=name.strip(),
                description=description,
                capacity=capacity,
                price_per_hour=price,
                active=active
            )
            saved = await self.catalog.save_space(space)

        logger.info("Space %s created in branch %s", saved.space_id, branch_id)
        return saved

    async def get_space(self, space_id: UUID) -> Space:
        space = await self.catalog.get_space(space_id)
        if not space:
            raise SpaceNotFoundError(space_id)
        return space

    async def list_spaces_by_branch(self, branch_id: UUID, active: Optional[bool] = None) -> List[Space]:
        await self.get_branch(branch_id)
        spaces = await self.catalog.find_spaces_by_branch(branch_id)
        if active is not None:
            spaces = [s for s in spaces if s.active == active]
        return sorted(spaces, key=lambda s: (s.name, str(s.space_id)))

    async def update_space(
        self,
        space_id: UUID,
        name: Optional[str] = None,
        description: Optional[str] = None,
        capacity: Optional[int] = None,
        price_per_hour: Optional[Decimal] = None,
        active: Optional[bool] = None
    ) -> Space:
        """Edit a space. Existing reservations keep the total computed at booking time."""
        space = await self.get_space(space_id)

        if all(v is None for v in (name, description, capacity, price_per_hour, active)):
            raise InvalidInputError("fields", "No valid fields to update")

        if name is not None:
            if not name.strip():
                raise InvalidInputError("name")
            space.name = name.strip()
        if description is not None:
            space.description = description
        if capacity is not None:
            self._validate_capacity(capacity)
            space.capacity = capacity
        if price_per_hour is not None:
            space.price_per_hour = self._validate_price(price_per_hour)
        if active is not None:
            space.active = active

        space.updated_at = utc_now()
        return await self.catalog.save_space(space)

    async def remove_space(self, space_id: UUID) -> None:
        """Delete a space with no PENDING or CONFIRMED reservation.

        Cancelled reservations keep their space reference.
        """
        async with self.uow.transaction(space_lock(space_id)):
            await self.get_space(space_id)
            active = [r for r in await self.reservations.find_by_space(space_id) if r.is_active()]
            if active:
                logger.warning("Refused to delete space %s: %d active reservation(s)", space_id, len(active))
                raise SpaceHasActiveReservationsError(space_id, len(active))
            await self.catalog.delete_space(space_id)
        logger.info("Space %s removed", space_id)

    # ==================== CUSTOMERS ====================

    async def create_customer(self, name: str, email: str, phone: Optional[str] = None) -> Customer:
        if not name or not name.strip():
            raise InvalidInputError("name")
        email = self._validate_email(email)
        if await self.catalog.find_customer_by_email(email):
            raise DuplicateCustomerEmailError("Email already in use", details={"email": email})

        customer = Customer(name=name.strip(), email=email, phone=phone)
        return await self.catalog.save_customer(customer)

    async def get_customer(self, customer_id: UUID) -> Customer:
        customer = await self.catalog.get_customer(customer_id)
        if not customer:
            raise CustomerNotFoundError(customer_id)
        return customer

    async def list_customers(self, search: Optional[str] = None) -> List[Customer]:
        """Newest first; ``search`` matches name or email"""
        customers = await self.catalog.find_customers()
        if search and search.strip():
            customers = [c for c in customers if c.matches(search.strip())]
        return sorted(customers, key=lambda c: (c.created_at, str(c.customer_id)), reverse=True)

    async def update_customer(
        self,
        customer_id: UUID,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None
    ) -> Customer:
        customer = await self.get_customer(customer_id)
        if name is None and email is None and phone is None:
            raise InvalidInputError("fields", "No valid fields to update")

        if email is not None:
            email = self._validate_email(email)
            owner = await self.catalog.find_customer_by_email(email)
            if owner and owner.customer_id != customer_id:
                raise DuplicateCustomerEmailError("Email already in use", details={"email": email})
            customer.email = email
        if name is not None:
            if not name.strip():
                raise InvalidInputError("name")
            customer.name = name.strip()
        if phone is not None:
            customer.phone = phone

        customer.updated_at = utc_now()
        return await self.catalog.save_customer(customer)

    async def remove_customer(self, customer_id: UUID) -> None:
        """Delete a customer with no PENDING or CONFIRMED reservation"""
        async with self.uow.transaction(customer_lock(customer_id)):
            await self.get_customer(customer_id)
            active = [r for r in await self.reservations.find_by_customer(customer_id) if r.is_active()]
            if active:
                logger.warning(
                    "Refused to delete customer %s: %d active reservation(s)", customer_id, len(active)
                )
                raise CustomerHasActiveReservationsError(customer_id, len(active))
            await self.catalog.delete_customer(customer_id)
        logger.info("Customer %s removed", customer_id)

    # ==================== VALIDATION ====================

    @staticmethod
    def _require_text(**fields) -> dict:
        cleaned = {}
        for field, value in fields.items():
            if not isinstance(value, str) or not value.strip():
                raise InvalidInputError(field)
            cleaned[field] = value.strip()
        return cleaned

    @staticmethod
    def _validate_email(email) -> str:
        if not isinstance(email, str) or "@" not in email:
            raise InvalidInputError("email")
        return email.strip()

    @staticmethod
    def _validate_capacity(capacity: int) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise InvalidInputError("capacity", "Capacity must be a positive integer")

    @staticmethod
    def _validate_price(price_per_hour) -> Decimal:
        price = _to_decimal(price_per_hour, "price_per_hour")
        if price < 0:
            raise InvalidInputError("price_per_hour", "Price per hour must be zero or greater")
        return price


class ReservationService:
    """Service for Reservation business use cases"""

    def __init__(self,
                 uow: UnitOfWork,
                 space_directory: Optional[SpaceDirectory] = None,
                 customer_directory: Optional[CustomerDirectory] = None,
                 amount_places: int = 2):
        self.uow = uow
        self.repository = uow.reservations
        self.space_directory = space_directory or uow.catalog
        self.customer_directory = customer_directory or uow.catalog
        self.amount_places = amount_places

    async def has_conflict(
        self,
        space_id: UUID,
        candidate_start: datetime,
        candidate_end: datetime,
        exclude_id: Optional[UUID] = None
    ) -> bool:
        """Check if any non-cancelled reservation of the space overlaps [start, end)"""
        candidate = TimeInterval(start=candidate_start, end=candidate_end)
        reservations = await self.repository.find_by_space(space_id)
        return find_conflicting_reservation(candidate, reservations, exclude_id=exclude_id) is not None

    async def create_reservation(
        self,
        space_id: UUID,
        customer_id: UUID,
        check_in_date: date,
        check_out_date: date,
        start_time: time,
        end_time: time,
        occupant_count: int,
        deposit_pct: Decimal = Decimal("0"),
        notes: Optional[str] = None
    ) -> Reservation:
        """Validate and persist a new PENDING reservation.

        Space and customer are resolved while holding their locks so a
        concurrent removal cannot leave the reservation pointing at nothing.
        """
        self._require_fields(
            space_id=space_id,
            customer_id=customer_id,
            check_in_date=check_in_date,
            check_out_date=check_out_date,
            start_time=start_time,
            end_time=end_time,
            occupant_count=occupant_count
        )
        deposit = self._validate_deposit_pct(deposit_pct)
        period = BookingPeriod(
            check_in_date=check_in_date,
            check_out_date=check_out_date,
            start_time=start_time,
            end_time=end_time
        )
        period.ensure_valid()

        async with self.uow.transaction(space_lock(space_id), customer_lock(customer_id)):
            space = await _lookup(self.space_directory.get_space, space_id)
            if not space or not space.active:
                raise SpaceNotFoundError(space_id, "Space not found or inactive")

            if occupant_count > space.capacity:
                logger.warning(
                    "Capacity exceeded for space %s: %s > %s", space_id, occupant_count, space.capacity
                )
                raise CapacityExceededError(space.capacity, occupant_count)

            if not await _lookup(self.customer_directory.customer_exists, customer_id):
                raise CustomerNotFoundError(customer_id)

            total_amount = calculate_total_amount(period, space.price_per_hour, self.amount_places)

            reservation = Reservation.create(
                space_id=space_id,
                branch_id=space.branch_id,
                customer_id=customer_id,
                period=period,
                occupant_count=occupant_count,
                total_amount=total_amount,
                deposit_pct=deposit,
                notes=notes
            )

            existing = await self.repository.find_by_space(space_id)
            conflict = find_conflicting_reservation(reservation.effective_interval(), existing)
            if conflict is not None:
                logger.warning(
                    "Reservation on space %s rejected: overlaps %s", space_id, conflict.reservation_id
                )
                raise ConflictingReservationError(space_id, conflict.reservation_id)
            await self.repository.add(reservation)

        logger.info(
            "Reservation %s created for space %s (%s -> %s, total %s)",
            reservation.reservation_id, space_id, period.starts_at, period.ends_at, total_amount
        )
        return reservation

    async def get_reservation(self, reservation_id: UUID) -> Reservation:
        """Get reservation by ID"""
        reservation = await self.repository.find_by_id(reservation_id)
        if not reservation:
            raise ReservationNotFoundError(reservation_id)
        return reservation

    async def list_by_space(self, space_id: UUID, on_date: Optional[date] = None) -> List[Reservation]:
        """Reservations of a space ordered by check-in date then start time"""
        space = await _lookup(self.space_directory.get_space, space_id)
        if not space:
            raise SpaceNotFoundError(space_id)

        reservations = await self.repository.find_by_space(space_id)
        if on_date is not None:
            reservations = [r for r in reservations if r.period.covers(on_date)]
        return sorted(reservations, key=lambda r: r.sort_key())

    async def cancel_reservation(self, reservation_id: UUID) -> Reservation:
        """Cancel reservation. Existing payments are left as they are."""
        reservation = await self.get_reservation(reservation_id)

        async with self.uow.transaction(space_lock(reservation.space_id), reservation_lock(reservation_id)):
            reservation = await self.get_reservation(reservation_id)
            if reservation.status == ReservationStatus.CANCELLED:
                return reservation
            reservation.cancel()
            await self.repository.update(reservation)

        logger.info("Reservation %s cancelled", reservation_id)
        return reservation

    @staticmethod
    def _require_fields(**fields) -> None:
        expected = {
            "space_id": UUID,
            "customer_id": UUID,
            "check_in_date": date,
            "check_out_date": date,
            "start_time": time,
            "end_time": time,
            "occupant_count": int,
        }
        for name, value in fields.items():
            kind = expected[name]
            if value is None or isinstance(value, bool) or not isinstance(value, kind):
                raise InvalidInputError(name)
            # datetime is a date subclass; a timestamp is not a calendar date
            if kind is date and isinstance(value, datetime):
                raise InvalidInputError(name)
        if fields["occupant_count"] <= 0:
            raise InvalidInputError("occupant_count", "Occupant count must be a positive integer")

    @staticmethod
    def _validate_deposit_pct(deposit_pct) -> Decimal:
        deposit = _to_decimal(deposit_pct if deposit_pct is not None else 0, "deposit_pct")
        if deposit < 0 or deposit > 100:
            raise InvalidInputError("deposit_pct", "Deposit percentage must be between 0 and 100")
        return deposit


class PaymentService:
    """Service for the payment ledger of reservations"""

    def __init__(self, uow: UnitOfWork, epsilon: Decimal = DEFAULT_EPSILON):
        self.uow = uow
        self.repository = uow.payments
        self.reservations = uow.reservations
        self.catalog = uow.catalog
        self.epsilon = epsilon

    async def register_payment(
        self,
        reservation_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        purpose: Optional[PaymentPurpose] = None,
        external_ref: Optional[str] = None
    ) -> Payment:
        """Register a PENDING payment bounded by the remaining balance"""
        if not isinstance(method, PaymentMethod):
            try:
                method = PaymentMethod(method)
            except ValueError:
                raise InvalidInputError("method")
        try:
            purpose = PaymentPurpose(purpose) if purpose else PaymentPurpose.DEPOSIT
        except ValueError:
            raise InvalidInputError("purpose")

        async with self.uow.transaction(reservation_lock(reservation_id)):
            reservation = await self.reservations.find_by_id(reservation_id)
            if not reservation:
                raise ReservationNotFoundError(reservation_id)

            amount = self._to_amount(amount)

            payment = Payment.register(
                reservation_id=reservation_id,
                amount=amount,
                method=method,
                purpose=purpose,
                external_ref=external_ref
            )

            summary = summarize_payments(reservation, await self.repository.find_by_reservation(reservation_id))
            if exceeds_remaining(amount, summary.remaining, self.epsilon):
                logger.warning(
                    "Payment of %s on reservation %s rejected: remaining %s",
                    amount, reservation_id, summary.remaining
                )
                raise AmountExceedsRemainingError(amount, summary.remaining)

            await self.repository.add(payment)

        logger.info("Payment %s of %s registered on reservation %s", payment.payment_id, amount, reservation_id)
        return payment

    async def get_payment(self, payment_id: UUID) -> Payment:
        """Get payment by ID"""
        payment = await self.repository.find_by_id(payment_id)
        if not payment:
            raise PaymentNotFoundError(payment_id)
        return payment

    async def confirm_payment(
        self,
        payment_id: UUID,
        external_ref: Optional[str] = None,
        paid_at: Optional[datetime] = None
    ) -> Payment:
        """Mark payment PAID and reconcile the reservation status in the same transaction"""
        payment = await self.get_payment(payment_id)

        async with self.uow.transaction(reservation_lock(payment.reservation_id)):
            payment = await self.get_payment(payment_id)
            payment.confirm(external_ref=external_ref, paid_at=paid_at)
            await self.repository.update(payment)
            await self._reconcile(payment.reservation_id)

        logger.info("Payment %s confirmed", payment_id)
        return payment

    async def remove_payment(self, payment_id: UUID) -> None:
        """Delete a payment that has not been paid"""
        payment = await self.get_payment(payment_id)

        async with self.uow.transaction(reservation_lock(payment.reservation_id)):
            payment = await self.get_payment(payment_id)
            try:
                payment.ensure_deletable()
            except BookingError:
                logger.warning("Refused to delete paid payment %s", payment_id)
                raise
            await self.repository.delete(payment_id)

        logger.info("Payment %s removed from reservation %s", payment_id, payment.reservation_id)

    async def get_balance(self, reservation_id: UUID) -> Tuple[PaymentSummary, List[Payment]]:
        """Ledger position and payments of one reservation"""
        reservation = await self.reservations.find_by_id(reservation_id)
        if not reservation:
            raise ReservationNotFoundError(reservation_id)
        payments = await self.repository.find_by_reservation(reservation_id)
        payments.sort(key=lambda p: (p.created_at, str(p.payment_id)))
        return summarize_payments(reservation, payments), payments

    async def list_payments(
        self,
        branch_id: Optional[UUID] = None,
        space_id: Optional[UUID] = None,
        customer_id: Optional[UUID] = None,
        status: Optional[PaymentStatus] = None,
        method: Optional[PaymentMethod] = None,
        purpose: Optional[PaymentPurpose] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None
    ) -> List[dict]:
        """Payments joined with reservation, space, branch and customer context.

        Filters combine with AND; dates apply to the reservation check-in
        date. Newest payments first, ties broken by payment id.
        """
        reservations = {r.reservation_id: r for r in await self.reservations.find_all()}
        rows = []
        for payment in await self.repository.find_all():
            reservation = reservations.get(payment.reservation_id)
            if reservation is None:
                continue
            if status is not None and payment.status != status:
                continue
            if method is not None and payment.method != method:
                continue
            if purpose is not None and payment.purpose != purpose:
                continue
            if branch_id is not None and reservation.branch_id != branch_id:
                continue
            if space_id is not None and reservation.space_id != space_id:
                continue
            if customer_id is not None and reservation.customer_id != customer_id:
                continue
            if from_date is not None and reservation.period.check_in_date < from_date:
                continue
            if to_date is not None and reservation.period.check_in_date > to_date:
                continue

            space = await self.catalog.get_space(reservation.space_id)
            branch = await self.catalog.get_branch(reservation.branch_id)
            customer = await self.catalog.get_customer(reservation.customer_id)
            rows.append({
                "payment": payment,
                "reservation": reservation,
                "space": space,
                "branch": branch,
                "customer": customer,
            })

        rows.sort(key=lambda row: (row["payment"].created_at, str(row["payment"].payment_id)), reverse=True)
        return rows

    async def _reconcile(self, reservation_id: UUID) -> Reservation:
        reservation = await self.reservations.find_by_id(reservation_id)
        if not reservation:
            raise ReservationNotFoundError(reservation_id)

        payments = await self.repository.find_by_reservation(reservation_id)
        new_status = derive_status(reservation, payments)
        if new_status == ReservationStatus.CONFIRMED and reservation.status == ReservationStatus.PENDING:
            reservation.confirm()
            await self.reservations.update(reservation)
            logger.info("Reservation %s confirmed: payments cover %s", reservation_id, reservation.total_amount)
        return reservation

    @staticmethod
    def _to_amount(amount) -> Decimal:
        if amount is None or isinstance(amount, bool):
            raise InvalidAmountError("Payment amount must be greater than 0")
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError):
            raise InvalidAmountError("Payment amount must be a number")
        if not value.is_finite() or value <= 0:
            raise InvalidAmountError("Payment amount must be greater than 0")
        return value
