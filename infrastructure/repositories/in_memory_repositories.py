"""In-Memory Repository Implementations"""
import asyncio
from contextlib import asynccontextmanager, AsyncExitStack
from contextvars import ContextVar
from typing import Optional, List, Dict, Set, Callable, Hashable
from uuid import UUID

from domain.repositories import (
    ReservationRepository, PaymentRepository, CatalogRepository, UnitOfWork
)
from domain.entities import Reservation, Payment
from domain.catalog import Branch, Space, Customer
from domain.exceptions import ConflictingReservationError
from domain.services import find_conflicting_reservation
from infrastructure.app_logger import get_logger

logger = get_logger(__name__)

# Undo log of the transaction running in the current task, if any
_undo_log: ContextVar[Optional[List[Callable[[], None]]]] = ContextVar("undo_log", default=None)


def _record_undo(undo: Callable[[], None]) -> None:
    log = _undo_log.get()
    if log is not None:
        log.append(undo)


def _restore(storage: Dict, key, previous) -> Callable[[], None]:
    def undo():
        if previous is None:
            storage.pop(key, None)
        else:
            storage[key] = previous
    return undo


class InMemoryReservationRepository(ReservationRepository):
    """In-memory implementation of ReservationRepository.

    Rows are stored and returned as copies so callers never mutate storage
    outside of ``add``/``update``.
    """

    def __init__(self):
        self._storage: Dict[UUID, Reservation] = {}
        self._by_space: Dict[UUID, Set[UUID]] = {}

    async def add(self, reservation: Reservation) -> Reservation:
        """Insert reservation, enforcing the per-space exclusion constraint"""
        conflict = find_conflicting_reservation(
            reservation.effective_interval(),
            self._rows_for_space(reservation.space_id),
            exclude_id=reservation.reservation_id
        )
        if reservation.is_active() and conflict is not None:
            raise ConflictingReservationError(reservation.space_id, conflict.reservation_id)

        reservation_id = reservation.reservation_id
        _record_undo(_restore(self._storage, reservation_id, self._storage.get(reservation_id)))
        self._storage[reservation_id] = reservation.model_copy(deep=True)

        ids = self._by_space.setdefault(reservation.space_id, set())
        if reservation_id not in ids:
            ids.add(reservation_id)
            _record_undo(lambda: ids.discard(reservation_id))
        return reservation

    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        row = self._storage.get(reservation_id)
        return row.model_copy(deep=True) if row else None

    async def find_by_space(self, space_id: UUID) -> List[Reservation]:
        """Find reservations by space ID"""
        return [r.model_copy(deep=True) for r in self._rows_for_space(space_id)]

    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        return [r.model_copy(deep=True) for r in self._storage.values()]

    async def find_by_customer(self, customer_id: UUID) -> List[Reservation]:
        """Find reservations of a customer"""
        return [r.model_copy(deep=True) for r in self._storage.values() if r.customer_id == customer_id]

    async def update(self, reservation: Reservation) -> Reservation:
        """Update reservation"""
        reservation_id = reservation.reservation_id
        if reservation_id not in self._storage:
            raise ValueError("Reservation not found")
        _record_undo(_restore(self._storage, reservation_id, self._storage[reservation_id]))
        self._storage[reservation_id] = reservation.model_copy(deep=True)
        return reservation

    def _rows_for_space(self, space_id: UUID) -> List[Reservation]:
        return [self._storage[i] for i in self._by_space.get(space_id, ()) if i in self._storage]


class InMemoryPaymentRepository(PaymentRepository):
    """In-memory implementation of PaymentRepository"""

    def __init__(self):
        self._storage: Dict[UUID, Payment] = {}

    async def add(self, payment: Payment) -> Payment:
        """Insert payment"""
        _record_undo(_restore(self._storage, payment.payment_id, self._storage.get(payment.payment_id)))
        self._storage[payment.payment_id] = payment.model_copy(deep=True)
        return payment

    async def find_by_id(self, payment_id: UUID) -> Optional[Payment]:
        """Find payment by ID"""
        row = self._storage.get(payment_id)
        return row.model_copy(deep=True) if row else None

    async def find_by_reservation(self, reservation_id: UUID) -> List[Payment]:
        """Find payments of a reservation"""
        return [
            p.model_copy(deep=True) for p in self._storage.values()
            if p.reservation_id == reservation_id
        ]

    async def find_all(self) -> List[Payment]:
        """Find all payments"""
        return [p.model_copy(deep=True) for p in self._storage.values()]

    async def update(self, payment: Payment) -> Payment:
        """Update payment"""
        if payment.payment_id not in self._storage:
            raise ValueError("Payment not found")
        _record_undo(_restore(self._storage, payment.payment_id, self._storage[payment.payment_id]))
        self._storage[payment.payment_id] = payment.model_copy(deep=True)
        return payment

    async def delete(self, payment_id: UUID) -> bool:
        """Delete payment"""
        if payment_id in self._storage:
            _record_undo(_restore(self._storage, payment_id, self._storage[payment_id]))
            del self._storage[payment_id]
            return True
        return False


class InMemoryCatalogRepository(CatalogRepository):
    """In-memory branches, spaces and customers"""

    def __init__(self):
        self._branches: Dict[UUID, Branch] = {}
        self._spaces: Dict[UUID, Space] = {}
        self._customers: Dict[UUID, Customer] = {}

    @staticmethod
    def _put(storage: Dict, key, row):
        _record_undo(_restore(storage, key, storage.get(key)))
        storage[key] = row.model_copy()
        return row

    @staticmethod
    def _drop(storage: Dict, key) -> bool:
        if key not in storage:
            return False
        _record_undo(_restore(storage, key, storage[key]))
        del storage[key]
        return True

    async def save_branch(self, branch: Branch) -> Branch:
        return self._put(self._branches, branch.branch_id, branch)

    async def get_branch(self, branch_id: UUID) -> Optional[Branch]:
        row = self._branches.get(branch_id)
        return row.model_copy() if row else None

    async def find_branches(self) -> List[Branch]:
        return [b.model_copy() for b in self._branches.values()]

    async def delete_branch(self, branch_id: UUID) -> bool:
        return self._drop(self._branches, branch_id)

    async def save_space(self, space: Space) -> Space:
        return self._put(self._spaces, space.space_id, space)

    async def get_space(self, space_id: UUID) -> Optional[Space]:
        row = self._spaces.get(space_id)
        return row.model_copy() if row else None

    async def find_spaces_by_branch(self, branch_id: UUID) -> List[Space]:
        return [s.model_copy() for s in self._spaces.values() if s.branch_id == branch_id]

    async def delete_space(self, space_id: UUID) -> bool:
        return self._drop(self._spaces, space_id)

    async def save_customer(self, customer: Customer) -> Customer:
        return self._put(self._customers, customer.customer_id, customer)

    async def get_customer(self, customer_id: UUID) -> Optional[Customer]:
        row = self._customers.get(customer_id)
        return row.model_copy() if row else None

    async def customer_exists(self, customer_id: UUID) -> bool:
        return customer_id in self._customers

    async def find_customer_by_email(self, email: str) -> Optional[Customer]:
        for customer in self._customers.values():
            if customer.email.lower() == email.lower():
                return customer.model_copy()
        return None

    async def find_customers(self) -> List[Customer]:
        return [c.model_copy() for c in self._customers.values()]

    async def delete_customer(self, customer_id: UUID) -> bool:
        return self._drop(self._customers, customer_id)


class KeyedLock:
    """One asyncio.Lock per key, created on demand and dropped when idle"""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


class InMemoryUnitOfWork(UnitOfWork):
    """Unit of work over the in-memory repositories.

    Keys are locked in the order given; callers lock a space before any of
    its reservations.
    """

    def __init__(
        self,
        reservations: Optional[InMemoryReservationRepository] = None,
        payments: Optional[InMemoryPaymentRepository] = None,
        catalog: Optional[InMemoryCatalogRepository] = None
    ):
        self.reservations = reservations or InMemoryReservationRepository()
        self.payments = payments or InMemoryPaymentRepository()
        self.catalog = catalog or InMemoryCatalogRepository()
        self.locks = KeyedLock()

    @asynccontextmanager
    async def transaction(self, *keys: Hashable):
        async with AsyncExitStack() as stack:
            for key in keys:
                await stack.enter_async_context(self.locks.hold(key))

            log: List[Callable[[], None]] = []
            token = _undo_log.set(log)
            try:
                yield self
            except BaseException:
                for undo in reversed(log):
                    undo()
                if log:
                    logger.debug("Rolled back %d write(s) for %s", len(log), keys)
                raise
            finally:
                _undo_log.reset(token)
