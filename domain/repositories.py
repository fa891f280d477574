"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import Optional, List, Hashable, AsyncContextManager
from uuid import UUID

from domain.entities import Reservation, Payment
from domain.catalog import Branch, Space, Customer


class ReservationRepository(ABC):
    """Repository interface for Reservation Aggregate"""

    @abstractmethod
    async def add(self, reservation: Reservation) -> Reservation:
        """Insert reservation.

        Implementations enforce the per-space exclusion constraint and raise
        ConflictingReservationError when an active reservation on the same
        space overlaps the new one.
        """
        pass

    @abstractmethod
    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        pass

    @abstractmethod
    async def find_by_space(self, space_id: UUID) -> List[Reservation]:
        """Find all reservations of a space, cancelled ones included"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        pass

    @abstractmethod
    async def find_by_customer(self, customer_id: UUID) -> List[Reservation]:
        """Find all reservations of a customer, cancelled ones included"""
        pass

    @abstractmethod
    async def update(self, reservation: Reservation) -> Reservation:
        """Update reservation"""
        pass


class PaymentRepository(ABC):
    """Repository interface for Payment Aggregate"""

    @abstractmethod
    async def add(self, payment: Payment) -> Payment:
        """Insert payment"""
        pass

    @abstractmethod
    async def find_by_id(self, payment_id: UUID) -> Optional[Payment]:
        """Find payment by ID"""
        pass

    @abstractmethod
    async def find_by_reservation(self, reservation_id: UUID) -> List[Payment]:
        """Find payments of a reservation"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Payment]:
        """Find all payments"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """Update payment"""
        pass

    @abstractmethod
    async def delete(self, payment_id: UUID) -> bool:
        """Delete payment"""
        pass


class SpaceDirectory(ABC):
    """Space lookup consumed by the booking engine"""

    @abstractmethod
    async def get_space(self, space_id: UUID) -> Optional[Space]:
        """Current capacity, rate, active flag and branch of a space"""
        pass


class CustomerDirectory(ABC):
    """Customer existence check consumed by the booking engine"""

    @abstractmethod
    async def customer_exists(self, customer_id: UUID) -> bool:
        pass

    @abstractmethod
    async def get_customer(self, customer_id: UUID) -> Optional[Customer]:
        pass


class CatalogRepository(SpaceDirectory, CustomerDirectory):
    """Repository interface for branches, spaces and customers"""

    @abstractmethod
    async def save_branch(self, branch: Branch) -> Branch:
        pass

    @abstractmethod
    async def get_branch(self, branch_id: UUID) -> Optional[Branch]:
        pass

    @abstractmethod
    async def find_branches(self) -> List[Branch]:
        pass

    @abstractmethod
    async def delete_branch(self, branch_id: UUID) -> bool:
        pass

    @abstractmethod
    async def save_space(self, space: Space) -> Space:
        pass

    @abstractmethod
    async def find_spaces_by_branch(self, branch_id: UUID) -> List[Space]:
        pass

    @abstractmethod
    async def delete_space(self, space_id: UUID) -> bool:
        pass

    @abstractmethod
    async def save_customer(self, customer: Customer) -> Customer:
        pass

    @abstractmethod
    async def find_customer_by_email(self, email: str) -> Optional[Customer]:
        pass

    @abstractmethod
    async def find_customers(self) -> List[Customer]:
        pass

    @abstractmethod
    async def delete_customer(self, customer_id: UUID) -> bool:
        pass


class UnitOfWork(ABC):
    """Transaction boundary shared by the booking services.

    ``transaction(*keys)`` holds an exclusive lock on every key for the
    duration of the block and commits on success. If the block raises, all
    writes made through the repositories inside it are discarded.
    """

    reservations: ReservationRepository
    payments: PaymentRepository
    catalog: CatalogRepository

    @abstractmethod
    def transaction(self, *keys: Hashable) -> AsyncContextManager["UnitOfWork"]:
        pass
