"""API Dependencies - Storage and service providers"""
from application.services import CatalogService, ReservationService, PaymentService
from infrastructure.config import get_settings
from infrastructure.repositories.in_memory_repositories import InMemoryUnitOfWork

# Process-wide storage shared by every request
_unit_of_work = InMemoryUnitOfWork()


def get_unit_of_work() -> InMemoryUnitOfWork:
    return _unit_of_work


def reset_storage() -> InMemoryUnitOfWork:
    """Swap in empty storage (used by tests and local reloads)"""
    global _unit_of_work
    _unit_of_work = InMemoryUnitOfWork()
    return _unit_of_work


def get_catalog_service() -> CatalogService:
    return CatalogService(get_unit_of_work())


def get_reservation_service() -> ReservationService:
    settings = get_settings()
    return ReservationService(get_unit_of_work(), amount_places=settings.AMOUNT_PLACES)


def get_payment_service() -> PaymentService:
    settings = get_settings()
    return PaymentService(get_unit_of_work(), epsilon=settings.PAYMENT_EPSILON)
