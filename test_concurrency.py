"""
Concurrency tests for the booking engine
Overlapping creations, racing payments and confirm/cancel interleavings
"""

import asyncio
import pytest
from datetime import date, time
from decimal import Decimal

from application.services import CatalogService, ReservationService, PaymentService
from domain.enums import ReservationStatus, PaymentStatus, PaymentMethod
from domain.exceptions import ConflictingReservationError, AmountExceedsRemainingError
from infrastructure.repositories.in_memory_repositories import (
    InMemoryUnitOfWork, InMemoryReservationRepository, InMemoryCatalogRepository, KeyedLock
)

DAY = date(2030, 3, 1)


class SlowCatalog(InMemoryCatalogRepository):
    """Yields to the event loop on every lookup so requests interleave"""

    async def get_space(self, space_id):
        await asyncio.sleep(0)
        return await super().get_space(space_id)

    async def customer_exists(self, customer_id):
        await asyncio.sleep(0)
        return await super().customer_exists(customer_id)


class SlowReservations(InMemoryReservationRepository):
    async def find_by_space(self, space_id):
        rows = await super().find_by_space(space_id)
        await asyncio.sleep(0)
        return rows

    async def find_by_id(self, reservation_id):
        row = await super().find_by_id(reservation_id)
        await asyncio.sleep(0)
        return row


@pytest.fixture
def uow():
    return InMemoryUnitOfWork(reservations=SlowReservations(), catalog=SlowCatalog())


@pytest.fixture
async def seeded(uow):
    catalog = CatalogService(uow)
    branch = await catalog.create_branch("Centro", "SP", "Sao Paulo", "Rua A, 100")
    space = await catalog.create_space(branch.branch_id, "Auditorio", 50, Decimal("100"))
    customer = await catalog.create_customer("Ana", "ana@example.com")
    return space, customer


def create(service, space, customer, start, end):
    return service.create_reservation(
        space_id=space.space_id,
        customer_id=customer.customer_id,
        check_in_date=DAY,
        check_out_date=DAY,
        start_time=start,
        end_time=end,
        occupant_count=5
    )


@pytest.mark.concurrency
async def test_overlapping_creations_admit_one(uow, seeded):
    space, customer = seeded
    service = ReservationService(uow)

    results = await asyncio.gather(
        *(create(service, space, customer, time(9 + i % 3), time(12)) for i in range(10)),
        return_exceptions=True
    )

    created = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(created) == 1
    assert all(isinstance(e, ConflictingReservationError) for e in rejected)
    assert len(await uow.reservations.find_by_space(space.space_id)) == 1


@pytest.mark.concurrency
async def test_disjoint_creations_all_succeed(uow, seeded):
    space, customer = seeded
    service = ReservationService(uow)

    results = await asyncio.gather(
        *(create(service, space, customer, time(h), time(h + 1)) for h in range(8, 16))
    )

    assert len(results) == 8
    assert len(await uow.reservations.find_by_space(space.space_id)) == 8


@pytest.mark.concurrency
async def test_racing_payments_respect_total(uow, seeded):
    space, customer = seeded
    reservation = await create(ReservationService(uow), space, customer, time(10), time(12))
    payments = PaymentService(uow)

    results = await asyncio.gather(
        *(payments.register_payment(reservation.reservation_id, Decimal("60"), PaymentMethod.PIX)
          for _ in range(5)),
        return_exceptions=True
    )

    accepted = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(accepted) == 3
    assert all(isinstance(e, AmountExceedsRemainingError) for e in rejected)

    summary, _ = await payments.get_balance(reservation.reservation_id)
    assert summary.committed_amount == Decimal("180")
    assert summary.committed_amount <= summary.total_amount


@pytest.mark.concurrency
async def test_confirm_and_cancel_race_ends_cancelled(uow, seeded):
    space, customer = seeded
    reservations = ReservationService(uow)
    payments = PaymentService(uow)
    reservation = await create(reservations, space, customer, time(10), time(12))
    payment = await payments.register_payment(reservation.reservation_id, Decimal("200"), PaymentMethod.CARD)

    await asyncio.gather(
        payments.confirm_payment(payment.payment_id),
        reservations.cancel_reservation(reservation.reservation_id)
    )

    stored = await reservations.get_reservation(reservation.reservation_id)
    paid = await payments.get_payment(payment.payment_id)
    assert stored.status == ReservationStatus.CANCELLED
    assert paid.status == PaymentStatus.PAID


@pytest.mark.concurrency
async def test_cancel_and_rebook_race(uow, seeded):
    space, customer = seeded
    service = ReservationService(uow)
    first = await create(service, space, customer, time(10), time(12))

    results = await asyncio.gather(
        service.cancel_reservation(first.reservation_id),
        create(service, space, customer, time(10), time(12)),
        return_exceptions=True
    )

    # The rebooking wins only if it ran after the cancellation
    active = [r for r in await uow.reservations.find_by_space(space.space_id) if r.is_active()]
    assert len(active) <= 1
    assert results[0].status == ReservationStatus.CANCELLED


@pytest.mark.concurrency
async def test_keyed_lock_serializes_same_key():
    locks = KeyedLock()
    events = []

    async def worker(name, key):
        async with locks.hold(key):
            events.append((name, "in"))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            events.append((name, "out"))

    await asyncio.gather(worker("a", "k"), worker("b", "k"))

    assert events in (
        [("a", "in"), ("a", "out"), ("b", "in"), ("b", "out")],
        [("b", "in"), ("b", "out"), ("a", "in"), ("a", "out")],
    )


@pytest.mark.concurrency
async def test_keyed_lock_independent_keys_interleave():
    locks = KeyedLock()
    events = []

    async def worker(name, key):
        async with locks.hold(key):
            events.append((name, "in"))
            await asyncio.sleep(0)
            events.append((name, "out"))

    await asyncio.gather(worker("a", "k1"), worker("b", "k2"))

    assert events[:2] == [("a", "in"), ("b", "in")]
