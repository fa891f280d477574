"""Domain Value Objects"""
from pydantic import BaseModel
from datetime import date, datetime, time
from decimal import Decimal

from domain.exceptions import InvalidTimeRangeError

SECONDS_PER_HOUR = Decimal(3600)


class TimeInterval(BaseModel):
    """Half-open absolute interval [start, end)"""
    start: datetime
    end: datetime

    def overlaps(self, other: "TimeInterval") -> bool:
        """Touching endpoints do not overlap"""
        return self.start < other.end and other.start < self.end

    def hours(self) -> Decimal:
        """Exact elapsed hours"""
        delta = self.end - self.start
        seconds = Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(1000000)
        return seconds / SECONDS_PER_HOUR

    class Config:
        frozen = True


class BookingPeriod(BaseModel):
    """Value Object for the booked dates and wall-clock times.

    ``start_time`` applies to ``check_in_date`` and ``end_time`` applies to
    ``check_out_date``.
    """
    check_in_date: date
    check_out_date: date
    start_time: time
    end_time: time

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.check_in_date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.check_out_date, self.end_time)

    def effective_interval(self) -> TimeInterval:
        """Absolute span used for overlap comparison"""
        return TimeInterval(start=self.starts_at, end=self.ends_at)

    def ensure_valid(self) -> None:
        """Validate date and time ordering"""
        if self.check_out_date < self.check_in_date:
            raise InvalidTimeRangeError(
                "Check-out date must not be before check-in date",
                code="checkout_before_checkin",
            )
        # Same-day bookings need end_time strictly after start_time
        if self.ends_at <= self.starts_at:
            raise InvalidTimeRangeError("End must be strictly after start")

    def covers(self, day: date) -> bool:
        """Check if day falls within [check_in_date, check_out_date]"""
        return self.check_in_date <= day <= self.check_out_date

    class Config:
        frozen = True


class PaymentSummary(BaseModel):
    """Ledger position of one reservation"""
    total_amount: Decimal
    committed_amount: Decimal
    paid_amount: Decimal
    remaining: Decimal

    @property
    def is_settled(self) -> bool:
        return self.total_amount > 0 and self.paid_amount >= self.total_amount

    class Config:
        frozen = True
