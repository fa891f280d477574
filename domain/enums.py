"""Domain Enums"""
from enum import Enum


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    PIX = "PIX"
    CARD = "CARD"
    CASH = "CASH"
    BOLETO = "BOLETO"


class PaymentPurpose(str, Enum):
    DEPOSIT = "DEPOSIT"
    BALANCE = "BALANCE"


# Payment statuses that count against a reservation's total
COMMITTED_PAYMENT_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PAID})
