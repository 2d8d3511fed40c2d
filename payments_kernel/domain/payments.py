"""
Payment facts handed over by the payment ledger.

Both engines accept a ``PaymentRecord`` in place of a bare payment id when
the caller holds the ledger entry; only COMPLETED payments are recorded.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class PaymentStatus(str, Enum):
    """Payment states as reported by the payment ledger."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    DISPUTED = "disputed"


@dataclass(frozen=True)
class PaymentRecord:
    payment_id: str
    amount: Decimal
    status: PaymentStatus

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED
