"""
Installment Plan Domain Models (``payments_modules.installments.models``).

Responsibility
--------------
Frozen dataclass value objects for installment plans: the plan aggregate,
its ordered installments, and the due-soon view returned by
``get_upcoming_installments``.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Built by
``calculations.py`` and ``InstallmentService``; persisted through
``payments_modules.installments.orm``.

Invariants enforced
-------------------
* All models are ``frozen=True``; changes produce new instances.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* Installment numbers are 1-based and contiguous.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class InstallmentFrequency(str, Enum):
    """Payment frequency; see ``calculations.months_increment``."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUAL = "semi_annual"
    ANNUAL = "annual"


class InstallmentPlanStatus(str, Enum):
    """Installment plan lifecycle states."""

    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"
    CANCELLED = "cancelled"


class InstallmentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    WAIVED = "waived"


@dataclass(frozen=True)
class Installment:
    """One scheduled payment of a plan."""

    number: int
    amount: Decimal
    due_date: date
    status: InstallmentStatus = InstallmentStatus.PENDING
    paid_date: date | None = None
    payment_id: str | None = None
    late_fee: Decimal | None = None

    @property
    def is_paid(self) -> bool:
        return self.status == InstallmentStatus.PAID

    def mark_paid(self, payment_id: str, paid_date: date) -> Installment:
        return replace(
            self,
            status=InstallmentStatus.PAID,
            paid_date=paid_date,
            payment_id=payment_id,
        )

    def mark_overdue(self, late_fee: Decimal) -> Installment:
        return replace(self, status=InstallmentStatus.OVERDUE, late_fee=late_fee)

    def to_document(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "amount": str(self.amount),
            "due_date": self.due_date.isoformat(),
            "status": self.status.value,
            "paid_date": self.paid_date.isoformat() if self.paid_date else None,
            "payment_id": self.payment_id,
            "late_fee": str(self.late_fee) if self.late_fee is not None else None,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Installment:
        late_fee = doc.get("late_fee")
        paid_date = doc.get("paid_date")
        return cls(
            number=int(doc["number"]),
            amount=Decimal(doc["amount"]),
            due_date=date.fromisoformat(doc["due_date"]),
            status=InstallmentStatus(doc.get("status", InstallmentStatus.PENDING.value)),
            paid_date=date.fromisoformat(paid_date) if paid_date else None,
            payment_id=doc.get("payment_id"),
            late_fee=Decimal(late_fee) if late_fee is not None else None,
        )


@dataclass(frozen=True)
class InstallmentPlan:
    """A schedule of payments covering ``total_amount - down_payment_amount``."""

    id: UUID
    property_id: str
    lead_id: str
    total_amount: Decimal
    down_payment_amount: Decimal
    installment_amount: Decimal
    installment_count: int
    frequency: InstallmentFrequency
    start_date: date
    end_date: date
    installments: tuple[Installment, ...] = ()
    status: InstallmentPlanStatus = InstallmentPlanStatus.ACTIVE
    currency: str = "AED"
    version: int = 1

    @property
    def financed_amount(self) -> Decimal:
        return self.total_amount - self.down_payment_amount

    @property
    def scheduled_total(self) -> Decimal:
        """Sum of installment amounts; may differ from ``financed_amount`` by rounding."""
        return sum((i.amount for i in self.installments), Decimal("0.00"))

    @property
    def all_paid(self) -> bool:
        return bool(self.installments) and all(i.is_paid for i in self.installments)

    def installment(self, number: int) -> Installment | None:
        for inst in self.installments:
            if inst.number == number:
                return inst
        return None

    def with_installment(self, updated: Installment) -> InstallmentPlan:
        """Copy of the plan with the same-numbered installment swapped for ``updated``."""
        return replace(self, installments=tuple(
            updated if i.number == updated.number else i for i in self.installments
        ))


@dataclass(frozen=True)
class UpcomingInstallment:
    """A pending installment falling due inside the requested window."""

    plan_id: UUID
    property_id: str
    installment_number: int
    amount: Decimal
    due_date: date
    days_until_due: int
    currency: str = "AED"
