"""
Module: payments_modules.installments.orm
Responsibility:
    SQLAlchemy ORM persistence model for installment plans.  Maps the frozen
    ``InstallmentPlan`` DTO to a single row in ``installment_plans``.

Architecture position:
    **Modules layer** -- ORM model inheriting from ``TrackedBase``.

Invariants enforced:
    - One row per plan; ``installments`` is a JSON list owned by the row and
      replaced as a whole on every change.
    - ``version`` is the optimistic concurrency counter (``version_id_col``).
    - ``0 <= down_payment_amount <= total_amount`` (CHECK).
"""

from datetime import date
from typing import Any

from sqlalchemy import JSON, CheckConstraint, Date, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from payments_kernel.db.base import TrackedBase
from payments_kernel.db.types import Amount, CurrencyCode, ExternalId, ShortCode
from payments_modules.installments.models import (
    Installment,
    InstallmentFrequency,
    InstallmentPlan,
    InstallmentPlanStatus,
)


class InstallmentPlanModel(TrackedBase):
    """An installment plan row."""

    __tablename__ = "installment_plans"

    __table_args__ = (
        CheckConstraint("total_amount > 0", name="ck_plan_total_positive"),
        CheckConstraint("down_payment_amount >= 0", name="ck_plan_down_non_negative"),
        CheckConstraint(
            "down_payment_amount <= total_amount",
            name="ck_plan_down_within_total",
        ),
        CheckConstraint("installment_count >= 1", name="ck_plan_count_positive"),
        Index("idx_plan_lead_status", "lead_id", "status"),
        Index("idx_plan_property", "property_id"),
    )

    property_id: Mapped[ExternalId] = mapped_column(nullable=False)
    lead_id: Mapped[ExternalId] = mapped_column(nullable=False)
    total_amount: Mapped[Amount] = mapped_column(nullable=False)
    down_payment_amount: Mapped[Amount] = mapped_column(nullable=False)
    installment_amount: Mapped[Amount] = mapped_column(nullable=False)
    installment_count: Mapped[int] = mapped_column(Integer, nullable=False)
    frequency: Mapped[ShortCode] = mapped_column(nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    installments: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, default=list, nullable=False,
    )
    status: Mapped[ShortCode] = mapped_column(
        default=InstallmentPlanStatus.ACTIVE.value, nullable=False,
    )
    currency: Mapped[CurrencyCode] = mapped_column(default="AED", nullable=False)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def installment_dtos(self) -> tuple[Installment, ...]:
        return tuple(Installment.from_document(doc) for doc in self.installments or ())

    def replace_installments(self, installments: tuple[Installment, ...]) -> None:
        self.installments = [i.to_document() for i in installments]

    def to_dto(self) -> InstallmentPlan:
        return InstallmentPlan(
            id=self.id,
            property_id=self.property_id,
            lead_id=self.lead_id,
            total_amount=self.total_amount,
            down_payment_amount=self.down_payment_amount,
            installment_amount=self.installment_amount,
            installment_count=self.installment_count,
            frequency=InstallmentFrequency(self.frequency),
            start_date=self.start_date,
            end_date=self.end_date,
            installments=self.installment_dtos(),
            status=InstallmentPlanStatus(self.status),
            currency=self.currency,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: InstallmentPlan, created_by: str | None = None) -> "InstallmentPlanModel":
        return cls(
            id=dto.id,
            property_id=dto.property_id,
            lead_id=dto.lead_id,
            total_amount=dto.total_amount,
            down_payment_amount=dto.down_payment_amount,
            installment_amount=dto.installment_amount,
            installment_count=dto.installment_count,
            frequency=dto.frequency.value,
            start_date=dto.start_date,
            end_date=dto.end_date,
            installments=[i.to_document() for i in dto.installments],
            status=dto.status.value,
            currency=dto.currency,
            created_by=created_by,
        )

    def __repr__(self) -> str:
        return (
            f"<InstallmentPlanModel {self.id} lead={self.lead_id} "
            f"{self.installment_count}x{self.installment_amount} ({self.status})>"
        )
