"""
Module: payments_modules.escrow.orm
Responsibility:
    SQLAlchemy ORM persistence model for escrow accounts.  Maps the frozen
    ``EscrowAccount`` DTO from ``payments_modules.escrow.models`` to a single
    row in ``escrow_accounts``.

Architecture position:
    **Modules layer** -- ORM model inheriting from ``TrackedBase``.

Invariants enforced:
    - One row per account.  ``conditions`` and ``release_approvals`` are JSON
      sub-documents owned by the row; they are always replaced as a whole
      list (copy-on-write) so SQLAlchemy detects the change.
    - ``version`` is SQLAlchemy's ``version_id_col``: every UPDATE carries
      ``WHERE version = :loaded`` and a mismatch raises StaleDataError.
    - ``account_number`` is unique (uq_escrow_account_number).
    - CHECK constraints keep ``0 <= released_amount <= deposited_amount``.

Failure modes:
    - IntegrityError on a duplicate account number or a balance CHECK breach.
    - StaleDataError on a concurrent modification (translated by the service).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payments_kernel.db.base import TrackedBase
from payments_kernel.db.types import Amount, CurrencyCode, ExternalId, ShortCode
from payments_modules.escrow.models import (
    EscrowAccount,
    EscrowCondition,
    EscrowStatus,
    ReleaseApproval,
)


class EscrowAccountModel(TrackedBase):
    """
    An escrow account row.

    Guarantees:
        - ``status`` is one of the ``EscrowStatus`` values.
        - Amount columns are Numeric(15, 2).
    """

    __tablename__ = "escrow_accounts"

    __table_args__ = (
        UniqueConstraint("account_number", name="uq_escrow_account_number"),
        CheckConstraint("total_amount > 0", name="ck_escrow_total_positive"),
        CheckConstraint("released_amount >= 0", name="ck_escrow_released_non_negative"),
        CheckConstraint(
            "released_amount <= deposited_amount",
            name="ck_escrow_released_within_deposited",
        ),
        Index("idx_escrow_property", "property_id"),
        Index("idx_escrow_buyer", "buyer_id"),
        Index("idx_escrow_seller", "seller_id"),
        Index("idx_escrow_status", "status"),
    )

    account_number: Mapped[str] = mapped_column(String(50), nullable=False)
    property_id: Mapped[ExternalId] = mapped_column(nullable=False)
    buyer_id: Mapped[ExternalId] = mapped_column(nullable=False)
    seller_id: Mapped[ExternalId] = mapped_column(nullable=False)
    agent_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    total_amount: Mapped[Amount] = mapped_column(nullable=False)
    deposited_amount: Mapped[Amount] = mapped_column(default=Decimal("0.00"), nullable=False)
    released_amount: Mapped[Amount] = mapped_column(default=Decimal("0.00"), nullable=False)
    currency: Mapped[CurrencyCode] = mapped_column(default="AED", nullable=False)
    status: Mapped[ShortCode] = mapped_column(default=EscrowStatus.ACTIVE.value, nullable=False)
    conditions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    release_approvals: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON, default=list, nullable=False,
    )
    bank_name: Mapped[str] = mapped_column(String(200), nullable=False)
    bank_account_number: Mapped[str] = mapped_column(String(100), nullable=False)
    iban: Mapped[str | None] = mapped_column(String(50), nullable=True)
    opened_at: Mapped[datetime] = mapped_column(nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # -- sub-documents ------------------------------------------------------

    def condition_dtos(self) -> tuple[EscrowCondition, ...]:
        return tuple(EscrowCondition.from_document(doc) for doc in self.conditions or ())

    def release_approval_dtos(self) -> tuple[ReleaseApproval, ...]:
        return tuple(ReleaseApproval.from_document(doc) for doc in self.release_approvals or ())

    def replace_conditions(self, conditions: tuple[EscrowCondition, ...]) -> None:
        self.conditions = [c.to_document() for c in conditions]

    def replace_release_approvals(self, approvals: tuple[ReleaseApproval, ...]) -> None:
        self.release_approvals = [a.to_document() for a in approvals]

    # -- DTO mapping --------------------------------------------------------

    def to_dto(self) -> EscrowAccount:
        return EscrowAccount(
            id=self.id,
            account_number=self.account_number,
            property_id=self.property_id,
            buyer_id=self.buyer_id,
            seller_id=self.seller_id,
            agent_id=self.agent_id,
            total_amount=self.total_amount,
            deposited_amount=self.deposited_amount,
            released_amount=self.released_amount,
            currency=self.currency,
            status=EscrowStatus(self.status),
            conditions=self.condition_dtos(),
            release_approvals=self.release_approval_dtos(),
            bank_name=self.bank_name,
            bank_account_number=self.bank_account_number,
            iban=self.iban,
            opened_at=self.opened_at,
            closed_at=self.closed_at,
            cancellation_reason=self.cancellation_reason,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: EscrowAccount, created_by: str | None = None) -> "EscrowAccountModel":
        return cls(
            id=dto.id,
            account_number=dto.account_number,
            property_id=dto.property_id,
            buyer_id=dto.buyer_id,
            seller_id=dto.seller_id,
            agent_id=dto.agent_id,
            total_amount=dto.total_amount,
            deposited_amount=dto.deposited_amount,
            released_amount=dto.released_amount,
            currency=dto.currency,
            status=dto.status.value,
            conditions=[c.to_document() for c in dto.conditions],
            release_approvals=[a.to_document() for a in dto.release_approvals],
            bank_name=dto.bank_name,
            bank_account_number=dto.bank_account_number,
            iban=dto.iban,
            opened_at=dto.opened_at,
            closed_at=dto.closed_at,
            cancellation_reason=dto.cancellation_reason,
            created_by=created_by,
        )

    def __repr__(self) -> str:
        return f"<EscrowAccountModel {self.account_number} ({self.status})>"
