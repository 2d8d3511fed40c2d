"""
Escrow Domain Models (``payments_modules.escrow.models``).

Responsibility
--------------
Frozen dataclass value objects for the escrow release workflow: the escrow
account aggregate, its informational conditions, its append-only release
requests and the lifecycle state machine.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Returned by
``EscrowService``; persisted through ``payments_modules.escrow.orm``.

Invariants enforced
-------------------
* ``ESCROW_TRANSITIONS`` is the only source of legal status changes.
  COMPLETED and CANCELLED have no outgoing edges; DISPUTED has none that
  the engine can take.
* A ``ReleaseApproval`` is executed at most once; once executed its
  approval flags no longer change.
* All monetary fields are ``Decimal``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class EscrowStatus(str, Enum):
    """Escrow account lifecycle states."""

    ACTIVE = "active"
    FUNDED = "funded"
    PARTIAL_RELEASE = "partial_release"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


ESCROW_TRANSITIONS: dict[EscrowStatus, frozenset[EscrowStatus]] = {
    EscrowStatus.ACTIVE: frozenset({
        EscrowStatus.FUNDED,
        EscrowStatus.CANCELLED,
    }),
    EscrowStatus.FUNDED: frozenset({
        EscrowStatus.PARTIAL_RELEASE,
        EscrowStatus.COMPLETED,
        EscrowStatus.CANCELLED,
    }),
    EscrowStatus.PARTIAL_RELEASE: frozenset({
        EscrowStatus.PARTIAL_RELEASE,
        EscrowStatus.COMPLETED,
        EscrowStatus.CANCELLED,
    }),
    EscrowStatus.COMPLETED: frozenset(),
    EscrowStatus.CANCELLED: frozenset(),
    # Set and cleared only by the external dispute process.
    EscrowStatus.DISPUTED: frozenset(),
}

TERMINAL_ESCROW_STATUSES: frozenset[EscrowStatus] = frozenset({
    EscrowStatus.COMPLETED,
    EscrowStatus.CANCELLED,
})

# Statuses from which funds may still be deposited.
DEPOSITABLE_ESCROW_STATUSES: frozenset[EscrowStatus] = frozenset({
    EscrowStatus.ACTIVE,
    EscrowStatus.FUNDED,
    EscrowStatus.PARTIAL_RELEASE,
})


class EscrowParty(str, Enum):
    """The two parties whose approval gates a release."""

    BUYER = "buyer"
    SELLER = "seller"


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class EscrowCondition:
    """A named condition of the transaction (title deed, NOC, handover)."""

    id: UUID
    description: str
    required: bool = True
    fulfilled: bool = False
    fulfilled_at: datetime | None = None
    fulfilled_by: str | None = None
    evidence: str | None = None

    def fulfil(self, fulfilled_by: str, at: datetime, evidence: str | None = None) -> EscrowCondition:
        return replace(
            self,
            fulfilled=True,
            fulfilled_at=at,
            fulfilled_by=fulfilled_by,
            evidence=evidence,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "description": self.description,
            "required": self.required,
            "fulfilled": self.fulfilled,
            "fulfilled_at": _ts(self.fulfilled_at),
            "fulfilled_by": self.fulfilled_by,
            "evidence": self.evidence,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> EscrowCondition:
        return cls(
            id=UUID(doc["id"]),
            description=doc["description"],
            required=doc.get("required", True),
            fulfilled=doc.get("fulfilled", False),
            fulfilled_at=_parse_ts(doc.get("fulfilled_at")),
            fulfilled_by=doc.get("fulfilled_by"),
            evidence=doc.get("evidence"),
        )


@dataclass(frozen=True)
class ReleaseApproval:
    """
    A request to disburse ``amount`` from escrow.

    Buyer and seller flags are set independently and may be overwritten until
    the request is executed.  Execution happens once, when both are true.
    """

    request_id: UUID
    amount: Decimal
    reason: str
    requested_by: str
    requested_at: datetime
    buyer_approved: bool = False
    buyer_approved_at: datetime | None = None
    seller_approved: bool = False
    seller_approved_at: datetime | None = None
    executed: bool = False
    executed_at: datetime | None = None
    recipient: str | None = None

    @property
    def all_approved(self) -> bool:
        return self.buyer_approved and self.seller_approved

    def with_decision(self, party: EscrowParty, approved: bool, at: datetime) -> ReleaseApproval:
        """Return a copy with ``party``'s flag and timestamp set."""
        if self.executed:
            return self
        if party is EscrowParty.BUYER:
            return replace(self, buyer_approved=approved, buyer_approved_at=at)
        return replace(self, seller_approved=approved, seller_approved_at=at)

    def as_executed(self, recipient: str, at: datetime) -> ReleaseApproval:
        return replace(self, executed=True, executed_at=at, recipient=recipient)

    def to_document(self) -> dict[str, Any]:
        return {
            "request_id": str(self.request_id),
            "amount": str(self.amount),
            "reason": self.reason,
            "requested_by": self.requested_by,
            "requested_at": _ts(self.requested_at),
            "buyer_approved": self.buyer_approved,
            "buyer_approved_at": _ts(self.buyer_approved_at),
            "seller_approved": self.seller_approved,
            "seller_approved_at": _ts(self.seller_approved_at),
            "executed": self.executed,
            "executed_at": _ts(self.executed_at),
            "recipient": self.recipient,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> ReleaseApproval:
        return cls(
            request_id=UUID(doc["request_id"]),
            amount=Decimal(doc["amount"]),
            reason=doc["reason"],
            requested_by=doc["requested_by"],
            requested_at=_parse_ts(doc["requested_at"]),
            buyer_approved=doc.get("buyer_approved", False),
            buyer_approved_at=_parse_ts(doc.get("buyer_approved_at")),
            seller_approved=doc.get("seller_approved", False),
            seller_approved_at=_parse_ts(doc.get("seller_approved_at")),
            executed=doc.get("executed", False),
            executed_at=_parse_ts(doc.get("executed_at")),
            recipient=doc.get("recipient"),
        )


@dataclass(frozen=True)
class EscrowAccount:
    """An escrow account holding funds against one property transaction."""

    id: UUID
    account_number: str
    property_id: str
    buyer_id: str
    seller_id: str
    total_amount: Decimal
    bank_name: str
    bank_account_number: str
    opened_at: datetime
    agent_id: str | None = None
    iban: str | None = None
    currency: str = "AED"
    deposited_amount: Decimal = Decimal("0.00")
    released_amount: Decimal = Decimal("0.00")
    status: EscrowStatus = EscrowStatus.ACTIVE
    conditions: tuple[EscrowCondition, ...] = ()
    release_approvals: tuple[ReleaseApproval, ...] = ()
    closed_at: datetime | None = None
    cancellation_reason: str | None = None
    version: int = 1

    @property
    def available_balance(self) -> Decimal:
        """Funds deposited and not yet released."""
        return self.deposited_amount - self.released_amount

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ESCROW_STATUSES

    def party_of(self, actor_id: str) -> EscrowParty | None:
        """Resolve an actor id to the buyer or seller role, if any."""
        if actor_id == self.buyer_id:
            return EscrowParty.BUYER
        if actor_id == self.seller_id:
            return EscrowParty.SELLER
        return None

    def release_request(self, request_id: UUID) -> ReleaseApproval | None:
        for request in self.release_approvals:
            if request.request_id == request_id:
                return request
        return None

    def condition(self, condition_id: UUID) -> EscrowCondition | None:
        for cond in self.conditions:
            if cond.id == condition_id:
                return cond
        return None
