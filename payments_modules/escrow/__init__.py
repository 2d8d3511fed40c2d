"""
Escrow Module (``payments_modules.escrow``).

Responsibility
--------------
Funds held against one property transaction: account opening, deposits of
completed payments, the buyer/seller dual-approval release protocol,
administrative releases, cancellation, and condition bookkeeping.

Architecture position
---------------------
**Modules layer** -- config schema, frozen DTOs, one ORM row per account,
and the ``EscrowService`` facade.

Invariants enforced
-------------------
* ``0 <= released_amount <= deposited_amount``.
* Status changes only along ``ESCROW_TRANSITIONS``.
* A release request executes at most once, after both parties approve.
"""

from payments_modules.escrow.config import EscrowConfig
from payments_modules.escrow.models import (
    ESCROW_TRANSITIONS,
    EscrowAccount,
    EscrowCondition,
    EscrowParty,
    EscrowStatus,
    ReleaseApproval,
)
from payments_modules.escrow.service import EscrowService

__all__ = [
    "ESCROW_TRANSITIONS",
    "EscrowAccount",
    "EscrowCondition",
    "EscrowConfig",
    "EscrowParty",
    "EscrowService",
    "EscrowStatus",
    "ReleaseApproval",
]
