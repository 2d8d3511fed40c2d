"""
Escrow Module Service (``payments_modules.escrow.service``).

Responsibility
--------------
Owns the escrow account lifecycle: opening an account, recording deposits,
the two-party (buyer/seller) release protocol, direct administrative
releases, cancellation, and condition bookkeeping.  It is the sole writer
of ``escrow_accounts`` rows.

Architecture position
---------------------
**Modules layer** -- ``EscrowService`` is the public entry point for escrow
operations.  It composes the frozen DTOs and the transition table in
``models.py`` with the ORM row in ``orm.py`` and the transaction boundary
from ``payments_kernel.services.base.BaseService``.

Invariants enforced
-------------------
* ``0 <= released_amount <= deposited_amount`` after every operation.
  The balance check and the write happen under one row lock
  (``SELECT ... FOR UPDATE``) and a ``version`` check.
* Every status change goes through ``ESCROW_TRANSITIONS``; COMPLETED and
  CANCELLED never change again.
* A release request executes at most once, and only when both the buyer
  and the seller have approved it.
* Each public method owns the transaction: commit on success, rollback on
  any exception.  A rejected operation persists nothing.
* All amounts are ``Decimal`` with two places -- NEVER ``float``.

Failure modes
-------------
* ``EscrowAccountNotFoundError`` / ``ReleaseRequestNotFoundError`` /
  ``EscrowConditionNotFoundError`` for unknown ids.
* ``EscrowNotFundedError``, ``EscrowClosedError``,
  ``InvalidEscrowTransitionError``, ``InsufficientEscrowBalanceError``,
  ``PaymentNotCompletedError`` when the status or balance forbids the call.
* ``InvalidAmountError``, ``InvalidFieldError``, ``UnknownEscrowPartyError``
  for malformed input.
* ``OptimisticLockError`` when a concurrent writer committed first.
* ``AccountNumberExhaustedError`` if no unused account number was found.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payments_kernel.domain.amounts import ZERO, require_positive, require_storable
from payments_kernel.domain.clock import Clock
from payments_kernel.domain.payments import PaymentRecord
from payments_kernel.exceptions import (
    AccountNumberExhaustedError,
    EscrowAccountNotFoundError,
    EscrowClosedError,
    EscrowConditionNotFoundError,
    EscrowNotFundedError,
    InsufficientEscrowBalanceError,
    InvalidEscrowTransitionError,
    InvalidFieldError,
    PaymentNotCompletedError,
    ReleaseRequestNotFoundError,
    UnknownEscrowPartyError,
)
from payments_kernel.logging_config import LogContext, get_logger
from payments_kernel.services.base import BaseService
from payments_modules.escrow.config import EscrowConfig
from payments_modules.escrow.models import (
    DEPOSITABLE_ESCROW_STATUSES,
    ESCROW_TRANSITIONS,
    EscrowAccount,
    EscrowCondition,
    EscrowStatus,
    ReleaseApproval,
)
from payments_modules.escrow.orm import EscrowAccountModel

logger = get_logger("modules.escrow.service")

_ENTITY = "EscrowAccount"
_SUFFIX_SPACE = 1_000_000


def _random_suffix() -> int:
    return secrets.randbelow(_SUFFIX_SPACE)


def _is_account_number_conflict(exc: IntegrityError) -> bool:
    # PostgreSQL names the constraint, SQLite names the column
    message = str(exc.orig)
    return "uq_escrow_account_number" in message or "escrow_accounts.account_number" in message


class EscrowService(BaseService):
    """
    Escrow account engine.

    Contract
    --------
    * Every method returns frozen ``EscrowAccount`` DTOs, never ORM rows.
    * Mutating methods load the row with a lock, validate, mutate and
      commit in one unit of work.

    Non-goals
    ---------
    * Does NOT move money.  Deposits are trusted facts from the payment
      ledger; cancellations assume reversal happens outside.
    * Does NOT gate releases on conditions; conditions are informational.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: EscrowConfig | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or EscrowConfig.with_defaults()

    @property
    def config(self) -> EscrowConfig:
        return self._config

    # =========================================================================
    # Queries
    # =========================================================================

    def get_escrow_account(self, account_id: UUID) -> EscrowAccount:
        """Fetch an account by id (no lock)."""
        model = self._session.execute(
            select(EscrowAccountModel)
            .where(EscrowAccountModel.id == account_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise EscrowAccountNotFoundError(str(account_id))
        return model.to_dto()

    def get_escrow_by_account_number(self, account_number: str) -> EscrowAccount:
        """Fetch an account by its ``ESC-<year>-<suffix>`` number (no lock)."""
        model = self._session.execute(
            select(EscrowAccountModel)
            .where(EscrowAccountModel.account_number == account_number)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise EscrowAccountNotFoundError(account_number)
        return model.to_dto()

    # =========================================================================
    # Account creation
    # =========================================================================

    def create_escrow_account(
        self,
        property_id: str,
        buyer_id: str,
        seller_id: str,
        agent_id: str | None,
        total_amount: Decimal | int | str,
        bank_name: str,
        bank_account_number: str,
        iban: str | None = None,
        actor_id: str | None = None,
    ) -> EscrowAccount:
        """
        Open a new escrow account in ACTIVE status.

        The account is seeded with the configured default conditions, all
        required and unfulfilled.  Deposited and released amounts start at
        zero.
        """
        property_id = self._require_text(property_id, "property_id")
        buyer_id = self._require_text(buyer_id, "buyer_id")
        seller_id = self._require_text(seller_id, "seller_id")
        if buyer_id == seller_id:
            raise InvalidFieldError("seller_id", seller_id, "must differ from buyer_id")
        if agent_id is not None:
            agent_id = self._require_text(agent_id, "agent_id")
        total = require_positive(total_amount, "total_amount")
        bank_name = self._require_text(bank_name, "bank_name")
        bank_account_number = self._require_text(bank_account_number, "bank_account_number")
        if iban is not None:
            iban = self._require_text(iban, "iban")

        now = self._clock.now()

        def build(account_number: str) -> EscrowAccount:
            return EscrowAccount(
                id=uuid4(),
                account_number=account_number,
                property_id=property_id,
                buyer_id=buyer_id,
                seller_id=seller_id,
                agent_id=agent_id,
                total_amount=total,
                bank_name=bank_name,
                bank_account_number=bank_account_number,
                iban=iban,
                currency=self._config.currency,
                opened_at=now,
                conditions=tuple(
                    EscrowCondition(id=uuid4(), description=description)
                    for description in self._config.default_conditions
                ),
            )

        result = self._insert_with_account_number(build, now, actor_id)

        logger.info(
            "escrow_account_created",
            extra={
                "account_id": str(result.id),
                "account_number": result.account_number,
                "property_id": property_id,
                "total_amount": str(total),
                "currency": result.currency,
            },
        )
        return result

    # =========================================================================
    # Deposits
    # =========================================================================

    def deposit_to_escrow(
        self,
        account_id: UUID,
        amount: Decimal | int | str,
        payment_id: str,
    ) -> EscrowAccount:
        """
        Add a completed payment's amount to ``deposited_amount``.

        ACTIVE becomes FUNDED once deposits reach the total.  FUNDED is never
        undone by a later release.
        """
        amount = require_positive(amount, "amount")
        payment_id = self._require_text(payment_id, "payment_id")

        with self._unit_of_work(_ENTITY, account_id):
            model = self._load_for_update(account_id)
            status = EscrowStatus(model.status)
            if status not in DEPOSITABLE_ESCROW_STATUSES:
                raise EscrowClosedError(str(model.id), status.value, "deposit")

            model.deposited_amount = require_storable(
                model.deposited_amount + amount, "deposited_amount",
            )
            if status is EscrowStatus.ACTIVE and model.deposited_amount >= model.total_amount:
                self._transition(model, EscrowStatus.FUNDED)
            self._session.flush()
            result = model.to_dto()

        logger.info(
            "escrow_deposit_recorded",
            extra={
                "account_id": str(result.id),
                "payment_id": payment_id,
                "amount": str(amount),
                "deposited_amount": str(result.deposited_amount),
                "status": result.status.value,
            },
        )
        return result

    def deposit_payment(self, account_id: UUID, payment: PaymentRecord) -> EscrowAccount:
        """Deposit a payment ledger record; only COMPLETED payments are accepted."""
        if not payment.is_completed:
            logger.warning(
                "escrow_deposit_rejected",
                extra={
                    "account_id": str(account_id),
                    "payment_id": payment.payment_id,
                    "payment_status": payment.status.value,
                },
            )
            raise PaymentNotCompletedError(payment.payment_id, payment.status.value)
        return self.deposit_to_escrow(account_id, payment.amount, payment.payment_id)

    # =========================================================================
    # Release protocol
    # =========================================================================

    def request_release(
        self,
        account_id: UUID,
        amount: Decimal | int | str,
        requested_by: str,
        reason: str,
    ) -> tuple[EscrowAccount, UUID]:
        """
        Append a new release request awaiting buyer and seller approval.

        Only a FUNDED account accepts requests.  No balance check happens
        here; it happens when the request executes.
        """
        amount = require_positive(amount, "amount")
        requested_by = self._require_text(requested_by, "requested_by")
        reason = self._require_text(reason, "reason")

        request_id = uuid4()
        with self._unit_of_work(_ENTITY, account_id):
            model = self._load_for_update(account_id)
            status = EscrowStatus(model.status)
            if status is not EscrowStatus.FUNDED:
                raise EscrowNotFundedError(str(model.id), status.value)

            account = model.to_dto()
            request = ReleaseApproval(
                request_id=request_id,
                amount=amount,
                reason=reason,
                requested_by=requested_by,
                requested_at=self._clock.now(),
            )
            model.replace_release_approvals(account.release_approvals + (request,))
            self._session.flush()
            result = model.to_dto()

        with LogContext.bind(request_id=str(request_id)):
            logger.info(
                "escrow_release_requested",
                extra={
                    "account_id": str(result.id),
                    "amount": str(amount),
                    "requested_by": requested_by,
                },
            )
        return result, request_id

    def approve_release(
        self,
        account_id: UUID,
        request_id: UUID,
        approved_by: str,
        approved: bool,
    ) -> tuple[EscrowAccount, bool]:
        """
        Record the buyer's or seller's decision on a release request.

        When both flags are true the request amount is released to the
        seller in the same transaction and the request is marked executed.
        An executed request is frozen: further calls change nothing and
        report ``all_approved=True``.

        Returns:
            ``(account, all_approved)``.
        """
        approved_by = self._require_text(approved_by, "approved_by")
        if not isinstance(approved, bool):
            raise InvalidFieldError("approved", approved, "must be a boolean")

        executed_now = False
        with self._unit_of_work(_ENTITY, account_id):
            model = self._load_for_update(account_id)
            account = model.to_dto()
            request = account.release_request(request_id)
            if request is None:
                raise ReleaseRequestNotFoundError(str(account.id), str(request_id))

            if request.executed:
                result, all_approved = account, True
            else:
                party = account.party_of(approved_by)
                if party is None:
                    raise UnknownEscrowPartyError(str(account.id), approved_by)

                now = self._clock.now()
                updated = request.with_decision(party, approved, now)
                if updated.all_approved:
                    self._apply_release(model, updated.amount)
                    updated = updated.as_executed(model.seller_id, now)
                    executed_now = True

                model.replace_release_approvals(tuple(
                    updated if r.request_id == request.request_id else r
                    for r in account.release_approvals
                ))
                self._session.flush()
                result, all_approved = model.to_dto(), updated.all_approved

        with LogContext.bind(request_id=str(request_id), actor_id=approved_by):
            logger.info(
                "escrow_release_approval_recorded",
                extra={
                    "account_id": str(result.id),
                    "approved": approved,
                    "all_approved": all_approved,
                    "executed": executed_now,
                },
            )
            if executed_now:
                logger.info(
                    "escrow_released",
                    extra={
                        "account_id": str(result.id),
                        "amount": str(request.amount),
                        "recipient": result.seller_id,
                        "released_amount": str(result.released_amount),
                        "status": result.status.value,
                    },
                )
        return result, all_approved

    def release_escrow(
        self,
        account_id: UUID,
        amount: Decimal | int | str,
        recipient: str,
    ) -> EscrowAccount:
        """
        Pay ``amount`` out of the available balance to ``recipient``.

        Used by ``approve_release`` and directly for administrative
        releases.  The account moves to PARTIAL_RELEASE, or to COMPLETED
        (with ``closed_at``) once everything deposited is released.
        """
        amount = require_positive(amount, "amount")
        recipient = self._require_text(recipient, "recipient")

        with self._unit_of_work(_ENTITY, account_id):
            model = self._load_for_update(account_id)
            self._apply_release(model, amount)
            self._session.flush()
            result = model.to_dto()

        logger.info(
            "escrow_released",
            extra={
                "account_id": str(result.id),
                "amount": str(amount),
                "recipient": recipient,
                "released_amount": str(result.released_amount),
                "status": result.status.value,
            },
        )
        return result

    # =========================================================================
    # Cancellation and conditions
    # =========================================================================

    def cancel_escrow(self, account_id: UUID, reason: str) -> EscrowAccount:
        """Move the account to CANCELLED.  No funds are moved."""
        reason = self._require_text(reason, "reason")

        with self._unit_of_work(_ENTITY, account_id):
            model = self._load_for_update(account_id)
            self._transition(model, EscrowStatus.CANCELLED)
            model.closed_at = self._clock.now()
            model.cancellation_reason = reason
            self._session.flush()
            result = model.to_dto()

        logger.info(
            "escrow_cancelled",
            extra={
                "account_id": str(result.id),
                "reason": reason,
                "deposited_amount": str(result.deposited_amount),
                "released_amount": str(result.released_amount),
            },
        )
        return result

    def fulfill_condition(
        self,
        account_id: UUID,
        condition_id: UUID,
        fulfilled_by: str,
        evidence: str | None = None,
    ) -> EscrowAccount:
        """Mark one condition fulfilled.  Release gating is unaffected."""
        fulfilled_by = self._require_text(fulfilled_by, "fulfilled_by")

        with self._unit_of_work(_ENTITY, account_id):
            model = self._load_for_update(account_id)
            account = model.to_dto()
            if account.is_terminal:
                raise EscrowClosedError(str(account.id), account.status.value, "fulfill condition")

            condition = account.condition(condition_id)
            if condition is None:
                raise EscrowConditionNotFoundError(str(account.id), str(condition_id))

            fulfilled = condition.fulfil(fulfilled_by, self._clock.now(), evidence)
            model.replace_conditions(tuple(
                fulfilled if c.id == condition.id else c for c in account.conditions
            ))
            self._session.flush()
            result = model.to_dto()

        logger.info(
            "escrow_condition_fulfilled",
            extra={
                "account_id": str(result.id),
                "condition_id": str(condition_id),
                "description": condition.description,
                "fulfilled_by": fulfilled_by,
            },
        )
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    def _load_for_update(self, account_id: UUID) -> EscrowAccountModel:
        model = self._session.execute(
            select(EscrowAccountModel)
            .where(EscrowAccountModel.id == account_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise EscrowAccountNotFoundError(str(account_id))
        return model

    def _transition(self, model: EscrowAccountModel, to_status: EscrowStatus) -> None:
        from_status = EscrowStatus(model.status)
        if to_status not in ESCROW_TRANSITIONS[from_status]:
            raise InvalidEscrowTransitionError(
                str(model.id), from_status.value, to_status.value,
            )
        model.status = to_status.value

    def _apply_release(self, model: EscrowAccountModel, amount: Decimal) -> None:
        """Status check, balance check, then the write.  Caller holds the lock."""
        available = model.deposited_amount - model.released_amount
        released = model.released_amount + amount
        target = (
            EscrowStatus.COMPLETED if released >= model.deposited_amount
            else EscrowStatus.PARTIAL_RELEASE
        )
        status = EscrowStatus(model.status)
        if status not in (EscrowStatus.FUNDED, EscrowStatus.PARTIAL_RELEASE):
            raise InvalidEscrowTransitionError(str(model.id), status.value, target.value)
        if amount > available:
            raise InsufficientEscrowBalanceError(
                str(model.id), max(available, ZERO), amount,
            )

        model.released_amount = released
        self._transition(model, target)
        if target is EscrowStatus.COMPLETED:
            model.closed_at = self._clock.now()

    def _insert_with_account_number(
        self,
        build: Callable[[str], EscrowAccount],
        now: datetime,
        created_by: str | None,
    ) -> EscrowAccount:
        """
        Insert a new account under a fresh random account number.

        A candidate is skipped when a SELECT already finds it.  A concurrent
        insert that wins the race between that SELECT and our flush trips
        ``uq_escrow_account_number``; the transaction is rolled back and the
        next candidate tried.  Both cases count against the attempt budget.
        """
        prefix = self._config.account_number_prefix
        attempts = self._config.account_number_max_attempts
        for attempt in range(1, attempts + 1):
            candidate = f"{prefix}-{now.year}-{_random_suffix():06d}"
            if self._account_number_taken(candidate):
                self._log_collision(candidate, attempt)
                continue
            try:
                with self._unit_of_work(_ENTITY):
                    model = EscrowAccountModel.from_dto(build(candidate), created_by=created_by)
                    self._session.add(model)
                    self._session.flush()
                    return model.to_dto()
            except IntegrityError as exc:
                if not _is_account_number_conflict(exc):
                    raise
                self._log_collision(candidate, attempt)
        self._session.rollback()
        raise AccountNumberExhaustedError(prefix, attempts)

    def _account_number_taken(self, account_number: str) -> bool:
        return self._session.execute(
            select(EscrowAccountModel.id)
            .where(EscrowAccountModel.account_number == account_number)
        ).first() is not None

    @staticmethod
    def _log_collision(account_number: str, attempt: int) -> None:
        logger.warning(
            "escrow_account_number_collision",
            extra={"account_number": account_number, "attempt": attempt},
        )
