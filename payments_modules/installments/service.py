"""
Installment Plan Module Service (``payments_modules.installments.service``).

Responsibility
--------------
Creates installment plans, records installment payments, marks missed
installments overdue with a late fee, and lists installments falling due
soon for a lead.  Pure schedule arithmetic lives in ``calculations.py``.

Architecture position
---------------------
**Modules layer** -- ``InstallmentService`` is the sole public entry point
and the sole writer of ``installment_plans`` rows.

Invariants enforced
-------------------
* A plan becomes COMPLETED exactly when its last unpaid installment is
  recorded as paid.
* A late fee is computed once, from the installment amount; repeated
  overdue handling never compounds it.
* Each public method owns the transaction boundary (commit on success,
  rollback on failure).  Rows are loaded with ``SELECT ... FOR UPDATE``
  and guarded by a ``version`` column.
* All monetary calculations use ``Decimal`` -- NEVER ``float``.

Failure modes
-------------
* ``InstallmentPlanNotFoundError`` / ``InstallmentNotFoundError``.
* ``PaymentNotCompletedError`` when a ledger payment is not COMPLETED.
* ``InvalidAmountError``, ``InvalidScheduleError``, ``InvalidFieldError``
  on malformed input.
* ``OptimisticLockError`` on a lost race.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from payments_kernel.domain.amounts import percent_of, require_non_negative, require_positive
from payments_kernel.domain.clock import Clock
from payments_kernel.domain.payments import PaymentRecord
from payments_kernel.exceptions import (
    InstallmentNotFoundError,
    InstallmentPlanNotFoundError,
    InvalidAmountError,
    InvalidScheduleError,
    PaymentNotCompletedError,
)
from payments_kernel.logging_config import LogContext, get_logger
from payments_kernel.services.base import BaseService
from payments_modules.installments.calculations import (
    calculate_installments,
    installment_amount,
)
from payments_modules.installments.config import InstallmentConfig
from payments_modules.installments.models import (
    Installment,
    InstallmentFrequency,
    InstallmentPlan,
    InstallmentPlanStatus,
    InstallmentStatus,
    UpcomingInstallment,
)
from payments_modules.installments.orm import InstallmentPlanModel

logger = get_logger("modules.installments.service")

_ENTITY = "InstallmentPlan"


class InstallmentService(BaseService):
    """
    Installment plan engine.

    Contract
    --------
    * Returns frozen ``InstallmentPlan`` / ``UpcomingInstallment`` DTOs.
    * "Today" is ``clock.today()`` (UTC date of the injected clock).

    Non-goals
    ---------
    * Does NOT collect money or talk to a gateway; payment ids are trusted.
    * Does NOT move plans to DEFAULTED or CANCELLED; those states are set
      by processes outside this engine.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: InstallmentConfig | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or InstallmentConfig.with_defaults()

    @property
    def config(self) -> InstallmentConfig:
        return self._config

    # =========================================================================
    # Queries
    # =========================================================================

    def get_installment_plan(self, plan_id: UUID) -> InstallmentPlan:
        model = self._session.execute(
            select(InstallmentPlanModel)
            .where(InstallmentPlanModel.id == plan_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise InstallmentPlanNotFoundError(str(plan_id))
        return model.to_dto()

    def get_upcoming_installments(
        self,
        lead_id: str,
        days_ahead: int | None = None,
    ) -> tuple[UpcomingInstallment, ...]:
        """
        Pending installments of the lead's ACTIVE plans due within
        ``[today, today + days_ahead]``, soonest first.

        Recomputed from the rows on every call.
        """
        lead_id = self._require_text(lead_id, "lead_id")
        if days_ahead is None:
            days_ahead = self._config.default_days_ahead
        if isinstance(days_ahead, bool) or not isinstance(days_ahead, int) or days_ahead < 0:
            raise InvalidScheduleError(f"days_ahead must be a non-negative integer, got {days_ahead!r}")

        today = self._clock.today()
        horizon = today + timedelta(days=days_ahead)
        models = self._session.execute(
            select(InstallmentPlanModel)
            .where(
                InstallmentPlanModel.lead_id == lead_id,
                InstallmentPlanModel.status == InstallmentPlanStatus.ACTIVE.value,
            )
            .execution_options(populate_existing=True)
        ).scalars().all()

        upcoming = [
            UpcomingInstallment(
                plan_id=model.id,
                property_id=model.property_id,
                installment_number=inst.number,
                amount=inst.amount,
                due_date=inst.due_date,
                days_until_due=(inst.due_date - today).days,
                currency=model.currency,
            )
            for model in models
            for inst in model.installment_dtos()
            if inst.status == InstallmentStatus.PENDING and today <= inst.due_date <= horizon
        ]
        upcoming.sort(key=lambda u: (u.due_date, str(u.plan_id), u.installment_number))

        logger.debug(
            "installments_upcoming_listed",
            extra={"lead_id": lead_id, "days_ahead": days_ahead, "count": len(upcoming)},
        )
        return tuple(upcoming)

    # =========================================================================
    # Plan creation
    # =========================================================================

    def create_installment_plan(
        self,
        property_id: str,
        lead_id: str,
        total_amount: Decimal | int | str,
        down_payment_amount: Decimal | int | str,
        installment_count: int,
        frequency: InstallmentFrequency | str,
        start_date: date,
    ) -> InstallmentPlan:
        """
        Create an ACTIVE plan with ``installment_count`` pending installments.

        Each installment is ``round2((total - down) / count)``; the rounding
        remainder is not redistributed.  ``end_date`` is the last due date.
        """
        property_id = self._require_text(property_id, "property_id")
        lead_id = self._require_text(lead_id, "lead_id")
        total = require_positive(total_amount, "total_amount")
        down = require_non_negative(down_payment_amount, "down_payment_amount")
        if down > total:
            raise InvalidAmountError(
                "down_payment_amount", down_payment_amount, "cannot exceed total_amount",
            )
        count = self._validate_count(installment_count)
        freq = self._validate_frequency(frequency)
        if isinstance(start_date, datetime) or not isinstance(start_date, date):
            raise InvalidScheduleError(f"start_date must be a date, got {start_date!r}")

        amount = installment_amount(total, down, count)
        installments = calculate_installments(amount, count, freq, start_date)
        plan = InstallmentPlan(
            id=uuid4(),
            property_id=property_id,
            lead_id=lead_id,
            total_amount=total,
            down_payment_amount=down,
            installment_amount=amount,
            installment_count=count,
            frequency=freq,
            start_date=start_date,
            end_date=installments[-1].due_date,
            installments=installments,
            currency=self._config.currency,
        )

        with self._unit_of_work(_ENTITY, plan.id):
            model = InstallmentPlanModel.from_dto(plan)
            self._session.add(model)
            self._session.flush()
            result = model.to_dto()

        logger.info(
            "installment_plan_created",
            extra={
                "plan_id": str(result.id),
                "lead_id": lead_id,
                "total_amount": str(total),
                "down_payment_amount": str(down),
                "installment_amount": str(amount),
                "installment_count": count,
                "frequency": freq.value,
                "end_date": result.end_date,
            },
        )
        return result

    # =========================================================================
    # Payments and overdue handling
    # =========================================================================

    def record_installment_payment(
        self,
        plan_id: UUID,
        installment_number: int,
        payment_id: str,
    ) -> InstallmentPlan:
        """
        Mark one installment paid today.

        Re-recording an already paid installment re-stamps ``paid_date`` and
        ``payment_id``.  The plan completes when every installment is paid.
        """
        payment_id = self._require_text(payment_id, "payment_id")

        with self._unit_of_work(_ENTITY, plan_id):
            model = self._load_for_update(plan_id)
            plan = model.to_dto()
            target = self._find_installment(plan, installment_number)

            updated = plan.with_installment(target.mark_paid(payment_id, self._clock.today()))
            model.replace_installments(updated.installments)
            completed = plan.status is InstallmentPlanStatus.ACTIVE and updated.all_paid
            if completed:
                model.status = InstallmentPlanStatus.COMPLETED.value
            self._session.flush()
            result = model.to_dto()

        with LogContext.bind(plan_id=str(plan_id)):
            logger.info(
                "installment_payment_recorded",
                extra={
                    "installment_number": installment_number,
                    "payment_id": payment_id,
                    "amount": str(target.amount),
                },
            )
            if completed:
                logger.info("installment_plan_completed", extra={"plan_id": str(plan_id)})
        return result

    def record_payment(
        self,
        plan_id: UUID,
        installment_number: int,
        payment: PaymentRecord,
    ) -> InstallmentPlan:
        """
        Record a payment ledger entry against one installment.

        Only COMPLETED payments are accepted.  The payment amount is not
        compared with the installment amount.
        """
        if not payment.is_completed:
            with LogContext.bind(plan_id=str(plan_id)):
                logger.warning(
                    "installment_payment_rejected",
                    extra={
                        "installment_number": installment_number,
                        "payment_id": payment.payment_id,
                        "payment_status": payment.status.value,
                    },
                )
            raise PaymentNotCompletedError(payment.payment_id, payment.status.value)
        return self.record_installment_payment(plan_id, installment_number, payment.payment_id)

    def handle_missed_installment(
        self,
        plan_id: UUID,
        installment_number: int,
    ) -> InstallmentPlan:
        """
        Mark a pending, past-due installment overdue and charge the late fee.

        A no-op (nothing written) when the installment is not pending or not
        yet due.
        """
        with self._unit_of_work(_ENTITY, plan_id):
            model = self._load_for_update(plan_id)
            plan = model.to_dto()
            target = self._find_installment(plan, installment_number)

            today = self._clock.today()
            if target.status != InstallmentStatus.PENDING or target.due_date >= today:
                return plan

            late_fee = percent_of(target.amount, self._config.late_fee_rate)
            model.replace_installments(
                plan.with_installment(target.mark_overdue(late_fee)).installments
            )
            self._session.flush()
            result = model.to_dto()

        with LogContext.bind(plan_id=str(plan_id)):
            logger.warning(
                "installment_overdue",
                extra={
                    "installment_number": installment_number,
                    "due_date": target.due_date,
                    "amount": str(target.amount),
                    "late_fee": str(late_fee),
                },
            )
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    def _load_for_update(self, plan_id: UUID) -> InstallmentPlanModel:
        model = self._session.execute(
            select(InstallmentPlanModel)
            .where(InstallmentPlanModel.id == plan_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise InstallmentPlanNotFoundError(str(plan_id))
        return model

    @staticmethod
    def _find_installment(plan: InstallmentPlan, number: int) -> Installment:
        installment = plan.installment(number)
        if installment is None:
            raise InstallmentNotFoundError(str(plan.id), number)
        return installment

    def _validate_count(self, installment_count: int) -> int:
        if isinstance(installment_count, bool) or not isinstance(installment_count, int):
            raise InvalidScheduleError(
                f"installment_count must be an integer, got {installment_count!r}"
            )
        if not 1 <= installment_count <= self._config.max_installment_count:
            raise InvalidScheduleError(
                f"installment_count must be between 1 and "
                f"{self._config.max_installment_count}, got {installment_count}"
            )
        return installment_count

    @staticmethod
    def _validate_frequency(frequency: InstallmentFrequency | str) -> InstallmentFrequency:
        if isinstance(frequency, str):
            frequency = frequency.strip().lower()
        try:
            return InstallmentFrequency(frequency)
        except ValueError as exc:
            raise InvalidScheduleError(f"unknown frequency {frequency!r}") from exc
