"""
Tests for the Escrow Module.

Validates:
- create_escrow_account: account number, seeded conditions, validation
- deposit_to_escrow / deposit_payment: accumulation, FUNDED transition
- request_release / approve_release: dual-approval gate, single execution
- release_escrow: balance check, PARTIAL_RELEASE / COMPLETED
- cancel_escrow: terminal states
- fulfill_condition and queries
- Rejected operations leave persisted state unchanged
"""

from __future__ import annotations

import re
from decimal import Decimal
from uuid import uuid4

import pytest

from payments_kernel.domain.payments import PaymentRecord, PaymentStatus
from payments_kernel.exceptions import (
    AccountNumberExhaustedError,
    EscrowAccountNotFoundError,
    EscrowClosedError,
    EscrowConditionNotFoundError,
    EscrowNotFundedError,
    InsufficientEscrowBalanceError,
    InvalidAmountError,
    InvalidEscrowTransitionError,
    InvalidFieldError,
    InvalidStateError,
    NotFoundError,
    PaymentNotCompletedError,
    ReleaseRequestNotFoundError,
    UnknownEscrowPartyError,
)
from payments_modules.escrow import service as escrow_service_module
from payments_modules.escrow.config import EscrowConfig
from payments_modules.escrow.models import EscrowStatus
from payments_modules.escrow.service import EscrowService
from tests.conftest import AGENT_ID, BUYER_ID, PROPERTY_ID, SELLER_ID

# =============================================================================
# Helpers
# =============================================================================


def _assert_balance_invariant(account):
    assert Decimal("0") <= account.released_amount <= account.deposited_amount


def _approve_both(service, account_id, request_id):
    service.approve_release(account_id, request_id, BUYER_ID, True)
    return service.approve_release(account_id, request_id, SELLER_ID, True)


# =============================================================================
# Account creation
# =============================================================================


class TestCreateEscrowAccount:
    """Opening accounts."""

    def test_initial_state(self, open_escrow, deterministic_clock):
        account = open_escrow("1000000.00")
        assert account.status == EscrowStatus.ACTIVE
        assert account.total_amount == Decimal("1000000.00")
        assert account.deposited_amount == Decimal("0")
        assert account.released_amount == Decimal("0")
        assert account.opened_at == deterministic_clock.now()
        assert account.closed_at is None
        assert account.currency == "AED"
        assert account.property_id == PROPERTY_ID
        assert account.agent_id == AGENT_ID
        assert account.release_approvals == ()
        assert account.version == 1

    def test_account_number_format(self, open_escrow):
        account = open_escrow()
        assert re.fullmatch(r"ESC-2025-\d{6}", account.account_number)

    def test_default_conditions_seeded(self, open_escrow):
        account = open_escrow()
        assert [c.description for c in account.conditions] == [
            "Title deed transfer completed",
            "NOC (No Objection Certificate) obtained",
            "Property handover completed",
        ]
        assert all(c.required and not c.fulfilled for c in account.conditions)
        assert len({c.id for c in account.conditions}) == 3

    def test_agent_and_iban_optional(self, open_escrow):
        account = open_escrow(agent_id=None, iban=None)
        assert account.agent_id is None
        assert account.iban is None

    def test_actor_recorded_as_creator(self, open_escrow, session):
        from payments_modules.escrow.orm import EscrowAccountModel

        account = open_escrow(actor_id="agent-007")
        assert session.get(EscrowAccountModel, account.id).created_by == "agent-007"

    @pytest.mark.parametrize("total", ["0", "-1.00", "10.001"])
    def test_invalid_total_rejected(self, open_escrow, total):
        with pytest.raises(InvalidAmountError):
            open_escrow(total)

    def test_float_total_rejected(self, open_escrow):
        with pytest.raises(InvalidAmountError):
            open_escrow(1000000.0)

    def test_oversized_total_rejected(self, open_escrow, session):
        from payments_modules.escrow.orm import EscrowAccountModel

        with pytest.raises(InvalidAmountError):
            open_escrow("12345678901234567.89")
        assert session.query(EscrowAccountModel).count() == 0

    @pytest.mark.parametrize("field", ["bank_name", "bank_account_number", "buyer_id", "property_id"])
    def test_blank_fields_rejected(self, open_escrow, field):
        with pytest.raises(InvalidFieldError) as exc_info:
            open_escrow(**{field: "   "})
        assert exc_info.value.field == field

    def test_buyer_and_seller_must_differ(self, open_escrow):
        with pytest.raises(InvalidFieldError):
            open_escrow(seller_id=BUYER_ID)

    def test_account_number_collision_retried(self, open_escrow, monkeypatch):
        suffixes = iter([42, 42, 43])
        monkeypatch.setattr(escrow_service_module, "_random_suffix", lambda: next(suffixes))

        first = open_escrow()
        second = open_escrow()
        assert first.account_number == "ESC-2025-000042"
        assert second.account_number == "ESC-2025-000043"

    def test_account_number_exhausted(self, session, deterministic_clock, monkeypatch):
        monkeypatch.setattr(escrow_service_module, "_random_suffix", lambda: 7)
        service = EscrowService(
            session,
            clock=deterministic_clock,
            config=EscrowConfig(account_number_max_attempts=2),
        )
        kwargs = dict(
            property_id=PROPERTY_ID, buyer_id=BUYER_ID, seller_id=SELLER_ID,
            agent_id=None, total_amount="10.00",
            bank_name="Bank", bank_account_number="123",
        )
        service.create_escrow_account(**kwargs)
        with pytest.raises(AccountNumberExhaustedError) as exc_info:
            service.create_escrow_account(**kwargs)
        assert exc_info.value.attempts == 2

    def test_concurrent_insert_of_same_number_retried(self, open_escrow, monkeypatch, captured_logs):
        """A number inserted by another session after our lookup trips the unique constraint."""
        suffixes = iter([5, 5, 6])
        monkeypatch.setattr(escrow_service_module, "_random_suffix", lambda: next(suffixes))
        monkeypatch.setattr(EscrowService, "_account_number_taken", lambda self, number: False)

        first = open_escrow()
        second = open_escrow()
        assert first.account_number == "ESC-2025-000005"
        assert second.account_number == "ESC-2025-000006"

        collisions = [r for r in captured_logs() if r["message"] == "escrow_account_number_collision"]
        assert [(r["account_number"], r["attempt"]) for r in collisions] == [("ESC-2025-000005", 1)]

    def test_unique_violations_exhaust_attempts(self, session, deterministic_clock, monkeypatch):
        monkeypatch.setattr(escrow_service_module, "_random_suffix", lambda: 9)
        monkeypatch.setattr(EscrowService, "_account_number_taken", lambda self, number: False)
        service = EscrowService(
            session,
            clock=deterministic_clock,
            config=EscrowConfig(account_number_max_attempts=2),
        )
        first = service.create_escrow_account(
            PROPERTY_ID, BUYER_ID, SELLER_ID, None, "10.00", "Bank", "123",
        )
        with pytest.raises(AccountNumberExhaustedError):
            service.create_escrow_account(
                PROPERTY_ID, BUYER_ID, SELLER_ID, None, "20.00", "Bank", "123",
            )
        assert service.get_escrow_account(first.id) == first

    def test_custom_config(self, session, deterministic_clock):
        service = EscrowService(
            session,
            clock=deterministic_clock,
            config=EscrowConfig(
                currency="USD",
                account_number_prefix="ESX",
                default_conditions=("Inspection passed",),
            ),
        )
        account = service.create_escrow_account(
            PROPERTY_ID, BUYER_ID, SELLER_ID, None, "500.00", "Bank", "123",
        )
        assert account.currency == "USD"
        assert account.account_number.startswith("ESX-2025-")
        assert [c.description for c in account.conditions] == ["Inspection passed"]


# =============================================================================
# Deposits
# =============================================================================


class TestDeposits:

    def test_partial_then_full_funding(self, open_escrow, escrow_service):
        """Deposits of 600k then 400k against 1M fund the account."""
        account = open_escrow("1000000.00")

        account = escrow_service.deposit_to_escrow(account.id, "600000.00", "pay-1")
        assert account.status == EscrowStatus.ACTIVE
        assert account.deposited_amount == Decimal("600000.00")

        account = escrow_service.deposit_to_escrow(account.id, "400000.00", "pay-2")
        assert account.status == EscrowStatus.FUNDED
        assert account.deposited_amount == Decimal("1000000.00")

    def test_overage_accumulates(self, open_escrow, escrow_service):
        account = open_escrow("100.00")
        account = escrow_service.deposit_to_escrow(account.id, "150.00", "pay-1")
        assert account.status == EscrowStatus.FUNDED
        assert account.deposited_amount == Decimal("150.00")

    def test_deposit_after_partial_release_keeps_status(self, funded_escrow, escrow_service):
        escrow_service.release_escrow(funded_escrow.id, "100000.00", SELLER_ID)
        account = escrow_service.deposit_to_escrow(funded_escrow.id, "50.00", "pay-extra")
        assert account.status == EscrowStatus.PARTIAL_RELEASE
        assert account.deposited_amount == Decimal("1000050.00")

    def test_running_total_beyond_column_range_rejected(self, open_escrow, escrow_service):
        """Each deposit fits the column but their sum would not."""
        account = open_escrow("100.00")
        account = escrow_service.deposit_to_escrow(account.id, "9999999999999.99", "pay-1")

        with pytest.raises(InvalidAmountError) as exc_info:
            escrow_service.deposit_to_escrow(account.id, "1.00", "pay-2")
        assert exc_info.value.field == "deposited_amount"

        after = escrow_service.get_escrow_account(account.id)
        assert after.deposited_amount == Decimal("9999999999999.99")
        assert after.version == account.version

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_non_positive_rejected(self, open_escrow, escrow_service, amount):
        account = open_escrow()
        with pytest.raises(InvalidAmountError):
            escrow_service.deposit_to_escrow(account.id, amount, "pay-1")
        assert escrow_service.get_escrow_account(account.id).deposited_amount == Decimal("0")

    def test_unknown_account(self, escrow_service):
        with pytest.raises(EscrowAccountNotFoundError) as exc_info:
            escrow_service.deposit_to_escrow(uuid4(), "10.00", "pay-1")
        assert isinstance(exc_info.value, NotFoundError)

    def test_deposit_on_cancelled_rejected(self, open_escrow, escrow_service):
        account = open_escrow()
        escrow_service.cancel_escrow(account.id, "buyer withdrew")
        with pytest.raises(EscrowClosedError):
            escrow_service.deposit_to_escrow(account.id, "10.00", "pay-1")

    def test_deposit_completed_payment(self, open_escrow, escrow_service):
        account = open_escrow("200.00")
        payment = PaymentRecord("pay-9", Decimal("200.00"), PaymentStatus.COMPLETED)
        account = escrow_service.deposit_payment(account.id, payment)
        assert account.status == EscrowStatus.FUNDED

    @pytest.mark.parametrize(
        "status",
        [s for s in PaymentStatus if s is not PaymentStatus.COMPLETED],
    )
    def test_deposit_non_completed_payment_rejected(self, open_escrow, escrow_service, status):
        account = open_escrow("200.00")
        payment = PaymentRecord("pay-9", Decimal("200.00"), status)
        with pytest.raises(PaymentNotCompletedError) as exc_info:
            escrow_service.deposit_payment(account.id, payment)
        assert exc_info.value.status == status.value
        assert escrow_service.get_escrow_account(account.id).deposited_amount == Decimal("0")


# =============================================================================
# Release protocol
# =============================================================================


class TestReleaseProtocol:
    """request_release + approve_release."""

    def test_full_settlement(self, funded_escrow, escrow_service):
        """Both approvals on a 1M request complete the account."""
        account, request_id = escrow_service.request_release(
            funded_escrow.id, "1000000.00", BUYER_ID, "final settlement",
        )
        request = account.release_request(request_id)
        assert not request.buyer_approved and not request.seller_approved
        assert not request.executed

        account, all_approved = escrow_service.approve_release(
            account.id, request_id, BUYER_ID, True,
        )
        assert all_approved is False
        assert account.released_amount == Decimal("0")

        account, all_approved = escrow_service.approve_release(
            account.id, request_id, SELLER_ID, True,
        )
        assert all_approved is True
        assert account.status == EscrowStatus.COMPLETED
        assert account.released_amount == Decimal("1000000.00")
        assert account.closed_at is not None

        executed = account.release_request(request_id)
        assert executed.executed
        assert executed.recipient == SELLER_ID
        assert executed.executed_at is not None

    def test_partial_release_via_approval(self, funded_escrow, escrow_service):
        account, request_id = escrow_service.request_release(
            funded_escrow.id, "250000.00", SELLER_ID, "first tranche",
        )
        account, all_approved = _approve_both(escrow_service, account.id, request_id)
        assert all_approved
        assert account.status == EscrowStatus.PARTIAL_RELEASE
        assert account.released_amount == Decimal("250000.00")
        assert account.available_balance == Decimal("750000.00")

    def test_seller_first_order_irrelevant(self, funded_escrow, escrow_service):
        account, request_id = escrow_service.request_release(
            funded_escrow.id, "10.00", BUYER_ID, "fees",
        )
        escrow_service.approve_release(account.id, request_id, SELLER_ID, True)
        account, all_approved = escrow_service.approve_release(account.id, request_id, BUYER_ID, True)
        assert all_approved
        assert account.released_amount == Decimal("10.00")

    def test_repeat_approval_does_not_release_twice(self, funded_escrow, escrow_service):
        account, request_id = escrow_service.request_release(
            funded_escrow.id, "100000.00", BUYER_ID, "tranche",
        )
        _approve_both(escrow_service, account.id, request_id)

        for approver in (SELLER_ID, BUYER_ID, SELLER_ID):
            account, all_approved = escrow_service.approve_release(
                account.id, request_id, approver, True,
            )
            assert all_approved is True
        assert account.released_amount == Decimal("100000.00")

    def test_executed_request_flags_frozen(self, funded_escrow, escrow_service):
        account, request_id = escrow_service.request_release(
            funded_escrow.id, "100000.00", BUYER_ID, "tranche",
        )
        _approve_both(escrow_service, account.id, request_id)
        before = escrow_service.get_escrow_account(account.id)

        account, all_approved = escrow_service.approve_release(
            account.id, request_id, BUYER_ID, False,
        )
        assert all_approved is True
        assert account.release_request(request_id).buyer_approved is True
        assert account.version == before.version

    def test_rejection_overwrites_and_blocks(self, funded_escrow, escrow_service):
        account, request_id = escrow_service.request_release(
            funded_escrow.id, "100.00", BUYER_ID, "tranche",
        )
        escrow_service.approve_release(account.id, request_id, BUYER_ID, True)
        escrow_service.approve_release(account.id, request_id, BUYER_ID, False)
        account, all_approved = escrow_service.approve_release(
            account.id, request_id, SELLER_ID, True,
        )
        assert all_approved is False
        assert account.released_amount == Decimal("0")
        assert account.release_request(request_id).buyer_approved is False

    def test_unknown_approver_rejected(self, funded_escrow, escrow_service):
        account, request_id = escrow_service.request_release(
            funded_escrow.id, "100.00", BUYER_ID, "tranche",
        )
        with pytest.raises(UnknownEscrowPartyError) as exc_info:
            escrow_service.approve_release(account.id, request_id, AGENT_ID, True)
        assert exc_info.value.actor_id == AGENT_ID
        request = escrow_service.get_escrow_account(account.id).release_request(request_id)
        assert not request.buyer_approved and not request.seller_approved

    def test_unknown_request(self, funded_escrow, escrow_service):
        with pytest.raises(ReleaseRequestNotFoundError):
            escrow_service.approve_release(funded_escrow.id, uuid4(), BUYER_ID, True)

    def test_unknown_account(self, escrow_service):
        with pytest.raises(EscrowAccountNotFoundError):
            escrow_service.approve_release(uuid4(), uuid4(), BUYER_ID, True)

    def test_request_requires_funded(self, open_escrow, escrow_service):
        account = open_escrow()
        with pytest.raises(EscrowNotFundedError) as exc_info:
            escrow_service.request_release(account.id, "10.00", BUYER_ID, "early")
        assert exc_info.value.status == "active"

    def test_request_refused_after_partial_release(self, funded_escrow, escrow_service):
        escrow_service.release_escrow(funded_escrow.id, "10.00", SELLER_ID)
        with pytest.raises(EscrowNotFundedError):
            escrow_service.request_release(funded_escrow.id, "10.00", BUYER_ID, "second")

    def test_requests_append(self, funded_escrow, escrow_service):
        account, first = escrow_service.request_release(funded_escrow.id, "10.00", BUYER_ID, "a")
        account, second = escrow_service.request_release(funded_escrow.id, "20.00", SELLER_ID, "b")
        assert first != second
        assert [r.request_id for r in account.release_approvals] == [first, second]

    def test_over_balance_execution_rolls_back(self, funded_escrow, escrow_service):
        """Second approval fails on balance; the approval flag is not kept."""
        account, big = escrow_service.request_release(funded_escrow.id, "900000.00", BUYER_ID, "a")
        account, small = escrow_service.request_release(funded_escrow.id, "200000.00", BUYER_ID, "b")
        _approve_both(escrow_service, account.id, big)

        escrow_service.approve_release(account.id, small, BUYER_ID, True)
        with pytest.raises(InsufficientEscrowBalanceError):
            escrow_service.approve_release(account.id, small, SELLER_ID, True)

        account = escrow_service.get_escrow_account(account.id)
        request = account.release_request(small)
        assert request.seller_approved is False
        assert request.executed is False
        assert account.released_amount == Decimal("900000.00")

    def test_blank_reason_rejected(self, funded_escrow, escrow_service):
        with pytest.raises(InvalidFieldError):
            escrow_service.request_release(funded_escrow.id, "10.00", BUYER_ID, "")

    def test_non_bool_approval_rejected(self, funded_escrow, escrow_service):
        account, request_id = escrow_service.request_release(funded_escrow.id, "10.00", BUYER_ID, "a")
        with pytest.raises(InvalidFieldError):
            escrow_service.approve_release(account.id, request_id, BUYER_ID, "yes")


# =============================================================================
# Direct release
# =============================================================================


class TestReleaseEscrow:

    def test_partial_then_complete(self, funded_escrow, escrow_service, deterministic_clock):
        account = escrow_service.release_escrow(funded_escrow.id, "400000.00", SELLER_ID)
        assert account.status == EscrowStatus.PARTIAL_RELEASE
        assert account.closed_at is None

        deterministic_clock.advance_days(10)
        account = escrow_service.release_escrow(funded_escrow.id, "600000.00", SELLER_ID)
        assert account.status == EscrowStatus.COMPLETED
        assert account.closed_at == deterministic_clock.now()
        _assert_balance_invariant(account)

    def test_over_release_rejected(self, funded_escrow, escrow_service):
        """Releasing more than deposited - released fails and changes nothing."""
        escrow_service.release_escrow(funded_escrow.id, "300000.00", SELLER_ID)
        with pytest.raises(InsufficientEscrowBalanceError) as exc_info:
            escrow_service.release_escrow(funded_escrow.id, "700000.01", SELLER_ID)
        assert isinstance(exc_info.value, InvalidStateError)
        assert exc_info.value.available == Decimal("700000.00")
        assert exc_info.value.requested == Decimal("700000.01")

        account = escrow_service.get_escrow_account(funded_escrow.id)
        assert account.released_amount == Decimal("300000.00")
        assert account.status == EscrowStatus.PARTIAL_RELEASE

    def test_release_on_active_rejected(self, open_escrow, escrow_service):
        account = open_escrow()
        escrow_service.deposit_to_escrow(account.id, "100.00", "pay-1")
        with pytest.raises(InvalidEscrowTransitionError):
            escrow_service.release_escrow(account.id, "50.00", SELLER_ID)

    def test_release_on_completed_rejected(self, funded_escrow, escrow_service):
        escrow_service.release_escrow(funded_escrow.id, "1000000.00", SELLER_ID)
        with pytest.raises(InvalidStateError):
            escrow_service.release_escrow(funded_escrow.id, "1.00", SELLER_ID)
        assert escrow_service.get_escrow_account(funded_escrow.id).status == EscrowStatus.COMPLETED

    def test_release_on_cancelled_rejected(self, funded_escrow, escrow_service):
        escrow_service.cancel_escrow(funded_escrow.id, "deal collapsed")
        with pytest.raises(InvalidEscrowTransitionError):
            escrow_service.release_escrow(funded_escrow.id, "1.00", SELLER_ID)

    def test_balance_invariant_over_sequence(self, open_escrow, escrow_service):
        account = open_escrow("1000.00")
        steps = [
            ("deposit", "400.00"),
            ("deposit", "600.00"),
            ("release", "100.00"),
            ("release", "950.00"),
            ("deposit", "200.00"),
            ("release", "250.00"),
            ("release", "850.00"),
        ]
        for kind, amount in steps:
            try:
                if kind == "deposit":
                    account = escrow_service.deposit_to_escrow(account.id, amount, f"pay-{amount}")
                else:
                    account = escrow_service.release_escrow(account.id, amount, SELLER_ID)
            except InvalidStateError:
                account = escrow_service.get_escrow_account(account.id)
            _assert_balance_invariant(account)
        assert account.status == EscrowStatus.COMPLETED
        assert account.released_amount == account.deposited_amount == Decimal("1200.00")


# =============================================================================
# Cancellation
# =============================================================================


class TestCancelEscrow:

    @pytest.mark.parametrize("release", [None, "10.00"])
    def test_cancel_open_account(self, funded_escrow, escrow_service, deterministic_clock, release):
        if release:
            escrow_service.release_escrow(funded_escrow.id, release, SELLER_ID)
        account = escrow_service.cancel_escrow(funded_escrow.id, "buyer withdrew")
        assert account.status == EscrowStatus.CANCELLED
        assert account.cancellation_reason == "buyer withdrew"
        assert account.closed_at == deterministic_clock.now()

    def test_cancel_active(self, open_escrow, escrow_service):
        account = escrow_service.cancel_escrow(open_escrow().id, "never funded")
        assert account.status == EscrowStatus.CANCELLED

    def test_cancel_completed_rejected(self, funded_escrow, escrow_service):
        escrow_service.release_escrow(funded_escrow.id, "1000000.00", SELLER_ID)
        with pytest.raises(InvalidEscrowTransitionError) as exc_info:
            escrow_service.cancel_escrow(funded_escrow.id, "too late")
        assert exc_info.value.from_status == "completed"
        assert escrow_service.get_escrow_account(funded_escrow.id).status == EscrowStatus.COMPLETED

    def test_cancel_twice_rejected(self, open_escrow, escrow_service):
        account = open_escrow()
        escrow_service.cancel_escrow(account.id, "first")
        with pytest.raises(InvalidEscrowTransitionError):
            escrow_service.cancel_escrow(account.id, "second")
        assert escrow_service.get_escrow_account(account.id).cancellation_reason == "first"

    def test_cancelled_never_regresses(self, open_escrow, escrow_service):
        account = open_escrow("100.00")
        escrow_service.cancel_escrow(account.id, "withdrawn")
        for attempt in (
            lambda: escrow_service.deposit_to_escrow(account.id, "100.00", "pay-1"),
            lambda: escrow_service.request_release(account.id, "1.00", BUYER_ID, "x"),
            lambda: escrow_service.release_escrow(account.id, "1.00", SELLER_ID),
        ):
            with pytest.raises(InvalidStateError):
                attempt()
        assert escrow_service.get_escrow_account(account.id).status == EscrowStatus.CANCELLED


# =============================================================================
# Conditions and queries
# =============================================================================


class TestConditions:

    def test_fulfill_condition(self, open_escrow, escrow_service, deterministic_clock):
        account = open_escrow()
        condition = account.conditions[1]
        account = escrow_service.fulfill_condition(
            account.id, condition.id, AGENT_ID, evidence="noc-scan.pdf",
        )
        fulfilled = account.condition(condition.id)
        assert fulfilled.fulfilled
        assert fulfilled.fulfilled_by == AGENT_ID
        assert fulfilled.fulfilled_at == deterministic_clock.now()
        assert fulfilled.evidence == "noc-scan.pdf"
        assert not account.conditions[0].fulfilled
        assert not account.conditions[2].fulfilled

    def test_release_not_gated_on_conditions(self, funded_escrow, escrow_service):
        assert not any(c.fulfilled for c in funded_escrow.conditions)
        account = escrow_service.release_escrow(funded_escrow.id, "1.00", SELLER_ID)
        assert account.released_amount == Decimal("1.00")

    def test_unknown_condition(self, open_escrow, escrow_service):
        with pytest.raises(EscrowConditionNotFoundError):
            escrow_service.fulfill_condition(open_escrow().id, uuid4(), AGENT_ID)

    def test_closed_account_rejected(self, open_escrow, escrow_service):
        account = open_escrow()
        account = escrow_service.cancel_escrow(account.id, "withdrawn")
        assert account.is_terminal
        with pytest.raises(EscrowClosedError) as exc_info:
            escrow_service.fulfill_condition(account.id, account.conditions[0].id, AGENT_ID)
        assert exc_info.value.status == "cancelled"


class TestQueries:

    def test_get_by_id(self, open_escrow, escrow_service):
        account = open_escrow()
        assert escrow_service.get_escrow_account(account.id) == account

    def test_get_by_account_number(self, open_escrow, escrow_service):
        account = open_escrow()
        assert escrow_service.get_escrow_by_account_number(account.account_number).id == account.id

    def test_missing(self, escrow_service):
        with pytest.raises(EscrowAccountNotFoundError):
            escrow_service.get_escrow_account(uuid4())
        with pytest.raises(EscrowAccountNotFoundError):
            escrow_service.get_escrow_by_account_number("ESC-2025-999999")


# =============================================================================
# Logging
# =============================================================================


class TestEscrowLogging:

    def test_release_logged(self, funded_escrow, escrow_service, captured_logs):
        escrow_service.release_escrow(funded_escrow.id, "500.00", SELLER_ID)
        records = [r for r in captured_logs() if r["message"] == "escrow_released"]
        assert len(records) == 1
        assert records[0]["amount"] == "500.00"
        assert records[0]["recipient"] == SELLER_ID

    def test_approval_execution_logged_with_request_context(
        self, funded_escrow, escrow_service, captured_logs,
    ):
        account, request_id = escrow_service.request_release(
            funded_escrow.id, "100.00", BUYER_ID, "tranche",
        )
        _approve_both(escrow_service, account.id, request_id)
        released = [r for r in captured_logs() if r["message"] == "escrow_released"]
        assert len(released) == 1
        assert released[0]["request_id"] == str(request_id)
        assert released[0]["actor_id"] == SELLER_ID

    def test_rejected_payment_warns(self, open_escrow, escrow_service, captured_logs):
        account = open_escrow()
        with pytest.raises(PaymentNotCompletedError):
            escrow_service.deposit_payment(
                account.id, PaymentRecord("pay-1", Decimal("1.00"), PaymentStatus.PENDING),
            )
        warnings = [r for r in captured_logs() if r["message"] == "escrow_deposit_rejected"]
        assert warnings and warnings[0]["level"] == "WARNING"
