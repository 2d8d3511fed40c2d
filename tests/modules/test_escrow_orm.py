"""ORM round-trip tests for the escrow account model."""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from payments_modules.escrow.models import (
    EscrowAccount,
    EscrowCondition,
    EscrowParty,
    EscrowStatus,
    ReleaseApproval,
)
from payments_modules.escrow.orm import EscrowAccountModel
from tests.conftest import BUYER_ID, FIXED_NOW, PROPERTY_ID, SELLER_ID

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_account(**overrides) -> EscrowAccount:
    fields = dict(
        id=uuid4(),
        account_number=f"ESC-TEST-{uuid4().hex[:8]}",
        property_id=PROPERTY_ID,
        buyer_id=BUYER_ID,
        seller_id=SELLER_ID,
        total_amount=Decimal("750000.00"),
        bank_name="Mashreq",
        bank_account_number="0198765432",
        opened_at=FIXED_NOW,
        conditions=(
            EscrowCondition(id=uuid4(), description="Title deed transfer completed"),
        ),
    )
    fields.update(overrides)
    return EscrowAccount(**fields)


def _persist(session, dto: EscrowAccount) -> EscrowAccountModel:
    model = EscrowAccountModel.from_dto(dto, created_by="actor-orm")
    session.add(model)
    session.flush()
    return model


# ==========================================================================
# EscrowAccountModel
# ==========================================================================


class TestEscrowAccountModelORM:
    """Round-trip persistence tests for EscrowAccountModel."""

    def test_create_and_query(self, session):
        dto = _make_account()
        _persist(session, dto)
        session.expire_all()

        queried = session.get(EscrowAccountModel, dto.id)
        assert queried is not None
        assert queried.account_number == dto.account_number
        assert queried.total_amount == Decimal("750000.00")
        assert queried.deposited_amount == Decimal("0.00")
        assert queried.status == "active"
        assert queried.currency == "AED"
        assert queried.created_by == "actor-orm"
        assert queried.opened_at == FIXED_NOW
        assert queried.opened_at.tzinfo is not None

    def test_dto_round_trip(self, session):
        at = datetime(2025, 2, 3, 10, 30, tzinfo=timezone.utc)
        condition = EscrowCondition(id=uuid4(), description="NOC obtained from developer")
        request = ReleaseApproval(
            request_id=uuid4(),
            amount=Decimal("1000.50"),
            reason="Handover",
            requested_by=BUYER_ID,
            requested_at=at,
        ).with_decision(EscrowParty.SELLER, True, at)
        dto = _make_account(
            deposited_amount=Decimal("5000.00"),
            status=EscrowStatus.FUNDED,
            conditions=(condition.fulfil("inspector-1", at, evidence="noc.pdf"),),
            release_approvals=(request,),
            iban="AE070331234567890123456",
        )
        _persist(session, dto)
        session.expire_all()

        loaded = session.get(EscrowAccountModel, dto.id).to_dto()
        assert loaded.conditions == dto.conditions
        assert loaded.release_approvals == dto.release_approvals
        assert loaded.release_approvals[0].seller_approved is True
        assert loaded.release_approvals[0].buyer_approved is False
        assert loaded.status == EscrowStatus.FUNDED
        assert loaded.available_balance == Decimal("5000.00")
        assert loaded.iban == dto.iban
        assert loaded.version == 1

    def test_version_increments_on_update(self, session):
        model = _persist(session, _make_account())
        assert model.version == 1
        model.deposited_amount = Decimal("10.00")
        session.flush()
        assert model.version == 2

    def test_sub_document_replacement_is_persisted(self, session):
        dto = _make_account()
        model = _persist(session, dto)
        fulfilled = dto.conditions[0].fulfil("agent-7", FIXED_NOW)
        model.replace_conditions((fulfilled,))
        session.flush()
        session.expire_all()

        reloaded = session.get(EscrowAccountModel, dto.id)
        assert reloaded.condition_dtos()[0].fulfilled is True
        assert reloaded.version == 2

    def test_unique_account_number(self, session):
        _persist(session, _make_account(account_number="ESC-DUP-1"))
        with pytest.raises(IntegrityError):
            _persist(session, _make_account(account_number="ESC-DUP-1"))

    def test_released_cannot_exceed_deposited(self, session):
        with pytest.raises(IntegrityError):
            _persist(session, _make_account(
                deposited_amount=Decimal("100.00"),
                released_amount=Decimal("100.01"),
            ))

    def test_total_must_be_positive(self, session):
        with pytest.raises(IntegrityError):
            _persist(session, _make_account(total_amount=Decimal("0.00")))

    def test_repr(self, session):
        model = _persist(session, _make_account(account_number="ESC-REPR-1"))
        assert repr(model) == "<EscrowAccountModel ESC-REPR-1 (active)>"
