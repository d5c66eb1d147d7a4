import os
from decimal import Decimal
from uuid import uuid4

os.environ["DATABASE_URL"] = f"sqlite:///./ledger_{uuid4().hex}.db"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"
os.environ["SKIP_MIGRATIONS"] = "1"

import pytest  # noqa: E402
from sqlalchemy.orm.exc import StaleDataError  # noqa: E402

import affiliate_ledger.core.ledger as ledger_module  # noqa: E402
from affiliate_ledger.core.affiliates import set_affiliate_status  # noqa: E402
from affiliate_ledger.core.commission import compute_commission  # noqa: E402
from affiliate_ledger.core.db import Base, SessionLocal, engine  # noqa: E402
from affiliate_ledger.core.errors import (  # noqa: E402
    ConcurrencyConflict,
    InactiveError,
    InsufficientReversalError,
    NotFoundError,
    ValidationError,
)
from affiliate_ledger.core.ledger import (  # noqa: E402
    approve_commission,
    build_ledger_summary,
    cancel_commission,
    list_affiliate_commissions,
    reconcile_affiliate,
    record_commission,
    run_ledger_transaction,
)
from affiliate_ledger.core.withdrawals import approve_withdrawal, complete_withdrawal, create_withdrawal  # noqa: E402
from affiliate_ledger.crud.affiliates import get_affiliate  # noqa: E402
from affiliate_ledger.models.affiliates import AffiliateCommission  # noqa: E402
from tests.factories import (  # noqa: E402
    TEST_LEVELS,
    configure_program,
    make_affiliate,
    make_approved_commission,
    make_order_id,
)


Base.metadata.create_all(bind=engine)

BANK_DETAILS = {"account_name": "Jane Doe", "account_number": "0123456789", "bank_name": "City Bank"}


def test_record_commission_creates_pending_entry_without_touching_balance():
    with SessionLocal() as db:
        configure_program(db)
        affiliate = make_affiliate(db)
        commission = record_commission(
            db,
            affiliate_id=affiliate.id,
            order_id=make_order_id(),
            commissionable_subtotal=1000,
        )
        assert commission.status == "pending"
        assert commission.level == 1
        assert commission.commission_percentage == Decimal("5.00")
        assert commission.commission_amount == Decimal("50.00")

        db.refresh(affiliate)
        assert affiliate.total_orders == 1
        assert affiliate.total_earnings == Decimal("0.00")
        assert affiliate.available_balance == Decimal("0.00")


def test_record_commission_is_idempotent():
    with SessionLocal() as db:
        configure_program(db)
        affiliate = make_affiliate(db)
        order_id = make_order_id()
        first = record_commission(db, affiliate_id=affiliate.id, order_id=order_id, commissionable_subtotal=1000)
        second = record_commission(db, affiliate_id=affiliate.id, order_id=order_id, commissionable_subtotal=9999)
        assert second.id == first.id
        assert second.commission_amount == Decimal("50.00")

        rows = (
            db.query(AffiliateCommission)
            .filter(AffiliateCommission.affiliate_id == affiliate.id, AffiliateCommission.order_id == order_id)
            .count()
        )
        assert rows == 1
        db.refresh(affiliate)
        assert affiliate.total_orders == 1


def test_record_commission_survives_lost_insert_race(monkeypatch):
    with SessionLocal() as db:
        configure_program(db)
        affiliate = make_affiliate(db)
        order_id = make_order_id()
        winner = record_commission(db, affiliate_id=affiliate.id, order_id=order_id, commissionable_subtotal=400)

        real_lookup = ledger_module.get_commission_for_order
        calls = {"count": 0}

        def _racing_lookup(db, *, affiliate_id, order_id):
            # First lookup misses, as if the other writer had not committed yet.
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return real_lookup(db, affiliate_id=affiliate_id, order_id=order_id)

        monkeypatch.setattr(ledger_module, "get_commission_for_order", _racing_lookup)
        loser = record_commission(db, affiliate_id=affiliate.id, order_id=order_id, commissionable_subtotal=400)

        assert loser.id == winner.id
        db.refresh(affiliate)
        assert affiliate.total_orders == 1


def test_record_commission_validation_and_gates():
    with SessionLocal() as db:
        configure_program(db)
        affiliate = make_affiliate(db)
        with pytest.raises(ValidationError):
            record_commission(db, affiliate_id=affiliate.id, order_id="", commissionable_subtotal=10)
        with pytest.raises(ValidationError):
            record_commission(db, affiliate_id=affiliate.id, order_id=make_order_id(), commissionable_subtotal=-1)
        with pytest.raises(ValidationError):
            record_commission(db, affiliate_id=affiliate.id, order_id=make_order_id(), commissionable_subtotal="x")
        with pytest.raises(NotFoundError):
            record_commission(db, affiliate_id=999999, order_id=make_order_id(), commissionable_subtotal=10)

        set_affiliate_status(db, affiliate_id=affiliate.id, status="suspended")
        with pytest.raises(InactiveError):
            record_commission(db, affiliate_id=affiliate.id, order_id=make_order_id(), commissionable_subtotal=10)

        active = make_affiliate(db)
        configure_program(db, enabled=False)
        with pytest.raises(InactiveError):
            record_commission(db, affiliate_id=active.id, order_id=make_order_id(), commissionable_subtotal=10)
        configure_program(db)


def test_approve_commission_credits_balance_once():
    with SessionLocal() as db:
        configure_program(db)
        affiliate = make_affiliate(db)
        commission = record_commission(
            db,
            affiliate_id=affiliate.id,
            order_id=make_order_id(),
            commissionable_subtotal=1000,
        )
        approved = approve_commission(db, commission_id=commission.id)
        assert approved.status == "approved"
        assert approved.approved_at is not None

        # A duplicate delivery event is a no-op.
        again = approve_commission(db, commission_id=commission.id)
        assert again.status == "approved"

        db.refresh(affiliate)
        assert affiliate.total_earnings == Decimal("50.00")
        assert affiliate.available_balance == Decimal("50.00")
        assert affiliate.delivered_orders == 1


def test_tenth_delivery_unlocks_level_two():
    with SessionLocal() as db:
        configure_program(db)
        affiliate = make_affiliate(db)
        for _ in range(9):
            make_approved_commission(db, affiliate=affiliate, subtotal=1000)
        db.refresh(affiliate)
        assert affiliate.delivered_orders == 9
        assert affiliate.current_level == 1

        tenth = make_approved_commission(db, affiliate=affiliate, subtotal=1000)
        assert tenth.commission_amount == Decimal("50.00")
        db.refresh(affiliate)
        assert affiliate.current_level == 2

        next_order = record_commission(
            db,
            affiliate_id=affiliate.id,
            order_id=make_order_id(),
            commissionable_subtotal=1000,
        )
        assert next_order.level == 2
        assert next_order.commission_amount == Decimal("80.00")


def test_cancel_pending_commission_is_status_only():
    with SessionLocal() as db:
        configure_program(db)
        affiliate = make_affiliate(db)
        commission = record_commission(
            db,
            affiliate_id=affiliate.id,
            order_id=make_order_id(),
            commissionable_subtotal=300,
        )
        cancelled = cancel_commission(db, commission_id=commission.id, reason="customer_cancelled")
        assert cancelled.status == "cancelled"
        assert cancelled.cancel_reason == "customer_cancelled"
        assert approve_commission(db, commission_id=commission.id).status == "cancelled"

        db.refresh(affiliate)
        assert affiliate.available_balance == Decimal("0.00")
        assert affiliate.delivered_orders == 0


def test_approve_then_cancel_restores_balance_exactly():
    with SessionLocal() as db:
        configure_program(db)
        affiliate = make_affiliate(db)
        make_approved_commission(db, affiliate=affiliate, subtotal="33.33")
        db.refresh(affiliate)
        before = affiliate.available_balance

        commission = make_approved_commission(db, affiliate=affiliate, subtotal="1234.57")
        assert commission.commission_amount == Decimal("61.73")
        cancel_commission(db, commission_id=commission.id, reason="refunded")

        db.refresh(affiliate)
        assert affiliate.available_balance == before
        assert affiliate.total_earnings == before
        assert affiliate.delivered_orders == 1
        assert cancel_commission(db, commission_id=commission.id).status == "cancelled"


def test_reversal_rejected_when_funds_already_reserved():
    with SessionLocal() as db:
        configure_program(db, min_withdrawal_amount=10)
        affiliate = make_affiliate(db)
        commission = make_approved_commission(db, affiliate=affiliate, subtotal=1000)
        db.refresh(affiliate)
        assert affiliate.available_balance == Decimal("50.00")

        create_withdrawal(
            db,
            affiliate_id=affiliate.id,
            amount=30,
            payment_method="bank_transfer",
            payment_details=BANK_DETAILS,
        )
        with pytest.raises(InsufficientReversalError) as excinfo:
            cancel_commission(db, commission_id=commission.id, reason="refunded")
        assert excinfo.value.context["affiliate_id"] == affiliate.id
        assert excinfo.value.context["commission_id"] == commission.id

        db.refresh(affiliate)
        db.refresh(commission)
        assert commission.status == "approved"
        assert affiliate.available_balance == Decimal("20.00")
        assert affiliate.total_earnings == Decimal("50.00")
        configure_program(db)


def test_ledger_invariant_after_mixed_sequence():
    with SessionLocal() as db:
        configure_program(db, min_withdrawal_amount=10)
        affiliate = make_affiliate(db)
        kept = make_approved_commission(db, affiliate=affiliate, subtotal=2000)
        make_approved_commission(db, affiliate=affiliate, subtotal=500)
        pending = record_commission(
            db,
            affiliate_id=affiliate.id,
            order_id=make_order_id(),
            commissionable_subtotal=800,
        )
        cancel_commission(db, commission_id=pending.id)
        refunded = make_approved_commission(db, affiliate=affiliate, subtotal=200)
        cancel_commission(db, commission_id=refunded.id, reason="refunded")

        withdrawal = create_withdrawal(
            db,
            affiliate_id=affiliate.id,
            amount=60,
            payment_method="bkash",
            payment_details={"mobile_number": "01700000000"},
        )
        approve_withdrawal(db, withdrawal_id=withdrawal.id, processed_by="admin")
        complete_withdrawal(db, withdrawal_id=withdrawal.id, processed_by="admin")
        create_withdrawal(
            db,
            affiliate_id=affiliate.id,
            amount=25,
            payment_method="bank",
            payment_details=BANK_DETAILS,
        )

        report = reconcile_affiliate(db, affiliate_id=affiliate.id)
        assert report["consistent"] is True
        assert report["drift"] == {}
        assert report["expected"]["total_earnings"] == Decimal("125.00")
        assert report["expected"]["total_withdrawn"] == Decimal("60.00")
        assert report["expected"]["available_balance"] == Decimal("40.00")

        summary = build_ledger_summary(db, affiliate_id=affiliate.id)
        assert summary["available_balance"] == Decimal("40.00")
        assert summary["reserved_withdrawals"] == Decimal("25.00")
        assert summary["pending_commissions"] == Decimal("0.00")
        assert kept.commission_amount == Decimal("100.00")
        configure_program(db)


def test_reconcile_reports_drift_without_repairing():
    with SessionLocal() as db:
        configure_program(db)
        affiliate = make_affiliate(db)
        make_approved_commission(db, affiliate=affiliate, subtotal=1000)
        stored = get_affiliate(db, affiliate_id=affiliate.id)
        stored.available_balance = Decimal("75.00")
        db.commit()

        report = reconcile_affiliate(db, affiliate_id=affiliate.id)
        assert report["consistent"] is False
        assert report["drift"] == {"available_balance": Decimal("25.00")}
        db.refresh(stored)
        assert stored.available_balance == Decimal("75.00")


def test_list_affiliate_commissions_paginates():
    with SessionLocal() as db:
        configure_program(db)
        affiliate = make_affiliate(db)
        for _ in range(5):
            record_commission(db, affiliate_id=affiliate.id, order_id=make_order_id(), commissionable_subtotal=10)
        result = list_affiliate_commissions(db, affiliate_id=affiliate.id, page=2, limit=2)
        assert result["meta"] == {"page": 2, "limit": 2, "total": 5, "total_page": 3}
        assert len(result["data"]) == 2


def test_stale_write_is_retried(monkeypatch):
    retries = []
    monkeypatch.setattr(ledger_module, "record_ledger_retry", lambda name: retries.append(name))

    with SessionLocal() as setup:
        configure_program(setup)
        affiliate = make_affiliate(setup)
        first = record_commission(
            setup,
            affiliate_id=affiliate.id,
            order_id=make_order_id(),
            commissionable_subtotal=1000,
        )
        second = record_commission(
            setup,
            affiliate_id=affiliate.id,
            order_id=make_order_id(),
            commissionable_subtotal=200,
        )
        affiliate_id, first_id, second_id = affiliate.id, first.id, second.id

    real_calculate_level = ledger_module.calculate_level
    competing = []

    def _calculate_level_after_competing_commit(delivered_orders, program):
        # First call: this session already holds the affiliate in memory.
        # Another session approves a sibling commission and commits first.
        if not competing:
            competing.append(second_id)
            with SessionLocal() as other:
                approve_commission(other, commission_id=second_id)
        return real_calculate_level(delivered_orders, program)

    monkeypatch.setattr(ledger_module, "calculate_level", _calculate_level_after_competing_commit)

    with SessionLocal() as db:
        approved = approve_commission(db, commission_id=first_id)
        assert approved.status == "approved"

    assert competing == [second_id]
    assert retries == ["approve_commission"]
    with SessionLocal() as db:
        affiliate = get_affiliate(db, affiliate_id=affiliate_id)
        assert affiliate.available_balance == Decimal("60.00")
        assert affiliate.total_earnings == Decimal("60.00")
        assert affiliate.delivered_orders == 2
        assert reconcile_affiliate(db, affiliate_id=affiliate_id)["consistent"] is True



def test_retry_exhaustion_raises_concurrency_conflict():
    attempts = []

    def _always_stale():
        attempts.append(1)
        raise StaleDataError("simulated")

    with SessionLocal() as db:
        with pytest.raises(ConcurrencyConflict) as excinfo:
            run_ledger_transaction(db, _always_stale, name="simulated", max_attempts=3)
    assert len(attempts) == 3
    assert excinfo.value.status_code == 503


def test_commission_on_sub_cent_subtotal_is_rounded_once():
    half_rate = {**TEST_LEVELS, 1: {"percentage": 50, "enabled": True, "required_delivered_orders": 0}}
    with SessionLocal() as db:
        program = configure_program(db, commission_levels=half_rate)
        affiliate = make_affiliate(db)
        commission = record_commission(
            db,
            affiliate_id=affiliate.id,
            order_id=make_order_id(),
            commissionable_subtotal="0.125",
        )
        assert compute_commission("0.125", 1, program) == Decimal("0.06")
        assert commission.commission_amount == Decimal("0.06")
        assert commission.order_commissionable_total == Decimal("0.13")
        configure_program(db)
