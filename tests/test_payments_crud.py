from decimal import Decimal
import uuid

import pytest

from conftest import FakeGateway
from payment_service.app.core.exceptions import (
    AlreadyCleared, AmountOutOfRange, FeeNotFound, GatewayRejected, GatewayUnavailable, InvalidState, NotAllowed,
    PayerNotFound, PaymentNotFound, ReferenceConflict, ValidationError
)
from payment_service.app.crud.payments import payment_reports_crud as reports
from payment_service.app.crud.payments import payments_crud as crud
from payment_service.app.enum.payment_enum import ClearingStatus, PaymentStatus
from payment_service.app.models.payments.payment_ledger import PaymentLedgerEntry
from payment_service.app.schemas.payments.payments_schemas import (
    CancelPaymentRequest, DuesPaymentRequest, InitializePaymentRequest, PaymentsRequest, RefundPaymentRequest
)
from payment_service.util.paystack_client import SimulatedGateway


# ---------------- Initialize ----------------

def test_initialize_moves_entry_to_processing(open_payment, gateway, proprietor):
    entry = open_payment(callback_url="https://napps.test/payment/verify", description="Registration")

    assert entry.status == PaymentStatus.processing
    assert entry.reference.startswith("NAPPS_")
    assert entry.authorization_url == f"https://checkout.test/{entry.reference}"
    assert entry.amount_minor_units == 2_537_500
    assert entry.payer_share + entry.platform_fee + entry.processing_fee + entry.beneficiary_share \
        == entry.amount_minor_units
    assert entry.payer_email == proprietor.email
    assert entry.simulated is False

    request = gateway.checkout_requests[0]
    assert request.amount_minor_units == 2_537_500
    assert request.reference == entry.reference
    assert request.callback_url == "https://napps.test/payment/verify"
    assert request.metadata["proprietor_id"] == str(proprietor.id)


def test_initialize_passes_split_code(db, gateway, directory, proprietor, add_fee):
    add_fee(gateway_split_id="SPL_napps0001")

    response = crud.initialize_payment(db, gateway, directory, InitializePaymentRequest(
        proprietor_id=proprietor.id, fee_codes=["registration_fee"]))

    assert gateway.checkout_requests[0].split_code == "SPL_napps0001"
    assert crud.get_entry_by_reference(db, response.reference).gateway_split_id == "SPL_napps0001"


def test_initialize_unknown_payer(db, gateway, directory, add_fee):
    add_fee()

    with pytest.raises(PayerNotFound):
        crud.initialize_payment(db, gateway, directory, InitializePaymentRequest(
            proprietor_id=uuid.uuid4(), fee_codes=["registration_fee"]))
    assert gateway.checkout_requests == []


def test_initialize_unknown_fee_creates_nothing(db, gateway, directory, proprietor):
    with pytest.raises(FeeNotFound):
        crud.initialize_payment(db, gateway, directory, InitializePaymentRequest(
            proprietor_id=proprietor.id, fee_codes=["no_such_fee"]))

    assert db.query(PaymentLedgerEntry).count() == 0
    assert gateway.checkout_requests == []


def test_initialize_rejects_fee_priced_outside_its_bounds(db, gateway, directory, proprietor, add_fee):
    add_fee(min_amount=Decimal("30000"), max_amount=Decimal("40000"))

    with pytest.raises(AmountOutOfRange):
        crud.initialize_payment(db, gateway, directory, InitializePaymentRequest(
            proprietor_id=proprietor.id, fee_codes=["registration_fee"]))

    assert db.query(PaymentLedgerEntry).count() == 0
    assert gateway.checkout_requests == []


def test_initialize_override_only_for_single_code(db, gateway, directory, proprietor, add_fee):
    add_fee()
    add_fee(code="membership_fee", base_amount=Decimal("5000"))

    with pytest.raises(ValidationError):
        crud.initialize_payment(db, gateway, directory, InitializePaymentRequest(
            proprietor_id=proprietor.id, fee_codes=["registration_fee", "membership_fee"],
            amount=Decimal("1000")))


def test_initialize_with_multiplier(open_payment):
    entry = open_payment(fee_multiplier=2)

    assert entry.fee_multiplier == 2
    assert entry.payer_share == 5_000_000
    assert entry.processing_fee == 75_000
    assert entry.amount_minor_units == 5_075_000


def test_initialize_gateway_unavailable_leaves_pending(db, gateway, directory, proprietor, add_fee):
    add_fee()
    gateway.checkout_error = GatewayUnavailable("timeout")

    with pytest.raises(GatewayUnavailable):
        crud.initialize_payment(db, gateway, directory, InitializePaymentRequest(
            proprietor_id=proprietor.id, fee_codes=["registration_fee"]))

    entry = db.query(PaymentLedgerEntry).one()
    assert entry.status == PaymentStatus.pending
    assert entry.authorization_url is None


def test_initialize_gateway_rejected_marks_failed(db, gateway, directory, proprietor, add_fee):
    add_fee()
    gateway.checkout_error = GatewayRejected("Invalid split code")

    with pytest.raises(GatewayRejected):
        crud.initialize_payment(db, gateway, directory, InitializePaymentRequest(
            proprietor_id=proprietor.id, fee_codes=["registration_fee"]))

    entry = db.query(PaymentLedgerEntry).one()
    assert entry.status == PaymentStatus.failed
    assert entry.failure_reason == "Invalid split code"


def test_reference_collision_fails_closed(open_payment, db, gateway, directory, proprietor, monkeypatch):
    existing = open_payment()
    monkeypatch.setattr(crud, "generate_payment_reference", lambda prefix="NAPPS": existing.reference)

    with pytest.raises(ReferenceConflict):
        crud.initialize_payment(db, gateway, directory, InitializePaymentRequest(
            proprietor_id=proprietor.id, fee_codes=["registration_fee"]))

    assert db.query(PaymentLedgerEntry).count() == 1
    assert crud.get_entry_by_reference(db, existing.reference).id == existing.id


def test_references_are_unique():
    references = {crud.generate_payment_reference() for _ in range(500)}
    assert len(references) == 500


# ---------------- Verify ----------------

def test_verify_is_idempotent(open_payment, db, gateway, directory, proprietor):
    entry = open_payment()

    first = crud.verify_payment(db, gateway, directory, entry.reference)
    first_paid_at = first.paid_at
    first_breakdown = (first.payer_share, first.platform_fee, first.processing_fee, first.beneficiary_share)
    second = crud.verify_payment(db, gateway, directory, entry.reference)

    assert second.status == PaymentStatus.success
    assert second.paid_at == first_paid_at
    assert (second.payer_share, second.platform_fee, second.processing_fee, second.beneficiary_share) \
        == first_breakdown
    assert gateway.verify_calls == [entry.reference]
    assert directory.cleared_calls == [proprietor.id]
    assert second.channel == "card"
    assert second.gateway_transaction_id == "4099260516"


@pytest.mark.parametrize("remote_status,reason", [
    ("failed", "Declined"),
    ("abandoned", "Declined"),
    ("reversed", "Declined"),
    ("ongoing", "unrecognized_status"),
    ("queued", "unrecognized_status"),
])
def test_verify_maps_remote_failures(open_payment, db, gateway, directory, remote_status, reason):
    entry = open_payment()
    gateway.remote_status = remote_status
    gateway.gateway_response = "Declined"

    result = crud.verify_payment(db, gateway, directory, entry.reference)

    assert result.status == PaymentStatus.failed
    assert result.failure_reason == reason
    assert directory.cleared_calls == []


def test_verify_gateway_unavailable_records_and_keeps_status(open_payment, db, gateway, directory):
    entry = open_payment()
    gateway.verify_error = GatewayUnavailable("connect timeout")

    result = crud.verify_payment(db, gateway, directory, entry.reference)

    assert result.status == PaymentStatus.processing
    assert "connect timeout" in result.gateway_response_text


def test_verify_gateway_rejected_records_failure(open_payment, db, gateway, directory):
    entry = open_payment()
    gateway.verify_error = GatewayRejected("Transaction reference not found")

    result = crud.verify_payment(db, gateway, directory, entry.reference)

    assert result.status == PaymentStatus.failed
    assert result.failure_reason == "Transaction reference not found"


def test_verify_unknown_reference(db, gateway, directory):
    with pytest.raises(PaymentNotFound):
        crud.verify_payment(db, gateway, directory, "NAPPS_0_MISSING")


# ---------------- Refund ----------------

def test_refund_pending_entry_is_invalid_state(db, gateway, directory, proprietor, add_fee):
    add_fee()
    gateway.checkout_error = GatewayUnavailable("down")
    with pytest.raises(GatewayUnavailable):
        crud.initialize_payment(db, gateway, directory, InitializePaymentRequest(
            proprietor_id=proprietor.id, fee_codes=["registration_fee"]))
    entry = db.query(PaymentLedgerEntry).one()

    with pytest.raises(InvalidState):
        crud.refund_payment(db, gateway, entry.id, RefundPaymentRequest(amount=100))
    assert gateway.refund_calls == []


def test_full_refund(open_payment, db, gateway, directory):
    entry = open_payment()
    crud.verify_payment(db, gateway, directory, entry.reference)

    refunded = crud.refund_payment(db, gateway, entry.id, RefundPaymentRequest(
        amount=2_537_500, reason="Duplicate payment", merchant_note="dup"))

    assert refunded.status == PaymentStatus.refunded
    assert refunded.refunded_amount == 2_537_500
    assert refunded.refund_reason == "Duplicate payment"
    assert refunded.refunded_at is not None
    assert gateway.refund_calls == [("4099260516", 2_537_500, "dup")]


def test_partial_refund_then_second_refund_rejected(open_payment, db, gateway, directory):
    entry = open_payment()
    crud.verify_payment(db, gateway, directory, entry.reference)

    refunded = crud.refund_payment(db, gateway, entry.id, RefundPaymentRequest(amount=1_000_000))

    assert refunded.status == PaymentStatus.partially_refunded
    with pytest.raises(InvalidState):
        crud.refund_payment(db, gateway, entry.id, RefundPaymentRequest(amount=1))
    assert len(gateway.refund_calls) == 1


def test_refund_above_charged_amount(open_payment, db, gateway, directory):
    entry = open_payment()
    crud.verify_payment(db, gateway, directory, entry.reference)

    with pytest.raises(ValidationError):
        crud.refund_payment(db, gateway, entry.id, RefundPaymentRequest(amount=2_537_501))
    assert gateway.refund_calls == []


def test_refund_gateway_failure_leaves_success(open_payment, db, gateway, directory):
    entry = open_payment()
    crud.verify_payment(db, gateway, directory, entry.reference)
    gateway.refund_error = GatewayRejected("Transaction has been fully reversed")

    with pytest.raises(GatewayRejected):
        crud.refund_payment(db, gateway, entry.id, RefundPaymentRequest(amount=100))

    assert crud.get_entry_by_id(db, entry.id).status == PaymentStatus.success


# ---------------- Retry / Cancel ----------------

def test_retry_creates_new_entry_with_same_breakdown(open_payment, db, gateway, directory):
    entry = open_payment(fee_multiplier=2)
    gateway.remote_status = "failed"
    crud.verify_payment(db, gateway, directory, entry.reference)

    response = crud.retry_payment(db, gateway, directory, entry.id)

    retried = crud.get_entry_by_reference(db, response.reference)
    original = crud.get_entry_by_id(db, entry.id)
    assert retried.id != original.id
    assert retried.reference != original.reference
    assert retried.retry_of_id == original.id
    assert retried.status == PaymentStatus.processing
    assert retried.amount_minor_units == original.amount_minor_units
    assert retried.processing_fee == original.processing_fee
    assert retried.fee_multiplier == 2
    assert original.status == PaymentStatus.failed


def test_retry_only_from_failed(open_payment, db, gateway, directory):
    entry = open_payment()

    with pytest.raises(InvalidState):
        crud.retry_payment(db, gateway, directory, entry.id)


def test_cancel_open_payment(open_payment, db, gateway, directory):
    entry = open_payment()

    cancelled = crud.cancel_payment(db, entry.id, CancelPaymentRequest(reason="payer abandoned"))

    assert cancelled.status == PaymentStatus.cancelled
    assert cancelled.failure_reason == "payer abandoned"
    # a late verify is a no-op on a terminal entry
    assert crud.verify_payment(db, gateway, directory, entry.reference).status == PaymentStatus.cancelled
    assert gateway.verify_calls == []


def test_cancel_settled_payment_rejected(open_payment, db, gateway, directory):
    entry = open_payment()
    crud.verify_payment(db, gateway, directory, entry.reference)

    with pytest.raises(InvalidState):
        crud.cancel_payment(db, entry.id)


# ---------------- Simulation ----------------

def test_simulated_flow(db, directory, proprietor, add_fee):
    add_fee()
    gateway = SimulatedGateway(frontend_url="http://localhost:8080")

    response = crud.initialize_payment(db, gateway, directory, InitializePaymentRequest(
        proprietor_id=proprietor.id, fee_codes=["registration_fee"]))

    assert response.authorization_url == \
        f"http://localhost:8080/payment/simulate?reference={response.reference}"
    assert response.simulated is True

    entry = crud.simulate_payment(db, gateway, directory, response.reference)

    assert entry.status == PaymentStatus.success
    assert entry.channel == "simulated"
    assert entry.gateway_transaction_id.startswith("SIM_")
    assert entry.simulated is True
    assert directory.cleared_calls == [proprietor.id]


def test_simulate_rejected_in_live_mode(open_payment, db, gateway, directory):
    entry = open_payment()

    with pytest.raises(NotAllowed):
        crud.simulate_payment(db, gateway, directory, entry.reference)
    assert crud.get_entry_by_id(db, entry.id).status == PaymentStatus.processing


def test_simulated_gateway_cannot_settle_live_entry(open_payment, db, directory):
    entry = open_payment()
    simulated = SimulatedGateway(frontend_url="http://localhost:8080")

    with pytest.raises(NotAllowed):
        crud.verify_payment(db, simulated, directory, entry.reference)
    with pytest.raises(NotAllowed):
        crud.simulate_payment(db, simulated, directory, entry.reference)


# ---------------- Outstanding dues ----------------

def test_dues_payment_uses_outstanding_balance(db, gateway, directory, proprietor, add_fee):
    add_fee()
    proprietor.total_amount_due = Decimal("36000")
    db.commit()

    response = crud.initialize_dues_payment(db, gateway, directory, DuesPaymentRequest(submission_id="SUB-1001"))

    entry = crud.get_entry_by_reference(db, response.reference)
    assert entry.payer_share == 3_600_000
    assert entry.proprietor_id == proprietor.id


def test_dues_payment_falls_back_to_active_fees(db, gateway, directory, proprietor, add_fee):
    add_fee(base_amount=Decimal("10000"))
    add_fee(code="membership_fee", base_amount=Decimal("5000"))

    response = crud.initialize_dues_payment(db, gateway, directory, DuesPaymentRequest(proprietor_id=proprietor.id))

    entry = crud.get_entry_by_reference(db, response.reference)
    assert entry.payer_share == 1_500_000
    assert sorted(entry.fee_codes) == ["membership_fee", "registration_fee"]


def test_dues_payment_rejected_when_cleared(db, gateway, directory, proprietor, add_fee):
    add_fee()
    proprietor.clearing_status = ClearingStatus.cleared
    db.commit()

    with pytest.raises(AlreadyCleared):
        crud.initialize_dues_payment(db, gateway, directory, DuesPaymentRequest(proprietor_id=proprietor.id))


# ---------------- Queries ----------------

def test_payment_queries_and_stats(open_payment, db, gateway, directory, proprietor):
    paid = open_payment()
    crud.verify_payment(db, gateway, directory, paid.reference)
    open_payment()

    by_payer = reports.get_payments_by_payer(db, proprietor.id)
    successful = reports.get_payments(db, PaymentsRequest(status=PaymentStatus.success))
    stats = reports.get_payment_stats(db)

    assert len(by_payer) == 2
    assert successful.total == 1
    assert successful.payments[0].reference == paid.reference
    assert successful.payments[0].total_fees == 37_500
    assert stats.total_payments == 2
    assert stats.successful_payments == 1
    assert stats.pending_payments == 1
    assert stats.success_rate == 50.0
    assert stats.total_collected_minor_units == 2_537_500
    assert stats.average_amount_minor_units == 2_537_500
    assert stats.monthly_trends[0].month == "2026-01"

    assert reports.get_payments(db, PaymentsRequest(amount_min=2_537_500)).total == 2
    assert reports.get_payments(db, PaymentsRequest(amount_max=1_000_000)).total == 0

    summary = reports.get_payment_summary(db, paid.reference)
    assert summary.amount == Decimal("25375")
    assert summary.payer_name == "Adaeze Okafor"


def test_deactivated_payment_hidden_from_lists(open_payment, db, proprietor):
    entry = open_payment()

    crud.deactivate_payment(db, entry.id)

    assert reports.get_payments_by_payer(db, proprietor.id) == []
    assert reports.get_payment_by_reference(db, entry.reference).is_active is False


def test_fake_gateway_defaults_are_live():
    assert FakeGateway().simulated is False
