import hashlib
import hmac
import json
import threading
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from shared.core.database import Base, build_engine, get_payments_db
from payment_service.app import models  # noqa: F401
from payment_service.app.core.dependencies import get_payment_gateway, get_proprietor_directory
from payment_service.app.crud.proprietors.proprietor_balance_crud import ProprietorDirectory
from payment_service.app.enum.payment_enum import ClearingStatus
from payment_service.app.models.fees.fee_definitions import FeeDefinition
from payment_service.app.models.proprietors.proprietors import Proprietor
from payment_service.util.paystack_client import (
    CheckoutSession, GatewayTransactionResult, PaymentGateway, RefundResult, map_remote_status
)

WEBHOOK_SECRET = "whsec_test_secret"
PAID_AT = datetime(2026, 1, 15, 10, 30, tzinfo=timezone.utc)


class FakeGateway(PaymentGateway):
    """Scriptable gateway that records every call."""

    def __init__(self, simulated=False, webhook_secret=WEBHOOK_SECRET, allow_unsigned_webhooks=False):
        super().__init__(webhook_secret, allow_unsigned_webhooks)
        self.simulated = simulated
        self.checkout_requests = []
        self.verify_calls = []
        self.refund_calls = []
        self.checkout_error = None
        self.verify_error = None
        self.refund_error = None
        self.remote_status = "success"
        self.remote_amount = None
        self.gateway_response = "Approved"

    def initialize_checkout(self, request):
        self.checkout_requests.append(request)
        if self.checkout_error:
            raise self.checkout_error
        return CheckoutSession(
            authorization_url=f"https://checkout.test/{request.reference}",
            reference=request.reference,
            access_code="ac_test",
        )

    def verify_transaction(self, reference):
        self.verify_calls.append(reference)
        if self.verify_error:
            raise self.verify_error
        outcome, reason = map_remote_status(self.remote_status, self.gateway_response)
        return GatewayTransactionResult(
            outcome=outcome,
            reference=reference,
            transaction_id="4099260516",
            amount_minor_units=self.remote_amount,
            channel="card",
            card_type="visa",
            bank="TEST BANK",
            gateway_response=self.gateway_response,
            failure_reason=reason,
            paid_at=PAID_AT,
            remote_status=self.remote_status,
        )

    def refund(self, transaction_id, amount_minor_units, merchant_note=None):
        self.refund_calls.append((transaction_id, amount_minor_units, merchant_note))
        if self.refund_error:
            raise self.refund_error
        return RefundResult(transaction_id=transaction_id, amount_minor_units=amount_minor_units,
                            status="pending")


class CountingDirectory(ProprietorDirectory):
    """Real balance updates plus a thread-safe count of clearing calls."""

    def __init__(self):
        self.cleared_calls = []
        self._lock = threading.Lock()

    def set_proprietor_cleared(self, db, proprietor_id, paid_at):
        with self._lock:
            self.cleared_calls.append(proprietor_id)
        super().set_proprietor_cleared(db, proprietor_id, paid_at)


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def webhook_body(event: str, reference: str, amount=None, status=None, **data) -> bytes:
    payload = {
        "event": event,
        "data": {
            "id": 4099260516,
            "reference": reference,
            "status": status or ("success" if event == "charge.success" else "failed"),
            "amount": amount,
            "currency": "NGN",
            "channel": "card",
            "gateway_response": "Approved" if event == "charge.success" else "Declined",
            "paid_at": "2026-01-15T10:30:00.000Z",
            "authorization": {"card_type": "visa", "bank": "TEST BANK"},
            **data,
        },
    }
    return json.dumps(payload).encode("utf-8")


def make_fee_definition(**overrides) -> FeeDefinition:
    values = dict(
        code="registration_fee",
        name="Registration Fee",
        base_amount=Decimal("25000"),
        currency="NGN",
        platform_fee_percent=Decimal("0"),
        platform_fee_fixed=0,
        processing_fee_percent=Decimal("1.5"),
        processing_fee_cap=200000,
        beneficiary_share_percent=Decimal("0"),
        beneficiary_share_fixed=0,
        gateway_split_id=None,
        is_active=True,
        version=1,
    )
    values.update(overrides)
    return FeeDefinition(**values)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'payments.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def directory():
    return CountingDirectory()


@pytest.fixture
def add_fee(db):
    def _add(**overrides):
        fee = make_fee_definition(**overrides)
        db.add(fee)
        db.commit()
        db.refresh(fee)
        return fee
    return _add


@pytest.fixture
def proprietor(db):
    record = Proprietor(
        first_name="Adaeze",
        last_name="Okafor",
        email="adaeze.okafor@example.com",
        submission_id="SUB-1001",
        clearing_status=ClearingStatus.outstanding,
        total_amount_due=Decimal("0"),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def client(session_factory, gateway, directory):
    from payment_service.app.main import app

    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_payments_db] = override_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_proprietor_directory] = lambda: directory
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def open_payment(db, gateway, directory, proprietor, add_fee):
    """Factory for a payment that has reached `processing` through the fake gateway."""
    from payment_service.app.crud.payments import payments_crud
    from payment_service.app.schemas.payments.payments_schemas import InitializePaymentRequest

    add_fee()

    def _open(**overrides):
        values = dict(proprietor_id=proprietor.id, fee_codes=["registration_fee"])
        values.update(overrides)
        response = payments_crud.initialize_payment(
            db, gateway, directory, InitializePaymentRequest(**values))
        return payments_crud.get_entry_by_reference(db, response.reference)
    return _open
