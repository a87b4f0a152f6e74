import json

from conftest import sign, webhook_body
from payment_service.app.enum.payment_enum import PaymentStatus
from shared.utils.app_status_code import AppStatusCode

FEE_PAYLOAD = {
    "code": "registration_fee",
    "name": "Registration Fee",
    "base_amount": "25000",
    "fee_structure": {"processing_fee_percent": "1.5", "processing_fee_cap": 200000},
}


def test_health_reports_gateway_mode(client):
    response = client.get("/api/payments/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "Success"
    assert body["data"]["status"] == "ok"
    assert body["data"]["simulated"] is False


def test_create_and_list_fees(client):
    created = client.post("/api/fees/", json=FEE_PAYLOAD)

    assert created.status_code == 200
    body = created.json()
    assert body["status"] == "Success"
    assert body["status_code"] == AppStatusCode.CREATED_SUCCESSFULLY
    assert body["data"]["code"] == "registration_fee"
    assert body["data"]["currency"] == "NGN"
    assert body["data"]["version"] == 1

    listing = client.get("/api/fees/all").json()
    assert listing["data"]["total"] == 1
    assert listing["data"]["fees"][0]["code"] == "registration_fee"


def test_duplicate_fee_code_conflicts(client):
    client.post("/api/fees/", json=FEE_PAYLOAD)

    response = client.post("/api/fees/", json={**FEE_PAYLOAD, "code": "REGISTRATION_FEE"})

    assert response.status_code == 409
    assert response.json()["status"] == "Failure"


def test_calculate_returns_breakdown_and_formatting(client):
    client.post("/api/fees/", json=FEE_PAYLOAD)

    response = client.post("/api/fees/calculate", json={"fee_codes": ["registration_fee"]})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["breakdown"]["base_minor"] == 2_500_000
    assert data["breakdown"]["processing_fee"] == 37_500
    assert data["breakdown"]["total"] == 2_537_500
    assert data["formatted"]["total_amount"] == "₦25,375.00"


def test_initialize_payment(client, proprietor, add_fee, gateway):
    add_fee()

    response = client.post("/api/payments/initialize", json={
        "proprietor_id": str(proprietor.id),
        "fee_codes": ["registration_fee"],
    })

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == PaymentStatus.processing.value
    assert data["amount_minor_units"] == 2_537_500
    assert data["authorization_url"] == f"https://checkout.test/{data['reference']}"
    assert len(gateway.checkout_requests) == 1


def test_initialize_with_unknown_fee_is_not_found(client, proprietor):
    response = client.post("/api/payments/initialize", json={
        "proprietor_id": str(proprietor.id),
        "fee_codes": ["no_such_fee"],
    })

    assert response.status_code == 404
    body = response.json()
    assert body["status"] == "Failure"
    assert body["status_code"] == AppStatusCode.FEE_NOT_FOUND


def test_initialize_rejects_bad_multiplier(client, proprietor):
    response = client.post("/api/payments/initialize", json={
        "proprietor_id": str(proprietor.id),
        "fee_codes": ["registration_fee"],
        "fee_multiplier": 11,
    })

    assert response.status_code == 422
    assert response.json()["status_code"] == AppStatusCode.INVALID_INPUT


def test_verify_and_fetch_by_reference(client, open_payment, directory):
    entry = open_payment()

    verified = client.post("/api/payments/verify", json={"reference": entry.reference})
    fetched = client.get(f"/api/payments/reference/{entry.reference}")
    summary = client.get(f"/api/payments/verify/{entry.reference}")

    assert verified.status_code == 200
    assert verified.json()["data"]["status"] == PaymentStatus.success.value
    assert fetched.json()["data"]["gateway_transaction_id"] == "4099260516"
    assert summary.json()["data"]["status"] == PaymentStatus.success.value
    assert len(directory.cleared_calls) == 1


def test_refund_of_open_payment_is_invalid_state(client, open_payment, gateway):
    entry = open_payment()

    response = client.post(f"/api/payments/{entry.id}/refund", json={"amount": 1000})

    assert response.status_code == 409
    assert response.json()["status_code"] == AppStatusCode.PAYMENT_INVALID_STATE
    assert gateway.refund_calls == []


def test_webhook_with_bad_signature_is_unauthorized(client, open_payment):
    entry = open_payment()
    body = webhook_body("charge.success", entry.reference, amount=2_537_500)

    response = client.post("/api/payments/webhook", content=body,
                           headers={"x-paystack-signature": "0" * 128,
                                    "content-type": "application/json"})

    assert response.status_code == 401
    assert response.json()["status_code"] == AppStatusCode.WEBHOOK_SIGNATURE_INVALID


def test_signed_webhook_is_acknowledged(client, open_payment, directory):
    entry = open_payment()
    body = webhook_body("charge.success", entry.reference, amount=2_537_500)

    response = client.post("/api/payments/webhook", content=body,
                           headers={"x-paystack-signature": sign(body),
                                    "content-type": "application/json"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["handled"] is True
    assert data["status"] == PaymentStatus.success.value
    assert len(directory.cleared_calls) == 1


def test_unknown_webhook_event_still_returns_200(client):
    body = json.dumps({"event": "invoice.create", "data": {}}).encode()

    response = client.post("/api/payments/webhook", content=body,
                           headers={"x-paystack-signature": sign(body)})

    assert response.status_code == 200
    assert response.json()["data"]["handled"] is False
