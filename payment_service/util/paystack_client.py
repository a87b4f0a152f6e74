import hashlib
import hmac
import logging
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests
from dateutil import parser as date_parser

from shared.core.config import PaymentMode, Settings
from ..app.core.exceptions import GatewayRejected, GatewayUnavailable
from ..app.enum.payment_enum import GatewayOutcome, PaymentChannel

logger = logging.getLogger(__name__)

# Remote statuses that settle a charge as failed
FAILED_REMOTE_STATUSES = {"failed", "abandoned", "reversed"}
UNRECOGNIZED_STATUS = "unrecognized_status"


@dataclass
class CheckoutRequest:
    email: str
    amount_minor_units: int
    reference: str
    currency: str
    callback_url: Optional[str] = None
    split_code: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CheckoutSession:
    authorization_url: str
    reference: str
    access_code: Optional[str] = None


@dataclass
class GatewayTransactionResult:
    """A remote transaction status already mapped onto the local outcome."""

    outcome: GatewayOutcome
    reference: str
    transaction_id: Optional[str] = None
    amount_minor_units: Optional[int] = None
    channel: Optional[str] = None
    card_type: Optional[str] = None
    bank: Optional[str] = None
    gateway_response: Optional[str] = None
    failure_reason: Optional[str] = None
    paid_at: Optional[datetime] = None
    remote_status: Optional[str] = None


@dataclass
class RefundResult:
    transaction_id: str
    amount_minor_units: int
    status: str


def map_remote_status(remote_status: Optional[str], gateway_response: Optional[str] = None):
    """Map a gateway transaction status onto (outcome, failure_reason)."""
    status = (remote_status or "").lower()
    if status == "success":
        return GatewayOutcome.success, None
    if status in FAILED_REMOTE_STATUSES:
        return GatewayOutcome.failed, gateway_response or status
    return GatewayOutcome.failed, UNRECOGNIZED_STATUS


def parse_gateway_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return date_parser.isoparse(value)
    except (ValueError, TypeError):
        logger.warning("Unparseable gateway timestamp %r", value)
        return None


def transaction_result_from_payload(data: Dict[str, Any]) -> GatewayTransactionResult:
    authorization = data.get("authorization") or {}
    outcome, failure_reason = map_remote_status(data.get("status"), data.get("gateway_response"))
    transaction_id = data.get("id")
    return GatewayTransactionResult(
        outcome=outcome,
        reference=data.get("reference"),
        transaction_id=str(transaction_id) if transaction_id is not None else None,
        amount_minor_units=data.get("amount"),
        channel=data.get("channel"),
        card_type=authorization.get("card_type"),
        bank=authorization.get("bank"),
        gateway_response=data.get("gateway_response"),
        failure_reason=failure_reason,
        paid_at=parse_gateway_datetime(data.get("paid_at") or data.get("paidAt")),
        remote_status=data.get("status"),
    )


class PaymentGateway:
    """Outbound port to the card processor plus webhook signature checks."""

    simulated = False

    def __init__(self, webhook_secret: Optional[str] = None, allow_unsigned_webhooks: bool = False):
        self.webhook_secret = webhook_secret
        self.allow_unsigned_webhooks = allow_unsigned_webhooks

    def initialize_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        raise NotImplementedError

    def verify_transaction(self, reference: str) -> GatewayTransactionResult:
        raise NotImplementedError

    def refund(self, transaction_id: str, amount_minor_units: int,
               merchant_note: Optional[str] = None) -> RefundResult:
        raise NotImplementedError

    def verify_webhook_signature(self, raw_body: bytes, signature: Optional[str]) -> bool:
        """HMAC-SHA512 of the exact request bytes, hex encoded, constant-time compare."""
        if not self.webhook_secret:
            if self.allow_unsigned_webhooks:
                logger.warning(
                    "WEBHOOK SIGNATURE NOT VERIFIED: no webhook secret configured and "
                    "ALLOW_UNSIGNED_WEBHOOKS is on. Never run like this in production.")
                return True
            logger.error("Webhook rejected: no webhook secret configured")
            return False

        if not signature:
            return False

        expected = hmac.new(
            self.webhook_secret.encode("utf-8"), raw_body, hashlib.sha512
        ).hexdigest()
        return hmac.compare_digest(expected, signature.strip().lower())


class PaystackGateway(PaymentGateway):

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 15.0,
        webhook_secret: Optional[str] = None,
        allow_unsigned_webhooks: bool = False,
        session: Optional[requests.Session] = None
    ):
        super().__init__(webhook_secret or secret_key, allow_unsigned_webhooks)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {secret_key}",
            "Content-Type": "application/json",
        })

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("Gateway %s %s failed: %s", method, path, e)
            raise GatewayUnavailable(f"Payment gateway unreachable: {e}")

        if response.status_code >= 500:
            logger.error("Gateway %s %s returned %s", method, path, response.status_code)
            raise GatewayUnavailable(
                f"Payment gateway error (HTTP {response.status_code})")

        try:
            body = response.json()
        except ValueError:
            raise GatewayUnavailable("Payment gateway returned a non-JSON response")

        if response.status_code >= 400 or not body.get("status"):
            message = body.get("message") or f"HTTP {response.status_code}"
            logger.warning("Gateway %s %s rejected: %s", method, path, message)
            raise GatewayRejected(message, data={"http_status": response.status_code})

        return body.get("data") or {}

    def initialize_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        payload = {
            "email": request.email,
            "amount": request.amount_minor_units,
            "reference": request.reference,
            "currency": request.currency,
            "metadata": request.metadata,
        }
        if request.callback_url:
            payload["callback_url"] = request.callback_url
        if request.split_code:
            payload["split_code"] = request.split_code
            logger.info("Using split %s for payment %s", request.split_code, request.reference)

        data = self._request("POST", "/transaction/initialize", json=payload)
        if not data.get("authorization_url"):
            raise GatewayRejected("Gateway did not return an authorization URL")
        return CheckoutSession(
            authorization_url=data["authorization_url"],
            reference=data.get("reference") or request.reference,
            access_code=data.get("access_code"),
        )

    def verify_transaction(self, reference: str) -> GatewayTransactionResult:
        data = self._request("GET", f"/transaction/verify/{reference}")
        result = transaction_result_from_payload(data)
        if not result.reference:
            result.reference = reference
        return result

    def refund(self, transaction_id: str, amount_minor_units: int,
               merchant_note: Optional[str] = None) -> RefundResult:
        payload = {"transaction": transaction_id, "amount": amount_minor_units}
        if merchant_note:
            payload["merchant_note"] = merchant_note
        data = self._request("POST", "/refund", json=payload)
        return RefundResult(
            transaction_id=transaction_id,
            amount_minor_units=data.get("amount", amount_minor_units),
            status=data.get("status") or "pending",
        )


class SimulatedGateway(PaymentGateway):
    """Local stand-in for the processor. Every checkout is settled as paid."""

    simulated = True

    def __init__(self, frontend_url: str, webhook_secret: Optional[str] = None,
                 allow_unsigned_webhooks: bool = False):
        super().__init__(webhook_secret, allow_unsigned_webhooks)
        self.frontend_url = frontend_url.rstrip("/")

    @staticmethod
    def new_transaction_id() -> str:
        return f"SIM_{int(time.time() * 1000)}_{secrets.randbelow(1000000)}"

    def initialize_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        logger.info("SIMULATION MODE: checkout for %s (%s %s)",
                    request.reference, request.amount_minor_units, request.currency)
        return CheckoutSession(
            authorization_url=f"{self.frontend_url}/payment/simulate?reference={request.reference}",
            reference=request.reference,
            access_code=None,
        )

    def verify_transaction(self, reference: str) -> GatewayTransactionResult:
        return GatewayTransactionResult(
            outcome=GatewayOutcome.success,
            reference=reference,
            transaction_id=self.new_transaction_id(),
            channel=PaymentChannel.simulated.value,
            gateway_response="Simulated payment successful",
            paid_at=datetime.now(timezone.utc),
            remote_status="success",
        )

    def refund(self, transaction_id: str, amount_minor_units: int,
               merchant_note: Optional[str] = None) -> RefundResult:
        logger.info("SIMULATION MODE: refund of %s on %s", amount_minor_units, transaction_id)
        return RefundResult(
            transaction_id=transaction_id,
            amount_minor_units=amount_minor_units,
            status="processed",
        )


def build_payment_gateway(settings: Settings) -> PaymentGateway:
    """Pick the gateway once at startup from PAYMENT_MODE."""
    if settings.PAYMENT_MODE == PaymentMode.LIVE:
        logger.info("Payment gateway: Paystack (%s)", settings.PAYSTACK_BASE_URL)
        return PaystackGateway(
            secret_key=settings.PAYSTACK_SECRET_KEY,
            base_url=settings.PAYSTACK_BASE_URL,
            timeout=settings.PAYSTACK_TIMEOUT_SECONDS,
            webhook_secret=settings.PAYSTACK_WEBHOOK_SECRET,
            allow_unsigned_webhooks=settings.ALLOW_UNSIGNED_WEBHOOKS,
        )

    logger.warning("Payment gateway: SIMULATION MODE, no money will move")
    return SimulatedGateway(
        frontend_url=settings.FRONTEND_URL,
        webhook_secret=settings.PAYSTACK_WEBHOOK_SECRET,
        allow_unsigned_webhooks=settings.ALLOW_UNSIGNED_WEBHOOKS,
    )
