from shared.core.exceptions import ServiceError
from shared.utils.app_status_code import AppStatusCode


class PaymentServiceError(ServiceError):
    """Base error for fee and payment operations."""


# ---------------- Validation ----------------

class ValidationError(PaymentServiceError):
    http_status = 400
    status_code = AppStatusCode.INVALID_INPUT


class FeeNotFound(ValidationError):
    http_status = 404
    status_code = AppStatusCode.FEE_NOT_FOUND


class AmountOutOfRange(ValidationError):
    status_code = AppStatusCode.FEE_AMOUNT_OUT_OF_RANGE


class FeeCodeConflict(PaymentServiceError):
    http_status = 409
    status_code = AppStatusCode.DUPLICATE_ADD_ERROR


# ---------------- Ledger ----------------

class PaymentNotFound(PaymentServiceError):
    http_status = 404
    status_code = AppStatusCode.PAYMENT_NOT_FOUND


class PayerNotFound(PaymentServiceError):
    http_status = 404
    status_code = AppStatusCode.PAYER_NOT_FOUND


class InvalidState(PaymentServiceError):
    http_status = 409
    status_code = AppStatusCode.PAYMENT_INVALID_STATE


class NotAllowed(PaymentServiceError):
    http_status = 403
    status_code = AppStatusCode.PAYMENT_NOT_ALLOWED


class ReferenceConflict(PaymentServiceError):
    http_status = 409
    status_code = AppStatusCode.PAYMENT_REFERENCE_CONFLICT


class AlreadyCleared(PaymentServiceError):
    http_status = 409
    status_code = AppStatusCode.PAYMENT_ALREADY_CLEARED


# ---------------- Gateway ----------------

class GatewayError(PaymentServiceError):
    http_status = 502
    status_code = AppStatusCode.GATEWAY_UNAVAILABLE


class GatewayUnavailable(GatewayError):
    """Network failure, timeout or 5xx from the gateway. Safe to retry."""
    http_status = 503


class GatewayRejected(GatewayError):
    """Structured decline from the gateway."""
    http_status = 402
    status_code = AppStatusCode.GATEWAY_REJECTED


class InvalidSignature(PaymentServiceError):
    http_status = 401
    status_code = AppStatusCode.WEBHOOK_SIGNATURE_INVALID


class InvalidWebhookPayload(PaymentServiceError):
    http_status = 400
    status_code = AppStatusCode.WEBHOOK_PAYLOAD_INVALID
