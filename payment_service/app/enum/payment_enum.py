from enum import Enum


class PaymentStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    success = "success"
    failed = "failed"
    cancelled = "cancelled"
    refunded = "refunded"
    partially_refunded = "partially_refunded"


# Statuses a verify or webhook result may still move out of
OPEN_STATUSES = (PaymentStatus.pending, PaymentStatus.processing)

ALLOWED_TRANSITIONS = {
    PaymentStatus.pending: {
        PaymentStatus.processing,
        PaymentStatus.success,
        PaymentStatus.failed,
        PaymentStatus.cancelled,
    },
    PaymentStatus.processing: {
        PaymentStatus.success,
        PaymentStatus.failed,
        PaymentStatus.cancelled,
    },
    PaymentStatus.success: {
        PaymentStatus.refunded,
        PaymentStatus.partially_refunded,
    },
    PaymentStatus.failed: set(),
    PaymentStatus.cancelled: set(),
    PaymentStatus.refunded: set(),
    PaymentStatus.partially_refunded: set(),
}


class PaymentChannel(str, Enum):
    card = "card"
    bank = "bank"
    bank_transfer = "bank_transfer"
    ussd = "ussd"
    qr = "qr"
    mobile_money = "mobile_money"
    simulated = "simulated"


class ClearingStatus(str, Enum):
    pending = "pending"
    cleared = "cleared"
    outstanding = "outstanding"


class FeeRequirement(str, Enum):
    required = "required"
    optional = "optional"


class RecurringInterval(str, Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    annually = "annually"


class WebhookEvent(str, Enum):
    charge_success = "charge.success"
    charge_failed = "charge.failed"
    transfer_success = "transfer.success"
    transfer_failed = "transfer.failed"


class GatewayOutcome(str, Enum):
    success = "success"
    failed = "failed"


class PaymentSortField(str, Enum):
    created_at = "created_at"
    paid_at = "paid_at"
    amount = "amount_minor_units"
    status = "status"
