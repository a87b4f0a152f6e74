import json
import logging
import secrets
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.core.config import settings
from ...core.exceptions import (
    AlreadyCleared, FeeNotFound, GatewayRejected, GatewayUnavailable, InvalidState, InvalidWebhookPayload,
    NotAllowed, PayerNotFound, PaymentNotFound, ReferenceConflict, ValidationError, InvalidSignature
)
from ...enum.payment_enum import ClearingStatus, OPEN_STATUSES, GatewayOutcome, PaymentStatus, WebhookEvent
from ...models.payments.payment_ledger import PaymentLedgerEntry
from ...schemas.fees.fee_definitions_schemas import FeeBreakdown
from ...schemas.payments.payments_schemas import (
    CancelPaymentRequest, DuesPaymentRequest, InitializePaymentRequest, InitializePaymentResponse,
    PaymentOut, RefundPaymentRequest, RetryPaymentRequest, WebhookAck
)
from ...schemas.payments.webhook_schemas import ChargeEvent, TransferEvent, webhook_payload_adapter
from ...schemas.proprietors.proprietor_schemas import ProprietorBalance
from ..fees import fee_calculator, fee_definitions_crud
from ..proprietors.proprietor_balance_crud import ProprietorDirectory
from .payment_state import apply_gateway_result, compare_and_set_status, ensure_transition
from ....util.paystack_client import (
    CheckoutRequest, GatewayTransactionResult, PaymentGateway, transaction_result_from_payload
)

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "NAPPS"
KNOWN_WEBHOOK_EVENTS = {e.value for e in WebhookEvent}


def generate_payment_reference(prefix: str = REFERENCE_PREFIX) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(6).upper()}"


def get_entry_by_reference(db: Session, reference: str) -> PaymentLedgerEntry:
    entry = db.query(PaymentLedgerEntry).filter(PaymentLedgerEntry.reference == reference).first()
    if not entry:
        raise PaymentNotFound(f"Payment with reference {reference} not found")
    return entry


def get_entry_by_id(db: Session, payment_id: UUID) -> PaymentLedgerEntry:
    entry = db.query(PaymentLedgerEntry).filter(PaymentLedgerEntry.id == payment_id).first()
    if not entry:
        raise PaymentNotFound(f"Payment with ID {payment_id} not found")
    return entry


# ----------------------------------------------------------------------
# LEDGER ENTRY CREATION
# ----------------------------------------------------------------------

def _create_ledger_entry(
    db: Session,
    payer: ProprietorBalance,
    email: str,
    breakdown: FeeBreakdown,
    gateway: PaymentGateway,
    school_id: Optional[UUID] = None,
    callback_url: Optional[str] = None,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    retry_of_id: Optional[UUID] = None,
    reference: Optional[str] = None
) -> PaymentLedgerEntry:
    reference = reference or generate_payment_reference()
    if db.query(PaymentLedgerEntry.id).filter(PaymentLedgerEntry.reference == reference).first():
        raise ReferenceConflict(f"Payment reference {reference} already exists")

    entry = PaymentLedgerEntry(
        reference=reference,
        proprietor_id=payer.id,
        payer_email=email,
        school_id=school_id or payer.school_id,
        fee_code=breakdown.fee_codes[0],
        fee_codes=list(breakdown.fee_codes),
        fee_version=breakdown.fee_version,
        fee_multiplier=breakdown.multiplier,
        description=description,
        currency=breakdown.currency,
        amount_minor_units=breakdown.total,
        payer_share=breakdown.base_minor,
        platform_fee=breakdown.platform_fee,
        processing_fee=breakdown.processing_fee,
        beneficiary_share=breakdown.beneficiary_share,
        gateway_split_id=breakdown.gateway_split_id,
        status=PaymentStatus.pending,
        callback_url=callback_url,
        simulated=gateway.simulated,
        webhook_received=False,
        retry_of_id=retry_of_id,
        meta=metadata,
        is_active=True,
    )
    db.add(entry)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if "reference" in str(e.orig).lower():
            raise ReferenceConflict(f"Payment reference {reference} already exists")
        raise
    db.refresh(entry)
    logger.info("Payment %s created: %s %s for proprietor %s",
                entry.reference, entry.amount_minor_units, entry.currency, entry.proprietor_id)
    return entry


def _gateway_metadata(entry: PaymentLedgerEntry, payer: ProprietorBalance,
                      extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    metadata = {
        "proprietor_id": str(entry.proprietor_id),
        "school_id": str(entry.school_id) if entry.school_id else None,
        "fee_codes": entry.fee_codes,
        "description": entry.description,
        "custom_fields": [
            {"display_name": "Proprietor", "variable_name": "proprietor", "value": payer.full_name},
            {"display_name": "Payment Type", "variable_name": "payment_type", "value": entry.fee_code},
        ],
    }
    if extra:
        metadata.update(extra)
    return metadata


def _open_checkout(
    db: Session,
    gateway: PaymentGateway,
    entry: PaymentLedgerEntry,
    metadata: Dict[str, Any]
) -> InitializePaymentResponse:
    """Ask the gateway for a checkout session and move the entry to processing."""
    request = CheckoutRequest(
        email=entry.payer_email,
        amount_minor_units=entry.amount_minor_units,
        reference=entry.reference,
        currency=entry.currency,
        callback_url=entry.callback_url,
        split_code=entry.gateway_split_id,
        metadata=metadata,
    )
    try:
        session = gateway.initialize_checkout(request)
    except GatewayUnavailable:
        logger.warning("Gateway unavailable for %s, entry left pending", entry.reference)
        raise
    except GatewayRejected as e:
        compare_and_set_status(
            db, entry, [PaymentStatus.pending],
            status=PaymentStatus.failed, failure_reason=e.message)
        db.commit()
        logger.warning("Gateway rejected %s: %s", entry.reference, e.message)
        raise

    if not compare_and_set_status(
            db, entry, [PaymentStatus.pending],
            status=PaymentStatus.processing, authorization_url=session.authorization_url):
        logger.warning("Payment %s changed state while its checkout was opening", entry.reference)
    db.commit()
    db.refresh(entry)

    return InitializePaymentResponse(
        id=entry.id,
        reference=entry.reference,
        authorization_url=entry.authorization_url,
        amount_minor_units=entry.amount_minor_units,
        currency=entry.currency,
        status=entry.status,
        simulated=entry.simulated,
    )


# ----------------------------------------------------------------------
# INITIALIZE / RETRY
# ----------------------------------------------------------------------

def initialize_payment(
    db: Session,
    gateway: PaymentGateway,
    directory: ProprietorDirectory,
    request: InitializePaymentRequest
) -> InitializePaymentResponse:
    payer = directory.get_proprietor_balance(db, request.proprietor_id)
    if not payer:
        raise PayerNotFound(f"Proprietor {request.proprietor_id} not found")

    if request.amount is not None and len(request.fee_codes) > 1:
        raise ValidationError("A custom amount can only be given for a single fee code")

    breakdown = fee_definitions_crud.calculate_fee(
        db, request.fee_codes, request.amount, request.fee_multiplier)

    entry = _create_ledger_entry(
        db,
        payer=payer,
        email=request.email or payer.email,
        breakdown=breakdown,
        gateway=gateway,
        school_id=request.school_id,
        callback_url=request.callback_url,
        description=request.description,
        metadata=request.metadata,
    )
    return _open_checkout(db, gateway, entry, _gateway_metadata(entry, payer, request.metadata))


def initialize_dues_payment(
    db: Session,
    gateway: PaymentGateway,
    directory: ProprietorDirectory,
    request: DuesPaymentRequest
) -> InitializePaymentResponse:
    """Charge a proprietor's outstanding balance, or the active fees when none is recorded."""
    if not request.proprietor_id and not request.submission_id:
        raise ValidationError("Either proprietor_id or submission_id is required")

    payer = directory.find_proprietor(db, request.proprietor_id, request.submission_id)
    if not payer:
        raise PayerNotFound("Proprietor not found")
    if payer.clearing_status == ClearingStatus.cleared:
        raise AlreadyCleared(f"Proprietor {payer.id} has already cleared all dues")

    active_fees = fee_definitions_crud.get_active_fee_definitions(db)
    if not active_fees:
        raise FeeNotFound("No active fees configured")

    outstanding = Decimal(str(payer.total_amount_due or 0))
    override = outstanding if outstanding > 0 else None
    breakdown = fee_calculator.breakdown_for_definitions(active_fees, override)

    callback_url = request.callback_url or f"{settings.FRONTEND_URL}/payment/verify"
    entry = _create_ledger_entry(
        db,
        payer=payer,
        email=payer.email,
        breakdown=breakdown,
        gateway=gateway,
        callback_url=callback_url,
        description=f"Outstanding dues for {payer.full_name}",
        metadata={"payment_type": "dues", "submission_id": payer.submission_id},
    )
    return _open_checkout(db, gateway, entry, _gateway_metadata(entry, payer))


def retry_payment(
    db: Session,
    gateway: PaymentGateway,
    directory: ProprietorDirectory,
    payment_id: UUID,
    request: Optional[RetryPaymentRequest] = None
) -> InitializePaymentResponse:
    """New attempt for a failed entry with the same breakdown and a fresh reference."""
    original = get_entry_by_id(db, payment_id)
    if original.status != PaymentStatus.failed:
        raise InvalidState(
            f"Only failed payments can be retried; {original.reference} is {original.status.value}")

    payer = directory.get_proprietor_balance(db, original.proprietor_id)
    if not payer:
        raise PayerNotFound(f"Proprietor {original.proprietor_id} not found")

    breakdown = FeeBreakdown(
        base_minor=original.payer_share,
        platform_fee=original.platform_fee,
        processing_fee=original.processing_fee,
        beneficiary_share=original.beneficiary_share,
        currency=original.currency,
        gateway_split_id=original.gateway_split_id,
        fee_codes=original.fee_codes or [original.fee_code],
        fee_version=original.fee_version,
        multiplier=original.fee_multiplier or 1,
    )
    callback_url = (request.callback_url if request else None) or original.callback_url
    entry = _create_ledger_entry(
        db,
        payer=payer,
        email=original.payer_email,
        breakdown=breakdown,
        gateway=gateway,
        school_id=original.school_id,
        callback_url=callback_url,
        description=original.description,
        metadata=original.meta,
        retry_of_id=original.id,
    )
    logger.info("Payment %s retried as %s", original.reference, entry.reference)
    return _open_checkout(
        db, gateway, entry,
        _gateway_metadata(entry, payer, {"retry_of": original.reference}))


# ----------------------------------------------------------------------
# SETTLEMENT
# ----------------------------------------------------------------------

def verify_payment(
    db: Session,
    gateway: PaymentGateway,
    directory: ProprietorDirectory,
    reference: str
) -> PaymentLedgerEntry:
    """Reconcile an entry with the gateway. Terminal entries are returned unchanged."""
    entry = get_entry_by_reference(db, reference)
    if entry.status not in OPEN_STATUSES:
        logger.info("Payment %s already %s", reference, entry.status.value)
        return entry

    if gateway.simulated and not entry.simulated:
        raise NotAllowed(f"Payment {reference} was created against the live gateway")

    try:
        result = gateway.verify_transaction(reference)
    except GatewayRejected as e:
        result = GatewayTransactionResult(
            outcome=GatewayOutcome.failed,
            reference=reference,
            gateway_response=e.message,
            failure_reason=e.message,
        )
    except GatewayUnavailable as e:
        entry.gateway_response_text = f"verification unavailable: {e.message}"
        db.commit()
        db.refresh(entry)
        logger.warning("Could not verify %s: %s", reference, e.message)
        return entry

    apply_gateway_result(db, entry, result, directory)
    return entry


def simulate_payment(
    db: Session,
    gateway: PaymentGateway,
    directory: ProprietorDirectory,
    reference: str
) -> PaymentLedgerEntry:
    if not gateway.simulated:
        raise NotAllowed("Payment simulation is disabled in live mode")

    entry = get_entry_by_reference(db, reference)
    if not entry.simulated:
        raise NotAllowed(f"Payment {reference} is not a simulated payment")
    if entry.status not in OPEN_STATUSES:
        logger.info("Simulated payment %s already %s", reference, entry.status.value)
        return entry

    result = gateway.verify_transaction(reference)
    apply_gateway_result(db, entry, result, directory)
    logger.info("SIMULATION MODE: payment %s marked %s", reference, entry.status.value)
    return entry


def handle_webhook(
    db: Session,
    gateway: PaymentGateway,
    directory: ProprietorDirectory,
    raw_body: bytes,
    signature: Optional[str]
) -> WebhookAck:
    if not gateway.verify_webhook_signature(raw_body, signature):
        logger.warning("Webhook rejected: invalid signature")
        raise InvalidSignature("Invalid webhook signature")

    try:
        body = json.loads(raw_body)
    except ValueError:
        raise InvalidWebhookPayload("Webhook body is not valid JSON")
    if not isinstance(body, dict) or not isinstance(body.get("event"), str):
        raise InvalidWebhookPayload("Webhook body has no event")

    event_name = body["event"]
    if event_name not in KNOWN_WEBHOOK_EVENTS:
        logger.info("Unhandled webhook event: %s", event_name)
        return WebhookAck(event=event_name, handled=False)

    try:
        event = webhook_payload_adapter.validate_python(body)
    except PydanticValidationError as e:
        raise InvalidWebhookPayload(
            f"Malformed {event_name} payload",
            data={"errors": e.errors(include_url=False, include_context=False)})

    if isinstance(event, TransferEvent):
        logger.info("Transfer webhook %s for %s: %s",
                    event.event, event.data.reference, event.data.status)
        return WebhookAck(event=event.event, handled=True, reference=event.data.reference)

    return _handle_charge_event(db, directory, event, body["data"])


def _handle_charge_event(
    db: Session,
    directory: ProprietorDirectory,
    event: ChargeEvent,
    raw_data: Dict[str, Any]
) -> WebhookAck:
    entry = get_entry_by_reference(db, event.data.reference)

    result = transaction_result_from_payload(raw_data)
    if event.event == "charge.failed":
        result.outcome = GatewayOutcome.failed
        result.failure_reason = result.failure_reason or event.data.gateway_response or "charge.failed"
    elif not event.data.status:
        result.outcome = GatewayOutcome.success
        result.failure_reason = None

    apply_gateway_result(db, entry, result, directory, via_webhook=True)
    logger.info("Webhook %s processed for %s, status %s",
                event.event, entry.reference, entry.status.value)
    return WebhookAck(event=event.event, handled=True, reference=entry.reference, status=entry.status)


# ----------------------------------------------------------------------
# REFUND / CANCEL / DEACTIVATE
# ----------------------------------------------------------------------

def refund_payment(
    db: Session,
    gateway: PaymentGateway,
    payment_id: UUID,
    request: RefundPaymentRequest
) -> PaymentLedgerEntry:
    entry = get_entry_by_id(db, payment_id)
    if entry.status != PaymentStatus.success:
        raise InvalidState(
            f"Only successful payments can be refunded; {entry.reference} is {entry.status.value}")
    if request.amount > entry.amount_minor_units:
        raise ValidationError(
            f"Refund amount {request.amount} exceeds the charged amount {entry.amount_minor_units}")
    if not entry.gateway_transaction_id:
        raise InvalidState(f"Payment {entry.reference} has no gateway transaction to refund")

    target = (
        PaymentStatus.refunded if request.amount >= entry.amount_minor_units
        else PaymentStatus.partially_refunded
    )
    ensure_transition(entry, target)

    gateway.refund(entry.gateway_transaction_id, request.amount, request.merchant_note)

    applied = compare_and_set_status(
        db, entry, [PaymentStatus.success],
        status=target,
        refunded_amount=request.amount,
        refunded_at=datetime.now(timezone.utc),
        refund_reason=request.reason,
    )
    if not applied:
        db.rollback()
        raise InvalidState(f"Payment {entry.reference} was refunded concurrently")
    db.commit()
    db.refresh(entry)
    logger.info("Payment %s %s: %s", entry.reference, target.value, request.amount)
    return entry


def cancel_payment(db: Session, payment_id: UUID,
                   request: Optional[CancelPaymentRequest] = None) -> PaymentLedgerEntry:
    entry = get_entry_by_id(db, payment_id)
    ensure_transition(entry, PaymentStatus.cancelled)

    applied = compare_and_set_status(
        db, entry, OPEN_STATUSES,
        status=PaymentStatus.cancelled,
        failure_reason=(request.reason if request else None) or "cancelled",
    )
    db.commit()
    db.refresh(entry)
    if not applied:
        raise InvalidState(f"Payment {entry.reference} settled before it could be cancelled")
    logger.info("Payment %s cancelled", entry.reference)
    return entry


def deactivate_payment(db: Session, payment_id: UUID) -> PaymentOut:
    entry = get_entry_by_id(db, payment_id)
    entry.is_active = False
    db.commit()
    db.refresh(entry)
    logger.info("Payment %s deactivated", entry.reference)
    return PaymentOut.model_validate(entry)
