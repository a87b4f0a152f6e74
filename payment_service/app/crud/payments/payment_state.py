"""Ledger status transitions.

Settlement is a compare-and-set on the ledger row: the UPDATE only matches
while the entry is still open, and only the caller whose UPDATE matched
applies the balance side effect. Verify, webhook and simulate all go
through `apply_gateway_result`.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.orm import Session

from ...core.exceptions import InvalidState
from ...enum.payment_enum import ALLOWED_TRANSITIONS, OPEN_STATUSES, GatewayOutcome, PaymentStatus
from ...models.payments.payment_ledger import PaymentLedgerEntry
from ..proprietors.proprietor_balance_crud import ProprietorDirectory
from ....util.paystack_client import GatewayTransactionResult

logger = logging.getLogger(__name__)

AMOUNT_MISMATCH = "amount_mismatch"


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def ensure_transition(entry: PaymentLedgerEntry, target: PaymentStatus):
    if not can_transition(entry.status, target):
        raise InvalidState(
            f"Payment {entry.reference} cannot move from {entry.status.value} to {target.value}",
            data={"reference": entry.reference, "status": entry.status.value})


def compare_and_set_status(
    db: Session,
    entry: PaymentLedgerEntry,
    expected: Iterable[PaymentStatus],
    **values
) -> bool:
    """UPDATE the entry only if its stored status is still one of `expected`.

    Does not commit. Returns True when this call won the row.
    """
    stmt = (
        update(PaymentLedgerEntry)
        .where(
            PaymentLedgerEntry.reference == entry.reference,
            PaymentLedgerEntry.status.in_(list(expected)),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount == 1


def apply_gateway_result(
    db: Session,
    entry: PaymentLedgerEntry,
    result: GatewayTransactionResult,
    directory: ProprietorDirectory,
    via_webhook: bool = False
) -> bool:
    """Settle an open entry from a gateway result. Returns True if this call settled it."""
    outcome = result.outcome
    failure_reason = result.failure_reason

    if outcome == GatewayOutcome.success and result.amount_minor_units is not None \
            and result.amount_minor_units != entry.amount_minor_units:
        logger.error(
            "Amount mismatch on %s: ledger %s, gateway %s",
            entry.reference, entry.amount_minor_units, result.amount_minor_units)
        outcome = GatewayOutcome.failed
        failure_reason = AMOUNT_MISMATCH

    target = PaymentStatus.success if outcome == GatewayOutcome.success else PaymentStatus.failed
    paid_at = (result.paid_at or datetime.now(timezone.utc)) if target == PaymentStatus.success else None

    values = {
        "status": target,
        "gateway_transaction_id": result.transaction_id or entry.gateway_transaction_id,
        "channel": result.channel or entry.channel,
        "card_type": result.card_type,
        "bank": result.bank,
        "gateway_response_text": result.gateway_response,
    }
    if target == PaymentStatus.success:
        values["paid_at"] = paid_at
    else:
        values["failure_reason"] = failure_reason
    if via_webhook:
        values["webhook_received"] = True

    applied = compare_and_set_status(db, entry, OPEN_STATUSES, **values)

    if applied:
        if target == PaymentStatus.success:
            directory.set_proprietor_cleared(db, entry.proprietor_id, paid_at)
        logger.info("Payment %s settled as %s%s", entry.reference, target.value,
                    " (webhook)" if via_webhook else "")
    else:
        if via_webhook:
            db.execute(
                update(PaymentLedgerEntry)
                .where(PaymentLedgerEntry.reference == entry.reference)
                .values(webhook_received=True)
                .execution_options(synchronize_session=False)
            )
        db.refresh(entry)
        if entry.status == PaymentStatus.failed and target == PaymentStatus.success:
            logger.warning(
                "Payment %s is failed locally but the gateway reports success; "
                "needs manual reconciliation", entry.reference)
        else:
            logger.info("Payment %s already %s, result ignored", entry.reference, entry.status.value)

    db.commit()
    db.refresh(entry)
    return applied
