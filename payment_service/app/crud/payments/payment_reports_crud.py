from collections import OrderedDict
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...enum.payment_enum import OPEN_STATUSES, PaymentStatus
from ...models.payments.payment_ledger import PaymentLedgerEntry
from ...schemas.payments.payments_schemas import (
    FeeCodeCount, MonthlyTrend, PaymentOut, PaymentsRequest, PaymentsResponse, PaymentStats,
    PaymentSummaryOut, StatusCount
)
from .payments_crud import get_entry_by_id, get_entry_by_reference

REFUNDED_STATUSES = (PaymentStatus.refunded, PaymentStatus.partially_refunded)


# ----------------------------------------------------------------------
# LISTING
# ----------------------------------------------------------------------

def build_payments_filters(params: PaymentsRequest):
    filters = [PaymentLedgerEntry.is_active == True]

    if params.status:
        filters.append(PaymentLedgerEntry.status == params.status)

    if params.fee_code:
        filters.append(PaymentLedgerEntry.fee_code == params.fee_code)

    if params.proprietor_id:
        filters.append(PaymentLedgerEntry.proprietor_id == params.proprietor_id)

    if params.school_id:
        filters.append(PaymentLedgerEntry.school_id == params.school_id)

    if params.date_from:
        filters.append(PaymentLedgerEntry.created_at >= params.date_from)

    if params.date_to:
        filters.append(PaymentLedgerEntry.created_at <= params.date_to)

    if params.amount_min is not None:
        filters.append(PaymentLedgerEntry.amount_minor_units >= params.amount_min)

    if params.amount_max is not None:
        filters.append(PaymentLedgerEntry.amount_minor_units <= params.amount_max)

    if params.search:
        search_term = f"%{params.search}%"
        filters.append(or_(
            PaymentLedgerEntry.reference.ilike(search_term),
            PaymentLedgerEntry.payer_email.ilike(search_term),
            PaymentLedgerEntry.description.ilike(search_term),
        ))

    return filters


def get_payments(db: Session, params: PaymentsRequest) -> PaymentsResponse:
    base_query = db.query(PaymentLedgerEntry).filter(*build_payments_filters(params))
    total = base_query.with_entities(func.count(PaymentLedgerEntry.id)).scalar()

    sort_column = getattr(PaymentLedgerEntry, params.sort_by.value)
    payments = (
        base_query
        .order_by(sort_column.desc() if params.sort_desc else sort_column.asc())
        .offset(params.skip)
        .limit(params.limit)
        .all()
    )

    return PaymentsResponse(
        payments=[PaymentOut.model_validate(p) for p in payments],
        total=total,
        skip=params.skip,
        limit=params.limit,
    )


def get_payment_by_id(db: Session, payment_id: UUID) -> PaymentOut:
    return PaymentOut.model_validate(get_entry_by_id(db, payment_id))


def get_payment_by_reference(db: Session, reference: str) -> PaymentOut:
    """Local lookup only; never contacts the gateway."""
    return PaymentOut.model_validate(get_entry_by_reference(db, reference))


def get_payments_by_payer(db: Session, proprietor_id: UUID) -> List[PaymentOut]:
    payments = (
        db.query(PaymentLedgerEntry)
        .filter(
            PaymentLedgerEntry.proprietor_id == proprietor_id,
            PaymentLedgerEntry.is_active == True
        )
        .order_by(PaymentLedgerEntry.created_at.desc())
        .all()
    )
    return [PaymentOut.model_validate(p) for p in payments]


def get_payments_by_school(db: Session, school_id: UUID) -> List[PaymentOut]:
    payments = (
        db.query(PaymentLedgerEntry)
        .filter(
            PaymentLedgerEntry.school_id == school_id,
            PaymentLedgerEntry.is_active == True
        )
        .order_by(PaymentLedgerEntry.created_at.desc())
        .all()
    )
    return [PaymentOut.model_validate(p) for p in payments]


def get_payment_summary(db: Session, reference: str) -> PaymentSummaryOut:
    entry = get_entry_by_reference(db, reference)
    return PaymentSummaryOut(
        reference=entry.reference,
        status=entry.status,
        amount_minor_units=entry.amount_minor_units,
        currency=entry.currency,
        fee_code=entry.fee_code,
        paid_at=entry.paid_at,
        channel=entry.channel,
        payer_name=entry.proprietor.full_name if entry.proprietor else None,
    )


# ----------------------------------------------------------------------
# STATISTICS
# ----------------------------------------------------------------------

def get_payment_stats(db: Session, date_from: Optional[datetime] = None,
                      date_to: Optional[datetime] = None) -> PaymentStats:
    filters = [PaymentLedgerEntry.is_active == True]
    if date_from:
        filters.append(PaymentLedgerEntry.created_at >= date_from)
    if date_to:
        filters.append(PaymentLedgerEntry.created_at <= date_to)

    status_rows = (
        db.query(
            PaymentLedgerEntry.status,
            func.count(PaymentLedgerEntry.id),
            func.coalesce(func.sum(PaymentLedgerEntry.amount_minor_units), 0),
        )
        .filter(*filters)
        .group_by(PaymentLedgerEntry.status)
        .all()
    )
    by_status = [
        StatusCount(status=status, count=count, amount_minor_units=int(amount))
        for status, count, amount in status_rows
    ]
    counts = {s.status: s for s in by_status}

    def count_of(*statuses):
        return sum(counts[s].count for s in statuses if s in counts)

    def amount_of(*statuses):
        return sum(counts[s].amount_minor_units for s in statuses if s in counts)

    total = sum(s.count for s in by_status)
    successful = count_of(PaymentStatus.success, *REFUNDED_STATUSES)
    collected = amount_of(PaymentStatus.success, *REFUNDED_STATUSES)

    refunded_total = (
        db.query(func.coalesce(func.sum(PaymentLedgerEntry.refunded_amount), 0))
        .filter(*filters, PaymentLedgerEntry.status.in_(REFUNDED_STATUSES))
        .scalar()
    )

    fee_rows = (
        db.query(
            PaymentLedgerEntry.fee_code,
            func.count(PaymentLedgerEntry.id),
            func.coalesce(func.sum(PaymentLedgerEntry.amount_minor_units), 0),
        )
        .filter(*filters, PaymentLedgerEntry.status == PaymentStatus.success)
        .group_by(PaymentLedgerEntry.fee_code)
        .all()
    )

    # bucketed in Python so the query stays portable across databases
    monthly = OrderedDict()
    paid_rows = (
        db.query(PaymentLedgerEntry.paid_at, PaymentLedgerEntry.amount_minor_units)
        .filter(*filters, PaymentLedgerEntry.status == PaymentStatus.success,
                PaymentLedgerEntry.paid_at.isnot(None))
        .order_by(PaymentLedgerEntry.paid_at.asc())
        .all()
    )
    for paid_at, amount in paid_rows:
        month = paid_at.strftime("%Y-%m")
        bucket = monthly.setdefault(month, [0, 0])
        bucket[0] += 1
        bucket[1] += amount

    return PaymentStats(
        total_payments=total,
        successful_payments=successful,
        failed_payments=count_of(PaymentStatus.failed),
        pending_payments=count_of(*OPEN_STATUSES),
        refunded_payments=count_of(*REFUNDED_STATUSES),
        success_rate=round(successful / total * 100, 2) if total else 0.0,
        total_collected_minor_units=collected,
        total_refunded_minor_units=int(refunded_total),
        average_amount_minor_units=round(collected / successful) if successful else 0,
        by_status=by_status,
        by_fee_code=[
            FeeCodeCount(fee_code=code, count=count, amount_minor_units=int(amount))
            for code, count, amount in fee_rows
        ],
        monthly_trends=[
            MonthlyTrend(month=month, count=count, amount_minor_units=amount)
            for month, (count, amount) in monthly.items()
        ],
    )
