from datetime import datetime
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.core.config import settings
from shared.core.database import get_payments_db as get_db
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode
from ...core.dependencies import get_payment_gateway, get_proprietor_directory
from ...crud.payments import payment_reports_crud as reports
from ...crud.payments import payments_crud as crud
from ...crud.proprietors.proprietor_balance_crud import ProprietorDirectory
from ...schemas.payments.payments_schemas import (
    CancelPaymentRequest, DuesPaymentRequest, InitializePaymentRequest, InitializePaymentResponse, PaymentOut,
    PaymentsRequest, PaymentsResponse, PaymentStats, PaymentSummaryOut, RefundPaymentRequest,
    RetryPaymentRequest, SimulatePaymentRequest, VerifyPaymentRequest
)
from ....util.paystack_client import PaymentGateway

router = APIRouter(
    prefix="/api/payments",
    tags=["payments"]
)


@router.get("/health")
def health(gateway: PaymentGateway = Depends(get_payment_gateway)):
    return {
        "status": "ok",
        "payment_mode": settings.PAYMENT_MODE.value,
        "simulated": gateway.simulated,
    }

#-----------------------------------------------------------------
@router.post("/initialize", response_model=InitializePaymentResponse)
def initialize_payment(
    request: InitializePaymentRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    directory: ProprietorDirectory = Depends(get_proprietor_directory)):
    return crud.initialize_payment(db, gateway, directory, request)


@router.post("/dues", response_model=InitializePaymentResponse)
def initialize_dues_payment(
    request: DuesPaymentRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    directory: ProprietorDirectory = Depends(get_proprietor_directory)):
    return crud.initialize_dues_payment(db, gateway, directory, request)


@router.post("/verify", response_model=PaymentOut)
def verify_payment(
    request: VerifyPaymentRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    directory: ProprietorDirectory = Depends(get_proprietor_directory)):
    entry = crud.verify_payment(db, gateway, directory, request.reference)
    return PaymentOut.model_validate(entry)


# public receipt lookup, local data only
@router.get("/verify/{reference}", response_model=PaymentSummaryOut)
def get_payment_summary(reference: str, db: Session = Depends(get_db)):
    return reports.get_payment_summary(db, reference)


@router.post("/simulate", response_model=PaymentOut)
def simulate_payment(
    request: SimulatePaymentRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    directory: ProprietorDirectory = Depends(get_proprietor_directory)):
    entry = crud.simulate_payment(db, gateway, directory, request.reference)
    return PaymentOut.model_validate(entry)


@router.get("/all", response_model=PaymentsResponse)
def get_payments(
    params: PaymentsRequest = Depends(),
    db: Session = Depends(get_db)):
    return reports.get_payments(db, params)


@router.get("/stats", response_model=PaymentStats)
def get_payment_stats(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    db: Session = Depends(get_db)):
    return reports.get_payment_stats(db, date_from, date_to)


@router.get("/payer/{proprietor_id}", response_model=List[PaymentOut])
def get_payments_by_payer(proprietor_id: UUID, db: Session = Depends(get_db)):
    return reports.get_payments_by_payer(db, proprietor_id)


@router.get("/school/{school_id}", response_model=List[PaymentOut])
def get_payments_by_school(school_id: UUID, db: Session = Depends(get_db)):
    return reports.get_payments_by_school(db, school_id)


@router.get("/reference/{reference}", response_model=PaymentOut)
def get_payment_by_reference(reference: str, db: Session = Depends(get_db)):
    return reports.get_payment_by_reference(db, reference)


@router.get("/{payment_id}", response_model=PaymentOut)
def get_payment_by_id(payment_id: UUID, db: Session = Depends(get_db)):
    return reports.get_payment_by_id(db, payment_id)


@router.post("/{payment_id}/refund", response_model=PaymentOut)
def refund_payment(
    payment_id: UUID,
    request: RefundPaymentRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway)):
    entry = crud.refund_payment(db, gateway, payment_id, request)
    return PaymentOut.model_validate(entry)


@router.post("/{payment_id}/retry", response_model=InitializePaymentResponse)
def retry_payment(
    payment_id: UUID,
    request: Optional[RetryPaymentRequest] = None,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    directory: ProprietorDirectory = Depends(get_proprietor_directory)):
    return crud.retry_payment(db, gateway, directory, payment_id, request)


@router.post("/{payment_id}/cancel", response_model=PaymentOut)
def cancel_payment(
    payment_id: UUID,
    request: Optional[CancelPaymentRequest] = None,
    db: Session = Depends(get_db)):
    entry = crud.cancel_payment(db, payment_id, request)
    return PaymentOut.model_validate(entry)


# ---------------- Deactivate Payment (Soft Delete) ----------------
@router.delete("/{payment_id}", response_model=None)
def deactivate_payment(payment_id: UUID, db: Session = Depends(get_db)):
    result = crud.deactivate_payment(db, payment_id)
    return success_response(
        data=result,
        message="Payment deactivated successfully",
        status_code=AppStatusCode.DELETED_SUCCESSFULLY
    )
