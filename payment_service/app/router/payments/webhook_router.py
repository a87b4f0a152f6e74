from typing import Optional
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from shared.core.database import get_payments_db as get_db
from ...core.dependencies import get_payment_gateway, get_proprietor_directory
from ...crud.payments import payments_crud as crud
from ...crud.proprietors.proprietor_balance_crud import ProprietorDirectory
from ...schemas.payments.payments_schemas import WebhookAck
from ....util.paystack_client import PaymentGateway

router = APIRouter(
    prefix="/api/payments/webhook",
    tags=["webhooks"]
)


@router.post("", response_model=WebhookAck)
async def paystack_webhook(
    request: Request,
    x_paystack_signature: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    directory: ProprietorDirectory = Depends(get_proprietor_directory)):
    # the signature covers the exact bytes sent, so read before any parsing
    raw_body = await request.body()
    return await run_in_threadpool(
        crud.handle_webhook, db, gateway, directory, raw_body, x_paystack_signature)
