from datetime import datetime
from pydantic import BaseModel, Field, TypeAdapter
from typing import Annotated, Literal, Optional, Union


class GatewayAuthorization(BaseModel):
    authorization_code: Optional[str] = None
    card_type: Optional[str] = None
    bank: Optional[str] = None
    channel: Optional[str] = None
    last4: Optional[str] = None


class ChargeData(BaseModel):
    id: Optional[Union[int, str]] = None
    reference: str
    status: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    channel: Optional[str] = None
    gateway_response: Optional[str] = None
    paid_at: Optional[datetime] = None
    authorization: Optional[GatewayAuthorization] = None


class TransferData(BaseModel):
    reference: Optional[str] = None
    transfer_code: Optional[str] = None
    amount: Optional[int] = None
    status: Optional[str] = None
    reason: Optional[str] = None


class ChargeEvent(BaseModel):
    event: Literal["charge.success", "charge.failed"]
    data: ChargeData


class TransferEvent(BaseModel):
    event: Literal["transfer.success", "transfer.failed"]
    data: TransferData


WebhookPayload = Annotated[Union[ChargeEvent, TransferEvent], Field(discriminator="event")]

webhook_payload_adapter = TypeAdapter(WebhookPayload)
