from datetime import datetime
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, EmailStr, Field, computed_field
from typing import Dict, List, Optional, Union

from shared.core.schemas import CommonQueryParams
from shared.wrappers.empty_string_model_wrapper import EmptyStringModel
from ...enum.payment_enum import PaymentSortField, PaymentStatus

MetadataValue = Union[str, int, float, bool]


class InitializePaymentRequest(EmptyStringModel):
    proprietor_id: UUID
    fee_codes: List[str] = Field(min_length=1)
    # major units; only honoured for a single fee code
    amount: Optional[Decimal] = Field(default=None, ge=0)
    fee_multiplier: int = Field(default=1, ge=1, le=10)
    email: Optional[EmailStr] = None
    school_id: Optional[UUID] = None
    callback_url: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, MetadataValue]] = None


class DuesPaymentRequest(EmptyStringModel):
    proprietor_id: Optional[UUID] = None
    submission_id: Optional[str] = None
    callback_url: Optional[str] = None


class InitializePaymentResponse(BaseModel):
    id: UUID
    reference: str
    authorization_url: Optional[str] = None
    amount_minor_units: int
    currency: str
    status: PaymentStatus
    simulated: bool


class VerifyPaymentRequest(EmptyStringModel):
    reference: str = Field(min_length=1)


class SimulatePaymentRequest(EmptyStringModel):
    reference: str = Field(min_length=1)


class RefundPaymentRequest(EmptyStringModel):
    # minor units
    amount: int = Field(gt=0)
    reason: Optional[str] = None
    merchant_note: Optional[str] = None


class RetryPaymentRequest(EmptyStringModel):
    callback_url: Optional[str] = None


class CancelPaymentRequest(EmptyStringModel):
    reason: Optional[str] = None


class PaymentOut(BaseModel):
    id: UUID
    reference: str
    proprietor_id: UUID
    payer_email: str
    school_id: Optional[UUID] = None
    fee_code: str
    fee_codes: Optional[List[str]] = None
    fee_version: Optional[int] = None
    fee_multiplier: int
    description: Optional[str] = None
    currency: str
    amount_minor_units: int
    payer_share: int
    platform_fee: int
    processing_fee: int
    beneficiary_share: int
    gateway_split_id: Optional[str] = None
    status: PaymentStatus
    channel: Optional[str] = None
    card_type: Optional[str] = None
    bank: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    authorization_url: Optional[str] = None
    gateway_response_text: Optional[str] = None
    failure_reason: Optional[str] = None
    simulated: bool
    webhook_received: bool
    paid_at: Optional[datetime] = None
    refunded_amount: Optional[int] = None
    refunded_at: Optional[datetime] = None
    refund_reason: Optional[str] = None
    retry_of_id: Optional[UUID] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def total_fees(self) -> int:
        return self.platform_fee + self.processing_fee + self.beneficiary_share

    @computed_field
    @property
    def amount(self) -> Decimal:
        return Decimal(self.amount_minor_units) / 100


class PaymentsRequest(CommonQueryParams):
    status: Optional[PaymentStatus] = None
    fee_code: Optional[str] = None
    proprietor_id: Optional[UUID] = None
    school_id: Optional[UUID] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    # minor units
    amount_min: Optional[int] = Field(default=None, ge=0)
    amount_max: Optional[int] = Field(default=None, ge=0)
    sort_by: PaymentSortField = PaymentSortField.created_at
    sort_desc: bool = True


class PaymentsResponse(BaseModel):
    payments: List[PaymentOut]
    total: int
    skip: int
    limit: int


class PaymentSummaryOut(BaseModel):
    """Public view of a payment, safe to show on a receipt page."""

    reference: str
    status: PaymentStatus
    amount_minor_units: int
    currency: str
    fee_code: str
    paid_at: Optional[datetime] = None
    channel: Optional[str] = None
    payer_name: Optional[str] = None

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def amount(self) -> Decimal:
        return Decimal(self.amount_minor_units) / 100


class StatusCount(BaseModel):
    status: PaymentStatus
    count: int
    amount_minor_units: int


class FeeCodeCount(BaseModel):
    fee_code: str
    count: int
    amount_minor_units: int


class MonthlyTrend(BaseModel):
    month: str  # YYYY-MM
    count: int
    amount_minor_units: int


class PaymentStats(BaseModel):
    total_payments: int
    successful_payments: int
    failed_payments: int
    pending_payments: int
    refunded_payments: int
    success_rate: float
    total_collected_minor_units: int
    total_refunded_minor_units: int
    average_amount_minor_units: int
    by_status: List[StatusCount]
    by_fee_code: List[FeeCodeCount]
    monthly_trends: List[MonthlyTrend]


class WebhookAck(BaseModel):
    event: str
    handled: bool
    reference: Optional[str] = None
    status: Optional[PaymentStatus] = None
