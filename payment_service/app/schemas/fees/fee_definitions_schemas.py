from datetime import datetime
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, Field, computed_field, model_validator
from typing import Dict, List, Optional, Union

from shared.core.schemas import CommonQueryParams
from shared.wrappers.empty_string_model_wrapper import EmptyStringModel
from ...enum.payment_enum import FeeRequirement, RecurringInterval


class FeeStructure(BaseModel):
    """Split arithmetic for one fee. Percentages 0-100, fixed values in minor units."""

    platform_fee_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    platform_fee_fixed: int = Field(default=0, ge=0)
    processing_fee_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    # None or 0 means uncapped
    processing_fee_cap: Optional[int] = Field(default=None, ge=0)
    beneficiary_share_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    beneficiary_share_fixed: int = Field(default=0, ge=0)

    model_config = {"from_attributes": True}


class FeeBreakdown(BaseModel):
    """Minor-unit breakdown of a charge. Totals are derived, never stored."""

    base_minor: int
    platform_fee: int
    processing_fee: int
    beneficiary_share: int
    currency: str
    gateway_split_id: Optional[str] = None
    fee_codes: List[str] = []
    fee_version: Optional[int] = None
    multiplier: int = 1

    model_config = {"frozen": True}

    @computed_field
    @property
    def total_fees(self) -> int:
        return self.platform_fee + self.processing_fee + self.beneficiary_share

    @computed_field
    @property
    def total(self) -> int:
        return self.base_minor + self.total_fees


class FeeDefinitionBase(EmptyStringModel):
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=128)
    description: Optional[str] = None
    base_amount: Decimal = Field(ge=0)
    currency: Optional[str] = None  # DEFAULT_CURRENCY when omitted
    fee_structure: FeeStructure = FeeStructure()
    gateway_split_id: Optional[str] = None
    split_description: Optional[str] = None
    is_active: bool = True
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    requirement: FeeRequirement = FeeRequirement.required
    allow_partial_payment: bool = False
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    min_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_amount: Optional[Decimal] = Field(default=None, ge=0)
    metadata: Optional[Dict[str, Union[str, int, float, bool]]] = None

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min_amount is not None and self.max_amount is not None \
                and self.min_amount > self.max_amount:
            raise ValueError("min_amount must not exceed max_amount")
        if self.min_amount is not None and self.base_amount < self.min_amount:
            raise ValueError("base_amount must not be below min_amount")
        if self.max_amount is not None and self.base_amount > self.max_amount:
            raise ValueError("base_amount must not exceed max_amount")
        if self.valid_from and self.valid_until and self.valid_from > self.valid_until:
            raise ValueError("valid_from must not be after valid_until")
        return self


class FeeDefinitionCreate(FeeDefinitionBase):
    pass


class FeeDefinitionUpdate(EmptyStringModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    name: Optional[str] = None
    description: Optional[str] = None
    base_amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[str] = None
    fee_structure: Optional[FeeStructure] = None
    gateway_split_id: Optional[str] = None
    split_description: Optional[str] = None
    is_active: Optional[bool] = None
    is_recurring: Optional[bool] = None
    recurring_interval: Optional[RecurringInterval] = None
    requirement: Optional[FeeRequirement] = None
    allow_partial_payment: Optional[bool] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    min_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_amount: Optional[Decimal] = Field(default=None, ge=0)
    metadata: Optional[Dict[str, Union[str, int, float, bool]]] = None


class FeeDefinitionOut(BaseModel):
    id: UUID
    code: str
    name: str
    description: Optional[str] = None
    base_amount: Decimal
    currency: str
    fee_structure: FeeStructure
    gateway_split_id: Optional[str] = None
    split_description: Optional[str] = None
    is_active: bool
    is_recurring: bool
    recurring_interval: Optional[RecurringInterval] = None
    requirement: FeeRequirement
    allow_partial_payment: bool
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    version: int
    metadata: Optional[Dict[str, Union[str, int, float, bool]]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class FeeDefinitionsRequest(CommonQueryParams):
    code: Optional[str] = None
    is_active: Optional[bool] = None
    is_recurring: Optional[bool] = None
    requirement: Optional[FeeRequirement] = None


class FeeDefinitionsResponse(BaseModel):
    fees: List[FeeDefinitionOut]
    total: int

    model_config = {"from_attributes": True}


class FeeCalculationRequest(EmptyStringModel):
    fee_codes: List[str] = Field(min_length=1)
    custom_amount: Optional[Decimal] = Field(default=None, ge=0)
    multiplier: int = Field(default=1, ge=1, le=10)


class FormattedBreakdown(BaseModel):
    base_amount: str
    platform_fee: str
    processing_fee: str
    beneficiary_share: str
    total_fees: str
    total_amount: str


class FeeCalculationOut(BaseModel):
    breakdown: FeeBreakdown
    formatted: FormattedBreakdown


class BulkFeeUpdateRequest(BaseModel):
    fee_ids: List[UUID] = Field(min_length=1)
    is_active: Optional[bool] = None
    fee_structure: Optional[FeeStructure] = None


class BulkFeeUpdateResult(BaseModel):
    updated: int
    failed: int


class FeeStatistics(BaseModel):
    total_configurations: int
    active_configurations: int
    inactive_configurations: int
    recurring_fees: int
    required_fees: int
    optional_fees: int
    average_amount: Decimal
    total_configured_amount: Decimal
