import uuid
from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Column, DateTime, Enum, Integer, JSON, Numeric, String, Text, Uuid, func
)
from sqlalchemy.dialects.postgresql import JSONB

from shared.core.database import Base
from ...enum.payment_enum import FeeRequirement, RecurringInterval


class FeeDefinition(Base):
    __tablename__ = "fee_definitions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String(64), nullable=False, unique=True, index=True)  # membership_fee|registration_fee|...
    name = Column(String(128), nullable=False)
    description = Column(Text)

    # major currency unit (Naira)
    base_amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(8), nullable=False, default="NGN")

    # fee structure; percentages 0-100, fixed amounts and cap in minor units (kobo)
    platform_fee_percent = Column(Numeric(5, 2), nullable=False, default=0)
    platform_fee_fixed = Column(BigInteger, nullable=False, default=0)
    processing_fee_percent = Column(Numeric(5, 2), nullable=False, default=0)
    processing_fee_cap = Column(BigInteger, nullable=True)  # NULL = uncapped
    beneficiary_share_percent = Column(Numeric(5, 2), nullable=False, default=0)
    beneficiary_share_fixed = Column(BigInteger, nullable=False, default=0)

    gateway_split_id = Column(String(64))  # SPL_xxxxxxxxxx
    split_description = Column(Text)

    is_active = Column(Boolean, nullable=False, default=True)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_interval = Column(Enum(RecurringInterval, name="recurring_interval_enum"))
    requirement = Column(
        Enum(FeeRequirement, name="fee_requirement_enum"),
        nullable=False,
        default=FeeRequirement.required
    )
    allow_partial_payment = Column(Boolean, nullable=False, default=False)

    valid_from = Column(DateTime(timezone=True))
    valid_until = Column(DateTime(timezone=True))
    min_amount = Column(Numeric(14, 2))
    max_amount = Column(Numeric(14, 2))

    # bumped on every administrative edit, snapshotted by payments
    version = Column(Integer, nullable=False, default=1)
    meta = Column("metadata", JSON().with_variant(JSONB(), "postgresql"))
    last_modified_by = Column(String(64))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True),
                        server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("base_amount >= 0", name="ck_fee_base_amount_non_negative"),
        CheckConstraint(
            "platform_fee_percent BETWEEN 0 AND 100 "
            "AND processing_fee_percent BETWEEN 0 AND 100 "
            "AND beneficiary_share_percent BETWEEN 0 AND 100",
            name="ck_fee_percentages_range"),
        CheckConstraint(
            "min_amount IS NULL OR max_amount IS NULL OR min_amount <= max_amount",
            name="ck_fee_min_le_max"),
    )
