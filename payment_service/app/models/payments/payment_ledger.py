import uuid
from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Column, DateTime, Enum, ForeignKey, Integer, JSON, String, Text, Uuid, func
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from shared.core.database import Base
from ...enum.payment_enum import PaymentStatus


class PaymentLedgerEntry(Base):
    """One payment attempt. Never deleted, only deactivated through is_active."""

    __tablename__ = "payment_ledger"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    reference = Column(String(64), nullable=False, unique=True, index=True)
    gateway_transaction_id = Column(String(64))
    authorization_url = Column(String(512))
    callback_url = Column(String(512))

    proprietor_id = Column(Uuid, ForeignKey("proprietors.id"), nullable=False, index=True)
    payer_email = Column(String(255), nullable=False)
    school_id = Column(Uuid, index=True)

    fee_code = Column(String(64), nullable=False, index=True)
    fee_codes = Column(JSON().with_variant(JSONB(), "postgresql"))  # full bundle selection
    fee_version = Column(Integer)
    fee_multiplier = Column(Integer, nullable=False, default=1)
    description = Column(Text)

    # snapshot of the breakdown at creation time, minor units (kobo)
    currency = Column(String(8), nullable=False, default="NGN")
    amount_minor_units = Column(BigInteger, nullable=False)
    payer_share = Column(BigInteger, nullable=False)
    platform_fee = Column(BigInteger, nullable=False, default=0)
    processing_fee = Column(BigInteger, nullable=False, default=0)
    beneficiary_share = Column(BigInteger, nullable=False, default=0)
    gateway_split_id = Column(String(64))

    status = Column(
        Enum(PaymentStatus, name="payment_status_enum"),
        nullable=False,
        default=PaymentStatus.pending,
        index=True
    )
    channel = Column(String(32))  # card|bank|simulated|...
    card_type = Column(String(32))
    bank = Column(String(64))
    gateway_response_text = Column(Text)
    failure_reason = Column(Text)
    simulated = Column(Boolean, nullable=False, default=False)

    webhook_received = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True), index=True)

    refunded_amount = Column(BigInteger)
    refunded_at = Column(DateTime(timezone=True))
    refund_reason = Column(Text)

    retry_of_id = Column(Uuid, ForeignKey("payment_ledger.id"))
    # Column name in DB stays "metadata"
    meta = Column("metadata", JSON().with_variant(JSONB(), "postgresql"))
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True),
                        server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "payer_share + platform_fee + processing_fee + beneficiary_share = amount_minor_units",
            name="ck_payment_breakdown_reconciles"),
        CheckConstraint("amount_minor_units >= 0", name="ck_payment_amount_non_negative"),
    )

    proprietor = relationship("Proprietor")
    retry_of = relationship("PaymentLedgerEntry", remote_side=[id])
