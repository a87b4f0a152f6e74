# Balance view of the proprietor record. The proprietor module owns this table;
# payments only read identity/balance and clear it on settlement.
import uuid
from sqlalchemy import (
    Boolean, Column, DateTime, Enum, Numeric, String, Uuid, func
)

from shared.core.database import Base
from ...enum.payment_enum import ClearingStatus


class Proprietor(Base):
    __tablename__ = "proprietors"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name = Column(String(64), nullable=False)
    middle_name = Column(String(64))
    last_name = Column(String(64), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(32))
    submission_id = Column(String(64), unique=True)
    registration_number = Column(String(64), unique=True)
    school_id = Column(Uuid)

    clearing_status = Column(
        Enum(ClearingStatus, name="clearing_status_enum"),
        nullable=False,
        default=ClearingStatus.pending
    )
    total_amount_due = Column(Numeric(14, 2), nullable=False, default=0)
    last_payment_date = Column(DateTime(timezone=True))

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True),
                        server_default=func.now(), onupdate=func.now())

    @property
    def full_name(self) -> str:
        middle = f" {self.middle_name}" if self.middle_name else ""
        return f"{self.first_name}{middle} {self.last_name}"
