from datetime import datetime
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel
from typing import Optional

from ...enum.payment_enum import ClearingStatus


class ProprietorBalance(BaseModel):
    id: UUID
    full_name: str
    email: str
    school_id: Optional[UUID] = None
    submission_id: Optional[str] = None
    clearing_status: ClearingStatus
    total_amount_due: Decimal
    last_payment_date: Optional[datetime] = None

    model_config = {"from_attributes": True}
