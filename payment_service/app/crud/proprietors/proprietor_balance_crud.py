import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ...enum.payment_enum import ClearingStatus
from ...models.proprietors.proprietors import Proprietor
from ...schemas.proprietors.proprietor_schemas import ProprietorBalance

logger = logging.getLogger(__name__)


class ProprietorDirectory:
    """Read the payer's balance and clear it once a payment settles.

    `set_proprietor_cleared` joins the caller's transaction and does not
    commit, so the balance and the ledger change land together.
    """

    def get_proprietor_balance(self, db: Session, proprietor_id: UUID) -> Optional[ProprietorBalance]:
        proprietor = db.query(Proprietor).filter(
            Proprietor.id == proprietor_id,
            Proprietor.is_active == True
        ).first()
        return ProprietorBalance.model_validate(proprietor) if proprietor else None

    def find_proprietor(self, db: Session, proprietor_id: Optional[UUID] = None,
                        submission_id: Optional[str] = None) -> Optional[ProprietorBalance]:
        if proprietor_id:
            return self.get_proprietor_balance(db, proprietor_id)
        if submission_id:
            proprietor = db.query(Proprietor).filter(
                Proprietor.submission_id == submission_id,
                Proprietor.is_active == True
            ).first()
            return ProprietorBalance.model_validate(proprietor) if proprietor else None
        return None

    def set_proprietor_cleared(self, db: Session, proprietor_id: UUID, paid_at: datetime) -> None:
        proprietor = db.query(Proprietor).filter(Proprietor.id == proprietor_id).first()
        if not proprietor:
            logger.error("Cannot clear balance: proprietor %s not found", proprietor_id)
            return
        proprietor.clearing_status = ClearingStatus.cleared
        proprietor.total_amount_due = 0
        proprietor.last_payment_date = paid_at
        db.flush()
        logger.info("Proprietor %s cleared", proprietor_id)
