"""Seed the payments database with the standard fees and a few demo proprietors.

    python -m payment_service.seed [count]
"""
import random
import sys
from decimal import Decimal

from faker import Faker
from sqlalchemy.orm import Session

from shared.core.database import PaymentsSessionLocal, payments_engine, Base
from .app import models  # noqa: F401
from .app.crud.fees.fee_definitions_crud import seed_default_fees
from .app.enum.payment_enum import ClearingStatus
from .app.models.proprietors.proprietors import Proprietor

fake = Faker("en_NG")


def seed_proprietors(db: Session, count: int = 10):
    for index in range(count):
        outstanding = random.choice([Decimal("0"), Decimal("18000"), Decimal("36000")])
        db.add(Proprietor(
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            email=f"proprietor{index}.{fake.user_name()}@example.com",
            phone=fake.phone_number(),
            submission_id=f"SUB-{1000 + index}",
            clearing_status=ClearingStatus.outstanding if outstanding else ClearingStatus.pending,
            total_amount_due=outstanding,
        ))
    db.commit()


def seed_data(count: int = 10):
    Base.metadata.create_all(bind=payments_engine)
    db: Session = PaymentsSessionLocal()
    try:
        created = seed_default_fees(db)
        print(f"Default fees created: {created or 'none'}")
        if not db.query(Proprietor).first():
            seed_proprietors(db, count)
            print(f"{count} demo proprietors created")
    finally:
        db.close()


if __name__ == "__main__":
    seed_data(int(sys.argv[1]) if len(sys.argv) > 1 else 10)
