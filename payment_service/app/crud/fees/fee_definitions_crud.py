import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from shared.core.config import settings
from ...core.exceptions import FeeCodeConflict, FeeNotFound, ValidationError
from ...enum.payment_enum import FeeRequirement, RecurringInterval
from ...models.fees.fee_definitions import FeeDefinition
from ...schemas.fees.fee_definitions_schemas import (
    BulkFeeUpdateRequest, BulkFeeUpdateResult, FeeBreakdown, FeeCalculationOut, FeeCalculationRequest,
    FeeDefinitionCreate, FeeDefinitionOut, FeeDefinitionsRequest, FeeDefinitionsResponse,
    FeeDefinitionUpdate, FeeStatistics, FeeStructure
)
from . import fee_calculator

logger = logging.getLogger(__name__)

STRUCTURE_FIELDS = tuple(FeeStructure.model_fields.keys())
REQUIRED_FIELDS = {
    "code", "name", "base_amount", "currency", "is_active", "is_recurring",
    "requirement", "allow_partial_payment",
}

DEFAULT_FEES = [
    {
        "code": "membership_fee",
        "name": "Membership Fee",
        "base_amount": Decimal("5000"),
        "description": "Annual NAPPS membership fee",
        "requirement": FeeRequirement.required,
        "is_recurring": True,
        "recurring_interval": RecurringInterval.annually,
    },
    {
        "code": "registration_fee",
        "name": "Registration Fee",
        "base_amount": Decimal("10000"),
        "description": "One-time school registration fee",
        "requirement": FeeRequirement.required,
    },
    {
        "code": "digital_capturing",
        "name": "Digital Capturing",
        "base_amount": Decimal("3000"),
        "description": "Digital data capturing service",
        "requirement": FeeRequirement.optional,
    },
]


def fee_definition_to_out(fee: FeeDefinition) -> FeeDefinitionOut:
    return FeeDefinitionOut(
        id=fee.id,
        code=fee.code,
        name=fee.name,
        description=fee.description,
        base_amount=fee.base_amount,
        currency=fee.currency,
        fee_structure=FeeStructure.model_validate(fee),
        gateway_split_id=fee.gateway_split_id,
        split_description=fee.split_description,
        is_active=fee.is_active,
        is_recurring=fee.is_recurring,
        recurring_interval=fee.recurring_interval,
        requirement=fee.requirement,
        allow_partial_payment=fee.allow_partial_payment,
        valid_from=fee.valid_from,
        valid_until=fee.valid_until,
        min_amount=fee.min_amount,
        max_amount=fee.max_amount,
        version=fee.version,
        metadata=fee.meta,
        created_at=fee.created_at,
        updated_at=fee.updated_at,
    )


def _apply_structure(fee: FeeDefinition, structure: FeeStructure):
    for name in STRUCTURE_FIELDS:
        setattr(fee, name, getattr(structure, name))


def active_window_filters(as_of: datetime):
    return [
        FeeDefinition.is_active == True,
        or_(FeeDefinition.valid_from.is_(None), FeeDefinition.valid_from <= as_of),
        or_(FeeDefinition.valid_until.is_(None), FeeDefinition.valid_until >= as_of),
    ]


# ----------------------------------------------------------------------
# QUERIES
# ----------------------------------------------------------------------

def build_fee_definitions_filters(params: FeeDefinitionsRequest):
    filters = []

    if params.code:
        filters.append(FeeDefinition.code == params.code)

    if params.is_active is not None:
        filters.append(FeeDefinition.is_active == params.is_active)

    if params.is_recurring is not None:
        filters.append(FeeDefinition.is_recurring == params.is_recurring)

    if params.requirement:
        filters.append(FeeDefinition.requirement == params.requirement)

    if params.search:
        search_term = f"%{params.search}%"
        filters.append(or_(
            FeeDefinition.name.ilike(search_term),
            FeeDefinition.description.ilike(search_term),
        ))

    return filters


def get_fee_definitions(db: Session, params: FeeDefinitionsRequest) -> FeeDefinitionsResponse:
    base_query = db.query(FeeDefinition).filter(*build_fee_definitions_filters(params))
    total = base_query.with_entities(func.count(FeeDefinition.id)).scalar()

    fees = (
        base_query
        .order_by(FeeDefinition.created_at.desc())
        .offset(params.skip)
        .limit(params.limit)
        .all()
    )

    return FeeDefinitionsResponse(fees=[fee_definition_to_out(f) for f in fees], total=total)


def get_active_fee_definitions(db: Session, as_of: Optional[datetime] = None) -> List[FeeDefinition]:
    as_of = as_of or datetime.now(timezone.utc)
    return (
        db.query(FeeDefinition)
        .filter(*active_window_filters(as_of))
        .order_by(FeeDefinition.name.asc())
        .all()
    )


def get_fee_by_id(db: Session, fee_id: UUID) -> FeeDefinition:
    fee = db.query(FeeDefinition).filter(FeeDefinition.id == fee_id).first()
    if not fee:
        raise FeeNotFound(f"Fee definition with ID {fee_id} not found")
    return fee


def get_fee_by_code(db: Session, code: str) -> FeeDefinition:
    fee = db.query(FeeDefinition).filter(
        FeeDefinition.code == code,
        FeeDefinition.is_active == True
    ).first()
    if not fee:
        raise FeeNotFound(f"Fee definition with code \"{code}\" not found")
    return fee


def resolve_active_fee(db: Session, code: str, as_of: Optional[datetime] = None) -> FeeDefinition:
    """The definition for `code` that is active and inside its validity window."""
    as_of = as_of or datetime.now(timezone.utc)
    fee = db.query(FeeDefinition).filter(
        FeeDefinition.code == code,
        *active_window_filters(as_of)
    ).first()
    if not fee:
        raise FeeNotFound(f"No active fee definition for code \"{code}\"")
    return fee


def resolve_active_fees(db: Session, codes: List[str], as_of: Optional[datetime] = None) -> List[FeeDefinition]:
    if not codes:
        raise ValidationError("At least one fee code is required")
    as_of = as_of or datetime.now(timezone.utc)
    # preserve caller order; the first code decides the fee structure
    return [resolve_active_fee(db, code, as_of) for code in codes]


# ----------------------------------------------------------------------
# CALCULATION
# ----------------------------------------------------------------------

def calculate_fee(
    db: Session,
    codes: List[str],
    override_amount: Optional[Decimal] = None,
    multiplier: int = 1,
    as_of: Optional[datetime] = None
) -> FeeBreakdown:
    definitions = resolve_active_fees(db, codes, as_of)
    return fee_calculator.breakdown_for_definitions(definitions, override_amount, multiplier)


def calculate_fee_with_formatting(db: Session, request: FeeCalculationRequest) -> FeeCalculationOut:
    breakdown = calculate_fee(db, request.fee_codes, request.custom_amount, request.multiplier)
    return FeeCalculationOut(
        breakdown=breakdown,
        formatted=fee_calculator.format_breakdown(breakdown),
    )


# ----------------------------------------------------------------------
# CRUD OPERATIONS
# ----------------------------------------------------------------------

def _ensure_code_available(db: Session, code: str, exclude_id: Optional[UUID] = None):
    query = db.query(FeeDefinition).filter(func.lower(FeeDefinition.code) == code.lower())
    if exclude_id:
        query = query.filter(FeeDefinition.id != exclude_id)
    if query.first():
        raise FeeCodeConflict(f"Fee definition with code \"{code}\" already exists")


def create_fee_definition(db: Session, request: FeeDefinitionCreate,
                          modified_by: Optional[str] = None) -> FeeDefinitionOut:
    _ensure_code_available(db, request.code)

    data = request.model_dump(exclude={"fee_structure", "metadata"})
    data["currency"] = (data.get("currency") or settings.DEFAULT_CURRENCY).upper()
    fee = FeeDefinition(**data, meta=request.metadata, last_modified_by=modified_by, version=1)
    _apply_structure(fee, request.fee_structure)

    db.add(fee)
    db.commit()
    db.refresh(fee)
    logger.info("Fee definition created: %s (%s)", fee.code, fee.id)
    return fee_definition_to_out(fee)


def update_fee_definition(db: Session, fee_id: UUID, request: FeeDefinitionUpdate,
                          modified_by: Optional[str] = None) -> FeeDefinitionOut:
    fee = get_fee_by_id(db, fee_id)
    update_data = request.model_dump(exclude_unset=True)

    if update_data.get("code") and update_data["code"].lower() != fee.code.lower():
        _ensure_code_available(db, update_data["code"], exclude_id=fee.id)

    structure = update_data.pop("fee_structure", None)
    if structure is not None:
        _apply_structure(fee, FeeStructure(**structure))
    if "metadata" in update_data:
        fee.meta = update_data.pop("metadata")

    for key, value in update_data.items():
        if value is None and key in REQUIRED_FIELDS:
            continue
        setattr(fee, key, value)

    if fee.min_amount is not None and fee.max_amount is not None and fee.min_amount > fee.max_amount:
        db.rollback()
        raise ValidationError("min_amount must not exceed max_amount")
    if (fee.min_amount is not None and fee.base_amount < fee.min_amount) \
            or (fee.max_amount is not None and fee.base_amount > fee.max_amount):
        db.rollback()
        raise ValidationError("base_amount must be within min_amount and max_amount")

    fee.version = (fee.version or 1) + 1
    fee.last_modified_by = modified_by
    db.commit()
    db.refresh(fee)
    logger.info("Fee definition %s updated to version %s", fee.code, fee.version)
    return fee_definition_to_out(fee)


def toggle_fee_active(db: Session, fee_id: UUID, modified_by: Optional[str] = None) -> FeeDefinitionOut:
    fee = get_fee_by_id(db, fee_id)
    fee.is_active = not fee.is_active
    fee.version = (fee.version or 1) + 1
    fee.last_modified_by = modified_by
    db.commit()
    db.refresh(fee)
    logger.info("Fee definition %s is now %s", fee.code, "active" if fee.is_active else "inactive")
    return fee_definition_to_out(fee)


def delete_fee_definition(db: Session, fee_id: UUID) -> bool:
    fee = get_fee_by_id(db, fee_id)
    db.delete(fee)
    db.commit()
    logger.info("Fee definition %s deleted", fee_id)
    return True


def bulk_update_fees(db: Session, request: BulkFeeUpdateRequest,
                     modified_by: Optional[str] = None) -> BulkFeeUpdateResult:
    updated = 0
    failed = 0

    for fee_id in request.fee_ids:
        fee = db.query(FeeDefinition).filter(FeeDefinition.id == fee_id).first()
        if not fee:
            logger.error("Bulk update: fee %s not found", fee_id)
            failed += 1
            continue

        if request.is_active is not None:
            fee.is_active = request.is_active
        if request.fee_structure is not None:
            _apply_structure(fee, request.fee_structure)
        fee.version = (fee.version or 1) + 1
        fee.last_modified_by = modified_by
        updated += 1

    db.commit()
    logger.info("Bulk update completed: %s updated, %s failed", updated, failed)
    return BulkFeeUpdateResult(updated=updated, failed=failed)


def get_fee_statistics(db: Session) -> FeeStatistics:
    row = db.query(
        func.count(FeeDefinition.id).label("total"),
        func.coalesce(func.sum(case((FeeDefinition.is_active == True, 1), else_=0)), 0).label("active"),
        func.coalesce(func.sum(case((FeeDefinition.is_recurring == True, 1), else_=0)), 0).label("recurring"),
        func.coalesce(func.sum(case(
            (FeeDefinition.requirement == FeeRequirement.required, 1), else_=0)), 0).label("required"),
        func.coalesce(func.sum(case(
            (FeeDefinition.requirement == FeeRequirement.optional, 1), else_=0)), 0).label("optional"),
        func.coalesce(func.avg(FeeDefinition.base_amount), 0).label("average"),
        func.coalesce(func.sum(FeeDefinition.base_amount), 0).label("total_amount"),
    ).one()

    return FeeStatistics(
        total_configurations=row.total,
        active_configurations=row.active,
        inactive_configurations=row.total - row.active,
        recurring_fees=row.recurring,
        required_fees=row.required,
        optional_fees=row.optional,
        average_amount=Decimal(str(row.average)).quantize(Decimal("0.01")),
        total_configured_amount=Decimal(str(row.total_amount)),
    )


def seed_default_fees(db: Session) -> List[str]:
    """Create the standard fee definitions that are missing. Returns the codes created."""
    created = []
    for fee_data in DEFAULT_FEES:
        existing = db.query(FeeDefinition).filter(FeeDefinition.code == fee_data["code"]).first()
        if existing:
            continue
        db.add(FeeDefinition(**fee_data, currency=settings.DEFAULT_CURRENCY, version=1))
        created.append(fee_data["code"])
        logger.info("Default fee created: %s", fee_data["name"])

    db.commit()
    return created
