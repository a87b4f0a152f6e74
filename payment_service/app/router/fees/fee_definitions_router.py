from typing import List
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shared.core.database import get_payments_db as get_db
from shared.helpers.json_response_helper import success_response
from shared.utils.app_status_code import AppStatusCode
from ...crud.fees import fee_definitions_crud as crud
from ...schemas.fees.fee_definitions_schemas import (
    BulkFeeUpdateRequest, BulkFeeUpdateResult, FeeCalculationOut, FeeCalculationRequest, FeeDefinitionCreate,
    FeeDefinitionOut, FeeDefinitionsRequest, FeeDefinitionsResponse, FeeDefinitionUpdate, FeeStatistics
)

router = APIRouter(
    prefix="/api/fees",
    tags=["fees"]
)

#-----------------------------------------------------------------
@router.get("/all", response_model=FeeDefinitionsResponse)
def get_fee_definitions(
    params: FeeDefinitionsRequest = Depends(),
    db: Session = Depends(get_db)):
    return crud.get_fee_definitions(db, params)


@router.get("/active", response_model=List[FeeDefinitionOut])
def get_active_fee_definitions(db: Session = Depends(get_db)):
    fees = crud.get_active_fee_definitions(db)
    return [crud.fee_definition_to_out(f) for f in fees]


@router.get("/statistics", response_model=FeeStatistics)
def get_fee_statistics(db: Session = Depends(get_db)):
    return crud.get_fee_statistics(db)


@router.post("/calculate", response_model=FeeCalculationOut)
def calculate_fee(
    request: FeeCalculationRequest,
    db: Session = Depends(get_db)):
    return crud.calculate_fee_with_formatting(db, request)


@router.post("/bulk-update", response_model=BulkFeeUpdateResult)
def bulk_update_fees(
    request: BulkFeeUpdateRequest,
    db: Session = Depends(get_db)):
    return crud.bulk_update_fees(db, request)


@router.post("/seed-defaults", response_model=None)
def seed_default_fees(db: Session = Depends(get_db)):
    created = crud.seed_default_fees(db)
    return success_response(
        data={"created": created},
        message="Default fees seeded successfully",
        status_code=AppStatusCode.CREATED_SUCCESSFULLY
    )


@router.get("/code/{code}", response_model=FeeDefinitionOut)
def get_fee_by_code(code: str, db: Session = Depends(get_db)):
    return crud.fee_definition_to_out(crud.get_fee_by_code(db, code))


@router.get("/{fee_id}", response_model=FeeDefinitionOut)
def get_fee_by_id(fee_id: UUID, db: Session = Depends(get_db)):
    return crud.fee_definition_to_out(crud.get_fee_by_id(db, fee_id))


@router.post("/", response_model=None)
def create_fee_definition(
    fee: FeeDefinitionCreate,
    db: Session = Depends(get_db)):
    result = crud.create_fee_definition(db, fee)
    return success_response(
        data=result,
        message="Fee definition created successfully",
        status_code=AppStatusCode.CREATED_SUCCESSFULLY
    )


@router.put("/{fee_id}", response_model=FeeDefinitionOut)
def update_fee_definition(
    fee_id: UUID,
    fee: FeeDefinitionUpdate,
    db: Session = Depends(get_db)):
    return crud.update_fee_definition(db, fee_id, fee)


@router.patch("/{fee_id}/toggle-active", response_model=FeeDefinitionOut)
def toggle_fee_active(fee_id: UUID, db: Session = Depends(get_db)):
    return crud.toggle_fee_active(db, fee_id)


# ---------------- Delete Fee Definition ----------------
@router.delete("/{fee_id}", response_model=None)
def delete_fee_definition(fee_id: UUID, db: Session = Depends(get_db)):
    crud.delete_fee_definition(db, fee_id)
    return success_response(
        data=None,
        message="Fee definition deleted successfully",
        status_code=AppStatusCode.DELETED_SUCCESSFULLY
    )
