from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
import uuid

from billing.api.deps import get_current_user, require_admin, require_admin_or_developer
from billing.core.database import get_db
from billing.models.finance import FeeStatus
from billing.models.users import User
from billing.schemas import (
    FeeCreate,
    FeeUpdate,
    FeePaymentSubmit,
    FeeVerify,
    FeeResponse,
    FeeDefinitionCreate,
    FeeDefinitionUpdate,
    FeeDefinitionResponse,
)
from billing.services import fees as fee_service

router = APIRouter()


# --- Fee definitions ---


@router.post("/definitions", response_model=FeeDefinitionResponse, status_code=status.HTTP_201_CREATED)
def create_fee_definition(
    definition_in: FeeDefinitionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return fee_service.create_definition(db, current_user, **definition_in.model_dump())


@router.get("/definitions", response_model=List[FeeDefinitionResponse])
def list_fee_definitions(
    student_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return fee_service.list_definitions(db, current_user, student_id=student_id)


@router.put("/definitions/{definition_id}", response_model=FeeDefinitionResponse)
def update_fee_definition(
    definition_id: uuid.UUID,
    definition_in: FeeDefinitionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return fee_service.update_definition(db, definition_id, current_user, definition_in.model_dump(exclude_unset=True))


@router.delete("/definitions/{definition_id}")
def delete_fee_definition(
    definition_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    counts = fee_service.delete_definition(db, definition_id, current_user)
    return {"message": "Fee definition deleted", "affected": counts}


# --- Fees ---


@router.post("", response_model=FeeResponse, status_code=status.HTTP_201_CREATED)
def create_fee(
    fee_in: FeeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return fee_service.create_fee(db, current_user, **fee_in.model_dump())


@router.get("", response_model=List[FeeResponse])
def list_fees(
    status: Optional[FeeStatus] = None,
    student_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return fee_service.list_fees(db, current_user, status=status, student_id=student_id)


@router.put("/{fee_id}", response_model=FeeResponse)
def update_fee(
    fee_id: uuid.UUID,
    fee_in: FeeUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return fee_service.update_fee(db, fee_id, current_user, fee_in.model_dump(exclude_unset=True))


@router.delete("/{fee_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_fee(
    fee_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    fee_service.delete_fee(db, fee_id, current_user)


@router.post("/{fee_id}/pay", response_model=FeeResponse)
def submit_fee_payment(
    fee_id: uuid.UUID,
    payment_in: FeePaymentSubmit,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return fee_service.submit_payment(
        db,
        fee_id,
        current_user,
        payment_in.amount,
        paid_date=payment_in.paid_date,
        details=payment_in.payment_details,
        proof=payment_in.payment_proof,
    )


@router.post("/{fee_id}/verify", response_model=FeeResponse)
def verify_fee_payment(
    fee_id: uuid.UUID,
    verify_in: FeeVerify,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin_or_developer),
):
    return fee_service.verify_payment(db, fee_id, current_user, approve=verify_in.approve)


@router.post("/{fee_id}/revert", response_model=FeeResponse)
def revert_fee_payment(
    fee_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin_or_developer),
):
    return fee_service.revert_payment(db, fee_id, current_user)
