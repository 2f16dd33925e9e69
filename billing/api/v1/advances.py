from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional, Union
import uuid

from billing.api.deps import get_current_user, require_admin, require_teacher
from billing.core.database import get_db
from billing.models.finance import AdvanceStatus, IssuedAdvance
from billing.models.users import User
from billing.schemas import (
    AdvanceIssue,
    AdvanceRequestCreate,
    AdvanceApprove,
    AdvanceReject,
    RequestedAdvanceResponse,
    IssuedAdvanceResponse,
)
from billing.services import salaries as salary_service

router = APIRouter()

AdvanceResponse = Union[RequestedAdvanceResponse, IssuedAdvanceResponse]


def to_response(advance) -> AdvanceResponse:
    if isinstance(advance, IssuedAdvance):
        return IssuedAdvanceResponse.model_validate(advance)
    return RequestedAdvanceResponse.model_validate(advance)


@router.get("", response_model=List[AdvanceResponse])
def list_advances(
    status: Optional[AdvanceStatus] = None,
    teacher_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    advances = salary_service.list_advances(db, current_user, status=status, teacher_id=teacher_id)
    return [to_response(advance) for advance in advances]


@router.post("/issue", response_model=IssuedAdvanceResponse, status_code=status.HTTP_201_CREATED)
def issue_advance(
    advance_in: AdvanceIssue,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    advance = salary_service.issue_advance(db, current_user, **advance_in.model_dump())
    return to_response(advance)


@router.post("/request", response_model=RequestedAdvanceResponse, status_code=status.HTTP_201_CREATED)
def request_advance(
    request_in: AdvanceRequestCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_teacher),
):
    advance = salary_service.request_advance(db, current_user, **request_in.model_dump())
    return to_response(advance)


@router.post("/{advance_id}/approve", response_model=RequestedAdvanceResponse)
def approve_advance(
    advance_id: uuid.UUID,
    approve_in: AdvanceApprove,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    advance = salary_service.approve_advance(
        db,
        advance_id,
        current_user,
        approved_amount=approve_in.approved_amount,
        repayment_months=approve_in.repayment_months,
    )
    return to_response(advance)


@router.post("/{advance_id}/reject", response_model=RequestedAdvanceResponse)
def reject_advance(
    advance_id: uuid.UUID,
    reject_in: AdvanceReject,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return to_response(salary_service.reject_advance(db, advance_id, current_user, reject_in.reason))


@router.post("/{advance_id}/cancel", response_model=IssuedAdvanceResponse)
def cancel_advance(
    advance_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return to_response(salary_service.cancel_advance(db, advance_id, current_user))


@router.delete("/{advance_id}")
def delete_advance(
    advance_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    counts = salary_service.delete_advance(db, advance_id, current_user)
    return {"message": "Salary advance deleted", "affected": counts}
