from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
import uuid

from billing.api.deps import get_current_user, require_admin
from billing.core.database import get_db
from billing.models.finance import SalaryStatus
from billing.models.users import User
from billing.schemas import (
    SalaryCreate,
    SalaryUpdate,
    SalaryResponse,
    SalaryPaymentCreate,
    SalaryPayWithDeduction,
    SalaryPaymentResponse,
    SalaryPaidResponse,
)
from billing.services import salaries as salary_service

router = APIRouter()


@router.post("", response_model=SalaryResponse, status_code=status.HTTP_201_CREATED)
def create_salary(
    salary_in: SalaryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return salary_service.create_salary(db, current_user, **salary_in.model_dump())


@router.get("", response_model=List[SalaryResponse])
def list_salaries(
    status: Optional[SalaryStatus] = None,
    teacher_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return salary_service.list_salaries(db, current_user, status=status, teacher_id=teacher_id)


@router.get("/payments", response_model=List[SalaryPaymentResponse])
def list_salary_payments(
    teacher_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return salary_service.list_payments(db, current_user, teacher_id=teacher_id)


@router.post("/payments", response_model=SalaryPaymentResponse, status_code=status.HTTP_201_CREATED)
def record_salary_payment(
    payment_in: SalaryPaymentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return salary_service.record_salary_payment(
        db,
        current_user,
        payment_in.teacher_id,
        payment_in.amount,
        salary_id=payment_in.salary_id,
        paid_date=payment_in.paid_date,
        details=payment_in.payment_details,
        proof=payment_in.payment_proof,
    )


@router.put("/{salary_id}", response_model=SalaryResponse)
def update_salary(
    salary_id: uuid.UUID,
    salary_in: SalaryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return salary_service.update_salary(db, salary_id, current_user, salary_in.model_dump(exclude_unset=True))


@router.post("/{salary_id}/pay", response_model=SalaryPaidResponse)
def pay_salary(
    salary_id: uuid.UUID,
    pay_in: SalaryPayWithDeduction,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    salary, payment = salary_service.pay_with_explicit_deduction(
        db,
        current_user,
        salary_id,
        pay_in.paid_amount,
        advance_deduction=pay_in.advance_deduction,
        paid_date=pay_in.paid_date,
        details=pay_in.payment_details,
        proof=pay_in.payment_proof,
    )
    return {"salary": salary, "payment": payment}
