from pydantic import BaseModel
from typing import List, Literal, Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from billing.models.finance import AdvanceKind, AdvanceStatus, SalaryStatus
from billing.models.users import PayType


# --- Salary Schemas ---


class SalaryBase(BaseModel):
    title: str
    description: Optional[str] = None
    amount: Decimal
    currency: Optional[str] = None
    due_date: datetime
    pay_type: Optional[PayType] = None


class SalaryCreate(SalaryBase):
    teacher_id: UUID
    month: Optional[int] = None
    year: Optional[int] = None


class SalaryUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    due_date: Optional[datetime] = None
    pay_type: Optional[PayType] = None


class SalaryResponse(SalaryBase):
    id: UUID
    admin_id: UUID
    teacher_id: UUID
    currency: str
    pay_type: PayType
    month: Optional[int] = None
    year: Optional[int] = None
    is_recurring: bool
    status: SalaryStatus
    paid_amount: Optional[Decimal] = None
    paid_date: Optional[datetime] = None
    paid_by_id: Optional[UUID] = None
    advance_deduction: Optional[Decimal] = None
    payment_details: Optional[str] = None
    payment_proof: Optional[str] = None
    processed_date: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


# --- Salary Payment Schemas ---


class SalaryPaymentCreate(BaseModel):
    teacher_id: UUID
    amount: Decimal
    salary_id: Optional[UUID] = None
    paid_date: Optional[datetime] = None
    payment_details: Optional[str] = None
    payment_proof: Optional[str] = None


class SalaryPayWithDeduction(BaseModel):
    paid_amount: Decimal
    advance_deduction: Optional[Decimal] = None
    paid_date: Optional[datetime] = None
    payment_details: Optional[str] = None
    payment_proof: Optional[str] = None


class SalaryPaymentResponse(BaseModel):
    id: UUID
    admin_id: UUID
    teacher_id: UUID
    salary_id: Optional[UUID] = None
    amount: Decimal
    advance_deduction: Decimal
    net_amount: Decimal
    currency: str
    paid_date: datetime
    payment_details: Optional[str] = None
    payment_proof: Optional[str] = None

    class Config:
        from_attributes = True


class SalaryPaidResponse(BaseModel):
    salary: SalaryResponse
    payment: SalaryPaymentResponse


# --- Advance Schemas ---


class AdvanceIssue(BaseModel):
    teacher_id: UUID
    principal: Decimal
    installments: int
    currency: Optional[str] = None
    details: Optional[str] = None


class AdvanceRequestCreate(BaseModel):
    amount: Decimal
    repayment_months: int
    reason: Optional[str] = None
    currency: Optional[str] = None


class AdvanceApprove(BaseModel):
    approved_amount: Optional[Decimal] = None
    repayment_months: Optional[int] = None


class AdvanceReject(BaseModel):
    reason: str


class RepaymentResponse(BaseModel):
    id: UUID
    amount: Decimal
    date: datetime
    salary_payment_id: Optional[UUID] = None

    class Config:
        from_attributes = True


class AdvanceResponseBase(BaseModel):
    id: UUID
    admin_id: UUID
    teacher_id: UUID
    currency: str
    status: AdvanceStatus
    details: Optional[str] = None
    created_at: datetime
    repayments: List[RepaymentResponse] = []

    class Config:
        from_attributes = True


class RequestedAdvanceResponse(AdvanceResponseBase):
    kind: Literal[AdvanceKind.requested]
    requested_amount: Decimal
    reason: Optional[str] = None
    repayment_months: int
    approved_amount: Optional[Decimal] = None
    monthly_deduction: Optional[Decimal] = None
    remaining_amount: Optional[Decimal] = None
    total_repaid: Optional[Decimal] = None
    approved_by_id: Optional[UUID] = None
    approved_date: Optional[datetime] = None
    rejection_reason: Optional[str] = None


class IssuedAdvanceResponse(AdvanceResponseBase):
    kind: Literal[AdvanceKind.issued]
    principal: Decimal
    balance: Decimal
    installments: int
    installment_amount: Decimal
    issued_date: datetime
    pay_type: Optional[PayType] = None
