from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from billing.models.finance import FeeStatus, FeeType


# --- Fee Schemas ---


class FeeBase(BaseModel):
    title: str
    description: Optional[str] = None
    amount: Decimal
    currency: Optional[str] = None
    due_date: datetime


class FeeCreate(FeeBase):
    student_id: UUID
    course_id: Optional[UUID] = None
    month: Optional[int] = None
    year: Optional[int] = None


class FeeUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    due_date: Optional[datetime] = None


class FeePaymentSubmit(BaseModel):
    amount: Decimal
    paid_date: Optional[datetime] = None
    payment_details: Optional[str] = None
    payment_proof: Optional[str] = None


class FeeVerify(BaseModel):
    approve: bool = True


class FeeResponse(FeeBase):
    id: UUID
    admin_id: UUID
    student_id: UUID
    course_id: Optional[UUID] = None
    fee_definition_id: Optional[UUID] = None
    currency: str
    month: Optional[int] = None
    year: Optional[int] = None
    is_recurring: bool
    status: FeeStatus
    paid_amount: Optional[Decimal] = None
    paid_date: Optional[datetime] = None
    payment_details: Optional[str] = None
    payment_proof: Optional[str] = None
    paid_by_id: Optional[UUID] = None
    processed_date: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


# --- Fee Definition Schemas ---


class FeeDefinitionBase(BaseModel):
    title: str
    description: Optional[str] = None
    amount: Decimal
    currency: Optional[str] = None
    fee_type: FeeType = FeeType.monthly
    generation_day: int
    start_date: datetime
    end_date: Optional[datetime] = None
    due_after_days: int = 0


class FeeDefinitionCreate(FeeDefinitionBase):
    student_id: UUID
    course_id: Optional[UUID] = None


class FeeDefinitionUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    fee_type: Optional[FeeType] = None
    generation_day: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    due_after_days: Optional[int] = None
    is_active: Optional[bool] = None


class FeeDefinitionResponse(FeeDefinitionBase):
    id: UUID
    admin_id: UUID
    student_id: UUID
    course_id: Optional[UUID] = None
    currency: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True
