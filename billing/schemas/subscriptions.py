from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from billing.models.subscriptions import RenewalStatus, SubscriptionPlan, SubscriptionStatus


class SubscriptionCreate(BaseModel):
    admin_id: UUID
    plan: SubscriptionPlan
    amount: Decimal
    currency: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class SubscriptionResponse(BaseModel):
    id: UUID
    admin_id: UUID
    plan: SubscriptionPlan
    amount: Decimal
    currency: str
    start_date: datetime
    end_date: Optional[datetime] = None
    status: SubscriptionStatus
    paid_amount: Optional[Decimal] = None
    paid_date: Optional[datetime] = None
    payment_details: Optional[str] = None
    payment_proof: Optional[str] = None
    paid_by_id: Optional[UUID] = None
    processed_date: Optional[datetime] = None
    was_disabled_due_to_non_payment: bool
    was_manually_disabled: bool
    created_at: datetime

    class Config:
        from_attributes = True


class SubscriptionPaymentSubmit(BaseModel):
    amount: Decimal
    payment_details: Optional[str] = None
    payment_proof: Optional[str] = None


class SubscriptionPaymentEdit(BaseModel):
    amount: Optional[Decimal] = None
    payment_details: Optional[str] = None
    payment_proof: Optional[str] = None


class SubscriptionVerify(BaseModel):
    approved: bool = True


class SubscriptionExtend(BaseModel):
    admin_id: UUID
    plan: SubscriptionPlan
    amount: Decimal
    currency: Optional[str] = None
    payment_details: Optional[str] = None


class SubscriptionPaymentResponse(BaseModel):
    id: UUID
    admin_id: UUID
    subscription_id: Optional[UUID] = None
    renewal_id: Optional[UUID] = None
    plan: SubscriptionPlan
    amount: Decimal
    currency: str
    payment_date: datetime
    expiry_extended: datetime
    payment_details: Optional[str] = None
    processed_by_id: Optional[UUID] = None

    class Config:
        from_attributes = True


class SubscriptionExtendResponse(BaseModel):
    subscription: SubscriptionResponse
    payment: SubscriptionPaymentResponse


# --- Renewal Schemas ---


class RenewalCreate(BaseModel):
    plan: SubscriptionPlan
    amount: Decimal
    paid_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    payment_details: Optional[str] = None
    payment_proof: Optional[str] = None


class RenewalProcess(BaseModel):
    approved: bool = True


class RenewalResponse(BaseModel):
    id: UUID
    admin_id: UUID
    subscription_id: Optional[UUID] = None
    plan: SubscriptionPlan
    amount: Decimal
    currency: str
    paid_amount: Decimal
    paid_date: datetime
    payment_details: Optional[str] = None
    payment_proof: Optional[str] = None
    status: RenewalStatus
    processed_by_id: Optional[UUID] = None
    processed_date: Optional[datetime] = None
    extension_months: Optional[int] = None
    new_expiry_date: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


# --- Tenant Schemas ---


class TenantDisable(BaseModel):
    reason: Optional[str] = None


class TenantStatusResponse(BaseModel):
    id: UUID
    email: str
    name: str
    is_active: bool
    disabled_by_developer: bool

    class Config:
        from_attributes = True


class TenantHistoryResponse(BaseModel):
    current: Optional[SubscriptionResponse] = None
    subscriptions: List[SubscriptionResponse]
    payments: List[SubscriptionPaymentResponse]
    renewals: List[RenewalResponse]
