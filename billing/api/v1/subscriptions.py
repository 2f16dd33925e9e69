from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
import uuid

from billing.api.deps import require_admin_or_developer, require_billing_admin, require_developer
from billing.core.database import get_db
from billing.models.subscriptions import RenewalStatus, SubscriptionStatus
from billing.models.users import User
from billing.schemas import (
    SubscriptionCreate,
    SubscriptionResponse,
    SubscriptionPaymentSubmit,
    SubscriptionPaymentEdit,
    SubscriptionVerify,
    SubscriptionExtend,
    SubscriptionExtendResponse,
    RenewalCreate,
    RenewalProcess,
    RenewalResponse,
    TenantDisable,
    TenantStatusResponse,
    TenantHistoryResponse,
)
from billing.services import subscriptions as subscription_service

router = APIRouter()


@router.post("", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
def create_subscription(
    subscription_in: SubscriptionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_developer),
):
    return subscription_service.create_subscription(db, current_user, **subscription_in.model_dump())


@router.get("", response_model=List[SubscriptionResponse])
def list_subscriptions(
    status: Optional[SubscriptionStatus] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_billing_admin),
):
    return subscription_service.list_subscriptions(db, current_user, status=status)


@router.post("/extend", response_model=SubscriptionExtendResponse)
def extend_subscription(
    extend_in: SubscriptionExtend,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_developer),
):
    subscription, payment = subscription_service.extend_subscription(
        db,
        current_user,
        extend_in.admin_id,
        extend_in.plan,
        extend_in.amount,
        currency=extend_in.currency,
        details=extend_in.payment_details,
    )
    return {"subscription": subscription, "payment": payment}


# --- Renewals ---


@router.get("/renewals", response_model=List[RenewalResponse])
def list_renewals(
    status: Optional[RenewalStatus] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_billing_admin),
):
    return subscription_service.list_renewals(db, current_user, status=status)


@router.post("/renewals", response_model=RenewalResponse, status_code=status.HTTP_201_CREATED)
def submit_renewal(
    renewal_in: RenewalCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_billing_admin),
):
    return subscription_service.submit_renewal(
        db,
        current_user,
        renewal_in.plan,
        renewal_in.amount,
        paid_amount=renewal_in.paid_amount,
        currency=renewal_in.currency,
        details=renewal_in.payment_details,
        proof=renewal_in.payment_proof,
    )


@router.post("/renewals/{renewal_id}/process", response_model=RenewalResponse)
def process_renewal(
    renewal_id: uuid.UUID,
    process_in: RenewalProcess,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_developer),
):
    return subscription_service.process_renewal(db, renewal_id, current_user, approved=process_in.approved)


# --- Tenant access ---


@router.get("/tenants/{admin_id}/history", response_model=TenantHistoryResponse)
def tenant_history(
    admin_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_billing_admin),
):
    return subscription_service.tenant_history(db, current_user, admin_id)


@router.post("/tenants/{admin_id}/disable", response_model=TenantStatusResponse)
def disable_tenant(
    admin_id: uuid.UUID,
    disable_in: Optional[TenantDisable] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_developer),
):
    reason = disable_in.reason if disable_in else None
    return subscription_service.disable_tenant(db, current_user, admin_id, reason=reason)


@router.post("/tenants/{admin_id}/enable", response_model=TenantStatusResponse)
def enable_tenant(
    admin_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_developer),
):
    return subscription_service.enable_tenant(db, current_user, admin_id)


# --- Payments on a subscription ---


@router.post("/{subscription_id}/payment", response_model=SubscriptionResponse)
def submit_subscription_payment(
    subscription_id: uuid.UUID,
    payment_in: SubscriptionPaymentSubmit,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_billing_admin),
):
    return subscription_service.submit_payment(
        db,
        subscription_id,
        current_user,
        payment_in.amount,
        details=payment_in.payment_details,
        proof=payment_in.payment_proof,
    )


@router.put("/{subscription_id}/payment", response_model=SubscriptionResponse)
def edit_subscription_payment(
    subscription_id: uuid.UUID,
    payment_in: SubscriptionPaymentEdit,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_billing_admin),
):
    return subscription_service.edit_submitted_payment(
        db,
        subscription_id,
        current_user,
        amount=payment_in.amount,
        details=payment_in.payment_details,
        proof=payment_in.payment_proof,
    )


@router.delete("/{subscription_id}/payment", response_model=SubscriptionResponse)
def clear_subscription_payment(
    subscription_id: uuid.UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_billing_admin),
):
    return subscription_service.clear_submitted_payment(db, subscription_id, current_user)


@router.post("/{subscription_id}/verify", response_model=SubscriptionResponse)
def verify_subscription_payment(
    subscription_id: uuid.UUID,
    verify_in: SubscriptionVerify,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_developer),
):
    return subscription_service.verify_payment(db, subscription_id, current_user, approved=verify_in.approved)
