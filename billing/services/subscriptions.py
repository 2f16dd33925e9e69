"""Platform subscriptions billed to tenant admins.

PENDING -> submit_payment -> PROCESSING -> verify_payment -> ACTIVE (or back to
PENDING when rejected); ACTIVE -> EXPIRED on a manual disable or when
:func:`check_lapsed_subscriptions` finds the end date has passed.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from billing.core.config import settings
from billing.core.database import atomic
from billing.core.errors import AlreadyPaid, Conflict, Forbidden, InvalidInput, InvalidState, NotFound
from billing.core.security import sanitize_input
from billing.models.communication import NotificationType
from billing.models.subscriptions import (
    RenewalStatus,
    Subscription,
    SubscriptionPayment,
    SubscriptionPlan,
    SubscriptionRenewal,
    SubscriptionStatus,
)
from billing.models.users import User, UserRole
from billing.schemas.batch import BatchSummary
from billing.services import notifications
from billing.services.access import get_admin, require_role
from billing.services.tenants import Tenant
from billing.utils.dates import LIFETIME_SENTINEL, add_months, add_years, as_utc, utcnow
from billing.utils.money import positive_money

logger = logging.getLogger(__name__)

PLAN_MONTHS = {
    SubscriptionPlan.monthly: 1,
    SubscriptionPlan.yearly: 12,
    SubscriptionPlan.lifetime: None,
}


def compute_new_expiry(plan: SubscriptionPlan, active: Optional[Subscription], now: datetime) -> Optional[datetime]:
    """End date after adding one ``plan`` period.

    The period is added to the active subscription's end date when it has one,
    otherwise to ``now``. Lifetime plans never expire.
    """
    if plan == SubscriptionPlan.lifetime:
        return None
    base = active.end_date if active is not None and active.end_date is not None else now
    if plan == SubscriptionPlan.monthly:
        return add_months(base, 1)
    return add_years(base, 1)


def _load_subscription(db: Session, subscription_id: UUID, actor: User, lock: bool = False) -> Subscription:
    query = db.query(Subscription).filter(Subscription.id == subscription_id)
    if actor.role == UserRole.admin:
        query = query.filter(Subscription.admin_id == actor.id)
    if lock:
        query = query.with_for_update()
    subscription = query.first()
    if not subscription:
        raise NotFound("Subscription not found")
    return subscription


def _require_edit_window(subscription: Subscription, now: datetime) -> None:
    if subscription.status != SubscriptionStatus.processing:
        raise InvalidState("Only a payment awaiting verification can be changed")
    window = timedelta(days=settings.PAYMENT_EDIT_WINDOW_DAYS)
    if subscription.paid_date is None or now - subscription.paid_date > window:
        raise InvalidState(
            f"Submitted payments can only be changed within {settings.PAYMENT_EDIT_WINDOW_DAYS} days"
        )


def _may_reactivate(tenant: Tenant) -> bool:
    if tenant.admin.disabled_by_developer:
        return False
    history = tenant.subscription_history()
    if any(s.was_manually_disabled for s in history):
        return False
    return any(s.was_disabled_due_to_non_payment for s in history)


def _reactivate_after_payment(tenant: Tenant) -> bool:
    """Undo a non-payment lockout. Manual disables are left alone."""
    if not _may_reactivate(tenant):
        return False
    tenant.reactivate()
    for subscription in tenant.subscription_history():
        subscription.was_disabled_due_to_non_payment = False
    logger.info("Tenant %s re-activated after payment", tenant.id)
    return True


def _reusable_subscription(tenant: Tenant) -> Optional[Subscription]:
    """Latest row an extension may take over; ``None`` means start a new one."""
    current = tenant.current_subscription()
    if current is None:
        return None
    if current.status == SubscriptionStatus.processing:
        raise InvalidState("A subscription payment is awaiting verification; verify or reject it first")
    if current.status == SubscriptionStatus.expired:
        return current
    if current.status == SubscriptionStatus.pending and current.paid_amount is None:
        return current
    return None


def _apply_extension(
    db: Session,
    tenant: Tenant,
    plan: SubscriptionPlan,
    amount,
    currency: str,
    processed_by: User,
    now: datetime,
    details: Optional[str] = None,
    renewal: Optional[SubscriptionRenewal] = None,
) -> Tuple[Subscription, SubscriptionPayment]:
    active = tenant.active_subscription()
    new_expiry = compute_new_expiry(plan, active, now)

    subscription = active or _reusable_subscription(tenant)
    if subscription is None:
        subscription = Subscription(admin_id=tenant.id, start_date=now)
        db.add(subscription)
    subscription.plan = plan
    subscription.amount = amount
    subscription.currency = currency
    subscription.end_date = new_expiry
    subscription.status = SubscriptionStatus.active
    subscription.processed_date = now
    db.flush()

    payment = SubscriptionPayment(
        admin_id=tenant.id,
        subscription_id=subscription.id,
        renewal_id=renewal.id if renewal else None,
        plan=plan,
        amount=amount,
        currency=currency,
        payment_date=now,
        expiry_extended=new_expiry or LIFETIME_SENTINEL,
        payment_details=details,
        processed_by_id=processed_by.id,
    )
    db.add(payment)
    return subscription, payment


def _expiry_text(end_date: Optional[datetime]) -> str:
    return "never expires" if end_date is None else f"is valid until {end_date:%Y-%m-%d}"


def create_subscription(
    db: Session,
    actor: User,
    admin_id: UUID,
    plan: SubscriptionPlan,
    amount,
    currency: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Subscription:
    now = now or utcnow()
    developer = require_role(actor, UserRole.developer)
    admin = get_admin(db, admin_id)
    start_date = as_utc(start_date) or now
    if plan == SubscriptionPlan.lifetime:
        end_date = None
    else:
        end_date = as_utc(end_date) or compute_new_expiry(plan, None, start_date)
        if end_date <= start_date:
            raise InvalidInput("end_date must be after start_date")

    with atomic(db):
        subscription = Subscription(
            admin_id=admin.id,
            plan=plan,
            amount=positive_money(amount),
            currency=currency or settings.DEFAULT_CURRENCY,
            start_date=start_date,
            end_date=end_date,
            status=SubscriptionStatus.pending,
        )
        db.add(subscription)
        db.flush()
        notifications.notify(
            db,
            NotificationType.subscription_due,
            "Subscription Payment Due",
            f"A {plan.value} subscription of {subscription.amount} {subscription.currency} is awaiting payment.",
            receiver_id=admin.id,
            sender_id=developer.id,
            reference_id=subscription.id,
        )
    logger.info("Subscription %s (%s) created for admin %s", subscription.id, plan.value, admin.id)
    return subscription


def list_subscriptions(db: Session, actor: User, status: Optional[SubscriptionStatus] = None):
    query = db.query(Subscription)
    if actor.role == UserRole.admin:
        query = query.filter(Subscription.admin_id == actor.id)
    elif actor.role != UserRole.developer:
        raise Forbidden("Only admins and developers can view subscriptions")
    if status is not None:
        query = query.filter(Subscription.status == status)
    return query.order_by(Subscription.created_at.desc()).all()


def tenant_history(db: Session, actor: User, admin_id: UUID) -> dict:
    require_role(actor, UserRole.admin, UserRole.developer)
    if actor.role == UserRole.admin and actor.id != admin_id:
        raise NotFound("Admin not found")
    tenant = Tenant(db, get_admin(db, admin_id))
    payments = (
        db.query(SubscriptionPayment)
        .filter(SubscriptionPayment.admin_id == tenant.id)
        .order_by(SubscriptionPayment.payment_date.desc())
        .all()
    )
    renewals = (
        db.query(SubscriptionRenewal)
        .filter(SubscriptionRenewal.admin_id == tenant.id)
        .order_by(SubscriptionRenewal.created_at.desc())
        .all()
    )
    return {
        "current": tenant.current_subscription(),
        "subscriptions": tenant.subscription_history(),
        "payments": payments,
        "renewals": renewals,
    }


def submit_payment(
    db: Session,
    subscription_id: UUID,
    actor: User,
    amount,
    details: Optional[str] = None,
    proof: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Subscription:
    now = now or utcnow()
    admin = require_role(actor, UserRole.admin)
    paid_amount = positive_money(amount, "paid_amount")
    subscription = _load_subscription(db, subscription_id, admin, lock=True)
    if subscription.status == SubscriptionStatus.active and subscription.paid_amount is not None:
        raise AlreadyPaid("Subscription is already paid")
    if subscription.status == SubscriptionStatus.processing:
        raise InvalidState("A payment for this subscription is already awaiting verification")

    with atomic(db):
        subscription.status = SubscriptionStatus.processing
        subscription.paid_amount = paid_amount
        subscription.paid_date = now
        subscription.payment_details = sanitize_input(details)
        subscription.payment_proof = proof
        subscription.paid_by_id = admin.id
        notifications.notify_many(
            db,
            notifications.developer_ids(db),
            NotificationType.payment_processing,
            "Subscription Payment Submitted",
            f"{admin.name} submitted a subscription payment of {paid_amount} {subscription.currency}.",
            sender_id=admin.id,
            reference_id=subscription.id,
        )
    logger.info("Subscription %s payment submitted by %s", subscription.id, admin.id)
    return subscription


def edit_submitted_payment(
    db: Session,
    subscription_id: UUID,
    actor: User,
    amount=None,
    details: Optional[str] = None,
    proof: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Subscription:
    now = now or utcnow()
    admin = require_role(actor, UserRole.admin)
    subscription = _load_subscription(db, subscription_id, admin, lock=True)
    _require_edit_window(subscription, now)

    with atomic(db):
        if amount is not None:
            subscription.paid_amount = positive_money(amount, "paid_amount")
        if details is not None:
            subscription.payment_details = sanitize_input(details)
        if proof is not None:
            subscription.payment_proof = proof
    return subscription


def clear_submitted_payment(db: Session, subscription_id: UUID, actor: User, now: Optional[datetime] = None) -> Subscription:
    now = now or utcnow()
    admin = require_role(actor, UserRole.admin)
    subscription = _load_subscription(db, subscription_id, admin, lock=True)
    _require_edit_window(subscription, now)

    with atomic(db):
        subscription.clear_payment()
        subscription.status = SubscriptionStatus.pending
    logger.info("Subscription %s payment cleared by %s", subscription.id, admin.id)
    return subscription


def verify_payment(
    db: Session, subscription_id: UUID, actor: User, approved: bool = True, now: Optional[datetime] = None
) -> Subscription:
    now = now or utcnow()
    developer = require_role(actor, UserRole.developer)
    subscription = _load_subscription(db, subscription_id, developer, lock=True)
    if subscription.status != SubscriptionStatus.processing:
        raise InvalidState("Only a payment awaiting verification can be verified")
    tenant = Tenant(db, subscription.admin)

    with atomic(db):
        subscription.processed_date = now
        if approved:
            subscription.end_date = compute_new_expiry(subscription.plan, tenant.active_subscription(), now)
            subscription.status = SubscriptionStatus.active
            db.add(
                SubscriptionPayment(
                    admin_id=tenant.id,
                    subscription_id=subscription.id,
                    plan=subscription.plan,
                    amount=subscription.paid_amount,
                    currency=subscription.currency,
                    payment_date=now,
                    expiry_extended=subscription.end_date or LIFETIME_SENTINEL,
                    payment_details=subscription.payment_details,
                    processed_by_id=developer.id,
                )
            )
            _reactivate_after_payment(tenant)
            notifications.notify(
                db,
                NotificationType.subscription_paid,
                "Subscription Payment Approved",
                f"Your subscription payment was approved. Your subscription {_expiry_text(subscription.end_date)}.",
                receiver_id=tenant.id,
                sender_id=developer.id,
                reference_id=subscription.id,
            )
        else:
            subscription.status = SubscriptionStatus.pending
            subscription.clear_payment()
            notifications.notify(
                db,
                NotificationType.system_alert,
                "Subscription Payment Rejected",
                "Your subscription payment was rejected. Please review the details and submit again.",
                receiver_id=tenant.id,
                sender_id=developer.id,
                reference_id=subscription.id,
            )
    logger.info("Subscription %s %s by %s", subscription.id, "approved" if approved else "rejected", developer.id)
    return subscription


def extend_subscription(
    db: Session,
    actor: User,
    admin_id: UUID,
    plan: SubscriptionPlan,
    amount,
    currency: Optional[str] = None,
    details: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Subscription, SubscriptionPayment]:
    now = now or utcnow()
    developer = require_role(actor, UserRole.developer)
    tenant = Tenant(db, get_admin(db, admin_id))
    amount = positive_money(amount)

    with atomic(db):
        subscription, payment = _apply_extension(
            db,
            tenant,
            plan,
            amount,
            currency or settings.DEFAULT_CURRENCY,
            developer,
            now,
            details=sanitize_input(details),
        )
        notifications.notify(
            db,
            NotificationType.subscription_paid,
            "Subscription Extended",
            f"Your {plan.value} subscription has been extended and {_expiry_text(subscription.end_date)}.",
            receiver_id=tenant.id,
            sender_id=developer.id,
            reference_id=subscription.id,
        )
    logger.info("Subscription %s extended to %s", subscription.id, subscription.end_date)
    return subscription, payment


# --- Renewals ---


def submit_renewal(
    db: Session,
    actor: User,
    plan: SubscriptionPlan,
    amount,
    paid_amount=None,
    currency: Optional[str] = None,
    details: Optional[str] = None,
    proof: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SubscriptionRenewal:
    now = now or utcnow()
    admin = require_role(actor, UserRole.admin)
    amount = positive_money(amount)
    paid = positive_money(paid_amount, "paid_amount") if paid_amount is not None else amount

    open_renewal = (
        db.query(SubscriptionRenewal.id)
        .filter(SubscriptionRenewal.admin_id == admin.id, SubscriptionRenewal.status == RenewalStatus.processing)
        .first()
    )
    if open_renewal:
        raise Conflict("A renewal is already awaiting processing")
    current = Tenant(db, admin).current_subscription()

    with atomic(db):
        renewal = SubscriptionRenewal(
            admin_id=admin.id,
            subscription_id=current.id if current else None,
            plan=plan,
            amount=amount,
            currency=currency or (current.currency if current else settings.DEFAULT_CURRENCY),
            paid_amount=paid,
            paid_date=now,
            payment_details=sanitize_input(details),
            payment_proof=proof,
            status=RenewalStatus.processing,
        )
        db.add(renewal)
        db.flush()
        notifications.notify_many(
            db,
            notifications.developer_ids(db),
            NotificationType.payment_processing,
            "Subscription Renewal Submitted",
            f"{admin.name} submitted a {plan.value} renewal payment of {paid} {renewal.currency}.",
            sender_id=admin.id,
            reference_id=renewal.id,
        )
    logger.info("Renewal %s submitted by admin %s", renewal.id, admin.id)
    return renewal


def process_renewal(
    db: Session, renewal_id: UUID, actor: User, approved: bool = True, now: Optional[datetime] = None
) -> SubscriptionRenewal:
    now = now or utcnow()
    developer = require_role(actor, UserRole.developer)
    renewal = db.query(SubscriptionRenewal).filter(SubscriptionRenewal.id == renewal_id).with_for_update().first()
    if not renewal:
        raise NotFound("Renewal not found")
    if renewal.status != RenewalStatus.processing:
        raise InvalidState(f"Renewal is already {renewal.status.value}")
    tenant = Tenant(db, renewal.admin)

    with atomic(db):
        renewal.processed_by_id = developer.id
        renewal.processed_date = now
        if approved:
            subscription, _ = _apply_extension(
                db,
                tenant,
                renewal.plan,
                renewal.amount,
                renewal.currency,
                developer,
                now,
                details=renewal.payment_details,
                renewal=renewal,
            )
            subscription.paid_amount = renewal.paid_amount
            subscription.paid_date = renewal.paid_date
            subscription.paid_by_id = tenant.id
            renewal.subscription_id = subscription.id
            renewal.status = RenewalStatus.active
            renewal.extension_months = PLAN_MONTHS[renewal.plan]
            renewal.new_expiry_date = subscription.end_date
            _reactivate_after_payment(tenant)
            notifications.notify(
                db,
                NotificationType.subscription_paid,
                "Subscription Renewed",
                f"Your renewal was approved. Your subscription {_expiry_text(subscription.end_date)}.",
                receiver_id=tenant.id,
                sender_id=developer.id,
                reference_id=renewal.id,
            )
        else:
            renewal.status = RenewalStatus.rejected
            notifications.notify(
                db,
                NotificationType.system_alert,
                "Subscription Renewal Rejected",
                "Your renewal payment was rejected. Please contact support or submit again.",
                receiver_id=tenant.id,
                sender_id=developer.id,
                reference_id=renewal.id,
            )
    logger.info("Renewal %s %s by %s", renewal.id, "approved" if approved else "rejected", developer.id)
    return renewal


def list_renewals(db: Session, actor: User, status: Optional[RenewalStatus] = None):
    query = db.query(SubscriptionRenewal)
    if actor.role == UserRole.admin:
        query = query.filter(SubscriptionRenewal.admin_id == actor.id)
    elif actor.role != UserRole.developer:
        raise Forbidden("Only admins and developers can view renewals")
    if status is not None:
        query = query.filter(SubscriptionRenewal.status == status)
    return query.order_by(SubscriptionRenewal.created_at.desc()).all()


# --- Tenant access ---


def disable_tenant(db: Session, actor: User, admin_id: UUID, reason: Optional[str] = None) -> User:
    developer = require_role(actor, UserRole.developer)
    tenant = Tenant(db, get_admin(db, admin_id))

    with atomic(db):
        tenant.admin.disabled_by_developer = True
        current = tenant.current_subscription()
        if current is not None:
            current.was_manually_disabled = True
            if current.status == SubscriptionStatus.active:
                current.status = SubscriptionStatus.expired
        tenant.deactivate()
        notifications.notify(
            db,
            NotificationType.system_alert,
            "Account Disabled",
            sanitize_input(reason) or "Your account has been disabled by the platform team.",
            receiver_id=tenant.id,
            sender_id=developer.id,
        )
    logger.info("Tenant %s manually disabled by %s", tenant.id, developer.id)
    return tenant.admin


def enable_tenant(db: Session, actor: User, admin_id: UUID) -> User:
    developer = require_role(actor, UserRole.developer)
    tenant = Tenant(db, get_admin(db, admin_id))

    with atomic(db):
        tenant.admin.disabled_by_developer = False
        for subscription in tenant.subscription_history():
            subscription.was_manually_disabled = False
        tenant.reactivate()
        notifications.notify(
            db,
            NotificationType.system_alert,
            "Account Enabled",
            "Your account has been re-enabled.",
            receiver_id=tenant.id,
            sender_id=developer.id,
        )
    logger.info("Tenant %s manually enabled by %s", tenant.id, developer.id)
    return tenant.admin


def check_lapsed_subscriptions(db: Session, now: Optional[datetime] = None) -> BatchSummary:
    now = now or utcnow()
    summary = BatchSummary()
    lapsed = (
        db.query(Subscription)
        .filter(
            Subscription.status == SubscriptionStatus.active,
            Subscription.end_date.isnot(None),
            Subscription.end_date < now,
        )
        .order_by(Subscription.end_date)
        .all()
    )
    for subscription in lapsed:
        try:
            with db.begin_nested():
                subscription.status = SubscriptionStatus.expired
                subscription.was_disabled_due_to_non_payment = True
                tenant = Tenant(db, subscription.admin)
                still_covered = tenant.active_subscription()
                if still_covered is None or (
                    still_covered.end_date is not None and still_covered.end_date < now
                ):
                    tenant.deactivate()
                notifications.notify(
                    db,
                    NotificationType.subscription_due,
                    "Subscription Expired",
                    f"Your subscription expired on {subscription.end_date:%Y-%m-%d}. "
                    "Renew it to restore access for your academy.",
                    receiver_id=subscription.admin_id,
                    reference_id=subscription.id,
                )
            summary.updated += 1
        except Exception as exc:
            logger.exception("Failed to expire subscription %s", subscription.id)
            summary.record_error(subscription.id, exc)
    db.commit()
    logger.info("Lapsed subscriptions: %s expired, %s errors", summary.updated, len(summary.errors))
    return summary
