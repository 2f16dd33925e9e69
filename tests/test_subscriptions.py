"""Platform subscriptions: payment review, extensions, renewals and lockouts."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from billing.core.errors import AlreadyPaid, Conflict, Forbidden, InvalidState, NotFound
from billing.models import (
    Notification,
    NotificationType,
    RenewalStatus,
    Subscription,
    SubscriptionPayment,
    SubscriptionPlan,
    SubscriptionStatus,
)
from billing.services import subscriptions as subscription_service
from billing.services.tenants import Tenant
from billing.utils.dates import LIFETIME_SENTINEL

NOW = datetime(2026, 5, 10, 9, 0)


@pytest.fixture
def pending_subscription(make_subscription):
    return make_subscription(status=SubscriptionStatus.pending, start_date=NOW, end_date=datetime(2026, 6, 10))


def notices(db, receiver, type):
    return db.query(Notification).filter(Notification.receiver_id == receiver.id, Notification.type == type).all()


# --- Expiry arithmetic ---


@pytest.mark.parametrize(
    "end_date, expected",
    [
        (datetime(2026, 1, 31), datetime(2026, 2, 28)),
        (datetime(2028, 1, 31), datetime(2028, 2, 29)),
        (datetime(2026, 5, 15), datetime(2026, 6, 15)),
    ],
)
def test_monthly_extension_clamps_to_month_end(end_date, expected):
    active = Subscription(plan=SubscriptionPlan.monthly, end_date=end_date)

    assert subscription_service.compute_new_expiry(SubscriptionPlan.monthly, active, NOW) == expected


def test_yearly_extension_from_leap_day():
    active = Subscription(plan=SubscriptionPlan.yearly, end_date=datetime(2028, 2, 29))

    assert subscription_service.compute_new_expiry(SubscriptionPlan.yearly, active, NOW) == datetime(2029, 2, 28)


def test_expiry_without_active_subscription_starts_now():
    assert subscription_service.compute_new_expiry(SubscriptionPlan.monthly, None, NOW) == datetime(2026, 6, 10, 9, 0)
    assert subscription_service.compute_new_expiry(SubscriptionPlan.lifetime, None, NOW) is None


# --- Creation and payment review ---


def test_create_subscription_defaults_end_date(db, developer, admin):
    subscription = subscription_service.create_subscription(
        db, developer, admin.id, SubscriptionPlan.monthly, "49", start_date=NOW, now=NOW
    )

    assert subscription.status == SubscriptionStatus.pending
    assert subscription.end_date == datetime(2026, 6, 10, 9, 0)
    assert len(notices(db, admin, NotificationType.subscription_due)) == 1


def test_only_developers_create_subscriptions(db, admin):
    with pytest.raises(Forbidden):
        subscription_service.create_subscription(db, admin, admin.id, SubscriptionPlan.monthly, "49")


def test_submit_notifies_developers(db, developer, admin, pending_subscription):
    subscription_service.submit_payment(db, pending_subscription.id, admin, "49", details="wire", now=NOW)

    assert pending_subscription.status == SubscriptionStatus.processing
    assert pending_subscription.paid_amount == Decimal("49.00")
    assert pending_subscription.paid_date == NOW
    assert len(notices(db, developer, NotificationType.payment_processing)) == 1


def test_submit_already_paid_subscription(db, admin, make_subscription):
    paid = make_subscription(paid_amount=Decimal("49.00"))

    with pytest.raises(AlreadyPaid):
        subscription_service.submit_payment(db, paid.id, admin, "49")


def test_submit_twice_is_invalid_state(db, admin, pending_subscription):
    subscription_service.submit_payment(db, pending_subscription.id, admin, "49", now=NOW)

    with pytest.raises(InvalidState):
        subscription_service.submit_payment(db, pending_subscription.id, admin, "49", now=NOW)


def test_other_admin_cannot_see_subscription(db, other_admin, pending_subscription):
    with pytest.raises(NotFound):
        subscription_service.submit_payment(db, pending_subscription.id, other_admin, "49")


def test_submitted_payment_editable_within_window(db, admin, pending_subscription):
    subscription_service.submit_payment(db, pending_subscription.id, admin, "49", now=NOW)

    subscription_service.edit_submitted_payment(
        db, pending_subscription.id, admin, amount="59", details="corrected", now=NOW + timedelta(days=6)
    )
    assert pending_subscription.paid_amount == Decimal("59.00")
    assert pending_subscription.payment_details == "corrected"

    with pytest.raises(InvalidState):
        subscription_service.edit_submitted_payment(
            db, pending_subscription.id, admin, amount="60", now=NOW + timedelta(days=8)
        )


def test_clear_returns_to_pending(db, admin, pending_subscription):
    subscription_service.submit_payment(db, pending_subscription.id, admin, "49", proof="slip.png", now=NOW)

    subscription_service.clear_submitted_payment(db, pending_subscription.id, admin, now=NOW + timedelta(days=1))

    assert pending_subscription.status == SubscriptionStatus.pending
    assert pending_subscription.paid_amount is None
    assert pending_subscription.payment_proof is None
    assert pending_subscription.paid_by_id is None


def test_clear_after_window_is_invalid_state(db, admin, pending_subscription):
    subscription_service.submit_payment(db, pending_subscription.id, admin, "49", now=NOW)

    with pytest.raises(InvalidState):
        subscription_service.clear_submitted_payment(db, pending_subscription.id, admin, now=NOW + timedelta(days=8))
    assert pending_subscription.status == SubscriptionStatus.processing


def test_verify_approve_activates_and_records_payment(db, developer, admin, pending_subscription):
    subscription_service.submit_payment(db, pending_subscription.id, admin, "49", now=NOW)

    subscription_service.verify_payment(db, pending_subscription.id, developer, approved=True, now=NOW)

    assert pending_subscription.status == SubscriptionStatus.active
    assert pending_subscription.end_date == datetime(2026, 6, 10, 9, 0)
    payment = db.query(SubscriptionPayment).one()
    assert payment.amount == Decimal("49.00")
    assert payment.expiry_extended == pending_subscription.end_date
    assert payment.processed_by_id == developer.id
    assert len(notices(db, admin, NotificationType.subscription_paid)) == 1


def test_verify_approve_extends_from_active_end_date(db, developer, admin, make_subscription):
    make_subscription(end_date=datetime(2026, 5, 20))
    renewal = make_subscription(status=SubscriptionStatus.pending, start_date=NOW, end_date=datetime(2026, 6, 20))
    subscription_service.submit_payment(db, renewal.id, admin, "49", now=NOW)

    subscription_service.verify_payment(db, renewal.id, developer, now=NOW)

    assert renewal.end_date == datetime(2026, 6, 20)


def test_verify_reject_returns_to_pending(db, developer, admin, pending_subscription):
    subscription_service.submit_payment(db, pending_subscription.id, admin, "49", now=NOW)

    subscription_service.verify_payment(db, pending_subscription.id, developer, approved=False, now=NOW)

    assert pending_subscription.status == SubscriptionStatus.pending
    assert pending_subscription.paid_amount is None
    assert db.query(SubscriptionPayment).count() == 0
    assert len(notices(db, admin, NotificationType.system_alert)) == 1


def test_admin_cannot_verify(db, admin, pending_subscription):
    subscription_service.submit_payment(db, pending_subscription.id, admin, "49", now=NOW)

    with pytest.raises(Forbidden):
        subscription_service.verify_payment(db, pending_subscription.id, admin)


# --- Extensions ---


def test_extend_adds_to_active_end_date(db, developer, admin, make_subscription):
    active = make_subscription(end_date=datetime(2026, 1, 31))

    subscription, payment = subscription_service.extend_subscription(
        db, developer, admin.id, SubscriptionPlan.monthly, "49", now=NOW
    )

    assert subscription.id == active.id
    assert subscription.end_date == datetime(2026, 2, 28)
    assert payment.expiry_extended == datetime(2026, 2, 28)


def test_extend_without_history_creates_subscription(db, developer, admin):
    subscription, _ = subscription_service.extend_subscription(
        db, developer, admin.id, SubscriptionPlan.yearly, "490", now=NOW
    )

    assert subscription.status == SubscriptionStatus.active
    assert subscription.start_date == NOW
    assert subscription.end_date == datetime(2027, 5, 10, 9, 0)


def test_extend_takes_over_unpaid_pending_subscription(db, developer, admin, pending_subscription):
    subscription, _ = subscription_service.extend_subscription(
        db, developer, admin.id, SubscriptionPlan.monthly, "10", now=NOW
    )

    assert subscription.id == pending_subscription.id
    assert subscription.status == SubscriptionStatus.active
    assert db.query(Subscription).count() == 1


def test_extend_refuses_while_payment_awaits_verification(db, developer, admin, pending_subscription):
    subscription_service.submit_payment(db, pending_subscription.id, admin, "49", now=NOW)

    with pytest.raises(InvalidState):
        subscription_service.extend_subscription(db, developer, admin.id, SubscriptionPlan.monthly, "10", now=NOW)

    db.refresh(pending_subscription)
    assert pending_subscription.status == SubscriptionStatus.processing
    assert pending_subscription.paid_amount == Decimal("49.00")
    assert pending_subscription.amount == Decimal("49.00")
    assert db.query(SubscriptionPayment).count() == 0

    subscription_service.verify_payment(db, pending_subscription.id, developer, approved=True, now=NOW)
    assert pending_subscription.status == SubscriptionStatus.active


def test_lifetime_extension_never_expires(db, developer, admin, make_subscription):
    make_subscription(end_date=datetime(2026, 6, 1))

    subscription, payment = subscription_service.extend_subscription(
        db, developer, admin.id, SubscriptionPlan.lifetime, "999", now=NOW
    )

    assert subscription.plan == SubscriptionPlan.lifetime
    assert subscription.end_date is None
    assert payment.expiry_extended == LIFETIME_SENTINEL


# --- Lapses, renewals and manual disables ---


def test_lapsed_subscription_locks_tenant(db, admin, teacher, make_subscription):
    subscription = make_subscription(end_date=datetime(2026, 3, 1))

    summary = subscription_service.check_lapsed_subscriptions(db, now=datetime(2026, 3, 2))

    assert summary.updated == 1
    assert subscription.status == SubscriptionStatus.expired
    assert subscription.was_disabled_due_to_non_payment
    assert not admin.is_active
    assert not teacher.is_active
    assert len(notices(db, admin, NotificationType.subscription_due)) == 1


def test_lapse_keeps_tenant_covered_by_newer_subscription(db, admin, make_subscription):
    old = make_subscription(end_date=datetime(2026, 3, 1))
    make_subscription(start_date=datetime(2026, 3, 1), end_date=datetime(2026, 4, 1))

    subscription_service.check_lapsed_subscriptions(db, now=datetime(2026, 3, 2))

    assert old.status == SubscriptionStatus.expired
    assert admin.is_active


def test_lifetime_subscription_never_lapses(db, admin, make_subscription):
    make_subscription(plan=SubscriptionPlan.lifetime, end_date=None)

    summary = subscription_service.check_lapsed_subscriptions(db, now=datetime(2099, 1, 1))

    assert summary.updated == 0
    assert admin.is_active


def test_renewal_reactivates_tenant_locked_for_non_payment(db, developer, admin, teacher, make_subscription):
    subscription = make_subscription(end_date=datetime(2026, 3, 1))
    subscription_service.check_lapsed_subscriptions(db, now=datetime(2026, 3, 2))

    renewal = subscription_service.submit_renewal(
        db, admin, SubscriptionPlan.monthly, "49", now=datetime(2026, 3, 3)
    )
    subscription_service.process_renewal(db, renewal.id, developer, approved=True, now=datetime(2026, 3, 4))

    assert renewal.status == RenewalStatus.active
    assert renewal.extension_months == 1
    assert renewal.new_expiry_date == datetime(2026, 4, 4)
    assert subscription.status == SubscriptionStatus.active
    assert subscription.end_date == datetime(2026, 4, 4)
    assert not subscription.was_disabled_due_to_non_payment
    assert admin.is_active
    assert teacher.is_active
    assert db.query(SubscriptionPayment).filter(SubscriptionPayment.renewal_id == renewal.id).count() == 1


def test_renewal_does_not_undo_manual_disable(db, developer, admin, teacher, make_subscription):
    subscription = make_subscription(end_date=datetime(2026, 6, 1))
    subscription_service.disable_tenant(db, developer, admin.id, reason="Chargeback")
    assert subscription.status == SubscriptionStatus.expired
    assert subscription.was_manually_disabled

    renewal = subscription_service.submit_renewal(db, admin, SubscriptionPlan.monthly, "49", now=NOW)
    subscription_service.process_renewal(db, renewal.id, developer, now=NOW)

    assert subscription.status == SubscriptionStatus.active
    assert not admin.is_active
    assert not teacher.is_active

    subscription_service.enable_tenant(db, developer, admin.id)

    assert admin.is_active
    assert teacher.is_active
    assert not admin.disabled_by_developer
    assert not subscription.was_manually_disabled


def test_rejected_renewal_leaves_subscription_alone(db, developer, admin, make_subscription):
    subscription = make_subscription(end_date=datetime(2026, 6, 1))
    renewal = subscription_service.submit_renewal(db, admin, SubscriptionPlan.yearly, "490", now=NOW)

    subscription_service.process_renewal(db, renewal.id, developer, approved=False, now=NOW)

    assert renewal.status == RenewalStatus.rejected
    assert subscription.end_date == datetime(2026, 6, 1)
    with pytest.raises(InvalidState):
        subscription_service.process_renewal(db, renewal.id, developer, now=NOW)


def test_one_open_renewal_at_a_time(db, admin, make_subscription):
    make_subscription(end_date=datetime(2026, 6, 1))
    subscription_service.submit_renewal(db, admin, SubscriptionPlan.monthly, "49", now=NOW)

    with pytest.raises(Conflict):
        subscription_service.submit_renewal(db, admin, SubscriptionPlan.monthly, "49", now=NOW)


def test_current_subscription_is_latest_created(db, developer, admin, make_subscription):
    first = make_subscription(end_date=datetime(2026, 2, 1))
    latest = make_subscription(status=SubscriptionStatus.pending, end_date=datetime(2026, 3, 1))

    tenant = Tenant(db, admin)
    assert tenant.current_subscription().id == latest.id
    assert tenant.active_subscription().id == first.id

    history = subscription_service.tenant_history(db, developer, admin.id)
    assert history["current"].id == latest.id
    assert [s.id for s in history["subscriptions"]] == [first.id, latest.id]


def test_admin_cannot_read_another_tenants_history(db, admin, other_admin):
    with pytest.raises(NotFound):
        subscription_service.tenant_history(db, admin, other_admin.id)
