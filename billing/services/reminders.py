import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from billing.core.config import settings
from billing.models.communication import NotificationType
from billing.models.finance import Fee, FeeStatus
from billing.models.subscriptions import Subscription, SubscriptionStatus
from billing.schemas.batch import BatchSummary
from billing.services import notifications
from billing.utils.dates import start_of_day, utcnow

logger = logging.getLogger(__name__)


def fees_due_within(db: Session, now: datetime, window: timedelta) -> List[Fee]:
    return (
        db.query(Fee)
        .filter(Fee.status == FeeStatus.pending, Fee.due_date >= now, Fee.due_date <= now + window)
        .order_by(Fee.due_date)
        .all()
    )


def subscriptions_due_within(db: Session, now: datetime, window: timedelta) -> List[Subscription]:
    # Lifetime plans have no end date and are never due
    return (
        db.query(Subscription)
        .filter(
            Subscription.status == SubscriptionStatus.active,
            Subscription.end_date.isnot(None),
            Subscription.end_date >= now,
            Subscription.end_date <= now + window,
        )
        .order_by(Subscription.end_date)
        .all()
    )


def _remind(db: Session, summary: BatchSummary, receiver_id, type, title, message, reference_id, since, sender_id=None):
    if notifications.already_notified(db, receiver_id, type, reference_id, since):
        summary.skipped += 1
        return
    notifications.notify(db, type, title, message, receiver_id, sender_id=sender_id, reference_id=reference_id)
    summary.created += 1


def scan_reminders(db: Session, now: Optional[datetime] = None, window: Optional[timedelta] = None) -> BatchSummary:
    """Queue due-date reminders; a receiver hears about an item at most once a day."""
    now = now or utcnow()
    window = window if window is not None else timedelta(days=settings.REMINDER_WINDOW_DAYS)
    since = start_of_day(now)
    summary = BatchSummary()

    for fee in fees_due_within(db, now, window):
        try:
            with db.begin_nested():
                for parent_id in notifications.parent_ids_of(db, fee.student_id):
                    _remind(
                        db,
                        summary,
                        parent_id,
                        NotificationType.fee_due,
                        "Fee Due Soon",
                        f"Fee '{fee.title}' of {fee.amount} {fee.currency} is due on {fee.due_date:%Y-%m-%d}.",
                        fee.id,
                        since,
                        sender_id=fee.admin_id,
                    )
                db.flush()
        except Exception as exc:
            logger.exception("Failed to queue reminders for fee %s", fee.id)
            summary.record_error(fee.id, exc)

    for subscription in subscriptions_due_within(db, now, window):
        try:
            with db.begin_nested():
                _remind(
                    db,
                    summary,
                    subscription.admin_id,
                    NotificationType.subscription_due,
                    "Subscription Expiring Soon",
                    f"Your {subscription.plan.value} subscription expires on {subscription.end_date:%Y-%m-%d}.",
                    subscription.id,
                    since,
                )
                db.flush()
        except Exception as exc:
            logger.exception("Failed to queue reminder for subscription %s", subscription.id)
            summary.record_error(subscription.id, exc)

    db.commit()
    logger.info("Reminders: %s queued, %s already sent today, %s errors", summary.created, summary.skipped, len(summary.errors))
    return summary
