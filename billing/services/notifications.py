"""Notification outbox.

Services call :func:`notify` inside their own transaction, so a notice is
stored if and only if the financial change it describes commits. Delivery to
the outside world happens later in :class:`NotificationDispatcher`; a sink
failure is recorded on the row and retried, never propagated back into the
billing transaction.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from billing.core.config import settings
from billing.core.errors import NotFound
from billing.models.communication import Notification, NotificationType
from billing.models.users import ParentStudent, User, UserRole
from billing.schemas.batch import BatchSummary
from billing.utils import email
from billing.utils.dates import utcnow

logger = logging.getLogger(__name__)


def notify(
    db: Session,
    type: NotificationType,
    title: str,
    message: str,
    receiver_id: UUID,
    sender_id: Optional[UUID] = None,
    reference_id=None,
) -> Notification:
    notification = Notification(
        type=type,
        title=title,
        message=message,
        sender_id=sender_id,
        receiver_id=receiver_id,
        reference_id=str(reference_id) if reference_id is not None else None,
    )
    db.add(notification)
    return notification


def notify_many(
    db: Session,
    receiver_ids: Iterable[UUID],
    type: NotificationType,
    title: str,
    message: str,
    sender_id: Optional[UUID] = None,
    reference_id=None,
) -> List[Notification]:
    return [
        notify(db, type, title, message, receiver_id, sender_id=sender_id, reference_id=reference_id)
        for receiver_id in receiver_ids
    ]


def parent_ids_of(db: Session, student_id: UUID) -> List[UUID]:
    rows = db.query(ParentStudent.parent_id).filter(ParentStudent.student_id == student_id).all()
    return [row[0] for row in rows]


def developer_ids(db: Session) -> List[UUID]:
    rows = db.query(User.id).filter(User.role == UserRole.developer).all()
    return [row[0] for row in rows]


def already_notified(
    db: Session,
    receiver_id: UUID,
    type: NotificationType,
    reference_id,
    since: datetime,
) -> bool:
    return (
        db.query(Notification.id)
        .filter(
            Notification.receiver_id == receiver_id,
            Notification.type == type,
            Notification.reference_id == str(reference_id),
            Notification.created_at >= since,
        )
        .first()
        is not None
    )


# --- Sinks ---


class NotificationSink:
    name = "base"

    def deliver(self, notification: Notification, receiver: Optional[User]) -> None:
        raise NotImplementedError


class LoggingSink(NotificationSink):
    name = "log"

    def deliver(self, notification, receiver):
        logger.info(
            "notification %s [%s] to %s: %s",
            notification.id,
            notification.type.value,
            receiver.email if receiver else notification.receiver_id,
            notification.title,
        )


class EmailSink(NotificationSink):
    name = "email"

    def deliver(self, notification, receiver):
        if receiver is None or not receiver.email:
            raise ValueError(f"Receiver {notification.receiver_id} has no email address")
        email.send_email(
            receiver.email,
            notification.title,
            email.render_notification_html(notification.title, notification.message),
        )


SINKS = {sink.name: sink for sink in (LoggingSink, EmailSink)}


def get_sink(name: Optional[str] = None) -> NotificationSink:
    name = name or settings.NOTIFICATION_SINK
    try:
        return SINKS[name]()
    except KeyError:
        raise ValueError(f"Unknown notification sink '{name}'")


class NotificationDispatcher:
    def __init__(self, db: Session, sink: Optional[NotificationSink] = None, max_attempts: Optional[int] = None):
        self.db = db
        self.sink = sink or get_sink()
        self.max_attempts = max_attempts or settings.NOTIFICATION_MAX_ATTEMPTS

    def pending(self, limit: int):
        return (
            self.db.query(Notification)
            .filter(
                Notification.dispatched_at.is_(None),
                Notification.dispatch_attempts < self.max_attempts,
            )
            .order_by(Notification.created_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
            .all()
        )

    def dispatch_pending(self, limit: Optional[int] = None, now: Optional[datetime] = None) -> BatchSummary:
        now = now or utcnow()
        summary = BatchSummary()
        for notification in self.pending(limit or settings.NOTIFICATION_BATCH_SIZE):
            notification.dispatch_attempts += 1
            try:
                self.sink.deliver(notification, notification.receiver)
            except Exception as exc:
                notification.last_error = str(exc)[:1000]
                summary.record_error(notification.id, exc)
                logger.warning(
                    "Delivery of notification %s failed (attempt %s/%s): %s",
                    notification.id,
                    notification.dispatch_attempts,
                    self.max_attempts,
                    exc,
                )
                continue
            notification.dispatched_at = now
            notification.last_error = None
            summary.updated += 1
        self.db.commit()
        logger.info("Notification dispatch: %s delivered, %s failed", summary.updated, len(summary.errors))
        return summary


def list_for_user(db: Session, user: User, unread_only: bool = False, limit: int = 50):
    query = db.query(Notification).filter(Notification.receiver_id == user.id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc()).limit(limit).all()


def mark_read(db: Session, user: User, notification_id: UUID) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.receiver_id == user.id)
        .first()
    )
    if not notification:
        raise NotFound("Notification not found")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification
