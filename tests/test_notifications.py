"""Notification outbox delivery and the in-app inbox."""

import pytest

from billing.core.errors import NotFound
from billing.models import Notification, NotificationType
from billing.services import notifications
from billing.services.notifications import EmailSink, LoggingSink, NotificationDispatcher, NotificationSink


class RecordingSink(NotificationSink):
    name = "recording"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.delivered = []

    def deliver(self, notification, receiver):
        if self.fail:
            raise ConnectionError("mail relay unreachable")
        self.delivered.append((notification.id, receiver.id))


@pytest.fixture
def queued(db, admin, teacher):
    notice = notifications.notify(
        db, NotificationType.system_alert, "Heads up", "Payroll closes Friday", teacher.id, sender_id=admin.id
    )
    db.commit()
    return notice


def test_dispatch_marks_delivered(db, teacher, queued):
    sink = RecordingSink()

    summary = NotificationDispatcher(db, sink=sink).dispatch_pending()

    assert summary.updated == 1
    assert sink.delivered == [(queued.id, teacher.id)]
    assert queued.dispatched_at is not None
    assert queued.dispatch_attempts == 1
    assert NotificationDispatcher(db, sink=sink).dispatch_pending().updated == 0


def test_failed_delivery_is_recorded_and_retried(db, queued):
    dispatcher = NotificationDispatcher(db, sink=RecordingSink(fail=True), max_attempts=2)

    first = dispatcher.dispatch_pending()

    assert first.updated == 0
    assert len(first.errors) == 1
    assert queued.dispatched_at is None
    assert queued.dispatch_attempts == 1
    assert "mail relay unreachable" in queued.last_error

    dispatcher.dispatch_pending()
    assert queued.dispatch_attempts == 2
    # Gives up once max attempts are spent
    assert dispatcher.dispatch_pending().errors == []
    assert queued.dispatch_attempts == 2


def test_retry_after_failure_clears_error(db, queued):
    NotificationDispatcher(db, sink=RecordingSink(fail=True)).dispatch_pending()

    NotificationDispatcher(db, sink=RecordingSink()).dispatch_pending()

    assert queued.dispatched_at is not None
    assert queued.last_error is None
    assert queued.dispatch_attempts == 2


def test_email_sink_without_smtp_fails_softly(db, queued):
    summary = NotificationDispatcher(db, sink=EmailSink()).dispatch_pending()

    assert summary.updated == 0
    assert "SMTP_HOST" in queued.last_error


def test_sink_lookup():
    assert isinstance(notifications.get_sink("log"), LoggingSink)
    with pytest.raises(ValueError):
        notifications.get_sink("pigeon")


def test_inbox_and_mark_read(db, admin, teacher, queued):
    notifications.notify(db, NotificationType.salary_paid, "Paid", "Salary paid", teacher.id)
    notifications.notify(db, NotificationType.system_alert, "Other", "Not yours", admin.id)
    db.commit()

    inbox = notifications.list_for_user(db, teacher)
    assert len(inbox) == 2

    notifications.mark_read(db, teacher, queued.id)

    unread = notifications.list_for_user(db, teacher, unread_only=True)
    assert [n.title for n in unread] == ["Paid"]
    with pytest.raises(NotFound):
        notifications.mark_read(db, admin, queued.id)


def test_notify_stores_reference_as_text(db, admin, teacher):
    notice = notifications.notify(db, NotificationType.system_alert, "t", "m", teacher.id, reference_id=admin.id)
    db.commit()

    stored = db.query(Notification).one()
    assert stored.reference_id == str(admin.id)
    assert stored.is_read is False
    assert notice.dispatch_attempts == 0
