"""Monthly generation jobs must be safe to rerun."""

from datetime import datetime
from decimal import Decimal

from billing.models import Fee, FeeType, Notification, NotificationType, Salary, SalaryStatus, UserRole
from billing.services import fees as fee_service
from billing.services import recurring

NOW = datetime(2026, 5, 2, 6, 0)


def test_assignment_fee_generated_once_per_month(db, admin, student, parent, assignment):
    first = recurring.generate_monthly_fees(db, now=NOW)
    second = recurring.generate_monthly_fees(db, now=NOW)

    assert (first.created, first.skipped) == (1, 0)
    assert (second.created, second.skipped) == (0, 1)
    fee = db.query(Fee).one()
    assert fee.amount == Decimal("150.00")
    assert fee.due_date == datetime(2026, 5, 5)
    assert fee.generation_key == f"assignment:{student.id}:{assignment.course_id}:2026-05"
    assert fee.title == "Piano fee - May 2026"
    parent_notices = db.query(Notification).filter(Notification.receiver_id == parent.id).count()
    assert parent_notices == 1


def test_next_month_generates_a_new_fee(db, admin, student, assignment):
    recurring.generate_monthly_fees(db, now=NOW)
    summary = recurring.generate_monthly_fees(db, now=datetime(2026, 6, 2))

    assert summary.created == 1
    assert db.query(Fee).count() == 2


def test_inactive_or_free_assignment_is_ignored(db, admin, assignment):
    assignment.monthly_fee = Decimal("0")
    db.commit()

    summary = recurring.generate_monthly_fees(db, now=NOW)

    assert summary.created == 0
    assert db.query(Fee).count() == 0


def test_definitions_are_generated_with_assignments(db, admin, student, assignment):
    fee_service.create_definition(
        db,
        admin,
        student.id,
        "Lab fee",
        "30",
        fee_type=FeeType.monthly,
        generation_day=1,
        start_date=datetime(2026, 4, 1),
        now=datetime(2026, 4, 1, 8, 0),
    )

    first = recurring.generate_monthly_fees(db, now=NOW)
    second = recurring.generate_monthly_fees(db, now=NOW)

    assert first.created == 2
    assert (second.created, second.skipped) == (0, 2)
    assert db.query(Fee).count() == 3


def test_concurrent_duplicate_counts_as_skipped(db, admin, student, assignment, monkeypatch):
    recurring.generate_monthly_fees(db, now=NOW)
    # Simulate a run that read the keys before another run inserted them
    monkeypatch.setattr(recurring, "_key_exists", lambda *args: False)

    summary = recurring.generate_monthly_fees(db, now=NOW)

    assert summary.created == 0
    assert summary.skipped == 1
    assert summary.errors == []
    assert db.query(Fee).count() == 1


def test_salaries_generated_once_and_announced(db, admin, teacher):
    first = recurring.generate_monthly_salaries(db, now=NOW)
    second = recurring.generate_monthly_salaries(db, now=NOW)

    assert first.created == 1
    assert (second.created, second.skipped) == (0, 1)
    salary = db.query(Salary).one()
    assert salary.amount == Decimal("1000.00")
    assert salary.status == SalaryStatus.pending
    assert salary.due_date == datetime(2026, 5, 25)
    assert salary.generation_key == f"salary:{teacher.id}:2026-05"
    for receiver in (admin, teacher):
        alerts = (
            db.query(Notification)
            .filter(Notification.receiver_id == receiver.id, Notification.type == NotificationType.system_alert)
            .count()
        )
        assert alerts == 1


def test_unpaid_or_inactive_teachers_get_no_salary(db, make_user, admin, teacher):
    make_user(UserRole.teacher, admin=admin)
    teacher.is_active = False
    db.commit()

    summary = recurring.generate_monthly_salaries(db, now=NOW)

    assert summary.created == 0
    assert db.query(Salary).count() == 0
