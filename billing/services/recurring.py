"""Monthly fee and salary generation.

Each generated row carries a ``generation_key`` naming its period, backed by
a unique index, so a rerun (or two overlapping runs) skips instead of
duplicating. Every item runs in its own SAVEPOINT; one failure is recorded in
the summary and the rest of the batch carries on.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing.core.config import settings
from billing.models.communication import NotificationType
from billing.models.finance import Fee, FeeDefinition, Salary
from billing.models.users import Course, CourseAssignment, PayType, User, UserRole
from billing.schemas.batch import BatchSummary
from billing.services import notifications
from billing.services.fees import definition_generation_key, definition_is_due, generate_definition_fee, issue_fee
from billing.services.salaries import issue_salary
from billing.utils.dates import day_in_month, utcnow

logger = logging.getLogger(__name__)


def period_label(now: datetime) -> str:
    return f"{now:%B %Y}"


def assignment_generation_key(assignment: CourseAssignment, now: datetime) -> str:
    return f"assignment:{assignment.student_id}:{assignment.course_id}:{now.year}-{now.month:02d}"


def salary_generation_key(teacher: User, now: datetime) -> str:
    return f"salary:{teacher.id}:{now.year}-{now.month:02d}"


def _key_exists(db: Session, model, key: str) -> bool:
    return db.query(model.id).filter(model.generation_key == key).first() is not None


def _run_item(summary: BatchSummary, db: Session, item_id, create) -> None:
    try:
        with db.begin_nested():
            created = create()
    except IntegrityError:
        # Lost the race to a concurrent run; that run created the row
        logger.info("Item %s already generated concurrently, skipping", item_id)
        summary.skipped += 1
        return
    except Exception as exc:
        logger.exception("Failed to generate item %s", item_id)
        summary.record_error(item_id, exc)
        return
    if created is None:
        summary.skipped += 1
    else:
        summary.created += 1


def generate_monthly_fees(db: Session, now: Optional[datetime] = None) -> BatchSummary:
    now = now or utcnow()
    summary = BatchSummary()

    assignments = (
        db.query(CourseAssignment)
        .join(Course, Course.id == CourseAssignment.course_id)
        .filter(CourseAssignment.is_active.is_(True), CourseAssignment.monthly_fee > 0)
        .all()
    )
    for assignment in assignments:
        key = assignment_generation_key(assignment, now)
        if _key_exists(db, Fee, key):
            summary.skipped += 1
            continue

        def create(assignment=assignment, key=key):
            return issue_fee(
                db,
                admin_id=assignment.course.admin_id,
                student_id=assignment.student_id,
                course_id=assignment.course_id,
                title=f"{assignment.course.name} fee - {period_label(now)}",
                amount=assignment.monthly_fee,
                currency=assignment.currency or settings.DEFAULT_CURRENCY,
                due_date=day_in_month(now.year, now.month, settings.FEE_DUE_DAY),
                month=now.month,
                year=now.year,
                is_recurring=True,
                generation_key=key,
            )

        _run_item(summary, db, assignment.id, create)

    definitions = db.query(FeeDefinition).filter(FeeDefinition.is_active.is_(True)).all()
    for definition in definitions:
        if not definition_is_due(definition, now):
            continue
        if _key_exists(db, Fee, definition_generation_key(definition, now)):
            summary.skipped += 1
            continue
        _run_item(summary, db, definition.id, lambda definition=definition: generate_definition_fee(db, definition, now))

    db.commit()
    logger.info(
        "Monthly fees for %s: %s created, %s skipped, %s errors",
        period_label(now),
        summary.created,
        summary.skipped,
        len(summary.errors),
    )
    return summary


def generate_monthly_salaries(db: Session, now: Optional[datetime] = None) -> BatchSummary:
    now = now or utcnow()
    summary = BatchSummary()

    teachers = (
        db.query(User)
        .filter(
            User.role == UserRole.teacher,
            User.is_active.is_(True),
            User.admin_id.isnot(None),
            User.pay_type == PayType.monthly,
            User.pay_rate > 0,
        )
        .all()
    )
    for teacher in teachers:
        key = salary_generation_key(teacher, now)
        if _key_exists(db, Salary, key):
            summary.skipped += 1
            continue

        def create(teacher=teacher, key=key):
            salary = issue_salary(
                db,
                admin_id=teacher.admin_id,
                teacher_id=teacher.id,
                title=f"Salary - {period_label(now)}",
                amount=teacher.pay_rate,
                currency=teacher.pay_currency or settings.DEFAULT_CURRENCY,
                due_date=day_in_month(now.year, now.month, settings.SALARY_DUE_DAY),
                month=now.month,
                year=now.year,
                pay_type=PayType.monthly,
                is_recurring=True,
                generation_key=key,
            )
            notifications.notify(
                db,
                NotificationType.system_alert,
                "Salary Generated",
                f"Salary of {salary.amount} {salary.currency} for {teacher.name} is due on "
                f"{salary.due_date:%Y-%m-%d}.",
                receiver_id=teacher.admin_id,
                reference_id=salary.id,
            )
            notifications.notify(
                db,
                NotificationType.system_alert,
                "Salary Scheduled",
                f"Your salary for {period_label(now)} ({salary.amount} {salary.currency}) has been scheduled.",
                receiver_id=teacher.id,
                sender_id=teacher.admin_id,
                reference_id=salary.id,
            )
            return salary

        _run_item(summary, db, teacher.id, create)

    db.commit()
    logger.info(
        "Monthly salaries for %s: %s created, %s skipped, %s errors",
        period_label(now),
        summary.created,
        summary.skipped,
        len(summary.errors),
    )
    return summary
