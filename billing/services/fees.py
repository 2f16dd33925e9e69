"""Student fee lifecycle.

PENDING -> submit_payment -> PROCESSING -> verify_payment -> PAID, with
revert_payment (or a rejected verification) taking a PROCESSING fee back to
PENDING and clearing every payment field.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from billing.core.config import settings
from billing.core.database import atomic
from billing.core.errors import Forbidden, InvalidInput, InvalidState, NotFound
from billing.core.security import sanitize_input
from billing.models.communication import NotificationType
from billing.models.finance import FEE_TYPE_INTERVAL, Fee, FeeDefinition, FeeStatus, FeeType
from billing.models.users import Course, User, UserRole
from billing.services import notifications
from billing.services.access import children_of, get_tenant_member, is_linked_parent, require_role
from billing.services.deletion import DeletionPlan
from billing.utils.dates import as_utc, day_in_month, months_between, utcnow
from billing.utils.money import positive_money

logger = logging.getLogger(__name__)

FEE_EDITABLE_FIELDS = ("title", "description", "amount", "currency", "due_date")
DEFINITION_EDITABLE_FIELDS = (
    "title",
    "description",
    "amount",
    "currency",
    "fee_type",
    "generation_day",
    "start_date",
    "end_date",
    "due_after_days",
    "is_active",
)


def _get_course(db: Session, admin: User, course_id: Optional[UUID]) -> Optional[Course]:
    if course_id is None:
        return None
    course = db.query(Course).filter(Course.id == course_id, Course.admin_id == admin.id).first()
    if not course:
        raise NotFound("Course not found")
    return course


def _load_fee(db: Session, fee_id: UUID, actor: User, lock: bool = False) -> Fee:
    query = db.query(Fee).filter(Fee.id == fee_id)
    if actor.role == UserRole.admin:
        query = query.filter(Fee.admin_id == actor.id)
    if lock:
        query = query.with_for_update()
    fee = query.first()
    if not fee:
        raise NotFound("Fee not found")
    return fee


def issue_fee(
    db: Session,
    *,
    admin_id: UUID,
    student_id: UUID,
    title: str,
    amount,
    currency: str,
    due_date: datetime,
    description: Optional[str] = None,
    course_id: Optional[UUID] = None,
    fee_definition_id: Optional[UUID] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    is_recurring: bool = False,
    generation_key: Optional[str] = None,
) -> Fee:
    """Insert a fee and queue a FEE_DUE notice for every linked parent.

    Does not commit; callers own the transaction.
    """
    fee = Fee(
        admin_id=admin_id,
        student_id=student_id,
        course_id=course_id,
        fee_definition_id=fee_definition_id,
        title=title,
        description=description,
        amount=positive_money(amount),
        currency=currency,
        due_date=due_date,
        month=month,
        year=year,
        is_recurring=is_recurring,
        generation_key=generation_key,
        status=FeeStatus.pending,
    )
    db.add(fee)
    db.flush()

    notifications.notify_many(
        db,
        notifications.parent_ids_of(db, student_id),
        NotificationType.fee_due,
        "New Fee Assigned",
        f"A fee '{title}' of {fee.amount} {currency} is due on {due_date:%Y-%m-%d}.",
        sender_id=admin_id,
        reference_id=fee.id,
    )
    return fee


def create_fee(
    db: Session,
    actor: User,
    student_id: UUID,
    title: str,
    amount,
    due_date: datetime,
    currency: Optional[str] = None,
    description: Optional[str] = None,
    course_id: Optional[UUID] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
) -> Fee:
    admin = require_role(actor, UserRole.admin)
    if not title or not title.strip():
        raise InvalidInput("title is required")
    if due_date is None:
        raise InvalidInput("due_date is required")
    student = get_tenant_member(db, admin, student_id, UserRole.student)
    course = _get_course(db, admin, course_id)

    with atomic(db):
        fee = issue_fee(
            db,
            admin_id=admin.id,
            student_id=student.id,
            title=title.strip(),
            amount=amount,
            currency=currency or settings.DEFAULT_CURRENCY,
            due_date=as_utc(due_date),
            description=sanitize_input(description),
            course_id=course.id if course else None,
            month=month,
            year=year,
        )
    logger.info("Fee %s created for student %s by admin %s", fee.id, student.id, admin.id)
    return fee


def list_fees(db: Session, actor: User, status: Optional[FeeStatus] = None, student_id: Optional[UUID] = None):
    query = db.query(Fee)
    if actor.role == UserRole.admin:
        query = query.filter(Fee.admin_id == actor.id)
    elif actor.role == UserRole.parent:
        query = query.filter(Fee.student_id.in_(children_of(db, actor.id)))
    elif actor.role == UserRole.student:
        query = query.filter(Fee.student_id == actor.id)
    elif actor.role != UserRole.developer:
        raise Forbidden("You are not allowed to view fees")

    if status is not None:
        query = query.filter(Fee.status == status)
    if student_id is not None:
        query = query.filter(Fee.student_id == student_id)
    return query.order_by(Fee.due_date.desc()).all()


def submit_payment(
    db: Session,
    fee_id: UUID,
    payer: User,
    amount,
    paid_date: Optional[datetime] = None,
    details: Optional[str] = None,
    proof: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Fee:
    now = now or utcnow()
    paid_amount = positive_money(amount, "paid_amount")

    fee = db.query(Fee).filter(Fee.id == fee_id).with_for_update().first()
    # A stranger learns nothing about whether the fee exists
    if not fee or (fee.student_id != payer.id and not is_linked_parent(db, payer.id, fee.student_id)):
        raise NotFound("Fee not found")
    if fee.status != FeeStatus.pending:
        raise InvalidState(f"Fee is already {fee.status.value}")

    with atomic(db):
        fee.status = FeeStatus.processing
        fee.paid_amount = paid_amount
        fee.paid_date = as_utc(paid_date) or now
        fee.payment_details = sanitize_input(details)
        fee.payment_proof = proof
        fee.paid_by_id = payer.id

        notifications.notify(
            db,
            NotificationType.payment_processing,
            "Fee Payment Submitted",
            f"{payer.name} submitted a payment of {paid_amount} {fee.currency} for '{fee.title}'.",
            receiver_id=fee.admin_id,
            sender_id=payer.id,
            reference_id=fee.id,
        )
    logger.info("Fee %s payment submitted by %s", fee.id, payer.id)
    return fee


def verify_payment(db: Session, fee_id: UUID, actor: User, approve: bool = True, now: Optional[datetime] = None) -> Fee:
    now = now or utcnow()
    require_role(actor, UserRole.admin, UserRole.developer)
    fee = _load_fee(db, fee_id, actor, lock=True)
    if fee.status != FeeStatus.processing:
        raise InvalidState("Only payments in processing can be verified or rejected")

    with atomic(db):
        payer_id = fee.paid_by_id
        fee.processed_date = now
        if approve:
            fee.status = FeeStatus.paid
            kind = NotificationType.payment_verified
            title = "Fee Payment Verified"
            message = f"Your fee payment for {fee.title} has been verified."
        else:
            fee.status = FeeStatus.pending
            fee.clear_payment()
            kind = NotificationType.system_alert
            title = "Fee Payment Rejected"
            message = f"Your fee payment for {fee.title} was rejected. Please review details and resubmit."

        if payer_id:
            notifications.notify(db, kind, title, message, receiver_id=payer_id, sender_id=actor.id, reference_id=fee.id)
    logger.info("Fee %s %s by %s", fee.id, "verified" if approve else "rejected", actor.id)
    return fee


def revert_payment(db: Session, fee_id: UUID, actor: User, now: Optional[datetime] = None) -> Fee:
    now = now or utcnow()
    require_role(actor, UserRole.admin, UserRole.developer)
    fee = _load_fee(db, fee_id, actor, lock=True)
    if fee.status != FeeStatus.processing:
        raise InvalidState("Only payments in processing can be reverted")
    if fee.paid_date and now - fee.paid_date > timedelta(days=settings.PAYMENT_EDIT_WINDOW_DAYS):
        raise InvalidState(
            f"Payments can only be reverted within {settings.PAYMENT_EDIT_WINDOW_DAYS} days of submission"
        )

    with atomic(db):
        fee.clear_payment()
        fee.status = FeeStatus.pending
        fee.processed_date = None
    logger.info("Fee %s payment reverted by %s", fee.id, actor.id)
    return fee


def update_fee(db: Session, fee_id: UUID, actor: User, changes: dict) -> Fee:
    require_role(actor, UserRole.admin)
    fee = _load_fee(db, fee_id, actor, lock=True)
    if fee.status == FeeStatus.paid:
        raise InvalidState("A paid fee cannot be edited")

    values = {k: v for k, v in changes.items() if k in FEE_EDITABLE_FIELDS and v is not None}
    if "amount" in values:
        values["amount"] = positive_money(values["amount"])
    if "title" in values and not values["title"].strip():
        raise InvalidInput("title cannot be empty")
    if "due_date" in values:
        values["due_date"] = as_utc(values["due_date"])
    if "description" in values:
        values["description"] = sanitize_input(values["description"])

    with atomic(db):
        for key, value in values.items():
            setattr(fee, key, value)
    return fee


def delete_fee(db: Session, fee_id: UUID, actor: User) -> None:
    require_role(actor, UserRole.admin)
    fee = _load_fee(db, fee_id, actor, lock=True)
    if fee.status != FeeStatus.pending or fee.paid_by_id is not None:
        raise InvalidState("Only unpaid pending fees can be deleted")
    with atomic(db):
        db.delete(fee)
    logger.info("Fee %s deleted by %s", fee_id, actor.id)


# --- Fee definitions ---


def _whole_number(value, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be a whole number")


def _validate_generation_day(day) -> int:
    if day is None or not 1 <= _whole_number(day, "generation_day") <= 31:
        raise InvalidInput("generation_day must be between 1 and 31")
    return int(day)


def _validate_due_after_days(days) -> int:
    if days is None:
        return 0
    days = _whole_number(days, "due_after_days")
    if days < 0:
        raise InvalidInput("due_after_days cannot be negative")
    return days


def definition_generation_date(definition: FeeDefinition, now: datetime) -> datetime:
    return day_in_month(now.year, now.month, definition.generation_day)


def definition_is_due(definition: FeeDefinition, now: datetime) -> bool:
    """Whether ``definition`` yields a fee for the calendar month of ``now``."""
    if not definition.is_active:
        return False
    elapsed = months_between(definition.start_date, now)
    if elapsed < 0:
        return False
    if definition.fee_type == FeeType.once:
        if elapsed != 0:
            return False
    elif elapsed % FEE_TYPE_INTERVAL[definition.fee_type] != 0:
        return False

    generated_on = definition_generation_date(definition, now)
    if now < generated_on:
        return False
    if definition.end_date is not None and generated_on > definition.end_date:
        return False
    return True


def definition_generation_key(definition: FeeDefinition, now: datetime) -> str:
    return f"definition:{definition.id}:{now.year}-{now.month:02d}"


def generate_definition_fee(db: Session, definition: FeeDefinition, now: datetime) -> Optional[Fee]:
    """Materialize this month's fee for ``definition`` if one is due.

    Returns None when the period is not due or its fee already exists.
    Does not commit.
    """
    if not definition_is_due(definition, now):
        return None
    key = definition_generation_key(definition, now)
    if db.query(Fee.id).filter(Fee.generation_key == key).first():
        return None

    generated_on = definition_generation_date(definition, now)
    return issue_fee(
        db,
        admin_id=definition.admin_id,
        student_id=definition.student_id,
        course_id=definition.course_id,
        fee_definition_id=definition.id,
        title=definition.title,
        description=definition.description,
        amount=definition.amount,
        currency=definition.currency,
        due_date=generated_on + timedelta(days=definition.due_after_days or 0),
        month=now.month,
        year=now.year,
        is_recurring=definition.fee_type != FeeType.once,
        generation_key=key,
    )


def _load_definition(db: Session, definition_id: UUID, actor: User) -> FeeDefinition:
    query = db.query(FeeDefinition).filter(FeeDefinition.id == definition_id)
    if actor.role == UserRole.admin:
        query = query.filter(FeeDefinition.admin_id == actor.id)
    definition = query.first()
    if not definition:
        raise NotFound("Fee definition not found")
    return definition


def create_definition(
    db: Session,
    actor: User,
    student_id: UUID,
    title: str,
    amount,
    generation_day: int,
    start_date: datetime,
    fee_type: FeeType = FeeType.monthly,
    currency: Optional[str] = None,
    description: Optional[str] = None,
    course_id: Optional[UUID] = None,
    end_date: Optional[datetime] = None,
    due_after_days: int = 0,
    now: Optional[datetime] = None,
) -> FeeDefinition:
    now = now or utcnow()
    admin = require_role(actor, UserRole.admin)
    if not title or not title.strip():
        raise InvalidInput("title is required")
    if start_date is None:
        raise InvalidInput("start_date is required")
    start_date = as_utc(start_date)
    end_date = as_utc(end_date)
    if end_date is not None and end_date < start_date:
        raise InvalidInput("end_date must not be before start_date")
    student = get_tenant_member(db, admin, student_id, UserRole.student)
    course = _get_course(db, admin, course_id)

    with atomic(db):
        definition = FeeDefinition(
            admin_id=admin.id,
            student_id=student.id,
            course_id=course.id if course else None,
            title=title.strip(),
            description=sanitize_input(description),
            amount=positive_money(amount),
            currency=currency or settings.DEFAULT_CURRENCY,
            fee_type=fee_type,
            generation_day=_validate_generation_day(generation_day),
            start_date=start_date,
            end_date=end_date,
            due_after_days=_validate_due_after_days(due_after_days),
            is_active=True,
        )
        db.add(definition)
        db.flush()
        generate_definition_fee(db, definition, now)
    logger.info("Fee definition %s (%s) created for student %s", definition.id, fee_type.value, student.id)
    return definition


def list_definitions(db: Session, actor: User, student_id: Optional[UUID] = None):
    query = db.query(FeeDefinition)
    if actor.role == UserRole.admin:
        query = query.filter(FeeDefinition.admin_id == actor.id)
    elif actor.role == UserRole.parent:
        query = query.filter(FeeDefinition.student_id.in_(children_of(db, actor.id)))
    elif actor.role == UserRole.student:
        query = query.filter(FeeDefinition.student_id == actor.id)
    elif actor.role != UserRole.developer:
        raise Forbidden("You are not allowed to view fee definitions")
    if student_id is not None:
        query = query.filter(FeeDefinition.student_id == student_id)
    return query.order_by(FeeDefinition.created_at.desc()).all()


def update_definition(db: Session, definition_id: UUID, actor: User, changes: dict) -> FeeDefinition:
    require_role(actor, UserRole.admin)
    definition = _load_definition(db, definition_id, actor)

    values = {k: v for k, v in changes.items() if k in DEFINITION_EDITABLE_FIELDS and v is not None}
    if "amount" in values:
        values["amount"] = positive_money(values["amount"])
    if "generation_day" in values:
        values["generation_day"] = _validate_generation_day(values["generation_day"])
    if "due_after_days" in values:
        values["due_after_days"] = _validate_due_after_days(values["due_after_days"])
    for field in ("start_date", "end_date"):
        if field in values:
            values[field] = as_utc(values[field])
    end_date = values.get("end_date", definition.end_date)
    if end_date is not None and end_date < values.get("start_date", definition.start_date):
        raise InvalidInput("end_date must not be before start_date")

    with atomic(db):
        for key, value in values.items():
            setattr(definition, key, value)
    return definition


def delete_definition(db: Session, definition_id: UUID, actor: User) -> dict:
    """Drop a definition with its unpaid pending fees; paid history is detached."""
    require_role(actor, UserRole.admin)
    definition = _load_definition(db, definition_id, actor)
    plan = (
        DeletionPlan(db, label=f"fee definition {definition.id}")
        .delete(
            Fee,
            Fee.fee_definition_id == definition.id,
            Fee.status == FeeStatus.pending,
            Fee.paid_by_id.is_(None),
        )
        .detach(Fee, {"fee_definition_id": None}, Fee.fee_definition_id == definition.id)
        .delete(FeeDefinition, FeeDefinition.id == definition.id)
    )
    return plan.execute()
