"""Teacher salaries, salary payments and advance amortization.

Two advance products share one repayment ledger:

* an *issued* advance (admin lends, ``ACTIVE`` -> ``COMPLETED``) is amortized
  automatically by :func:`record_salary_payment`, one installment per active
  advance, oldest first;
* a *requested* advance (teacher asks, admin approves) is repaid through the
  deduction an admin names in :func:`pay_with_explicit_deduction`.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from billing.core.config import settings
from billing.core.database import atomic
from billing.core.errors import AlreadyPaid, Conflict, Forbidden, InvalidInput, InvalidState, NotFound
from billing.core.security import sanitize_input
from billing.models.communication import NotificationType
from billing.models.finance import (
    AdvanceStatus,
    IssuedAdvance,
    RequestedAdvance,
    Salary,
    SalaryAdvance,
    SalaryAdvanceRepayment,
    SalaryPayment,
    SalaryStatus,
)
from billing.models.users import PayType, User, UserRole
from billing.schemas.batch import BatchSummary
from billing.services import notifications
from billing.services.access import get_tenant_member, require_role
from billing.services.deletion import DeletionPlan
from billing.utils.dates import as_utc, utcnow
from billing.utils.money import ZERO, clamp, positive_money, split_installments, to_money

logger = logging.getLogger(__name__)

SALARY_EDITABLE_FIELDS = ("title", "description", "amount", "currency", "due_date", "pay_type")


def _scope(query, model, actor: User):
    if actor.role == UserRole.admin:
        return query.filter(model.admin_id == actor.id)
    if actor.role == UserRole.teacher:
        return query.filter(model.teacher_id == actor.id)
    if actor.role == UserRole.developer:
        return query
    raise Forbidden("You are not allowed to view payroll records")


def _load_salary(db: Session, salary_id: UUID, admin: User, lock: bool = False) -> Salary:
    query = db.query(Salary).filter(Salary.id == salary_id, Salary.admin_id == admin.id)
    if lock:
        query = query.with_for_update()
    salary = query.first()
    if not salary:
        raise NotFound("Salary not found")
    return salary


def _positive_installments(value, field: str) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be a whole number")
    if count < 1:
        raise InvalidInput(f"{field} must be at least 1")
    return count


def _installment_for(total: Decimal, count: int, field: str) -> Decimal:
    installment = split_installments(total, count)
    if installment <= ZERO:
        raise InvalidInput(f"{field} is too large for the amount; each installment would round to zero")
    return installment


# --- Salaries ---


def issue_salary(
    db: Session,
    *,
    admin_id: UUID,
    teacher_id: UUID,
    title: str,
    amount,
    currency: str,
    due_date: datetime,
    description: Optional[str] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    pay_type: PayType = PayType.monthly,
    is_recurring: bool = False,
    generation_key: Optional[str] = None,
) -> Salary:
    """Insert a salary row without committing."""
    salary = Salary(
        admin_id=admin_id,
        teacher_id=teacher_id,
        title=title,
        description=description,
        amount=positive_money(amount),
        currency=currency,
        due_date=due_date,
        month=month,
        year=year,
        pay_type=pay_type,
        is_recurring=is_recurring,
        generation_key=generation_key,
        status=SalaryStatus.pending,
    )
    db.add(salary)
    db.flush()
    return salary


def create_salary(
    db: Session,
    actor: User,
    teacher_id: UUID,
    title: str,
    amount,
    due_date: datetime,
    currency: Optional[str] = None,
    description: Optional[str] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    pay_type: Optional[PayType] = None,
) -> Salary:
    admin = require_role(actor, UserRole.admin)
    if not title or not title.strip():
        raise InvalidInput("title is required")
    if due_date is None:
        raise InvalidInput("due_date is required")
    teacher = get_tenant_member(db, admin, teacher_id, UserRole.teacher)

    with atomic(db):
        salary = issue_salary(
            db,
            admin_id=admin.id,
            teacher_id=teacher.id,
            title=title.strip(),
            amount=amount,
            currency=currency or teacher.pay_currency or settings.DEFAULT_CURRENCY,
            due_date=as_utc(due_date),
            description=sanitize_input(description),
            month=month,
            year=year,
            pay_type=pay_type or teacher.pay_type or PayType.monthly,
        )
    logger.info("Salary %s created for teacher %s", salary.id, teacher.id)
    return salary


def list_salaries(db: Session, actor: User, status: Optional[SalaryStatus] = None, teacher_id: Optional[UUID] = None):
    query = _scope(db.query(Salary), Salary, actor)
    if status is not None:
        query = query.filter(Salary.status == status)
    if teacher_id is not None:
        query = query.filter(Salary.teacher_id == teacher_id)
    return query.order_by(Salary.due_date.desc()).all()


def update_salary(db: Session, salary_id: UUID, actor: User, changes: dict) -> Salary:
    admin = require_role(actor, UserRole.admin)
    salary = _load_salary(db, salary_id, admin, lock=True)
    if salary.status == SalaryStatus.paid:
        raise InvalidState("A paid salary cannot be edited")

    values = {k: v for k, v in changes.items() if k in SALARY_EDITABLE_FIELDS and v is not None}
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
            setattr(salary, key, value)
    return salary


def list_payments(db: Session, actor: User, teacher_id: Optional[UUID] = None):
    query = _scope(db.query(SalaryPayment), SalaryPayment, actor)
    if teacher_id is not None:
        query = query.filter(SalaryPayment.teacher_id == teacher_id)
    return query.order_by(SalaryPayment.paid_date.desc(), SalaryPayment.created_at.desc()).all()


def _mark_salary_paid(salary: Salary, payer: User, net: Decimal, deducted: Decimal, paid_date, details, proof, now):
    salary.status = SalaryStatus.paid
    salary.paid_amount = net
    salary.advance_deduction = deducted
    salary.paid_date = paid_date
    salary.paid_by_id = payer.id
    salary.payment_details = details
    salary.payment_proof = proof
    salary.processed_date = now


def _record_repayment(db: Session, advance: SalaryAdvance, amount: Decimal, payment: SalaryPayment, date) -> None:
    repayment = SalaryAdvanceRepayment(amount=amount, date=date, salary_payment=payment)
    advance.repayments.append(repayment)
    db.add(repayment)


def _apply_installment(db: Session, advance: IssuedAdvance, payment: SalaryPayment, date) -> Decimal:
    """Deduct one installment from ``advance``; returns the amount deducted."""
    if advance.balance <= ZERO:
        advance.status = AdvanceStatus.completed
        return ZERO

    installment = min(advance.installment_amount, advance.balance)
    if installment <= ZERO:
        return ZERO
    _record_repayment(db, advance, installment, payment, date)
    advance.balance = to_money(advance.balance - installment)
    if advance.balance <= ZERO:
        advance.balance = ZERO
        advance.status = AdvanceStatus.completed
        notifications.notify(
            db,
            NotificationType.salary_advance_repaid,
            "Salary Advance Repaid",
            f"Your salary advance of {advance.principal} {advance.currency} has been fully repaid.",
            receiver_id=advance.teacher_id,
            sender_id=advance.admin_id,
            reference_id=advance.id,
        )
    logger.info("Advance %s: deducted %s, balance %s", advance.id, installment, advance.balance)
    return installment


def active_issued_advances(db: Session, teacher_id: UUID, lock: bool = False) -> List[IssuedAdvance]:
    query = (
        db.query(IssuedAdvance)
        .filter(IssuedAdvance.teacher_id == teacher_id, IssuedAdvance.status == AdvanceStatus.active)
        .order_by(IssuedAdvance.issued_date.asc(), IssuedAdvance.created_at.asc())
    )
    if lock:
        query = query.with_for_update()
    return query.all()


def record_salary_payment(
    db: Session,
    actor: User,
    teacher_id: UUID,
    amount,
    salary_id: Optional[UUID] = None,
    paid_date: Optional[datetime] = None,
    details: Optional[str] = None,
    proof: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SalaryPayment:
    """Pay a teacher and amortize every active issued advance, all or nothing."""
    now = now or utcnow()
    admin = require_role(actor, UserRole.admin)
    teacher = get_tenant_member(db, admin, teacher_id, UserRole.teacher)
    gross = positive_money(amount)
    paid_date = as_utc(paid_date) or now
    details = sanitize_input(details)

    salary = None
    if salary_id is not None:
        salary = _load_salary(db, salary_id, admin, lock=True)
        if salary.teacher_id != teacher.id:
            raise NotFound("Salary not found")
        if salary.status == SalaryStatus.paid:
            raise AlreadyPaid("Salary is already paid")

    with atomic(db):
        payment = SalaryPayment(
            admin_id=admin.id,
            teacher_id=teacher.id,
            salary_id=salary.id if salary else None,
            amount=gross,
            advance_deduction=ZERO,
            net_amount=gross,
            currency=salary.currency if salary else (teacher.pay_currency or settings.DEFAULT_CURRENCY),
            paid_date=paid_date,
            payment_details=details,
            payment_proof=proof,
        )
        db.add(payment)
        db.flush()

        deducted = ZERO
        for advance in active_issued_advances(db, teacher.id, lock=True):
            deducted += _apply_installment(db, advance, payment, paid_date)

        net = max(ZERO, gross - deducted)
        payment.advance_deduction = deducted
        payment.net_amount = net
        if salary is not None:
            _mark_salary_paid(salary, admin, net, deducted, paid_date, details, proof, now)

        notifications.notify(
            db,
            NotificationType.salary_paid,
            "Salary Paid",
            f"A salary payment of {net} {payment.currency} has been made to you"
            + (f" ({deducted} deducted for advances)." if deducted > ZERO else "."),
            receiver_id=teacher.id,
            sender_id=admin.id,
            reference_id=payment.id,
        )
    logger.info("Salary payment %s to teacher %s: gross %s, deducted %s", payment.id, teacher.id, gross, deducted)
    return payment


def _oldest_outstanding_request(db: Session, teacher_id: UUID) -> Optional[RequestedAdvance]:
    return (
        db.query(RequestedAdvance)
        .filter(
            RequestedAdvance.teacher_id == teacher_id,
            RequestedAdvance.status == AdvanceStatus.approved,
            RequestedAdvance.remaining_amount > 0,
        )
        .order_by(RequestedAdvance.approved_date.asc(), RequestedAdvance.created_at.asc())
        .with_for_update()
        .first()
    )


def _apply_explicit_deduction(
    db: Session, advance: RequestedAdvance, requested: Decimal, payment: SalaryPayment, date
) -> Decimal:
    applied = clamp(requested, ZERO, advance.remaining_amount)
    if applied <= ZERO:
        return ZERO
    _record_repayment(db, advance, applied, payment, date)
    advance.total_repaid = to_money((advance.total_repaid or ZERO) + applied)
    new_remaining = to_money(advance.approved_amount - advance.total_repaid)
    advance.remaining_amount = max(ZERO, new_remaining)
    if new_remaining <= ZERO:
        advance.status = AdvanceStatus.repaid
        notifications.notify(
            db,
            NotificationType.salary_advance_repaid,
            "Salary Advance Repaid",
            f"Your salary advance of {advance.approved_amount} {advance.currency} has been fully repaid.",
            receiver_id=advance.teacher_id,
            sender_id=advance.admin_id,
            reference_id=advance.id,
        )
    return applied


def pay_with_explicit_deduction(
    db: Session,
    actor: User,
    salary_id: UUID,
    paid_amount,
    advance_deduction=None,
    paid_date: Optional[datetime] = None,
    details: Optional[str] = None,
    proof: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Salary, SalaryPayment]:
    now = now or utcnow()
    admin = require_role(actor, UserRole.admin)
    gross = positive_money(paid_amount, "paid_amount")
    requested = max(ZERO, to_money(advance_deduction or 0))
    paid_date = as_utc(paid_date) or now
    details = sanitize_input(details)

    salary = _load_salary(db, salary_id, admin, lock=True)
    if salary.status == SalaryStatus.paid:
        raise AlreadyPaid("Salary is already paid")

    advance = None
    if requested > ZERO:
        advance = _oldest_outstanding_request(db, salary.teacher_id)
        if advance is None:
            raise InvalidState("Teacher has no outstanding approved advance to deduct from")

    with atomic(db):
        payment = SalaryPayment(
            admin_id=admin.id,
            teacher_id=salary.teacher_id,
            salary_id=salary.id,
            amount=gross,
            advance_deduction=ZERO,
            net_amount=gross,
            currency=salary.currency,
            paid_date=paid_date,
            payment_details=details,
            payment_proof=proof,
        )
        db.add(payment)
        db.flush()

        applied = _apply_explicit_deduction(db, advance, requested, payment, paid_date) if advance else ZERO
        final_paid = max(ZERO, gross - applied)
        payment.advance_deduction = applied
        payment.net_amount = final_paid
        _mark_salary_paid(salary, admin, final_paid, applied, paid_date, details, proof, now)

        notifications.notify(
            db,
            NotificationType.salary_paid,
            "Salary Paid",
            f"Your salary '{salary.title}' has been paid: {final_paid} {salary.currency}.",
            receiver_id=salary.teacher_id,
            sender_id=admin.id,
            reference_id=salary.id,
        )
    logger.info("Salary %s paid %s with explicit deduction %s", salary.id, final_paid, applied)
    return salary, payment


def flag_overdue_salaries(db: Session, now: Optional[datetime] = None) -> BatchSummary:
    now = now or utcnow()
    summary = BatchSummary()
    overdue = (
        db.query(Salary)
        .filter(Salary.status == SalaryStatus.pending, Salary.due_date < now)
        .order_by(Salary.due_date)
        .all()
    )
    for salary in overdue:
        try:
            with db.begin_nested():
                salary.status = SalaryStatus.overdue
                notifications.notify(
                    db,
                    NotificationType.system_alert,
                    "Salary Overdue",
                    f"Salary '{salary.title}' was due on {salary.due_date:%Y-%m-%d} and is still unpaid.",
                    receiver_id=salary.admin_id,
                    reference_id=salary.id,
                )
            summary.updated += 1
        except Exception as exc:
            logger.exception("Failed to flag salary %s as overdue", salary.id)
            summary.record_error(salary.id, exc)
    db.commit()
    logger.info("Overdue salaries: %s flagged, %s errors", summary.updated, len(summary.errors))
    return summary


# --- Advances ---


def _load_advance(db: Session, advance_id: UUID, admin: User, model=SalaryAdvance, lock: bool = False):
    query = db.query(model).filter(model.id == advance_id, model.admin_id == admin.id)
    if lock:
        query = query.with_for_update()
    advance = query.first()
    if not advance:
        raise NotFound("Salary advance not found")
    return advance


def issue_advance(
    db: Session,
    actor: User,
    teacher_id: UUID,
    principal,
    installments: int,
    currency: Optional[str] = None,
    details: Optional[str] = None,
    now: Optional[datetime] = None,
) -> IssuedAdvance:
    now = now or utcnow()
    admin = require_role(actor, UserRole.admin)
    teacher = get_tenant_member(db, admin, teacher_id, UserRole.teacher)
    principal = positive_money(principal, "principal")
    installments = _positive_installments(installments, "installments")
    installment_amount = _installment_for(principal, installments, "installments")

    with atomic(db):
        advance = IssuedAdvance(
            admin_id=admin.id,
            teacher_id=teacher.id,
            currency=currency or teacher.pay_currency or settings.DEFAULT_CURRENCY,
            status=AdvanceStatus.active,
            details=sanitize_input(details),
            principal=principal,
            balance=principal,
            installments=installments,
            installment_amount=installment_amount,
            issued_date=now,
            pay_type=teacher.pay_type or PayType.monthly,
        )
        db.add(advance)
        db.flush()
        notifications.notify(
            db,
            NotificationType.salary_advance_approved,
            "Salary Advance Issued",
            f"You have been issued an advance of {principal} {advance.currency}, "
            f"repaid in {installments} installments of {advance.installment_amount}.",
            receiver_id=teacher.id,
            sender_id=admin.id,
            reference_id=advance.id,
        )
    logger.info("Advance %s issued to teacher %s: %s over %s", advance.id, teacher.id, principal, installments)
    return advance


def request_advance(
    db: Session,
    actor: User,
    amount,
    repayment_months: int,
    reason: Optional[str] = None,
    currency: Optional[str] = None,
) -> RequestedAdvance:
    teacher = require_role(actor, UserRole.teacher)
    if teacher.admin_id is None:
        raise InvalidState("Teacher is not assigned to an admin")
    requested = positive_money(amount)
    months = _positive_installments(repayment_months, "repayment_months")

    pending = (
        db.query(RequestedAdvance.id)
        .filter(RequestedAdvance.teacher_id == teacher.id, RequestedAdvance.status == AdvanceStatus.pending)
        .first()
    )
    if pending:
        raise Conflict("You already have a pending advance request")

    with atomic(db):
        advance = RequestedAdvance(
            admin_id=teacher.admin_id,
            teacher_id=teacher.id,
            currency=currency or teacher.pay_currency or settings.DEFAULT_CURRENCY,
            status=AdvanceStatus.pending,
            requested_amount=requested,
            repayment_months=months,
            reason=sanitize_input(reason),
            total_repaid=ZERO,
        )
        db.add(advance)
        db.flush()
        notifications.notify(
            db,
            NotificationType.system_alert,
            "Salary Advance Requested",
            f"{teacher.name} requested an advance of {requested} {advance.currency} over {months} months.",
            receiver_id=teacher.admin_id,
            sender_id=teacher.id,
            reference_id=advance.id,
        )
    logger.info("Advance %s requested by teacher %s", advance.id, teacher.id)
    return advance


def approve_advance(
    db: Session,
    advance_id: UUID,
    actor: User,
    approved_amount=None,
    repayment_months: Optional[int] = None,
    now: Optional[datetime] = None,
) -> RequestedAdvance:
    now = now or utcnow()
    admin = require_role(actor, UserRole.admin)
    advance = _load_advance(db, advance_id, admin, RequestedAdvance, lock=True)
    if advance.status != AdvanceStatus.pending:
        raise InvalidState(f"Advance is already {advance.status.value}")

    approved = positive_money(
        approved_amount if approved_amount is not None else advance.requested_amount, "approved_amount"
    )
    months = _positive_installments(repayment_months or advance.repayment_months, "repayment_months")
    monthly_deduction = _installment_for(approved, months, "repayment_months")

    with atomic(db):
        advance.status = AdvanceStatus.approved
        advance.approved_amount = approved
        advance.repayment_months = months
        advance.monthly_deduction = monthly_deduction
        advance.remaining_amount = approved
        advance.total_repaid = ZERO
        advance.approved_by_id = admin.id
        advance.approved_date = now
        notifications.notify(
            db,
            NotificationType.salary_advance_approved,
            "Salary Advance Approved",
            f"Your advance request was approved for {approved} {advance.currency}; "
            f"{advance.monthly_deduction} will be deducted monthly.",
            receiver_id=advance.teacher_id,
            sender_id=admin.id,
            reference_id=advance.id,
        )
    logger.info("Advance %s approved for %s", advance.id, approved)
    return advance


def reject_advance(db: Session, advance_id: UUID, actor: User, reason: str) -> RequestedAdvance:
    admin = require_role(actor, UserRole.admin)
    reason = sanitize_input(reason)
    if not reason:
        raise InvalidInput("A rejection reason is required")
    advance = _load_advance(db, advance_id, admin, RequestedAdvance, lock=True)
    if advance.status != AdvanceStatus.pending:
        raise InvalidState(f"Advance is already {advance.status.value}")

    with atomic(db):
        advance.status = AdvanceStatus.rejected
        advance.rejection_reason = reason
        notifications.notify(
            db,
            NotificationType.system_alert,
            "Salary Advance Rejected",
            f"Your advance request was rejected: {reason}",
            receiver_id=advance.teacher_id,
            sender_id=admin.id,
            reference_id=advance.id,
        )
    return advance


def cancel_advance(db: Session, advance_id: UUID, actor: User) -> IssuedAdvance:
    admin = require_role(actor, UserRole.admin)
    advance = _load_advance(db, advance_id, admin, IssuedAdvance, lock=True)
    if advance.status != AdvanceStatus.active:
        raise InvalidState(f"Advance is already {advance.status.value}")

    with atomic(db):
        advance.status = AdvanceStatus.cancelled
        notifications.notify(
            db,
            NotificationType.system_alert,
            "Salary Advance Cancelled",
            f"Your salary advance of {advance.principal} {advance.currency} has been cancelled.",
            receiver_id=advance.teacher_id,
            sender_id=admin.id,
            reference_id=advance.id,
        )
    return advance


def delete_advance(db: Session, advance_id: UUID, actor: User) -> dict:
    admin = require_role(actor, UserRole.admin)
    advance = _load_advance(db, advance_id, admin)
    plan = (
        DeletionPlan(db, label=f"salary advance {advance.id}")
        .delete(SalaryAdvanceRepayment, SalaryAdvanceRepayment.advance_id == advance.id)
        .delete(SalaryAdvance, SalaryAdvance.id == advance.id)
    )
    return plan.execute()


def list_advances(db: Session, actor: User, status: Optional[AdvanceStatus] = None, teacher_id: Optional[UUID] = None):
    query = _scope(db.query(SalaryAdvance), SalaryAdvance, actor)
    if status is not None:
        query = query.filter(SalaryAdvance.status == status)
    if teacher_id is not None:
        query = query.filter(SalaryAdvance.teacher_id == teacher_id)
    return query.order_by(SalaryAdvance.created_at.desc()).all()
