"""Salaries, salary payments and advance amortization."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from billing.core.errors import AlreadyPaid, Conflict, InvalidInput, InvalidState, NotFound
from billing.models import (
    AdvanceStatus,
    IssuedAdvance,
    Notification,
    NotificationType,
    RequestedAdvance,
    SalaryAdvanceRepayment,
    SalaryPayment,
    SalaryStatus,
    UserRole,
)
from billing.services import notifications
from billing.services import salaries as salary_service

DAY_1 = datetime(2026, 3, 1, 10, 0)
DAY_5 = datetime(2026, 3, 5, 10, 0)


def assert_conserved(advance: IssuedAdvance):
    assert advance.total_repayments <= advance.principal
    assert advance.balance == advance.principal - advance.total_repayments
    assert (advance.status == AdvanceStatus.completed) == (advance.balance <= 0)


@pytest.fixture
def salary(db, admin, teacher):
    return salary_service.create_salary(db, admin, teacher.id, "March salary", "1000", datetime(2026, 3, 25))


# --- Issued advances ---


def test_issue_advance_splits_installments(db, admin, teacher):
    advance = salary_service.issue_advance(db, admin, teacher.id, "100", 3, now=DAY_1)

    assert advance.kind.value == "issued"
    assert advance.status == AdvanceStatus.active
    assert advance.balance == Decimal("100.00")
    assert advance.installment_amount == Decimal("33.33")
    assert db.query(Notification).filter(Notification.receiver_id == teacher.id).count() == 1


def test_issue_advance_rejects_zero_installments(db, admin, teacher):
    with pytest.raises(InvalidInput):
        salary_service.issue_advance(db, admin, teacher.id, "100", 0)


def test_issue_advance_rejects_installment_rounding_to_zero(db, admin, teacher):
    with pytest.raises(InvalidInput):
        salary_service.issue_advance(db, admin, teacher.id, "1.00", 201)

    assert db.query(IssuedAdvance).count() == 0


def test_zero_installment_writes_no_repayment(db, admin, teacher):
    advance = IssuedAdvance(
        admin_id=admin.id,
        teacher_id=teacher.id,
        currency="USD",
        status=AdvanceStatus.active,
        principal=Decimal("1.00"),
        balance=Decimal("1.00"),
        installments=201,
        installment_amount=Decimal("0.00"),
        issued_date=DAY_1,
    )
    db.add(advance)
    db.commit()

    payment = salary_service.record_salary_payment(db, admin, teacher.id, "1000", paid_date=DAY_5)

    assert payment.net_amount == Decimal("1000.00")
    assert db.query(SalaryAdvanceRepayment).count() == 0
    assert advance.balance == Decimal("1.00")


def test_issue_advance_requires_owning_admin(db, other_admin, teacher):
    with pytest.raises(NotFound):
        salary_service.issue_advance(db, other_admin, teacher.id, "100", 2)


def test_full_advance_lifecycle(db, admin, teacher):
    advance = salary_service.issue_advance(db, admin, teacher.id, "300", 3, now=DAY_1)
    assert (advance.installment_amount, advance.balance) == (Decimal("100.00"), Decimal("300.00"))

    first = salary_service.record_salary_payment(db, admin, teacher.id, "1000", paid_date=DAY_5)
    assert advance.balance == Decimal("200.00")
    assert [r.amount for r in advance.repayments] == [Decimal("100.00")]
    assert advance.repayments[0].salary_payment_id == first.id
    assert first.net_amount == Decimal("900.00")
    assert_conserved(advance)

    salary_service.record_salary_payment(db, admin, teacher.id, "1000", paid_date=DAY_5 + timedelta(days=30))
    assert advance.balance == Decimal("100.00")
    assert advance.status == AdvanceStatus.active

    salary_service.record_salary_payment(db, admin, teacher.id, "1000", paid_date=DAY_5 + timedelta(days=60))
    assert advance.balance == Decimal("0.00")
    assert advance.status == AdvanceStatus.completed
    assert_conserved(advance)

    fourth = salary_service.record_salary_payment(db, admin, teacher.id, "1000", paid_date=DAY_5 + timedelta(days=90))
    assert fourth.advance_deduction == Decimal("0.00")
    assert fourth.net_amount == Decimal("1000.00")
    assert len(advance.repayments) == 3


def test_last_installment_is_capped_at_balance(db, admin, teacher):
    advance = salary_service.issue_advance(db, admin, teacher.id, "100", 3, now=DAY_1)

    for _ in range(3):
        salary_service.record_salary_payment(db, admin, teacher.id, "500")

    assert sorted(r.amount for r in advance.repayments) == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
    assert advance.status == AdvanceStatus.completed
    assert_conserved(advance)


def test_active_advances_are_settled_oldest_first(db, admin, teacher):
    later = salary_service.issue_advance(db, admin, teacher.id, "200", 2, now=DAY_5)
    earlier = salary_service.issue_advance(db, admin, teacher.id, "90", 1, now=DAY_1)

    ordered = salary_service.active_issued_advances(db, teacher.id)
    assert [a.id for a in ordered] == [earlier.id, later.id]

    payment = salary_service.record_salary_payment(db, admin, teacher.id, "90")

    assert earlier.status == AdvanceStatus.completed
    assert earlier.repayments[0].amount == Decimal("90.00")
    # Every active advance is processed, so the net can bottom out at zero
    assert later.balance == Decimal("100.00")
    assert payment.advance_deduction == Decimal("190.00")
    assert payment.net_amount == Decimal("0.00")


def test_salary_payment_marks_salary_paid(db, admin, teacher, salary):
    salary_service.issue_advance(db, admin, teacher.id, "200", 2, now=DAY_1)

    salary_service.record_salary_payment(db, admin, teacher.id, "1000", salary_id=salary.id, paid_date=DAY_5)

    assert salary.status == SalaryStatus.paid
    assert salary.paid_amount == Decimal("900.00")
    assert salary.advance_deduction == Decimal("100.00")
    assert salary.paid_by_id == admin.id
    paid_notice = (
        db.query(Notification)
        .filter(Notification.receiver_id == teacher.id, Notification.type == NotificationType.salary_paid)
        .one()
    )
    assert "900.00" in paid_notice.message


def test_paid_salary_cannot_be_paid_again(db, admin, teacher, salary):
    salary_service.record_salary_payment(db, admin, teacher.id, "1000", salary_id=salary.id)

    with pytest.raises(AlreadyPaid):
        salary_service.record_salary_payment(db, admin, teacher.id, "1000", salary_id=salary.id)


def test_salary_payment_is_all_or_nothing(db, admin, teacher, monkeypatch):
    first = salary_service.issue_advance(db, admin, teacher.id, "300", 3, now=DAY_1)
    second = salary_service.issue_advance(db, admin, teacher.id, "100", 1, now=DAY_5)

    def broken_notify(*args, **kwargs):
        raise RuntimeError("sink exploded")

    monkeypatch.setattr(notifications, "notify", broken_notify)
    with pytest.raises(RuntimeError):
        salary_service.record_salary_payment(db, admin, teacher.id, "1000")

    db.expire_all()
    assert db.query(SalaryPayment).count() == 0
    assert db.query(SalaryAdvanceRepayment).count() == 0
    assert first.balance == Decimal("300.00")
    assert second.balance == Decimal("100.00")
    assert second.status == AdvanceStatus.active


def test_cancelled_advance_is_not_amortized(db, admin, teacher):
    advance = salary_service.issue_advance(db, admin, teacher.id, "300", 3, now=DAY_1)
    salary_service.cancel_advance(db, advance.id, admin)

    payment = salary_service.record_salary_payment(db, admin, teacher.id, "1000")

    assert payment.advance_deduction == Decimal("0.00")
    with pytest.raises(InvalidState):
        salary_service.cancel_advance(db, advance.id, admin)


def test_variant_rejects_foreign_status(db, admin, teacher):
    advance = salary_service.issue_advance(db, admin, teacher.id, "300", 3, now=DAY_1)

    with pytest.raises(ValueError):
        advance.status = AdvanceStatus.approved


# --- Requested advances ---


@pytest.fixture
def approved_request(db, admin, teacher):
    request = salary_service.request_advance(db, teacher, "300", 3, reason="Rent")
    return salary_service.approve_advance(db, request.id, admin, now=DAY_1)


def test_request_and_approve(db, admin, teacher, approved_request):
    assert approved_request.status == AdvanceStatus.approved
    assert approved_request.approved_amount == Decimal("300.00")
    assert approved_request.monthly_deduction == Decimal("100.00")
    assert approved_request.remaining_amount == Decimal("300.00")
    assert approved_request.approved_by_id == admin.id
    approved = (
        db.query(Notification)
        .filter(
            Notification.receiver_id == teacher.id,
            Notification.type == NotificationType.salary_advance_approved,
        )
        .count()
    )
    assert approved == 1


def test_approve_rejects_deduction_rounding_to_zero(db, admin, teacher):
    request = salary_service.request_advance(db, teacher, "1", 2)

    with pytest.raises(InvalidInput):
        salary_service.approve_advance(db, request.id, admin, repayment_months=201)

    db.refresh(request)
    assert request.status == AdvanceStatus.pending
    assert request.monthly_deduction is None


def test_one_pending_request_at_a_time(db, teacher):
    salary_service.request_advance(db, teacher, "100", 2)

    with pytest.raises(Conflict):
        salary_service.request_advance(db, teacher, "50", 1)


def test_reject_requires_reason(db, admin, teacher):
    request = salary_service.request_advance(db, teacher, "100", 2)

    with pytest.raises(InvalidInput):
        salary_service.reject_advance(db, request.id, admin, "  ")
    rejected = salary_service.reject_advance(db, request.id, admin, "Budget closed")

    assert rejected.status == AdvanceStatus.rejected
    with pytest.raises(InvalidState):
        salary_service.approve_advance(db, request.id, admin)


def test_explicit_deduction_reduces_remaining(db, admin, teacher, salary, approved_request):
    salary, payment = salary_service.pay_with_explicit_deduction(db, admin, salary.id, "1000", "100")

    assert salary.status == SalaryStatus.paid
    assert salary.paid_amount == Decimal("900.00")
    assert payment.net_amount == Decimal("900.00")
    assert approved_request.total_repaid == Decimal("100.00")
    assert approved_request.remaining_amount == Decimal("200.00")
    assert approved_request.status == AdvanceStatus.approved


def test_explicit_deduction_is_clamped_and_repays(db, admin, teacher, approved_request):
    salaries = [
        salary_service.create_salary(db, admin, teacher.id, f"Salary {m}", "1000", datetime(2026, m, 25))
        for m in (4, 5)
    ]
    salary_service.pay_with_explicit_deduction(db, admin, salaries[0].id, "1000", "250")

    _, payment = salary_service.pay_with_explicit_deduction(db, admin, salaries[1].id, "1000", "250")

    assert payment.advance_deduction == Decimal("50.00")
    assert payment.net_amount == Decimal("950.00")
    assert approved_request.remaining_amount == Decimal("0.00")
    assert approved_request.status == AdvanceStatus.repaid
    assert sum(r.amount for r in approved_request.repayments) == approved_request.approved_amount


def test_explicit_deduction_without_advance_is_invalid_state(db, admin, salary):
    with pytest.raises(InvalidState):
        salary_service.pay_with_explicit_deduction(db, admin, salary.id, "1000", "100")
    assert salary.status == SalaryStatus.pending


def test_explicit_deduction_larger_than_pay_floors_at_zero(db, admin, teacher, approved_request):
    salary = salary_service.create_salary(db, admin, teacher.id, "Bonus", "50", datetime(2026, 4, 25))

    salary, payment = salary_service.pay_with_explicit_deduction(db, admin, salary.id, "50", "100")

    assert payment.advance_deduction == Decimal("100.00")
    assert salary.paid_amount == Decimal("0.00")


def test_delete_advance_removes_repayments(db, admin, teacher):
    advance = salary_service.issue_advance(db, admin, teacher.id, "300", 3, now=DAY_1)
    salary_service.record_salary_payment(db, admin, teacher.id, "1000")

    counts = salary_service.delete_advance(db, advance.id, admin)

    assert counts["delete:salary_advance_repayments"] == 1
    assert db.query(IssuedAdvance).count() == 0
    assert db.query(SalaryAdvanceRepayment).count() == 0


def test_list_advances_is_scoped(db, make_user, admin, teacher, approved_request):
    salary_service.issue_advance(db, admin, teacher.id, "100", 1)
    colleague = make_user(UserRole.teacher, admin=admin)
    salary_service.issue_advance(db, admin, colleague.id, "100", 1)

    assert len(salary_service.list_advances(db, admin)) == 3
    mine = salary_service.list_advances(db, teacher)
    assert len(mine) == 2
    assert {type(a) for a in mine} == {RequestedAdvance, IssuedAdvance}


# --- Salaries ---


def test_update_paid_salary_is_invalid_state(db, admin, teacher, salary):
    salary_service.update_salary(db, salary.id, admin, {"amount": "1100"})
    assert salary.amount == Decimal("1100.00")
    salary_service.record_salary_payment(db, admin, teacher.id, "1100", salary_id=salary.id)

    with pytest.raises(InvalidState):
        salary_service.update_salary(db, salary.id, admin, {"amount": "1200"})


def test_flag_overdue_salaries(db, admin, salary):
    summary = salary_service.flag_overdue_salaries(db, now=datetime(2026, 3, 26))

    assert summary.updated == 1
    assert salary.status == SalaryStatus.overdue
    assert salary_service.flag_overdue_salaries(db, now=datetime(2026, 3, 27)).updated == 0
