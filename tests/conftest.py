"""Pytest configuration and fixtures for the billing service."""

import os

# Must be set before billing is imported: the engine is built at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CRON_API_KEY"] = "test-cron-key"
os.environ["NOTIFICATION_SINK"] = "log"

import uuid
from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from billing.core.database import Base, SessionLocal, engine, get_db
from billing.main import app
from billing.models import (
    Course,
    CourseAssignment,
    Fee,
    FeeStatus,
    ParentStudent,
    PayType,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    User,
    UserRole,
)


# =============================================================================
# Database fixtures
# =============================================================================

@pytest.fixture
def db():
    """Fresh in-memory schema per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# =============================================================================
# Actor fixtures
# =============================================================================

@pytest.fixture
def make_user(db):
    def _make(role: UserRole, admin: User = None, **fields) -> User:
        user = User(
            email=f"{role.value}-{uuid.uuid4().hex[:8]}@academy.test",
            name=fields.pop("name", f"{role.value.title()} {uuid.uuid4().hex[:4]}"),
            role=role,
            admin_id=admin.id if admin else None,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def developer(make_user):
    return make_user(UserRole.developer)


@pytest.fixture
def admin(make_user):
    return make_user(UserRole.admin, name="Academy Admin")


@pytest.fixture
def other_admin(make_user):
    return make_user(UserRole.admin, name="Rival Admin")


@pytest.fixture
def teacher(make_user, admin):
    return make_user(
        UserRole.teacher,
        admin=admin,
        pay_rate=Decimal("1000.00"),
        pay_type=PayType.monthly,
        pay_currency="USD",
    )


@pytest.fixture
def student(make_user, admin):
    return make_user(UserRole.student, admin=admin)


@pytest.fixture
def parent(db, make_user, admin, student):
    parent = make_user(UserRole.parent, admin=admin)
    db.add(ParentStudent(parent_id=parent.id, student_id=student.id))
    db.commit()
    return parent


@pytest.fixture
def second_parent(db, make_user, admin, student):
    parent = make_user(UserRole.parent, admin=admin)
    db.add(ParentStudent(parent_id=parent.id, student_id=student.id))
    db.commit()
    return parent


# =============================================================================
# Billing fixtures
# =============================================================================

@pytest.fixture
def course(db, admin):
    course = Course(admin_id=admin.id, name="Piano")
    db.add(course)
    db.commit()
    return course


@pytest.fixture
def assignment(db, course, student):
    assignment = CourseAssignment(
        student_id=student.id, course_id=course.id, monthly_fee=Decimal("150.00"), currency="USD"
    )
    db.add(assignment)
    db.commit()
    return assignment


@pytest.fixture
def make_fee(db, admin, student):
    """Insert a fee directly, bypassing creation notices."""

    def _make(due_date: datetime, status: FeeStatus = FeeStatus.pending, amount="100.00") -> Fee:
        fee = Fee(
            admin_id=admin.id,
            student_id=student.id,
            title="Tuition",
            amount=Decimal(amount),
            currency="USD",
            due_date=due_date,
            status=status,
        )
        db.add(fee)
        db.commit()
        return fee

    return _make


@pytest.fixture
def make_subscription(db, admin):
    def _make(
        plan: SubscriptionPlan = SubscriptionPlan.monthly,
        status: SubscriptionStatus = SubscriptionStatus.active,
        start_date: datetime = datetime(2026, 1, 1),
        end_date: datetime = None,
        owner: User = None,
        **fields,
    ) -> Subscription:
        subscription = Subscription(
            admin_id=(owner or admin).id,
            plan=plan,
            amount=Decimal("49.00"),
            currency="USD",
            start_date=start_date,
            end_date=end_date,
            status=status,
            **fields,
        )
        db.add(subscription)
        db.commit()
        return subscription

    return _make


# =============================================================================
# HTTP fixtures
# =============================================================================

@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
