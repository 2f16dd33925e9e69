"""create billing tables

Revision ID: 5b7e2c91d4a0
Revises:
Create Date: 2026-10-19 09:12:44.218305

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "5b7e2c91d4a0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name, *values):
    # Types are created once up front; columns only reference them
    return postgresql.ENUM(*values, name=name, create_type=False)


user_role = _enum("userrole", "developer", "admin", "teacher", "parent", "student")
pay_type = _enum("paytype", "monthly", "hourly", "per_session")
fee_status = _enum("feestatus", "pending", "processing", "paid")
fee_type = _enum("feetype", "once", "monthly", "bimonthly", "quarterly", "half_yearly", "yearly")
salary_status = _enum("salarystatus", "pending", "overdue", "paid")
advance_kind = _enum("advancekind", "requested", "issued")
advance_status = _enum(
    "advancestatus", "pending", "approved", "rejected", "repaid", "active", "completed", "cancelled"
)
subscription_plan = _enum("subscriptionplan", "monthly", "yearly", "lifetime")
subscription_status = _enum("subscriptionstatus", "pending", "processing", "active", "expired")
renewal_status = _enum("renewalstatus", "processing", "active", "rejected")
notification_type = _enum(
    "notificationtype",
    "fee_due",
    "payment_processing",
    "payment_verified",
    "salary_paid",
    "salary_advance_approved",
    "salary_advance_repaid",
    "subscription_due",
    "subscription_paid",
    "progress_update",
    "system_alert",
)

ALL_ENUMS = (
    user_role,
    pay_type,
    fee_status,
    fee_type,
    salary_status,
    advance_kind,
    advance_status,
    subscription_plan,
    subscription_status,
    renewal_status,
    notification_type,
)


def _id():
    return sa.Column("id", sa.UUID(), primary_key=True)


def _user_fk(name, nullable=False, ondelete=None, index=False):
    return sa.Column(
        name, sa.UUID(), sa.ForeignKey("users.id", ondelete=ondelete), nullable=nullable, index=index
    )


def _money(name, nullable=True):
    return sa.Column(name, sa.Numeric(12, 2), nullable=nullable)


def upgrade() -> None:
    """Upgrade schema."""
    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("role", user_role, nullable=False),
        _user_fk("admin_id", nullable=True, index=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("disabled_by_developer", sa.Boolean(), nullable=False, server_default=sa.false()),
        _money("pay_rate"),
        sa.Column("pay_type", pay_type, nullable=True),
        sa.Column("pay_currency", sa.String(8), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "parent_students",
        _id(),
        _user_fk("parent_id", ondelete="CASCADE"),
        _user_fk("student_id", ondelete="CASCADE", index=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("parent_id", "student_id", name="uq_parent_student"),
    )

    op.create_table(
        "courses",
        _id(),
        _user_fk("admin_id"),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "course_assignments",
        _id(),
        _user_fk("student_id", ondelete="CASCADE"),
        sa.Column("course_id", sa.UUID(), sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        _user_fk("teacher_id", nullable=True),
        _money("monthly_fee"),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("student_id", "course_id", name="uq_assignment_student_course"),
    )

    op.create_table(
        "fee_definitions",
        _id(),
        _user_fk("admin_id", index=True),
        _user_fk("student_id", ondelete="CASCADE"),
        sa.Column("course_id", sa.UUID(), sa.ForeignKey("courses.id"), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _money("amount", nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("fee_type", fee_type, nullable=False),
        sa.Column("generation_day", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("due_after_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "fees",
        _id(),
        _user_fk("admin_id", index=True),
        _user_fk("student_id", ondelete="CASCADE", index=True),
        sa.Column("course_id", sa.UUID(), sa.ForeignKey("courses.id"), nullable=True),
        sa.Column(
            "fee_definition_id",
            sa.UUID(),
            sa.ForeignKey("fee_definitions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _money("amount", nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("due_date", sa.DateTime(), nullable=False, index=True),
        sa.Column("month", sa.Integer(), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("generation_key", sa.String(), nullable=True, unique=True),
        sa.Column("status", fee_status, nullable=False, index=True),
        _money("paid_amount"),
        sa.Column("paid_date", sa.DateTime(), nullable=True),
        sa.Column("payment_details", sa.Text(), nullable=True),
        sa.Column("payment_proof", sa.String(), nullable=True),
        _user_fk("paid_by_id", nullable=True),
        sa.Column("processed_date", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "salaries",
        _id(),
        _user_fk("admin_id", index=True),
        _user_fk("teacher_id", ondelete="CASCADE", index=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _money("amount", nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("due_date", sa.DateTime(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=True),
        sa.Column("year", sa.Integer(), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pay_type", pay_type, nullable=False),
        sa.Column("generation_key", sa.String(), nullable=True, unique=True),
        sa.Column("status", salary_status, nullable=False, index=True),
        _money("paid_amount"),
        sa.Column("paid_date", sa.DateTime(), nullable=True),
        _user_fk("paid_by_id", nullable=True),
        _money("advance_deduction"),
        sa.Column("payment_details", sa.Text(), nullable=True),
        sa.Column("payment_proof", sa.String(), nullable=True),
        sa.Column("processed_date", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "salary_payments",
        _id(),
        _user_fk("admin_id", index=True),
        _user_fk("teacher_id", ondelete="CASCADE", index=True),
        sa.Column("salary_id", sa.UUID(), sa.ForeignKey("salaries.id", ondelete="SET NULL"), nullable=True),
        _money("amount", nullable=False),
        _money("advance_deduction", nullable=False),
        _money("net_amount", nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("paid_date", sa.DateTime(), nullable=False),
        sa.Column("payment_details", sa.Text(), nullable=True),
        sa.Column("payment_proof", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "salary_advances",
        _id(),
        sa.Column("kind", advance_kind, nullable=False),
        _user_fk("admin_id", index=True),
        _user_fk("teacher_id", ondelete="CASCADE", index=True),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("status", advance_status, nullable=False, index=True),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        # requested variant
        _money("requested_amount"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("repayment_months", sa.Integer(), nullable=True),
        _money("approved_amount"),
        _money("monthly_deduction"),
        _money("remaining_amount"),
        _money("total_repaid"),
        _user_fk("approved_by_id", nullable=True),
        sa.Column("approved_date", sa.DateTime(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        # issued variant
        _money("principal"),
        _money("balance"),
        sa.Column("installments", sa.Integer(), nullable=True),
        _money("installment_amount"),
        sa.Column("issued_date", sa.DateTime(), nullable=True),
        sa.Column("pay_type", pay_type, nullable=True),
    )

    op.create_table(
        "salary_advance_repayments",
        _id(),
        sa.Column(
            "advance_id",
            sa.UUID(),
            sa.ForeignKey("salary_advances.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "salary_payment_id",
            sa.UUID(),
            sa.ForeignKey("salary_payments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _money("amount", nullable=False),
        sa.Column("date", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "subscriptions",
        _id(),
        _user_fk("admin_id", ondelete="CASCADE", index=True),
        sa.Column("plan", subscription_plan, nullable=False),
        _money("amount", nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("status", subscription_status, nullable=False, index=True),
        _money("paid_amount"),
        sa.Column("paid_date", sa.DateTime(), nullable=True),
        sa.Column("payment_details", sa.Text(), nullable=True),
        sa.Column("payment_proof", sa.String(), nullable=True),
        _user_fk("paid_by_id", nullable=True),
        sa.Column("processed_date", sa.DateTime(), nullable=True),
        sa.Column(
            "was_disabled_due_to_non_payment", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("was_manually_disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=True, index=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "subscription_renewals",
        _id(),
        _user_fk("admin_id", ondelete="CASCADE", index=True),
        sa.Column(
            "subscription_id", sa.UUID(), sa.ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("plan", subscription_plan, nullable=False),
        _money("amount", nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        _money("paid_amount", nullable=False),
        sa.Column("paid_date", sa.DateTime(), nullable=False),
        sa.Column("payment_details", sa.Text(), nullable=True),
        sa.Column("payment_proof", sa.String(), nullable=True),
        sa.Column("status", renewal_status, nullable=False),
        _user_fk("processed_by_id", nullable=True),
        sa.Column("processed_date", sa.DateTime(), nullable=True),
        sa.Column("extension_months", sa.Integer(), nullable=True),
        sa.Column("new_expiry_date", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "subscription_payments",
        _id(),
        _user_fk("admin_id", ondelete="CASCADE", index=True),
        sa.Column(
            "subscription_id", sa.UUID(), sa.ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column(
            "renewal_id",
            sa.UUID(),
            sa.ForeignKey("subscription_renewals.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("plan", subscription_plan, nullable=False),
        _money("amount", nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("payment_date", sa.DateTime(), nullable=False),
        sa.Column("expiry_extended", sa.DateTime(), nullable=False),
        sa.Column("payment_details", sa.Text(), nullable=True),
        _user_fk("processed_by_id", nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "notifications",
        _id(),
        sa.Column("type", notification_type, nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        _user_fk("sender_id", nullable=True, ondelete="SET NULL"),
        _user_fk("receiver_id", ondelete="CASCADE", index=True),
        sa.Column("reference_id", sa.String(), nullable=True, index=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=True, index=True),
        sa.Column("dispatched_at", sa.DateTime(), nullable=True, index=True),
        sa.Column("dispatch_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
    )


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        "notifications",
        "subscription_payments",
        "subscription_renewals",
        "subscriptions",
        "salary_advance_repayments",
        "salary_advances",
        "salary_payments",
        "salaries",
        "fees",
        "fee_definitions",
        "course_assignments",
        "courses",
        "parent_students",
        "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)
