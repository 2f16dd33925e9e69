from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    Enum,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, validates
import uuid
import enum
from decimal import Decimal
from billing.core.database import Base
from billing.models.users import PayType
from billing.utils.dates import utcnow


class FeeStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    paid = "paid"


class FeeType(str, enum.Enum):
    once = "once"
    monthly = "monthly"
    bimonthly = "bimonthly"
    quarterly = "quarterly"
    half_yearly = "half_yearly"
    yearly = "yearly"


# Months between two generated periods of a definition
FEE_TYPE_INTERVAL = {
    FeeType.monthly: 1,
    FeeType.bimonthly: 2,
    FeeType.quarterly: 3,
    FeeType.half_yearly: 6,
    FeeType.yearly: 12,
}


class SalaryStatus(str, enum.Enum):
    pending = "pending"
    overdue = "overdue"
    paid = "paid"


class AdvanceKind(str, enum.Enum):
    requested = "requested"
    issued = "issued"


class AdvanceStatus(str, enum.Enum):
    # requested variant
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    repaid = "repaid"
    # issued variant
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class FeeDefinition(Base):
    __tablename__ = "fee_definitions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id"), nullable=True)

    title = Column(String, nullable=False)
    description = Column(Text)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    fee_type = Column(Enum(FeeType), nullable=False, default=FeeType.monthly)
    generation_day = Column(Integer, nullable=False)  # 1-31, clamped to month length
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)
    due_after_days = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    student = relationship("User", foreign_keys=[student_id])
    course = relationship("Course")
    fees = relationship("Fee", back_populates="fee_definition")


class Fee(Base):
    __tablename__ = "fees"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id"), nullable=True)
    fee_definition_id = Column(
        UUID(as_uuid=True), ForeignKey("fee_definitions.id", ondelete="SET NULL"), nullable=True
    )

    title = Column(String, nullable=False)
    description = Column(Text)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    due_date = Column(DateTime, nullable=False, index=True)
    month = Column(Integer, nullable=True)
    year = Column(Integer, nullable=True)
    is_recurring = Column(Boolean, default=False, nullable=False)
    # e.g. "assignment:<student>:<course>:2026-05"; unique so reruns cannot duplicate
    generation_key = Column(String, unique=True, nullable=True)

    status = Column(Enum(FeeStatus), default=FeeStatus.pending, nullable=False, index=True)
    paid_amount = Column(Numeric(12, 2), nullable=True)
    paid_date = Column(DateTime, nullable=True)
    payment_details = Column(Text, nullable=True)
    payment_proof = Column(String, nullable=True)
    paid_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    processed_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    student = relationship("User", foreign_keys=[student_id])
    paid_by = relationship("User", foreign_keys=[paid_by_id])
    course = relationship("Course")
    fee_definition = relationship("FeeDefinition", back_populates="fees")

    def clear_payment(self):
        self.paid_amount = None
        self.paid_date = None
        self.payment_details = None
        self.payment_proof = None
        self.paid_by_id = None


class Salary(Base):
    __tablename__ = "salaries"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    due_date = Column(DateTime, nullable=False)
    month = Column(Integer, nullable=True)
    year = Column(Integer, nullable=True)
    is_recurring = Column(Boolean, default=False, nullable=False)
    pay_type = Column(Enum(PayType), default=PayType.monthly, nullable=False)
    generation_key = Column(String, unique=True, nullable=True)

    status = Column(Enum(SalaryStatus), default=SalaryStatus.pending, nullable=False, index=True)
    paid_amount = Column(Numeric(12, 2), nullable=True)
    paid_date = Column(DateTime, nullable=True)
    paid_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    advance_deduction = Column(Numeric(12, 2), nullable=True)
    payment_details = Column(Text, nullable=True)
    payment_proof = Column(String, nullable=True)
    processed_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    teacher = relationship("User", foreign_keys=[teacher_id])
    paid_by = relationship("User", foreign_keys=[paid_by_id])


class SalaryPayment(Base):
    """Money actually transferred to a teacher. Rows are never updated."""

    __tablename__ = "salary_payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    salary_id = Column(UUID(as_uuid=True), ForeignKey("salaries.id", ondelete="SET NULL"), nullable=True)

    amount = Column(Numeric(12, 2), nullable=False)
    advance_deduction = Column(Numeric(12, 2), nullable=False, default=0)
    net_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    paid_date = Column(DateTime, nullable=False)
    payment_details = Column(Text, nullable=True)
    payment_proof = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    salary = relationship("Salary")
    repayments = relationship("SalaryAdvanceRepayment", back_populates="salary_payment")


class SalaryAdvance(Base):
    """Loan from a tenant to a teacher.

    Two products share this table: a teacher *requests* an advance that an
    admin approves (repaid through explicit deductions), or an admin *issues*
    one that is amortized automatically from every salary payment. Each
    variant owns its own amount columns; both write to the same repayment
    ledger.
    """

    __tablename__ = "salary_advances"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind = Column(Enum(AdvanceKind), nullable=False)
    admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    currency = Column(String(8), nullable=False)
    status = Column(Enum(AdvanceStatus), nullable=False, index=True)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    teacher = relationship("User", foreign_keys=[teacher_id])
    repayments = relationship(
        "SalaryAdvanceRepayment",
        back_populates="advance",
        cascade="all, delete-orphan",
        order_by="SalaryAdvanceRepayment.date",
    )

    allowed_statuses = frozenset()

    __mapper_args__ = {"polymorphic_on": kind}

    @validates("status")
    def validate_status(self, key, value):
        if value not in self.allowed_statuses:
            raise ValueError(f"{value} is not a valid status for {type(self).__name__}")
        return value

    @property
    def total_repayments(self):
        return sum((r.amount for r in self.repayments), Decimal("0"))


class RequestedAdvance(SalaryAdvance):
    allowed_statuses = frozenset(
        {AdvanceStatus.pending, AdvanceStatus.approved, AdvanceStatus.rejected, AdvanceStatus.repaid}
    )

    requested_amount = Column(Numeric(12, 2))
    reason = Column(Text)
    repayment_months = Column(Integer)
    approved_amount = Column(Numeric(12, 2))
    monthly_deduction = Column(Numeric(12, 2))
    remaining_amount = Column(Numeric(12, 2))
    total_repaid = Column(Numeric(12, 2), default=0)
    approved_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    approved_date = Column(DateTime)
    rejection_reason = Column(Text)

    __mapper_args__ = {"polymorphic_identity": AdvanceKind.requested}


class IssuedAdvance(SalaryAdvance):
    allowed_statuses = frozenset({AdvanceStatus.active, AdvanceStatus.completed, AdvanceStatus.cancelled})

    principal = Column(Numeric(12, 2))
    balance = Column(Numeric(12, 2))
    installments = Column(Integer)
    installment_amount = Column(Numeric(12, 2))
    issued_date = Column(DateTime)
    pay_type = Column(Enum(PayType))

    __mapper_args__ = {"polymorphic_identity": AdvanceKind.issued}


class SalaryAdvanceRepayment(Base):
    __tablename__ = "salary_advance_repayments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    advance_id = Column(
        UUID(as_uuid=True), ForeignKey("salary_advances.id", ondelete="CASCADE"), nullable=False, index=True
    )
    salary_payment_id = Column(
        UUID(as_uuid=True), ForeignKey("salary_payments.id", ondelete="SET NULL"), nullable=True
    )
    amount = Column(Numeric(12, 2), nullable=False)
    date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    advance = relationship("SalaryAdvance", back_populates="repayments")
    salary_payment = relationship("SalaryPayment", back_populates="repayments")
