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
from sqlalchemy.orm import relationship
import uuid
import enum
from billing.core.database import Base
from billing.utils.dates import utcnow


class SubscriptionPlan(str, enum.Enum):
    monthly = "monthly"
    yearly = "yearly"
    lifetime = "lifetime"


class SubscriptionStatus(str, enum.Enum):
    pending = "pending"
    processing = "processing"
    active = "active"
    expired = "expired"


class RenewalStatus(str, enum.Enum):
    processing = "processing"
    active = "active"
    rejected = "rejected"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan = Column(Enum(SubscriptionPlan), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)  # null only for lifetime plans
    status = Column(Enum(SubscriptionStatus), default=SubscriptionStatus.pending, nullable=False, index=True)

    paid_amount = Column(Numeric(12, 2), nullable=True)
    paid_date = Column(DateTime, nullable=True)
    payment_details = Column(Text, nullable=True)
    payment_proof = Column(String, nullable=True)
    paid_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    processed_date = Column(DateTime, nullable=True)

    was_disabled_due_to_non_payment = Column(Boolean, default=False, nullable=False)
    was_manually_disabled = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    admin = relationship("User", foreign_keys=[admin_id])
    paid_by = relationship("User", foreign_keys=[paid_by_id])

    def clear_payment(self):
        self.paid_amount = None
        self.paid_date = None
        self.payment_details = None
        self.payment_proof = None
        self.paid_by_id = None


class SubscriptionPayment(Base):
    """Audit row for every charge or extension applied to a tenant."""

    __tablename__ = "subscription_payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = Column(UUID(as_uuid=True), ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True)
    renewal_id = Column(UUID(as_uuid=True), ForeignKey("subscription_renewals.id", ondelete="SET NULL"), nullable=True)
    plan = Column(Enum(SubscriptionPlan), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    payment_date = Column(DateTime, nullable=False)
    expiry_extended = Column(DateTime, nullable=False)
    payment_details = Column(Text, nullable=True)
    processed_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class SubscriptionRenewal(Base):
    __tablename__ = "subscription_renewals"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = Column(UUID(as_uuid=True), ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True)
    plan = Column(Enum(SubscriptionPlan), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False)
    paid_date = Column(DateTime, nullable=False)
    payment_details = Column(Text, nullable=True)
    payment_proof = Column(String, nullable=True)
    status = Column(Enum(RenewalStatus), default=RenewalStatus.processing, nullable=False)

    processed_by_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    processed_date = Column(DateTime, nullable=True)
    extension_months = Column(Integer, nullable=True)
    new_expiry_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    admin = relationship("User", foreign_keys=[admin_id])
