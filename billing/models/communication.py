from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer, Text, Enum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
import enum
from billing.core.database import Base
from billing.utils.dates import utcnow


class NotificationType(str, enum.Enum):
    fee_due = "fee_due"
    payment_processing = "payment_processing"
    payment_verified = "payment_verified"
    salary_paid = "salary_paid"
    salary_advance_approved = "salary_advance_approved"
    salary_advance_repaid = "salary_advance_repaid"
    subscription_due = "subscription_due"
    subscription_paid = "subscription_paid"
    progress_update = "progress_update"
    system_alert = "system_alert"


class Notification(Base):
    """In-app notice and outbox row in one.

    Written in the same transaction as the change it reports; the dispatcher
    later hands it to the configured sink and stamps ``dispatched_at``.
    """

    __tablename__ = "notifications"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    type = Column(Enum(NotificationType), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    sender_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    receiver_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    reference_id = Column(String, nullable=True, index=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, index=True)

    dispatched_at = Column(DateTime, nullable=True, index=True)
    dispatch_attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)

    sender = relationship("User", foreign_keys=[sender_id])
    receiver = relationship("User", foreign_keys=[receiver_id])
