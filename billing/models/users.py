from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Enum as SQLAEnum,
    Numeric,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
import enum
from billing.core.database import Base
from billing.utils.dates import utcnow


class UserRole(str, enum.Enum):
    developer = "developer"
    admin = "admin"
    teacher = "teacher"
    parent = "parent"
    student = "student"


class PayType(str, enum.Enum):
    monthly = "monthly"
    hourly = "hourly"
    per_session = "per_session"


class User(Base):
    """An authenticated actor. Admins are tenants; everyone else hangs off one."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    role = Column(SQLAEnum(UserRole), nullable=False)

    # Owning tenant for teachers, parents and students
    admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True, index=True)

    is_active = Column(Boolean, default=True, nullable=False)
    disabled_by_developer = Column(Boolean, default=False, nullable=False)

    # Teacher pay configuration
    pay_rate = Column(Numeric(12, 2), nullable=True)
    pay_type = Column(SQLAEnum(PayType), nullable=True)
    pay_currency = Column(String(8), nullable=True)

    created_at = Column(DateTime, default=utcnow)

    admin = relationship("User", remote_side=[id], foreign_keys=[admin_id])


class ParentStudent(Base):
    __tablename__ = "parent_students"
    __table_args__ = (UniqueConstraint("parent_id", "student_id", name="uq_parent_student"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    parent_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)

    parent = relationship("User", foreign_keys=[parent_id])
    student = relationship("User", foreign_keys=[student_id])


class Course(Base):
    __tablename__ = "courses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    admin_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class CourseAssignment(Base):
    """A student enrolled in a course, optionally billed a monthly fee for it."""

    __tablename__ = "course_assignments"
    __table_args__ = (UniqueConstraint("student_id", "course_id", name="uq_assignment_student_course"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(UUID(as_uuid=True), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    teacher_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    monthly_fee = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(8), nullable=False, default="USD")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    student = relationship("User", foreign_keys=[student_id])
    course = relationship("Course")
