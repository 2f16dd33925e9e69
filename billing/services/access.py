from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from billing.core.errors import Forbidden, NotFound, Unauthorized
from billing.models.users import ParentStudent, User, UserRole


def require_actor(actor: Optional[User]) -> User:
    if actor is None:
        raise Unauthorized("Not authenticated")
    return actor


def require_role(actor: Optional[User], *roles: UserRole) -> User:
    actor = require_actor(actor)
    if actor.role not in roles:
        allowed = ", ".join(role.value for role in roles)
        raise Forbidden(f"Only {allowed} users can perform this action")
    return actor


def get_tenant_member(db: Session, admin: User, user_id: UUID, role: UserRole) -> User:
    """A user of ``role`` that belongs to ``admin``'s tenant, else NotFound."""
    member = (
        db.query(User)
        .filter(User.id == user_id, User.role == role, User.admin_id == admin.id)
        .first()
    )
    if not member:
        raise NotFound(f"{role.value.capitalize()} not found or not under your administration")
    return member


def get_admin(db: Session, admin_id: UUID) -> User:
    admin = db.query(User).filter(User.id == admin_id, User.role == UserRole.admin).first()
    if not admin:
        raise NotFound("Admin not found")
    return admin


def is_linked_parent(db: Session, parent_id: UUID, student_id: UUID) -> bool:
    return (
        db.query(ParentStudent.id)
        .filter(ParentStudent.parent_id == parent_id, ParentStudent.student_id == student_id)
        .first()
        is not None
    )


def children_of(db: Session, parent_id: UUID):
    rows = db.query(ParentStudent.student_id).filter(ParentStudent.parent_id == parent_id).all()
    return [row[0] for row in rows]


def managed_users(db: Session, admin_id: UUID):
    return db.query(User).filter(User.admin_id == admin_id).all()
