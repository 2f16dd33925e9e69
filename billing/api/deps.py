from typing import Optional, List
import uuid
from fastapi import Depends, Header, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.orm import Session

from billing.core import security
from billing.core.config import settings
from billing.core.database import get_db
from billing.models.users import User, UserRole

# OAuth2PasswordBearer allows for token extraction from header
reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login",
    auto_error=False  # Don't error if header is missing, we check cookies
)


def get_current_user_any_status(
    request: Request,
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(reusable_oauth2)
) -> User:
    """Resolve the actor without checking whether the account is active.

    Used where a locked-out admin must still reach billing, e.g. to pay
    for a renewal.
    """
    if not token:
        # Fallback to cookie
        token = request.cookies.get("access_token")

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = security.decode_access_token(token)
        user_id = uuid.UUID(str(payload.get("sub")))
    except (JWTError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_current_user(current_user: User = Depends(get_current_user_any_status)) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return current_user


class RoleChecker:
    def __init__(self, allowed_roles: List[UserRole], allow_inactive: bool = False):
        self.allowed_roles = allowed_roles
        self.allow_inactive = allow_inactive

    def __call__(self, current_user: User = Depends(get_current_user_any_status)) -> User:
        if not self.allow_inactive and not current_user.is_active:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
        if current_user.role not in self.allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{current_user.role.value}' is not allowed to access this resource",
            )
        return current_user


require_admin = RoleChecker([UserRole.admin])
require_developer = RoleChecker([UserRole.developer])
require_teacher = RoleChecker([UserRole.teacher])
require_admin_or_developer = RoleChecker([UserRole.admin, UserRole.developer])
# Billing stays reachable for tenants locked out for non-payment
require_billing_admin = RoleChecker([UserRole.admin, UserRole.developer], allow_inactive=True)


def require_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """Shared-secret guard for scheduler-triggered batch endpoints."""
    if not security.verify_api_key(x_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
