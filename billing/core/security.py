from datetime import datetime, timedelta, timezone
from typing import Any, Union, Optional
import hmac
from jose import jwt
from billing.core.config import settings

ALGORITHM = settings.ALGORITHM
SECRET_KEY = settings.SECRET_KEY


def create_access_token(
    subject: Union[str, Any], expires_delta: Optional[timedelta] = None
) -> str:
    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {"exp": expire, "sub": str(subject), "type": "access"}
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def decode_access_token(token: str) -> dict:
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])


def verify_api_key(candidate: Optional[str]) -> bool:
    """Constant-time comparison of the scheduler's shared secret."""
    if not candidate or not settings.CRON_API_KEY:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), settings.CRON_API_KEY.encode("utf-8"))


def sanitize_input(text: Optional[str], max_length: int = 1000) -> Optional[str]:
    """Normalise free-text payment details before they are stored."""
    if text is None:
        return None

    # Remove null bytes
    text = text.replace('\x00', '')
    text = text.strip()

    if len(text) > max_length:
        text = text[:max_length]

    return text or None
