from billing.core.security import create_access_token
from billing.models import User

CRON_KEY = "test-cron-key"


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def cron_headers(key: str = CRON_KEY) -> dict:
    return {"X-API-Key": key}
