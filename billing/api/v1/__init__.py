from billing.api.v1.fees import router as fees_router
from billing.api.v1.salaries import router as salaries_router
from billing.api.v1.advances import router as advances_router
from billing.api.v1.subscriptions import router as subscriptions_router
from billing.api.v1.batch import router as batch_router
from billing.api.v1.notifications import router as notifications_router

__all__ = [
    "fees_router",
    "salaries_router",
    "advances_router",
    "subscriptions_router",
    "batch_router",
    "notifications_router",
]
