from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from billing.api.deps import require_api_key
from billing.core.database import get_db
from billing.schemas import BatchSummary
from billing.services import recurring, reminders
from billing.services import salaries as salary_service
from billing.services import subscriptions as subscription_service
from billing.services.notifications import NotificationDispatcher

# Triggered by an external scheduler; no user session, only the shared key
router = APIRouter(dependencies=[Depends(require_api_key)])


@router.post("/generate-monthly-fees", response_model=BatchSummary)
def generate_monthly_fees(db: Session = Depends(get_db)):
    return recurring.generate_monthly_fees(db)


@router.post("/generate-monthly-salaries", response_model=BatchSummary)
def generate_monthly_salaries(db: Session = Depends(get_db)):
    return recurring.generate_monthly_salaries(db)


@router.post("/reminders", response_model=BatchSummary)
def scan_reminders(db: Session = Depends(get_db)):
    return reminders.scan_reminders(db)


@router.post("/check-subscriptions", response_model=BatchSummary)
def check_subscriptions(db: Session = Depends(get_db)):
    return subscription_service.check_lapsed_subscriptions(db)


@router.post("/overdue-salaries", response_model=BatchSummary)
def flag_overdue_salaries(db: Session = Depends(get_db)):
    return salary_service.flag_overdue_salaries(db)


@router.post("/dispatch-notifications", response_model=BatchSummary)
def dispatch_notifications(db: Session = Depends(get_db)):
    return NotificationDispatcher(db).dispatch_pending()
