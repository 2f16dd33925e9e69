from typing import List, Optional

from sqlalchemy.orm import Session

from billing.models.subscriptions import Subscription, SubscriptionStatus
from billing.models.users import User
from billing.services.access import managed_users


class Tenant:
    """An admin and the billing state hanging off them.

    Subscription accessors always read the ordered history from the database
    rather than a cached "current" pointer, so concurrent writers never leave
    a stale reference behind.
    """

    def __init__(self, db: Session, admin: User):
        self.db = db
        self.admin = admin

    @property
    def id(self):
        return self.admin.id

    def subscription_history(self) -> List[Subscription]:
        return (
            self.db.query(Subscription)
            .filter(Subscription.admin_id == self.admin.id)
            .order_by(Subscription.created_at.asc(), Subscription.id.asc())
            .all()
        )

    def current_subscription(self) -> Optional[Subscription]:
        history = self.subscription_history()
        return history[-1] if history else None

    def active_subscription(self) -> Optional[Subscription]:
        active = [s for s in self.subscription_history() if s.status == SubscriptionStatus.active]
        return active[-1] if active else None

    def deactivate(self, include_members: bool = True) -> None:
        self.admin.is_active = False
        if include_members:
            for user in managed_users(self.db, self.admin.id):
                user.is_active = False

    def reactivate(self, include_members: bool = True) -> None:
        self.admin.is_active = True
        if include_members:
            for user in managed_users(self.db, self.admin.id):
                user.is_active = True
