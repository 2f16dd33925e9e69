from billing.core.database import Base
from billing.models.users import User, UserRole, PayType, ParentStudent, Course, CourseAssignment
from billing.models.finance import (
    FeeStatus,
    FeeType,
    SalaryStatus,
    AdvanceKind,
    AdvanceStatus,
    FeeDefinition,
    Fee,
    Salary,
    SalaryPayment,
    SalaryAdvance,
    RequestedAdvance,
    IssuedAdvance,
    SalaryAdvanceRepayment,
)
from billing.models.subscriptions import (
    SubscriptionPlan,
    SubscriptionStatus,
    RenewalStatus,
    Subscription,
    SubscriptionPayment,
    SubscriptionRenewal,
)
from billing.models.communication import Notification, NotificationType
