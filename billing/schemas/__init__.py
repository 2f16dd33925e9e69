from billing.schemas.batch import BatchSummary
from billing.schemas.fees import (
    FeeCreate,
    FeeUpdate,
    FeePaymentSubmit,
    FeeVerify,
    FeeResponse,
    FeeDefinitionCreate,
    FeeDefinitionUpdate,
    FeeDefinitionResponse,
)
from billing.schemas.salaries import (
    SalaryCreate,
    SalaryUpdate,
    SalaryResponse,
    SalaryPaymentCreate,
    SalaryPayWithDeduction,
    SalaryPaymentResponse,
    SalaryPaidResponse,
    AdvanceIssue,
    AdvanceRequestCreate,
    AdvanceApprove,
    AdvanceReject,
    RequestedAdvanceResponse,
    IssuedAdvanceResponse,
)
from billing.schemas.subscriptions import (
    SubscriptionCreate,
    SubscriptionResponse,
    SubscriptionPaymentSubmit,
    SubscriptionPaymentEdit,
    SubscriptionVerify,
    SubscriptionExtend,
    SubscriptionPaymentResponse,
    SubscriptionExtendResponse,
    RenewalCreate,
    RenewalProcess,
    RenewalResponse,
    TenantDisable,
    TenantStatusResponse,
    TenantHistoryResponse,
)
from billing.schemas.notifications import NotificationResponse
