"""Error taxonomy shared by the billing services.

Every failure carries a stable ``kind`` and an HTTP status so the web layer
can render it without knowing which service raised it. ``NotFound`` is also
raised for rows that exist but belong to another tenant, so callers cannot
probe for existence.
"""


class BillingError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.kind}


class Unauthorized(BillingError):
    kind = "unauthorized"
    status_code = 401


class Forbidden(BillingError):
    kind = "forbidden"
    status_code = 403


class NotFound(BillingError):
    kind = "not_found"
    status_code = 404


class InvalidInput(BillingError):
    kind = "invalid_input"
    status_code = 422


class InvalidState(BillingError):
    kind = "invalid_state"
    status_code = 409


class AlreadyPaid(InvalidState):
    kind = "already_paid"


class Conflict(BillingError):
    kind = "conflict"
    status_code = 409


AlreadyExists = Conflict
