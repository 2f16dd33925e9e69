import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from billing.core.config import settings
from billing.core.errors import BillingError
from billing.core.logging_config import configure_logging
from billing.api.v1 import (
    fees_router,
    salaries_router,
    advances_router,
    subscriptions_router,
    batch_router,
    notifications_router,
)

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME, openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

# Set up CORS
origins = [
    "http://localhost:3000",  # academy dashboard
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

# Include Routers
app.include_router(fees_router, prefix=f"{settings.API_V1_STR}/fees", tags=["Fees"])
app.include_router(salaries_router, prefix=f"{settings.API_V1_STR}/salaries", tags=["Salaries"])
app.include_router(advances_router, prefix=f"{settings.API_V1_STR}/advances", tags=["Salary Advances"])
app.include_router(
    subscriptions_router, prefix=f"{settings.API_V1_STR}/subscriptions", tags=["Subscriptions"]
)
app.include_router(batch_router, prefix=f"{settings.API_V1_STR}/batch", tags=["Batch"])
app.include_router(
    notifications_router, prefix=f"{settings.API_V1_STR}/notifications", tags=["Notifications"]
)


@app.exception_handler(BillingError)
async def billing_exception_handler(request: Request, exc: BillingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("Validation error on %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(jsonable_errors(exc)), "error": "invalid_input"},
    )


def jsonable_errors(exc: RequestValidationError):
    # ctx may carry exception objects that JSON cannot encode
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


@app.get("/")
async def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME}"}
