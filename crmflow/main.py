import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import logging

from crmflow.api.v1.router import router as api_v1_router
from crmflow.core.exceptions import (
    CollaboratorError,
    EscalationOrderError,
    EscalationRuleNotFoundError,
    ExecutionNotFoundError,
    InactiveRuleError,
    InvalidParametersError,
    InvalidStatusTransitionError,
    LeadNotFoundError,
    NoAgentAvailableError,
    ReminderNotFoundError,
    RuleNotFoundError,
)
from crmflow.core.config import settings as app_settings
from crmflow.core.rate_limit import limiter
from crmflow.services.escalation_service import start_escalation_loop
from crmflow.core.database import AsyncSessionLocal

logging.basicConfig(level=app_settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the escalation loop for as long as the app is up."""
    escalation_task = asyncio.create_task(start_escalation_loop(AsyncSessionLocal))
    logger.info("Background escalation task scheduled")
    yield
    # shutdown
    escalation_task.cancel()
    try:
        await escalation_task
    except asyncio.CancelledError:
        logger.info("Background escalation task stopped")


app = FastAPI(
    title="CRM Workflow Automation Engine",
    description="Rule-driven lead workflows, escalation ladders and follow-up reminders",
    version="0.1.0",
    lifespan=lifespan,
)

# slowapi looks the limiter up on app.state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware, restricted to configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in app_settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


@app.exception_handler(RuleNotFoundError)
async def rule_not_found_handler(request: Request, exc: RuleNotFoundError):
    logger.warning("Workflow rule not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "rule_not_found"},
    )


@app.exception_handler(EscalationRuleNotFoundError)
async def escalation_rule_not_found_handler(
    request: Request, exc: EscalationRuleNotFoundError
):
    logger.warning("Escalation rule not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "escalation_rule_not_found"},
    )


@app.exception_handler(LeadNotFoundError)
async def lead_not_found_handler(request: Request, exc: LeadNotFoundError):
    logger.warning("Lead not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "lead_not_found"},
    )


@app.exception_handler(ReminderNotFoundError)
async def reminder_not_found_handler(request: Request, exc: ReminderNotFoundError):
    logger.warning("Reminder not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "reminder_not_found"},
    )


@app.exception_handler(ExecutionNotFoundError)
async def execution_not_found_handler(request: Request, exc: ExecutionNotFoundError):
    logger.warning("Execution not found: %s", exc.detail)
    return JSONResponse(
        status_code=404,
        content={"detail": exc.detail, "type": "execution_not_found"},
    )


@app.exception_handler(InactiveRuleError)
async def inactive_rule_handler(request: Request, exc: InactiveRuleError):
    logger.warning("Inactive rule: %s", exc.detail)
    return JSONResponse(
        status_code=409,
        content={"detail": exc.detail, "type": "inactive_rule"},
    )


@app.exception_handler(InvalidParametersError)
async def invalid_parameters_handler(request: Request, exc: InvalidParametersError):
    logger.warning("Invalid action parameters: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "invalid_parameters"},
    )


@app.exception_handler(EscalationOrderError)
async def escalation_order_handler(request: Request, exc: EscalationOrderError):
    logger.warning("Escalation level order: %s", exc.detail)
    return JSONResponse(
        status_code=422,
        content={"detail": exc.detail, "type": "escalation_order"},
    )


@app.exception_handler(NoAgentAvailableError)
async def no_agent_available_handler(request: Request, exc: NoAgentAvailableError):
    logger.error("No agent available: %s", exc.detail)
    return JSONResponse(
        status_code=503,
        content={"detail": exc.detail, "type": "no_agent_available"},
    )


@app.exception_handler(CollaboratorError)
async def collaborator_error_handler(request: Request, exc: CollaboratorError):
    logger.error("Collaborator failure: %s", exc.detail)
    return JSONResponse(
        status_code=502,
        content={"detail": exc.detail, "type": "collaborator_error"},
    )


@app.exception_handler(InvalidStatusTransitionError)
async def invalid_status_transition_handler(
    request: Request, exc: InvalidStatusTransitionError
):
    logger.warning("Invalid status transition: %s", exc.detail)
    return JSONResponse(
        status_code=400,
        content={"detail": exc.detail, "type": "invalid_status_transition"},
    )


def jsonable_errors(exc: RequestValidationError):
    """``exc.errors()`` with non-JSON ``ctx`` values (raised exceptions) stringified."""
    return jsonable_encoder(exc.errors(), custom_encoder={Exception: str})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Request validation error: %s", exc.errors())
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Request validation failed",
            "errors": jsonable_errors(exc),
            "type": "validation_error",
        },
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Log anything unmapped and answer with an opaque 500."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected internal error occurred. Please try again later.",
            "type": "internal_server_error",
        },
    )
