from fastapi import APIRouter

from crmflow.api.v1.endpoints import (
    escalation_rules,
    executions,
    health,
    reminders,
    workflow_rules,
)

router = APIRouter(prefix="/api/v1")

router.include_router(workflow_rules.router)
router.include_router(executions.router)
router.include_router(escalation_rules.router)
router.include_router(reminders.router)
router.include_router(health.router)
