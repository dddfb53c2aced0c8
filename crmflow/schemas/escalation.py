"""Escalation rule schemas."""

from datetime import datetime
from typing import List, Optional, Sequence
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import Self

from crmflow.core.exceptions import EscalationOrderError
from crmflow.schemas.common import EscalationActionType, EscalationTrigger


class EscalationLevel(BaseModel):
    """One step of an escalation ladder.

    ``delay_hours`` counts from the previous level (or from the trigger,
    for level 1).
    """

    level: int = Field(..., ge=1)
    delay_hours: float = Field(..., ge=0)
    escalate_to: List[str] = Field(default_factory=list)
    action_type: EscalationActionType = EscalationActionType.notify
    message_template: Optional[str] = None

    @model_validator(mode="after")
    def require_recipients_for_notify(self) -> Self:
        if self.action_type == EscalationActionType.notify and not self.escalate_to:
            raise ValueError(f"Level {self.level}: notify requires escalate_to")
        return self


def ensure_level_order(levels: Sequence[EscalationLevel]) -> None:
    """Reject levels that are not exactly ``1..n`` in ascending order."""
    for position, level in enumerate(levels, start=1):
        if level.level != position:
            raise EscalationOrderError(
                f"Escalation level at position {position} is numbered "
                f"{level.level}; levels must be numbered 1..{len(levels)} in order"
            )


class EscalationRule(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    name: str
    trigger_condition: str
    escalation_levels: List[EscalationLevel] = Field(default_factory=list)
    is_active: bool = True
    created_at: Optional[datetime] = None


class EscalationRuleCreate(BaseModel):
    """Request body for POST /api/v1/escalation-rules."""

    name: str = Field(..., min_length=1, max_length=200)
    trigger_condition: EscalationTrigger
    escalation_levels: List[EscalationLevel] = Field(..., min_length=1)
    is_active: bool = True

    @model_validator(mode="after")
    def validate_level_order(self) -> Self:
        try:
            ensure_level_order(self.escalation_levels)
        except EscalationOrderError as exc:
            raise ValueError(exc.detail)
        return self


class EscalationRuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    trigger_condition: Optional[EscalationTrigger] = None
    escalation_levels: Optional[List[EscalationLevel]] = Field(None, min_length=1)
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def validate_level_order(self) -> Self:
        if self.escalation_levels is not None:
            try:
                ensure_level_order(self.escalation_levels)
            except EscalationOrderError as exc:
                raise ValueError(exc.detail)
        return self


class EscalationRuleOut(EscalationRule):
    pass


class EscalationRunResponse(BaseModel):
    """Summary of one escalation pass."""

    rules_checked: int
    leads_checked: int
    levels_fired: int
