# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Request / Response schemas: the API contract.
These are Pydantic models used ONLY at the controller (HTTP) boundary,
plus the cron trigger payload parsed by the notification pipeline.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ── Cron Trigger ──

class CronTriggerPayload(BaseModel):
    """Optional scheduling context sent by the external cron service."""
    model_config = ConfigDict(extra="allow")

    trigger_id: Optional[str] = Field(default=None, min_length=1, max_length=255)
    scheduled_at: Optional[datetime] = None
    environment: Optional[str] = None


class CheckRequest(BaseModel):
    now: Optional[datetime] = Field(default=None, description="Evaluate the check as of this instant")
    force: bool = Field(default=False, description="Re-send handoff warnings already sent today")


# ── Rotation Schemas ──

class CurrentRotationResponse(BaseModel):
    sprint_index: Optional[int] = None
    sprint_name: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    assignments: dict[str, Optional[str]]
    updated_at: Optional[str] = None


class ForceTransitionRequest(BaseModel):
    sprint_index: int = Field(..., ge=0)
    changed_by: str = Field(default="admin", min_length=1)


# ── Sprint Schemas ──

class SprintUpsertRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    start_date: date
    end_date: date
    reason: Optional[str] = Field(default=None, description="Required when editing an existing sprint")
    changed_by: str = Field(default="admin", min_length=1)

    @model_validator(mode="after")
    def _check_window(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


# ── Roster Schemas ──

class MemberCreateRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    display_name: str = ""
    changed_by: str = Field(default="admin", min_length=1)


class MemberStatusRequest(BaseModel):
    active: bool
    changed_by: str = Field(default="admin", min_length=1)


# ── Override Schemas ──

class OverrideCreateRequest(BaseModel):
    sprint_index: int = Field(..., ge=0)
    role: str = Field(..., min_length=1)
    original_user_id: Optional[str] = None
    replacement_user_id: str = Field(..., min_length=1)
    replacement_name: Optional[str] = None
    requested_by: str = Field(..., min_length=1)


class OverrideApproveRequest(BaseModel):
    approved_by: str = Field(..., min_length=1)
    supersede: bool = Field(
        default=False,
        description="Retire an existing approval for the same sprint and role",
    )


class OverrideDecisionRequest(BaseModel):
    decided_by: str = Field(..., min_length=1)
