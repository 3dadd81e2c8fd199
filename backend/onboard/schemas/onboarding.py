"""Request/response schemas for the onboarding API."""

from typing import Any

from pydantic import BaseModel, Field


class CompleteStepRequest(BaseModel):
    step_id: str = Field(min_length=1)
    result: Any = None
    # Only optional steps may be skipped
    skipped: bool = False


class ExecuteStepRequest(BaseModel):
    step_id: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class ExecuteStepResponse(BaseModel):
    success: bool = True
    result: Any = None
    skipped: bool = False


class RunRemainingResponse(BaseModel):
    success: bool
    completed_step_ids: list[str]
    step_results: dict[str, Any]
    error: str | None = None


class RollbackRequest(BaseModel):
    step_ids: list[str] = Field(min_length=1)


class StepInfo(BaseModel):
    id: str
    title: str
    description: str
    order: float
    required: bool
    dependencies: list[str]
    auto_execute: bool
    kind: str | None = None
    provider: str | None = None
    scopes: list[str] | None = None
