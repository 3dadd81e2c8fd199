"""Onboarding API.

Endpoints:
  GET  /api/onboarding/steps                               → step catalog
  GET  /api/onboarding/{workspace_id}                      → current state
  POST /api/onboarding/{workspace_id}                      → record a step as completed / skipped
  POST /api/onboarding/{workspace_id}/execute              → run one step now
  POST /api/onboarding/{workspace_id}/run                  → run every remaining step
  POST /api/onboarding/{workspace_id}/rollback             → compensate the given steps
  POST /api/onboarding/{workspace_id}/oauth/{step_id}      → OAuth callback completion
  POST /api/onboarding/{workspace_id}/provision-lead-scraper → provisioning backend for its step
  POST /api/onboarding/{workspace_id}/complete             → finish onboarding

Design:
  - Progress is persisted only for successful, validated outcomes.
  - A failed step returns 422 STEP_FAILED and can be retried as-is.
  - Steps with unmet dependencies cannot be executed (422).
"""

from fastapi import APIRouter, Depends

from onboard.deps import (
    Actor,
    get_actor,
    get_lead_scraper_client,
    get_onboarding_service,
)
from onboard.engine.factory import OAuthTokens
from onboard.engine.types import OnboardingState, StepFailed, StepSucceeded
from onboard.middleware.exceptions import (
    BusinessLogicError,
    StepExecutionFailedError,
    UpstreamServiceError,
)
from onboard.schemas.lead_scraper import (
    LeadScraperProvisioningResult,
    ProvisionLeadScraperRequest,
)
from onboard.schemas.onboarding import (
    CompleteStepRequest,
    ExecuteStepRequest,
    ExecuteStepResponse,
    RollbackRequest,
    RunRemainingResponse,
    StepInfo,
)
from onboard.services.lead_scraper import (
    LeadScraperClient,
    LeadScraperProvisioningError,
    provision_lead_scraper_account,
)
from onboard.services.onboarding import OnboardingService

router = APIRouter()


# ── Catalog ──────────────────────────────────────────────────

@router.get("/steps", response_model=list[StepInfo])
async def list_steps(service: OnboardingService = Depends(get_onboarding_service)):
    return service.list_steps()


# ── GET /api/onboarding/{workspace_id} ───────────────────────

@router.get("/{workspace_id}", response_model=OnboardingState)
async def get_state(
    workspace_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
):
    return await service.get_state(workspace_id)


# ── POST /api/onboarding/{workspace_id} ──────────────────────

@router.post("/{workspace_id}", response_model=OnboardingState)
async def complete_step(
    workspace_id: str,
    body: CompleteStepRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Mark a step done that completed outside the executor, or skip an optional one."""
    return await service.complete_step(
        workspace_id, body.step_id, result=body.result, skipped=body.skipped
    )


# ── Execution ────────────────────────────────────────────────

@router.post("/{workspace_id}/execute", response_model=ExecuteStepResponse)
async def execute_step(
    workspace_id: str,
    body: ExecuteStepRequest,
    service: OnboardingService = Depends(get_onboarding_service),
    actor: Actor = Depends(get_actor),
):
    outcome = await service.execute_step(
        workspace_id,
        body.step_id,
        body.data,
        user_id=actor.user_id,
        user_email=actor.user_email,
    )
    if isinstance(outcome, StepFailed):
        raise StepExecutionFailedError(body.step_id, outcome.error)

    return ExecuteStepResponse(
        success=True,
        result=outcome.result if isinstance(outcome, StepSucceeded) else None,
        skipped=outcome.skipped,
    )


@router.post("/{workspace_id}/run", response_model=RunRemainingResponse)
async def run_remaining(
    workspace_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
    actor: Actor = Depends(get_actor),
):
    """Run every remaining step in sequence; stops at the first failure."""
    run = await service.run_remaining(
        workspace_id, user_id=actor.user_id, user_email=actor.user_email
    )
    return RunRemainingResponse(
        success=run.success,
        completed_step_ids=run.completed_step_ids,
        step_results=run.step_results,
        error=run.error,
    )


@router.post("/{workspace_id}/rollback")
async def rollback_steps(
    workspace_id: str,
    body: RollbackRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    await service.rollback(workspace_id, body.step_ids)
    return {"success": True}


@router.post("/{workspace_id}/oauth/{step_id}", response_model=OnboardingState)
async def complete_oauth_step(
    workspace_id: str,
    step_id: str,
    tokens: OAuthTokens,
    service: OnboardingService = Depends(get_onboarding_service),
):
    return await service.complete_oauth_step(workspace_id, step_id, tokens)


# ── Provisioning backend ─────────────────────────────────────

@router.post(
    "/{workspace_id}/provision-lead-scraper",
    response_model=LeadScraperProvisioningResult,
)
async def provision_lead_scraper(
    workspace_id: str,
    body: ProvisionLeadScraperRequest,
    client: LeadScraperClient | None = Depends(get_lead_scraper_client),
):
    """Provision the workspace owner in Lead Scraper. Does not record progress."""
    if body.workspace_id != workspace_id:
        raise BusinessLogicError("Workspace ID in body does not match the URL")
    try:
        return await provision_lead_scraper_account(body, client)
    except LeadScraperProvisioningError as exc:
        raise UpstreamServiceError(
            str(exc), details={"service": "lead-scraper", "stage": exc.stage, "status": exc.status}
        ) from exc


# ── POST /api/onboarding/{workspace_id}/complete ─────────────

@router.post("/{workspace_id}/complete")
async def finish(
    workspace_id: str,
    service: OnboardingService = Depends(get_onboarding_service),
):
    await service.finish(workspace_id)
    return {"success": True}
