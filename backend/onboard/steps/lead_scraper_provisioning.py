"""Lead Scraper provisioning step.

Required, auto-executing, order 1. Posts the workspace/owner identity
to this service's own provisioning endpoint, which creates the
organization, tenant and owner account in Lead Scraper. Re-running is
safe: every stage treats "already exists" as success.
"""

import httpx

from onboard.engine.factory import create_api_step
from onboard.engine.types import OnboardingContext, StepDefinition, schema_for
from onboard.schemas.lead_scraper import (
    LeadScraperProvisioningResult,
    ProvisionLeadScraperRequest,
)

STEP_ID = "lead-scraper-provisioning"
PROVISION_ENDPOINT = "/api/onboarding/{workspace_id}/provision-lead-scraper"


def _provisioning_request(_data: object, context: OnboardingContext) -> ProvisionLeadScraperRequest:
    return ProvisionLeadScraperRequest(
        workspace_id=context.workspace_id,
        workspace_name=context.workspace_name,
        user_id=context.user_id,
        user_email=context.user_email,
    )


def build_lead_scraper_provisioning_step(
    http_client: httpx.AsyncClient | None = None,
) -> StepDefinition:
    return create_api_step(
        id=STEP_ID,
        title="Setting up Lead Scraper",
        description="We're provisioning your Lead Scraper account. This will only take a moment.",
        order=1,
        required=True,
        api_endpoint=PROVISION_ENDPOINT,
        transform_request=_provisioning_request,
        result_schema=schema_for(LeadScraperProvisioningResult),
        http_client=http_client,
    )
