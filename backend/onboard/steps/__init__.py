"""Concrete onboarding steps and the startup registry builder.

The registry is assembled here, in one place, from a static list. No
step registers itself on import.

| ID                         | Order | Required | Enabled by                 |
|----------------------------|-------|----------|----------------------------|
| lead-scraper-provisioning  | 1     | Yes      | always                     |
| gmail-connection           | 2     | Yes      | settings.enable_gmail_step |
"""

import httpx

from onboard.config import Settings, settings as default_settings
from onboard.engine.registry import StepRegistry
from onboard.steps.gmail_connection import build_gmail_connection_step
from onboard.steps.lead_scraper_provisioning import build_lead_scraper_provisioning_step


def build_default_registry(
    settings: Settings = default_settings,
    http_client: httpx.AsyncClient | None = None,
) -> StepRegistry:
    """Build the process-wide registry. Raises StepConfigurationError on bad steps."""
    steps = [build_lead_scraper_provisioning_step(http_client=http_client)]
    if settings.enable_gmail_step:
        steps.append(build_gmail_connection_step())
    return StepRegistry.from_steps(steps)
