"""FastAPI dependencies for the onboarding routes.

  get_registry()            → the process-wide StepRegistry (built at startup)
  get_onboarding_service()  → service bound to the request's DB session
  get_actor()               → acting user from X-User-Id / X-User-Email, if sent
  get_lead_scraper_client() → configured client, or None to skip provisioning
"""

from dataclasses import dataclass

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from onboard.database import get_db
from onboard.engine.registry import StepRegistry
from onboard.services.lead_scraper import LeadScraperClient, resolve_lead_scraper_config
from onboard.services.onboarding import OnboardingService
from onboard.services.persistence import SqlAlchemyOnboardingStore


def get_registry(request: Request) -> StepRegistry:
    return request.app.state.registry


async def get_onboarding_service(
    db: AsyncSession = Depends(get_db),
    registry: StepRegistry = Depends(get_registry),
) -> OnboardingService:
    return OnboardingService(registry, SqlAlchemyOnboardingStore(db))


@dataclass(frozen=True)
class Actor:
    user_id: str | None = None
    user_email: str | None = None


def get_actor(
    x_user_id: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
) -> Actor:
    """Caller identity as forwarded by the fronting auth layer (owner if absent)."""
    return Actor(user_id=x_user_id or None, user_email=x_user_email or None)


def get_lead_scraper_client() -> LeadScraperClient | None:
    config = resolve_lead_scraper_config()
    return LeadScraperClient(config) if config else None
