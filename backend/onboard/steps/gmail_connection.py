"""Gmail connection step.

Completed out-of-band: the client runs the Google OAuth flow and then
reports the tokens to the OAuth completion endpoint, which turns them
into this step's result. Calling execute() directly always fails.
"""

from pydantic import BaseModel, EmailStr, Field

from onboard.engine.factory import OAuthProvider, OAuthTokens, create_oauth_step
from onboard.engine.types import OnboardingContext, StepDefinition, schema_for
from onboard.steps.lead_scraper_provisioning import STEP_ID as LEAD_SCRAPER_STEP_ID

STEP_ID = "gmail-connection"

GMAIL_SCOPES = [
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


class GmailConnectionResult(BaseModel):
    account_id: str = Field(min_length=1)
    email: EmailStr
    # Set once the callback handler has linked the account to the workspace
    workspace_account_id: str | None = None


async def _on_oauth_success(tokens: OAuthTokens, context: OnboardingContext) -> dict:
    return {"account_id": tokens.account_id, "email": tokens.email}


def build_gmail_connection_step() -> StepDefinition:
    return create_oauth_step(
        id=STEP_ID,
        title="Connect Gmail",
        description="Connect your Gmail account to send emails from your prospecting campaigns.",
        order=2,
        required=True,
        dependencies=[LEAD_SCRAPER_STEP_ID],
        provider=OAuthProvider.GOOGLE_EMAIL,
        scopes=GMAIL_SCOPES,
        on_oauth_success=_on_oauth_success,
        result_schema=schema_for(GmailConnectionResult),
    )
