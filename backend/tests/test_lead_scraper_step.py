"""Default steps end to end: the provisioning step calls back into the app.

The lead-scraper step's HTTP client is bound to the app under test, so
executing it goes through the real provisioning endpoint, which talks
to a mocked Lead Scraper.
"""

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from onboard.config import Settings, settings
from onboard.main import app
from onboard.services.lead_scraper import LeadScraperClient, LeadScraperConfig
from onboard.steps import build_default_registry


class FakeLeadScraper:
    def __init__(self, tenant_status: int = 201):
        self.tenant_status = tenant_status
        self.paths: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.paths.append(request.url.path)
        if request.url.path.endswith("/tenants"):
            if self.tenant_status >= 400:
                return httpx.Response(self.tenant_status, json={"error": "tenant store unavailable"})
            return httpx.Response(self.tenant_status, json={"tenantId": "t-1"})
        return httpx.Response(201, json={})


@pytest.fixture
def fake_lead_scraper() -> FakeLeadScraper:
    return FakeLeadScraper()


@pytest.fixture
def lead_scraper_client(fake_lead_scraper) -> LeadScraperClient:
    config = LeadScraperConfig(api_key="test-key", base_url="http://scraper", api_prefix="/api/v1")
    return LeadScraperClient(
        config, http_client=httpx.AsyncClient(transport=httpx.MockTransport(fake_lead_scraper))
    )


@pytest_asyncio.fixture
async def self_client():
    """Client the provisioning step uses to reach this app's own endpoint."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


@pytest.fixture
def test_registry(self_client):
    return build_default_registry(Settings(enable_gmail_step=True), http_client=self_client)


@pytest.mark.integration
@pytest.mark.asyncio
class TestDefaultSteps:
    """lead-scraper-provisioning → gmail-connection."""

    async def test_catalog(self, client: AsyncClient):
        steps = (await client.get("/api/onboarding/steps")).json()

        assert [s["id"] for s in steps] == ["lead-scraper-provisioning", "gmail-connection"]
        assert steps[1]["kind"] == "oauth"
        assert steps[1]["provider"] == "google-email"

    async def test_provisioning_step(self, client: AsyncClient, workspace, fake_lead_scraper):
        resp = await client.post(
            "/api/onboarding/ws-1/execute",
            json={"step_id": "lead-scraper-provisioning"},
            headers={"X-User-Email": "owner@example.com"},
        )

        assert resp.status_code == 200
        result = resp.json()["result"]
        assert result["organization_id"] == "ws-1"
        assert result["tenant_id"] == "t-1"
        assert result["skipped"] is False
        assert fake_lead_scraper.paths == [
            "/api/v1/organization",
            "/api/v1/organizations/ws-1/tenants",
            "/api/v1/accounts",
        ]

        state = (await client.get("/api/onboarding/ws-1")).json()
        assert state["completed_step_ids"] == ["lead-scraper-provisioning"]
        assert state["current_step_id"] == "gmail-connection"
        assert state["is_complete"] is False

    async def test_upstream_failure_fails_the_step(self, client: AsyncClient, workspace, fake_lead_scraper):
        fake_lead_scraper.tenant_status = 503

        resp = await client.post(
            "/api/onboarding/ws-1/execute", json={"step_id": "lead-scraper-provisioning"}
        )

        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "STEP_FAILED"
        assert "tenant store unavailable" in error["message"]
        state = (await client.get("/api/onboarding/ws-1")).json()
        assert state["completed_step_ids"] == []

    async def test_gmail_requires_provisioning_first(self, client: AsyncClient, workspace):
        resp = await client.post(
            "/api/onboarding/ws-1/execute", json={"step_id": "gmail-connection"}
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "DEPENDENCIES_NOT_MET"

    async def test_full_onboarding(self, client: AsyncClient, workspace):
        run = (await client.post("/api/onboarding/ws-1/run")).json()
        # Stops at the OAuth step, which needs the callback
        assert run["success"] is False
        assert run["completed_step_ids"] == ["lead-scraper-provisioning"]

        resp = await client.post(
            "/api/onboarding/ws-1/oauth/gmail-connection",
            json={"account_id": "g-1", "email": "owner@example.com"},
        )
        assert resp.status_code == 200
        state = resp.json()
        assert state["is_complete"] is True
        assert state["step_results"]["gmail-connection"]["email"] == "owner@example.com"

        resp = await client.post("/api/onboarding/ws-1/complete")
        assert resp.status_code == 200

    async def test_gmail_result_requires_email(self, client: AsyncClient, workspace):
        await client.post("/api/onboarding/ws-1/run")

        resp = await client.post(
            "/api/onboarding/ws-1/oauth/gmail-connection", json={"account_id": "g-1"}
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "INVALID_STEP_RESULT"


@pytest.mark.integration
@pytest.mark.asyncio
class TestProvisioningEndpoint:
    """POST /api/onboarding/{workspace_id}/provision-lead-scraper."""

    async def test_workspace_mismatch(self, client: AsyncClient):
        resp = await client.post(
            "/api/onboarding/ws-1/provision-lead-scraper",
            json={"workspace_id": "ws-2", "workspace_name": "Acme", "user_id": "user-1"},
        )
        assert resp.status_code == 422

    async def test_upstream_error_is_502(self, client: AsyncClient, fake_lead_scraper):
        fake_lead_scraper.tenant_status = 500

        resp = await client.post(
            "/api/onboarding/ws-1/provision-lead-scraper",
            json={"workspace_id": "ws-1", "workspace_name": "Acme", "user_id": "user-1"},
        )
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "UPSTREAM_ERROR"
        assert resp.json()["error"]["details"]["stage"] == "tenant"

    @pytest.mark.parametrize("lead_scraper_client", [None])
    async def test_skipped_when_unconfigured(self, client: AsyncClient, monkeypatch, lead_scraper_client):
        monkeypatch.setattr(settings, "lead_scraper_api_key", "")

        resp = await client.post(
            "/api/onboarding/ws-1/provision-lead-scraper",
            json={"workspace_id": "ws-1", "workspace_name": "Acme", "user_id": "user-1"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["skipped"] is True
        assert data["account_status"] == 0
