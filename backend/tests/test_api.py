"""Onboarding HTTP API tests."""

import pytest
from httpx import AsyncClient

from conftest import make_step
from onboard.engine import OAuthProvider, StepRegistry, create_oauth_step


@pytest.mark.api
@pytest.mark.asyncio
class TestHealth:
    """Liveness endpoint."""

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


@pytest.mark.api
@pytest.mark.asyncio
class TestOnboardingState:
    """GET / POST /api/onboarding/{workspace_id}."""

    async def test_list_steps(self, client: AsyncClient):
        resp = await client.get("/api/onboarding/steps")
        assert resp.status_code == 200
        steps = resp.json()
        assert [s["id"] for s in steps] == ["p1", "p2"]
        assert steps[1]["dependencies"] == ["p1"]

    async def test_get_state(self, client: AsyncClient, workspace):
        resp = await client.get("/api/onboarding/ws-1")
        assert resp.status_code == 200
        data = resp.json()
        assert data["current_step_id"] == "p1"
        assert data["step_statuses"] == {"p1": "in_progress", "p2": "pending"}
        assert data["is_complete"] is False
        assert data["total_steps"] == 2

    async def test_unknown_workspace(self, client: AsyncClient):
        resp = await client.get("/api/onboarding/missing")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "WORKSPACE_NOT_FOUND"

    async def test_complete_step(self, client: AsyncClient, workspace):
        resp = await client.post("/api/onboarding/ws-1", json={"step_id": "p1"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["completed_step_ids"] == ["p1"]
        assert data["current_step_id"] == "p2"

    async def test_required_step_not_skippable(self, client: AsyncClient, workspace):
        resp = await client.post("/api/onboarding/ws-1", json={"step_id": "p1", "skipped": True})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "STEP_NOT_SKIPPABLE"

    async def test_unknown_step(self, client: AsyncClient, workspace):
        resp = await client.post("/api/onboarding/ws-1", json={"step_id": "nope"})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "STEP_NOT_FOUND"

    async def test_request_validation_envelope(self, client: AsyncClient, workspace):
        resp = await client.post("/api/onboarding/ws-1", json={})
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"]["errors"][0]["field"] == "body -> step_id"


@pytest.mark.api
@pytest.mark.asyncio
class TestExecution:
    """Execute, run, finish."""

    async def test_execute_step(self, client: AsyncClient, workspace):
        resp = await client.post("/api/onboarding/ws-1/execute", json={"step_id": "p1"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "result": {"step": "p1"}, "skipped": False}

        state = (await client.get("/api/onboarding/ws-1")).json()
        assert state["completed_step_ids"] == ["p1"]

    async def test_execute_with_unmet_dependencies(self, client: AsyncClient, workspace):
        resp = await client.post("/api/onboarding/ws-1/execute", json={"step_id": "p2"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "DEPENDENCIES_NOT_MET"
        assert resp.json()["error"]["details"] == {"step_id": "p2", "missing": ["p1"]}

    async def test_run_remaining_then_finish(self, client: AsyncClient, workspace):
        resp = await client.post("/api/onboarding/ws-1/complete")
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "ONBOARDING_INCOMPLETE"

        resp = await client.post("/api/onboarding/ws-1/run")
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["completed_step_ids"] == ["p1", "p2"]

        resp = await client.post("/api/onboarding/ws-1/complete")
        assert resp.status_code == 200

        state = (await client.get("/api/onboarding/ws-1")).json()
        assert state["is_complete"] is True
        assert state["current_step_id"] is None

    async def test_rollback_requires_step_ids(self, client: AsyncClient, workspace):
        resp = await client.post("/api/onboarding/ws-1/rollback", json={"step_ids": []})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_rollback(self, client: AsyncClient, workspace):
        await client.post("/api/onboarding/ws-1/run")

        resp = await client.post("/api/onboarding/ws-1/rollback", json={"step_ids": ["p1", "p2"]})
        assert resp.status_code == 200
        assert resp.json() == {"success": True}


async def _failing(data, context):
    raise RuntimeError("CRM rejected the request")


async def _whoami(data, context):
    return {"user_id": context.user_id, "user_email": context.user_email}


@pytest.mark.api
@pytest.mark.asyncio
class TestStepFailures:
    """Failed steps map to 422 STEP_FAILED and leave progress untouched."""

    @pytest.fixture
    def test_registry(self):
        return StepRegistry.from_steps([
            make_step("connect-crm", 1, execute=_failing),
            make_step("whoami", 2, required=False, execute=_whoami),
            create_oauth_step(
                id="connect-slack",
                title="Connect Slack",
                description="Connect your Slack workspace",
                order=3,
                provider=OAuthProvider.SLACK,
                scopes=["chat:write"],
            ),
        ])

    async def test_step_failed_envelope(self, client: AsyncClient, workspace):
        resp = await client.post("/api/onboarding/ws-1/execute", json={"step_id": "connect-crm"})
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "STEP_FAILED"
        assert error["message"] == "CRM rejected the request"
        assert error["details"] == {"step_id": "connect-crm"}

        state = (await client.get("/api/onboarding/ws-1")).json()
        assert state["completed_step_ids"] == []

    async def test_run_reports_failure(self, client: AsyncClient, workspace):
        resp = await client.post("/api/onboarding/ws-1/run")
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is False
        assert data["error"] == "CRM rejected the request"
        assert data["completed_step_ids"] == []

    async def test_actor_headers(self, client: AsyncClient, workspace):
        resp = await client.post(
            "/api/onboarding/ws-1/execute",
            json={"step_id": "whoami"},
            headers={"X-User-Id": "user-2", "X-User-Email": "two@example.com"},
        )
        assert resp.status_code == 200
        assert resp.json()["result"] == {"user_id": "user-2", "user_email": "two@example.com"}

    async def test_owner_is_default_actor(self, client: AsyncClient, workspace):
        resp = await client.post("/api/onboarding/ws-1/execute", json={"step_id": "whoami"})
        assert resp.json()["result"] == {"user_id": "user-1", "user_email": None}

    async def test_oauth_completion(self, client: AsyncClient, workspace):
        resp = await client.post(
            "/api/onboarding/ws-1/oauth/connect-slack",
            json={"account_id": "T123", "email": "owner@example.com"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert "connect-slack" in data["completed_step_ids"]
        assert data["step_results"]["connect-slack"]["account_id"] == "T123"

    async def test_oauth_completion_rejects_other_steps(self, client: AsyncClient, workspace):
        resp = await client.post("/api/onboarding/ws-1/oauth/whoami", json={"account_id": "T123"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "NOT_OAUTH_STEP"

    async def test_oauth_access_token_not_exposed(self, client: AsyncClient, workspace):
        await client.post(
            "/api/onboarding/ws-1/oauth/connect-slack",
            json={"account_id": "T123", "access_token": "xoxb-secret"},
        )

        resp = await client.get("/api/onboarding/ws-1")
        assert resp.json()["step_results"]["connect-slack"] == {"account_id": "T123"}
        assert "xoxb-secret" not in resp.text
