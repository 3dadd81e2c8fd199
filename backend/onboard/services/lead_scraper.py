"""Lead Scraper account provisioning.

Creates, in order, the organization (keyed by workspace id), a tenant
under it, and an account for the workspace owner. Each stage treats
HTTP 409 as "already exists", so the whole call can be retried after a
partial failure without double-provisioning.

If no API key is configured provisioning is skipped (not failed): the
result carries status 0 for every stage and ``skipped=True``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError

from onboard.config import Settings, settings
from onboard.schemas.lead_scraper import (
    CreateAccountResponse,
    CreateTenantResponse,
    LeadScraperProvisioningResult,
    ListTenantsResponse,
    ProvisionLeadScraperRequest,
)

logger = logging.getLogger(__name__)

HTTP_CONFLICT = 409


class LeadScraperProvisioningError(Exception):
    """A provisioning stage returned an error other than 409."""

    def __init__(self, stage: str, status: int, message: str):
        self.stage = stage
        self.status = status
        super().__init__(message)


class LeadScraperConfig(BaseModel):
    api_key: str = Field(min_length=1)
    base_url: str = Field(min_length=1)
    api_prefix: str = ""


def resolve_lead_scraper_config(source: Settings = settings) -> LeadScraperConfig | None:
    """Config from settings, or None when provisioning should be skipped."""
    try:
        return LeadScraperConfig(
            api_key=source.lead_scraper_api_key,
            base_url=source.lead_scraper_base_url,
            api_prefix=source.lead_scraper_api_prefix,
        )
    except ValidationError as exc:
        if source.lead_scraper_api_key:
            logger.warning(
                "Lead Scraper config is invalid; skipping provisioning",
                extra={"errors": exc.errors()},
            )
        return None


def build_url(base_url: str, api_prefix: str, path: str) -> str:
    """Join base URL, API prefix and path with exactly one slash between each."""
    prefix = api_prefix.strip().strip("/")
    prefix = f"/{prefix}" if prefix else ""
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{base_url.rstrip('/')}{prefix}{path}"


@dataclass
class ApiResult:
    ok: bool
    status: int
    data: Any = None
    error: str | None = None


def _read_error(response: httpx.Response) -> str:
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            payload = response.json()
        except ValueError:
            return response.reason_phrase
        return payload if isinstance(payload, str) else response.text
    return response.text or response.reason_phrase


class LeadScraperClient:
    def __init__(
        self,
        config: LeadScraperConfig,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self.config = config
        self._http_client = http_client
        self._timeout = timeout if timeout is not None else settings.step_http_timeout_seconds

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    async def _request(self, method: str, path: str, body: Any = None) -> ApiResult:
        url = build_url(self.config.base_url, self.config.api_prefix, path)
        headers = {"Content-Type": "application/json", "x-api-key": self.config.api_key}
        async with self._client() as client:
            response = await client.request(method, url, json=body, headers=headers)

        if response.is_success:
            data = None
            if "application/json" in response.headers.get("content-type", ""):
                data = response.json()
            return ApiResult(ok=True, status=response.status_code, data=data)

        return ApiResult(
            ok=False, status=response.status_code, error=_read_error(response)
        )

    async def _post_stage(self, stage: str, path: str, body: Any, **log_extra: Any) -> ApiResult:
        result = await self._request("POST", path, body)
        if not result.ok and result.status != HTTP_CONFLICT:
            message = result.error or f"Lead Scraper {stage} provisioning failed"
            logger.error(
                "Lead Scraper %s provisioning failed",
                stage,
                extra={**log_extra, "status": result.status, "error": message},
            )
            raise LeadScraperProvisioningError(stage, result.status, message)
        return result

    async def _find_tenant_id(
        self, organization_id: str, tenant_name: str, display_name: str | None
    ) -> str | None:
        listing = await self._request("GET", f"/organization/tenants/{organization_id}")
        if not listing.ok or not listing.data:
            return None
        try:
            parsed = ListTenantsResponse.model_validate(listing.data)
        except ValidationError:
            return None
        for tenant in parsed.tenants or []:
            if tenant.name == tenant_name:
                return tenant.id
            if display_name and tenant.display_name == display_name:
                return tenant.id
        return None

    async def provision_workspace_owner(
        self, request: ProvisionLeadScraperRequest
    ) -> LeadScraperProvisioningResult:
        workspace_id = request.workspace_id
        log_extra = {"workspace_id": workspace_id}

        organization = await self._post_stage(
            "organization",
            "/organization",
            {
                "organization": {
                    "id": workspace_id,
                    "name": request.workspace_name,
                    "displayName": request.workspace_name,
                }
            },
            **log_extra,
        )

        tenant = await self._post_stage(
            "tenant",
            f"/organizations/{workspace_id}/tenants",
            {"tenant": {"name": workspace_id, "displayName": request.workspace_name}},
            **log_extra,
        )

        tenant_id = None
        if tenant.ok and tenant.data:
            try:
                tenant_id = CreateTenantResponse.model_validate(tenant.data).tenant_id
            except ValidationError:
                tenant_id = None
        if not tenant_id:
            tenant_id = await self._find_tenant_id(
                workspace_id, workspace_id, request.workspace_name
            )

        account_body: dict[str, Any] = {
            "organizationId": workspace_id,
            "account": {"authPlatformUserId": request.user_id},
            "initialWorkspaceName": request.workspace_name,
        }
        if request.user_email:
            account_body["account"]["email"] = request.user_email
        if tenant_id:
            account_body["tenantId"] = tenant_id

        account = await self._post_stage(
            "account", "/accounts", account_body, user_id=request.user_id, **log_extra
        )

        if not tenant_id and account.ok and account.data:
            try:
                parsed = CreateAccountResponse.model_validate(account.data)
            except ValidationError:
                parsed = None
            if parsed is not None:
                tenant_id = parsed.tenant_id or (parsed.tenant.id if parsed.tenant else None)

        logger.info(
            "Lead Scraper provisioning complete",
            extra={**log_extra, "tenant_id": tenant_id, "user_id": request.user_id},
        )
        return LeadScraperProvisioningResult(
            organization_id=workspace_id,
            tenant_id=tenant_id,
            organization_status=organization.status,
            tenant_status=tenant.status,
            account_status=account.status,
        )


async def provision_lead_scraper_account(
    request: ProvisionLeadScraperRequest,
    client: LeadScraperClient | None = None,
) -> LeadScraperProvisioningResult:
    """Provision ``request``'s workspace owner, or skip when unconfigured."""
    if client is None:
        config = resolve_lead_scraper_config()
        if config is None:
            logger.info(
                "Lead Scraper provisioning skipped (API key not configured)",
                extra={"workspace_id": request.workspace_id},
            )
            return LeadScraperProvisioningResult(
                organization_id=request.workspace_id,
                organization_status=0,
                tenant_status=0,
                account_status=0,
                skipped=True,
            )
        client = LeadScraperClient(config)
    return await client.provision_workspace_owner(request)
