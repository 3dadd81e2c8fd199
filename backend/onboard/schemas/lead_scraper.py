"""Pydantic schemas for Lead Scraper provisioning.

ProvisionLeadScraperRequest is what the provisioning step sends;
LeadScraperProvisioningResult is both the endpoint's response and the
step's result contract (statuses are the HTTP codes of each stage:
201 created, 409 already existed, 0 not attempted).
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class ProvisionLeadScraperRequest(BaseModel):
    workspace_id: str = Field(min_length=1)
    workspace_name: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    user_email: EmailStr | None = None


class LeadScraperProvisioningResult(BaseModel):
    organization_id: str = Field(min_length=1)
    tenant_id: str | None = None
    organization_status: int
    tenant_status: int
    account_status: int
    skipped: bool = False


# ── Upstream payloads ───────────────────────────────────────
# Responses are parsed leniently: unknown keys are kept and every
# field is optional, since only ids are read from them.

class _Upstream(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class CreateTenantResponse(_Upstream):
    tenant_id: str | None = Field(default=None, alias="tenantId")


class TenantSummary(_Upstream):
    id: str | None = None
    name: str | None = None
    display_name: str | None = Field(default=None, alias="displayName")


class ListTenantsResponse(_Upstream):
    tenants: list[TenantSummary] | None = None


class _AccountRef(_Upstream):
    id: str | None = None
    auth_platform_user_id: str | None = Field(default=None, alias="authPlatformUserId")


class _TenantRef(_Upstream):
    id: str | None = None


class CreateAccountResponse(_Upstream):
    account: _AccountRef | None = None
    tenant_id: str | None = Field(default=None, alias="tenantId")
    tenant: _TenantRef | None = None
