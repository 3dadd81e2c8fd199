"""Helpers for building StepDefinitions of the three common shapes.

  create_api_step()   → execute() is one outbound POST; non-2xx raises
  create_oauth_step() → completed out-of-band by an OAuth callback
  create_form_step()  → execute() re-validates input, then calls a submit handler

These are conveniences; anything satisfying StepDefinition works with
the registry and executor.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, EmailStr

from onboard.config import settings
from onboard.engine.errors import OAuthCallbackRequired, StepRequestError, StepValidationError
from onboard.engine.types import (
    Condition,
    OnboardingContext,
    StepDefinition,
    Validator,
)

logger = logging.getLogger(__name__)


# ── API steps ───────────────────────────────────────────────

def resolve_endpoint(api_endpoint: str, context: OnboardingContext) -> str:
    """Substitute the workspace id into ``[workspaceId]`` / ``{workspace_id}``."""
    return api_endpoint.replace("[workspaceId]", context.workspace_id).replace(
        "{workspace_id}", context.workspace_id
    )


def error_message_from_response(response: httpx.Response) -> str:
    """Best human-readable error for a failed response."""
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.reason_phrase}"

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        message = error or payload.get("message")
        if message:
            return str(message)
    return "Step execution failed"


def create_api_step(
    *,
    id: str,
    title: str,
    description: str,
    order: int,
    api_endpoint: str,
    required: bool = True,
    dependencies: Sequence[str] = (),
    condition: Condition | None = None,
    data_schema: Validator | None = None,
    result_schema: Validator | None = None,
    transform_request: Callable[[Any, OnboardingContext], Any] | None = None,
    transform_response: Callable[[Any], Any] | None = None,
    rollback: Callable[[Any, OnboardingContext], Awaitable[None]] | None = None,
    http_client: httpx.AsyncClient | None = None,
    headers: dict[str, str] | None = None,
) -> StepDefinition[Any, Any]:
    """Step whose execute() POSTs to ``api_endpoint`` and returns the JSON body.

    Relative endpoints are resolved against ``settings.app_base_url``
    unless an ``http_client`` with its own base URL is supplied (that
    client is not closed by the step).
    """

    @asynccontextmanager
    async def client() -> AsyncIterator[httpx.AsyncClient]:
        if http_client is not None:
            yield http_client
            return
        async with httpx.AsyncClient(
            base_url=settings.app_base_url,
            timeout=settings.step_http_timeout_seconds,
        ) as owned:
            yield owned

    async def execute(data: Any, context: OnboardingContext) -> Any:
        endpoint = resolve_endpoint(api_endpoint, context)
        log_extra = {"step_id": id, "endpoint": endpoint, "workspace_id": context.workspace_id}
        logger.info("Executing API step: %s", id, extra=log_extra)

        body = transform_request(data, context) if transform_request else data

        async with client() as http:
            response = await http.post(endpoint, json=jsonable_encoder(body), headers=headers)

        if not response.is_success:
            message = error_message_from_response(response)
            logger.error(
                "API step failed: %s",
                id,
                extra={**log_extra, "status": response.status_code, "error": message},
            )
            raise StepRequestError(message, response.status_code)

        payload = response.json() if response.content else None
        logger.info("API step completed: %s", id, extra=log_extra)
        return transform_response(payload) if transform_response else payload

    return StepDefinition(
        id=id,
        title=title,
        description=description,
        order=order,
        required=required,
        execute=execute,
        dependencies=tuple(dependencies),
        condition=condition,
        data_schema=data_schema,
        result_schema=result_schema,
        rollback=rollback,
        metadata={"kind": "api", "api_endpoint": api_endpoint},
    )


# ── OAuth steps ─────────────────────────────────────────────

class OAuthProvider(str, enum.Enum):
    GOOGLE = "google"
    GOOGLE_EMAIL = "google-email"
    GITHUB = "github"
    MICROSOFT = "microsoft"
    SLACK = "slack"


class OAuthTokens(BaseModel):
    account_id: str
    email: EmailStr | None = None
    access_token: str | None = None


def create_oauth_step(
    *,
    id: str,
    title: str,
    description: str,
    order: int,
    provider: OAuthProvider,
    scopes: Iterable[str],
    on_oauth_success: Callable[[OAuthTokens, OnboardingContext], Awaitable[Any]] | None = None,
    required: bool = False,
    dependencies: Sequence[str] = (),
    condition: Condition | None = None,
    result_schema: Validator | None = None,
) -> StepDefinition[dict[str, Any], Any]:
    """Step completed by an OAuth callback rather than by execute().

    execute() always raises; check_completion() reports whether the step
    id is already recorded, so re-running a finished OAuth step is a skip.
    """

    async def execute(data: dict[str, Any], context: OnboardingContext) -> Any:
        logger.warning(
            "OAuth step execute() called directly: %s",
            id,
            extra={"step_id": id, "provider": provider.value, "workspace_id": context.workspace_id},
        )
        raise OAuthCallbackRequired(id)

    def check_completion(context: OnboardingContext) -> bool:
        return context.has_completed(id)

    return StepDefinition(
        id=id,
        title=title,
        description=description,
        order=order,
        required=required,
        execute=execute,
        dependencies=tuple(dependencies),
        condition=condition,
        result_schema=result_schema,
        check_completion=check_completion,
        auto_execute=False,
        metadata={
            "kind": "oauth",
            "provider": provider.value,
            "scopes": list(scopes),
            "on_oauth_success": on_oauth_success,
        },
    )


# ── Form steps ──────────────────────────────────────────────

def create_form_step(
    *,
    id: str,
    title: str,
    description: str,
    order: int,
    data_schema: Validator,
    on_submit: Callable[[Any, OnboardingContext], Awaitable[Any]],
    required: bool = True,
    dependencies: Sequence[str] = (),
    condition: Condition | None = None,
    result_schema: Validator | None = None,
    rollback: Callable[[Any, OnboardingContext], Awaitable[None]] | None = None,
) -> StepDefinition[Any, Any]:
    """Step that collects user input and hands it to ``on_submit``."""

    async def execute(data: Any, context: OnboardingContext) -> Any:
        logger.info(
            "Executing form step: %s",
            id,
            extra={"step_id": id, "workspace_id": context.workspace_id},
        )
        # The executor validates too; direct callers may not.
        validation = data_schema(data)
        if not validation.ok:
            logger.error(
                "Form validation failed: %s",
                id,
                extra={"step_id": id, "errors": list(validation.errors)},
            )
            raise StepValidationError(validation.errors)

        result = await on_submit(validation.value, context)
        logger.info(
            "Form step completed: %s",
            id,
            extra={"step_id": id, "workspace_id": context.workspace_id},
        )
        return result

    return StepDefinition(
        id=id,
        title=title,
        description=description,
        order=order,
        required=required,
        execute=execute,
        dependencies=tuple(dependencies),
        condition=condition,
        data_schema=data_schema,
        result_schema=result_schema,
        rollback=rollback,
        auto_execute=False,
        metadata={"kind": "form"},
    )
