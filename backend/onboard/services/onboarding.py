"""Onboarding orchestration: the layer between HTTP routes and the engine.

Every call rebuilds an OnboardingContext from the store, asks the
registry / executor what to do, and writes back only successful,
validated outcomes. Failed executions leave persisted progress as it
was, so the same step can simply be retried.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError

from onboard.engine.executor import ProgressCallback, StepExecutor
from onboard.engine.factory import OAuthTokens
from onboard.engine.registry import StepRegistry
from onboard.engine.types import (
    OnboardingContext,
    OnboardingState,
    RunResult,
    StepDefinition,
    StepOutcome,
    StepSkipped,
    StepStatus,
    StepSucceeded,
)
from onboard.middleware.exceptions import BusinessLogicError, StepNotFoundError
from onboard.services.persistence import OnboardingStore

logger = logging.getLogger(__name__)


class OnboardingService:
    def __init__(
        self,
        registry: StepRegistry,
        store: OnboardingStore,
        executor: StepExecutor | None = None,
    ):
        self.registry = registry
        self.store = store
        self.executor = executor or StepExecutor(registry)

    # ── Context ─────────────────────────────────────────────

    async def build_context(
        self,
        workspace_id: str,
        user_id: str | None = None,
        user_email: str | None = None,
    ) -> OnboardingContext:
        """Fresh context from persisted state; the acting user defaults to the owner."""
        meta = await self.store.load_workspace_meta(workspace_id)
        completed = await self.store.load_completed_step_ids(workspace_id)
        results = await self.store.load_step_results(workspace_id)

        try:
            return OnboardingContext(
                workspace_id=workspace_id,
                user_id=user_id or meta.owner_id,
                user_email=user_email,
                workspace_name=meta.name,
                completed_step_ids=completed,
                step_results=results,
            )
        except ValidationError as exc:
            logger.error(
                "Failed to build valid onboarding context",
                extra={"workspace_id": workspace_id, "errors": exc.errors()},
            )
            raise BusinessLogicError(
                f"Workspace {workspace_id} cannot be onboarded: invalid context",
                error_code="INVALID_CONTEXT",
            ) from exc

    def _get_step(self, step_id: str) -> StepDefinition[Any, Any]:
        step = self.registry.get_step(step_id)
        if step is None:
            raise StepNotFoundError(step_id)
        return step

    # ── Read model ──────────────────────────────────────────

    async def get_state(self, workspace_id: str) -> OnboardingState:
        meta = await self.store.load_workspace_meta(workspace_id)
        context = await self.build_context(workspace_id)
        skipped = set(await self.store.load_skipped_step_ids(workspace_id))

        for problem in self.registry.check_consistency(context):
            logger.warning(problem, extra={"workspace_id": workspace_id})

        # Steps whose condition is false are invisible: no status, not counted
        visible = [s for s in self.registry.get_steps_sorted() if await s.applies_to(context)]
        statuses = {step.id: self._status(step.id, context, skipped) for step in visible}

        current_step_id = None
        if not meta.onboarding_completed:
            next_step = await self.registry.get_next_step(context)
            if next_step is not None:
                statuses[next_step.id] = StepStatus.IN_PROGRESS
                current_step_id = next_step.id

        is_complete = meta.onboarding_completed or await self.registry.is_onboarding_complete(
            context
        )

        return OnboardingState(
            is_complete=is_complete,
            current_step_id=current_step_id,
            step_statuses=statuses,
            step_results=context.step_results,
            completed_step_ids=context.completed_step_ids,
            total_steps=len(visible),
            completed_count=sum(1 for s in visible if context.has_completed(s.id)),
        )

    @staticmethod
    def _status(step_id: str, context: OnboardingContext, skipped: set[str]) -> StepStatus:
        if step_id in skipped:
            return StepStatus.SKIPPED
        if context.has_completed(step_id):
            return StepStatus.COMPLETED
        return StepStatus.PENDING

    def list_steps(self) -> list[dict[str, Any]]:
        return [step.describe() for step in self.registry]

    # ── Commands ────────────────────────────────────────────

    async def complete_step(
        self,
        workspace_id: str,
        step_id: str,
        result: Any = None,
        skipped: bool = False,
    ) -> OnboardingState:
        """Record a step completed outside the executor (UI flow, OAuth callback, skip)."""
        step = self._get_step(step_id)

        if skipped and step.required:
            raise BusinessLogicError(
                f'Required step "{step_id}" cannot be skipped',
                error_code="STEP_NOT_SKIPPABLE",
            )

        stored = None
        if not skipped and result is not None:
            checked = step.validate_result(result)
            if not checked.ok:
                raise BusinessLogicError(
                    f'Invalid result for step "{step_id}": {checked.message}',
                    error_code="INVALID_STEP_RESULT",
                    details={"errors": list(checked.errors)},
                )
            stored = jsonable_encoder(checked.value)

        context = await self.build_context(workspace_id)
        missing = step.missing_dependencies(context)
        if missing:
            # Allowed, but leaves the recorded progress out of dependency order
            logger.warning(
                "Completing step %s before its dependencies: %s",
                step_id,
                ", ".join(missing),
                extra={"workspace_id": workspace_id, "step_id": step_id},
            )

        logger.info(
            "Completing onboarding step",
            extra={"workspace_id": workspace_id, "step_id": step_id, "skipped": skipped},
        )
        await self.store.append_completed_step_id(workspace_id, step_id, stored, skipped=skipped)
        return await self.get_state(workspace_id)

    async def complete_oauth_step(
        self, workspace_id: str, step_id: str, tokens: OAuthTokens
    ) -> OnboardingState:
        """Turn OAuth callback tokens into the step's result and record it."""
        step = self._get_step(step_id)
        if step.metadata.get("kind") != "oauth":
            raise BusinessLogicError(
                f'Step "{step_id}" is not an OAuth step', error_code="NOT_OAUTH_STEP"
            )

        handler = step.metadata.get("on_oauth_success")
        if handler is None:
            # Tokens stay out of the stored result, which the state endpoint returns
            result = tokens.model_dump(exclude={"access_token"}, exclude_none=True)
        else:
            context = await self.build_context(workspace_id)
            result = await handler(tokens, context)
        return await self.complete_step(workspace_id, step_id, result)

    async def execute_step(
        self,
        workspace_id: str,
        step_id: str,
        data: Any,
        user_id: str | None = None,
        user_email: str | None = None,
    ) -> StepOutcome:
        """Run one step now; persist it only when it succeeded or was skipped."""
        step = self._get_step(step_id)
        context = await self.build_context(workspace_id, user_id, user_email)

        missing = step.missing_dependencies(context)
        if missing:
            missing_names = [
                f"{dep} ({self.registry.get_step(dep).title})" if dep in self.registry else dep
                for dep in missing
            ]
            raise BusinessLogicError(
                f"Complete these first: {', '.join(missing_names)}",
                error_code="DEPENDENCIES_NOT_MET",
                details={"step_id": step_id, "missing": missing},
            )

        logger.info(
            "Executing onboarding step",
            extra={"workspace_id": workspace_id, "step_id": step_id, "user_id": context.user_id},
        )
        outcome = await self.executor.execute_step(step, data, context)

        if isinstance(outcome, StepSucceeded):
            await self.store.append_completed_step_id(
                workspace_id, step_id, jsonable_encoder(outcome.result)
            )
        elif isinstance(outcome, StepSkipped):
            await self.store.append_completed_step_id(workspace_id, step_id)
        return outcome

    async def run_remaining(
        self,
        workspace_id: str,
        user_id: str | None = None,
        user_email: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> RunResult:
        """Drive every remaining step and persist whatever completed, even on failure."""
        context = await self.build_context(workspace_id, user_id, user_email)
        run = await self.executor.execute_all_remaining_steps(context, on_progress)

        for step_id in run.completed_step_ids[len(context.completed_step_ids):]:
            result = run.step_results.get(step_id)
            await self.store.append_completed_step_id(
                workspace_id, step_id, jsonable_encoder(result) if result is not None else None
            )

        if not run.success:
            logger.warning(
                "Onboarding run stopped on failure",
                extra={"workspace_id": workspace_id, "error": run.error},
            )
        return run

    async def rollback(self, workspace_id: str, step_ids: Iterable[str]) -> None:
        """Run compensating actions for ``step_ids`` (last first). Progress is not changed."""
        context = await self.build_context(workspace_id)
        await self.executor.rollback_steps(context, step_ids)

    async def finish(self, workspace_id: str) -> None:
        context = await self.build_context(workspace_id)
        next_required = await self.registry.get_next_required_step(context)
        if next_required is not None:
            raise BusinessLogicError(
                f'Required step "{next_required.id}" is not complete',
                error_code="ONBOARDING_INCOMPLETE",
            )
        await self.store.mark_complete(workspace_id)
