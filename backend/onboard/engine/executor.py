"""Step execution pipeline.

The executor is the error boundary for step logic: nothing raised by a
step's hooks reaches the caller. Every call returns a StepOutcome
(StepSucceeded / StepSkipped / StepFailed) and the caller decides what
to persist. The executor itself never touches persistence and never
mutates the context it is given.

executeStep flow:
  1. validate input against data_schema     → StepFailed on mismatch
  2. check_completion()                       → StepSkipped when true
  3. execute()                                → on exception: best-effort rollback, StepFailed
  4. validate result against result_schema   → StepFailed (contract violation) on mismatch
  5. StepSucceeded(result)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Union

from onboard.engine.registry import StepRegistry
from onboard.engine.types import (
    OnboardingContext,
    ProgressStatus,
    RunResult,
    StepDefinition,
    StepFailed,
    StepOutcome,
    StepSkipped,
    StepSucceeded,
    maybe_await,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, ProgressStatus], Union[None, Awaitable[None]]]


def _error_message(exc: BaseException) -> str:
    return str(exc) or "Unknown error"


class StepExecutor:
    """Runs steps resolved from ``registry``. Holds no per-run state."""

    def __init__(self, registry: StepRegistry):
        self.registry = registry

    async def execute_step(
        self,
        step: StepDefinition[Any, Any],
        data: Any,
        context: OnboardingContext,
    ) -> StepOutcome:
        log_extra = {
            "step_id": step.id,
            "workspace_id": context.workspace_id,
            "user_id": context.user_id,
        }
        logger.info("Executing step: %s", step.id, extra=log_extra)

        validation = step.validate_input(data)
        if not validation.ok:
            logger.error(
                "Step data validation failed: %s",
                step.id,
                extra={**log_extra, "errors": list(validation.errors)},
            )
            return StepFailed(error=f"Validation failed: {validation.message}")
        data = validation.value

        try:
            if await step.is_already_complete(context):
                logger.info("Step already complete, skipping: %s", step.id, extra=log_extra)
                return StepSkipped()

            result = await step.run(data, context)
        except Exception as exc:
            error = _error_message(exc)
            logger.error(
                "Step execution failed: %s",
                step.id,
                extra={**log_extra, "error": error},
                exc_info=True,
            )
            await self._rollback_after_failure(step, context)
            return StepFailed(error=error)

        checked = step.validate_result(result)
        if not checked.ok:
            # The side effect already happened; this is a broken contract,
            # not an execution failure.
            logger.error(
                "Step result contract violated: %s",
                step.id,
                extra={
                    **log_extra,
                    "errors": list(checked.errors),
                    "contract_violation": True,
                },
            )
            return StepFailed(
                error=f"Step completed but result validation failed: {checked.message}"
            )

        logger.info("Step completed successfully: %s", step.id, extra=log_extra)
        return StepSucceeded(result=checked.value)

    async def _rollback_after_failure(
        self, step: StepDefinition[Any, Any], context: OnboardingContext
    ) -> None:
        if step.rollback is None:
            return
        try:
            # execute() raised, so there is no result to hand over
            await step.undo(None, context)
            logger.info("Step rolled back: %s", step.id, extra={"step_id": step.id})
        except Exception:
            logger.exception(
                "Step rollback failed: %s",
                step.id,
                extra={"step_id": step.id, "workspace_id": context.workspace_id},
            )

    async def execute_all_remaining_steps(
        self,
        context: OnboardingContext,
        on_progress: ProgressCallback | None = None,
    ) -> RunResult:
        """Run every remaining applicable step, one at a time, with empty input.

        Stops at the first failure and returns the progress made so far.
        Already-completed steps are not rolled back; see rollback_steps().
        """
        completed_step_ids = list(context.completed_step_ids)
        step_results = dict(context.step_results)

        async def notify(step_id: str, status: ProgressStatus) -> None:
            if on_progress is not None:
                await maybe_await(on_progress(step_id, status))

        while True:
            current = context.with_progress(completed_step_ids, step_results)
            step = await self.registry.get_next_step(current)
            if step is None:
                break

            await notify(step.id, ProgressStatus.STARTED)
            outcome = await self.execute_step(step, {}, current)

            if isinstance(outcome, StepFailed):
                await notify(step.id, ProgressStatus.FAILED)
                return RunResult(
                    success=False,
                    completed_step_ids=completed_step_ids,
                    step_results=step_results,
                    error=outcome.error,
                )

            completed_step_ids.append(step.id)
            if isinstance(outcome, StepSucceeded):
                step_results[step.id] = outcome.result
            await notify(step.id, ProgressStatus.COMPLETED)

        return RunResult(
            success=True,
            completed_step_ids=completed_step_ids,
            step_results=step_results,
        )

    async def rollback_steps(
        self, context: OnboardingContext, step_ids: Iterable[str]
    ) -> None:
        """Undo ``step_ids`` in reverse order.

        Steps that are unknown or have no rollback handler are skipped.
        A failing rollback is logged and does not stop the remaining ones.
        """
        for step_id in reversed(list(step_ids)):
            step = self.registry.get_step(step_id)
            if step is None or step.rollback is None:
                continue
            try:
                await step.undo(context.step_results.get(step_id), context)
                logger.info(
                    "Rolled back step: %s",
                    step_id,
                    extra={"step_id": step_id, "workspace_id": context.workspace_id},
                )
            except Exception:
                logger.exception(
                    "Failed to rollback step: %s",
                    step_id,
                    extra={"step_id": step_id, "workspace_id": context.workspace_id},
                )
