"""Catalog of onboarding step definitions.

The registry is built once at process start from a static list of steps
(see onboard.steps.build_default_registry) and is read-only afterwards,
so it is safe to share across concurrent requests. It answers ordering
and eligibility questions; it never executes a step.

Sequencing rules:
  - Steps are considered in ascending ``order``; registration order
    breaks ties.
  - A step is *applicable* when its condition (if any) holds and all of
    its dependencies are in the context's completed set.
  - A required step with unmet dependencies is a hard stop for
    get_next_required_step(): later required steps are not revealed
    while an earlier one is blocked.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Any

from onboard.engine.errors import StepConfigurationError
from onboard.engine.types import STEP_ID_RE, OnboardingContext, StepDefinition

logger = logging.getLogger(__name__)


class StepRegistry:
    def __init__(self) -> None:
        self._steps: dict[str, StepDefinition[Any, Any]] = {}

    @classmethod
    def from_steps(cls, steps: Iterable[StepDefinition[Any, Any]]) -> StepRegistry:
        """Register every step in ``steps`` and check the dependency graph."""
        registry = cls()
        for step in steps:
            registry.register(step)
        registry.validate_dependencies()
        return registry

    # ── Registration ────────────────────────────────────────

    def register(self, step: StepDefinition[Any, Any]) -> None:
        """Add ``step`` to the catalog.

        Raises StepConfigurationError for a malformed definition or a
        duplicate id. This is a startup-time failure, not a runtime one.
        """
        self._validate_step(step)

        if step.id in self._steps:
            raise StepConfigurationError(
                f'Onboarding step with ID "{step.id}" already registered'
            )

        self._steps[step.id] = step
        logger.info(
            "Registered onboarding step: %s",
            step.id,
            extra={
                "step_id": step.id,
                "order": step.order,
                "required": step.required,
                "dependencies": list(step.dependencies),
            },
        )

    def validate_dependencies(self) -> None:
        """Ensure every dependency is registered and the graph has no cycles."""
        for step in self._steps.values():
            unknown = [dep for dep in step.dependencies if dep not in self._steps]
            if unknown:
                raise StepConfigurationError(
                    f'Onboarding step "{step.id}" depends on unknown step(s): '
                    f"{', '.join(unknown)}"
                )

        visiting: set[str] = set()
        done: set[str] = set()

        def visit(step_id: str, path: list[str]) -> None:
            if step_id in done:
                return
            if step_id in visiting:
                cycle = " -> ".join(path[path.index(step_id):] + [step_id])
                raise StepConfigurationError(f"Dependency cycle between onboarding steps: {cycle}")
            visiting.add(step_id)
            for dep in self._steps[step_id].dependencies:
                visit(dep, path + [step_id])
            visiting.discard(step_id)
            done.add(step_id)

        for step_id in self._steps:
            visit(step_id, [])

    # ── Lookup ──────────────────────────────────────────────

    def get_step(self, step_id: str) -> StepDefinition[Any, Any] | None:
        return self._steps.get(step_id)

    def get_all_steps(self) -> list[StepDefinition[Any, Any]]:
        """All registered steps; order is not meaningful."""
        return list(self._steps.values())

    def get_steps_sorted(self) -> list[StepDefinition[Any, Any]]:
        return sorted(self._steps.values(), key=lambda step: step.order)

    def get_required_step_count(self) -> int:
        return sum(1 for step in self._steps.values() if step.required)

    def get_step_count(self) -> int:
        return len(self._steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[StepDefinition[Any, Any]]:
        return iter(self.get_steps_sorted())

    # ── Sequencing ──────────────────────────────────────────

    async def get_applicable_steps(
        self, context: OnboardingContext
    ) -> list[StepDefinition[Any, Any]]:
        """Steps whose condition holds and whose dependencies are all completed."""
        applicable = []
        for step in self.get_steps_sorted():
            if not await step.applies_to(context):
                continue
            if not step.dependencies_met(context):
                continue
            applicable.append(step)
        return applicable

    async def get_next_step(
        self, context: OnboardingContext
    ) -> StepDefinition[Any, Any] | None:
        """First applicable step not yet completed, or None."""
        for step in await self.get_applicable_steps(context):
            if not context.has_completed(step.id):
                return step
        return None

    async def get_next_required_step(
        self, context: OnboardingContext
    ) -> StepDefinition[Any, Any] | None:
        """First incomplete required step, or None.

        Returns None as soon as a required, incomplete, applicable step
        has unmet dependencies: the caller must wait for those first.
        Completed steps are trusted as recorded; see check_consistency().
        """
        for step in self.get_steps_sorted():
            if not step.required:
                continue
            if context.has_completed(step.id):
                continue
            if not await step.applies_to(context):
                continue
            if not step.dependencies_met(context):
                return None
            return step
        return None

    async def is_onboarding_complete(self, context: OnboardingContext) -> bool:
        return await self.get_next_required_step(context) is None

    def check_consistency(self, context: OnboardingContext) -> list[str]:
        """Describe completed steps whose own dependencies are not completed.

        Diagnostic only; sequencing does not consult it.
        """
        problems = []
        for step_id in context.completed_step_ids:
            step = self._steps.get(step_id)
            if step is None:
                continue
            missing = step.missing_dependencies(context)
            if missing:
                problems.append(
                    f'Step "{step_id}" is recorded as completed but its '
                    f"dependencies are not: {', '.join(missing)}"
                )
        return problems

    # ── Internal ────────────────────────────────────────────

    @staticmethod
    def _validate_step(step: Any) -> None:
        if not isinstance(step, StepDefinition):
            raise StepConfigurationError(
                f"Onboarding steps must be StepDefinition instances, got {type(step).__name__}"
            )

        if not step.id or not isinstance(step.id, str):
            raise StepConfigurationError("Onboarding step must have a string id")

        if not STEP_ID_RE.match(step.id):
            raise StepConfigurationError(
                f'Onboarding step id "{step.id}" must be kebab-case'
            )

        if not step.title or not isinstance(step.title, str):
            raise StepConfigurationError(f'Onboarding step "{step.id}" must have a title')

        if not step.description or not isinstance(step.description, str):
            raise StepConfigurationError(
                f'Onboarding step "{step.id}" must have a description'
            )

        if isinstance(step.order, bool) or not isinstance(step.order, (int, float)):
            raise StepConfigurationError(
                f'Onboarding step "{step.id}" must have a numeric order'
            )

        if not isinstance(step.required, bool):
            raise StepConfigurationError(
                f'Onboarding step "{step.id}" must have a boolean required field'
            )

        if not callable(step.execute):
            raise StepConfigurationError(
                f'Onboarding step "{step.id}" must have an execute function'
            )

        if not isinstance(step.dependencies, tuple):
            raise StepConfigurationError(
                f'Onboarding step "{step.id}" dependencies must be a list of step ids'
            )
        for dep_id in step.dependencies:
            if not isinstance(dep_id, str) or not dep_id:
                raise StepConfigurationError(
                    f'Onboarding step "{step.id}" has invalid dependency: {dep_id!r}'
                )

        if step.id in step.dependencies:
            raise StepConfigurationError(f'Onboarding step "{step.id}" cannot depend on itself')
