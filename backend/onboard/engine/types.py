"""Core data model for the onboarding engine.

Three groups of types live here:

  - OnboardingContext / OnboardingState  → per-run input and the derived read-model
  - ValidationResult / Validator         → explicit schema checks (never raise)
  - StepDefinition + StepOutcome variants → what a step is and what running it produced

StepDefinition is generic over its input and result types so concrete
steps stay strongly typed at the edges, while the registry and executor
only use its non-generic capability methods (applies_to, validate_input,
run, validate_result, undo, ...).
"""

from __future__ import annotations

import enum
import inspect
import re
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, ValidationError

DataT = TypeVar("DataT")
ResultT = TypeVar("ResultT")

STEP_ID_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


async def maybe_await(value: Any) -> Any:
    """Return ``value``, awaiting it first if it is awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


# ── Context & state ─────────────────────────────────────────

class OnboardingContext(BaseModel):
    """Snapshot of workspace/user/progress handed to every engine call.

    Rebuilt from persisted state on each request and never mutated;
    use with_progress() to derive an updated copy.
    """

    model_config = ConfigDict(frozen=True)

    workspace_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    user_email: EmailStr | None = None
    workspace_name: str = Field(min_length=1)
    completed_step_ids: list[str] = Field(default_factory=list)
    step_results: dict[str, Any] = Field(default_factory=dict)

    def has_completed(self, step_id: str) -> bool:
        return step_id in self.completed_step_ids

    def with_progress(
        self,
        completed_step_ids: Iterable[str],
        step_results: Mapping[str, Any] | None = None,
    ) -> OnboardingContext:
        results = self.step_results if step_results is None else step_results
        return self.model_copy(
            update={
                "completed_step_ids": list(completed_step_ids),
                "step_results": dict(results),
            }
        )


class StepStatus(str, enum.Enum):
    """Per-step status in OnboardingState.

    FAILED is never derived from stored progress: failed executions are
    not persisted and are reported on the request that ran them.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ProgressStatus(str, enum.Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


class OnboardingState(BaseModel):
    """Derived progress snapshot for one workspace (not stored)."""

    is_complete: bool
    current_step_id: str | None
    step_statuses: dict[str, StepStatus]
    step_results: dict[str, Any] = Field(default_factory=dict)
    completed_step_ids: list[str] = Field(default_factory=list)
    total_steps: int = Field(ge=0)
    completed_count: int = Field(ge=0)


# ── Validation ──────────────────────────────────────────────

@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    value: Any = None
    errors: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        return ", ".join(self.errors)

    @classmethod
    def success(cls, value: Any) -> ValidationResult:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, *errors: str) -> ValidationResult:
        return cls(ok=False, errors=tuple(errors) or ("Invalid value",))


Validator = Callable[[Any], ValidationResult]


def _format_error(error: Mapping[str, Any]) -> str:
    loc = " -> ".join(str(part) for part in error.get("loc", ()))
    return f"{loc}: {error['msg']}" if loc else error["msg"]


def schema_for(tp: Any) -> Validator:
    """Build a Validator from a pydantic model (or any type pydantic can validate).

    The validated value is the parsed one, e.g. a model instance when
    ``tp`` is a BaseModel subclass.
    """
    adapter = TypeAdapter(tp)

    def validate(value: Any) -> ValidationResult:
        try:
            parsed = adapter.validate_python(value)
        except ValidationError as exc:
            return ValidationResult.failure(*(_format_error(e) for e in exc.errors()))
        return ValidationResult.success(parsed)

    validate.schema_type = tp  # type: ignore[attr-defined]
    return validate


# ── Step definition ─────────────────────────────────────────

Condition = Callable[["OnboardingContext"], Union[bool, Awaitable[bool]]]
ExecuteFn = Callable[[Any, "OnboardingContext"], Awaitable[Any]]
RollbackFn = Callable[[Any, "OnboardingContext"], Awaitable[None]]
CompletionCheck = Callable[["OnboardingContext"], Union[bool, Awaitable[bool]]]


@dataclass(frozen=True)
class StepDefinition(Generic[DataT, ResultT]):
    """One unit of onboarding work.

    ``execute`` must tolerate being called again for the same workspace
    (e.g. treat "already exists" responses as success). ``rollback``
    receives whatever result is available, which may be None.
    """

    id: str
    title: str
    description: str
    order: int
    required: bool
    execute: Callable[[DataT, OnboardingContext], Awaitable[ResultT]]
    dependencies: tuple[str, ...] = ()
    condition: Condition | None = None
    data_schema: Validator | None = None
    result_schema: Validator | None = None
    rollback: Callable[[ResultT | None, OnboardingContext], Awaitable[None]] | None = None
    check_completion: CompletionCheck | None = None
    # False for steps that need user input or an out-of-band callback
    auto_execute: bool = True
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.dependencies, list):
            object.__setattr__(self, "dependencies", tuple(self.dependencies))

    async def applies_to(self, context: OnboardingContext) -> bool:
        if self.condition is None:
            return True
        return bool(await maybe_await(self.condition(context)))

    def missing_dependencies(self, context: OnboardingContext) -> list[str]:
        return [dep for dep in self.dependencies if not context.has_completed(dep)]

    def dependencies_met(self, context: OnboardingContext) -> bool:
        return not self.missing_dependencies(context)

    def validate_input(self, data: Any) -> ValidationResult:
        if self.data_schema is None:
            return ValidationResult.success(data)
        return self.data_schema(data)

    def validate_result(self, result: Any) -> ValidationResult:
        if self.result_schema is None:
            return ValidationResult.success(result)
        return self.result_schema(result)

    async def is_already_complete(self, context: OnboardingContext) -> bool:
        if self.check_completion is None:
            return False
        return bool(await maybe_await(self.check_completion(context)))

    async def run(self, data: Any, context: OnboardingContext) -> Any:
        return await maybe_await(self.execute(data, context))

    async def undo(self, result: Any, context: OnboardingContext) -> None:
        if self.rollback is not None:
            await maybe_await(self.rollback(result, context))

    def describe(self) -> dict[str, Any]:
        """Display metadata for catalog listings."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "order": self.order,
            "required": self.required,
            "dependencies": list(self.dependencies),
            "auto_execute": self.auto_execute,
            **{k: v for k, v in self.metadata.items() if not callable(v)},
        }


# ── Outcomes ────────────────────────────────────────────────

@dataclass(frozen=True)
class StepSucceeded(Generic[ResultT]):
    result: ResultT
    success: ClassVar[bool] = True
    skipped: ClassVar[bool] = False


@dataclass(frozen=True)
class StepSkipped:
    """Success variant: the step was already complete, execute() not called."""

    success: ClassVar[bool] = True
    skipped: ClassVar[bool] = True


@dataclass(frozen=True)
class StepFailed:
    error: str
    success: ClassVar[bool] = False
    skipped: ClassVar[bool] = False


StepOutcome = Union[StepSucceeded[Any], StepSkipped, StepFailed]


@dataclass
class RunResult:
    """Outcome of driving every remaining auto-executable step."""

    success: bool
    completed_step_ids: list[str]
    step_results: dict[str, Any]
    error: str | None = None
