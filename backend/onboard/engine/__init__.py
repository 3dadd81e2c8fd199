"""Onboarding step orchestration engine.

Registry (what runs, in which order) + Executor (run one step safely,
or drive the remaining sequence) over an immutable OnboardingContext.
"""

from onboard.engine.errors import (
    OAuthCallbackRequired,
    StepConfigurationError,
    StepRequestError,
    StepValidationError,
)
from onboard.engine.executor import StepExecutor
from onboard.engine.factory import (
    OAuthProvider,
    OAuthTokens,
    create_api_step,
    create_form_step,
    create_oauth_step,
)
from onboard.engine.registry import StepRegistry
from onboard.engine.types import (
    OnboardingContext,
    OnboardingState,
    ProgressStatus,
    RunResult,
    StepDefinition,
    StepFailed,
    StepOutcome,
    StepSkipped,
    StepStatus,
    StepSucceeded,
    ValidationResult,
    Validator,
    schema_for,
)

__all__ = [
    "OAuthCallbackRequired",
    "OAuthProvider",
    "OAuthTokens",
    "OnboardingContext",
    "OnboardingState",
    "ProgressStatus",
    "RunResult",
    "StepConfigurationError",
    "StepDefinition",
    "StepExecutor",
    "StepFailed",
    "StepOutcome",
    "StepRegistry",
    "StepRequestError",
    "StepSkipped",
    "StepStatus",
    "StepSucceeded",
    "StepValidationError",
    "ValidationResult",
    "Validator",
    "create_api_step",
    "create_form_step",
    "create_oauth_step",
    "schema_for",
]
