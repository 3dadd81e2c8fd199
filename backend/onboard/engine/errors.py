"""Exceptions raised by the onboarding engine.

Only StepConfigurationError escapes the engine: it is raised while the
registry is being built and is meant to abort startup. The others are
raised inside step bodies and are caught by the executor, which turns
them into StepFailed outcomes.
"""


class StepConfigurationError(Exception):
    """A step definition is malformed, duplicated, or references an unknown step."""


class StepValidationError(ValueError):
    """Step input or output did not satisfy its schema."""

    def __init__(self, errors: list[str] | tuple[str, ...]):
        self.errors = list(errors)
        super().__init__(f"Validation failed: {', '.join(self.errors)}")


class OAuthCallbackRequired(RuntimeError):
    """An OAuth step was invoked directly instead of via its callback."""

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(
            f'OAuth step "{step_id}" should be completed via OAuth callback. '
            "The client should initiate the OAuth flow and report completion "
            "once the callback has been processed."
        )


class StepRequestError(RuntimeError):
    """An outbound call made by an API step returned a non-2xx response."""

    def __init__(self, message: str, status_code: int):
        self.status_code = status_code
        super().__init__(message)
