"""
Error taxonomy for slotflow.

- ConfigurationError: misuse of the tag API or invalid configuration.
  Logged by the tag; the offending call is a no-op.
- InitializationFailure: a required third-party dependency never became
  ready. Cached permanently on the pipeline that observed it.
- StepFailure: a pipeline step raised. Short-circuits the remaining phases
  of that run only.
- LocationValidationError: a single page app call violated the location
  rules. Fails only that call's future.
"""
from __future__ import annotations


class SlotflowError(Exception):
    """Base class for all slotflow errors."""

    pass


class ConfigurationError(SlotflowError):
    """Raised when the tag is configured twice or the configuration is invalid."""

    pass


class InitializationFailure(SlotflowError):
    """
    Raised when an Init step cannot complete.

    The failure is memoized by the pipeline and replayed to every later
    ``run()``: a torn third-party script load does not heal itself.
    """

    def __init__(self, step_name: str, message: str):
        self.step_name = step_name
        super().__init__(f"[{step_name}] {message}")


class StepFailure(SlotflowError):
    """Raised when a pipeline step fails."""

    def __init__(self, phase: str, step_name: str, cause: BaseException):
        self.phase = phase
        self.step_name = step_name
        self.cause = cause
        super().__init__(f"{phase} step '{step_name}' failed: {cause}")


class LocationValidationError(SlotflowError):
    """Raised when ``request_ads()`` is called again without a page navigation."""

    def __init__(self, validate_location: str, href: str):
        self.validate_location = validate_location
        self.href = href
        super().__init__(
            "You are trying to refresh ads on the same page, which is not allowed. "
            f"Using {validate_location} for validation (href={href})."
        )


class RefreshNotAllowedError(SlotflowError):
    """Raised when a refresh is requested in a state that forbids it."""

    def __init__(self, state: str):
        self.state = state
        super().__init__(f"refresh is not allowed in state {state}")


class EventSourceError(SlotflowError):
    """Raised when an event source cannot be attached to its scope."""

    pass


class FrozenRuntimeConfigError(SlotflowError):
    """Raised when a runtime config is mutated after being handed to a pipeline run."""

    pass
