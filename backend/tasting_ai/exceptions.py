"""
Tasting AI — Custom Exception Hierarchy
========================================

What:  Application-specific exceptions for the orchestration service.
Why:   Provider adapters must decide per error whether to retry, fail the
       step, or degrade silently. A typed hierarchy makes that decision a
       single `except` clause instead of string matching.
How:   Each exception carries a message and a context dict. Inside the
       pipeline they become tagged ProviderResponse values. At the HTTP
       boundary one handler reads `http_status` / `error_code` off the class.

Exception Hierarchy:
    TastingAIError (base)                  http_status  error_code
    ├── ValidationError                    400          validation_error
    │   └── NoEnabledStepsError            400          validation_error
    ├── NotFoundError                      404          not_found
    ├── ConfigurationError                 step-fatal, never retried
    ├── ProviderError                      transient; retried with linear backoff
    ├── RateLimitExceededError             step-fatal, never retried
    ├── MediaAccessError                   step-fatal, never retried
    └── InvalidStepTransition              bug in step bookkeeping
"""

from typing import Any, ClassVar, Dict, Optional


class TastingAIError(Exception):
    """
    Base exception for all Tasting AI errors.

    Attributes:
        message:  Human-readable description
        context:  Debug info; returned to clients only for 4xx errors
    """

    http_status: ClassVar[int] = 500
    error_code: ClassVar[str] = "server_error"

    def __init__(self, message: str = "An unexpected error occurred", **context: Any):
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.http_status < 500


class ValidationError(TastingAIError):
    """Caller input was rejected."""

    http_status = 400
    error_code = "validation_error"

    def __init__(self, message: str = "Validation failed", field: Optional[str] = None, **context: Any):
        super().__init__(message, field=field, **context)
        self.field = field


class NoEnabledStepsError(ValidationError):
    """
    Raised by the orchestrator when the options disable every step.

    This is the only error a pipeline run raises to its caller; every other
    failure is reported inside the returned session.
    """

    def __init__(self, **context: Any):
        super().__init__("At least one processing step must be enabled", field="options", **context)


class NotFoundError(TastingAIError):
    """
    When:    GET /api/pipeline/sessions/{id} for an unknown or expired session.
    """

    http_status = 404
    error_code = "not_found"

    def __init__(self, resource: str = "Resource", resource_id: Optional[str] = None):
        message = f"{resource} '{resource_id}' was not found" if resource_id else f"{resource} was not found"
        super().__init__(message, resource=resource, resource_id=resource_id)


class ConfigurationError(TastingAIError):
    """
    Raised when a provider cannot be called because it is not configured.

    When:    Missing API key, rejected credentials, unknown model name.
    Retry:   Never. Retrying a missing credential only burns backoff time.
    """


class ProviderError(TastingAIError):
    """
    Raised when a remote AI call fails in a way that may succeed on retry.

    When:    Network error, timeout, 5xx from the provider, malformed JSON.
    Retry:   Yes, up to the adapter's max_retries with linear backoff.
    """

    def __init__(self, message: str = "AI provider call failed", provider: Optional[str] = None, **context: Any):
        super().__init__(message, provider=provider, **context)
        self.provider = provider


class RateLimitExceededError(TastingAIError):
    """
    Raised when the provider itself reports its quota as exhausted.

    Retry:   No; the adapter reports the step as rate_limited.
    """

    def __init__(self, provider: str = "provider", retry_after: int = 60, **context: Any):
        super().__init__(
            f"Rate limit exceeded for {provider}; retry in {retry_after}s",
            provider=provider,
            retry_after=retry_after,
            **context,
        )
        self.provider = provider
        self.retry_after = retry_after


class MediaAccessError(TastingAIError):
    """File missing, unsupported extension, too large, or outside the media root."""

    def __init__(
        self, message: str = "Media could not be loaded", reference: Optional[str] = None, **context: Any
    ):
        super().__init__(message, reference=reference, **context)
        self.reference = reference


class InvalidStepTransition(TastingAIError):
    def __init__(self, step_id: str, current: str, target: str):
        super().__init__(
            f"Step '{step_id}' cannot move from {current} to {target}",
            step_id=step_id,
            current=current,
            target=target,
        )
