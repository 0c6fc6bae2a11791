"""
Error taxonomy for cropadvisor.

Provider failures are classified so the acquisition gateway can decide
whether to retry the same provider, move on to the next one, or stop:

- TransientProviderError: network trouble, timeouts, 429 and 5xx. Retryable.
- UnsupportedOperationError: the adapter cannot serve the request at all
  (e.g. historical data on a free tier). Never retried, next provider is tried.
- ProviderResponseError: the provider answered but the payload is unusable
  (malformed JSON, schema mismatch, 401/403/404) or the adapter failed in an
  unexpected way. Not retried, next provider.

DataIntegrityError is the only rule-engine error that reaches callers.
AdvisoryServiceError is always absorbed by the rule engine.
"""
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError


class CropAdvisorError(Exception):
    """Base class for all cropadvisor errors."""
    pass


class ConfigurationError(CropAdvisorError):
    """Raised when settings are invalid or incomplete."""
    pass


class ProviderError(CropAdvisorError):
    """
    Base exception for weather provider failures.

    Carries structured context so the gateway can keep a diagnostic trail
    of every attempt even though callers only see data or absence.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        provider: str,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.provider = provider
        self.operation = operation
        self.status_code = status_code
        self.url = url
        self.context = context or {}
        self.original_error = original_error

        parts = [f"[{provider}] {message}"]
        if operation:
            parts.append(f"(operation: {operation})")
        if status_code:
            parts.append(f"(HTTP {status_code})")

        super().__init__(" ".join(parts))

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for diagnostics."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "provider": self.provider,
            "operation": self.operation,
            "status_code": self.status_code,
            "url": self.url,
            "retryable": self.retryable,
            "context": self.context,
            "original_error": str(self.original_error) if self.original_error else None
        }


class TransientProviderError(ProviderError):
    """Network failure, timeout, rate limit or upstream 5xx."""
    retryable = True


class UnsupportedOperationError(ProviderError):
    """The adapter cannot perform this operation (plan tier, missing endpoint)."""
    pass


class ProviderResponseError(ProviderError):
    """
    The provider responded but the response cannot be used.

    Common causes:
    - Invalid API key (401) or exhausted quota (403)
    - Unknown location (404)
    - Payload that does not match the expected schema
    """

    def __init__(
        self,
        message: str,
        provider: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None,
        **kwargs
    ):
        super().__init__(message, provider, **kwargs)
        self.validation_errors = validation_errors or []
        if validation_errors:
            self.context["validation_errors"] = validation_errors


class ObservationValidationError(CropAdvisorError):
    """
    Describes an observation value outside its plausible range.

    Instances are reported by the validator, not raised, so ingestion
    continues with sanitized data.
    """

    def __init__(self, field: str, value: float, lower: float, upper: float, farm_id: Any = None, date: Any = None):
        self.field = field
        self.value = value
        self.lower = lower
        self.upper = upper
        self.farm_id = farm_id
        self.date = date
        super().__init__(
            f"{field}={value} outside [{lower}, {upper}] for farm {farm_id} on {date}"
        )


class DataIntegrityError(CropAdvisorError):
    """
    A soil or weather value matched no classification band.

    Signals a gap in the configured bands (or a corrupt sample), as opposed
    to the normal outcome where no rule fires.
    """

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[float] = None):
        self.field = field
        self.value = value
        super().__init__(message)


class AdvisoryServiceError(CropAdvisorError):
    """The remote advisory call failed; the rule engine falls back locally."""
    pass


class DuplicateObservationError(CropAdvisorError):
    """An observation for the same (farm, date) already exists."""
    pass


RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


def classify_provider_error(
    error: Exception,
    provider: str,
    operation: Optional[str] = None,
    url: Optional[str] = None
) -> ProviderError:
    """
    Map a low-level exception onto the provider error taxonomy.

    Example:
        try:
            response = client.get(url, params=params)
            response.raise_for_status()
        except Exception as e:
            raise classify_provider_error(e, "weatherapi", "current", url)
    """
    if isinstance(error, ProviderError):
        return error

    if isinstance(error, httpx.TimeoutException):
        return TransientProviderError(
            f"Request timed out: {error}",
            provider=provider,
            operation=operation,
            url=url,
            original_error=error
        )

    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        if status_code in RETRYABLE_STATUS_CODES:
            return TransientProviderError(
                f"Upstream error: {error}",
                provider=provider,
                operation=operation,
                status_code=status_code,
                url=url,
                original_error=error
            )
        return ProviderResponseError(
            f"Request rejected: {error}",
            provider=provider,
            operation=operation,
            status_code=status_code,
            url=url,
            original_error=error
        )

    if isinstance(error, httpx.TransportError):
        return TransientProviderError(
            f"Network error: {error}",
            provider=provider,
            operation=operation,
            url=url,
            original_error=error
        )

    if isinstance(error, ValidationError):
        return ProviderResponseError(
            "Payload does not match expected schema",
            provider=provider,
            operation=operation,
            url=url,
            validation_errors=error.errors(include_url=False),
            original_error=error
        )

    if isinstance(error, ValueError):
        # json.JSONDecodeError is a ValueError
        return ProviderResponseError(
            f"Unparseable response: {error}",
            provider=provider,
            operation=operation,
            url=url,
            original_error=error
        )

    # Non-httpx exceptions are adapter bugs, never retried
    return ProviderResponseError(
        f"Unexpected error: {error.__class__.__name__}: {error}",
        provider=provider,
        operation=operation,
        url=url,
        original_error=error
    )
