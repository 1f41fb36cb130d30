"""Shared exceptions for the pipeline.

This module contains exception classes used across clients, services and
routes so that no service needs to import another service just to catch
its errors.

Taxonomy:
    ProviderError: anything raised by the external generation provider client
        - ProviderValidationError: rejected locally before any network call
        - ProviderAuthError: HTTP 401, credentials are wrong (never retried)
        - ProviderRequestError: HTTP 400, request rejected (never retried)
        - TransientProviderError: network, timeout or other HTTP failures
    PipelineError: job-level failures surfaced by services
        - JobNotFoundError, JobValidationError, JobAlreadyRunningError
        - CompositionError: download, concat, mux or publish failed
"""

from typing import Any


class ConfigurationError(Exception):
    """Raised when required configuration is missing.

    For example RUNWARE_API_KEY is unset when the pipeline is built, or
    STORAGE_BACKEND names an unknown backend.
    """

    pass


class InvalidStateTransitionError(Exception):
    """Raised when a Job or Scene status change is not allowed.

    Attributes:
        from_status: The status before the attempted transition.
        to_status: The status that was attempted.
    """

    def __init__(self, message: str, from_status: Any, to_status: Any):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(message)

    def __str__(self) -> str:
        base_message = super().__str__()
        return f"{base_message} (from={self.from_status.value}, to={self.to_status.value})"


class ProviderError(Exception):
    """Base class for errors raised by the generation provider client."""

    transient: bool = False


class ProviderValidationError(ProviderError):
    """Request parameters are outside provider limits (duration, prompt, resolution)."""


class ProviderAuthError(ProviderError):
    """Provider rejected the credentials (HTTP 401)."""


class ProviderRequestError(ProviderError):
    """Provider rejected the request as invalid (HTTP 400).

    Attributes:
        status_code: HTTP status code returned by the provider.
    """

    def __init__(self, message: str, status_code: int = 400):
        self.status_code = status_code
        super().__init__(message)


class TransientProviderError(ProviderError):
    """Network failure, timeout or unexpected HTTP status from the provider."""

    transient = True


class PipelineError(Exception):
    """Base class for job-level pipeline errors."""


class JobNotFoundError(PipelineError):
    def __init__(self, job_id: Any):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class JobValidationError(PipelineError):
    """Job cannot be generated as requested (no scenes, bad indices, unknown resolution)."""


class JobAlreadyRunningError(PipelineError):
    """A generation for this job is already in flight."""

    def __init__(self, job_id: Any):
        self.job_id = job_id
        super().__init__(f"Generation already running for job {job_id}")


class CompositionError(PipelineError):
    """Raised when a fatal compositing step fails.

    Attributes:
        step: Compositor step that failed (download, concatenate, mux, publish).
    """

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"{step} failed: {message}")


def classify_error(error: Exception) -> tuple[bool, str]:
    """Classify an exception as transient or permanent.

    Returns:
        Tuple of (is_transient, error_type) where error_type is the class name.
    """
    error_type = type(error).__name__
    if isinstance(error, ProviderError):
        return error.transient, error_type
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True, error_type
    return False, error_type
