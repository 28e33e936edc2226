"""Exceptions raised by provider adapters and the wizard.

Adapters raise; the fallback chain catches, logs and substitutes the next
strategy. Only `VideoCompositionError` and `WizardStepError` are expected to
reach callers.
"""

from __future__ import annotations


class AnimatoError(Exception):
    """Base class for all Animato errors."""


class ProviderError(AnimatoError):
    """A provider rejected a request or returned something unusable."""

    def __init__(self, message: str, provider: str = "", status_code: int | None = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class ProviderUnavailable(ProviderError):
    """No credentials, or the availability probe failed."""


class ProviderJobFailed(ProviderError):
    """An asynchronous job reached a terminal failure state."""


class ProviderTimeout(ProviderError):
    """Polling ran out of attempts before the job finished."""


class AllProvidersFailed(AnimatoError):
    """Every provider in a fallback chain was skipped or failed."""

    def __init__(self, message: str, errors: dict[str, str] | None = None):
        self.errors = dict(errors or {})
        super().__init__(message)


class VideoCompositionError(AnimatoError):
    """Video creation failed even after every fallback strategy."""


class WizardStepError(AnimatoError):
    """A wizard step was requested before its prerequisites completed."""
