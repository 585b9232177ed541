"""
Exception taxonomy.

Source errors are recoverable: the orchestrator logs them and moves on to
the next source. Configuration errors fail the operation that needs the
missing collaborator.
"""
from typing import Optional


class ProspectorError(Exception):
    """Base class for all pipeline errors."""


class SourceError(ProspectorError):
    """A data source could not serve a call."""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None):
        self.source = source
        self.status_code = status_code
        super().__init__(f"{source}: {message}")


class RateLimitedError(SourceError):
    """The source's call budget was exhausted past the wait timeout."""

    def __init__(self, source: str, retry_after: float = 0.0):
        self.retry_after = retry_after
        super().__init__(source, f"rate limited (retry in {retry_after:.1f}s)", status_code=429)


class SourceUnavailableError(SourceError):
    """Network failure, auth failure or malformed provider response."""


class ConfigurationError(ProspectorError):
    """A required downstream service is not wired."""


class NotFoundError(ProspectorError):
    def __init__(self, resource: str, identifier):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class InvalidStageTransitionError(ProspectorError):
    pass


class JobCancelledError(ProspectorError):
    """Raised at a checkpoint once cancellation of the running job is observed."""
