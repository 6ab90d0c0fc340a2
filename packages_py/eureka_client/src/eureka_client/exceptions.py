"""
Exception hierarchy for eureka_client
"""
from typing import Optional


class EurekaError(Exception):
    """Base class for all eureka_client errors."""
    pass


class ConfigurationError(EurekaError):
    """Raised synchronously when required configuration is missing or invalid."""
    pass


class TransportError(EurekaError):
    """Network-level failure of a registry call. Retryable."""
    pass


class ProtocolError(EurekaError):
    """Unexpected status code from the registry. Carries the status and body."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body


class ResolutionError(EurekaError):
    """No registry server candidate could be resolved."""
    pass


class MiddlewareError(EurekaError):
    """Request middleware produced something other than request options. Never retried."""
    pass


class ParseError(EurekaError):
    """Malformed registry payload."""
    pass


class LifecycleError(EurekaError):
    """Operation not allowed in the current lease state."""
    pass
