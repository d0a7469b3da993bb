"""
Error taxonomy for the matrix profile API.

Every failure a client can observe is one of these classes. Each carries the
HTTP status it maps to and whether it signals an absent/expired artifact, so
the transport layer can render the fixed ``{error, cache_expired}`` envelope.
"""
from typing import Any, Dict, Optional


class MPServerError(Exception):
    """Base error class for all request failures."""

    status_code: int = 500
    cache_expired: bool = False

    def __init__(
        self,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        """
        Initialize error with structured context.

        Args:
            message: Human-readable error message
            data: Structured data for logging
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.data = data or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to the response envelope."""
        return {
            "error": self.message,
            "cache_expired": self.cache_expired,
        }


class InvalidParameter(MPServerError):
    """Bad or missing request input. The client must fix the request."""

    status_code = 400


class CacheExpired(MPServerError):
    """No artifact is cached for the session. The client should recompute."""

    status_code = 410
    cache_expired = True


class ComputationFailed(MPServerError):
    """The profile engine rejected the inputs."""

    status_code = 422


class CacheWriteRejected(MPServerError):
    """The artifact exceeds the configured maximum serialized size."""

    status_code = 413


class Timeout(MPServerError):
    """A bounded operation exceeded the request deadline."""

    status_code = 504


class StoreUnavailable(MPServerError):
    """The artifact store could not be reached."""

    status_code = 503


class SeriesUnavailable(MPServerError):
    """The time series could not be loaded."""

    status_code = 500
