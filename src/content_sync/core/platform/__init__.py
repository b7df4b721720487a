"""Remote publishing platform client."""

from .client import (
    PlatformClient,
    PreconditionFailedError,
    RateLimitedError,
    RemoteApiError,
    RemoteContentType,
    TransientRemoteError,
)
from .compatibility import (
    CompatibilityChecker,
    CompatibilityIssue,
    CompatibilityResult,
    IncompatibleContentTypeError,
)

__all__ = [
    "CompatibilityChecker",
    "CompatibilityIssue",
    "CompatibilityResult",
    "IncompatibleContentTypeError",
    "PlatformClient",
    "PreconditionFailedError",
    "RateLimitedError",
    "RemoteApiError",
    "RemoteContentType",
    "TransientRemoteError",
]
