"""Custom exception hierarchy for anistream-hub.

Provider failures are absorbed inside the adapter boundary and never reach
callers; the exceptions here cover invalid requests, configuration problems
and internal signals that are logged and converted to empty results.
"""


class AniStreamError(Exception):
    """Base exception for all anistream-hub errors."""

    pass


class InvalidRequestError(AniStreamError, ValueError):
    """Raised when request parameters are malformed (empty query, page < 1)."""

    pass


class SourceNotFoundError(InvalidRequestError):
    """Raised when an explicitly requested source is not registered."""

    pass


class UpstreamError(AniStreamError):
    """Base for upstream failures that are logged and treated as empty."""

    pass


class UpstreamTimeoutError(UpstreamError):
    """Raised when an adapter call exceeds its time budget."""

    pass


class UpstreamUnavailableError(UpstreamError):
    """Raised when an upstream answers with an unusable payload."""

    pass


class ConfigError(AniStreamError):
    """Raised when configuration is invalid or missing."""

    pass
