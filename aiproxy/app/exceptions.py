"""Custom exceptions for the proxy application."""

from typing import Any, Dict


class ProxyException(Exception):
    """Base class for proxy exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    The message is what the caller sees; internal details belong in logs.
    """
    status_code: int = 500

    def __init__(self, message: str = "Internal server error"):
        self.message = message
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        return {"error": self.message}


class ClientError(ProxyException):
    """Raised for malformed input the caller can correct.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400


class RateLimitExceededError(ProxyException):
    """Raised when a client has used up a rate limit tier.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(self, tier: str, limit: int, retry_after: int):
        self.tier = tier
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(
            f"Rate limit exceeded. Maximum {limit} requests per {tier}."
        )

    def to_response(self) -> Dict[str, Any]:
        return {"error": self.message, "retryAfter": self.retry_after}


class UpstreamError(ProxyException):
    """Raised when the inference service fails or returns an error payload.

    Maps to HTTP 502 Bad Gateway. ``detail`` is for logs only.
    """
    status_code = 502

    def __init__(self, detail: str | None = None):
        self.detail = detail
        super().__init__("AI service error")


class ConfigurationError(ProxyException):
    """Raised when the inference service is not configured.

    Maps to HTTP 500 Internal Server Error.
    """
    status_code = 500

    def __init__(self, message: str = "AI service not configured"):
        super().__init__(message)


class InternalError(ProxyException):
    """Catch-all for unexpected failures.

    Maps to HTTP 500 Internal Server Error.
    """
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
