"""Core exceptions for the gateway."""

from typing import Any, Optional


class GatewayError(Exception):
    """Base exception for gateway errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(GatewayError):
    """Raised when there's an issue with the configuration."""
    pass


class ModelNotFoundError(GatewayError):
    """Raised when a model alias has no Gemini mapping for the active auth mode."""
    pass


class AuthError(GatewayError):
    """Raised when a credential cannot be acquired or refreshed."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class UnsupportedRoleError(GatewayError):
    """Raised for a message role Gemini has no equivalent for."""

    def __init__(self, role: Any) -> None:
        super().__init__(f"Unsupported message role: {role!r}")
        self.role = role


class UnsupportedContentError(GatewayError):
    """Raised for a content block that cannot be expressed as a Gemini part."""
    pass


class DanglingToolResultError(GatewayError):
    """Raised when a tool_result references no earlier tool_use block."""

    def __init__(self, tool_use_id: str) -> None:
        super().__init__(
            f"tool_result references unknown tool_use id '{tool_use_id}'"
        )
        self.tool_use_id = tool_use_id


class MalformedResponseError(GatewayError):
    """Raised when a successful upstream response does not have the expected shape."""
    pass


# =============================================================================
# Upstream HTTP errors
# =============================================================================


class UpstreamAPIError(GatewayError):
    """A non-2xx Gemini response, mapped into the Anthropic error taxonomy.

    Attributes:
        status_code: HTTP status returned by Gemini.
        upstream_status: Canonical status string from the error body
            (e.g. "RESOURCE_EXHAUSTED"), if present.
        error_type: Anthropic error ``type`` value.
    """

    error_type = "api_error"

    def __init__(
        self,
        message: str,
        status_code: int,
        upstream_status: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.upstream_status = upstream_status

    def to_payload(self) -> dict[str, Any]:
        """Render the Anthropic error envelope."""
        return {
            "type": "error",
            "error": {"type": self.error_type, "message": self.message},
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(status_code={self.status_code}, "
            f"upstream_status={self.upstream_status!r}, message={self.message!r})"
        )


class AuthenticationError(UpstreamAPIError):
    error_type = "authentication_error"


class PermissionDeniedError(UpstreamAPIError):
    error_type = "permission_error"


class RateLimitError(UpstreamAPIError):
    error_type = "rate_limit_error"


class InvalidRequestError(UpstreamAPIError):
    error_type = "invalid_request_error"


class UpstreamError(UpstreamAPIError):
    error_type = "api_error"


class UnknownError(UpstreamAPIError):
    error_type = "api_error"
