from typing import Any


class CopilotException(Exception):
    """Base exception for errors surfaced to API callers."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str = "An error occurred", code: str | None = None, data: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.data = data

    def to_response(self) -> dict[str, Any]:
        return {"status": False, "code": self.code, "message": self.message, "data": self.data}


class NotFoundException(CopilotException):
    """Exception raised when a requested resource is not found or not owned by the caller."""

    status_code = 404
    code = "not_found"

    def __init__(self, message: str = "Resource not found", code: str | None = None, data: dict[str, Any] | None = None):
        super().__init__(message, code, data)


class UnauthorizedException(CopilotException):
    status_code = 401
    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized", code: str | None = None, data: dict[str, Any] | None = None):
        super().__init__(message, code, data)


class ValidationException(CopilotException):
    """Exception raised when a request breaks a validation or business rule."""

    status_code = 400
    code = "invalid_params"

    def __init__(self, message: str = "Validation failed", code: str | None = None, data: dict[str, Any] | None = None):
        super().__init__(message, code, data)


class RateLimitExceededException(CopilotException):
    """Raised when a user has sent too many messages within the rolling window."""

    status_code = 429
    code = "rate_limited"

    def __init__(self, limit: int, period_hours: int, current_count: int):
        message = (
            f"Rate limit exceeded. You have sent {current_count} messages in the last {period_hours} hour(s). "
            f"The limit is {limit} messages per {period_hours} hour(s)."
        )
        super().__init__(message, data={"limit": limit, "period_hours": period_hours, "current_count": current_count})
        self.limit = limit
        self.period_hours = period_hours
        self.current_count = current_count


class UpstreamException(CopilotException):
    """Raised when the model, classifier or summarizer fails."""

    status_code = 502
    code = "upstream_error"

    def __init__(self, message: str = "Upstream model call failed", code: str | None = None, data: dict[str, Any] | None = None):
        super().__init__(message, code, data)


class ErrorCodes:
    INVALID_PARAMS = "invalid_params"
    CONVERSATION_NOT_FOUND = "not_found"
    CONVERSATION_CLOSED = "conversation_closed"
    CONVERSATION_MODE_LOCKED = "conversation_mode_locked"
    CONTEXT_MISMATCH = "context_mismatch"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_ERROR = "upstream_error"
