"""
Error taxonomy for the guest gateway.

Every error knows its HTTP status and a stable `code` so the route boundary
can turn it into a structured JSON body. Nothing raised here should ever
reach the client as an unstructured 500.
"""
from typing import Any, Dict, Optional

UPGRADE_MESSAGE = "Please update your extension to the latest version."
DAILY_LIMIT_MESSAGE = (
    "You have used all your free Guest Mode messages today. "
    "Get your own free API key at console.groq.com for unlimited use!"
)
DEVICE_LIMIT_MESSAGE = (
    "This device has reached its daily limit. "
    "Get your own free API key at console.groq.com for unlimited use!"
)


class GatewayError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"
    error = "Internal error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.error)
        self.message = message

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "code": self.code}
        if self.message:
            body["message"] = self.message
        return body


class ClientError(GatewayError):
    """Malformed or missing identity metadata. The user has to act (update)."""
    status_code = 400


class MissingIdentification(ClientError):
    code = "MISSING_ID"
    error = "Missing client identification"

    def __init__(self):
        super().__init__(UPGRADE_MESSAGE)


class InvalidMetadata(ClientError):
    code = "INVALID_META"
    error = "Invalid client metadata"


class InvalidJSON(ClientError):
    code = "INVALID_JSON"
    error = "Invalid JSON"


class QuotaExceeded(GatewayError):
    """Daily cap hit. Retryable only after the UTC date rolls over."""
    status_code = 429

    def __init__(self, usage: int, limit: int, message: Optional[str] = None):
        super().__init__(message)
        self.usage = usage
        self.limit = limit

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        body["usage"] = self.usage
        body["limit"] = self.limit
        return body


class DeviceLimitExceeded(QuotaExceeded):
    code = "DEVICE_LIMIT_EXCEEDED"
    error = "Device limit reached"

    def __init__(self, usage: int, limit: int):
        super().__init__(usage, limit, DEVICE_LIMIT_MESSAGE)


class DailyLimitExceeded(QuotaExceeded):
    code = "LIMIT_EXCEEDED"
    error = "Daily limit reached"

    def __init__(self, usage: int, limit: int):
        super().__init__(usage, limit, DAILY_LIMIT_MESSAGE)


class VelocityLimitExceeded(GatewayError):
    status_code = 429
    code = "VELOCITY_BAN"
    error = "Too many requests"

    def __init__(self, window_seconds: int):
        super().__init__(f"Too many requests. Please slow down and try again in {window_seconds} seconds.")
        self.window_seconds = window_seconds


class IdentityBanned(GatewayError):
    status_code = 403
    code = "BANNED"
    error = "Access denied"

    def __init__(self):
        super().__init__("Access denied. Please contact support.")


class ConfigurationError(GatewayError):
    """Store or upstream credential unavailable. Fail closed; an operator must act."""
    status_code = 500
    code = "CONFIG_ERROR"
    error = "Server configuration error"

    def __init__(self, reason: Optional[str] = None):
        # The reason is for logs only; callers get the generic error
        super().__init__(None)
        self.reason = reason


class UpstreamError(GatewayError):
    """The upstream could not be reached or did not answer in time."""
    status_code = 502
    code = "UPSTREAM_UNAVAILABLE"
    error = "Upstream unavailable"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code


class InternalError(GatewayError):
    """Catch-all wrapper; the body's `error` is the original exception message."""

    def __init__(self, exc: BaseException):
        super().__init__(None)
        self.error = str(exc) or "Internal error"
