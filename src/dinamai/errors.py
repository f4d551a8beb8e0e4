"""
Error taxonomy shared by every handler.

Each error knows the HTTP status and the machine-readable code it maps to, so
handlers can convert any of them into a structured JSON response. Quota-related
errors carry the caller's remaining balance when it is known.
"""

from typing import Any, Dict, Optional


class DinamaiError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        remaining: Optional[int] = None,
        details: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.remaining = remaining
        self.details = details

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.remaining is not None:
            body["remaining"] = self.remaining
        if self.details:
            body["details"] = self.details
        return body


class ValidationFailed(DinamaiError):
    status_code = 400
    code = "validation_failed"


class AuthenticationFailed(DinamaiError):
    status_code = 401
    code = "authentication_failed"


class QuotaExceeded(DinamaiError):
    status_code = 403
    code = "quota_exceeded"

    def __init__(self, remaining: int = 0, message: str = "Quota exceeded. Please buy more messages."):
        super().__init__(message, remaining=remaining)


class MethodNotAllowed(DinamaiError):
    status_code = 405
    code = "method_not_allowed"

    def __init__(self, message: str = "Method Not Allowed"):
        super().__init__(message)


class SignatureInvalid(DinamaiError):
    status_code = 400
    code = "signature_invalid"


class UpstreamCallFailed(DinamaiError):
    """
    A third-party call (Gemini, Supabase, Stripe) failed.

    `retryable` marks failures worth another attempt: rate limiting, server
    errors, timeouts and dropped connections.
    """

    status_code = 502
    code = "upstream_call_failed"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
        remaining: Optional[int] = None,
        details: Optional[str] = None,
    ):
        super().__init__(message, status_code=status_code, remaining=remaining, details=details)
        self.retryable = retryable


class PersistenceFailed(DinamaiError):
    status_code = 500
    code = "persistence_failed"


class ConfigurationError(DinamaiError):
    status_code = 500
    code = "server_misconfigured"
