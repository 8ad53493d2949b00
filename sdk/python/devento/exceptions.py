"""Devento SDK Exceptions"""

from typing import Any, Dict, Mapping, Optional


class DeventoError(Exception):
    """Base exception for Devento errors"""

    def __init__(
        self,
        message: str,
        status_code: int = None,
        code: str = None,
        response: dict = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.response = response


class AuthenticationError(DeventoError):
    """Missing or rejected API key"""

    def __init__(self, message: str, response: dict = None):
        super().__init__(message, 401, "authentication_error", response)


class APIError(DeventoError):
    """Generic API failure carrying the raw HTTP status"""

    def __init__(
        self,
        status_code: int,
        message: str,
        code: str = "api_error",
        response: dict = None,
    ):
        super().__init__(message, status_code, code, response)


class ResourceNotFoundError(DeventoError):
    """A box, snapshot, command or domain does not exist"""

    def __init__(
        self,
        message: str,
        code: str = "not_found",
        resource_id: str = "",
        response: dict = None,
    ):
        super().__init__(message, 404, code, response)
        self.resource_id = resource_id

    @classmethod
    def for_box(cls, box_id: str) -> "ResourceNotFoundError":
        return cls(f"Box not found: {box_id}", code="box_not_found", resource_id=box_id)


class CommandTimeoutError(DeventoError):
    """A command did not reach a terminal state before the client deadline.

    Attributes:
        command_id: The command identifier, empty if the server never sent one.
        timeout_ms: The configured deadline in milliseconds.
    """

    def __init__(self, command_id: str, timeout_ms: int):
        super().__init__(
            f"Command {command_id} timed out after {timeout_ms}ms",
            408,
            "command_timeout",
        )
        self.command_id = command_id
        self.timeout_ms = timeout_ms


class ResourceTimeoutError(DeventoError):
    """A box did not become ready before the client deadline.

    Attributes:
        resource_id: The box identifier.
        timeout: The deadline in seconds.
    """

    def __init__(self, resource_id: str, timeout: float, resource_type: str = "Box"):
        super().__init__(
            f"{resource_type} {resource_id} failed to become ready within {timeout:g} seconds",
            408,
            "resource_timeout",
        )
        self.resource_id = resource_id
        self.timeout = timeout


class RateLimitError(DeventoError):
    """Rate limit exceeded error"""

    def __init__(self, retry_after: int = 0, response: dict = None):
        super().__init__(
            f"Rate limit exceeded. Retry after {retry_after} seconds",
            429,
            "rate_limit",
            response,
        )
        self.retry_after = retry_after


class ValidationError(DeventoError):
    """The request was rejected because a field is invalid"""

    def __init__(self, field: str, message: str, response: dict = None):
        if field:
            message = f"Validation error on field '{field}': {message}"
        super().__init__(message, 400, "validation_error", response)
        self.field = field


class InsufficientResourceError(DeventoError):
    """The account cannot cover the requested resources"""

    def __init__(
        self,
        required: float,
        available: float,
        message: str = None,
        response: dict = None,
    ):
        if not message:
            message = (
                f"Insufficient credits. Required: {required:.2f}, Available: {available:.2f}"
            )
        super().__init__(message, 402, "insufficient_credits", response)
        self.required = required
        self.available = available


class CancelledError(DeventoError):
    """The caller cancelled a waiting operation"""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message, 499, "cancelled")


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _retry_after(headers: Optional[Mapping[str, str]]) -> int:
    if not headers:
        return 0
    try:
        return int(headers.get("Retry-After", 0))
    except (TypeError, ValueError):
        # HTTP-date form is not supported
        return 0


def parse_error(
    status_code: int,
    body: Dict[str, Any],
    headers: Optional[Mapping[str, str]] = None,
) -> DeventoError:
    """Classify an error response into one of the SDK exception types.

    Args:
        status_code: HTTP status of the response
        body: Decoded error body with ``error``, ``message`` and optional ``code``
        headers: Response headers, used for ``Retry-After``

    Returns:
        The exception to raise
    """
    message = body.get("message") or body.get("error") or "Unknown error"
    code = str(body.get("code") or "")

    if status_code == 401:
        return AuthenticationError(message, response=body)
    if status_code == 402:
        return InsufficientResourceError(
            _to_float(body.get("required")),
            _to_float(body.get("available")),
            message=body.get("message") or body.get("error"),
            response=body,
        )
    if status_code == 404:
        if code.endswith("not_found"):
            return ResourceNotFoundError(
                message, code=code, resource_id=body.get("id", ""), response=body
            )
        return APIError(status_code, message, code=code or "api_error", response=body)
    if status_code == 429:
        return RateLimitError(_retry_after(headers), response=body)
    if status_code == 400:
        if code == "validation_error":
            return ValidationError(body.get("field", ""), message, response=body)
        return APIError(status_code, message, code=code or "api_error", response=body)
    return APIError(status_code, message, code=code or "api_error", response=body)
