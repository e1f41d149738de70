import json
from typing import Any, Union

from .types import RateLimitInfo


class ConfigError(ValueError):
    """Invalid client configuration."""


class QuickbaseError(Exception):
    """Base class for all errors raised by the client."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        description: Union[str, None] = None,
        ray_id: Union[str, None] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.description = description
        self.ray_id = ray_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "status_code": self.status_code,
            "description": self.description,
            "ray_id": self.ray_id,
        }


class ValidationError(QuickbaseError):
    def __init__(self, message, description=None, ray_id=None, errors=None):
        super().__init__(message, 400, description, ray_id)
        self.errors = errors

    def to_dict(self):
        return {**super().to_dict(), "errors": self.errors}


class AuthenticationError(QuickbaseError):
    def __init__(self, message: str, ray_id: Union[str, None] = None):
        super().__init__(message, 401, ray_id=ray_id)


class TicketExpiredError(AuthenticationError):
    def __init__(self, message: str = "Ticket expired; create a new client with fresh credentials"):
        super().__init__(message)


class AuthorizationError(QuickbaseError):
    def __init__(self, message: str, ray_id: Union[str, None] = None):
        super().__init__(message, 403, ray_id=ray_id)


class NotFoundError(QuickbaseError):
    def __init__(self, message: str, ray_id: Union[str, None] = None):
        super().__init__(message, 404, ray_id=ray_id)


class RateLimitError(QuickbaseError):
    def __init__(self, info: RateLimitInfo, message: Union[str, None] = None):
        retry = "unknown" if info.retry_after is None else f"{info.retry_after:g}"
        super().__init__(
            message or f"Rate limited. Retry after {retry} seconds",
            429,
            ray_id=info.ray_id,
        )
        self.retry_after = info.retry_after
        self.rate_limit_info = info

    def to_dict(self):
        return {**super().to_dict(), "retry_after": self.retry_after}


class ServerError(QuickbaseError):
    pass


class RequestTimeoutError(QuickbaseError):
    def __init__(self, timeout: float):
        super().__init__(f"Request timed out after {timeout:g}s", 0)
        self.timeout = timeout

    def to_dict(self):
        return {**super().to_dict(), "timeout": self.timeout}


class NetworkError(QuickbaseError):
    def __init__(self, message: str, cause: Union[BaseException, None] = None):
        super().__init__(message, 0)
        self.__cause__ = cause


class ReadOnlyError(QuickbaseError):
    def __init__(self, method: str, path: str, action: Union[str, None] = None):
        target = f"XML action: {action}" if action else f"{method} {path}"
        super().__init__(f"Read-only mode: write operation blocked ({target})", 0)
        self.method = method
        self.path = path
        self.action = action

    def to_dict(self):
        return {**super().to_dict(), "method": self.method, "path": self.path, "action": self.action}


class SchemaError(QuickbaseError):
    def __init__(self, message: str, suggestion: Union[str, None] = None):
        super().__init__(message, 0)
        self.suggestion = suggestion


def parse_error_response(response, request_url: str) -> QuickbaseError:
    """Map a non-2xx response onto the error taxonomy."""
    ray_id = response.header("qb-api-ray") or response.header("cf-ray")
    body = None
    try:
        body = json.loads(response.content) if response.content else None
    except ValueError:
        body = None
    if not isinstance(body, dict):
        body = {}

    message = body.get("message") or response.reason or f"HTTP {response.status} from {request_url}"
    description = body.get("description")
    status = response.status

    if status == 400:  # noqa: PLR2004, http status code can be constant
        return ValidationError(message, description, ray_id, body.get("errors"))
    if status == 401:  # noqa: PLR2004, http status code can be constant
        return AuthenticationError(message, ray_id)
    if status == 403:  # noqa: PLR2004, http status code can be constant
        return AuthorizationError(message, ray_id)
    if status == 404:  # noqa: PLR2004, http status code can be constant
        return NotFoundError(message, ray_id)
    if status >= 500:  # noqa: PLR2004, http status code can be constant
        return ServerError(message, status, description, ray_id)
    return QuickbaseError(message, status, description, ray_id)


def is_retryable_error(error: BaseException) -> bool:
    return isinstance(error, (RateLimitError, ServerError, RequestTimeoutError, NetworkError))
