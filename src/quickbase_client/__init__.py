from .adapters import (
    AiohttpTransport,
    HttpxTransport,
    RequestsTransport,
    TransportResponse,
    coerce_transport,
)
from .auth import (
    AuthContext,
    AuthStrategy,
    SsoTokenStrategy,
    TempTokenStrategy,
    UserTokenStrategy,
    create_auth_strategy,
)
from .client import QuickbaseClient, create_client
from .config import resolve_config
from .dates import transform_dates
from .env import load_config_from_env
from .errors import (
    AuthenticationError,
    AuthorizationError,
    ConfigError,
    NetworkError,
    NotFoundError,
    QuickbaseError,
    RateLimitError,
    ReadOnlyError,
    RequestTimeoutError,
    SchemaError,
    ServerError,
    TicketExpiredError,
    ValidationError,
    is_retryable_error,
)
from .executor import RequestExecutor
from .operations import OPERATIONS, Operation, build_request
from .pagination import PaginatedRequest
from .readonly import check_xml_action, is_read_only_blocked, is_xml_write_action
from .retry import calculate_backoff, parse_retry_after
from .schema import SchemaResolver
from .secret import Secret
from .throttle import NoOpThrottle, SlidingWindowThrottle, coerce_throttle
from .ticket import InMemoryTicketStore, TicketStrategy
from .token_cache import TokenCache
from .types import (
    QuickbaseConfig,
    RateLimitInfo,
    ResolvedConfig,
    RetryConfig,
    SsoAuth,
    TempTokenAuth,
    ThrottleConfig,
    TicketAuth,
    UserTokenAuth,
)

__all__ = [
    "QuickbaseClient",
    "create_client",
    "QuickbaseConfig",
    "ResolvedConfig",
    "RetryConfig",
    "ThrottleConfig",
    "UserTokenAuth",
    "TempTokenAuth",
    "SsoAuth",
    "TicketAuth",
    "RateLimitInfo",
    "Secret",
    "resolve_config",
    "load_config_from_env",
    "AuthContext",
    "AuthStrategy",
    "UserTokenStrategy",
    "TempTokenStrategy",
    "SsoTokenStrategy",
    "TicketStrategy",
    "InMemoryTicketStore",
    "create_auth_strategy",
    "TokenCache",
    "SchemaResolver",
    "RequestExecutor",
    "PaginatedRequest",
    "Operation",
    "OPERATIONS",
    "build_request",
    "SlidingWindowThrottle",
    "NoOpThrottle",
    "coerce_throttle",
    "HttpxTransport",
    "AiohttpTransport",
    "RequestsTransport",
    "TransportResponse",
    "coerce_transport",
    "calculate_backoff",
    "parse_retry_after",
    "transform_dates",
    "is_read_only_blocked",
    "is_xml_write_action",
    "check_xml_action",
    "QuickbaseError",
    "ConfigError",
    "ValidationError",
    "AuthenticationError",
    "TicketExpiredError",
    "AuthorizationError",
    "NotFoundError",
    "RateLimitError",
    "ServerError",
    "RequestTimeoutError",
    "NetworkError",
    "ReadOnlyError",
    "SchemaError",
    "is_retryable_error",
]
