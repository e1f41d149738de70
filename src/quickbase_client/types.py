from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal

from .secret import Secret

if TYPE_CHECKING:
    from .schema import SchemaResolver

DEFAULT_BASE_URL = "https://api.quickbase.com/v1"
DEFAULT_TIMEOUT = 30.0
# QuickBase temp tokens expire after 5 minutes; refresh a little earlier.
DEFAULT_TOKEN_LIFESPAN = 290.0

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    # seconds
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0


@dataclass(frozen=True)
class ThrottleConfig:
    # QuickBase allows 100 requests per 10 seconds per user token
    requests_per_window: int = 100
    window: float = 10.0


# ---------- auth descriptors ----------


@dataclass(frozen=True)
class UserTokenAuth:
    user_token: str = field(repr=False)
    type: Literal["user-token"] = field(default="user-token", init=False)


@dataclass(frozen=True)
class TempTokenAuth:
    # Optional: without it the ambient session cookies authenticate the fetch
    user_token: str | None = field(default=None, repr=False)
    app_token: str | None = field(default=None, repr=False)
    token_lifespan: float = DEFAULT_TOKEN_LIFESPAN
    cookies: Mapping[str, str] | None = field(default=None, repr=False)
    type: Literal["temp-token"] = field(default="temp-token", init=False)


@dataclass(frozen=True)
class SsoAuth:
    saml_token: str = field(repr=False)
    token_lifespan: float = DEFAULT_TOKEN_LIFESPAN
    type: Literal["sso"] = field(default="sso", init=False)


@dataclass(frozen=True)
class TicketAuth:
    username: str
    password: Secret = field(repr=False)
    hours: int = 12
    store: Any = field(default=None, repr=False)
    on_expired: Callable[[], None] | None = field(default=None, repr=False)
    type: Literal["ticket"] = field(default="ticket", init=False)

    def __post_init__(self):
        if not isinstance(self.password, Secret):
            object.__setattr__(self, "password", Secret(self.password))


AuthDescriptor = UserTokenAuth | TempTokenAuth | SsoAuth | TicketAuth


# ---------- runtime records ----------


@dataclass(frozen=True)
class RateLimitInfo:
    request_url: str
    http_status: int
    attempt: int
    retry_after: float | None = None
    cf_ray: str | None = None
    tid: str | None = None
    qb_api_ray: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ray_id(self) -> str | None:
        return self.qb_api_ray or self.cf_ray


@dataclass(frozen=True)
class RequestContext:
    """Per-call record threaded through the retry loop; replaced, never mutated."""

    method_name: str
    attempt: int
    max_attempts: int
    dbid: str | None = None
    start_time: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class RequestOptions:
    method: HttpMethod
    path: str
    body: Any = None
    query: Mapping[str, Any] | None = None
    dbid: str | None = None
    headers: Mapping[str, str] | None = None


# ---------- configuration ----------


@dataclass
class QuickbaseConfig:
    realm: str
    auth: AuthDescriptor
    timeout: float = DEFAULT_TIMEOUT
    retry: RetryConfig = field(default_factory=RetryConfig)
    throttle: ThrottleConfig | None = None
    schema: Mapping[str, Any] | None = None
    read_only: bool = False
    auto_paginate: bool = False
    convert_dates: bool = True
    on_rate_limit: Callable[[RateLimitInfo], None] | None = None
    base_url: str = DEFAULT_BASE_URL
    # "httpx" | "aiohttp" | "requests" | transport instance
    transport: Any = None
    log_level: int | None = None


@dataclass(frozen=True)
class ResolvedConfig:
    realm: str
    realm_hostname: str
    base_url: str
    timeout: float
    auth: AuthDescriptor
    retry: RetryConfig
    throttle: ThrottleConfig | None
    schema: SchemaResolver | None
    read_only: bool
    auto_paginate: bool
    convert_dates: bool
    on_rate_limit: Callable[[RateLimitInfo], None] | None = None
