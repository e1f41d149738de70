from .errors import ConfigError
from .schema import resolve_schema
from .types import (
    QuickbaseConfig,
    ResolvedConfig,
    RetryConfig,
    SsoAuth,
    TempTokenAuth,
    ThrottleConfig,
    TicketAuth,
    UserTokenAuth,
)

REALM_DOMAIN = "quickbase.com"


def get_realm_hostname(realm: str) -> str:
    return f"{realm}.{REALM_DOMAIN}"


def validate_auth(auth) -> None:
    if isinstance(auth, UserTokenAuth):
        if not auth.user_token:
            raise ConfigError("user-token auth requires a user_token")
    elif isinstance(auth, TempTokenAuth):
        if auth.token_lifespan <= 0:
            raise ConfigError("token_lifespan must be > 0")
    elif isinstance(auth, SsoAuth):
        if not auth.saml_token:
            raise ConfigError("sso auth requires a saml_token")
        if auth.token_lifespan <= 0:
            raise ConfigError("token_lifespan must be > 0")
    elif isinstance(auth, TicketAuth):
        if not auth.username:
            raise ConfigError("ticket auth requires a username")
        if not auth.password and auth.store is None:
            raise ConfigError("ticket auth requires a password")
    else:
        raise ConfigError(
            "auth must be UserTokenAuth, TempTokenAuth, SsoAuth or TicketAuth, "
            f"got {type(auth).__name__}"
        )


def validate_retry(retry: RetryConfig) -> None:
    if retry.max_attempts < 1:
        raise ConfigError("retry.max_attempts must be >= 1")
    if retry.initial_delay < 0:
        raise ConfigError("retry.initial_delay must be >= 0")
    if retry.max_delay < 0:
        raise ConfigError("retry.max_delay must be >= 0")
    if retry.multiplier < 1:
        raise ConfigError("retry.multiplier must be >= 1")


def resolve_config(config: QuickbaseConfig) -> ResolvedConfig:
    """Validate user configuration and freeze it, building the schema resolver once."""
    realm = (config.realm or "").strip()
    if not realm:
        raise ConfigError("realm is required")
    if "." in realm:
        raise ConfigError(
            f"realm should be the subdomain only (e.g. 'mycompany', not '{realm}')"
        )
    validate_auth(config.auth)
    if config.timeout is None or config.timeout <= 0:
        raise ConfigError("timeout must be > 0")
    retry = config.retry or RetryConfig()
    validate_retry(retry)
    throttle = config.throttle
    if isinstance(throttle, ThrottleConfig) and throttle.requests_per_window <= 0:
        raise ConfigError("throttle.requests_per_window must be > 0")

    return ResolvedConfig(
        realm=realm,
        realm_hostname=get_realm_hostname(realm),
        base_url=config.base_url.rstrip("/"),
        timeout=float(config.timeout),
        auth=config.auth,
        retry=retry,
        throttle=throttle,
        schema=resolve_schema(config.schema),
        read_only=bool(config.read_only),
        auto_paginate=bool(config.auto_paginate),
        convert_dates=bool(config.convert_dates),
        on_rate_limit=config.on_rate_limit,
    )
