import os
from typing import Union

from .errors import ConfigError
from .types import (
    DEFAULT_BASE_URL,
    DEFAULT_TIMEOUT,
    QuickbaseConfig,
    RetryConfig,
    SsoAuth,
    TempTokenAuth,
    TicketAuth,
    UserTokenAuth,
)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export ") :]
                if "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        # a missing .env just means "environment only"
        pass
    return values


def _parse_bool(name: str, value: str) -> bool:
    v = value.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean (true/false), got {value!r}")


def _parse_number(name: str, value: str, cast=float):
    try:
        return cast(value)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e


def _auth_from_env(env: dict[str, str], prefix: str):
    def get(suffix: str) -> Union[str, None]:
        return env.get(prefix + suffix) or None

    auth_type = (get("AUTH_TYPE") or "user-token").lower()
    if auth_type == "user-token":
        token = get("USER_TOKEN")
        if not token:
            raise ConfigError(f"{prefix}USER_TOKEN is required for user-token auth")
        return UserTokenAuth(token)
    if auth_type == "temp-token":
        return TempTokenAuth(user_token=get("USER_TOKEN"), app_token=get("APP_TOKEN"))
    if auth_type == "sso":
        saml = get("SAML_TOKEN")
        if not saml:
            raise ConfigError(f"{prefix}SAML_TOKEN is required for sso auth")
        return SsoAuth(saml)
    if auth_type == "ticket":
        username, password = get("USERNAME"), get("PASSWORD")
        if not (username and password):
            raise ConfigError(f"{prefix}USERNAME and {prefix}PASSWORD are required for ticket auth")
        hours = get("TICKET_HOURS")
        return TicketAuth(
            username,
            password,
            hours=_parse_number(prefix + "TICKET_HOURS", hours, int) if hours else 12,
        )
    raise ConfigError(
        f"Unknown {prefix}AUTH_TYPE {auth_type!r}. Use 'user-token', 'temp-token', 'sso' or 'ticket'."
    )


def load_config_from_env(
    prefix: str = "QB_",
    env_path: Union[str, None] = None,
    **overrides,
) -> QuickbaseConfig:
    """Create a QuickbaseConfig from environment variables.

    - Variables are read as ``{prefix}{SUFFIX}``, e.g. ``QB_REALM``, ``QB_USER_TOKEN``.
    - If 'env_path' is provided, variables from the .env file will be used to augment
        lookups (without mutating the process environment). Values in the actual environment
        take precedence over the file.
    - Keyword overrides are applied last and win over both.

    Recognized suffixes: REALM, AUTH_TYPE, USER_TOKEN, APP_TOKEN, SAML_TOKEN,
    USERNAME, PASSWORD, TICKET_HOURS, TIMEOUT, MAX_ATTEMPTS, READ_ONLY,
    AUTO_PAGINATE, CONVERT_DATES, BASE_URL.
    """
    # Build a lookup map: actual environment takes precedence over .env file
    file_env = _parse_env_file(env_path) if env_path else {}
    env: dict[str, str] = {**file_env, **os.environ}

    values: dict = {}
    realm = env.get(prefix + "REALM")
    if realm:
        values["realm"] = realm
    if "auth" not in overrides:
        values["auth"] = _auth_from_env(env, prefix)
    if env.get(prefix + "TIMEOUT"):
        values["timeout"] = _parse_number(prefix + "TIMEOUT", env[prefix + "TIMEOUT"])
    if env.get(prefix + "MAX_ATTEMPTS"):
        attempts = _parse_number(prefix + "MAX_ATTEMPTS", env[prefix + "MAX_ATTEMPTS"], int)
        values["retry"] = RetryConfig(max_attempts=attempts)
    for suffix, key in (
        ("READ_ONLY", "read_only"),
        ("AUTO_PAGINATE", "auto_paginate"),
        ("CONVERT_DATES", "convert_dates"),
    ):
        if prefix + suffix in env:
            values[key] = _parse_bool(prefix + suffix, env[prefix + suffix])
    if env.get(prefix + "BASE_URL"):
        values["base_url"] = env[prefix + "BASE_URL"]

    values.update(overrides)
    if not values.get("realm"):
        raise ConfigError(f"{prefix}REALM is required")
    values.setdefault("timeout", DEFAULT_TIMEOUT)
    values.setdefault("base_url", DEFAULT_BASE_URL)
    return QuickbaseConfig(**values)
