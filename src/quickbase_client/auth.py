import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Union
from urllib.parse import quote, urlencode

from .errors import AuthenticationError, NetworkError, RequestTimeoutError
from .token_cache import TokenCache
from .types import AuthDescriptor, SsoAuth, TempTokenAuth, TicketAuth, UserTokenAuth

SSO_CACHE_KEY = "__sso__"


@dataclass
class AuthContext:
    """What a strategy needs from the client to talk to the auth endpoints."""

    realm: str
    base_url: str
    transport: Any
    realm_hostname: str = ""
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("quickbase_client"))

    def __post_init__(self):
        if not self.realm_hostname:
            self.realm_hostname = f"{self.realm}.quickbase.com"


class AuthStrategy:
    """Credential provider used by the executor.

    The executor only relies on these four methods, so strategies are
    interchangeable.
    """

    scheme = ""

    async def get_token(self, dbid: Union[str, None] = None) -> str:
        raise NotImplementedError

    def get_authorization_header(self, token: str) -> str:
        return f"{self.scheme} {token}"

    async def handle_auth_error(self, dbid: Union[str, None] = None) -> bool:
        """Called after a 401; True means "refreshed, try again"."""
        return False

    def invalidate(self, dbid: Union[str, None] = None) -> None:
        pass


class UserTokenStrategy(AuthStrategy):
    scheme = "QB-USER-TOKEN"

    def __init__(self, user_token: str):
        self._user_token = user_token

    async def get_token(self, dbid=None) -> str:
        return self._user_token


class _DedupingStrategy(AuthStrategy):
    """Cache-then-fetch strategies sharing one in-flight fetch per cache key."""

    scheme = "QB-TEMP-TOKEN"

    def __init__(self, context: AuthContext, token_lifespan: float):
        self.context = context
        self.cache = TokenCache(token_lifespan)
        self._pending: dict[str, asyncio.Task] = {}
        self._logger = context.logger

    def _cache_key(self, dbid: Union[str, None]) -> str:
        raise NotImplementedError

    async def _fetch(self, key: str) -> str:
        raise NotImplementedError

    async def get_token(self, dbid=None) -> str:
        key = self._cache_key(dbid)
        token = self.cache.get(key)
        if token is not None:
            self._logger.debug(f"token cache-hit dbid={key}")
            return token
        self._logger.debug(f"token cache-miss dbid={key}")

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch_and_cache(key))
            self._pending[key] = task

            def _done(t, key=key):
                if self._pending.get(key) is t:
                    del self._pending[key]

            task.add_done_callback(_done)
        else:
            self._logger.debug(f"token fetch already in flight dbid={key}")
        # shield: one caller giving up must not cancel the fetch for the others
        return await asyncio.shield(task)

    async def _fetch_and_cache(self, key: str) -> str:
        self._logger.debug(f"token fetch dbid={key}")
        token = await self._fetch(key)
        self.cache.set(key, token)
        return token

    async def _send(self, method: str, url: str, **kwargs):
        try:
            return await self.context.transport.send(method, url, **kwargs)
        except (NetworkError, RequestTimeoutError) as e:
            raise AuthenticationError(f"Token request failed: {e.message}") from e

    async def handle_auth_error(self, dbid=None) -> bool:
        self.invalidate(dbid)
        self._logger.debug(f"token refresh dbid={self._cache_key(dbid)}")
        return True

    def invalidate(self, dbid=None) -> None:
        key = self._cache_key(dbid)
        if self.cache.delete(key):
            self._logger.debug(f"token expire dbid={key}")


class TempTokenStrategy(_DedupingStrategy):
    """Short-lived per-table/app tokens from ``GET /auth/temporary/{dbid}``."""

    def __init__(self, auth: TempTokenAuth, context: AuthContext):
        super().__init__(context, auth.token_lifespan)
        self._user_token = auth.user_token
        self._app_token = auth.app_token
        self._cookies = auth.cookies

    def _cache_key(self, dbid):
        if not dbid:
            raise AuthenticationError(
                "Temp-token auth needs a table or app id (dbid) for this request"
            )
        return dbid

    async def _fetch(self, key: str) -> str:
        headers = {
            "QB-Realm-Hostname": self.context.realm_hostname,
            "Content-Type": "application/json",
        }
        if self._user_token:
            headers["Authorization"] = f"QB-USER-TOKEN {self._user_token}"
        if self._app_token:
            headers["QB-App-Token"] = self._app_token
        url = f"{self.context.base_url}/auth/temporary/{quote(key, safe='')}"
        resp = await self._send("GET", url, headers=headers, cookies=self._cookies)
        if not resp.ok:
            raise AuthenticationError(
                f"Failed to get temp token for {key}: {resp.status} {resp.text()}",
                resp.header("qb-api-ray"),
            )
        try:
            token = resp.json().get("temporaryAuthorization")
        except (ValueError, AttributeError):
            token = None
        if not token:
            raise AuthenticationError(f"No temporaryAuthorization in response for {key}")
        return token

    async def handle_auth_error(self, dbid=None) -> bool:
        # without a dbid there is nothing to refresh
        if not dbid:
            return False
        return await super().handle_auth_error(dbid)


class SsoTokenStrategy(_DedupingStrategy):
    """Exchanges a SAML assertion for a temp token (OAuth token exchange)."""

    GRANT_TYPE = "urn:ietf:params:oauth:grant-type:token-exchange"
    REQUESTED_TOKEN_TYPE = "urn:quickbase:params:oauth:token-type:temp_token"
    SUBJECT_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:saml2"

    def __init__(self, auth: SsoAuth, context: AuthContext):
        super().__init__(context, auth.token_lifespan)
        self._saml_token = auth.saml_token

    def _cache_key(self, dbid):
        # SSO tokens are realm-wide, not per dbid
        return SSO_CACHE_KEY

    async def _fetch(self, key: str) -> str:
        body = urlencode(
            {
                "grant_type": self.GRANT_TYPE,
                "requested_token_type": self.REQUESTED_TOKEN_TYPE,
                "subject_token": self._saml_token,
                "subject_token_type": self.SUBJECT_TOKEN_TYPE,
            }
        )
        headers = {
            "QB-Realm-Hostname": self.context.realm_hostname,
            "Content-Type": "application/x-www-form-urlencoded",
        }
        url = f"{self.context.base_url}/auth/oauth/token"
        resp = await self._send("POST", url, headers=headers, content=body)
        if not resp.ok:
            raise AuthenticationError(
                f"SSO token exchange failed: {resp.status} {resp.text()}",
                resp.header("qb-api-ray"),
            )
        try:
            token = resp.json().get("access_token")
        except (ValueError, AttributeError):
            token = None
        if not token:
            raise AuthenticationError("No access_token in SSO exchange response")
        return token


def create_auth_strategy(auth: AuthDescriptor, context: AuthContext) -> AuthStrategy:
    if isinstance(auth, UserTokenAuth):
        return UserTokenStrategy(auth.user_token)
    if isinstance(auth, TempTokenAuth):
        return TempTokenStrategy(auth, context)
    if isinstance(auth, SsoAuth):
        return SsoTokenStrategy(auth, context)
    if isinstance(auth, TicketAuth):
        from .ticket import TicketStrategy  # noqa: PLC0415

        return TicketStrategy(auth, context)
    raise TypeError(f"Unknown auth descriptor: {type(auth).__name__}")
