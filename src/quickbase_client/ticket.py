"""Username/password ("ticket") auth via the legacy XML API_Authenticate call.

Tickets attribute record changes to the signed-in user, which user tokens
do not. The password is consumed by the first successful authentication;
once the ticket expires the client cannot re-authenticate and a new client
must be built with fresh credentials.
"""

import asyncio
import json
import time
import xml.etree.ElementTree as ET
from typing import Protocol, Union
from xml.sax.saxutils import escape

from .auth import AuthContext, AuthStrategy
from .errors import AuthenticationError, NetworkError, RequestTimeoutError, TicketExpiredError
from .secret import Secret
from .types import TicketAuth

MIN_TICKET_HOURS = 1
# ~6 months, the provider's cap
MAX_TICKET_HOURS = 4380
# stored tickets closer than this to expiry are not restored
RESTORE_BUFFER = 60.0


class TicketStore(Protocol):
    def get_item(self, key: str) -> Union[str, None]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class InMemoryTicketStore:
    def __init__(self):
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Union[str, None]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


def clamp_hours(hours: int) -> int:
    return min(max(int(hours), MIN_TICKET_HOURS), MAX_TICKET_HOURS)


def build_authenticate_body(username: str, password: str, hours: int) -> str:
    return (
        "<qdbapi>"
        f"<username>{escape(username)}</username>"
        f"<password>{escape(password)}</password>"
        f"<hours>{hours}</hours>"
        "</qdbapi>"
    )


def parse_authenticate_response(text: str) -> dict:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise AuthenticationError(f"Unparseable API_Authenticate response: {e}") from e

    def _tag(name):
        node = root.find(name)
        return (node.text or "").strip() if node is not None else ""

    try:
        errcode = int(_tag("errcode") or 0)
    except ValueError:
        errcode = -1
    return {
        "ticket": _tag("ticket"),
        "userid": _tag("userid"),
        "errcode": errcode,
        "errtext": _tag("errtext"),
        "errdetail": _tag("errdetail"),
    }


class TicketStrategy(AuthStrategy):
    scheme = "QB-TICKET"

    def __init__(self, auth: TicketAuth, context: AuthContext):
        self.context = context
        self.username = auth.username
        self._password: Secret = auth.password
        self.hours = clamp_hours(auth.hours)
        self.store: Union[TicketStore, None] = auth.store
        self.on_expired = auth.on_expired
        self.storage_key = f"qb_ticket_{context.realm}"
        self._logger = context.logger

        self._ticket: Union[str, None] = None
        self.user_id: Union[str, None] = None
        self._expires_at: Union[float, None] = None
        self._authenticated = False
        self._pending: Union[asyncio.Task, None] = None

        self._restore()

    def _now(self) -> float:
        return time.time()

    @property
    def expires_at(self) -> Union[float, None]:
        return self._expires_at

    def _expired(self) -> TicketExpiredError:
        if self.on_expired is not None:
            self.on_expired()
        return TicketExpiredError()

    async def get_token(self, dbid=None) -> str:
        if self._ticket and self._expires_at and self._now() < self._expires_at:
            return self._ticket
        if self._ticket:
            self._logger.debug(f"ticket expired realm={self.context.realm}")
            self._clear()
            raise self._expired()
        if self._authenticated:
            raise self._expired()

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._authenticate())

            def _done(t):
                if self._pending is t:
                    self._pending = None

            self._pending.add_done_callback(_done)
        else:
            self._logger.debug("ticket authentication already in flight")
        return await asyncio.shield(self._pending)

    async def _authenticate(self) -> str:
        if self._password.consumed:
            raise self._expired()

        url = f"https://{self.context.realm}.quickbase.com/db/main"
        headers = {"Content-Type": "application/xml", "QUICKBASE-ACTION": "API_Authenticate"}
        # put the password back on failure so the caller can try again
        password = self._password.consume()
        body = build_authenticate_body(self.username, password, self.hours)
        self._logger.debug(f"ticket authenticate user={self.username} hours={self.hours}")
        try:
            resp = await self.context.transport.send("POST", url, headers=headers, content=body)
        except (NetworkError, RequestTimeoutError) as e:
            self._password = Secret(password)
            raise AuthenticationError(f"API_Authenticate failed: {e.message}") from e

        result = parse_authenticate_response(resp.text())
        if result["errcode"] != 0:
            self._password = Secret(password)
            detail = result["errdetail"] or result["errtext"] or "Unknown error"
            raise AuthenticationError(
                f"Authentication failed: {detail} (code: {result['errcode']})"
            )
        if not result["ticket"]:
            self._password = Secret(password)
            raise AuthenticationError("No ticket returned from API_Authenticate")

        del password
        self._ticket = result["ticket"]
        self.user_id = result["userid"] or None
        self._expires_at = self._now() + self.hours * 3600
        self._authenticated = True
        self._save()
        self._logger.debug(f"ticket authenticated user_id={self.user_id}")
        return self._ticket

    async def handle_auth_error(self, dbid=None) -> bool:
        # the password is gone, so there is no way to refresh
        self._clear()
        self._logger.debug("ticket rejected; cannot re-authenticate")
        if self.on_expired is not None:
            self.on_expired()
        return False

    def invalidate(self, dbid=None) -> None:
        self._clear()

    def _clear(self) -> None:
        self._ticket = None
        self._expires_at = None
        if self.store is not None:
            self.store.remove_item(self.storage_key)

    # ---------- persistence ----------
    def _save(self) -> None:
        if self.store is None or not self._ticket:
            return
        data = {"ticket": self._ticket, "userId": self.user_id, "expiresAt": self._expires_at}
        self.store.set_item(self.storage_key, json.dumps(data))
        self._logger.debug(f"ticket saved key={self.storage_key}")

    def _restore(self) -> None:
        if self.store is None:
            return
        raw = self.store.get_item(self.storage_key)
        if not raw:
            return
        try:
            data = json.loads(raw)
            ticket, expires_at = data["ticket"], float(data["expiresAt"])
        except (ValueError, KeyError, TypeError):
            self._logger.debug(f"corrupt stored ticket removed key={self.storage_key}")
            self.store.remove_item(self.storage_key)
            return
        if self._now() >= expires_at - RESTORE_BUFFER:
            self._logger.debug(f"stored ticket expired, removed key={self.storage_key}")
            self.store.remove_item(self.storage_key)
            return
        self._ticket = ticket
        self.user_id = data.get("userId")
        self._expires_at = expires_at
        self._authenticated = True
        # a valid stored ticket means the password is never needed
        if not self._password.consumed:
            self._password.consume()
        self._logger.debug(f"ticket restored key={self.storage_key}")
