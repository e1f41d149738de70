import asyncio
import contextlib
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from .errors import NetworkError, RequestTimeoutError


@dataclass
class TransportResponse:
    """Library-neutral view of an HTTP response, body already read."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""
    reason: str = ""

    def header(self, name: str) -> Union[str, None]:
        name = name.lower()
        for k, v in self.headers.items():
            if k.lower() == name:
                return v
        return None

    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300  # noqa: PLR2004, http status code can be constant


# ---------- httpx (async, default) ----------
class HttpxTransport:
    def __init__(self, client=None, timeout: Union[float, None] = None):
        self.client = client
        self.timeout = timeout
        self._own_client = client is None

    def _client(self):
        if self.client is None:
            import httpx  # noqa: PLC0415

            self.client = httpx.AsyncClient(timeout=self.timeout)
        return self.client

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        content: Union[bytes, str, None] = None,
        params: Union[Mapping[str, Any], None] = None,
        cookies: Union[Mapping[str, str], None] = None,
    ) -> TransportResponse:
        import httpx  # noqa: PLC0415

        client = self._client()
        try:
            # per-request cookies are deprecated in httpx; send them as a header
            if cookies:
                headers = {**headers, "Cookie": _cookie_header(cookies)}
            resp = await client.request(
                method, url, headers=dict(headers), content=content, params=params
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self.timeout or 0) from e
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {url} failed: {e}", e) from e
        return TransportResponse(
            status=resp.status_code,
            headers=dict(resp.headers),
            content=resp.content,
            reason=resp.reason_phrase,
        )

    async def aclose(self):
        if self._own_client and self.client is not None:
            with contextlib.suppress(Exception):
                await self.client.aclose()
            self.client = None


# ---------- aiohttp (async) ----------
class AiohttpTransport:
    def __init__(self, session=None, timeout: Union[float, None] = None):
        self.session = session
        self.timeout = timeout
        self._own_session = session is None

    def _session(self):
        if self.session is None:
            import aiohttp  # noqa: PLC0415

            self.session = aiohttp.ClientSession()
        return self.session

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        content: Union[bytes, str, None] = None,
        params: Union[Mapping[str, Any], None] = None,
        cookies: Union[Mapping[str, str], None] = None,
    ) -> TransportResponse:
        import aiohttp  # noqa: PLC0415

        session = self._session()
        kwargs: dict[str, Any] = {"headers": dict(headers), "data": content}
        if params:
            kwargs["params"] = {k: str(v) for k, v in params.items()}
        if cookies:
            kwargs["cookies"] = dict(cookies)
        if self.timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with session.request(method, url, **kwargs) as resp:
                body = await resp.read()
                return TransportResponse(
                    status=resp.status,
                    headers=dict(resp.headers),
                    content=body,
                    reason=resp.reason or "",
                )
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(self.timeout or 0) from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"{method} {url} failed: {e}", e) from e

    async def aclose(self):
        if self._own_session and self.session is not None:
            await self.session.close()
            self.session = None


# ---------- requests (sync, run in a worker thread) ----------
class RequestsTransport:
    def __init__(self, session=None, timeout: Union[float, None] = None):
        self.session = session
        self.timeout = timeout
        self._own_session = session is None

    def _session(self):
        if self.session is None:
            import requests  # noqa: PLC0415

            self.session = requests.Session()
        return self.session

    def _send_sync(self, method, url, headers, content, params, cookies) -> TransportResponse:
        import requests  # noqa: PLC0415

        try:
            resp = self._session().request(
                method,
                url,
                headers=dict(headers),
                data=content,
                params=params,
                cookies=cookies,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise RequestTimeoutError(self.timeout or 0) from e
        except requests.RequestException as e:
            raise NetworkError(f"{method} {url} failed: {e}", e) from e
        return TransportResponse(
            status=resp.status_code,
            headers=dict(resp.headers),
            content=resp.content,
            reason=resp.reason or "",
        )

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        content: Union[bytes, str, None] = None,
        params: Union[Mapping[str, Any], None] = None,
        cookies: Union[Mapping[str, str], None] = None,
    ) -> TransportResponse:
        return await asyncio.to_thread(
            self._send_sync, method, url, headers, content, params, cookies
        )

    async def aclose(self):
        if self._own_session and self.session is not None:
            with contextlib.suppress(Exception):
                self.session.close()
            self.session = None


def _cookie_header(cookies: Mapping[str, str]) -> str:
    return "; ".join(f"{k}={v}" for k, v in cookies.items())


def coerce_transport(transport: Union[object, None], timeout: Union[float, None] = None):
    """Turn None | "httpx" | "aiohttp" | "requests" | transport | client into a transport.

    Accepted inputs:
      - None / "httpx"  -> HttpxTransport
      - "aiohttp"       -> AiohttpTransport
      - "requests"      -> RequestsTransport
      - an object with an async ``send()`` (returned as-is)
      - an httpx.AsyncClient, aiohttp.ClientSession or requests.Session, wrapped
        and left open on ``aclose()``
    """
    if transport is None:
        return HttpxTransport(timeout=timeout)
    if isinstance(transport, str):
        name = transport.lower()
        if name == "httpx":
            return HttpxTransport(timeout=timeout)
        if name == "aiohttp":
            return AiohttpTransport(timeout=timeout)
        if name == "requests":
            return RequestsTransport(timeout=timeout)
        raise ValueError("Unknown transport string. Use 'httpx', 'aiohttp' or 'requests'.")
    # httpx.AsyncClient has send/aclose too, so check library clients first
    module = type(transport).__module__.split(".", 1)[0]
    if module == "httpx":
        return HttpxTransport(transport, timeout=timeout)
    if module == "aiohttp":
        return AiohttpTransport(transport, timeout=timeout)
    if module == "requests":
        return RequestsTransport(transport, timeout=timeout)
    if callable(getattr(transport, "send", None)) and callable(getattr(transport, "aclose", None)):
        return transport
    raise TypeError(
        "transport must be None, 'httpx'|'aiohttp'|'requests', a transport, or a client/session"
    )
