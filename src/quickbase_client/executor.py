import asyncio
import json
import logging
import re
import time
from collections.abc import Mapping
from dataclasses import replace
from datetime import date, datetime
from typing import Any, Union
from urllib.parse import urlsplit

from .auth import AuthStrategy
from .dates import transform_dates
from .errors import (
    NetworkError,
    QuickbaseError,
    RateLimitError,
    RequestTimeoutError,
    is_retryable_error,
    parse_error_response,
)
from .readonly import check_read_only
from .retry import calculate_backoff, extract_rate_limit_info
from .schema import SchemaResolver
from .throttle import coerce_throttle
from .transform import transform_request, transform_response
from .types import RequestContext, RequestOptions, ResolvedConfig

# Indirection so tests can patch backoff sleeps out.
sleep = asyncio.sleep

_TABLE_PATH = re.compile(r"/tables/([^/?]+)")
_APP_PATH = re.compile(r"/apps/([^/?]+)")


def extract_dbid(options: RequestOptions, schema: Union[SchemaResolver, None] = None):
    """Find the table/app id a request is about.

    Order: explicit dbid, query tableId, query appId, /tables/<id> in the path,
    /apps/<id> in the path, then body ``from`` / ``to``.
    """
    if options.dbid:
        if schema is not None:
            return schema.table_alias_to_id.get(options.dbid, options.dbid)
        return options.dbid
    query = options.query or {}
    if query.get("tableId"):
        table = str(query["tableId"])
        return schema.resolve_table_alias(table) if schema is not None else table
    if query.get("appId"):
        return str(query["appId"])
    path = options.path.split("?", 1)[0]
    for pattern in (_TABLE_PATH, _APP_PATH):
        m = pattern.search(path)
        if m:
            return m.group(1)
    body = options.body
    if isinstance(body, Mapping):
        for key in ("from", "to"):
            if isinstance(body.get(key), str):
                ref = body[key]
                return schema.resolve_table_alias(ref) if schema is not None else ref
    return None


def build_url(base_url: str, path: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _json_default(value: Any):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_body(body: Any) -> Union[str, bytes, None]:
    if body is None or isinstance(body, (str, bytes)):
        return body
    return json.dumps(body, default=_json_default)


class RequestExecutor:
    """Runs one logical call: alias resolution, read-only check, auth, retries.

    Every attempt rebuilds headers (so refreshed tokens are picked up), waits
    for a throttle permit and sends under the configured timeout. 429s, 5xx,
    timeouts and network errors are retried with exponential backoff; a 401 is
    retried immediately when the auth strategy says it refreshed.
    """

    def __init__(
        self,
        config: ResolvedConfig,
        auth: AuthStrategy,
        transport,
        throttle=None,
        logger: Union[logging.Logger, None] = None,
    ):
        self.config = config
        self.auth = auth
        self.transport = transport
        self.throttle = coerce_throttle(throttle if throttle is not None else config.throttle)
        self._logger = logger or logging.getLogger("quickbase_client")

    async def build_headers(
        self, dbid: Union[str, None], extra: Union[Mapping[str, str], None] = None
    ) -> dict[str, str]:
        token = await self.auth.get_token(dbid)
        headers = {
            "Content-Type": "application/json",
            "QB-Realm-Hostname": self.config.realm_hostname,
            "Authorization": self.auth.get_authorization_header(token),
        }
        if extra:
            headers.update(extra)
        return headers

    def _prepare(self, options: RequestOptions):
        schema = self.config.schema
        dbid = extract_dbid(options, schema)
        body = transform_request(options.body, schema, dbid)
        query = dict(options.query or {})
        if schema is not None and query.get("tableId"):
            query["tableId"] = schema.resolve_table_alias(str(query["tableId"]))
        params = {k: _query_value(v) for k, v in query.items() if v is not None}
        return dbid, body, params

    async def execute(self, options: RequestOptions, method_name: Union[str, None] = None) -> Any:
        dbid, body, params = self._prepare(options)
        url = build_url(self.config.base_url, options.path)
        # the API-relative path; a base_url prefix is not part of it
        api_path = options.path
        if api_path.startswith(("http://", "https://")):
            api_path = urlsplit(api_path).path
        check_read_only(options.method, api_path, self.config.read_only)

        content = encode_body(body)
        context = RequestContext(
            method_name=method_name or f"{options.method} {options.path}",
            attempt=1,
            max_attempts=self.config.retry.max_attempts,
            dbid=dbid,
        )
        for attempt in range(1, context.max_attempts + 1):
            context = replace(context, attempt=attempt)
            # credential failures are not retried here
            headers = await self.build_headers(dbid, options.headers)
            await self.throttle.acquire()
            try:
                resp = await self._send(options.method, url, headers, content, params, context)
                if (
                    resp.status == 401  # noqa: PLR2004, http status code can be constant
                    and attempt < context.max_attempts
                    and await self.auth.handle_auth_error(dbid)
                ):
                    self._logger.info(
                        f"401 on {context.method_name} dbid={dbid} "
                        f"attempt={attempt}/{context.max_attempts}; retrying with fresh token"
                    )
                    continue
                return self._handle_response(resp, url, context)
            except QuickbaseError as e:
                if not is_retryable_error(e) or attempt >= context.max_attempts:
                    raise
                delay = self._retry_delay(e, attempt)
                self._logger.info(
                    f"retry {context.method_name} attempt={attempt}/{context.max_attempts} "
                    f"delay={delay:.2f}s reason={type(e).__name__}"
                )
                await sleep(delay)
        raise RuntimeError("quickbase_client: retry loop exited without a result")

    async def _send(self, method, url, headers, content, params, context: RequestContext):
        timeout = self.config.timeout
        self._logger.debug(
            f"req start method={method} url={url} dbid={context.dbid} "
            f"attempt={context.attempt}/{context.max_attempts}"
        )
        start = time.monotonic()
        try:
            resp = await asyncio.wait_for(
                self.transport.send(
                    method, url, headers=headers, content=content, params=params or None
                ),
                timeout,
            )
        except asyncio.TimeoutError as e:
            self._logger.warning(f"timeout method={method} url={url} after={timeout:g}s")
            raise RequestTimeoutError(timeout) from e
        except (RequestTimeoutError, NetworkError) as e:
            self._logger.warning(f"request error method={method} url={url}: {e}")
            raise
        self._logger.debug(
            f"req done method={method} url={url} status={resp.status} "
            f"duration={time.monotonic() - start:.3f}s"
        )
        return resp

    def _handle_response(self, resp, url: str, context: RequestContext) -> Any:
        if resp.status == 429:  # noqa: PLR2004, http status code can be constant
            info = extract_rate_limit_info(resp.headers, url, context.attempt)
            self._logger.info(
                f"429 on {context.method_name} retry_after={info.retry_after} "
                f"ray_id={info.ray_id} attempt={context.attempt}/{context.max_attempts}"
            )
            if self.config.on_rate_limit is not None:
                self.config.on_rate_limit(info)
            raise RateLimitError(info)
        if not 200 <= resp.status < 300:  # noqa: PLR2004, http status code can be constant
            raise parse_error_response(resp, url)
        return self._decode(resp, context.dbid)

    def _decode(self, resp, dbid: Union[str, None]) -> Any:
        if not resp.content:
            return None
        try:
            data = resp.json()
        except ValueError:
            return resp.text()
        data = transform_response(data, self.config.schema, dbid)
        return transform_dates(data, self.config.convert_dates)

    def _retry_delay(self, error: QuickbaseError, attempt: int) -> float:
        if isinstance(error, RateLimitError) and error.retry_after:
            return error.retry_after
        return calculate_backoff(attempt, self.config.retry)
