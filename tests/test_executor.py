import asyncio
import json

import httpx
import pytest
from conftest import json_response

from quickbase_client import (
    AuthenticationError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    RetryConfig,
    ServerError,
    TempTokenAuth,
    ValidationError,
)
from quickbase_client.executor import build_url, encode_body, extract_dbid
from quickbase_client.schema import SchemaResolver
from quickbase_client.types import RequestOptions


@pytest.mark.asyncio
async def test_429_with_retry_after_then_success(make_client, sleeps):
    calls, seen = [], []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return json_response(429, {"message": "slow down"}, {"Retry-After": "5", "cf-ray": "r1"})
        return json_response(200, {"ok": True})

    client = make_client(handler, on_rate_limit=seen.append)
    result = await client.request("GET", "/apps/a1")

    assert result == {"ok": True}
    assert len(calls) == 2
    assert sleeps == [5.0]
    assert seen[0].retry_after == 5.0
    assert seen[0].ray_id == "r1"
    assert seen[0].attempt == 1


@pytest.mark.asyncio
async def test_429_with_zero_retry_after_uses_backoff(make_client, sleeps):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return json_response(429, {}, {"Retry-After": "0"})
        return json_response(200, {"ok": True})

    client = make_client(handler)
    assert await client.request("GET", "/apps/a1") == {"ok": True}
    assert len(sleeps) == 1
    assert 0.9 <= sleeps[0] <= 1.1


@pytest.mark.asyncio
async def test_429_exhausts_attempts(make_client, sleeps):
    def handler(request):
        return json_response(429, {}, {"Retry-After": "1"})

    client = make_client(handler, retry=RetryConfig(max_attempts=2))
    with pytest.raises(RateLimitError) as ei:
        await client.request("GET", "/apps/a1")
    assert ei.value.retry_after == 1.0
    assert ei.value.status_code == 429
    assert sleeps == [1.0]


@pytest.mark.asyncio
async def test_401_retries_stop_at_max_attempts(make_client, sleeps):
    fetches, api_calls = [], []

    def handler(request):
        if request.url.path.startswith("/v1/auth/temporary/"):
            fetches.append(request)
            return json_response(200, {"temporaryAuthorization": f"t{len(fetches)}"})
        api_calls.append(request)
        return json_response(401, {"message": f"bad token {len(api_calls)}"})

    client = make_client(handler, auth=TempTokenAuth(user_token="ut"))
    with pytest.raises(AuthenticationError) as ei:
        await client.request("GET", "/tables/bq1")

    assert len(fetches) == 3
    assert len(api_calls) == 3
    # the last error is the one surfaced
    assert ei.value.message == "bad token 3"
    # each attempt used the freshly fetched token
    assert [r.headers["Authorization"] for r in api_calls] == [
        "QB-TEMP-TOKEN t1",
        "QB-TEMP-TOKEN t2",
        "QB-TEMP-TOKEN t3",
    ]
    assert sleeps == []


@pytest.mark.asyncio
async def test_401_with_user_token_is_not_retried(make_client, sleeps):
    calls = []

    def handler(request):
        calls.append(request)
        return json_response(401, {"message": "nope"})

    client = make_client(handler)
    with pytest.raises(AuthenticationError):
        await client.request("GET", "/apps/a1")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_server_error_backs_off_then_succeeds(make_client, sleeps):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return json_response(503, {"message": "down"})
        return json_response(200, {"id": "a1"})

    client = make_client(handler)
    assert await client.request("GET", "/apps/a1") == {"id": "a1"}
    assert len(sleeps) == 1
    assert 0.9 <= sleeps[0] <= 1.1


@pytest.mark.asyncio
async def test_server_error_exhausts(make_client, sleeps):
    calls = []

    def handler(request):
        calls.append(request)
        return json_response(500, {"message": "boom", "description": "internal"})

    client = make_client(handler)
    with pytest.raises(ServerError) as ei:
        await client.request("GET", "/apps/a1")
    assert ei.value.status_code == 500
    assert ei.value.description == "internal"
    assert len(calls) == 3
    assert len(sleeps) == 2


@pytest.mark.asyncio
async def test_validation_error_not_retried(make_client, sleeps):
    calls = []

    def handler(request):
        calls.append(request)
        return json_response(400, {"message": "Bad Request", "errors": ["field 99 unknown"]})

    client = make_client(handler)
    with pytest.raises(ValidationError) as ei:
        await client.request("POST", "/records/query", body={"from": "bq1"})
    assert ei.value.errors == ["field 99 unknown"]
    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_timeout_is_retried_and_reported(make_client, sleeps):
    calls = []

    async def handler(request):
        calls.append(request)
        await asyncio.sleep(1)
        return json_response(200, {})

    client = make_client(handler, timeout=0.01, retry=RetryConfig(max_attempts=2))
    with pytest.raises(RequestTimeoutError) as ei:
        await client.request("GET", "/apps/a1")
    assert ei.value.timeout == 0.01
    assert len(calls) == 2
    assert len(sleeps) == 1


@pytest.mark.asyncio
async def test_network_error_is_retried(make_client, sleeps):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            raise httpx.ConnectError("refused", request=request)
        return json_response(200, {"ok": 1})

    client = make_client(handler)
    assert await client.request("GET", "/apps/a1") == {"ok": 1}
    assert len(sleeps) == 2


@pytest.mark.asyncio
async def test_network_error_exhausts(make_client, sleeps):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = make_client(handler, retry=RetryConfig(max_attempts=1))
    with pytest.raises(NetworkError):
        await client.request("GET", "/apps/a1")
    assert sleeps == []


@pytest.mark.asyncio
async def test_headers_and_overrides(make_client):
    seen = []

    def handler(request):
        seen.append(request)
        return json_response(200, {})

    client = make_client(handler)
    await client.request("GET", "/apps/a1", headers={"X-Extra": "1"}, query={"flag": True})

    req = seen[0]
    assert req.headers["Authorization"] == "QB-USER-TOKEN tok"
    assert req.headers["QB-Realm-Hostname"] == "acme.quickbase.com"
    assert req.headers["Content-Type"] == "application/json"
    assert req.headers["X-Extra"] == "1"
    assert req.url.params["flag"] == "true"
    assert str(req.url).startswith("https://api.quickbase.com/v1/apps/a1")


@pytest.mark.asyncio
async def test_dates_converted_unless_disabled(make_client):
    def handler(request):
        return json_response(200, {"created": "2024-01-15T10:30:00Z", "day": "2024-01-15"})

    client = make_client(handler)
    result = await client.request("GET", "/apps/a1")
    assert result["created"].year == 2024
    assert result["created"].tzinfo is not None
    assert result["day"].isoformat() == "2024-01-15"

    raw = make_client(handler, convert_dates=False)
    assert (await raw.request("GET", "/apps/a1"))["day"] == "2024-01-15"


@pytest.mark.asyncio
async def test_empty_and_text_bodies(make_client):
    def handler(request):
        if request.url.path.endswith("empty"):
            return httpx.Response(200)
        return httpx.Response(200, text="plain")

    client = make_client(handler)
    assert await client.request("GET", "/empty") is None
    assert await client.request("GET", "/text") == "plain"


@pytest.mark.asyncio
async def test_body_is_json_encoded(make_client):
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return json_response(200, {})

    client = make_client(handler)
    await client.request("POST", "/records/query", body={"from": "bq1", "where": "{3.GT.0}"})
    assert seen == [{"from": "bq1", "where": "{3.GT.0}"}]


def test_extract_dbid_order():
    def opts(**kw):
        kw.setdefault("method", "POST")
        kw.setdefault("path", "/records/query")
        return RequestOptions(**kw)

    assert extract_dbid(opts(dbid="x", query={"tableId": "t"})) == "x"
    assert extract_dbid(opts(query={"tableId": "t", "appId": "a"})) == "t"
    assert extract_dbid(opts(query={"appId": "a"}, path="/tables/t2")) == "a"
    assert extract_dbid(opts(path="/tables/t2/relationships")) == "t2"
    assert extract_dbid(opts(path="/apps/a2/events")) == "a2"
    assert extract_dbid(opts(body={"from": "f1", "to": "t1"})) == "f1"
    assert extract_dbid(opts(body={"to": "t1"})) == "t1"
    assert extract_dbid(opts()) is None


def test_extract_dbid_resolves_aliases():
    schema = SchemaResolver({"tables": {"orders": {"id": "b1", "fields": {}}}})
    opts = RequestOptions("POST", "/records/query", body={"from": "orders"})
    assert extract_dbid(opts, schema) == "b1"
    opts = RequestOptions("GET", "/fields", query={"tableId": "orders"})
    assert extract_dbid(opts, schema) == "b1"


def test_build_url_and_encode_body():
    assert build_url("https://api.quickbase.com/v1/", "/apps/x") == "https://api.quickbase.com/v1/apps/x"
    assert build_url("https://api.quickbase.com/v1", "https://other/x") == "https://other/x"
    assert encode_body(None) is None
    assert encode_body("raw") == "raw"
    assert json.loads(encode_body({"a": 1})) == {"a": 1}
