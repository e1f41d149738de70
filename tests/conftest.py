import json

import httpx
import pytest

from quickbase_client import (
    HttpxTransport,
    QuickbaseClient,
    QuickbaseConfig,
    TransportResponse,
    UserTokenAuth,
)


def mock_transport(handler):
    return HttpxTransport(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def json_response(status, payload=None, headers=None):
    return httpx.Response(status, json=payload, headers=headers or {})


class FakeTransport:
    """Records calls and replays queued TransportResponses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    async def send(self, method, url, *, headers, content=None, params=None, cookies=None):
        self.calls.append(
            {
                "method": method,
                "url": url,
                "headers": dict(headers),
                "content": content,
                "params": params,
                "cookies": cookies,
            }
        )
        resp = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(resp, BaseException):
            raise resp
        return resp

    async def aclose(self):
        pass


def transport_json(status, payload, headers=None):
    return TransportResponse(status, headers or {}, json.dumps(payload).encode(), "")


@pytest.fixture
def sleeps(monkeypatch):
    calls = []

    async def fake_sleep(delay):
        calls.append(delay)

    monkeypatch.setattr("quickbase_client.executor.sleep", fake_sleep)
    return calls


@pytest.fixture
def make_client():
    def _make(handler, **kwargs):
        kwargs.setdefault("auth", UserTokenAuth("tok"))
        return QuickbaseClient(
            QuickbaseConfig(realm="acme", transport=mock_transport(handler), **kwargs)
        )

    return _make
