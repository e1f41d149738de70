import asyncio
from urllib.parse import parse_qs

import pytest
from conftest import FakeTransport, transport_json

from quickbase_client import (
    AuthContext,
    AuthenticationError,
    NetworkError,
    SsoAuth,
    SsoTokenStrategy,
    TempTokenAuth,
    TempTokenStrategy,
    TicketAuth,
    TicketStrategy,
    UserTokenAuth,
    UserTokenStrategy,
    create_auth_strategy,
)


def context(transport):
    return AuthContext(realm="acme", base_url="https://api.quickbase.com/v1", transport=transport)


@pytest.mark.asyncio
async def test_user_token_strategy():
    s = UserTokenStrategy("b5_tok")
    assert await s.get_token() == "b5_tok"
    assert s.get_authorization_header("b5_tok") == "QB-USER-TOKEN b5_tok"
    assert await s.handle_auth_error("bq1") is False


@pytest.mark.asyncio
async def test_temp_token_fetch_and_cache():
    t = FakeTransport(transport_json(200, {"temporaryAuthorization": "tmp1"}))
    s = TempTokenStrategy(
        TempTokenAuth(user_token="ut", app_token="at", cookies={"sid": "c"}), context(t)
    )

    assert await s.get_token("bq1") == "tmp1"
    assert await s.get_token("bq1") == "tmp1"
    assert len(t.calls) == 1

    call = t.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "https://api.quickbase.com/v1/auth/temporary/bq1"
    assert call["headers"]["Authorization"] == "QB-USER-TOKEN ut"
    assert call["headers"]["QB-App-Token"] == "at"
    assert call["headers"]["QB-Realm-Hostname"] == "acme.quickbase.com"
    assert call["cookies"] == {"sid": "c"}
    assert s.get_authorization_header("tmp1") == "QB-TEMP-TOKEN tmp1"


@pytest.mark.asyncio
async def test_temp_tokens_are_per_dbid():
    t = FakeTransport(
        transport_json(200, {"temporaryAuthorization": "a"}),
        transport_json(200, {"temporaryAuthorization": "b"}),
    )
    s = TempTokenStrategy(TempTokenAuth(), context(t))
    assert await s.get_token("bq1") == "a"
    assert await s.get_token("bq2") == "b"
    assert "Authorization" not in t.calls[0]["headers"]


@pytest.mark.asyncio
async def test_temp_token_concurrent_fetches_are_shared():
    t = FakeTransport(transport_json(200, {"temporaryAuthorization": "tmp"}))
    s = TempTokenStrategy(TempTokenAuth(), context(t))
    tokens = await asyncio.gather(*(s.get_token("bq1") for _ in range(5)))
    assert tokens == ["tmp"] * 5
    assert len(t.calls) == 1


@pytest.mark.asyncio
async def test_temp_token_auth_error_invalidates():
    t = FakeTransport(
        transport_json(200, {"temporaryAuthorization": "old"}),
        transport_json(200, {"temporaryAuthorization": "new"}),
    )
    s = TempTokenStrategy(TempTokenAuth(), context(t))
    assert await s.get_token("bq1") == "old"
    assert await s.handle_auth_error("bq1") is True
    assert await s.get_token("bq1") == "new"
    assert await s.handle_auth_error(None) is False


@pytest.mark.asyncio
async def test_temp_token_requires_dbid():
    s = TempTokenStrategy(TempTokenAuth(), context(FakeTransport()))
    with pytest.raises(AuthenticationError):
        await s.get_token(None)


@pytest.mark.asyncio
async def test_temp_token_fetch_failures():
    t = FakeTransport(transport_json(401, {"message": "no session"}))
    s = TempTokenStrategy(TempTokenAuth(), context(t))
    with pytest.raises(AuthenticationError) as ei:
        await s.get_token("bq1")
    assert "bq1" in str(ei.value)

    t = FakeTransport(transport_json(200, {}))
    s = TempTokenStrategy(TempTokenAuth(), context(t))
    with pytest.raises(AuthenticationError):
        await s.get_token("bq1")

    t = FakeTransport(NetworkError("down"))
    s = TempTokenStrategy(TempTokenAuth(), context(t))
    with pytest.raises(AuthenticationError):
        await s.get_token("bq1")
    # a failed fetch is not cached and not left pending
    assert s._pending == {}


@pytest.mark.asyncio
async def test_sso_exchange():
    t = FakeTransport(transport_json(200, {"access_token": "sso1", "token_type": "N_A"}))
    s = SsoTokenStrategy(SsoAuth("saml-assertion"), context(t))

    assert await s.get_token("bq1") == "sso1"
    assert await s.get_token("bq2") == "sso1"
    assert len(t.calls) == 1

    call = t.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://api.quickbase.com/v1/auth/oauth/token"
    assert call["headers"]["Content-Type"] == "application/x-www-form-urlencoded"
    form = parse_qs(call["content"])
    assert form["grant_type"] == ["urn:ietf:params:oauth:grant-type:token-exchange"]
    assert form["requested_token_type"] == ["urn:quickbase:params:oauth:token-type:temp_token"]
    assert form["subject_token"] == ["saml-assertion"]
    assert form["subject_token_type"] == ["urn:ietf:params:oauth:token-type:saml2"]
    assert s.get_authorization_header("sso1") == "QB-TEMP-TOKEN sso1"


@pytest.mark.asyncio
async def test_sso_exchange_failure():
    t = FakeTransport(transport_json(400, {"message": "bad assertion"}))
    s = SsoTokenStrategy(SsoAuth("saml"), context(t))
    with pytest.raises(AuthenticationError) as ei:
        await s.get_token()
    assert "SSO token exchange failed: 400" in str(ei.value)


def test_create_auth_strategy_dispatch():
    ctx = context(FakeTransport())
    assert isinstance(create_auth_strategy(UserTokenAuth("x"), ctx), UserTokenStrategy)
    assert isinstance(create_auth_strategy(TempTokenAuth(), ctx), TempTokenStrategy)
    assert isinstance(create_auth_strategy(SsoAuth("s"), ctx), SsoTokenStrategy)
    assert isinstance(create_auth_strategy(TicketAuth("u", "p"), ctx), TicketStrategy)
    with pytest.raises(TypeError):
        create_auth_strategy(object(), ctx)
