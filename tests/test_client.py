import inspect
import json

import pytest
from conftest import json_response

from quickbase_client import (
    OPERATIONS,
    PaginatedRequest,
    QuickbaseClient,
    ReadOnlyError,
    SchemaError,
    UserTokenAuth,
    UserTokenStrategy,
    create_client,
)

SCHEMA = {"tables": {"orders": {"id": "b1", "fields": {"total": 7, "name": 6}}}}


@pytest.mark.asyncio
async def test_schema_aliases_resolve_both_ways(make_client):
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return json_response(
            200,
            {
                "data": [{"7": {"value": 12}, "6": {"value": "Widget"}, "3": {"value": 1}}],
                "fields": [{"id": 7, "label": "Total", "type": "numeric"}],
                "metadata": {"totalRecords": 1, "numRecords": 1, "skip": 0, "numFields": 3},
            },
        )

    client = make_client(handler, schema=SCHEMA)
    result = await client.run_query(
        {
            "from": "orders",
            "select": ["total", "name", 3],
            "where": "{'total'.GT.10}",
            "sortBy": [{"fieldId": "total", "order": "DESC"}],
        }
    )

    body = seen[0]
    assert body["from"] == "b1"
    assert body["select"] == [7, 6, 3]
    assert body["where"] == "{7.GT.10}"
    assert body["sortBy"] == [{"fieldId": 7, "order": "DESC"}]
    assert result["data"] == [{"total": 12, "name": "Widget", "3": 1}]


@pytest.mark.asyncio
async def test_unknown_alias_fails_before_any_request(make_client):
    calls = []

    def handler(request):
        calls.append(request)
        return json_response(200, {})

    client = make_client(handler, schema=SCHEMA)
    with pytest.raises(SchemaError) as ei:
        await client.run_query({"from": "order", "select": ["total"]})
    assert ei.value.suggestion == "orders"
    assert "Did you mean 'orders'?" in str(ei.value)
    assert calls == []


@pytest.mark.asyncio
async def test_table_id_params_resolve_aliases(make_client):
    seen = []

    def handler(request):
        seen.append(request)
        return json_response(200, [])

    client = make_client(handler, schema=SCHEMA)
    await client.get_fields("orders")
    assert seen[0].url.params["tableId"] == "b1"


@pytest.mark.asyncio
async def test_read_only_blocks_writes_without_io(make_client):
    calls = []

    def handler(request):
        calls.append(request)
        return json_response(200, {"data": [], "metadata": {}})

    client = make_client(handler, read_only=True)

    with pytest.raises(ReadOnlyError) as ei:
        await client.upsert({"to": "bq1", "data": []})
    assert str(ei.value) == "Read-only mode: write operation blocked (POST /records)"
    assert ei.value.method == "POST"
    assert ei.value.path == "/records"

    with pytest.raises(ReadOnlyError):
        await client.delete_records({"from": "bq1", "where": "{3.GT.0}"})
    with pytest.raises(ReadOnlyError):
        await client.create_app({"name": "x"})
    with pytest.raises(ReadOnlyError):
        await client.delete_app("a1", {"name": "x"})
    with pytest.raises(ReadOnlyError):
        await client.deny_users(["u1"])
    with pytest.raises(ReadOnlyError):
        await client.generate_document(5, "bq1", recordId=1)
    assert calls == []

    await client.run_query({"from": "bq1"})
    await client.get_app("a1")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_read_only_ignores_base_url_prefix(make_client):
    calls = []

    def handler(request):
        calls.append(request)
        return json_response(200, {"data": [], "metadata": {}})

    client = make_client(
        handler, read_only=True, base_url="https://proxy.example.com/qb/v1"
    )
    await client.run_query({"from": "bq1"})
    await client.run_report("r1", "bq1")
    await client.get_users()
    assert [r.url.path for r in calls] == [
        "/qb/v1/records/query",
        "/qb/v1/reports/r1/run",
        "/qb/v1/users",
    ]

    with pytest.raises(ReadOnlyError) as ei:
        await client.upsert({"to": "bq1", "data": []})
    assert ei.value.path == "/records"
    assert len(calls) == 3


def test_operation_table_decides_pagination(make_client):
    client = make_client(lambda request: json_response(200, {}))
    for name, op in OPERATIONS.items():
        result = client._invoke(name, {p: "x" for p in op.path_params})
        if op.paginated:
            assert isinstance(result, PaginatedRequest), name
        else:
            assert inspect.iscoroutine(result), name
            result.close()

    assert isinstance(client.run_query({"from": "bq1"}), PaginatedRequest)
    pending = client.get_app("a1")
    assert inspect.iscoroutine(pending)
    pending.close()


def test_check_xml_action():
    client = create_client("acme", UserTokenAuth("tok"), read_only=True)
    with pytest.raises(ReadOnlyError) as ei:
        client.check_xml_action("API_SetDBVar")
    assert str(ei.value) == "Read-only mode: write operation blocked (XML action: API_SetDBVar)"
    assert ei.value.path == "/db/acme"
    client.check_xml_action("API_GetDBVar")
    client.check_xml_action("API_Authenticate")


@pytest.mark.asyncio
async def test_auto_paginate_and_opt_out(make_client):
    seen = []

    def handler(request):
        body = json.loads(request.content)
        seen.append(body)
        skip = body.get("options", {}).get("skip", 0)
        data = [{"3": {"value": i}} for i in range(skip, min(skip + 2, 3))]
        return json_response(
            200,
            {"data": data, "metadata": {"totalRecords": 3, "numRecords": len(data), "skip": skip}},
        )

    client = make_client(handler, auto_paginate=True)
    everything = await client.run_query({"from": "bq1"})
    assert [r["3"]["value"] for r in everything["data"]] == [0, 1, 2]
    assert everything["metadata"]["numRecords"] == 3
    assert seen[1]["options"] == {"skip": 2}

    seen.clear()
    page = await client.run_query({"from": "bq1"}).no_paginate()
    assert len(page["data"]) == 2
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_paginated_methods_return_paginated_request(make_client):
    client = make_client(lambda request: json_response(200, {}))
    req = client.run_report("r1", "bq1", skip=0)
    assert isinstance(req, PaginatedRequest)
    assert isinstance(client.get_users(), PaginatedRequest)


@pytest.mark.asyncio
async def test_get_relationships_pages_in_query(make_client):
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        if "nextPageToken" not in request.url.params:
            return json_response(
                200, {"relationships": [{"id": 1}], "metadata": {"nextPageToken": "p2"}}
            )
        return json_response(200, {"relationships": [{"id": 2}], "metadata": {}})

    client = make_client(handler)
    result = await client.get_relationships("bq1").all()
    assert [r["id"] for r in result["relationships"]] == [1, 2]
    assert seen[1] == {"nextPageToken": "p2"}
    assert "nextPageToken" not in result["metadata"]


@pytest.mark.asyncio
async def test_async_context_manager_and_config(make_client):
    async with make_client(lambda request: json_response(200, {}), read_only=True) as client:
        cfg = client.get_config()
        assert cfg.realm == "acme"
        assert cfg.realm_hostname == "acme.quickbase.com"
        assert cfg.read_only is True
        assert isinstance(client.auth_strategy, UserTokenStrategy)


def test_from_env(monkeypatch):
    monkeypatch.setenv("QB_REALM", "envrealm")
    monkeypatch.setenv("QB_USER_TOKEN", "b5_abc")
    client = QuickbaseClient.from_env(read_only=True)
    assert client.get_config().realm == "envrealm"
    assert client.get_config().read_only is True


@pytest.mark.asyncio
async def test_missing_path_param_is_a_type_error(make_client):
    client = make_client(lambda request: json_response(200, {}))
    with pytest.raises(TypeError):
        await client.get_app(None)
