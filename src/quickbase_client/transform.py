"""Alias <-> id rewriting of request bodies and response records."""

import re
from typing import Any, Union

from .errors import SchemaError
from .schema import SchemaResolver

# {alias.  {'alias'.  {"alias".  at the start of a where-clause condition
_WHERE_FIELD = re.compile(r"\{['\"]?([^.'\"}]+)['\"]?\.")


def _try_resolve_field(schema: SchemaResolver, table_id: str, ref) -> Union[int, str, None]:
    try:
        return schema.resolve_field_alias(table_id, ref)
    except SchemaError:
        return None


def transform_where(where: str, schema: SchemaResolver, table_id: str) -> str:
    def _sub(m: re.Match) -> str:
        field_id = _try_resolve_field(schema, table_id, m.group(1))
        # unknown refs stay as written; the API reports them
        return m.group(0) if field_id is None else f"{{{field_id}."

    return _WHERE_FIELD.sub(_sub, where)


def _transform_record_keys(record: dict, schema: SchemaResolver, table_id: str) -> dict:
    out = {}
    for key, value in record.items():
        field_id = _try_resolve_field(schema, table_id, key)
        out[str(field_id) if field_id is not None else key] = value
    return out


def transform_request(
    body: Any, schema: Union[SchemaResolver, None], table_id: Union[str, None] = None
) -> Any:
    """Resolve table and field aliases in a JSON request body.

    Handles ``from``/``to``, ``select``, ``sortBy``, ``groupBy``, ``where``
    and upsert ``data``. Bodies that are not dicts pass through untouched.
    """
    if schema is None or not isinstance(body, dict):
        return body

    result = dict(body)
    for key in ("from", "to"):
        if isinstance(result.get(key), str):
            table_id = schema.resolve_table_alias(result[key])
            result[key] = table_id

    if not table_id:
        return result

    if isinstance(result.get("select"), list):
        result["select"] = [schema.resolve_field_alias(table_id, f) for f in result["select"]]
    for key in ("sortBy", "groupBy"):
        if isinstance(result.get(key), list):
            result[key] = [
                {**item, "fieldId": schema.resolve_field_alias(table_id, item["fieldId"])}
                if isinstance(item, dict) and "fieldId" in item
                else item
                for item in result[key]
            ]
    if isinstance(result.get("where"), str):
        result["where"] = transform_where(result["where"], schema, table_id)
    if isinstance(result.get("data"), list):
        result["data"] = [
            _transform_record_keys(r, schema, table_id) if isinstance(r, dict) else r
            for r in result["data"]
        ]
    return result


def unwrap_field_value(value: Any) -> Any:
    if isinstance(value, dict) and "value" in value:
        return unwrap_field_value(value["value"])
    if isinstance(value, list):
        return [unwrap_field_value(v) for v in value]
    return value


def _transform_record_for_response(
    record: dict, schema: SchemaResolver, table_id: str
) -> dict:
    out = {}
    for key, value in record.items():
        alias = None
        try:
            alias = schema.get_field_alias(table_id, int(key))
        except (TypeError, ValueError):
            pass
        out[alias or key] = unwrap_field_value(value)
    return out


def transform_response(
    response: Any, schema: Union[SchemaResolver, None], table_id: Union[str, None]
) -> Any:
    """Rename numeric record keys to aliases and unwrap ``{"value": X}`` cells."""
    if schema is None or not table_id or not isinstance(response, dict):
        return response
    data = response.get("data")
    if not isinstance(data, list):
        return response
    return {
        **response,
        "data": [
            _transform_record_for_response(r, schema, table_id) if isinstance(r, dict) else r
            for r in data
        ],
    }
