from collections.abc import Mapping
from typing import Any, Union

from .errors import SchemaError

# Maximum edit distance for "did you mean" suggestions
MAX_SUGGESTION_DISTANCE = 3
# Above this many aliases the error message stops listing them
MAX_LISTED_ALIASES = 10


def _levenshtein(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + (ca != cb)))
        prev = cur
    return prev[-1]


def find_similar(
    value: str, candidates, max_distance: int = MAX_SUGGESTION_DISTANCE
) -> Union[str, None]:
    """Closest candidate by case-insensitive edit distance, or None if too far."""
    best, best_distance = None, max_distance + 1
    lowered = value.lower()
    for candidate in candidates:
        distance = _levenshtein(lowered, candidate.lower())
        if distance < best_distance:
            best, best_distance = candidate, distance
    return best


def _parse_field_id(ref: str) -> Union[int, None]:
    try:
        return int(ref.strip())
    except ValueError:
        return None


class SchemaResolver:
    """Bidirectional alias <-> id lookup built once from a schema document.

    The document looks like::

        {"tables": {"orders": {"id": "bqxyz123", "fields": {"total": 7}}}}

    Table aliases are global; field aliases are scoped to their table.
    """

    def __init__(self, document: Union[Mapping[str, Any], None] = None):
        self.document = document
        self.table_alias_to_id: dict[str, str] = {}
        self.table_id_to_alias: dict[str, str] = {}
        self.field_alias_to_id: dict[str, dict[str, int]] = {}
        self.field_id_to_alias: dict[str, dict[int, str]] = {}
        if document is not None:
            self._build(document)

    def _build(self, document: Mapping[str, Any]) -> None:
        tables = document.get("tables")
        if not isinstance(tables, Mapping):
            raise SchemaError("Schema document must contain a 'tables' mapping")
        for table_alias, table in tables.items():
            table_id = table.get("id") if isinstance(table, Mapping) else None
            if not table_id:
                raise SchemaError(f"Table '{table_alias}' is missing an 'id'")
            if table_id in self.table_id_to_alias:
                raise SchemaError(
                    f"Table id '{table_id}' is mapped by both "
                    f"'{self.table_id_to_alias[table_id]}' and '{table_alias}'"
                )
            self.table_alias_to_id[table_alias] = table_id
            self.table_id_to_alias[table_id] = table_alias

            alias_to_id: dict[str, int] = {}
            id_to_alias: dict[int, str] = {}
            for field_alias, field_id in (table.get("fields") or {}).items():
                field_id = int(field_id)
                if field_id in id_to_alias:
                    raise SchemaError(
                        f"Field id {field_id} in table '{table_alias}' is mapped by both "
                        f"'{id_to_alias[field_id]}' and '{field_alias}'"
                    )
                alias_to_id[field_alias] = field_id
                id_to_alias[field_id] = field_alias
            self.field_alias_to_id[table_id] = alias_to_id
            self.field_id_to_alias[table_id] = id_to_alias

    @property
    def configured(self) -> bool:
        return self.document is not None

    # ---------- forward lookups ----------
    def resolve_table_alias(self, ref: str) -> str:
        if not self.configured:
            return ref
        table_id = self.table_alias_to_id.get(ref)
        if table_id is not None:
            return table_id
        if ref in self.table_id_to_alias:
            return ref

        aliases = list(self.table_alias_to_id)
        suggestion = find_similar(ref, aliases)
        message = f"Unknown table alias '{ref}'."
        if suggestion:
            message += f" Did you mean '{suggestion}'?"
        if aliases and len(aliases) <= MAX_LISTED_ALIASES:
            message += f" Available: {', '.join(aliases)}"
        raise SchemaError(message, suggestion)

    def resolve_field_alias(self, table_id: str, ref: Union[str, int]) -> Union[int, str]:
        if isinstance(ref, int):
            return ref
        if not self.configured:
            # nothing to resolve against; let the API judge the value
            parsed = _parse_field_id(ref)
            return ref if parsed is None else parsed

        field_map = self.field_alias_to_id.get(table_id, {})
        field_id = field_map.get(ref)
        if field_id is not None:
            return field_id
        parsed = _parse_field_id(ref)
        if parsed is not None:
            return parsed

        suggestion = find_similar(ref, field_map)
        table_label = self.table_id_to_alias.get(table_id, table_id)
        message = f"Unknown field alias '{ref}' in table '{table_label}'."
        if suggestion:
            message += f" Did you mean '{suggestion}'?"
        raise SchemaError(message, suggestion)

    # ---------- reverse lookups ----------
    def get_table_alias(self, table_id: str) -> Union[str, None]:
        return self.table_id_to_alias.get(table_id)

    def get_field_alias(self, table_id: str, field_id: int) -> Union[str, None]:
        return self.field_id_to_alias.get(table_id, {}).get(field_id)


def resolve_schema(document: Union[Mapping[str, Any], None]) -> Union[SchemaResolver, None]:
    if document is None:
        return None
    if isinstance(document, SchemaResolver):
        return document
    return SchemaResolver(document)
