"""Driving QuickBase's two pagination styles.

Offset-style responses carry ``metadata.totalRecords/numRecords/skip``; the
next page is requested with ``skip`` advanced by the records just received.
Cursor-style responses carry ``nextPageToken`` (or ``nextToken``), which is
echoed back on the next request.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Union

TOKEN_KEYS = ("nextPageToken", "nextToken")

Cursor = dict[str, Any]
FetchPage = Callable[[Union[Cursor, None]], Awaitable[Any]]


def find_data_key(page: dict) -> Union[str, None]:
    if isinstance(page.get("data"), list):
        return "data"
    for key, value in page.items():
        if key != "metadata" and isinstance(value, list):
            return key
    return None


def next_cursor(page: Any) -> Union[Cursor, None]:
    """Cursor for the page after ``page``, or None when it was the last one."""
    if not isinstance(page, dict):
        return None
    meta = page.get("metadata") if isinstance(page.get("metadata"), dict) else {}
    for name in TOKEN_KEYS:
        token = meta.get(name) or page.get(name)
        if token:
            return {name: token}
    total, num = meta.get("totalRecords"), meta.get("numRecords")
    if isinstance(total, int) and isinstance(num, int) and num > 0:
        skip = meta.get("skip") or 0
        if skip + num < total:
            return {"skip": skip + num}
    return None


def merge_pages(first: dict, key: str, records: list) -> dict:
    merged = {k: v for k, v in first.items() if k not in TOKEN_KEYS}
    merged[key] = records
    meta = first.get("metadata")
    if isinstance(meta, dict):
        meta = {k: v for k, v in meta.items() if k not in TOKEN_KEYS}
        meta["numRecords"] = len(records)
        merged["metadata"] = meta
    return merged


def apply_cursor_to_body(body: Union[dict, None], cursor: Cursor) -> dict:
    body = dict(body or {})
    if "skip" in cursor:
        body["options"] = {**(body.get("options") or {}), "skip": cursor["skip"]}
    else:
        body.update(cursor)
    return body


def apply_cursor_to_query(query: Union[dict, None], cursor: Cursor) -> dict:
    return {**(query or {}), **cursor}


class PaginatedRequest:
    """Awaitable handle on a paginated operation.

    ``await req`` fetches one page, or everything when the client was built
    with ``auto_paginate=True``. ``all()``, ``paginate(limit)`` and
    ``no_paginate()`` choose explicitly and win over the client setting.
    """

    def __init__(
        self,
        fetch_page: FetchPage,
        auto_paginate: bool = False,
        logger: Union[logging.Logger, None] = None,
    ):
        self._fetch_page = fetch_page
        self.auto_paginate = auto_paginate
        self._logger = logger or logging.getLogger("quickbase_client")

    def __await__(self):
        coro = self.all() if self.auto_paginate else self.no_paginate()
        return coro.__await__()

    async def no_paginate(self) -> Any:
        return await self._fetch_page(None)

    async def all(self) -> Any:
        return await self.paginate()

    async def paginate(self, limit: Union[int, None] = None) -> Any:
        if limit is not None and limit < 0:
            raise ValueError("limit must be >= 0")
        first = await self._fetch_page(None)
        if not isinstance(first, dict):
            return first
        key = find_data_key(first)
        if key is None:
            return first

        records = list(first[key])
        page, pages = first, 1
        while limit is None or len(records) < limit:
            cursor = next_cursor(page)
            if cursor is None:
                break
            self._logger.debug(f"page fetch n={pages + 1} cursor={cursor} collected={len(records)}")
            page = await self._fetch_page(cursor)
            items = page.get(key) if isinstance(page, dict) else None
            if not items:
                break
            records.extend(items)
            pages += 1

        if limit is not None:
            records = records[:limit]
        self._logger.debug(f"pagination done pages={pages} records={len(records)}")
        return merge_pages(first, key, records)
