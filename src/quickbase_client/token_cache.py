import time
from dataclasses import dataclass
from typing import Union

from .types import DEFAULT_TOKEN_LIFESPAN


@dataclass
class TokenCacheEntry:
    token: str
    expires_at: float


class TokenCache:
    """Per-client map of resource id -> short-lived token.

    Expired entries are evicted lazily on read; there is no background sweep.
    """

    def __init__(self, ttl: float = DEFAULT_TOKEN_LIFESPAN):
        self.ttl = ttl
        self._entries: dict[str, TokenCacheEntry] = {}

    def _now(self) -> float:
        return time.monotonic()

    def get(self, resource_id: str) -> Union[str, None]:
        entry = self._entries.get(resource_id)
        if entry is None:
            return None
        if entry.expires_at <= self._now():
            del self._entries[resource_id]
            return None
        return entry.token

    def set(self, resource_id: str, token: str, ttl: Union[float, None] = None) -> None:
        lifespan = self.ttl if ttl is None else ttl
        self._entries[resource_id] = TokenCacheEntry(token, self._now() + lifespan)

    def delete(self, resource_id: str) -> bool:
        return self._entries.pop(resource_id, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def time_to_expiry(self, resource_id: str) -> Union[float, None]:
        entry = self._entries.get(resource_id)
        if entry is None:
            return None
        remaining = entry.expires_at - self._now()
        return remaining if remaining > 0 else None

    def __contains__(self, resource_id: str) -> bool:
        return self.get(resource_id) is not None

    def __len__(self) -> int:
        now = self._now()
        for rid in [k for k, e in self._entries.items() if e.expires_at <= now]:
            del self._entries[rid]
        return len(self._entries)
