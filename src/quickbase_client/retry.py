import email.utils as eut
import math
import random
import time
from collections.abc import Mapping
from typing import Union

from .types import RateLimitInfo, RetryConfig

# +/- fraction applied to every computed backoff delay
JITTER = 0.1


def calculate_backoff(attempt: int, retry: RetryConfig, rand=random.random) -> float:
    """Delay in seconds before retry number ``attempt`` (1-based)."""
    base = retry.initial_delay * retry.multiplier ** (attempt - 1)
    jitter = 1 + JITTER * (2 * rand() - 1)
    return min(base * jitter, retry.max_delay)


def _header(headers: Mapping[str, str], name: str) -> Union[str, None]:
    name = name.lower()
    for k, v in headers.items():
        if k.lower() == name:
            return v
    return None


def parse_retry_after(headers: Mapping[str, str], now: Union[float, None] = None) -> Union[float, None]:
    """Seconds to wait from a Retry-After header, or None when absent/unparseable.

    Accepts delta-seconds or an HTTP-date (RFC 7231).
    """
    ra = _header(headers, "retry-after")
    if ra is None:
        return None
    try:
        return max(0.0, float(ra))
    except ValueError:
        try:
            ts = eut.parsedate_to_datetime(ra)
        except (TypeError, ValueError):
            return None
        if ts is None:
            return None
        if now is None:
            now = time.time()
        # Round up to the next whole second so short delays don't come out too short
        return max(0.0, float(math.ceil(ts.timestamp() - now)))


def extract_rate_limit_info(headers: Mapping[str, str], request_url: str, attempt: int) -> RateLimitInfo:
    return RateLimitInfo(
        request_url=request_url,
        http_status=429,
        attempt=attempt,
        retry_after=parse_retry_after(headers),
        cf_ray=_header(headers, "cf-ray"),
        tid=_header(headers, "tid"),
        qb_api_ray=_header(headers, "qb-api-ray"),
    )
