import enum
import math
import random
import secrets
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import httpx

# Nominal waits, in seconds, for successive outer retries. The last entry is
# reused once the table is exhausted.
BACKOFF_INTERVALS = (2, 4, 8, 16, 32)

EXPONENTIAL_BACKOFF_MIN_WAIT = 1.0
EXPONENTIAL_BACKOFF_MAX_WAIT = 60.0


class BackoffMode(enum.Enum):
    STANDARD = "standard"
    EXPONENTIAL_BACKOFF = "exponential_backoff"


def _seeded_random() -> random.Random:
    try:
        seed = secrets.randbits(63)
    except NotImplementedError:
        seed = time.time_ns()
    return random.Random(seed)


_random = _seeded_random()


def default_random() -> random.Random:
    return _random


def interval_for_attempt(attempt: int) -> int:
    if attempt >= len(BACKOFF_INTERVALS):
        return BACKOFF_INTERVALS[-1]
    return BACKOFF_INTERVALS[attempt]


def jittered_wait(interval: int, rng: Optional[random.Random] = None) -> int:
    """Return a wait in whole seconds between ``interval / 2`` and ``interval``."""
    source = rng if rng is not None else _random
    return int(math.floor(((interval * (1 + source.random())) / 2) + 0.5))


def transport_wait(
    attempt: int,
    min_wait: float,
    max_wait: float,
    response: Optional[httpx.Response] = None,
) -> float:
    if response is not None and response.status_code in (429, 503):
        retry_after = retry_after_seconds(response)
        if retry_after is not None:
            return min(retry_after, max_wait)

    wait = min_wait * (2**attempt)
    return min(wait, max_wait)


def retry_after_seconds(response: httpx.Response) -> Optional[float]:
    """Seconds requested by a ``Retry-After`` header, in either of its forms."""
    value = response.headers.get("Retry-After", "").strip()
    if not value:
        return None
    if value.replace(".", "", 1).isdigit():
        return float(value)
    return _seconds_until(value)


def _seconds_until(http_date: str) -> Optional[float]:
    try:
        retry_at = parsedate_to_datetime(http_date)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max(0.0, (retry_at - datetime.now(timezone.utc)).total_seconds())
