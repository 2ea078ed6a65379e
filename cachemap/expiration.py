from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

logger = logging.getLogger("cachemap")

Clock = Callable[[], float]
StalePredicate = Callable[[Any, Any], bool]


class MissingExpirationError(ValueError):
    """Raised when an operation that requires an expiration receives none."""


@dataclass(frozen=True)
class StalenessRecord:
    """Normalized expiration of one cache key.

    ``is_stale(new_value, old_value)`` decides whether the cached entry must be
    evicted before ``new_value`` is considered. ``raw`` keeps the expiration as
    it was supplied, before normalization.
    """

    is_stale: StalePredicate
    raw: Any = None

    def __call__(self, new_value: Any, old_value: Any) -> bool:
        return bool(self.is_stale(new_value, old_value))


def _stale_after(deadline: float, clock: Clock) -> StalePredicate:
    def is_stale(new_value: Any, old_value: Any) -> bool:
        return clock() > deadline

    return is_stale


def is_absent(expires_on: Any) -> bool:
    if expires_on is None or expires_on is False:
        return True
    # Zero durations still expire.
    if isinstance(expires_on, (int, float, timedelta)):
        return False
    return not expires_on


def normalize_expiration(expires_on: Any, clock: Clock = time.time) -> StalenessRecord | None:
    """Turn an expiration into a :class:`StalenessRecord`.

    Accepted shapes:

    - ``int``/``float``: a duration in milliseconds, counted from now;
    - ``timedelta``: a duration, counted from now;
    - ``datetime``: the moment after which the entry is stale;
    - a callable ``(new_value, old_value) -> bool``, used as-is;
    - an existing :class:`StalenessRecord`, returned unchanged.

    Durations are turned into a deadline once, here, and not on every check.
    ``None``, ``False`` and empty values mean "never expires" and return ``None``.
    """
    if is_absent(expires_on):
        return None

    if isinstance(expires_on, StalenessRecord):
        return expires_on

    if isinstance(expires_on, timedelta):
        return StalenessRecord(_stale_after(clock() + expires_on.total_seconds(), clock), raw=expires_on)

    if isinstance(expires_on, (int, float)) and not isinstance(expires_on, bool):
        return StalenessRecord(_stale_after(clock() + expires_on / 1000, clock), raw=expires_on)

    if isinstance(expires_on, datetime):
        return StalenessRecord(_stale_after(expires_on.timestamp(), clock), raw=expires_on)

    if not callable(expires_on):
        logger.warning("Unrecognized expiration %r (%s) used as a staleness predicate.", expires_on, type(expires_on).__name__)

    return StalenessRecord(expires_on, raw=expires_on)


def renew_expiration(expires_on: Any) -> Any:
    """Unwrap a duration record so its deadline restarts from now."""
    if isinstance(expires_on, StalenessRecord) and isinstance(expires_on.raw, (int, float, timedelta)):
        if not isinstance(expires_on.raw, bool):
            return expires_on.raw
    return expires_on


def require_expiration(expires_on: Any) -> Any:
    if is_absent(expires_on):
        raise MissingExpirationError("An expiration (duration, datetime or predicate) is required.")
    return expires_on
