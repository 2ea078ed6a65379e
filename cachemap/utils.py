from __future__ import annotations

import inspect
from typing import Any


def is_producer(value: Any) -> bool:
    return callable(value)


def materialize(value: Any) -> Any:
    """Run a zero-argument producer, or return a direct value unchanged."""
    if is_producer(value):
        return value()
    return value


async def materialize_async(value: Any) -> Any:
    result = materialize(value)
    if inspect.isawaitable(result):
        result = await result
    return result


def as_key_list(keys: Any) -> list[Any]:
    if isinstance(keys, (list, set, frozenset)):
        return list(keys)
    return [keys]
