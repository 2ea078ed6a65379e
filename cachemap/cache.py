from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterator, MutableMapping
from typing import Any

from cachemap.config import Settings, get_settings
from cachemap.expiration import (
    Clock,
    StalenessRecord,
    is_absent,
    normalize_expiration,
    renew_expiration,
    require_expiration,
)
from cachemap.utils import as_key_list, materialize, materialize_async

logger = logging.getLogger("cachemap")

_MISSING: Any = object()


class CacheMap(MutableMapping):
    """Dict-like cache; keys with a StalenessRecord expire on the next write."""

    def __init__(
        self,
        entries: Any = None,
        *,
        settings: Settings | None = None,
        clock: Clock = time.time,
    ) -> None:
        self.settings = settings if settings is not None else get_settings()
        self._clock = clock
        self._store: dict[Any, Any] = dict(entries) if entries is not None else {}
        self._metadata: dict[Any, StalenessRecord] = {}
        self._expiration_enabled = True
        self._expiration_disabled_keys: set[Any] = set()
        self._inflight: dict[Any, asyncio.Future[Any]] = {}

    # Mapping protocol

    def __getitem__(self, key: Any) -> Any:
        return self._store[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        self._store[key] = value

    def __delitem__(self, key: Any) -> None:
        del self._store[key]
        if self.settings.drop_metadata_on_delete:
            self._metadata.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def __iter__(self) -> Iterator[Any]:
        return iter(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._store!r})"

    def set(self, key: Any, value: Any) -> CacheMap:
        self._store[key] = value
        return self

    def has(self, key: Any) -> bool:
        return key in self._store

    def delete(self, key: Any) -> bool:
        if key not in self._store:
            return False
        del self[key]
        return True

    @property
    def size(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        if self.settings.drop_metadata_on_delete:
            for key in self._store:
                self._metadata.pop(key, None)
        self._store.clear()

    def pull(self, key: Any, default: Any = None) -> Any:
        if key not in self._store:
            return default
        value = self._store[key]
        del self[key]
        return value

    # Expiration metadata

    def get_expiration(self, key: Any) -> StalenessRecord | None:
        return self._metadata.get(key)

    def set_expiration(self, key: Any, expires_on: Any, delete_if_stale: bool = True) -> None:
        record = normalize_expiration(require_expiration(expires_on), self._clock)
        self._metadata[key] = record
        logger.debug("Expiration set for %r: %r", key, record.raw)

        if not delete_if_stale or key not in self._store or self._active_record(key) is None:
            return

        current = self._store[key]
        if record(current, current):
            self._evict(key)

    def clear_metadata(self, key: Any = _MISSING) -> None:
        """Forget the expiration of ``key``, or of every key when omitted."""
        if key is _MISSING:
            self._metadata.clear()
            logger.debug("All expiration metadata cleared")
            return

        self._metadata.pop(key, None)
        logger.debug("Expiration metadata cleared for %r", key)

    def is_stale(self, key: Any, value: Any = _MISSING) -> bool:
        # Missing keys are stale, keys without an active expiration never are.
        if key not in self._store:
            return True

        record = self._active_record(key)
        if record is None:
            return False

        current = self._store[key]
        return record(current if value is _MISSING else value, current)

    def disable_expiration(self, keys: Any = _MISSING) -> None:
        self.toggle_expiration(keys, enabled=False)

    def enable_expiration(self, keys: Any = _MISSING) -> None:
        self.toggle_expiration(keys, enabled=True)

    def toggle_expiration(self, keys: Any = _MISSING, enabled: bool | None = None) -> None:
        # A global enable also re-enables keys disabled one by one.
        if keys is _MISSING:
            self._expiration_enabled = not self._expiration_enabled if enabled is None else enabled
            if self._expiration_enabled:
                self._expiration_disabled_keys.clear()
            return

        for key in as_key_list(keys):
            disabled = key in self._expiration_disabled_keys
            turn_on = disabled if enabled is None else enabled
            if turn_on:
                self._expiration_disabled_keys.discard(key)
            else:
                self._expiration_disabled_keys.add(key)

    def is_expiration_enabled(self, key: Any = _MISSING) -> bool:
        if key is _MISSING:
            return self._expiration_enabled
        return self._expiration_enabled and key not in self._expiration_disabled_keys

    # Conditional writes

    def add(self, key: Any, value: Any, expires_on: Any = None) -> CacheMap:
        if expires_on is None:
            expires_on = self._active_record(key)

        if not is_absent(expires_on):
            self._refresh(key, value, expires_on)

        if key not in self._store:
            self._store[key] = materialize(value)
        return self

    def add_until(self, key: Any, value: Any, expires_on: Any) -> CacheMap:
        return self.add(key, value, require_expiration(expires_on))

    def remember(self, key: Any, value: Any, expires_on: Any = None) -> Any:
        return self.add(key, value, expires_on).get(key)

    def remember_until(self, key: Any, value: Any, expires_on: Any) -> Any:
        return self.remember(key, value, require_expiration(expires_on))

    def remember_during(self, key: Any, value: Any, expires_on: Any) -> Any:
        # Check against the current deadline before sliding it forward.
        if key in self._store and self.is_stale(key, value):
            self._evict(key)

        self.set_expiration(key, expires_on)
        return self.remember(key, value)

    async def remember_async(self, key: Any, value: Any, expires_on: Any = None) -> Any:
        # Overlapping calls each run the producer unless dedupe_async_producers is set.
        if expires_on is None:
            expires_on = self._active_record(key)

        if not is_absent(expires_on):
            self._refresh(key, value, expires_on)

        if key in self._store:
            return self._store[key]

        if not self.settings.dedupe_async_producers:
            return await self._produce(key, value)

        pending = self._inflight.get(key)
        if pending is not None:
            logger.debug("Awaiting in-flight producer for %r", key)
            return await asyncio.shield(pending)

        pending = asyncio.ensure_future(self._produce(key, value))
        self._inflight[key] = pending
        pending.add_done_callback(lambda done: self._forget_inflight(key, done))
        return await asyncio.shield(pending)

    # Internals

    def _active_record(self, key: Any) -> StalenessRecord | None:
        if not self._expiration_enabled or key in self._expiration_disabled_keys:
            return None
        return self._metadata.get(key)

    def _refresh(self, key: Any, value: Any, expires_on: Any) -> None:
        stale = self.is_stale(key, value)

        if stale and key in self._store:
            self._evict(key)

        if stale or key not in self._metadata:
            self._metadata[key] = normalize_expiration(renew_expiration(expires_on), self._clock)

    def _evict(self, key: Any) -> None:
        self._store.pop(key, None)
        logger.debug("Evicted stale entry %r", key)

    async def _produce(self, key: Any, value: Any) -> Any:
        result = await materialize_async(value)
        self._store[key] = result
        return result

    def _forget_inflight(self, key: Any, done: asyncio.Future[Any]) -> None:
        if not done.cancelled():
            done.exception()
        if self._inflight.get(key) is done:
            del self._inflight[key]
