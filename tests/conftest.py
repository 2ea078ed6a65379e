from __future__ import annotations

import pytest

from cachemap.cache import CacheMap
from cachemap.config import Settings


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, milliseconds: float) -> None:
        self.now += milliseconds / 1000


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> CacheMap:
    return CacheMap(settings=Settings(), clock=clock)
