"""Tests for the judgment TTL cache."""

from __future__ import annotations

import pytest

from echo_pdk.ai_judge import JudgeCache, default_judge_cache
from echo_pdk.constants import JUDGE_CACHE_TTL_SECONDS


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class TestJudgeCache:
    def test_default_ttl_is_five_minutes(self) -> None:
        assert JudgeCache().ttl == JUDGE_CACHE_TTL_SECONDS == 300.0

    def test_hit_within_ttl(self, clock: FakeClock) -> None:
        cache = JudgeCache(ttl=300, clock=clock)
        cache.set("k", True)
        clock.now += 300
        assert cache.get("k") is True

    def test_expired_after_ttl(self, clock: FakeClock) -> None:
        cache = JudgeCache(ttl=300, clock=clock)
        cache.set("k", False)
        clock.now += 300.001
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_false_is_a_hit_not_a_miss(self, clock: FakeClock) -> None:
        cache = JudgeCache(clock=clock)
        cache.set("k", False)
        assert cache.get("k") is False

    def test_set_refreshes_timestamp(self, clock: FakeClock) -> None:
        cache = JudgeCache(ttl=10, clock=clock)
        cache.set("k", True)
        clock.now += 8
        cache.set("k", True)
        clock.now += 8
        assert cache.get("k") is True

    def test_clear(self) -> None:
        cache = JudgeCache()
        cache.set("a", True)
        cache.set("b", False)
        cache.clear()
        assert len(cache) == 0

    @pytest.mark.parametrize("ttl", [0, -1])
    def test_ttl_must_be_positive(self, ttl: float) -> None:
        with pytest.raises(ValueError, match="positive"):
            JudgeCache(ttl=ttl)


def test_default_cache_is_shared() -> None:
    assert default_judge_cache() is default_judge_cache()
