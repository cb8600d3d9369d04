from __future__ import annotations

from architect.tools.cache import TtlCache

from tests.helpers.stubs import FakeClock


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    cache: TtlCache[str] = TtlCache(default_ttl=15.0, clock=clock)
    cache.set("user:get_tasks:{}", "value")

    clock.advance(14.9)
    assert cache.get("user:get_tasks:{}") == "value"

    clock.advance(0.2)
    assert cache.get("user:get_tasks:{}") is None
    assert len(cache) == 0


def test_full_cache_evicts_oldest_key() -> None:
    cache: TtlCache[int] = TtlCache(max_size=2, default_ttl=60.0, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)

    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_non_positive_ttl_is_not_stored() -> None:
    cache: TtlCache[int] = TtlCache(clock=FakeClock())
    cache.set("a", 1, ttl=0)

    assert "a" not in cache


def test_invalidate_prefix_only_drops_matching_keys() -> None:
    cache: TtlCache[int] = TtlCache(clock=FakeClock())
    cache.set("alice:get_tasks:{}", 1)
    cache.set("alice:get_projects:{}", 2)
    cache.set("bob:get_tasks:{}", 3)

    assert cache.invalidate_prefix("alice:") == 2
    assert cache.get("bob:get_tasks:{}") == 3
    assert len(cache) == 1


def test_entry_is_expired_at_exactly_its_deadline() -> None:
    clock = FakeClock()
    cache: TtlCache[str] = TtlCache(default_ttl=15.0, clock=clock)
    cache.set("user:get_tasks:{}", "value")

    clock.advance(15.0)

    assert cache.get("user:get_tasks:{}") is None
