from core.cache import TTLCache


def test_entries_expire_after_ttl(clock):
    cache = TTLCache(clock=clock)
    cache.set("k", "v", ttl=10)

    clock.advance(9)
    assert cache.get("k") == "v"
    assert cache.ttl("k") == 1

    clock.advance(1)
    assert cache.get("k") is None
    assert cache.ttl("k") is None
    assert "k" not in cache


def test_incr_counts_and_slides_expiry(clock):
    cache = TTLCache(clock=clock)

    assert cache.incr("hits", ttl=60) == 1
    clock.advance(50)
    assert cache.incr("hits", ttl=60) == 2
    # Still alive 50s later because the second hit pushed the expiry
    clock.advance(50)
    assert cache.incr("hits", ttl=60) == 3

    clock.advance(61)
    assert cache.incr("hits", ttl=60) == 1


def test_pop_removes_entry(clock):
    cache = TTLCache(clock=clock)
    cache.set("challenge", {"user": 1}, ttl=300)

    assert cache.pop("challenge") == {"user": 1}
    assert cache.pop("challenge") is None


def test_pop_of_expired_entry_returns_default(clock):
    cache = TTLCache(clock=clock)
    cache.set("challenge", 1, ttl=5)
    clock.advance(5)

    assert cache.pop("challenge", "gone") == "gone"


def test_maxsize_evicts_soonest_to_expire(clock):
    cache = TTLCache(maxsize=2, clock=clock)
    cache.set("short", 1, ttl=10)
    cache.set("long", 2, ttl=100)

    cache.set("new", 3, ttl=50)

    assert len(cache) == 2
    assert cache.get("short") is None
    assert cache.get("long") == 2
    assert cache.get("new") == 3


def test_maxsize_prefers_purging_expired_entries(clock):
    cache = TTLCache(maxsize=2, clock=clock)
    cache.set("a", 1, ttl=1)
    cache.set("b", 2, ttl=100)
    clock.advance(2)

    cache.set("c", 3, ttl=1)

    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_delete_and_clear(clock):
    cache = TTLCache(clock=clock)
    cache.set("a", 1, ttl=10)
    cache.set("b", 2, ttl=10)

    cache.delete("a")
    cache.delete("missing")
    assert "a" not in cache
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0
