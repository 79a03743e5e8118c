from datetime import date

from qmedia.cache import ResponseCache, etag_for
from qmedia.notify import COMPLETE, Notifier


def test_key_includes_caller_fingerprint_and_day() -> None:
    today = {"value": date(2024, 3, 1)}
    cache = ResponseCache(today=lambda: today["value"])
    key = cache.key("/api/timeline", "alice", "fp")
    assert key == "/api/timeline|alice|fp|20240301"
    assert cache.key("/api/timeline", "bob", "fp") != key
    today["value"] = date(2024, 3, 2)
    assert cache.key("/api/timeline", "alice", "fp") != key


def test_get_or_build_builds_once() -> None:
    cache = ResponseCache()
    calls: list[int] = []

    def build() -> bytes:
        calls.append(1)
        return b'{"total": 1}'

    key = cache.key("/api/gear")
    first = cache.get_or_build(key, build)
    second = cache.get_or_build(key, build)
    assert first == second
    assert len(calls) == 1
    assert first.etag == etag_for(b'{"total": 1}')


def test_conditional_requests() -> None:
    cache = ResponseCache()
    key = cache.key("/api/tags")
    entry = cache.put(key, b"[]")
    assert cache.is_not_modified(key, entry.etag)
    assert cache.is_not_modified(key, f'"other", {entry.etag}')
    assert cache.is_not_modified(key, "*")
    assert not cache.is_not_modified(key, '"other"')
    assert not cache.is_not_modified(key, None)
    assert not cache.is_not_modified(cache.key("/api/unknown"), entry.etag)


def test_dev_mode_never_short_circuits() -> None:
    cache = ResponseCache(dev=True)
    key = cache.key("/api/tags")
    entry = cache.put(key, b"[]")
    assert not cache.is_not_modified(key, entry.etag)


def test_flush_drops_everything() -> None:
    cache = ResponseCache()
    key = cache.key("/api/tags")
    cache.put(key, b"[]")
    cache.put(cache.key("/api/gear"), b"{}")
    cache.flush()
    assert len(cache) == 0
    assert cache.get(key) is None
    assert cache.etag(key) is None


def test_body_built_across_a_flush_is_not_stored() -> None:
    cache = ResponseCache()
    key = cache.key("/api/timeline")

    def build() -> bytes:
        cache.flush()
        return b"old-snapshot"

    served = cache.get_or_build(key, build)
    assert served.body == b"old-snapshot"
    assert cache.get(key) is None
    assert cache.get_or_build(key, lambda: b"fresh").body == b"fresh"
    assert cache.get(key).body == b"fresh"


def test_etags_follow_lru_eviction() -> None:
    cache = ResponseCache(max_entries=2)
    keys = [cache.key(f"/api/folder/{n}") for n in range(100)]
    for n, key in enumerate(keys):
        cache.put(key, str(n).encode())
    assert len(cache) == 2
    assert cache.etag(keys[0]) is None
    assert cache.etag(keys[-1]) == etag_for(b"99")
    assert not cache.is_not_modified(keys[0], etag_for(b"0"))


def test_notifier_fans_out_and_survives_bad_subscriber() -> None:
    notifier = Notifier(history=2)
    seen: list[str] = []

    def broken(notice) -> None:
        raise RuntimeError("boom")

    unsubscribe = notifier.subscribe(lambda n: seen.append(n.message))
    notifier.subscribe(broken)
    notifier.notify("one")
    notifier.notify("two")
    unsubscribe()
    notifier.notify("three", COMPLETE)
    assert seen == ["one", "two"]
    assert [n.message for n in notifier.recent()] == ["two", "three"]
    assert notifier.last().phase == COMPLETE
