from conftest import FakeClock
from task_router.cache import ResponseCache, make_key
from task_router.models import Mode, SchemaName, TaskId


def test_key_is_deterministic_and_content_sensitive():
    key = make_key("quiz_generate", "quiz", "cheap", "prompt")

    assert key == make_key(TaskId.QUIZ_GENERATE, SchemaName.QUIZ, Mode.CHEAP, "prompt")
    assert key != make_key("quiz_generate", "quiz", "cheap", "prompt!")
    assert key != make_key("quiz_generate", "quiz", None, "prompt")
    assert len(key) == 64


def test_get_returns_stored_value():
    cache = ResponseCache()
    cache.set("k", {"a": 1})

    assert cache.get("k") == {"a": 1}
    assert cache.get("missing") is None


def test_entry_expires_lazily():
    clock = FakeClock()
    cache = ResponseCache(default_ttl_ms=1000, clock=clock)
    cache.set("k", "v")

    clock.advance(1.0)
    assert cache.get("k") == "v"
    assert len(cache) == 1

    clock.advance(0.001)
    assert cache.get("k") is None
    assert len(cache) == 0


def test_per_entry_ttl_override():
    clock = FakeClock()
    cache = ResponseCache(clock=clock)
    cache.set("k", "v", ttl_ms=10)

    clock.advance(0.02)
    assert cache.get("k") is None


def test_values_are_copied_in_and_out():
    cache = ResponseCache()
    value = {"items": [1]}
    cache.set("k", value)
    value["items"].append(2)

    fetched = cache.get("k")
    fetched["items"].append(3)

    assert cache.get("k") == {"items": [1]}


def test_delete_and_clear():
    cache = ResponseCache()
    cache.set("a", 1)
    cache.set("b", 2)

    cache.delete("a")
    assert cache.get("a") is None
    cache.clear()
    assert len(cache) == 0
