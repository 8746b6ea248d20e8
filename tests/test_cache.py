"""
Tests for the parameter-keyed output cache.
"""

from encounter.cache import cache_key, has_record, is_fresh, record


def test_key_depends_on_params(tmp_path):
    data = tmp_path / "input.txt"
    data.write_text("a")
    assert cache_key({"x": 1}, [data]) == cache_key({"x": 1}, [data])
    assert cache_key({"x": 1}, [data]) != cache_key({"x": 2}, [data])


def test_key_depends_on_inputs(tmp_path):
    data = tmp_path / "input.txt"
    data.write_text("a")
    before = cache_key({}, [data])
    data.write_text("abc")
    assert cache_key({}, [data]) != before


def test_fresh_only_after_record(tmp_path):
    out = tmp_path / "out.csv"
    key = cache_key({"x": 1})
    assert not is_fresh([out], key)

    out.write_text("result")
    # Output without a recorded key is stale
    assert not is_fresh([out], key)

    record([out], key)
    assert is_fresh([out], key)
    assert not is_fresh([out], cache_key({"x": 2}))


def test_has_record(tmp_path):
    out = tmp_path / "out.csv"
    out.write_text("result")
    assert not has_record([out])

    record([out], cache_key({}))
    assert has_record([out])

    out.unlink()
    assert not has_record([out])


def test_missing_output_is_stale(tmp_path):
    first, second = tmp_path / "a.csv", tmp_path / "b.csv"
    first.write_text("a")
    key = cache_key({})
    record([first, second], key)
    assert not is_fresh([first, second], key)
