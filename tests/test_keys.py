# python
"""
tests/test_keys.py
Unit tests for the auto key generator ordering guarantees.
"""
import random

from livetree.keys import PUSH_CHARS, PushKeyGenerator


def test_alphabet_is_ascii_sorted() -> None:
    assert list(PUSH_CHARS) == sorted(PUSH_CHARS)
    assert len(PUSH_CHARS) == 64


def test_keys_are_twenty_chars_from_alphabet() -> None:
    key = PushKeyGenerator().next_key()
    assert len(key) == 20
    assert set(key) <= set(PUSH_CHARS)


def test_same_millisecond_keys_are_strictly_increasing() -> None:
    gen = PushKeyGenerator(clock=lambda: 1_700_000_000.0, rng=random.Random(7))
    keys = [gen.next_key() for _ in range(500)]
    assert keys == sorted(keys)
    assert len(set(keys)) == len(keys)
    assert len({k[:8] for k in keys}) == 1


def test_later_timestamps_sort_after_earlier_ones() -> None:
    now = [1_700_000_000.0]
    gen = PushKeyGenerator(clock=lambda: now[0], rng=random.Random(1))
    first = gen.next_key()
    now[0] += 0.001
    second = gen.next_key()
    now[0] += 3600
    third = gen.next_key()
    assert first < second < third


def test_prefix_encodes_timestamp() -> None:
    gen = PushKeyGenerator(clock=lambda: 0.0, rng=random.Random(3))
    assert gen.next_key()[:8] == "--------"
