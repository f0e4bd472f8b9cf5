"""Unit tests for core/security.py and core/counter.py."""

import secrets
import string
import threading

import pytest

from core.counter import AtomicCounter
from core.errors import EntropyError
from core.security import random_hex


class TestRandomHex:
    def test_length_is_twice_the_byte_count(self):
        assert len(random_hex(16)) == 32
        assert len(random_hex(64)) == 128

    def test_output_is_lowercase_hex(self):
        value = random_hex(32)
        assert set(value) <= set(string.hexdigits.lower())

    def test_zero_bytes_is_empty_string(self):
        assert random_hex(0) == ""

    def test_negative_length_rejected(self):
        with pytest.raises(ValueError):
            random_hex(-1)

    def test_values_differ(self):
        assert len({random_hex(16) for _ in range(50)}) == 50

    def test_missing_entropy_source_raises_entropy_error(self, monkeypatch):
        def broken(n):
            raise NotImplementedError("no urandom")

        monkeypatch.setattr(secrets, "token_bytes", broken)
        with pytest.raises(EntropyError):
            random_hex(8)


class TestAtomicCounter:
    def test_post_increment(self):
        counter = AtomicCounter()
        assert counter.next() == 0
        assert counter.next() == 1
        assert counter.value == 2

    def test_concurrent_increments_are_not_lost(self):
        counter = AtomicCounter()
        seen: list[int] = []
        lock = threading.Lock()

        def worker():
            for _ in range(500):
                value = counter.next()
                with lock:
                    seen.append(value)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(seen) == list(range(4000))
