"""
Unit tests for per-key locks.
"""

import threading

from focusloop.core.locks import KeyedLocks


class TestKeyedLocks:
    def test_entry_removed_after_release(self):
        locks = KeyedLocks()
        with locks.hold("student-1"):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_reentrant(self):
        locks = KeyedLocks()
        with locks.hold("skill-1"):
            with locks.hold("skill-1"):
                assert len(locks) == 1
        assert len(locks) == 0

    def test_same_key_serializes(self):
        locks = KeyedLocks()
        inside = threading.Event()
        release = threading.Event()
        order = []

        def first():
            with locks.hold("k"):
                inside.set()
                release.wait(timeout=2.0)
                order.append("first")

        def second():
            inside.wait(timeout=2.0)
            with locks.hold("k"):
                order.append("second")

        threads = [threading.Thread(target=first), threading.Thread(target=second)]
        for t in threads:
            t.start()
        inside.wait(timeout=2.0)
        release.set()
        for t in threads:
            t.join(timeout=2.0)

        assert order == ["first", "second"]
        assert len(locks) == 0

    def test_other_keys_proceed(self):
        locks = KeyedLocks()
        with locks.hold("a"):
            acquired = []
            worker = threading.Thread(target=lambda: acquired.append(_hold_briefly(locks, "b")))
            worker.start()
            worker.join(timeout=2.0)
        assert acquired == [True]


def _hold_briefly(locks, key):
    with locks.hold(key):
        return True
