"""Tests for the per-record lock table."""

from __future__ import annotations

import threading
import time

from galactica.memory import RecordLocks


def test_locks_are_released_from_table():
    locks = RecordLocks()

    with locks.hold("a"):
        with locks.hold("a"):
            assert len(locks) == 1

    assert len(locks) == 0


def test_same_record_is_serialised():
    locks = RecordLocks()
    events = []

    def worker(name: str) -> None:
        with locks.hold("shared"):
            events.append(f"{name}-in")
            time.sleep(0.02)
            events.append(f"{name}-out")

    threads = [threading.Thread(target=worker, args=(str(i),)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    for position in range(0, len(events), 2):
        assert events[position].endswith("-in")
        assert events[position + 1] == events[position].replace("-in", "-out")
    assert len(locks) == 0


def test_different_records_do_not_block():
    locks = RecordLocks()
    entered = threading.Event()

    def other() -> None:
        with locks.hold("b"):
            entered.set()

    with locks.hold("a"):
        thread = threading.Thread(target=other)
        thread.start()
        assert entered.wait(timeout=1.0)
    thread.join()
