"""Unit tests for per-resource locking."""
import threading
import time

from common.locks import ResourceLockRegistry, advisory_key


def test_same_resource_shares_a_lock():
    registry = ResourceLockRegistry()

    assert registry.lock_for("room-1") is registry.lock_for("room-1")
    assert registry.lock_for("room-1") is not registry.lock_for("room-2")
    assert len(registry) == 2


def test_advisory_key_is_stable_signed_int32():
    key = advisory_key("room-1")

    assert key == advisory_key("room-1")
    assert -(2**31) <= key < 2**31
    assert advisory_key("room-1") != advisory_key("room-2")


def test_lock_serializes_critical_sections():
    registry = ResourceLockRegistry()
    active = []
    overlaps = []

    def critical():
        with registry.lock_for("room-1"):
            active.append(1)
            if len(active) > 1:
                overlaps.append(True)
            time.sleep(0.01)
            active.pop()

    threads = [threading.Thread(target=critical) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert overlaps == []
