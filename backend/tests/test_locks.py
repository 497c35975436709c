import threading
import time

import pytest

from voteroom.services.voting.locks import SessionLockManager


def test_hold_releases_and_discards_idle_entry():
    locks = SessionLockManager()
    with locks.hold('1234') as handle:
        assert locks.is_tracked('1234')
        assert not handle.released
    assert handle.released
    assert not locks.is_tracked('1234')
    assert len(locks) == 0


def test_release_on_exception():
    locks = SessionLockManager()
    with pytest.raises(RuntimeError):
        with locks.hold('1234'):
            raise RuntimeError('boom')
    # A second acquisition would block forever if the first leaked
    handle = locks.acquire('1234')
    handle.release()
    assert len(locks) == 0


def test_double_release_is_an_error():
    locks = SessionLockManager()
    handle = locks.acquire('1234')
    handle.release()
    with pytest.raises(RuntimeError):
        handle.release()


def test_waiters_are_served_in_arrival_order():
    locks = SessionLockManager()
    order = []
    first = locks.acquire('1234')

    def worker(n):
        with locks.hold('1234'):
            order.append(n)

    threads = []
    for n in range(5):
        t = threading.Thread(target=worker, args=(n,))
        t.start()
        threads.append(t)
        # Let each waiter take its ticket before the next one arrives
        time.sleep(0.05)
    first.release()
    for t in threads:
        t.join(timeout=5)
    assert order == [0, 1, 2, 3, 4]
    assert len(locks) == 0


def test_sessions_do_not_contend():
    locks = SessionLockManager()
    held = locks.acquire('1111')
    acquired = threading.Event()

    def other():
        with locks.hold('2222'):
            acquired.set()

    t = threading.Thread(target=other)
    t.start()
    assert acquired.wait(timeout=2)
    t.join(timeout=2)
    held.release()


def test_read_modify_write_is_serialized():
    locks = SessionLockManager()
    counter = {'value': 0}

    def bump():
        for _ in range(50):
            with locks.hold('1234'):
                current = counter['value']
                time.sleep(0.0005)
                counter['value'] = current + 1

    threads = [threading.Thread(target=bump) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    assert counter['value'] == 400
    assert len(locks) == 0
