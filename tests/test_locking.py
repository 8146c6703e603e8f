import threading

from autoscaler.locking import NoopLocker, is_conn_reset, new_locker


def test_connection_reset():
    assert is_conn_reset(None) is False
    assert is_conn_reset(LookupError("sql: no rows in result set")) is False
    assert is_conn_reset(ConnectionError("read: connection reset by peer")) is True


def test_connection_reset_plain_string():
    assert is_conn_reset("connect: connection timed out") is False


def test_sqlite_locker_is_exclusive():
    lock = new_locker("sqlite3")
    assert lock.acquire() is True
    try:
        assert lock.acquire(blocking=False) is False
    finally:
        lock.release()
    assert lock.acquire(blocking=False) is True
    lock.release()


def test_other_drivers_get_noop_locker():
    for driver in ("postgres", "mysql"):
        lock = new_locker(driver)
        assert isinstance(lock, NoopLocker)
        assert lock.acquire() is True
        assert lock.acquire() is True
        lock.release()


def test_noop_locker_as_context_manager():
    lock = NoopLocker()
    with lock as acquired:
        assert acquired is True
        with lock as nested:
            assert nested is True


def test_sqlite_locker_serialises_threads():
    lock = new_locker("sqlite3")
    counter = {"value": 0}
    acquired = []

    def work():
        for _ in range(1000):
            with lock as got:
                acquired.append(got)
                counter["value"] += 1

    threads = [threading.Thread(target=work) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert counter["value"] == 4000
    assert len(acquired) == 4000
    assert all(got is True for got in acquired)
    assert lock.acquire(blocking=False) is True
    lock.release()