import pytest

from qnet.hostqueue import Host, HostQueue


def test_push_pop_is_fifo():
    queue = HostQueue()
    first = Host("REF001", "10.0.0.1", 20001)
    second = Host("REF002", "10.0.0.2", 20001)
    queue.push(first)
    queue.push(second)
    assert queue.pop() == first
    assert queue.pop() == second


def test_len_and_bool_track_contents():
    queue = HostQueue()
    assert not queue
    assert len(queue) == 0
    queue.push(Host("XRF757", "10.1.2.3", 30001))
    assert queue
    assert len(queue) == 1


def test_pop_empty_raises():
    with pytest.raises(IndexError):
        HostQueue().pop()


def test_clear_empties_queue():
    queue = HostQueue([Host("A", "1.1.1.1", 1), Host("B", "2.2.2.2", 2)])
    assert len(queue) == 2
    queue.clear()
    assert len(queue) == 0
    with pytest.raises(IndexError):
        queue.pop()


def test_host_defaults_and_equality():
    host = Host()
    assert (host.name, host.addr, host.port) == ("", "", 0)
    assert Host("N", "a", 5) == Host("N", "a", 5)