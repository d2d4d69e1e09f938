import threading

import pytest

from posmoni.utils.stream import Stream

pytestmark = pytest.mark.unit


def test_items_before_close_are_delivered():
    stream = Stream()
    stream.put(1)
    stream.put(2)
    stream.close()

    assert list(stream) == [1, 2]


def test_put_after_close_is_dropped():
    stream = Stream()
    stream.close()
    stream.put(1)

    assert list(stream) == []
    assert stream.closed


def test_close_is_idempotent():
    stream = Stream()
    stream.close()
    stream.close()

    assert list(stream) == []
    assert list(stream) == []


def test_every_consumer_stops_on_close():
    stream = Stream()
    received = []
    lock = threading.Lock()

    def consume():
        for item in stream:
            with lock:
                received.append(item)

    consumers = [threading.Thread(target=consume) for _ in range(3)]
    for consumer in consumers:
        consumer.start()

    for item in range(10):
        stream.put(item)
    stream.close()

    for consumer in consumers:
        consumer.join(timeout=5)
        assert not consumer.is_alive()

    assert sorted(received) == list(range(10))


def test_unbounded():
    stream = Stream()
    for item in range(10_000):
        stream.put(item, block=False)

    assert stream.qsize() == 10_000
