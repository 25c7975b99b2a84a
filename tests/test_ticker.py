import threading

import pytest

from time_sync.ticker import IntervalTicker, ThreadingScheduler


def test_ticker_calls_until_cancelled():
    calls = []
    reached = threading.Event()

    def tick():
        calls.append(1)
        if len(calls) >= 3:
            reached.set()

    handle = ThreadingScheduler().call_every(0.01, tick)
    assert reached.wait(timeout=5)
    handle.cancel()

    count = len(calls)
    assert handle.cancelled is True
    assert not handle.tick_thread.is_alive()
    assert len(calls) == count


def test_ticker_survives_callback_errors():
    reached = threading.Event()
    calls = []

    def tick():
        calls.append(1)
        if len(calls) >= 2:
            reached.set()
        raise RuntimeError("tick failed")

    handle = IntervalTicker(0.01, tick).start()
    try:
        assert reached.wait(timeout=5)
    finally:
        handle.cancel()


def test_ticker_needs_positive_interval():
    with pytest.raises(ValueError):
        IntervalTicker(0, lambda: None)
