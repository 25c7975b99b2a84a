import pytest

from time_sync.config import ServerEndpoint
from time_sync.history import (
    SlidingWindow,
    SyncStatistics,
    OffsetRecord,
    normalize_failure,
)

SERVER = ServerEndpoint('pool.ntp.org', 123)


def test_window_evicts_oldest_first():
    window = SlidingWindow(3)
    for delta in range(5):
        window.append(OffsetRecord(delta, 1000 + delta))

    assert len(window) == 3
    assert [r.delta for r in window] == [2, 3, 4]
    assert window.to_list()[0] == {"delta": 2, "server_timestamp": 1002}


def test_window_needs_positive_limit():
    with pytest.raises(ValueError):
        SlidingWindow(0)


def test_statistics_streaks_and_watermark():
    stats = SyncStatistics()
    error = normalize_failure('boom', SERVER, 5)

    stats.record_failure(error)
    stats.record_failure(error)
    assert stats.current_consecutive_error_count == 2
    assert stats.is_in_error_state is True
    assert stats.last_error is error

    stats.record_success(local_time=100, server_time=150)
    assert stats.current_consecutive_error_count == 0
    assert stats.is_in_error_state is False
    assert stats.lifetime_error_count == 2
    assert stats.max_consecutive_error_count == 2
    assert stats.last_sync_time == 100
    assert stats.last_server_time == 150

    stats.record_failure(error)
    assert stats.lifetime_error_count == 3
    assert stats.max_consecutive_error_count == 2


def test_normalize_exception():
    try:
        raise TimeoutError('no reply')
    except TimeoutError as e:
        record = normalize_failure(e, SERVER, 42)

    assert record.kind == 'TimeoutError'
    assert record.message == 'no reply'
    assert record.server == SERVER
    assert 'TimeoutError' in record.stack_trace
    assert record.timestamp == 42


@pytest.mark.parametrize("failure, message", [
    ('socket closed', 'socket closed'),
    (None, 'unknown error'),
    ({'code': 7}, "{'code': 7}"),
])
def test_normalize_plain_values(failure, message):
    record = normalize_failure(failure, SERVER, 0)
    assert record.kind == 'Error'
    assert record.message == message
    assert record.stack_trace == ''
    assert record.to_dict()['server'] == {'host': 'pool.ntp.org', 'port': 123}
