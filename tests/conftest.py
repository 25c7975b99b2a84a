import pytest
from concurrent.futures import Future

from time_sync.timesync import ClockSync

# a server name that makes FakeTimeSource fail the query
FAILING_SERVER = 'FAIL.FAIL.FAIL'


class FakeClock:
    """Local clock in ms that only moves when told to"""
    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def advance(self, ms):
        self.now += ms

    def __call__(self):
        return self.now


class FakeTimeSource:
    """
    Stand-in for the NTP collaborator
    Replies with local time + offset_ms, fails for FAILING_SERVER, and keeps
    futures pending when `pending` is set so tests can resolve them later
    """
    def __init__(self, clock):
        self.clock = clock
        self.offset_ms = 0
        self.pending = False
        self.calls = []
        self.futures = []
        self.next_values = []

    def query_time(self, host, port):
        self.calls.append((host, port))
        future = Future()
        self.futures.append(future)
        if self.pending:
            return future
        if host == FAILING_SERVER:
            future.set_exception(RuntimeError('Mock Error'))
        elif self.next_values:
            future.set_result(self.next_values.pop(0))
        else:
            future.set_result(self.clock() + self.offset_ms)
        return future


class FakeHandle:
    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.cancelled = False

    def fire(self):
        self.callback()

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Records armed timers instead of starting threads"""
    def __init__(self):
        self.handles = []

    def call_every(self, interval, callback):
        handle = FakeHandle(interval, callback)
        self.handles.append(handle)
        return handle

    @property
    def active(self):
        return [h for h in self.handles if not h.cancelled]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def time_source(clock):
    return FakeTimeSource(clock)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def make_sync(time_source, scheduler, clock):
    """Build a ClockSync wired to the fakes"""
    def _make(config=None):
        return ClockSync(config, time_source=time_source, scheduler=scheduler, clock=clock)
    return _make
