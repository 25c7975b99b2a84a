import copy
import traceback
from collections import deque
from dataclasses import dataclass


@dataclass(frozen=True)
class OffsetRecord:
    """One successful measurement: server time minus local time, in ms"""
    delta: int
    server_timestamp: int

    def to_dict(self):
        return {"delta": self.delta, "server_timestamp": self.server_timestamp}


@dataclass(frozen=True)
class ErrorRecord:
    """One failed query, attributed to the server that was asked"""
    kind: str
    message: str
    server: object
    stack_trace: str = ""
    timestamp: int = 0

    def to_dict(self):
        return {
            "kind": self.kind,
            "message": self.message,
            "server": self.server.to_dict() if self.server is not None else None,
            "stack_trace": self.stack_trace,
            "timestamp": self.timestamp,
        }


class SlidingWindow:
    """
    Fixed capacity FIFO buffer
    Once full, adding a record evicts the oldest one
    """
    def __init__(self, limit):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._items = deque(maxlen=limit)

    def append(self, item):
        self._items.append(item)

    def __len__(self):
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    def to_list(self):
        return [item.to_dict() for item in self._items]


@dataclass
class SyncStatistics:
    """Error streak and last-sync bookkeeping"""
    current_consecutive_error_count: int = 0
    is_in_error_state: bool = False
    last_error: ErrorRecord = None
    lifetime_error_count: int = 0
    max_consecutive_error_count: int = 0
    last_sync_time: int = None
    last_server_time: int = None

    def record_success(self, local_time, server_time):
        self.current_consecutive_error_count = 0
        self.is_in_error_state = False
        self.last_sync_time = local_time
        self.last_server_time = server_time

    def record_failure(self, error):
        self.current_consecutive_error_count += 1
        self.lifetime_error_count += 1
        self.max_consecutive_error_count = max(
            self.max_consecutive_error_count,
            self.current_consecutive_error_count
        )
        self.is_in_error_state = True
        self.last_error = error

    def to_dict(self):
        return {
            "current_consecutive_error_count": self.current_consecutive_error_count,
            "is_in_error_state": self.is_in_error_state,
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "lifetime_error_count": self.lifetime_error_count,
            "max_consecutive_error_count": self.max_consecutive_error_count,
            "last_sync_time": self.last_sync_time,
            "last_server_time": self.last_server_time,
        }


def normalize_failure(failure, server, timestamp):
    """
    Turn whatever a time source failed with into an ErrorRecord

    Args:
        failure: an exception, a message string, None or any other object
        server (ServerEndpoint): the server the query was sent to
        timestamp (int): local time of the failure in ms

    Returns:
        ErrorRecord: normalized error data
    """
    if isinstance(failure, BaseException):
        stack = "".join(traceback.format_exception(type(failure), failure, failure.__traceback__))
        return ErrorRecord(
            kind=type(failure).__name__,
            message=str(failure),
            server=server,
            stack_trace=stack,
            timestamp=timestamp
        )

    if failure is None:
        message = "unknown error"
    else:
        message = str(failure)
    return ErrorRecord(kind="Error", message=message, server=server, timestamp=timestamp)


def snapshot(value):
    """Deep copy used for history snapshots handed to callers"""
    return copy.deepcopy(value)
