import math
import time
import threading
import logging
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime

from failover.failover import ServerFailover
from time_sync.config import ServerEndpoint, parse_config
from time_sync.history import SlidingWindow, SyncStatistics, OffsetRecord, normalize_failure, snapshot
from time_sync.ntp_source import NtpTimeSource
from time_sync.ticker import ThreadingScheduler

logger = logging.getLogger("ClockSync")


def system_clock_ms():
    """Local wall clock in ms since the epoch"""
    return int(time.time() * 1000)


def _to_millis(value):
    """Server timestamp in ms, or None when the value is not a timestamp"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(round(value))
    if isinstance(value, datetime):
        return int(round(value.timestamp() * 1000))
    return None


def _round_half_up(value):
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one request_time() call"""
    success: bool
    delta: int = 0
    server: ServerEndpoint = None


class ClockSync:
    """
    Keeps an estimate of network time on a host whose clock can't be trusted
    Queries time servers periodically and averages the observed offsets
    """
    def __init__(self, config=None, time_source=None, scheduler=None, clock=None):
        """
        Initialize the ClockSync engine

        Args:
            config (dict): servers, cycleServers, startOnline, history, syncDelay
            time_source: object with query_time(host, port) returning a Future,
                defaults to an ntplib backed NtpTimeSource
            scheduler: object with call_every(seconds, fn) returning a handle
                with cancel(), defaults to ThreadingScheduler
            clock (callable): returns local time in ms, defaults to time.time()

        Raises:
            ConfigError: if the configuration is invalid
        """
        self.config = parse_config(config)
        self.failover = ServerFailover(self.config.servers, cycle=self.config.cycle_servers)

        self._owns_time_source = time_source is None
        self.time_source = time_source or NtpTimeSource()
        self.scheduler = scheduler or ThreadingScheduler()
        self.clock = clock or system_clock_ms

        self.sync_lock = threading.RLock()
        self.offsets = SlidingWindow(self.config.history)
        self.errors = SlidingWindow(self.config.history)
        self.stats = SyncStatistics()
        self._tick_handle = None
        self._online = self.config.start_online

        logger.info(
            f"ClockSync initialized with {len(self.servers)} servers, "
            f"history {self.limit}, sync every {self.config.sync_delay} seconds"
        )

        if self._online:
            self.request_time()
            self._start_tick()

    @property
    def servers(self):
        return self.failover.servers

    @property
    def current_server(self):
        return self.failover.current_server

    @property
    def current_index(self):
        return self.failover.current_index

    @property
    def cycle_servers(self):
        return self.failover.cycle

    @property
    def limit(self):
        return self.config.history

    @property
    def tick_interval_ms(self):
        return self.config.tick_interval_ms

    @property
    def tick_handle(self):
        return self._tick_handle

    @property
    def is_online(self):
        return self._online

    def get_is_online(self):
        """
        Returns:
            bool: True if the engine is querying servers
        """
        return self._online

    def advance_server(self):
        """
        Move to the next server in the list

        Returns:
            ServerEndpoint: the server now in use
        """
        return self.failover.advance()

    def request_time(self, callback=None):
        """
        Query the current server once and record the result

        Query errors are never raised; they are recorded in the error
        history and reported through the callback and the returned future.

        Args:
            callback (callable): optional, called with True on success and
                False on failure or when offline

        Returns:
            Future: resolves to a SyncResult
        """
        result_future = Future()

        with self.sync_lock:
            online = self._online
            server = self.failover.current_server

        if not online:
            self._finish(result_future, SyncResult(False, 0, None), callback)
            return result_future

        try:
            query = self.time_source.query_time(server.host, server.port)
        except Exception as e:
            self._complete(server, None, e, result_future, callback)
            return result_future

        query.add_done_callback(
            lambda f: self._on_query_done(f, server, result_future, callback)
        )
        return result_future

    def _on_query_done(self, query, server, result_future, callback):
        try:
            value = query.result()
        except Exception as e:
            self._complete(server, None, e, result_future, callback)
            return

        server_time = _to_millis(value)
        if server_time is None:
            # anything that is not a timestamp counts as a failed query
            self._complete(server, None, value, result_future, callback)
        else:
            self._complete(server, server_time, None, result_future, callback)

    def _complete(self, server, server_time, failure, result_future, callback):
        with self.sync_lock:
            if not self._online:
                result = SyncResult(False, 0, server)
                logger.info(f"Discarding reply from {server} received while offline")
            elif server_time is not None:
                result = self._record_success(server, server_time)
            else:
                result = self._record_failure(server, failure)

        self._finish(result_future, result, callback)

    def _record_success(self, server, server_time):
        local_time = self.clock()
        delta = int(round(server_time - local_time))
        self.offsets.append(OffsetRecord(delta, server_time))
        self.stats.record_success(local_time, server_time)
        logger.info(f"Time synchronized with {server}, offset: {delta} ms")
        return SyncResult(True, delta, server)

    def _record_failure(self, server, failure):
        self.failover.advance()
        error = normalize_failure(failure, server, self.clock())
        self.errors.append(error)
        self.stats.record_failure(error)
        logger.warning(
            f"Failed to sync with {server}: {error.kind}: {error.message} "
            f"({self.stats.current_consecutive_error_count} in a row)"
        )
        return SyncResult(False, 0, server)

    def _finish(self, result_future, result, callback):
        result_future.set_result(result)
        if callback:
            callback(result.success)

    def _tick(self):
        logger.debug("Periodic sync tick")
        self.request_time()

    def _start_tick(self):
        with self.sync_lock:
            if self._online and self._tick_handle is None:
                self._tick_handle = self.scheduler.call_every(self.tick_interval_ms / 1000, self._tick)

    def set_online(self, online):
        """
        Switch between querying servers and staying quiet

        Going online syncs at once and arms the periodic timer, going
        offline cancels the timer. Setting the current state does nothing.
        """
        start = False
        handle = None
        with self.sync_lock:
            if online and not self._online:
                self._online = True
                start = True
            elif not online and self._online:
                handle = self._tick_handle
                self._tick_handle = None
                self._online = False

        if start:
            logger.info("Going online")
            self.request_time()
            self._start_tick()

        if handle is not None:
            logger.info("Going offline")
            handle.cancel()

    def get_corrected_time(self):
        """
        Get current time adjusted by the average recorded offset

        Returns:
            int: corrected time in ms since the epoch
        """
        with self.sync_lock:
            deltas = [record.delta for record in self.offsets]
        mean = sum(deltas) / len(deltas) if deltas else 0
        return _round_half_up(self.clock() + mean)

    def get_corrected_time_str(self):
        """
        Get formatted corrected time string

        Returns:
            str: Current corrected time in human-readable format
        """
        corrected = self.get_corrected_time() / 1000
        return time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(corrected))

    def get_history(self):
        """
        Get a copy of the offset history, error history and statistics

        Returns:
            dict: independent snapshot, safe to modify
        """
        with self.sync_lock:
            details = self.stats.to_dict()
            details["current_server"] = self.failover.current_server.to_dict()
            details["offsets"] = self.offsets.to_list()
            details["errors"] = self.errors.to_list()
            return snapshot(details)

    def stop(self):
        """Go offline and release the default time source"""
        logger.info("Stopping clock synchronization")
        self.set_online(False)
        if self._owns_time_source:
            self.time_source.close()
