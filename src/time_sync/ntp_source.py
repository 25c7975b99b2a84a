import time
import logging
from concurrent.futures import ThreadPoolExecutor

import ntplib

logger = logging.getLogger("NtpTimeSource")

class NtpTimeSource:
    """
    Time source backed by ntplib
    Each query runs on a worker thread and is handed back as a Future
    """
    def __init__(self, timeout=5, version=3, max_workers=2):
        """
        Args:
            timeout (float): seconds to wait for a server reply
            version (int): NTP protocol version to request
            max_workers (int): worker threads for concurrent queries
        """
        self.client = ntplib.NTPClient()
        self.timeout = timeout
        self.version = version
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ntp-query")

    def query_time(self, host, port):
        """
        Ask one server for the current time

        Args:
            host (str): server hostname
            port (int): server UDP port

        Returns:
            Future: resolves to the server time in ms since the epoch, or
                fails with the ntplib / socket error
        """
        return self.executor.submit(self._request, host, port)

    def _request(self, host, port):
        logger.debug(f"Querying {host}:{port}")
        response = self.client.request(host, version=self.version, port=port, timeout=self.timeout)
        # server time as of now, corrected for the round trip
        return int(round((time.time() + response.offset) * 1000))

    def close(self):
        """Stop accepting queries; queries already running finish on their own"""
        self.executor.shutdown(wait=False)
