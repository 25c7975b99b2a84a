import threading
import logging

logger = logging.getLogger("IntervalTicker")

class IntervalTicker:
    """
    Calls a function every `interval` seconds on a background thread
    until cancelled
    """
    def __init__(self, interval, callback):
        """
        Args:
            interval (float): seconds between calls, must be positive
            callback (callable): function taking no arguments
        """
        if interval <= 0:
            raise ValueError("interval must be greater than 0")
        self.interval = interval
        self.callback = callback
        self.stop_event = threading.Event()
        self.tick_thread = None

    def start(self):
        """Start ticking, returns self so it can be used as a handle"""
        self.tick_thread = threading.Thread(target=self._run, daemon=True)
        self.tick_thread.start()
        return self

    def _run(self):
        while not self.stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Error during periodic tick: {e}")

    @property
    def cancelled(self):
        return self.stop_event.is_set()

    def cancel(self):
        """Stop ticking; a tick already running is allowed to finish"""
        self.stop_event.set()

        if (self.tick_thread and self.tick_thread.is_alive()
                and self.tick_thread is not threading.current_thread()):
            self.tick_thread.join(timeout=5)


class ThreadingScheduler:
    """Default scheduler handing out IntervalTicker handles"""

    def call_every(self, interval, callback):
        """
        Run callback every `interval` seconds

        Returns:
            IntervalTicker: handle with a cancel() method
        """
        logger.debug(f"Arming periodic tick every {interval} seconds")
        return IntervalTicker(interval, callback).start()
