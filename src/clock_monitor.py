import logging
import sys
import signal
import argparse
import threading

from time_sync.config import ConfigError, load_config_from_env, parse_server_text
from time_sync.timesync import ClockSync

logger = logging.getLogger("ClockMonitor")

class ClockMonitor:
    """
    Runs a ClockSync engine and reports the corrected time
    """
    def __init__(self, config, report_interval=10):
        """
        Initialize the clock monitor

        Args:
            config (dict): ClockSync configuration
            report_interval (float): seconds between status reports
        """
        self.clock_sync = ClockSync(config)
        self.report_interval = report_interval
        self.stop_event = threading.Event()

        # Signal handlers
        signal.signal(signal.SIGINT, self.signal_handler)
        signal.signal(signal.SIGTERM, self.signal_handler)

    def signal_handler(self, sig, frame):
        """Handle termination signals"""
        logger.info(f"Received signal {sig}, shutting down...")
        self.stop_event.set()

    def report(self):
        """Log the corrected time and the sync health"""
        history = self.clock_sync.get_history()
        logger.info(
            f"Corrected time: {self.clock_sync.get_corrected_time_str()} "
            f"(server {history['current_server']['host']}, "
            f"{len(history['offsets'])} offsets, "
            f"{history['lifetime_error_count']} errors)"
        )
        if history["is_in_error_state"]:
            last = history["last_error"]
            logger.warning(
                f"Sync failing: {history['current_consecutive_error_count']} consecutive errors, "
                f"last: {last['kind']}: {last['message']}"
            )

    def run(self):
        """Report until stopped"""
        try:
            while not self.stop_event.wait(self.report_interval):
                self.report()
        finally:
            self.clock_sync.stop()


def build_config(args, environ=None):
    """
    Merge command line arguments over the CLOCKSYNC_* environment

    Returns:
        dict: ClockSync configuration
    """
    config = load_config_from_env(environ)
    if args.server:
        config["servers"] = [parse_server_text(s) for s in args.server]
    if args.cycle_servers:
        config["cycleServers"] = True
    if args.offline:
        config["startOnline"] = False
    if args.history is not None:
        config["history"] = args.history
    if args.sync_delay is not None:
        config["syncDelay"] = args.sync_delay
    return config


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Network time monitor")
    parser.add_argument("--server", action="append",
                      help="Time server as host[:port], may be repeated")
    parser.add_argument("--cycle-servers", action="store_true",
                      help="Wrap around the server list on failures")
    parser.add_argument("--offline", action="store_true",
                      help="Start without querying servers")
    parser.add_argument("--history", type=str, default=None,
                      help="Number of offsets to average")
    parser.add_argument("--sync-delay", type=str, default=None,
                      help="Seconds between syncs")
    parser.add_argument("--report-interval", type=float, default=10,
                      help="Seconds between status reports")
    parser.add_argument("--log-level", type=str, default="INFO",
                      help="Logging level")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler()
        ]
    )

    try:
        monitor = ClockMonitor(build_config(args), report_interval=args.report_interval)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    monitor.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
