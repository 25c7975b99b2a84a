import math
import os
import re
import logging
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger("ClockSyncConfig")

DEFAULT_NTP_SERVER = 'pool.ntp.org'
DEFAULT_NTP_PORT = 123
DEFAULT_HISTORY = 10
DEFAULT_SYNC_DELAY = 300  # seconds

_INT_PREFIX = re.compile(r'^\s*([+-]?\d+)')
_FLOAT_PREFIX = re.compile(r'^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)')


class ConfigError(ValueError):
    """Raised when the clock sync configuration cannot be used"""


@dataclass(frozen=True)
class ServerEndpoint:
    """A time server address"""
    host: str
    port: int = DEFAULT_NTP_PORT

    def to_dict(self):
        return {"host": self.host, "port": self.port}

    def __str__(self):
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class SyncConfig:
    """Validated engine configuration"""
    servers: tuple
    cycle_servers: bool = False
    start_online: bool = True
    history: int = DEFAULT_HISTORY
    sync_delay: float = DEFAULT_SYNC_DELAY

    @property
    def tick_interval_ms(self):
        return round(self.sync_delay * 1000, 3)


def _parse_port(port, index):
    if port is None:
        return DEFAULT_NTP_PORT
    # bool is an int subclass, never a port
    valid = (
        isinstance(port, (int, float)) and not isinstance(port, bool)
        and float(port).is_integer() and port > 0
    )
    if not valid:
        raise ConfigError(f"Invalid port number specified at index: {index}")
    return int(port)


def parse_server_entry(entry, index):
    """
    Build a ServerEndpoint from one configuration entry

    Args:
        entry (str or Mapping): bare hostname or {"host": ..., "port": ...}
        index (int): position of the entry, used in error messages

    Returns:
        ServerEndpoint: the parsed endpoint
    """
    if isinstance(entry, str):
        if not entry:
            raise ConfigError(f"Empty server string at index: {index}")
        return ServerEndpoint(entry, DEFAULT_NTP_PORT)

    if isinstance(entry, Mapping):
        host = entry.get("host", entry.get("server"))
        if not host or not isinstance(host, str):
            raise ConfigError(f"Missing server string at index: {index}")
        return ServerEndpoint(host, _parse_port(entry.get("port"), index))

    raise ConfigError(f"Invalid config item at index: {index}")


def parse_servers(servers):
    """
    Validate a list of server entries

    The whole list is walked before anything is returned, so one bad
    entry rejects the list.

    Returns:
        tuple: ServerEndpoint objects in configuration order
    """
    try:
        if servers is None or isinstance(servers, (str, bytes, Mapping)):
            raise ConfigError("Expected a sequence of server entries")
        try:
            entries = list(servers)
        except TypeError:
            raise ConfigError("Expected a sequence of server entries")

        parsed = tuple(parse_server_entry(entry, i) for i, entry in enumerate(entries))
        if not parsed:
            raise ConfigError("No servers provided in config object")
        return parsed
    except ConfigError as e:
        raise ConfigError(f"Malformed 'servers' list: {e}") from e


def _parse_int(value):
    """Integer parse with prefix semantics, None when the value is not numeric"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return int(value)  # truncates toward zero
    if isinstance(value, str):
        match = _INT_PREFIX.match(value)
        if match:
            return int(match.group(1))
    return None


def _parse_float(value):
    """Float parse with prefix semantics, None when the value is not numeric"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _FLOAT_PREFIX.match(value)
        if not match:
            return None
        number = float(match.group(1))
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_history(value):
    """
    Coerce the history window size

    Non-numeric values and zero fall back to the default. Negative
    integers are rejected.
    """
    limit = _parse_int(value)
    if not limit:
        return DEFAULT_HISTORY
    if limit < 0:
        raise ConfigError(f"'history' must be greater than 0, got {value!r}")
    return limit


def parse_sync_delay(value):
    """
    Coerce the sync delay in seconds

    Non-numeric values and zero fall back to the default. Any negative
    number is rejected.
    """
    delay = _parse_float(value)
    if not delay:
        return DEFAULT_SYNC_DELAY
    if delay < 0:
        raise ConfigError(f"'syncDelay' must be greater than 0, got {value!r}")
    return delay


def _lookup(config, *keys, default=None):
    for key in keys:
        if key in config:
            return config[key]
    return default


def parse_config(config=None):
    """
    Validate a raw configuration mapping

    Args:
        config (Mapping): optional keys servers, cycleServers, startOnline,
            history, syncDelay (snake_case spellings are accepted too)

    Returns:
        SyncConfig: the validated configuration

    Raises:
        ConfigError: if any value is unusable
    """
    if config is None:
        config = {}
    if not isinstance(config, Mapping):
        raise ConfigError("Configuration must be a mapping")

    if "servers" in config:
        servers = parse_servers(config["servers"])
    else:
        servers = (ServerEndpoint(DEFAULT_NTP_SERVER, DEFAULT_NTP_PORT),)

    return SyncConfig(
        servers=servers,
        cycle_servers=bool(_lookup(config, "cycleServers", "cycle_servers", default=False)),
        start_online=bool(_lookup(config, "startOnline", "start_online", default=True)),
        history=parse_history(config.get("history")),
        sync_delay=parse_sync_delay(_lookup(config, "syncDelay", "sync_delay")),
    )


def _env_flag(text):
    return text.strip().lower() in ("1", "true", "yes", "on")


def parse_server_text(text):
    """Turn 'host' or 'host:port' into a config entry"""
    host, sep, port = text.strip().rpartition(':')
    if not sep:
        return text.strip()
    try:
        return {"host": host, "port": int(port)}
    except ValueError:
        # left as text so parse_servers reports the bad port
        return {"host": host, "port": port}


def load_config_from_env(environ=None):
    """
    Build a raw configuration mapping from CLOCKSYNC_* environment variables

    Unset variables are left out so engine defaults apply.

    Returns:
        dict: configuration suitable for parse_config
    """
    if environ is None:
        environ = os.environ

    config = {}
    servers = environ.get("CLOCKSYNC_SERVERS")
    if servers is not None:
        config["servers"] = [parse_server_text(s) for s in servers.split(',') if s.strip()]
    if "CLOCKSYNC_CYCLE_SERVERS" in environ:
        config["cycleServers"] = _env_flag(environ["CLOCKSYNC_CYCLE_SERVERS"])
    if "CLOCKSYNC_START_ONLINE" in environ:
        config["startOnline"] = _env_flag(environ["CLOCKSYNC_START_ONLINE"])
    if "CLOCKSYNC_HISTORY" in environ:
        config["history"] = environ["CLOCKSYNC_HISTORY"]
    if "CLOCKSYNC_SYNC_DELAY" in environ:
        config["syncDelay"] = environ["CLOCKSYNC_SYNC_DELAY"]

    logger.debug(f"Loaded configuration from environment: {sorted(config)}")
    return config
