import logging
from enum import Enum

# The REST API on the hub doesn't care about most of this but the web UI sends it and so do we
REQUEST_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:123.4) Gecko/20100101 Firefox/123.4",
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.5",
    "X-Requested-With": "XMLHttpRequest",
    "Connection": "keep-alive",
    "Pragma": "no-cache",
    "Cache-Control": "no-cache",
}

DEFAULT_MODEM_IP = "192.168.100.1"

# How many of the stats sub-resources are requested at once
STATS_FETCH_CONCURRENCY = 3

# Loki wants a `job` label on every stream; this is what we use if the user doesn't set one
DEFAULT_LOKI_JOB = "modem-stats"


class LogLevel(Enum):
    """Simple enum of supported log levels for easy validation"""

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL
