"""Simple wrappers for the failure states the exporter knows how to recover from.

None of these are fatal; the poll loops log them and try again on the next tick.
"""


class ModemNotOkError(Exception):
    """Exception for non-2xx responses from modem."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message, status_code, payload)


class ModemFetchError(Exception):
    """Exception for transport level failures (connection refused, timeout ...) talking to the modem."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message, status_code, payload)


class ModemDecodeError(Exception):
    """Exception for data from the modem that isn't JSON or isn't shaped the way we expect."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message, status_code, payload)


class EventLogError(Exception):
    """Exception for failure to fetch or decode the modem event log."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message, status_code, payload)


class LokiPushError(Exception):
    """Exception for a push to Loki that was not confirmed."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message, status_code, payload)
