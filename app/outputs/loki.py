"""
Ships the modem event log to Loki.

The modem only ever gives us its whole (rolling) event log so every poll returns mostly entries we've already
shipped. We remember what Loki has accepted and only push the rest.

An entry is only remembered once Loki confirms the push; a failed push leaves everything to be retried on the
next tick. So delivery is at-least-once, and entries already confirmed are not sent again.
"""

import asyncio
import threading
import time
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timezone

import structlog
from aiohttp import ClientError, ClientSession, ClientTimeout
from cachetools import LRUCache
from err.exceptions import EventLogError, LokiPushError
from util import metrics
from util.const import DEFAULT_LOKI_JOB
from util.types import EventLogEntry, EventLogProvider

log = structlog.get_logger(__name__)

LOKI_TIMEOUT = ClientTimeout(total=10)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SeenSet:
    """Identity keys of entries Loki has confirmed.

    Bounded: once `maxsize` keys are held, the least recently seen key is dropped.
    Filtering refreshes every key the modem still reports, so the keys that fall out are ones the modem has
    already rotated out of its log. As long as `maxsize` is bigger than the modem's log, nothing is re-shipped.
    """

    def __init__(self, maxsize: int = 10000):
        if maxsize < 1:
            raise ValueError(f"SeenSet size must be at least 1, got {maxsize}")
        self._keys = LRUCache(maxsize=maxsize)
        # LRUCache isn't thread safe and a membership check moves the key, so reads take the lock too
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return self._keys.get(key, False)

    def unseen(self, entries: Iterable[EventLogEntry]) -> list[EventLogEntry]:
        """Entries whose key isn't held, in their original order."""
        new_entries = []
        with self._lock:
            for entry in entries:
                # get() marks the key as recently used
                if not self._keys.get(entry.key, False):
                    new_entries.append(entry)
        return new_entries

    def add_all(self, entries: Iterable[EventLogEntry]) -> None:
        with self._lock:
            for entry in entries:
                self._keys[entry.key] = True


def parse_timestamp_ns(timestamp: str) -> int | None:
    """RFC 3339 timestamp -> unix nanoseconds. None if it doesn't parse or has no UTC offset."""
    if not timestamp:
        return None
    if timestamp.endswith(("Z", "z")):
        timestamp = timestamp[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(timestamp)
    except ValueError:
        return None
    if dt.tzinfo is None:
        return None
    # Integer maths; timestamp() is a float and loses the low digits
    delta = dt - _EPOCH
    return (delta.days * 86400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000


def build_push_request(
    entries: list[EventLogEntry], base_labels: dict[str, str], now_ns: int
) -> dict:
    """One stream per priority, each stream's values sorted oldest first.

    Entries whose timestamp won't parse are stamped with `now_ns`.
    """
    streams: dict[str, list[tuple[int, str]]] = defaultdict(list)
    for entry in entries:
        ts = parse_timestamp_ns(entry.timestamp)
        if ts is None:
            log.debug("Unparseable event log timestamp", timestamp=entry.timestamp)
            ts = now_ns
        streams[entry.priority].append((ts, entry.message))

    loki_streams = []
    for priority, values in streams.items():
        # Stable; entries with the same timestamp keep the order the modem gave them
        values.sort(key=lambda v: v[0])
        loki_streams.append(
            {
                "stream": {**base_labels, "level": priority},
                "values": [[str(ts), message] for ts, message in values],
            }
        )
    return {"streams": loki_streams}


class LokiExporter:
    """Pushes new modem event log entries to a Loki push endpoint.

    The caller is expected to run one ship_new_logs() at a time; only the seen set is synchronized.
    """

    def __init__(
        self,
        cs: ClientSession,
        endpoint: str,
        log_provider: EventLogProvider,
        labels: dict[str, str] | None = None,
        seen_max_entries: int = 10000,
    ):
        self.cs = cs
        self.endpoint = endpoint
        self.log_provider = log_provider
        self.labels = dict(labels) if labels else {}
        self.labels.setdefault("job", DEFAULT_LOKI_JOB)
        self.seen = SeenSet(maxsize=seen_max_entries)

    async def ship_new_logs(self) -> int:
        """Run one cycle. Returns the number of entries confirmed delivered.

        Raises:
            EventLogError: couldn't get the event log from the modem
            LokiPushError: Loki didn't accept the push; nothing is marked as shipped
        """
        entries = await self.log_provider.fetch_event_log()

        new_entries = self.seen.unseen(entries)
        if not new_entries:
            log.debug("No new event log entries", total=len(entries))
            return 0

        payload = build_push_request(new_entries, self.labels, time.time_ns())
        await self._push(payload)

        self.seen.add_all(new_entries)
        metrics.c_meta_loki_pushed_entries.inc(len(new_entries))
        log.info("Pushed log entries to Loki", count=len(new_entries))
        return len(new_entries)

    async def _push(self, payload: dict) -> None:
        try:
            async with self.cs.post(
                self.endpoint, json=payload, timeout=LOKI_TIMEOUT
            ) as resp:
                if not 200 <= resp.status < 300:
                    body = await resp.text()
                    metrics.c_meta_loki_push_result.labels("not_ok").inc()
                    raise LokiPushError(
                        f"Loki returned status {resp.status}",
                        status_code=resp.status,
                        payload=body,
                    )
        except (ClientError, asyncio.TimeoutError) as e:
            metrics.c_meta_loki_push_result.labels("error").inc()
            raise LokiPushError(f"Failed to push to Loki: {e}") from e
        metrics.c_meta_loki_push_result.labels("ok").inc()

    async def poll(self, interval_seconds: int) -> None:
        """Ship forever; a failed cycle is logged and retried on the next tick."""
        while True:
            try:
                await self.ship_new_logs()
            except (EventLogError, LokiPushError) as e:
                log.warning("Failed to ship logs to Loki", error=e)
            # pylint: disable=broad-exception-caught
            except Exception as e:
                log.warning("Error shipping logs to Loki", error=e)
            await asyncio.sleep(interval_seconds)
