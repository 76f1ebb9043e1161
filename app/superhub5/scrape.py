"""
Talks to the Virgin Media SuperHub 5 REST API.

The hub doesn't need any auth for the status endpoints. Stats are split over three endpoints:
    /rest/v1/cablemodem/downstream      -> {"downstream": {"channels": [...]}}
    /rest/v1/cablemodem/upstream        -> {"upstream": {"channels": [...]}}
    /rest/v1/cablemodem/serviceflows    -> {"serviceFlows": [...]}

We fetch all three at once and merge them into one document which is kept until someone calls invalidate().
"""

import asyncio
import json
import time
from typing import Any

import structlog
from aiohttp import ClientError, ClientSession
from err.exceptions import (
    EventLogError,
    ModemDecodeError,
    ModemFetchError,
    ModemNotOkError,
)
from superhub5 import parse
from util import metrics
from util.const import DEFAULT_MODEM_IP, STATS_FETCH_CONCURRENCY
from util.fetch import FetchResult, bounded_parallel_get
from util.merge import merge_patch
from util.types import (
    TYPE_DOCSIS,
    DocsisModem,
    EventLogEntry,
    EventLogProvider,
    ModemStats,
)

log = structlog.get_logger(__name__)

STATS_ENDPOINTS = ["/downstream", "/upstream", "/serviceflows"]
EVENT_LOG_ENDPOINT = "/eventlog"


class Modem(DocsisModem, EventLogProvider):
    """SuperHub 5.

    Only one accumulation runs at a time; callers that arrive while one is in flight wait for it and
    then read the same cached document.
    """

    def __init__(self, cs: ClientSession, ip_address: str | None = None):
        self.cs = cs
        self.ip_address = ip_address or DEFAULT_MODEM_IP
        # Merged raw document. None until the first fetch and after invalidate()
        self.stats: dict[str, Any] | None = None
        self.fetch_time_ms = 0
        self._lock = asyncio.Lock()

    def api_address(self) -> str:
        return f"https://{self.ip_address}/rest/v1/cablemodem"

    def type(self) -> str:
        return TYPE_DOCSIS

    def invalidate(self) -> None:
        self.stats = None

    async def get_snapshot(self) -> ModemStats:
        async with self._lock:
            if self.stats is None:
                await self._accumulate()
            document = self.stats
            fetch_time_ms = self.fetch_time_ms

        try:
            snapshot = parse.parse_stats(document, fetch_time_ms)
        except ModemDecodeError:
            metrics.c_meta_parse_result.labels("stats", False).inc()
            # Don't keep serving a document we can't read; next call goes back to the modem
            if self.stats is document:
                self.invalidate()
            raise

        metrics.c_meta_parse_result.labels("stats", True).inc()
        log.debug(
            "Parsed stats",
            downstream=len(snapshot.down_channels),
            upstream=len(snapshot.up_channels),
            configs=len(snapshot.configs),
            fetch_time_ms=snapshot.fetch_time_ms,
        )
        return snapshot

    async def _accumulate(self) -> None:
        """Fetch every stats endpoint and merge the fragments, in request order, into self.stats.

        The cache is only written once every fragment merged; any failure leaves it unset.
        """
        urls = [self.api_address() + endpoint for endpoint in STATS_ENDPOINTS]

        log.debug("Fetching stats from modem", urls=urls)
        start = time.monotonic()
        results = await bounded_parallel_get(self.cs, urls, STATS_FETCH_CONCURRENCY)
        fetch_time_ms = int((time.monotonic() - start) * 1000)

        for result in results:
            _record_result(result)

        document: dict[str, Any] = {}
        # Request order, not completion order: the first failure by index is the one we report
        for result in results:
            target = STATS_ENDPOINTS[result.index]
            if result.error is not None:
                raise ModemFetchError(
                    f"Failed to fetch {target}: {result.error}"
                ) from result.error
            if not result.ok:
                raise ModemNotOkError(
                    f"Failed to fetch {target}. Status={result.status}.",
                    status_code=result.status,
                )
            try:
                fragment = json.loads(result.body)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise ModemDecodeError(
                    f"Response from {target} is not JSON: {e}", payload=result.body
                ) from e
            # A non-object patch would replace everything merged so far
            if not isinstance(fragment, dict):
                raise ModemDecodeError(
                    f"Response from {target} is not a JSON object", payload=result.body
                )

            document = merge_patch(document, fragment)

        self.stats = document
        self.fetch_time_ms = fetch_time_ms
        log.info("Fetched stats from modem", fetch_time_ms=fetch_time_ms)

    async def fetch_event_log(self) -> list[EventLogEntry]:
        url = self.api_address() + EVENT_LOG_ENDPOINT
        try:
            async with self.cs.get(url) as resp:
                metrics.c_meta_scrape_result.labels(resp.status, EVENT_LOG_ENDPOINT).inc()
                if not 200 <= resp.status < 300:
                    raise EventLogError(
                        f"Failed to fetch eventlog. Status={resp.status}.",
                        status_code=resp.status,
                    )
                body = await resp.read()
        except (ClientError, asyncio.TimeoutError) as e:
            metrics.c_meta_scrape_result.labels("error", EVENT_LOG_ENDPOINT).inc()
            raise EventLogError(f"Failed to fetch eventlog: {e}") from e

        try:
            entries = parse.parse_event_log(body)
        except EventLogError:
            metrics.c_meta_parse_result.labels("eventlog", False).inc()
            raise
        metrics.c_meta_parse_result.labels("eventlog", True).inc()
        return entries


def _record_result(result: FetchResult) -> None:
    target = STATS_ENDPOINTS[result.index]
    metrics.s_meta_scrape_time.labels(target).observe(result.elapsed_ms / 1000)
    http_code = "error" if result.status is None else result.status
    metrics.c_meta_scrape_result.labels(http_code, target).inc()
