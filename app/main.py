#!/usr/bin/env python3
"""
Main / entry point for the modem stats exporter.

Two loops share one HTTP session:
    - stats: every poll interval, drop the cached document, fetch + normalize, hand the snapshot to the collector
    - logs: if LOKI_URL is set, ship any new event log entries to Loki
"""
import asyncio
from os import getenv

import structlog
from aiohttp import ClientSession, ClientTimeout, TCPConnector
from err.exceptions import ModemDecodeError, ModemFetchError, ModemNotOkError
from outputs.loki import LokiExporter
from outputs.prometheus import ModemStatsCollector
from prometheus_client import REGISTRY, start_http_server
from superhub5.scrape import Modem
from util.const import DEFAULT_MODEM_IP, REQUEST_HEADERS, LogLevel
from util.types import DocsisModem

# cfg-file/arg-arse/clip is overkill for the few things that need to be configured.
# k8s makes it trivial to define env-vars so we'll just use that.
##
MODEM_IP = getenv("MODEM_IP", DEFAULT_MODEM_IP)

# default prometheus_client implementation does not support setting the path, only the port.
METRICS_PORT = int(getenv("METRICS_PORT", "9000"))
METRICS_POLL_INTERVAL_SECONDS = int(getenv("METRICS_POLL_INTERVAL_SECONDS", "60"))
HTTP_TIMEOUT_SECONDS = int(getenv("HTTP_TIMEOUT_SECONDS", "30"))

# Log shipping is off unless we're told where Loki is
LOKI_URL = getenv("LOKI_URL", None)
LOKI_PUSH_INTERVAL_SECONDS = int(getenv("LOKI_PUSH_INTERVAL_SECONDS", "60"))
LOKI_LABELS = getenv("LOKI_LABELS", "")
LOKI_SEEN_MAX_ENTRIES = int(getenv("LOKI_SEEN_MAX_ENTRIES", "10000"))


if getenv("LOG_LEVEL") not in LogLevel.__members__ or getenv("LOG_LEVEL") is None:
    print(f"Defaulting to {LogLevel.INFO} log level")
    log_level = LogLevel.INFO
else:
    log_level = LogLevel[getenv("LOG_LEVEL")]  # type: ignore
    print(f"Using log level {log_level.value}")


structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(log_level.value)
)

log = structlog.get_logger(__name__)


def parse_labels(raw: str) -> dict[str, str]:
    """'env=prod,host=hub' -> {'env': 'prod', 'host': 'hub'}. Malformed pairs are logged and dropped."""
    labels = {}
    for pair in raw.split(","):
        pair = pair.strip()
        if not pair:
            continue
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            log.warning("Ignoring malformed Loki label", label=pair)
            continue
        labels[key.strip()] = value.strip()
    return labels


async def poll_stats(modem: DocsisModem, collector: ModemStatsCollector) -> None:
    """Refresh the collector's snapshot forever. A failed poll clears it so stale numbers aren't exported."""
    while True:
        modem.invalidate()
        try:
            collector.update(await modem.get_snapshot())
        except (ModemFetchError, ModemNotOkError) as e:
            log.error("Failed to fetch stats from modem", error=e)
            collector.update(None)
        except ModemDecodeError as e:
            log.error("Failed to decode stats from modem", error=e)
            collector.update(None)
        # pylint: disable=broad-exception-caught
        except Exception as e:
            _e = "Unforeseen exception. Treating as non-fatal."
            log.error(_e, error=e)
            collector.update(None)

        log.debug(f"Sleeping {METRICS_POLL_INTERVAL_SECONDS} seconds before next poll")
        await asyncio.sleep(METRICS_POLL_INTERVAL_SECONDS)


async def main():
    """Main entry point."""
    log.info("Starting up", modem_ip=MODEM_IP)

    # In testing, server responds to requests on / and /metrics so there's no real
    #   need to allow customizing the path, I think.
    server, _ = start_http_server(port=METRICS_PORT)
    log.info("Metrics server started", server=server.server_address)

    # The hub has a self-signed cert so there's nothing to verify against
    client = ClientSession(
        headers=REQUEST_HEADERS,
        timeout=ClientTimeout(total=HTTP_TIMEOUT_SECONDS),
        connector=TCPConnector(ssl=False),
    )

    modem = Modem(client, MODEM_IP)
    collector = ModemStatsCollector(modem.type())
    REGISTRY.register(collector)

    tasks = [poll_stats(modem, collector)]
    if LOKI_URL:
        loki = LokiExporter(
            client,
            LOKI_URL,
            modem,
            labels=parse_labels(LOKI_LABELS),
            seen_max_entries=LOKI_SEEN_MAX_ENTRIES,
        )
        log.info("Shipping event log to Loki", url=LOKI_URL, labels=loki.labels)
        tasks.append(loki.poll(LOKI_PUSH_INTERVAL_SECONDS))
    else:
        log.info("LOKI_URL not set; not shipping event log")

    try:
        await asyncio.gather(*tasks)
    finally:
        await client.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
