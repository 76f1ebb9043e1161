"""
Renders the most recent ModemStats as Prometheus metrics.

Unlike the meta metrics in util/metrics.py, the per-channel metrics can't be module level Gauge() objects:
channels come and go between polls (re-ranging, OFDM channel swaps ...) and a stale labelset on a Gauge would be
exported forever. So a custom collector builds fresh metric families from the latest snapshot on every scrape.

If the last poll failed there is no snapshot and nothing but the meta metrics is exported.
"""

from collections.abc import Iterator

import structlog
from prometheus_client.metrics_core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.registry import Collector
from util.types import TYPE_DOCSIS, TYPE_VDSL, ModemStats

log = structlog.get_logger(__name__)

METRICS_NS = "modemstats"

DOCSIS_DOWN_LABELS = ["channel", "id", "modulation", "scheme"]
DOCSIS_UP_LABELS = ["channel", "id"]
VDSL_LABELS = ["id"]
CONFIG_LABELS = ["config", "serviceflow_id"]


def _name(subsystem: str, name: str) -> str:
    return f"{METRICS_NS}_{subsystem}_{name}"


class ModemStatsCollector(Collector):
    """Holds the last snapshot handed to update() and renders it on collect() using the label sets of `modem_type`."""

    def __init__(self, modem_type: str = TYPE_DOCSIS):
        # Picks the metric families; a DOCSIS modem has no noise/attenuation and a VDSL one has no QAM channels
        self.modem_type = modem_type
        self.snapshot: ModemStats | None = None

    def update(self, snapshot: ModemStats | None) -> None:
        """Swap in a new snapshot; None clears it (failed poll)."""
        self.snapshot = snapshot

    def collect(self) -> Iterator[Metric]:
        # Grab a reference once; the poll loop may swap it mid-scrape
        stats = self.snapshot
        if stats is None:
            log.debug("No stats snapshot to export")
            return

        if self.modem_type == TYPE_VDSL:
            yield from _collect_vdsl(stats)
        else:
            yield from _collect_docsis(stats)

        maxrate = GaugeMetricFamily(
            _name("config", "maxrate"), "Maximum link rate", labels=CONFIG_LABELS
        )
        maxburst = GaugeMetricFamily(
            _name("config", "maxburst"), "Maximum link burst rate", labels=CONFIG_LABELS
        )
        for cfg in stats.configs:
            labels = [cfg.config, str(cfg.service_flow_id)]
            maxrate.add_metric(labels, cfg.maxrate)
            # 0 means the modem didn't report a burst
            if cfg.maxburst != 0:
                maxburst.add_metric(labels, cfg.maxburst)
        yield maxrate
        yield maxburst

        yield GaugeMetricFamily(
            _name("shstatsinfo", "timems"),
            "Time to fetch statistics from the modem in milliseconds",
            value=stats.fetch_time_ms,
        )


def _collect_docsis(stats: ModemStats) -> Iterator[Metric]:
    down = {
        "frequency": GaugeMetricFamily(
            _name("downstream", "frequency"), "Downstream Frequency in HZ", labels=DOCSIS_DOWN_LABELS
        ),
        "power": GaugeMetricFamily(
            _name("downstream", "power"), "Downstream Power level in dBmv", labels=DOCSIS_DOWN_LABELS
        ),
        "snr": GaugeMetricFamily(
            _name("downstream", "snr"), "Downstream SNR in dB", labels=DOCSIS_DOWN_LABELS
        ),
        "prerserr": GaugeMetricFamily(
            _name("downstream", "prerserr"),
            "Number of Errors per channel Pre RS",
            labels=DOCSIS_DOWN_LABELS,
        ),
        "postrserr": GaugeMetricFamily(
            _name("downstream", "postrserr"),
            "Number of Errors per channel Post RS",
            labels=DOCSIS_DOWN_LABELS,
        ),
        "locked": GaugeMetricFamily(
            _name("downstream", "locked"),
            "Downstream channel lock status (1=locked, 0=unlocked)",
            labels=DOCSIS_DOWN_LABELS,
        ),
    }
    for c in stats.down_channels:
        labels = [str(c.channel), str(c.channel_id), c.modulation, c.scheme]
        down["frequency"].add_metric(labels, c.frequency)
        down["power"].add_metric(labels, c.power)
        down["snr"].add_metric(labels, c.snr)
        down["prerserr"].add_metric(labels, c.prerserr)
        down["postrserr"].add_metric(labels, c.postrserr)
        down["locked"].add_metric(labels, 1.0 if c.locked else 0.0)
    yield from down.values()

    up = {
        "frequency": GaugeMetricFamily(
            _name("upstream", "frequency"), "Upstream Frequency in HZ", labels=DOCSIS_UP_LABELS
        ),
        "power": GaugeMetricFamily(
            _name("upstream", "power"), "Upstream Power level in dBmv", labels=DOCSIS_UP_LABELS
        ),
        "locked": GaugeMetricFamily(
            _name("upstream", "locked"),
            "Upstream channel lock status (1=locked, 0=unlocked)",
            labels=DOCSIS_UP_LABELS,
        ),
        "symbol_rate": GaugeMetricFamily(
            _name("upstream", "symbol_rate"),
            "Upstream symbol rate in ksym/s",
            labels=DOCSIS_UP_LABELS,
        ),
    }
    # Counter families get the _total suffix added on exposition
    timeouts = {
        n: CounterMetricFamily(
            _name("upstream", f"t{n}_timeout"),
            f"Upstream T{n} timeout count",
            labels=DOCSIS_UP_LABELS,
        )
        for n in (1, 2, 3, 4)
    }
    for c in stats.up_channels:
        labels = [str(c.channel), str(c.channel_id)]
        up["frequency"].add_metric(labels, c.frequency)
        up["power"].add_metric(labels, c.power)
        up["locked"].add_metric(labels, 1.0 if c.locked else 0.0)
        # OFDMA channels don't have a symbol rate
        if c.symbol_rate > 0:
            up["symbol_rate"].add_metric(labels, c.symbol_rate)
        timeouts[1].add_metric(labels, c.t1_timeout)
        timeouts[2].add_metric(labels, c.t2_timeout)
        timeouts[3].add_metric(labels, c.t3_timeout)
        timeouts[4].add_metric(labels, c.t4_timeout)
    yield from up.values()
    yield from timeouts.values()


def _collect_vdsl(stats: ModemStats) -> Iterator[Metric]:
    for direction, channels in (
        ("downstream", stats.down_channels),
        ("upstream", stats.up_channels),
    ):
        noise = GaugeMetricFamily(
            _name(direction, "noise"),
            f"{direction.capitalize()} noise level in dB",
            labels=VDSL_LABELS,
        )
        attenuation = GaugeMetricFamily(
            _name(direction, "attenuation"),
            f"{direction.capitalize()} attenuation in dB",
            labels=VDSL_LABELS,
        )
        for c in channels:
            labels = [str(c.channel_id)]
            noise.add_metric(labels, c.noise)
            attenuation.add_metric(labels, c.attenuation)
        yield noise
        yield attenuation
