"""Tests for the stats collector."""

import pytest
from prometheus_client import CollectorRegistry, generate_latest

from outputs.prometheus import ModemStatsCollector
from superhub5 import parse
from util.types import TYPE_DOCSIS, TYPE_VDSL, ModemChannel, ModemStats

DS_LABELS = {"channel": "1", "id": "37", "modulation": "QAM256", "scheme": "SC-QAM"}
US_LABELS = {"channel": "1", "id": "1"}


@pytest.fixture
def collector():
    return ModemStatsCollector()


@pytest.fixture
def registry(collector):
    registry = CollectorRegistry()
    registry.register(collector)
    return registry


@pytest.fixture
def stats(full_document):
    return parse.parse_stats(full_document, 250)


def _sample_count(registry, name: str) -> int:
    return sum(
        1 for family in registry.collect() for sample in family.samples if sample.name == name
    )


def test_nothing_exported_without_snapshot(registry):
    assert generate_latest(registry) == b""


def test_failed_poll_clears_metrics(collector, registry, stats):
    collector.update(stats)
    collector.update(None)

    assert registry.get_sample_value("modemstats_shstatsinfo_timems") is None


def test_downstream(collector, registry, stats):
    collector.update(stats)

    assert registry.get_sample_value("modemstats_downstream_frequency", DS_LABELS) == 419000000
    assert registry.get_sample_value("modemstats_downstream_power", DS_LABELS) == 21
    assert registry.get_sample_value("modemstats_downstream_snr", DS_LABELS) == 410
    assert registry.get_sample_value("modemstats_downstream_prerserr", DS_LABELS) == 257919
    assert registry.get_sample_value("modemstats_downstream_postrserr", DS_LABELS) == 11087
    assert registry.get_sample_value("modemstats_downstream_locked", DS_LABELS) == 1

    unlocked = {"channel": "3", "id": "39", "modulation": "QAM256", "scheme": "SC-QAM"}
    assert registry.get_sample_value("modemstats_downstream_locked", unlocked) == 0

    for name in ("frequency", "power", "snr", "prerserr", "postrserr", "locked"):
        assert _sample_count(registry, f"modemstats_downstream_{name}") == 4


def test_upstream(collector, registry, stats):
    collector.update(stats)

    assert registry.get_sample_value("modemstats_upstream_frequency", US_LABELS) == 49600000
    assert registry.get_sample_value("modemstats_upstream_power", US_LABELS) == 448
    assert registry.get_sample_value("modemstats_upstream_locked", US_LABELS) == 1
    assert registry.get_sample_value("modemstats_upstream_symbol_rate", US_LABELS) == 5120
    assert registry.get_sample_value("modemstats_upstream_t3_timeout_total", US_LABELS) == 3
    assert registry.get_sample_value("modemstats_upstream_t4_timeout_total", US_LABELS) == 1

    assert _sample_count(registry, "modemstats_upstream_power") == 3
    # OFDMA has no symbol rate
    assert _sample_count(registry, "modemstats_upstream_symbol_rate") == 2
    assert registry.get_sample_value("modemstats_upstream_symbol_rate", {"channel": "3", "id": "11"}) is None


def test_configs(collector, registry, stats):
    collector.update(stats)

    assert registry.get_sample_value(
        "modemstats_config_maxrate", {"config": "downstream", "serviceflow_id": "412832"}
    ) == 287500061
    assert registry.get_sample_value(
        "modemstats_config_maxburst", {"config": "upstream", "serviceflow_id": "412831"}
    ) == 42600
    assert _sample_count(registry, "modemstats_config_maxrate") == 4
    # 412834 reports no burst
    assert _sample_count(registry, "modemstats_config_maxburst") == 3
    assert registry.get_sample_value(
        "modemstats_config_maxburst", {"config": "downstream", "serviceflow_id": "412834"}
    ) is None


def test_fetch_time(collector, registry, stats):
    collector.update(stats)

    assert registry.get_sample_value("modemstats_shstatsinfo_timems") == 250


def test_exposition_format(collector, registry, stats):
    collector.update(stats)

    text = generate_latest(registry).decode()

    assert "# TYPE modemstats_downstream_frequency gauge" in text
    assert "modemstats_upstream_t1_timeout_total{" in text
    assert (
        'modemstats_config_maxrate{config="downstream",serviceflow_id="412834"} 128000.0' in text
    )


def test_vdsl():
    collector = ModemStatsCollector(TYPE_VDSL)
    registry = CollectorRegistry()
    registry.register(collector)
    collector.update(
        ModemStats(
            down_channels=[ModemChannel(channel_id=1, channel=1, noise=62, attenuation=14)],
            up_channels=[ModemChannel(channel_id=1, channel=1, noise=71, attenuation=3)],
            fetch_time_ms=12,
        )
    )

    assert registry.get_sample_value("modemstats_downstream_noise", {"id": "1"}) == 62
    assert registry.get_sample_value("modemstats_downstream_attenuation", {"id": "1"}) == 14
    assert registry.get_sample_value("modemstats_upstream_noise", {"id": "1"}) == 71
    assert registry.get_sample_value("modemstats_upstream_attenuation", {"id": "1"}) == 3
    assert registry.get_sample_value("modemstats_downstream_power", {"id": "1"}) is None
    assert registry.get_sample_value("modemstats_shstatsinfo_timems") == 12


def test_docsis_is_the_default_family(collector):
    assert collector.modem_type == TYPE_DOCSIS


def test_vdsl_family_ignores_docsis_channel_fields(stats):
    collector = ModemStatsCollector(TYPE_VDSL)
    registry = CollectorRegistry()
    registry.register(collector)
    collector.update(stats)

    assert registry.get_sample_value("modemstats_downstream_frequency", DS_LABELS) is None
    assert _sample_count(registry, "modemstats_downstream_noise") == 4
