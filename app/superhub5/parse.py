"""
Turns the merged JSON document the hub returns into the canonical stats types.

Nothing in here does any I/O; scrape.py hands us the merged document and the fetch time.

The REST API reports values differently depending on the channel technology:
    - SC-QAM / ATDMA power is in dBmV with one decimal place; we publish tenths (x10) as an int
    - SC-QAM SNR is a whole dB; we publish tenths (x10)
    - OFDM / OFDMA power is published as-is
    - OFDM has no SNR at all, the closest thing the hub reports is `rxMer`
"""

import json
import re
from typing import Any

import structlog
from err.exceptions import EventLogError, ModemDecodeError
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from util.types import (
    SCHEME_ATDMA,
    SCHEME_OFDM,
    SCHEME_OFDMA,
    SCHEME_SC_QAM,
    EventLogEntry,
    ModemChannel,
    ModemConfig,
    ModemStats,
)

log = structlog.get_logger(__name__)

# qam_256 -> 256
_MODULATION_RE = re.compile(r"[0-9]+")

DOWNSTREAM_SCHEMES = {
    "sc_qam": SCHEME_SC_QAM,
    "ofdm": SCHEME_OFDM,
}

UPSTREAM_SCHEMES = {
    "atdma": SCHEME_ATDMA,
    "ofdma": SCHEME_OFDMA,
}


##
# Shape of the document the hub returns.
# Anything the hub sends that we don't list here is ignored; anything we list that the hub leaves out
#   takes the default. A field of the wrong type is a decode error.
##
class _RawModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class RawDownstreamChannel(_RawModel):
    channel_id: int = Field(0, alias="channelId")
    frequency: int = 0
    power: float = 0.0
    modulation: str = ""
    snr: int = 0
    corrected_errors: int = Field(0, alias="correctedErrors")
    uncorrected_errors: int = Field(0, alias="uncorrectedErrors")
    channel_type: str = Field("", alias="channelType")
    rx_mer: int = Field(0, alias="rxMer")
    lock_status: bool = Field(False, alias="lockStatus")


class RawUpstreamChannel(_RawModel):
    channel_id: int = Field(0, alias="channelId")
    frequency: int = 0
    power: float = 0.0
    modulation: str = ""
    channel_type: str = Field("", alias="channelType")
    lock_status: bool = Field(False, alias="lockStatus")
    symbol_rate: int = Field(0, alias="symbolRate")
    t1_timeout: int = Field(0, alias="t1Timeout")
    t2_timeout: int = Field(0, alias="t2Timeout")
    t3_timeout: int = Field(0, alias="t3Timeout")
    t4_timeout: int = Field(0, alias="t4Timeout")


class RawServiceFlowDetail(_RawModel):
    service_flow_id: int = Field(0, alias="serviceFlowId")
    direction: str = ""
    max_traffic_rate: int = Field(0, alias="maxTrafficRate")
    max_traffic_burst: int = Field(0, alias="maxTrafficBurst")


class RawServiceFlow(_RawModel):
    service_flow: RawServiceFlowDetail = Field(
        default_factory=RawServiceFlowDetail, alias="serviceFlow"
    )


class RawDownstream(_RawModel):
    channels: list[RawDownstreamChannel] = Field(default_factory=list)


class RawUpstream(_RawModel):
    channels: list[RawUpstreamChannel] = Field(default_factory=list)


class RawStats(_RawModel):
    downstream: RawDownstream = Field(default_factory=RawDownstream)
    upstream: RawUpstream = Field(default_factory=RawUpstream)
    service_flows: list[RawServiceFlow] = Field(
        default_factory=list, alias="serviceFlows"
    )


class RawEventLogEntry(_RawModel):
    priority: str = ""
    time: str = ""
    message: str = ""


class RawEventLog(_RawModel):
    eventlog: list[RawEventLogEntry] = Field(default_factory=list)


def _qam_label(modulation: str) -> str:
    """'qam_256' -> 'QAM256'. No number in the raw string gives a bare 'QAM'."""
    match = _MODULATION_RE.search(modulation)
    return "QAM" + (match.group(0) if match else "")


def _tenths(value: float) -> int:
    # round(), not int(); the x10 can land a hair under the whole number
    return int(round(value * 10))


def _downstream_channels(raw: list[RawDownstreamChannel]) -> list[ModemChannel]:
    channels = []
    for ds in raw:
        scheme = DOWNSTREAM_SCHEMES.get(ds.channel_type)
        if scheme is None:
            log.warning(
                "Unknown channel scheme, skipping channel",
                direction="downstream",
                channel_type=ds.channel_type,
                channel_id=ds.channel_id,
            )
            continue

        if scheme == SCHEME_SC_QAM:
            power = _tenths(ds.power)
            snr = ds.snr * 10
        else:
            power = int(ds.power)
            snr = ds.rx_mer

        channels.append(
            ModemChannel(
                channel_id=ds.channel_id,
                # Skipped channels don't take up a slot
                channel=len(channels) + 1,
                frequency=ds.frequency,
                snr=snr,
                power=power,
                prerserr=ds.corrected_errors + ds.uncorrected_errors,
                postrserr=ds.uncorrected_errors,
                modulation=_qam_label(ds.modulation),
                scheme=scheme,
                locked=ds.lock_status,
            )
        )
    return channels


def _upstream_channels(raw: list[RawUpstreamChannel]) -> list[ModemChannel]:
    channels = []
    for us in raw:
        scheme = UPSTREAM_SCHEMES.get(us.channel_type)
        if scheme is None:
            log.warning(
                "Unknown channel scheme, skipping channel",
                direction="upstream",
                channel_type=us.channel_type,
                channel_id=us.channel_id,
            )
            continue

        power = _tenths(us.power) if scheme == SCHEME_ATDMA else int(us.power)

        channels.append(
            ModemChannel(
                channel_id=us.channel_id,
                channel=len(channels) + 1,
                frequency=us.frequency,
                power=power,
                modulation=_qam_label(us.modulation),
                scheme=scheme,
                locked=us.lock_status,
                symbol_rate=us.symbol_rate,
                t1_timeout=us.t1_timeout,
                t2_timeout=us.t2_timeout,
                t3_timeout=us.t3_timeout,
                t4_timeout=us.t4_timeout,
            )
        )
    return channels


def parse_stats(document: dict[str, Any], fetch_time_ms: int) -> ModemStats:
    """Normalize the merged document.

    Raises:
        ModemDecodeError: the document isn't shaped like the hub's stats.
    """
    try:
        raw = RawStats.model_validate(document)
    except ValidationError as e:
        raise ModemDecodeError(f"Failed to parse stats JSON: {e}") from e

    configs = [
        ModemConfig(
            config=sf.service_flow.direction,
            maxrate=sf.service_flow.max_traffic_rate,
            maxburst=sf.service_flow.max_traffic_burst,
            service_flow_id=sf.service_flow.service_flow_id,
        )
        for sf in raw.service_flows
    ]

    return ModemStats(
        configs=configs,
        up_channels=_upstream_channels(raw.upstream.channels),
        down_channels=_downstream_channels(raw.downstream.channels),
        fetch_time_ms=fetch_time_ms,
    )


def parse_event_log(body: bytes) -> list[EventLogEntry]:
    """Decode the body of the /eventlog endpoint.

    Raises:
        EventLogError: body isn't JSON or isn't shaped like an event log.
    """
    try:
        raw = RawEventLog.model_validate(json.loads(body))
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
        raise EventLogError(f"Failed to parse eventlog JSON: {e}") from e

    return [
        EventLogEntry(priority=e.priority, timestamp=e.time, message=e.message)
        for e in raw.eventlog
    ]
