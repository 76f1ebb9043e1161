"""
The canonical, vendor-neutral view of a modem that everything downstream of the modem packages works with.

Each modem package is responsible for turning whatever its hardware reports into these types;
the outputs only ever see these types.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

TYPE_DOCSIS = "DOCSIS"
TYPE_VDSL = "VDSL"

SCHEME_SC_QAM = "SC-QAM"
SCHEME_OFDM = "OFDM"
SCHEME_ATDMA = "ATDMA"
SCHEME_OFDMA = "OFDMA"


@dataclass(frozen=True)
class ModemChannel:
    """One up or downstream channel.

    Power and SNR are in tenths of a dB for the single carrier schemes (SC-QAM, ATDMA) and in whole
    units for OFDM/OFDMA; the modem package does that scaling, not the outputs.
    """

    channel_id: int
    # 1 based position in the channel list, after unrecognised channels have been dropped
    channel: int
    frequency: int = 0
    snr: int = 0
    power: int = 0
    prerserr: int = 0
    postrserr: int = 0
    modulation: str = ""
    scheme: str = ""

    # DSL only
    noise: int = 0
    attenuation: int = 0

    # Upstream only
    t1_timeout: int = 0
    t2_timeout: int = 0
    t3_timeout: int = 0
    t4_timeout: int = 0
    symbol_rate: int = 0

    locked: bool = False


@dataclass(frozen=True)
class ModemConfig:
    """A service flow. A `maxburst` of 0 means the modem didn't report one."""

    config: str
    maxrate: int
    maxburst: int
    service_flow_id: int


@dataclass(frozen=True)
class ModemStats:
    configs: list[ModemConfig] = field(default_factory=list)
    up_channels: list[ModemChannel] = field(default_factory=list)
    down_channels: list[ModemChannel] = field(default_factory=list)
    # Wall clock time the fetch + merge took
    fetch_time_ms: int = 0


@dataclass(frozen=True)
class EventLogEntry:
    priority: str
    timestamp: str
    message: str

    @property
    def key(self) -> str:
        """Identity used to decide if the entry has already been shipped."""
        return f"{self.timestamp}{self.priority}{self.message}"


class DocsisModem(ABC):
    """What the outputs need from a modem."""

    @abstractmethod
    async def get_snapshot(self) -> ModemStats:
        """Normalized stats; fetches from the modem only if nothing is cached."""

    @abstractmethod
    def invalidate(self) -> None:
        """Drop the cached document so the next get_snapshot() goes back to the modem."""

    @abstractmethod
    def type(self) -> str:
        """One of TYPE_DOCSIS / TYPE_VDSL"""


class EventLogProvider(ABC):
    @abstractmethod
    async def fetch_event_log(self) -> list[EventLogEntry]:
        """Everything currently in the modem's event log."""
