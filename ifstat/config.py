"""
Configuration for the interface statistics check.

We use pydantic-settings (Pydantic v2) to load settings from:
- environment variables (prefixed with IFSTAT_)
- a local `.env` file in the working directory

The settings object is immutable. It is built once per invocation and
passed explicitly to the components that need it.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, List, Literal, Optional

from pydantic import Field, PositiveInt, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict, SettingsError

from ifstat.errors import ConfigurationError
from ifstat.filters import FilterChain
from ifstat.schemas import Status
from ifstat.thresholds import DirectionalThresholds, ThresholdPair


class Settings(BaseSettings):
    """
    Check-wide settings.

    Environment variables (with defaults):

    - IFSTAT_HOST:                  IP/address of the SNMP device (default: 127.0.0.1)
    - IFSTAT_PORT:                  UDP port for SNMP (default: 161)
    - IFSTAT_COMMUNITY:             SNMPv2c community string (default: "public")
    - IFSTAT_TIMEOUT / _RETRIES:    per-connection SNMP timeout and retries
    - IFSTAT_IF_INDEXES:            comma-separated ifIndex values; empty = all
    - IFSTAT_PARALLELISM:           number of collector workers (default: 1)
    - IFSTAT_STATE_FILE:            where the previous samples are kept
    - IFSTAT_USE_STUB:              "1" or "0" to toggle fake SNMP data
    - IFSTAT_INTERFACE_FILTER:      which interfaces are checked at all
    - IFSTAT_COUNT_FILTER:          which checked interfaces may raise the status
    - IFSTAT_USAGE_THRESHOLDS:      bandwidth usage in % (in/out grammar)
    - IFSTAT_BANDWIDTH_THRESHOLDS:  traffic in bits/s (in/out grammar)
    - IFSTAT_ERROR_THRESHOLDS:      errors/s (in/out grammar)
    - IFSTAT_DISCARD_THRESHOLDS:    discards/s (in/out grammar)
    - IFSTAT_ERROR_PERCENT:         errors as % of packets ("crit" or "warn,crit")
    - IFSTAT_TRAFFIC_BYTES:         "1" shows traffic in bytes/s instead of bits/s
    - IFSTAT_INTEGER_DISPLAY:       "1" rounds displayed values up to whole numbers
    - IFSTAT_LOG_LEVEL:             DEBUG, INFO, WARNING, ERROR or CRITICAL
    """

    host: str = "127.0.0.1"
    port: int = 161
    community: str = "public"
    timeout: float = 2.0
    retries: int = 1

    # NoDecode: the raw env string goes to parse_if_indexes instead of json.loads
    if_indexes: Annotated[List[PositiveInt], NoDecode] = Field(default_factory=list)
    parallelism: int = 1

    state_file: Path = Path("ifstat-state.db")

    use_stub: bool = False

    interface_filter: Optional[str] = None
    count_filter: Optional[str] = None

    usage_thresholds: Optional[str] = None
    bandwidth_thresholds: Optional[str] = None
    error_thresholds: Optional[str] = None
    discard_thresholds: Optional[str] = None
    error_percent: Optional[str] = None

    # bits per second; overrides whatever the device reports
    speed_bps: Optional[int] = None

    down_severity: Status = Status.CRITICAL
    warn_promiscuous: bool = False
    human_readable: bool = True
    traffic_bytes: bool = False
    integer_display: bool = False

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="IFSTAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
        frozen=True,
    )

    @field_validator("if_indexes", mode="before")
    @classmethod
    def parse_if_indexes(cls, v):
        """
        Allow IFSTAT_IF_INDEXES to be specified as:

        - ""             -> []
        - "1"            -> [1]
        - "1,2,3"        -> [1, 2, 3]
        - 1              -> [1]
        - [1, 2, 3]      -> [1, 2, 3]
        """
        if isinstance(v, list):
            return v
        if isinstance(v, int):
            return [v]
        if isinstance(v, str):
            parts = [p.strip() for p in v.split(",") if p.strip()]
            return [int(p) for p in parts]
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def parse_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("down_severity", mode="before")
    @classmethod
    def parse_severity(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return Status(int(v)) if v.isdigit() else Status.parse(v)
        return v

    @model_validator(mode="after")
    def check_specs(self) -> "Settings":
        # Fail on malformed thresholds/filters before anything is polled.
        # ConfigurationError is not a ValueError, so pydantic lets it through.
        self.thresholds()
        self.filters()
        return self

    def thresholds(self) -> "CheckThresholds":
        return CheckThresholds(
            usage=DirectionalThresholds.parse(self.usage_thresholds),
            bandwidth=DirectionalThresholds.parse(self.bandwidth_thresholds),
            errors=DirectionalThresholds.parse(self.error_thresholds),
            discards=DirectionalThresholds.parse(self.discard_thresholds),
            error_percent=ThresholdPair.parse(self.error_percent),
        )

    def filters(self) -> "CheckFilters":
        return CheckFilters(
            interfaces=FilterChain.parse(self.interface_filter),
            counted=FilterChain.parse(self.count_filter),
        )


@dataclass(frozen=True)
class CheckThresholds:
    """Parsed threshold specifications, one per metric family."""

    usage: DirectionalThresholds
    bandwidth: DirectionalThresholds
    errors: DirectionalThresholds
    discards: DirectionalThresholds
    error_percent: ThresholdPair


@dataclass(frozen=True)
class CheckFilters:
    interfaces: FilterChain
    counted: FilterChain


def load_settings(**overrides) -> Settings:
    """Build the settings object, mapping validation failures to ConfigurationError."""
    try:
        return Settings(**overrides)
    except (ValidationError, SettingsError) as exc:
        raise ConfigurationError(str(exc)) from exc
