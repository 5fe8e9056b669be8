import ipaddress
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .constants import MAX_PORT, MIN_PORT


@dataclass(frozen=True, slots=True)
class Candidate:
    """An address/port pair considered for probing."""

    address: str
    port: int

    def __post_init__(self) -> None:
        try:
            ipaddress.ip_address(self.address)
        except ValueError as exc:
            raise ValueError(f"Invalid IP address: {self.address!r}") from exc
        if not MIN_PORT <= self.port <= MAX_PORT:
            raise ValueError(f"Port out of range: {self.port}")

    @property
    def endpoint(self) -> str:
        """``address:port`` form, bracketing IPv6 literals."""
        if ":" in self.address:
            return f"[{self.address}]:{self.port}"
        return f"{self.address}:{self.port}"

    def __str__(self) -> str:
        return f"{self.address} {self.port}"


@dataclass(frozen=True, slots=True)
class LocationRecord:
    """One entry of the datacenter geo database."""

    iata: str
    lat: float = 0.0
    lon: float = 0.0
    cca2: str = ""
    region: str = ""
    city: str = ""
    region_localized: str = ""
    country: str = ""
    city_localized: str = ""
    flag: str = ""


@dataclass(frozen=True, slots=True)
class ProbeResult:
    """A candidate that passed the connectivity probe.

    Geo fields stay empty when the datacenter code is not in the database.
    """

    candidate: Candidate
    datacenter: str
    location_code: str
    latency_ms: float
    region: str = ""
    city: str = ""
    region_localized: str = ""
    country: str = ""
    city_localized: str = ""
    flag: str = ""

    @classmethod
    def build(
        cls,
        candidate: Candidate,
        datacenter: str,
        location_code: str,
        latency_ms: float,
        location: Optional[LocationRecord] = None,
    ) -> "ProbeResult":
        if location is None:
            return cls(candidate, datacenter, location_code, latency_ms)
        return cls(
            candidate,
            datacenter,
            location_code,
            latency_ms,
            region=location.region,
            city=location.city,
            region_localized=location.region_localized,
            country=location.country,
            city_localized=location.city_localized,
            flag=location.flag,
        )

    @property
    def address(self) -> str:
        return self.candidate.address

    @property
    def port(self) -> int:
        return self.candidate.port

    @property
    def has_location(self) -> bool:
        return bool(self.region or self.city or self.country)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the result to a dictionary for JSON serialization."""
        return {
            "address": self.address,
            "port": self.port,
            "datacenter": self.datacenter,
            "location": self.location_code,
            "region": self.region,
            "city": self.city,
            "region_localized": self.region_localized,
            "country": self.country,
            "city_localized": self.city_localized,
            "flag": self.flag,
            "latency_ms": round(self.latency_ms, 2),
        }


@dataclass(frozen=True, slots=True)
class SpeedResult:
    """A probe survivor together with its measured download rate."""

    probe: ProbeResult
    throughput_kbs: float = 0.0
    bytes_received: int = field(default=0, compare=False)

    @property
    def throughput_mbs(self) -> float:
        return self.throughput_kbs / 1024

    @property
    def candidate(self) -> Candidate:
        return self.probe.candidate

    @property
    def latency_ms(self) -> float:
        return self.probe.latency_ms

    def to_dict(self) -> Dict[str, Any]:
        data = self.probe.to_dict()
        data["throughput_kbs"] = round(self.throughput_kbs, 2)
        return data
