import os
from dataclasses import dataclass, fields, replace
from typing import Any, List, Optional

from . import constants


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class AppSettings:
    """Centralized environment defaults for every scan"""

    # Timeouts (seconds)
    DIAL_TIMEOUT = float(os.getenv("EDGEPROBE_DIAL_TIMEOUT", str(constants.DIAL_TIMEOUT)))
    RESPONSE_TIMEOUT = float(
        os.getenv("EDGEPROBE_RESPONSE_TIMEOUT", str(constants.RESPONSE_TIMEOUT))
    )
    SPEED_TEST_TIMEOUT = float(
        os.getenv("EDGEPROBE_SPEED_TEST_TIMEOUT", str(constants.SPEED_TEST_TIMEOUT))
    )

    # Filters (0 disables the filter)
    LATENCY_THRESHOLD_MS = int(
        os.getenv("EDGEPROBE_LATENCY_THRESHOLD_MS", str(constants.LATENCY_THRESHOLD_MS))
    )
    THROUGHPUT_THRESHOLD_MBS = float(
        os.getenv("EDGEPROBE_THROUGHPUT_THRESHOLD_MBS", str(constants.THROUGHPUT_THRESHOLD_MBS))
    )

    # Worker widths (speed-test width 0 skips the stage)
    PROBE_WORKERS = int(os.getenv("EDGEPROBE_PROBE_WORKERS", str(constants.PROBE_WORKERS)))
    SPEED_TEST_WORKERS = int(
        os.getenv("EDGEPROBE_SPEED_TEST_WORKERS", str(constants.SPEED_TEST_WORKERS))
    )

    # Endpoints
    TLS_ENABLED: bool = _env_bool("EDGEPROBE_TLS", "True")
    TLS_ALLOW_INSECURE: bool = _env_bool("EDGEPROBE_TLS_ALLOW_INSECURE", "False")
    TRACE_URL = os.getenv("EDGEPROBE_TRACE_URL", constants.TRACE_URL)
    SPEED_TEST_URL = os.getenv("EDGEPROBE_SPEED_TEST_URL", constants.SPEED_TEST_URL)
    CLIENT_IDENTIFIER = os.getenv("EDGEPROBE_CLIENT_IDENTIFIER", constants.CLIENT_IDENTIFIER)

    # Geo database
    LOCATIONS_URL = os.getenv("EDGEPROBE_LOCATIONS_URL", constants.LOCATIONS_URL)
    LOCATIONS_CACHE = os.getenv("EDGEPROBE_LOCATIONS_CACHE", constants.LOCATIONS_CACHE)

    # Output & upload
    OUTPUT_FILE = os.getenv("EDGEPROBE_OUTPUT_FILE", constants.OUTPUT_FILE)
    UPLOAD_URL = os.getenv("EDGEPROBE_UPLOAD_URL", "")
    UPLOAD_TOKEN = os.getenv("EDGEPROBE_UPLOAD_TOKEN", "")

    # Logging
    MASK_SENSITIVE_DATA = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    RAISE_FILE_LIMIT: bool = _env_bool("EDGEPROBE_RAISE_FILE_LIMIT", "True")


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable per-run configuration handed to every pipeline component."""

    dial_timeout: float = constants.DIAL_TIMEOUT
    response_timeout: float = constants.RESPONSE_TIMEOUT
    speed_timeout: float = constants.SPEED_TEST_TIMEOUT
    latency_threshold_ms: int = constants.LATENCY_THRESHOLD_MS
    throughput_threshold_mbs: float = constants.THROUGHPUT_THRESHOLD_MBS
    probe_workers: int = constants.PROBE_WORKERS
    speed_workers: int = constants.SPEED_TEST_WORKERS
    tls: bool = True
    allow_insecure_tls: bool = False
    trace_url: str = constants.TRACE_URL
    speed_url: str = constants.SPEED_TEST_URL
    user_agent: str = constants.CLIENT_IDENTIFIER

    def __post_init__(self) -> None:
        for name in ("dial_timeout", "response_timeout", "speed_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.latency_threshold_ms < 0:
            raise ValueError("latency_threshold_ms must be >= 0")
        if self.throughput_threshold_mbs < 0:
            raise ValueError("throughput_threshold_mbs must be >= 0")
        if self.probe_workers < 1:
            raise ValueError("probe_workers must be at least 1")
        if self.speed_workers < 0:
            raise ValueError("speed_workers must be >= 0")
        if not self.user_agent:
            raise ValueError("user_agent must not be empty")

    @classmethod
    def from_settings(
        cls, settings: Optional[AppSettings] = None, **overrides: Any
    ) -> "PipelineConfig":
        """Build the run configuration from environment defaults plus overrides.

        Overrides whose value is ``None`` are ignored so CLI options that were
        not given fall back to the environment.
        """
        settings = settings or AppSettings()
        base = cls(
            dial_timeout=settings.DIAL_TIMEOUT,
            response_timeout=settings.RESPONSE_TIMEOUT,
            speed_timeout=settings.SPEED_TEST_TIMEOUT,
            latency_threshold_ms=settings.LATENCY_THRESHOLD_MS,
            throughput_threshold_mbs=settings.THROUGHPUT_THRESHOLD_MBS,
            probe_workers=settings.PROBE_WORKERS,
            speed_workers=settings.SPEED_TEST_WORKERS,
            tls=settings.TLS_ENABLED,
            allow_insecure_tls=settings.TLS_ALLOW_INSECURE,
            trace_url=settings.TRACE_URL,
            speed_url=settings.SPEED_TEST_URL,
            user_agent=settings.CLIENT_IDENTIFIER,
        )
        known = {field.name for field in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(base, **changes) if changes else base

    @property
    def scheme(self) -> str:
        return "https" if self.tls else "http"

    @property
    def trace_endpoint(self) -> str:
        return f"{self.scheme}://{self.trace_url}"

    @property
    def speed_endpoint(self) -> str:
        return f"{self.scheme}://{self.speed_url}"

    @property
    def trace_marker(self) -> str:
        """Substring the diagnostic body must echo back."""
        return f"uag={self.user_agent}"

    @property
    def speed_test_enabled(self) -> bool:
        return self.speed_workers > 0

    def describe(self) -> List[str]:
        """Human-readable view of the effective settings."""

        def disabled(flag: bool, label: str) -> str:
            return f" ({label})" if flag else ""

        return [
            f"Latency threshold: {self.latency_threshold_ms} ms"
            + disabled(self.latency_threshold_ms == 0, "filter disabled"),
            f"Throughput threshold: {self.throughput_threshold_mbs:.1f} MB/s"
            + disabled(self.throughput_threshold_mbs == 0, "filter disabled"),
            f"Speed-test workers: {self.speed_workers}"
            + disabled(self.speed_workers == 0, "speed test disabled"),
            f"Probe workers: {self.probe_workers}",
            f"TLS enabled: {str(self.tls).lower()}",
            f"Dial timeout: {self.dial_timeout:g}s",
            f"Response timeout: {self.response_timeout:g}s",
            f"Speed-test timeout: {self.speed_timeout:g}s",
            f"Diagnostic URL: {self.trace_endpoint}",
            f"Speed-test URL: {self.speed_endpoint}",
        ]
