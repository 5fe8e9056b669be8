from __future__ import annotations

from dataclasses import asdict, dataclass
from contextlib import contextmanager
from time import perf_counter
from typing import Dict, Iterator


@dataclass
class PerformanceSnapshot:
    """Captured metrics for a scan."""

    total_seconds: float
    load_seconds: float = 0.0
    probe_seconds: float = 0.0
    speed_seconds: float = 0.0
    export_seconds: float = 0.0
    upload_seconds: float = 0.0
    candidates_probed: int = 0
    endpoints_validated: int = 0
    endpoints_exported: int = 0

    @property
    def candidates_per_second(self) -> float:
        """Probe throughput in candidates per second."""
        if self.probe_seconds <= 0 or self.candidates_probed == 0:
            return 0.0
        return self.candidates_probed / self.probe_seconds

    def to_dict(self) -> Dict[str, float]:
        """Serialize snapshot to a dictionary."""
        data = asdict(self)
        data["candidates_per_second"] = self.candidates_per_second
        return data


class PerformanceTracker:
    """Utility to record phase timings for a scan."""

    def __init__(self) -> None:
        self._start_time = perf_counter()
        self._phase_durations: Dict[str, float] = {}

    @contextmanager
    def phase(self, name: str) -> Iterator[None]:
        """Context manager to record the duration of a named phase."""
        phase_start = perf_counter()
        try:
            yield
        finally:
            elapsed = perf_counter() - phase_start
            self._phase_durations[name] = self._phase_durations.get(name, 0.0) + elapsed

    def duration(self, name: str) -> float:
        return self._phase_durations.get(name, 0.0)

    def snapshot(
        self,
        *,
        candidates_probed: int = 0,
        endpoints_validated: int = 0,
        endpoints_exported: int = 0,
    ) -> PerformanceSnapshot:
        """Produce a snapshot of collected metrics."""
        return PerformanceSnapshot(
            total_seconds=perf_counter() - self._start_time,
            load_seconds=self.duration("load"),
            probe_seconds=self.duration("probe"),
            speed_seconds=self.duration("speed"),
            export_seconds=self.duration("export"),
            upload_seconds=self.duration("upload"),
            candidates_probed=candidates_probed,
            endpoints_validated=endpoints_validated,
            endpoints_exported=endpoints_exported,
        )
