from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from statistics import mean, median, stdev
from typing import Dict, List, Mapping, Sequence

from .ranking import RankedResult, as_probe
from .models import SpeedResult


@dataclass
class SurvivalStats:
    total_candidates: int
    probe_survivors: int
    final_survivors: int

    @property
    def survival_rate(self) -> float:
        if self.total_candidates == 0:
            return 0.0
        return self.final_survivors / self.total_candidates


def _summary(values: List[float]) -> Dict[str, float]:
    if not values:
        return {}
    stats: Dict[str, float] = {
        "min": min(values),
        "max": max(values),
        "mean": mean(values),
        "median": median(values),
    }
    if len(values) > 1:
        stats["stdev"] = stdev(values)
    else:
        stats["stdev"] = 0.0
    return stats


class StatisticsEngine:
    """Compute aggregate statistics for a ranked result set."""

    def __init__(
        self,
        results: Sequence[RankedResult],
        total_candidates: int = 0,
        probe_survivors: int | None = None,
    ):
        self.results: List[RankedResult] = list(results)
        self.total_candidates = total_candidates
        self.probe_survivors = len(self.results) if probe_survivors is None else probe_survivors

    def datacenter_distribution(self) -> Mapping[str, int]:
        return Counter(as_probe(result).datacenter or "Unknown" for result in self.results)

    def country_distribution(self) -> Mapping[str, int]:
        return Counter(as_probe(result).country or "Unknown" for result in self.results)

    def latency_stats(self) -> Dict[str, float]:
        return _summary([as_probe(result).latency_ms for result in self.results])

    def throughput_stats(self) -> Dict[str, float]:
        """Throughput summary in MB/s; empty when nothing was speed-tested."""
        return _summary(
            [result.throughput_mbs for result in self.results if isinstance(result, SpeedResult)]
        )

    def survival_stats(self) -> SurvivalStats:
        return SurvivalStats(
            total_candidates=self.total_candidates,
            probe_survivors=self.probe_survivors,
            final_survivors=len(self.results),
        )

    def generate_report(self) -> Dict[str, object]:
        survival = self.survival_stats()
        return {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "total_candidates": survival.total_candidates,
            "probe_survivors": survival.probe_survivors,
            "final_survivors": survival.final_survivors,
            "survival_rate": round(survival.survival_rate * 100, 2),
            "datacenter_distribution": dict(self.datacenter_distribution()),
            "country_distribution": dict(self.country_distribution()),
            "latency_ms": self.latency_stats(),
            "throughput_mbs": self.throughput_stats(),
        }
