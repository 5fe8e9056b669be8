"""Joining and ordering of stage survivors."""

from typing import List, Sequence, Union

from .models import ProbeResult, SpeedResult

RankedResult = Union[ProbeResult, SpeedResult]


def rank_results(results: Sequence[RankedResult], speed_tested: bool) -> List[RankedResult]:
    """Order survivors for export.

    Speed-tested results are ranked fastest first; otherwise the lowest
    handshake latency comes first. Ties keep their incoming order.
    """
    if speed_tested:
        return sorted(
            results,
            key=lambda result: getattr(result, "throughput_kbs", 0.0),
            reverse=True,
        )
    return sorted(results, key=lambda result: result.latency_ms)


def as_probe(result: RankedResult) -> ProbeResult:
    """Return the probe half of either result type."""
    if isinstance(result, SpeedResult):
        return result.probe
    return result
