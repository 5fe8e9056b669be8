"""CSV export of ranked results."""

from __future__ import annotations

import csv
import io
import logging
import re
from pathlib import Path
from typing import List, Sequence

from .cli_errors import FileError, OutputError
from .constants import RESULT_COLUMNS, THROUGHPUT_COLUMN
from .models import Candidate, ProbeResult, SpeedResult
from .ranking import RankedResult, as_probe

logger = logging.getLogger(__name__)

LATENCY_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)")


def format_throughput(mbs: float) -> str:
    """Two decimals at or above 1 MB/s, three below."""
    if mbs >= 1:
        return f"{mbs:.2f}"
    return f"{mbs:.3f}"


def format_latency(latency_ms: float) -> str:
    return f"{round(latency_ms)} ms"


def result_row(result: RankedResult, tls: bool, speed_tested: bool) -> List[str]:
    probe = as_probe(result)
    row = [
        probe.address,
        str(probe.port),
        str(tls).lower(),
        probe.datacenter,
        probe.location_code,
        probe.region,
        probe.city,
        probe.region_localized,
        probe.country,
        probe.city_localized,
        probe.flag,
        format_latency(probe.latency_ms),
    ]
    if speed_tested:
        throughput = result.throughput_mbs if isinstance(result, SpeedResult) else 0.0
        row.append(format_throughput(throughput))
    return row


def render_results_csv(
    results: Sequence[RankedResult], tls: bool, speed_tested: bool
) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    header = list(RESULT_COLUMNS)
    if speed_tested:
        header.append(THROUGHPUT_COLUMN)
    writer.writerow(header)
    for result in results:
        writer.writerow(result_row(result, tls, speed_tested))
    return buffer.getvalue()


def write_results_csv(
    path: Path | str,
    results: Sequence[RankedResult],
    tls: bool,
    speed_tested: bool,
) -> Path:
    """Write the export atomically and return its path.

    Raises:
        OutputError: If the file cannot be created.
    """
    target = Path(path)
    content = render_results_csv(results, tls, speed_tested)
    tmp = target.with_suffix(target.suffix + ".tmp")
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(target)
    except OSError as exc:
        if tmp.exists():
            tmp.unlink()
        raise OutputError(f"Cannot write results to {target}: {exc}") from exc
    logger.info("Wrote %d results to %s", len(results), target)
    return target


def _parse_latency(value: str) -> float:
    match = LATENCY_RE.match(value)
    return float(match.group(1)) if match else 0.0


def read_results_csv(path: Path | str) -> List[SpeedResult]:
    """Load a previous export.

    Rows with fewer than the twelve base columns or an invalid port are
    skipped. Throughput is converted back to KB/s; exports without a
    throughput column yield 0.

    Raises:
        FileError: If the file cannot be read.
    """
    source = Path(path)
    try:
        text = source.read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise FileError(f"Cannot read results file {source}: {exc}") from exc

    results: List[SpeedResult] = []
    rows = csv.reader(io.StringIO(text))
    next(rows, None)
    for row in rows:
        if len(row) < len(RESULT_COLUMNS):
            continue
        try:
            candidate = Candidate(row[0].strip(), int(row[1]))
        except ValueError:
            logger.debug("Skipping result row with invalid endpoint: %r", row[:2])
            continue
        probe = ProbeResult(
            candidate,
            datacenter=row[3],
            location_code=row[4],
            latency_ms=_parse_latency(row[11]),
            region=row[5],
            city=row[6],
            region_localized=row[7],
            country=row[8],
            city_localized=row[9],
            flag=row[10],
        )
        throughput_kbs = 0.0
        if len(row) > len(RESULT_COLUMNS):
            try:
                throughput_kbs = float(row[len(RESULT_COLUMNS)]) * 1024
            except ValueError:
                pass
        results.append(SpeedResult(probe, throughput_kbs))
    return results
