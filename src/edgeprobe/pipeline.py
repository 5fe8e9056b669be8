from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import httpcore
from rich.progress import Progress

from .cli_errors import CLIError, UploadError
from .config import PipelineConfig
from .dispatcher import BoundedDispatcher, ResultSink
from .geo import GeoResolver
from .limits import raise_open_file_limit
from .models import Candidate, ProbeResult
from .output import write_results_csv
from .performance import PerformanceTracker
from .probe import ConnectivityProber
from .ranking import RankedResult, rank_results
from .serialize import dump_to_path
from .speedtest import SpeedTester
from .statistics import StatisticsEngine
from .upload import upload_results

logger = logging.getLogger(__name__)

PipelineResult = Dict[str, Any]

NO_SURVIVORS = "no valid endpoints found"


def _progress_callback(progress: Optional[Progress], description: str, total: int):
    if progress is None or total == 0:
        return None
    task = progress.add_task(description, total=total)

    def advance(done: int) -> None:
        progress.update(task, completed=done)

    return advance


async def run_probe_stage(
    candidates: Sequence[Candidate],
    config: PipelineConfig,
    resolver: GeoResolver,
    progress: Optional[Progress] = None,
    network_backend: Optional[httpcore.AsyncNetworkBackend] = None,
) -> List[ProbeResult]:
    """Probe every candidate with at most ``probe_workers`` in flight."""
    prober = ConnectivityProber(config, resolver, network_backend=network_backend)
    sink: ResultSink[ProbeResult] = ResultSink()
    dispatcher = BoundedDispatcher(
        config.probe_workers,
        on_complete=_progress_callback(progress, "Probing candidates", len(candidates)),
        name="probe",
    )
    for candidate in candidates:
        await dispatcher.submit(prober.probe_into, candidate, sink)
    await dispatcher.await_all()
    logger.info(
        "Probe stage finished: %d of %d candidates valid",
        prober.validated.value,
        len(candidates),
    )
    return sink.snapshot()


async def run_speed_stage(
    probes: Sequence[ProbeResult],
    config: PipelineConfig,
    progress: Optional[Progress] = None,
    network_backend: Optional[httpcore.AsyncNetworkBackend] = None,
) -> List[RankedResult]:
    tester = SpeedTester(config, network_backend=network_backend)
    results = await tester.run(
        probes, on_complete=_progress_callback(progress, "Speed testing", len(probes))
    )
    logger.info("Speed-test stage finished: %d of %d passed", len(results), len(probes))
    return list(results)


async def run_full_pipeline(
    candidates: Sequence[Candidate],
    config: PipelineConfig,
    resolver: GeoResolver,
    *,
    progress: Optional[Progress] = None,
    output_file: Optional[str | Path] = None,
    summary_file: Optional[str | Path] = None,
    upload_url: str = "",
    upload_token: str = "",
    network_backend: Optional[httpcore.AsyncNetworkBackend] = None,
    raise_file_limit: bool = True,
    tracker: Optional[PerformanceTracker] = None,
) -> PipelineResult:
    """
    Probe, optionally speed-test, rank and export a candidate list.

    ``tracker`` lets the caller include phases timed before the call, such
    as loading the candidates and the location database.

    Returns:
        Dictionary containing success flag, stats, ranked results, output
        paths, error and timing metrics.

    Raises:
        CLIError: On infrastructure failures such as an unwritable export.
    """
    tracker = tracker or PerformanceTracker()
    stats: Dict[str, Any] = {
        "candidates": len(candidates),
        "probe_survivors": 0,
        "speed_tested": False,
        "final_survivors": 0,
        "uploaded": 0,
        "upload_error": None,
    }
    output_files: Dict[str, str] = {}

    def finish(success: bool, results: List[RankedResult], error: Optional[str]) -> PipelineResult:
        snapshot = tracker.snapshot(
            candidates_probed=len(candidates),
            endpoints_validated=stats["probe_survivors"],
            endpoints_exported=len(results) if success else 0,
        )
        return {
            "success": success,
            "stats": stats,
            "results": results,
            "output_files": output_files,
            "error": error,
            "metrics": snapshot.to_dict(),
        }

    if not candidates:
        logger.error("No candidates to probe")
        return finish(False, [], "no candidates to probe")

    if raise_file_limit:
        raise_open_file_limit()

    try:
        logger.info(
            "Starting scan of %d candidates (%d probe workers, %d speed-test workers)",
            len(candidates),
            config.probe_workers,
            config.speed_workers,
        )
        with tracker.phase("probe"):
            probes = await run_probe_stage(
                candidates, config, resolver, progress, network_backend
            )
        stats["probe_survivors"] = len(probes)

        if not probes:
            logger.warning("No candidate passed the connectivity probe")
            return finish(False, [], NO_SURVIVORS)

        survivors: List[RankedResult] = list(probes)
        if config.speed_test_enabled:
            stats["speed_tested"] = True
            with tracker.phase("speed"):
                survivors = await run_speed_stage(probes, config, progress, network_backend)

        ranked = rank_results(survivors, stats["speed_tested"])
        stats["final_survivors"] = len(ranked)

        if output_file is not None:
            with tracker.phase("export"):
                path = write_results_csv(output_file, ranked, config.tls, stats["speed_tested"])
            output_files["csv"] = str(path)

        if summary_file is not None:
            with tracker.phase("export"):
                report = StatisticsEngine(
                    ranked, total_candidates=len(candidates), probe_survivors=len(probes)
                ).generate_report()
                report["settings"] = config.describe()
                try:
                    path = dump_to_path(Path(summary_file), report)
                except OSError as exc:
                    logger.warning("Could not write summary %s: %s", summary_file, exc)
                else:
                    output_files["summary"] = str(path)

        if upload_url and ranked:
            with tracker.phase("upload"):
                try:
                    stats["uploaded"] = await upload_results(ranked, upload_url, upload_token)
                except UploadError as exc:
                    logger.error("Upload failed: %s", exc.message)
                    stats["upload_error"] = exc.message

        return finish(True, ranked, None)

    except CLIError:
        raise
    except Exception as exc:  # pragma: no cover
        logger.error("Pipeline failed with exception: %s", exc, exc_info=True)
        return finish(False, [], f"Pipeline failed: {exc}")
