from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import click
from rich.console import Console
from rich.progress import Progress
from rich.table import Table

from . import __version__, pipeline
from .candidates import download_candidate_list, load_candidates, prepare_candidates
from .cli_errors import CLIError, ConfigError, DataError, handle_cli_errors
from .config import AppSettings, PipelineConfig
from .geo import load_geo_resolver
from .logging_config import setup_logging
from .models import Candidate
from .output import format_latency, format_throughput, read_results_csv
from .performance import PerformanceTracker
from .ranking import RankedResult, as_probe
from .upload import upload_list_file, upload_results

console = Console()
config = AppSettings()

TOP_RESULTS = 10


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default=None, help="Override LOG_LEVEL.")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None)
def cli(log_level: Optional[str], log_file: Optional[str]) -> None:
    """
    edgeprobe: find fast, reachable CDN edge endpoints.
    """
    setup_logging(log_level or config.LOG_LEVEL, config.MASK_SENSITIVE_DATA, log_file=log_file)


def _build_config(**overrides: Any) -> PipelineConfig:
    try:
        return PipelineConfig.from_settings(config, **overrides)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def _display_metrics(metrics: dict) -> None:
    if not metrics:
        return
    console.print("\n[cyan]Performance metrics[/cyan]")
    console.print(f"- Total time: {metrics.get('total_seconds', 0):.2f}s")
    console.print(f"- Load: {metrics.get('load_seconds', 0):.2f}s")
    console.print(f"- Probe: {metrics.get('probe_seconds', 0):.2f}s")
    console.print(f"- Speed test: {metrics.get('speed_seconds', 0):.2f}s")
    console.print(f"- Export: {metrics.get('export_seconds', 0):.2f}s")
    console.print(f"- Upload: {metrics.get('upload_seconds', 0):.2f}s")
    console.print(f"- Candidates probed: {metrics.get('candidates_probed', 0)}")
    console.print(f"- Endpoints validated: {metrics.get('endpoints_validated', 0)}")
    console.print(f"- Throughput: {metrics.get('candidates_per_second', 0):.2f} candidates/s")


def _display_results(results: Sequence[RankedResult], speed_tested: bool) -> None:
    table = Table(title=f"Top {min(TOP_RESULTS, len(results))} endpoints")
    table.add_column("Endpoint", style="bright_green", no_wrap=True)
    table.add_column("Datacenter")
    table.add_column("City")
    table.add_column("Latency", justify="right")
    if speed_tested:
        table.add_column("MB/s", justify="right")
    for result in results[:TOP_RESULTS]:
        probe = as_probe(result)
        row = [
            probe.candidate.endpoint,
            probe.datacenter,
            probe.city_localized or probe.city or "unknown",
            format_latency(probe.latency_ms),
        ]
        if speed_tested:
            row.append(format_throughput(getattr(result, "throughput_mbs", 0.0)))
        table.add_row(*row)
    console.print(table)


async def _load_scan_candidates(candidate_file: Optional[str], url: Optional[str]) -> List[Candidate]:
    if candidate_file:
        candidates = load_candidates(candidate_file)
    elif url:
        candidates = prepare_candidates(await download_candidate_list(url))
    else:
        raise ConfigError("Provide a candidate list with --file or --url")
    if not candidates:
        raise DataError("No valid candidates found in the input.")
    return candidates


async def _scan_logic_async(
    candidate_file: Optional[str],
    url: Optional[str],
    outfile: str,
    summary: Optional[str],
    locations: str,
    locations_url: str,
    upload_url: str,
    token: str,
    show_metrics: bool,
    overrides: Dict[str, Any],
) -> None:
    run_config = _build_config(**overrides)
    tracker = PerformanceTracker()
    with tracker.phase("load"):
        candidates = await _load_scan_candidates(candidate_file, url)
        click.echo(f"Loaded {len(candidates)} candidates")
        resolver = await load_geo_resolver(locations, locations_url)

    with Progress(console=console) as progress:
        result = await pipeline.run_full_pipeline(
            candidates,
            run_config,
            resolver,
            progress=progress,
            output_file=outfile,
            summary_file=summary,
            upload_url=upload_url,
            upload_token=token,
            raise_file_limit=config.RAISE_FILE_LIMIT,
            tracker=tracker,
        )

    if not result["success"]:
        raise CLIError(f"Scan failed: {result.get('error') or 'unknown error'}")

    stats = result["stats"]
    click.echo(
        f"\n Scan completed: {stats['final_survivors']} of {stats['candidates']} endpoints kept"
    )
    if result["results"]:
        _display_results(result["results"], stats["speed_tested"])
    for name, path in result["output_files"].items():
        click.echo(f"Wrote {name}: {path}")
    if stats.get("upload_error"):
        click.echo(f"Upload failed: {stats['upload_error']}", err=True)
    elif stats.get("uploaded"):
        click.echo(f"Uploaded {stats['uploaded']} endpoints")

    if show_metrics:
        _display_metrics(result.get("metrics") or {})


@cli.command()
@click.option("--file", "-f", "candidate_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--url", type=str, help="Download the candidate list from a URL.")
@click.option("--outfile", "-o", default=config.OUTPUT_FILE, type=click.Path(dir_okay=False))
@click.option("--summary", type=click.Path(dir_okay=False), help="Write a JSON statistics report.")
@click.option("--locations", default=config.LOCATIONS_CACHE, type=click.Path(dir_okay=False))
@click.option("--locations-url", default=config.LOCATIONS_URL)
@click.option("--latency-threshold", "latency_threshold_ms", type=int, help="ms, 0 disables.")
@click.option(
    "--throughput-threshold", "throughput_threshold_mbs", type=float, help="MB/s, 0 disables."
)
@click.option("--probe-workers", type=int)
@click.option("--speed-workers", type=int, help="0 skips the speed test.")
@click.option("--dial-timeout", type=float)
@click.option("--response-timeout", type=float)
@click.option("--speed-timeout", type=float)
@click.option("--tls/--no-tls", default=config.TLS_ENABLED, show_default=True)
@click.option("--insecure/--secure", "allow_insecure_tls", default=config.TLS_ALLOW_INSECURE)
@click.option("--trace-url", type=str)
@click.option("--speed-url", type=str)
@click.option("--user-agent", type=str)
@click.option("--upload", "upload_url", default=config.UPLOAD_URL, help="Upload API URL.")
@click.option("--token", default=config.UPLOAD_TOKEN, help="Upload bearer token.")
@click.option("--show-metrics", is_flag=True)
@handle_cli_errors(context="Scan")
def scan(
    candidate_file: Optional[str],
    url: Optional[str],
    outfile: str,
    summary: Optional[str],
    locations: str,
    locations_url: str,
    upload_url: str,
    token: str,
    show_metrics: bool,
    **overrides: Any,
) -> None:
    """Probe a candidate list, speed-test the survivors and export the ranking."""
    asyncio.run(
        _scan_logic_async(
            candidate_file=candidate_file,
            url=url,
            outfile=outfile,
            summary=summary,
            locations=locations,
            locations_url=locations_url,
            upload_url=upload_url,
            token=token,
            show_metrics=show_metrics,
            overrides=overrides,
        )
    )


async def _upload_logic_async(
    results_file: Optional[str], list_file: Optional[str], url: str, token: str
) -> int:
    if not url:
        raise ConfigError("No upload URL configured (use --url or EDGEPROBE_UPLOAD_URL)")
    if list_file:
        return await upload_list_file(list_file, url, token)
    results = read_results_csv(results_file or config.OUTPUT_FILE)
    if not results:
        raise DataError("No results to upload; run a scan first.")
    return await upload_results(results, url, token)


@cli.command()
@click.option("--results", "results_file", type=click.Path(dir_okay=False))
@click.option("--list", "list_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--url", default=config.UPLOAD_URL)
@click.option("--token", default=config.UPLOAD_TOKEN)
@handle_cli_errors(context="Upload")
def upload(
    results_file: Optional[str], list_file: Optional[str], url: str, token: str
) -> None:
    """Upload a previous scan export or an arbitrary endpoint list."""
    sent = asyncio.run(_upload_logic_async(results_file, list_file, url, token))
    if sent:
        click.echo(f"Uploaded {sent} endpoints")
    else:
        click.echo("Nothing to upload")


async def _update_locations_logic_async(locations: str, locations_url: str) -> None:
    console.print("Updating datacenter location database...")
    resolver = await load_geo_resolver(locations, locations_url, refresh=True)
    console.print(f"✅ Cached {len(resolver)} locations to {locations}")


@cli.command("update-locations")
@click.option("--locations", default=config.LOCATIONS_CACHE, type=click.Path(dir_okay=False))
@click.option("--locations-url", default=config.LOCATIONS_URL)
@handle_cli_errors(context="Location update")
def update_locations(locations: str, locations_url: str) -> None:
    """Re-download the datacenter location database."""
    asyncio.run(_update_locations_logic_async(locations, locations_url))


@cli.command()
@handle_cli_errors(context="Settings")
def settings() -> None:
    """Show the effective scan configuration."""
    for line in _build_config().describe():
        click.echo(line)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":  # pragma: no cover - module execution convenience
    main()
