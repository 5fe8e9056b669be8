"""
edgeprobe - CDN edge endpoint scanner

Probes candidate address/port pairs for reachability and handshake latency,
optionally measures download throughput, and exports a ranked list.
"""

__version__ = "1.0.0"

# Use selector event loop on Windows to avoid proactor shutdown issues
import asyncio
import sys

if sys.platform.startswith("win"):
    try:
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    except AttributeError:  # pragma: no cover - non-Windows platforms
        pass


# Lazy imports to avoid loading httpcore and rich when not needed
def __getattr__(name):
    """Lazy loading of package components to avoid unnecessary imports."""
    if name == "Candidate":
        from .models import Candidate

        return Candidate
    elif name == "PipelineConfig":
        from .config import PipelineConfig

        return PipelineConfig
    elif name == "GeoResolver":
        from .geo import GeoResolver

        return GeoResolver
    elif name == "run_full_pipeline":
        from .pipeline import run_full_pipeline

        return run_full_pipeline
    elif name == "AppSettings":
        from .config import AppSettings

        return AppSettings
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    "Candidate",
    "PipelineConfig",
    "GeoResolver",
    "run_full_pipeline",
    "AppSettings",
    "__version__",
]
