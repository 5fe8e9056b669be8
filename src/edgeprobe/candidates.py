"""Candidate list loading and normalization."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

import httpx

from .cli_errors import FileError, NetworkError
from .constants import (
    DOWNLOAD_TIMEOUT,
    MAX_PORT,
    MIN_PORT,
    STANDARD_FORMAT_RATIO,
    STANDARD_FORMAT_SAMPLE,
)
from .http_client import get_client
from .models import Candidate

logger = logging.getLogger(__name__)


def validate_address(raw: str) -> str:
    try:
        return str(ipaddress.ip_address(raw.strip()))
    except ValueError as exc:
        raise ValueError(f"Invalid IP address: {raw!r}") from exc


def validate_port(raw: str) -> int:
    try:
        port = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid port: {raw!r}") from exc
    if not MIN_PORT <= port <= MAX_PORT:
        raise ValueError(f"Port out of range: {port}")
    return port


def parse_candidate_line(line: str) -> Candidate:
    """Parse a standard ``address port`` line.

    Raises:
        ValueError: If the line does not hold exactly an IP literal and a port.
    """
    parts = line.split()
    if len(parts) != 2:
        raise ValueError(f"Malformed line: {line.strip()!r}")
    return Candidate(validate_address(parts[0]), validate_port(parts[1]))


def is_skippable(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.startswith("#") or stripped.startswith("//")


def read_candidates(lines: Iterable[str]) -> List[Candidate]:
    """Parse every line, skipping comments silently and malformed lines with a warning."""
    candidates: List[Candidate] = []
    for number, line in enumerate(lines, start=1):
        if is_skippable(line):
            continue
        try:
            candidates.append(parse_candidate_line(line))
        except ValueError as exc:
            logger.warning("Skipping line %d: %s", number, exc)
    return candidates


def is_standard_format(lines: Sequence[str]) -> bool:
    """Return True when most of the leading lines are already ``address port``."""
    checked = 0
    standard = 0
    for line in lines:
        if checked >= STANDARD_FORMAT_SAMPLE:
            break
        if not line.strip():
            continue
        checked += 1
        try:
            parse_candidate_line(line)
        except ValueError:
            continue
        standard += 1
    return checked > 0 and standard / checked >= STANDARD_FORMAT_RATIO


@dataclass
class NormalizationReport:
    """Outcome of normalizing a raw candidate list."""

    lines: List[str] = field(default_factory=list)
    processed: int = 0
    skipped: int = 0

    @property
    def unique(self) -> int:
        return len(self.lines)


class CandidateNormalizer(Protocol):
    def normalize(self, lines: Sequence[str]) -> NormalizationReport: ...


def split_endpoint(line: str) -> Optional[Tuple[str, str, str]]:
    """Split ``ip:port#desc``, ``ip:port``, ``[v6]:port`` or ``ip port [desc]``.

    Returns ``(address, port, description)`` with raw strings, or None when the
    line has none of these shapes.
    """
    text = line.strip()
    description = ""
    if "#" in text:
        text, description = (part.strip() for part in text.split("#", 1))

    if text.startswith("["):
        host, sep, rest = text[1:].partition("]")
        if not sep or not rest.startswith(":"):
            return None
        return host, rest[1:], description

    parts = text.split()
    if len(parts) >= 2:
        if len(parts) > 2 and not description:
            description = " ".join(parts[2:])
        return parts[0], parts[1], description

    if text.count(":") == 1:
        host, port = text.split(":")
        return host.strip(), port.strip(), description
    return None


class DefaultNormalizer:
    """Converts mixed-format lists to sorted, de-duplicated ``address port`` lines."""

    def normalize(self, lines: Sequence[str]) -> NormalizationReport:
        report = NormalizationReport()
        unique: set[str] = set()
        for line in lines:
            if is_skippable(line):
                continue
            parsed = split_endpoint(line)
            try:
                if parsed is None:
                    raise ValueError(f"Unrecognized format: {line.strip()!r}")
                candidate = Candidate(validate_address(parsed[0]), validate_port(parsed[1]))
            except ValueError as exc:
                logger.warning("Normalizer skipped line: %s", exc)
                report.skipped += 1
                continue
            unique.add(str(candidate))
            report.processed += 1
        report.lines = sorted(unique)
        logger.info(
            "Normalized candidates: %d processed, %d skipped, %d unique",
            report.processed,
            report.skipped,
            report.unique,
        )
        return report


def prepare_candidates(
    lines: Sequence[str], normalizer: Optional[CandidateNormalizer] = None
) -> List[Candidate]:
    """Run non-standard input through the normalizer, then parse it."""
    if not is_standard_format(lines):
        logger.info("Candidate list is not in standard format; normalizing")
        lines = (normalizer or DefaultNormalizer()).normalize(lines).lines
    return read_candidates(lines)


def load_candidates(
    path: str | Path, normalizer: Optional[CandidateNormalizer] = None
) -> List[Candidate]:
    """Read a candidate file fully into memory, normalizing it when needed."""
    file_path = Path(path)
    try:
        lines = file_path.read_text(encoding="utf-8", errors="replace").splitlines()
    except FileNotFoundError as exc:
        raise FileError(f"Candidate file not found: {file_path}") from exc
    except OSError as exc:
        raise FileError(f"Cannot read candidate file {file_path}: {exc}") from exc

    candidates = prepare_candidates(lines, normalizer)
    logger.info("Loaded %d candidates from %s", len(candidates), file_path)
    return candidates


async def download_candidate_list(url: str) -> List[str]:
    """Fetch a remote candidate list and return its raw lines."""
    try:
        async with get_client() as client:
            response = await client.get(url, timeout=DOWNLOAD_TIMEOUT)
    except httpx.HTTPError as exc:
        raise NetworkError(f"Failed to download candidate list from {url}: {exc}") from exc

    if response.status_code != 200:
        raise NetworkError(
            f"Failed to download candidate list from {url}: HTTP {response.status_code}"
        )
    lines = response.text.splitlines()
    logger.info("Downloaded %d lines from %s", len(lines), url)
    return lines
