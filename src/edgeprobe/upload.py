"""Posting ranked endpoints to a collection API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

import httpx

from .candidates import is_skippable, validate_address, validate_port, split_endpoint
from .cli_errors import FileError, UploadError
from .constants import CITY_LABELS, UPLOAD_TIMEOUT
from .http_client import get_client
from .ranking import RankedResult, as_probe

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "Unknown"
GARBLED_MARKERS = ("�", "锟斤拷")


def _usable(text: str) -> bool:
    return bool(text) and not any(marker in text for marker in GARBLED_MARKERS)


def city_label(city_localized: str, city: str, code: str) -> str:
    """Pick the label shown after ``#`` in an upload line.

    Preference: localized city, the built-in airport-code table keyed by the
    location code, the code itself, the English city, then ``Unknown``.
    """
    if _usable(city_localized):
        return city_localized
    if code and code.upper() in CITY_LABELS:
        return CITY_LABELS[code.upper()]
    if _usable(code):
        return code
    if _usable(city):
        return city
    return UNKNOWN_LABEL


def format_upload_line(address: str, port: int, label: str) -> str:
    host = f"[{address}]" if ":" in address else address
    return f"{host}:{port}#{label}"


def format_upload_lines(results: Iterable[RankedResult]) -> List[str]:
    lines = []
    for result in results:
        probe = as_probe(result)
        label = city_label(probe.city_localized, probe.city, probe.location_code)
        lines.append(format_upload_line(probe.address, probe.port, label))
    return lines


def parse_upload_line(line: str) -> Optional[Tuple[str, int, str]]:
    """Parse ``ip port [city]``, ``ip:port`` or ``ip:port#desc``.

    Returns ``(address, port, label)``; the label defaults to ``Unknown``.
    None for comments and unparseable lines.
    """
    if is_skippable(line):
        return None
    parsed = split_endpoint(line)
    if parsed is None:
        return None
    try:
        address = validate_address(parsed[0])
        port = validate_port(parsed[1])
    except ValueError:
        return None
    return address, port, parsed[2] or UNKNOWN_LABEL


async def post_lines(url: str, lines: Sequence[str], token: str = "") -> int:
    """POST ``lines`` as a plain-text body and return the response status.

    Raises:
        UploadError: On transport failure or a non-2xx response.
    """
    headers = {"Content-Type": "text/plain; charset=utf-8"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    body = "\n".join(lines).encode("utf-8")

    try:
        async with get_client() as client:
            response = await client.post(
                url, content=body, headers=headers, timeout=UPLOAD_TIMEOUT
            )
    except httpx.HTTPError as exc:
        raise UploadError(f"Upload to {url} failed: {exc}") from exc

    if not 200 <= response.status_code < 300:
        raise UploadError(
            f"Upload rejected with HTTP {response.status_code}: {response.text}",
            status=response.status_code,
            body=response.text,
        )
    logger.info("Uploaded %d endpoints to %s", len(lines), url)
    return response.status_code


async def upload_results(
    results: Sequence[RankedResult], url: str, token: str = ""
) -> int:
    """Upload ranked results; returns the number of lines sent (0 for a no-op)."""
    if not url:
        logger.info("No upload URL configured; skipping upload")
        return 0
    lines = format_upload_lines(results)
    if not lines:
        logger.info("Nothing to upload")
        return 0
    await post_lines(url, lines, token)
    return len(lines)


async def upload_list_file(path: str | Path, url: str, token: str = "") -> int:
    """Upload an arbitrary endpoint list file; returns the number of lines sent."""
    file_path = Path(path)
    try:
        raw_lines = file_path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as exc:
        raise FileError(f"Cannot read list file {file_path}: {exc}") from exc

    lines = []
    for raw in raw_lines:
        parsed = parse_upload_line(raw)
        if parsed is not None:
            lines.append(format_upload_line(*parsed))

    if not url:
        logger.info("No upload URL configured; skipping upload")
        return 0
    if not lines:
        logger.info("No valid endpoints found in %s", file_path)
        return 0
    logger.info("Parsed %d endpoints from %s (%d lines)", len(lines), file_path, len(raw_lines))
    await post_lines(url, lines, token)
    return len(lines)
