"""Datacenter location database management"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

import aiohttp

from .cli_errors import GeoDatabaseError
from .models import LocationRecord

logger = logging.getLogger(__name__)

# Upstream field names -> LocationRecord field names
FIELD_ALIASES = {
    "region_zh": "region_localized",
    "city_zh": "city_localized",
    "emoji": "flag",
    "flagGlyph": "flag",
}


def _record_from_mapping(raw: Mapping[str, Any]) -> Optional[LocationRecord]:
    data: Dict[str, Any] = {}
    for key, value in raw.items():
        data[FIELD_ALIASES.get(key, key)] = value
    iata = str(data.get("iata") or "").strip().upper()
    if not iata:
        return None
    try:
        return LocationRecord(
            iata=iata,
            lat=float(data.get("lat") or 0.0),
            lon=float(data.get("lon") or 0.0),
            cca2=str(data.get("cca2") or ""),
            region=str(data.get("region") or ""),
            city=str(data.get("city") or ""),
            region_localized=str(data.get("region_localized") or ""),
            country=str(data.get("country") or ""),
            city_localized=str(data.get("city_localized") or ""),
            flag=str(data.get("flag") or ""),
        )
    except (TypeError, ValueError):
        return None


class GeoResolver:
    """Read-only lookup from datacenter code to location metadata."""

    def __init__(self, records: Iterable[LocationRecord] = ()) -> None:
        self._by_code: Dict[str, LocationRecord] = {}
        for record in records:
            self._by_code[record.iata] = record

    @classmethod
    def from_json(cls, payload: str | bytes) -> "GeoResolver":
        """Parse the JSON array form of the database.

        Raises:
            GeoDatabaseError: If the payload is not a JSON array of objects.
        """
        try:
            raw = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise GeoDatabaseError(f"Invalid location database JSON: {exc}") from exc
        if not isinstance(raw, list):
            raise GeoDatabaseError("Location database must be a JSON array")

        records: List[LocationRecord] = []
        skipped = 0
        for entry in raw:
            record = _record_from_mapping(entry) if isinstance(entry, dict) else None
            if record is None:
                skipped += 1
                continue
            records.append(record)
        if skipped:
            logger.debug("Skipped %d unusable location records", skipped)
        return cls(records)

    def lookup(self, code: str) -> Optional[LocationRecord]:
        return self._by_code.get(code.upper())

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and code.upper() in self._by_code

    def __len__(self) -> int:
        return len(self._by_code)

    def __iter__(self) -> Iterator[LocationRecord]:
        return iter(self._by_code.values())


async def download_locations(session: aiohttp.ClientSession, url: str) -> bytes:
    """Download the raw location database."""
    async with session.get(
        url,
        timeout=aiohttp.ClientTimeout(total=60),
    ) as response:
        if response.status != 200:
            raise GeoDatabaseError(f"HTTP {response.status} from {url}")
        return await response.read()


def _write_cache(cache_path: Path, payload: bytes) -> None:
    cache_path.parent.mkdir(parents=True, exist_ok=True)
    tmp = cache_path.with_suffix(cache_path.suffix + ".tmp")
    tmp.write_bytes(payload)
    tmp.replace(cache_path)


async def load_geo_resolver(
    cache_path: str | Path,
    source_url: str,
    refresh: bool = False,
) -> GeoResolver:
    """
    Load the location database from the local cache, downloading it if absent.

    Returns:
        A populated GeoResolver

    Raises:
        GeoDatabaseError: If the database cannot be read, fetched or parsed.
    """
    path = Path(cache_path)

    if path.exists() and not refresh:
        logger.info("Using cached location database %s", path)
        try:
            payload = path.read_bytes()
        except OSError as exc:
            raise GeoDatabaseError(f"Cannot read {path}: {exc}") from exc
        resolver = GeoResolver.from_json(payload)
        logger.info("Loaded %d datacenter locations", len(resolver))
        return resolver

    logger.info("Downloading location database from %s", source_url)
    try:
        async with aiohttp.ClientSession() as session:
            payload = await download_locations(session, source_url)
    except GeoDatabaseError:
        raise
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise GeoDatabaseError(f"Failed to download {source_url}: {exc}") from exc

    resolver = GeoResolver.from_json(payload)
    try:
        _write_cache(path, payload)
    except OSError as exc:
        raise GeoDatabaseError(f"Cannot write location cache {path}: {exc}") from exc

    logger.info("Loaded %d datacenter locations (cached to %s)", len(resolver), path)
    return resolver
