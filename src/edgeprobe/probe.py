import asyncio
import logging
import re
import ssl
from typing import Optional, Tuple

import httpcore

from .config import PipelineConfig
from .connection import (
    TRANSIENT_ERRORS,
    DialError,
    Dialer,
    build_ssl_context,
    request_headers,
    reuse_connection,
    timeout_extension,
)
from .constants import TRACE_PATTERN
from .dispatcher import AtomicCounter, ResultSink
from .geo import GeoResolver
from .models import Candidate, ProbeResult

logger = logging.getLogger(__name__)

TRACE_RE = re.compile(TRACE_PATTERN)


def parse_trace(body: str, marker: str) -> Optional[Tuple[str, str]]:
    """Return ``(datacenter, location)`` from a diagnostic body, or None.

    The body must contain ``marker`` and a ``colo=`` token followed later by a
    ``loc=`` token.
    """
    if marker not in body:
        return None
    match = TRACE_RE.search(body)
    if match is None:
        return None
    return match.group(1), match.group(2)


class ConnectivityProber:
    """Dials a candidate, times the handshake and validates the diagnostic trace."""

    def __init__(
        self,
        config: PipelineConfig,
        resolver: GeoResolver,
        network_backend: Optional[httpcore.AsyncNetworkBackend] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.dialer = Dialer(config.dial_timeout, network_backend)
        self.ssl_context = ssl_context or build_ssl_context(config.allow_insecure_tls)
        self.validated = AtomicCounter()

    async def _fetch_trace(self, pool: httpcore.AsyncConnectionPool) -> bytes:
        timeout = self.config.response_timeout
        async with pool.stream(
            "GET",
            self.config.trace_endpoint,
            headers=request_headers(self.config.user_agent),
            extensions=timeout_extension(timeout),
        ) as response:
            # A trickling body defeats per-read timeouts, so bound the whole read.
            return await asyncio.wait_for(response.aread(), timeout=timeout)

    async def probe(self, candidate: Candidate) -> Optional[ProbeResult]:
        """Probe one candidate; returns None when any check fails."""
        try:
            stream, latency_ms = await self.dialer.dial(candidate)
        except DialError as exc:
            logger.debug("Dial failed: %s", exc)
            return None

        threshold = self.config.latency_threshold_ms
        try:
            async with reuse_connection(stream, self.ssl_context) as pool:
                if threshold > 0 and latency_ms > threshold:
                    logger.debug(
                        "%s handshake %.0f ms exceeds %d ms",
                        candidate.endpoint,
                        latency_ms,
                        threshold,
                    )
                    return None
                body = await asyncio.wait_for(
                    self._fetch_trace(pool), timeout=self.config.response_timeout
                )
        except TRANSIENT_ERRORS as exc:
            logger.debug("Trace request to %s failed: %r", candidate.endpoint, exc)
            return None

        parsed = parse_trace(body.decode("utf-8", errors="replace"), self.config.trace_marker)
        if parsed is None:
            logger.debug("%s returned an unexpected trace body", candidate.endpoint)
            return None

        datacenter, location_code = parsed
        location = self.resolver.lookup(datacenter)
        result = ProbeResult.build(candidate, datacenter, location_code, latency_ms, location)
        self.validated.increment()
        logger.info(
            "Found valid endpoint %s port %d location %s latency %d ms",
            candidate.address,
            candidate.port,
            (location.city_localized or location.city) if location else "unknown",
            round(latency_ms),
        )
        return result

    async def probe_into(self, candidate: Candidate, sink: ResultSink[ProbeResult]) -> None:
        """Dispatcher task: probe and append survivors to the shared sink."""
        result = await self.probe(candidate)
        if result is not None:
            sink.append(result)
