"""Download throughput measurement for probe survivors."""

import asyncio
import logging
import ssl
from typing import Callable, List, Optional, Sequence

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
from .dispatcher import BoundedDispatcher, ResultSink
from .models import ProbeResult, SpeedResult

logger = logging.getLogger(__name__)


def format_speed(kbs: float) -> str:
    """Render a KB/s figure the way progress lines show it."""
    if kbs >= 1024:
        return f"{kbs / 1024:.2f} MB/s"
    return f"{kbs:.2f} kB/s"


class _Transfer:
    """Mutable byte counter shared between the download and its deadline."""

    __slots__ = ("headers_received", "bytes_received")

    def __init__(self) -> None:
        self.headers_received = False
        self.bytes_received = 0


class SpeedTester:
    """Measures sustained download throughput over a fresh connection.

    The transfer is cut off at ``speed_timeout``. Bytes that arrived before
    the deadline still count, but a candidate whose response headers never
    arrived is dropped.
    """

    def __init__(
        self,
        config: PipelineConfig,
        network_backend: Optional[httpcore.AsyncNetworkBackend] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        self.config = config
        self.dialer = Dialer(config.dial_timeout, network_backend)
        self.ssl_context = ssl_context or build_ssl_context(config.allow_insecure_tls)

    async def _download(self, pool: httpcore.AsyncConnectionPool, transfer: _Transfer) -> None:
        async with pool.stream(
            "GET",
            self.config.speed_endpoint,
            headers=request_headers(self.config.user_agent),
            extensions=timeout_extension(self.config.speed_timeout),
        ) as response:
            transfer.headers_received = True
            async for chunk in response.aiter_stream():
                transfer.bytes_received += len(chunk)

    async def measure(self, probe: ProbeResult) -> Optional[SpeedResult]:
        """Return the throughput of ``probe``'s endpoint, or None when it fails."""
        candidate = probe.candidate
        logger.info("Testing %s port %d", candidate.address, candidate.port)

        try:
            stream, _ = await self.dialer.dial(candidate)
        except DialError as exc:
            logger.debug("Speed-test dial failed: %s", exc)
            return None

        transfer = _Transfer()
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        try:
            async with reuse_connection(stream, self.ssl_context) as pool:
                await asyncio.wait_for(
                    self._download(pool, transfer), timeout=self.config.speed_timeout
                )
        except TRANSIENT_ERRORS as exc:
            if not transfer.headers_received:
                logger.debug("No response from %s: %r", candidate.endpoint, exc)
                return None
            # Deadline or reset mid-body: keep what was transferred.
            logger.debug("Transfer from %s stopped: %r", candidate.endpoint, exc)
        elapsed = loop.time() - start_time

        if transfer.bytes_received == 0 or elapsed <= 0:
            logger.debug("%s returned no data", candidate.endpoint)
            return None

        kbs = transfer.bytes_received / elapsed / 1024
        result = SpeedResult(probe, kbs, transfer.bytes_received)
        threshold = self.config.throughput_threshold_mbs
        if threshold > 0 and result.throughput_mbs < threshold:
            logger.info(
                "%s port %d too slow: %s", candidate.address, candidate.port, format_speed(kbs)
            )
            return None

        logger.info(
            "%s port %d download speed %s", candidate.address, candidate.port, format_speed(kbs)
        )
        return result

    async def run(
        self,
        probes: Sequence[ProbeResult],
        on_complete: Optional[Callable[[int], None]] = None,
    ) -> List[SpeedResult]:
        """Speed-test ``probes`` with ``speed_workers`` workers pulling from a queue.

        ``on_complete`` is called with the number of measured items after each
        one finishes.
        """
        sink: ResultSink[SpeedResult] = ResultSink()
        if not probes or not self.config.speed_test_enabled:
            return []

        width = min(self.config.speed_workers, len(probes))
        queue: "asyncio.Queue[Optional[ProbeResult]]" = asyncio.Queue()
        done = 0

        async def measured(item: ProbeResult) -> None:
            nonlocal done
            result = await self.measure(item)
            if result is not None:
                sink.append(result)
            done += 1
            if on_complete is not None:
                on_complete(done)

        for probe in probes:
            queue.put_nowait(probe)
        for _ in range(width):
            queue.put_nowait(None)

        async def worker() -> None:
            while True:
                item = await queue.get()
                try:
                    if item is None:
                        return
                    await measured(item)
                finally:
                    queue.task_done()

        dispatcher = BoundedDispatcher(width, name="speed-test")
        for _ in range(width):
            await dispatcher.submit(worker)
        await dispatcher.await_all()
        return sink.snapshot()
