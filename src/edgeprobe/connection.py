"""TCP dialing and single-connection HTTP exchanges for probing.

A candidate is dialed once through an ``httpcore`` network backend so the
handshake can be timed on its own. The open stream is then handed to a
one-shot connection pool whose backend returns that stream instead of dialing
again, which lets the HTTP request (and TLS, when enabled) reuse it.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Iterable, Optional, Tuple

import anyio
import httpcore

from .models import Candidate

logger = logging.getLogger(__name__)

# Failures that drop a single candidate; anything else is a bug and propagates.
TRANSIENT_ERRORS: Tuple[type[BaseException], ...] = (
    httpcore.TimeoutException,
    httpcore.NetworkError,
    httpcore.ProtocolError,
    httpcore.UnsupportedProtocol,
    anyio.BrokenResourceError,
    anyio.ClosedResourceError,
    anyio.EndOfStream,
    ssl.SSLError,
    asyncio.TimeoutError,
    OSError,
)


def _strict_ssl_context() -> ssl.SSLContext:
    """Create a strict SSL context for TLS validation."""
    ctx = ssl.create_default_context(purpose=ssl.Purpose.SERVER_AUTH)
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    return ctx


def _insecure_ssl_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context(purpose=ssl.Purpose.SERVER_AUTH)
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def build_ssl_context(allow_insecure: bool = False) -> ssl.SSLContext:
    return _insecure_ssl_context() if allow_insecure else _strict_ssl_context()


class DialError(Exception):
    """Raised when a candidate cannot be connected to within the dial timeout."""


class Dialer:
    """Opens timed TCP connections to candidates."""

    def __init__(
        self,
        timeout: float,
        network_backend: Optional[httpcore.AsyncNetworkBackend] = None,
    ) -> None:
        self.timeout = timeout
        self.network_backend = network_backend or httpcore.AnyIOBackend()

    async def dial(self, candidate: Candidate) -> Tuple[httpcore.AsyncNetworkStream, float]:
        """Connect to ``candidate`` and return the stream with handshake latency in ms."""
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        try:
            stream = await asyncio.wait_for(
                self.network_backend.connect_tcp(
                    candidate.address, candidate.port, timeout=self.timeout
                ),
                timeout=self.timeout,
            )
        except TRANSIENT_ERRORS as exc:
            raise DialError(f"{candidate.endpoint}: {exc!r}") from exc
        latency_ms = (loop.time() - start_time) * 1000
        return stream, latency_ms


class PreDialedBackend(httpcore.AsyncNetworkBackend):
    """Network backend that hands out one already-connected stream."""

    def __init__(self, stream: httpcore.AsyncNetworkStream) -> None:
        self._stream: Optional[httpcore.AsyncNetworkStream] = stream
        self.claimed = False

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        local_address: Optional[str] = None,
        socket_options: Optional[Iterable[object]] = None,
    ) -> httpcore.AsyncNetworkStream:
        if self._stream is None or self.claimed:
            raise httpcore.ConnectError("pre-dialed stream already used")
        self.claimed = True
        return self._stream

    async def connect_unix_socket(
        self,
        path: str,
        timeout: Optional[float] = None,
        socket_options: Optional[Iterable[object]] = None,
    ) -> httpcore.AsyncNetworkStream:  # pragma: no cover - never used for probing
        raise httpcore.UnsupportedProtocol("unix sockets are not supported")

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    async def release(self) -> None:
        """Close the original stream; a no-op when the pool already closed it."""
        if self._stream is not None:
            try:
                await self._stream.aclose()
            except TRANSIENT_ERRORS as exc:
                logger.debug("Error closing unused stream: %r", exc)
        self._stream = None


def request_headers(user_agent: str) -> Dict[str, str]:
    return {"User-Agent": user_agent, "Connection": "close"}


def timeout_extension(timeout: float) -> Dict[str, Dict[str, float]]:
    return {"timeout": {"connect": timeout, "read": timeout, "write": timeout, "pool": timeout}}


@asynccontextmanager
async def reuse_connection(
    stream: httpcore.AsyncNetworkStream, ssl_context: ssl.SSLContext
) -> AsyncIterator[httpcore.AsyncConnectionPool]:
    """Yield a connection pool bound to ``stream``; the stream is closed on exit."""
    backend = PreDialedBackend(stream)
    pool = httpcore.AsyncConnectionPool(
        ssl_context=ssl_context,
        max_connections=1,
        retries=0,
        network_backend=backend,
    )
    try:
        async with pool:
            yield pool
    finally:
        await backend.release()
