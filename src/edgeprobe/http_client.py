"""Shared HTTP client utilities for edgeprobe control-plane requests."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx

from .constants import UPLOAD_USER_AGENT

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=10.0)


@asynccontextmanager
async def get_client(retries: int = 0) -> AsyncIterator[httpx.AsyncClient]:
    """Yield a configured AsyncClient with sane defaults.

    Used for candidate-list downloads and result uploads; probing does not go
    through this client.
    """
    transport = httpx.AsyncHTTPTransport(retries=retries)

    async with httpx.AsyncClient(
        timeout=DEFAULT_TIMEOUT,
        headers={
            "accept": "*/*",
            "user-agent": UPLOAD_USER_AGENT,
        },
        follow_redirects=True,
        transport=transport,
    ) as client:
        yield client
