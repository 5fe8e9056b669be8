import asyncio
import inspect
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, List, Optional

import httpcore
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


def pytest_addoption(parser):
    """Provide stubs for coverage options when pytest-cov is unavailable."""

    try:
        __import__("pytest_cov")
        return
    except ModuleNotFoundError:
        pass

    parser.addoption(
        "--cov",
        action="append",
        default=[],
        metavar="PATH",
        help="Stubbed coverage option; install pytest-cov for real coverage",
    )
    parser.addoption(
        "--cov-report",
        action="append",
        default=[],
        metavar="TYPE",
        help="Stubbed coverage report option; install pytest-cov for reports",
    )


def pytest_configure(config):
    """Register compatibility markers and defaults."""

    config.addinivalue_line("markers", "asyncio: mark a test as requiring the event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    """Execute ``async`` tests using a minimal event loop implementation."""

    testfunction = pyfuncitem.obj
    if not inspect.iscoroutinefunction(testfunction):
        return None

    signature = inspect.signature(testfunction)
    call_args = {
        name: value for name, value in pyfuncitem.funcargs.items() if name in signature.parameters
    }

    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(testfunction(**call_args))
        loop.run_until_complete(loop.shutdown_asyncgens())
    finally:
        asyncio.set_event_loop(None)
        loop.close()

    return True


@pytest.fixture
def fs(tmp_path, monkeypatch):
    """Lightweight stand-in for the pyfakefs fixture used in upstream tests."""

    class SimpleFS:
        def __init__(self, base_path: Path):
            self.base_path = base_path

        def create_file(self, relative_path: str, contents: str | bytes = "") -> Path:
            target = self.base_path / relative_path
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(contents, bytes):
                target.write_bytes(contents)
            else:
                target.write_text(contents, encoding="utf-8")
            return target

    monkeypatch.chdir(tmp_path)
    return SimpleFS(tmp_path)


@pytest.fixture
def mocker():
    """Basic replacement for pytest-mock's mocker fixture."""

    from unittest.mock import AsyncMock, MagicMock, Mock, patch

    active_patchers = []

    class SimpleMocker:
        def patch(self, target, *args, **kwargs):
            patcher = patch(target, *args, **kwargs)
            active_patchers.append(patcher)
            return patcher.start()

        def stopall(self):
            while active_patchers:
                active_patchers.pop().stop()

    SimpleMocker.AsyncMock = AsyncMock  # type: ignore[attr-defined]
    SimpleMocker.MagicMock = MagicMock  # type: ignore[attr-defined]
    SimpleMocker.Mock = Mock  # type: ignore[attr-defined]

    helper = SimpleMocker()
    try:
        yield helper
    finally:
        helper.stopall()


# ---------------------------------------------------------------------------
# Deterministic network double
# ---------------------------------------------------------------------------


def http_response(body: bytes = b"", status: int = 200, content_length: Optional[int] = None) -> bytes:
    """Raw HTTP/1.1 response head plus ``body``."""
    length = len(body) if content_length is None else content_length
    head = (
        f"HTTP/1.1 {status} OK\r\n"
        f"Content-Length: {length}\r\n"
        "Content-Type: text/plain\r\n"
        "Connection: close\r\n\r\n"
    )
    return head.encode("ascii") + body


def trace_body(colo: str = "LAX", loc: str = "US", ua: str = "Mozilla/5.0") -> bytes:
    return (
        "fl=1f1\nh=speed.cloudflare.com\nip=203.0.113.7\nts=1700000000.1\n"
        f"visit_scheme=https\nuag={ua}\ncolo={colo}\nsliver=none\nhttp=http/1.1\n"
        f"loc={loc}\ntls=TLSv1.3\nsni=plaintext\nwarp=off\n"
    ).encode("ascii")


@dataclass
class FakeEndpoint:
    """Scripted behaviour of one remote address.

    The stream decides which script to play from the request line it is sent:
    requests for the speed-test path get ``speed_*``, everything else gets the
    trace response.
    """

    connect_delay: float = 0.0
    refuse: bool = False
    trace_chunks: List[bytes] = field(default_factory=lambda: [http_response(trace_body())])
    trace_delay: float = 0.0
    speed_chunks: List[bytes] = field(default_factory=list)
    speed_header_delay: float = 0.0
    speed_chunk_delay: float = 0.0
    dials: int = 0


class FakeStream(httpcore.AsyncNetworkStream):
    def __init__(self, endpoint: FakeEndpoint) -> None:
        self.endpoint = endpoint
        self.closed = False
        self.tls_hostname: Optional[str] = None
        self.requests: List[bytes] = []
        self._chunks: Optional[List[bytes]] = None
        self._speed = False
        self._reads = 0

    async def read(self, max_bytes: int, timeout: Optional[float] = None) -> bytes:
        if self.closed:
            raise httpcore.ReadError("stream closed")
        if self._speed:
            delay = (
                self.endpoint.speed_header_delay
                if self._reads == 0
                else self.endpoint.speed_chunk_delay
            )
        else:
            delay = self.endpoint.trace_delay if self._reads > 0 else 0.0
        self._reads += 1
        if delay:
            await asyncio.sleep(delay)
        if not self._chunks:
            return b""
        return self._chunks.pop(0)

    async def write(self, buffer: bytes, timeout: Optional[float] = None) -> None:
        if self.closed:
            raise httpcore.WriteError("stream closed")
        self.requests.append(buffer)
        if self._chunks is None:
            self._speed = b"/__down" in buffer
            source = self.endpoint.speed_chunks if self._speed else self.endpoint.trace_chunks
            self._chunks = list(source)

    async def aclose(self) -> None:
        self.closed = True

    async def start_tls(self, ssl_context, server_hostname=None, timeout=None):
        self.tls_hostname = server_hostname
        return self

    def get_extra_info(self, info: str):
        return None


class FakeNetworkBackend(httpcore.AsyncNetworkBackend):
    """httpcore backend that routes dials to scripted ``FakeEndpoint``s."""

    def __init__(self, endpoints: Dict[str, FakeEndpoint]) -> None:
        self.endpoints = endpoints
        self.streams: List[FakeStream] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def connect_tcp(
        self, host, port, timeout=None, local_address=None, socket_options=None
    ) -> FakeStream:
        endpoint = self.endpoints.get(host)
        if endpoint is None or endpoint.refuse:
            raise httpcore.ConnectError(f"connection refused: {host}:{port}")
        endpoint.dials += 1
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if endpoint.connect_delay:
                await asyncio.sleep(endpoint.connect_delay)
        finally:
            self.in_flight -= 1
        stream = FakeStream(endpoint)
        self.streams.append(stream)
        return stream

    async def connect_unix_socket(self, path, timeout=None, socket_options=None):
        raise httpcore.UnsupportedProtocol("unix sockets are not scripted")

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


@pytest.fixture
def netfake():
    """Helpers for building scripted httpcore networks."""
    return SimpleNamespace(
        Endpoint=FakeEndpoint,
        Backend=FakeNetworkBackend,
        response=http_response,
        trace=trace_body,
    )
