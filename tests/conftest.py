"""Shared fixtures: a controllable clock and fake network collaborators."""

from __future__ import annotations

from typing import Iterable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from latencycheck.models import (
    ConnectionResult,
    HandshakeResult,
    Measurement,
    MeasurementConfig,
    ResolutionResult,
    Target,
    TransferResult,
)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms / 1000.0


class FakeResolver:
    """Stands in for dnspython's async resolver.

    *records* maps an rdtype to either an address list or an exception
    instance to raise.  Every call advances the clock by the next value
    from *delays_ms* (the last value repeats).
    """

    def __init__(self, clock: FakeClock, records: dict, delays_ms: Iterable[float] = (10.0,)):
        self.clock = clock
        self.records = records
        self.delays_ms = list(delays_ms)
        self.calls: list[tuple[str, object]] = []

    async def resolve(self, name, rdtype):
        idx = min(len(self.calls), len(self.delays_ms) - 1)
        self.calls.append((name, rdtype))
        self.clock.advance(self.delays_ms[idx])
        answer = self.records.get(rdtype, [])
        if isinstance(answer, Exception):
            raise answer
        return answer


class TimedBody(httpx.AsyncByteStream):
    """Response body that advances the clock as each chunk is delivered."""

    def __init__(self, clock: FakeClock, chunks: list[bytes], ms_per_chunk: float):
        self.clock = clock
        self.chunks = chunks
        self.ms_per_chunk = ms_per_chunk

    async def __aiter__(self):
        for chunk in self.chunks:
            self.clock.advance(self.ms_per_chunk)
            yield chunk


def make_writer(
    clock: FakeClock,
    *,
    handshake_ms: float = 80.0,
    local=("192.168.1.10", 53211),
    peer=("93.184.216.34", 443),
    tls_error: Exception | None = None,
) -> MagicMock:
    """Build a StreamWriter double whose start_tls takes *handshake_ms*."""
    extra = {"peername": peer, "sockname": local}
    writer = MagicMock()
    writer.get_extra_info.side_effect = lambda key, default=None: extra.get(key, default)

    ssl_obj = MagicMock()
    ssl_obj.version.return_value = "TLSv1.3"
    ssl_obj.selected_alpn_protocol.return_value = "h2"
    writer.transport.get_extra_info.side_effect = lambda key, default=None: (
        ssl_obj if key == "ssl_object" else default
    )

    def _start_tls(*args, **kwargs):
        clock.advance(handshake_ms)
        if tls_error is not None:
            raise tls_error

    writer.start_tls = AsyncMock(side_effect=_start_tls)
    writer.wait_closed = AsyncMock()
    return writer


def make_open_connection(clock: FakeClock, writer: MagicMock, connect_ms: float = 50.0):
    """Replacement for ``asyncio.open_connection`` taking *connect_ms*."""
    calls = []

    async def _open_connection(host, port, **kwargs):
        calls.append((host, port))
        clock.advance(connect_ms)
        return MagicMock(), writer

    _open_connection.calls = calls
    return _open_connection


@pytest.fixture
def clock():
    return FakeClock(start=1000.0)


@pytest.fixture
def measurement():
    """A finished run with round numbers."""
    target = Target.from_url("https://example.com/")
    return Measurement(
        target=target,
        resolution=ResolutionResult(
            addresses=["93.184.216.34"],
            average_latency_ms=12.0,
            latest_latency_ms=10.0,
            attempts_ms=[14.0, 12.0, 10.0],
        ),
        connection=ConnectionResult(
            remote_address=("93.184.216.34", 443),
            local_address=("192.168.1.10", 53211),
            connect_latency_ms=50.0,
            started_at=1000.0,
        ),
        handshake=HandshakeResult(handshake_latency_ms=80.0, tls_version="TLSv1.3", alpn_protocol="h2"),
        transfer=TransferResult(
            status_code=404,
            reason_phrase="Not Found",
            header_latency_ms=120.0,
            body_latency_ms=500.0,
            body_byte_count=1000,
            http_version="HTTP/1.1",
            finished_at=1000.752,
        ),
        total_connection_ms=752.0,
        config=MeasurementConfig(url="https://example.com/", dns_attempts=3),
    )
