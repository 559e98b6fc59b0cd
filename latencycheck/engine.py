"""Core measurement engine for latencycheck.

Measures the phases of one HTTPS fetch strictly in sequence:
  DNS -> TCP -> TLS -> TTFB -> Transfer

Each phase owns a disjoint interval read from an injectable monotonic
clock (``time.perf_counter`` by default).  The TCP+TLS connection is
opened by hand purely to time the handshake and is closed afterwards;
the HTTP request goes out on a fresh ``httpx.AsyncClient`` so its
connection pooling cannot hide handshake cost.  The server therefore
sees two connections per run.

Any stage failure aborts the run with a ``LatencyCheckError`` subclass.

Public API:
    run_pipeline      -- run all stages for a configured URL
    resolve_stage     -- repeated DNS resolution
    connect_stage     -- TCP connect to the first address
    handshake_stage   -- TLS handshake on the open connection, then close
    transfer_stage    -- GET via a fresh HTTP client
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import ssl
import time
from typing import Any, Callable, Optional

import dns.asyncresolver
import dns.exception
import dns.rdatatype
import dns.resolver
import httpx

from latencycheck import exceptions
from latencycheck.config import USER_AGENT
from latencycheck.models import (
    ConnectionResult,
    HandshakeResult,
    Measurement,
    MeasurementConfig,
    ResolutionResult,
    Target,
    TransferResult,
)

logger = logging.getLogger(__name__)

# Monotonic clock returning seconds.
Clock = Callable[[], float]

# Invoked with the stage name right before that stage starts.
StageCallback = Callable[[str], None]


def _elapsed_ms(start: float, end: float) -> float:
    return (end - start) * 1000.0


# ---------------------------------------------------------------------------
# DNS resolution
# ---------------------------------------------------------------------------

def _build_resolver(dns_server: Optional[str], timeout: float) -> dns.asyncresolver.Resolver:
    # An explicit nameserver needs no system resolver configuration.
    resolver = dns.asyncresolver.Resolver(configure=not dns_server)
    resolver.lifetime = timeout
    if dns_server:
        resolver.nameservers = [dns_server]
    return resolver


async def _resolve_once(resolver: Any, hostname: str) -> list[str]:
    """Resolve *hostname* once, preferring A and falling back to AAAA.

    Only an empty answer triggers the fallback; NXDOMAIN and transport
    errors propagate immediately.
    """
    last_error: Exception | None = None
    for rdtype in (dns.rdatatype.A, dns.rdatatype.AAAA):
        try:
            answer = await resolver.resolve(hostname, rdtype)
        except dns.resolver.NoAnswer as exc:
            last_error = exc
            continue
        addresses = [str(rr) for rr in answer]
        if addresses:
            return addresses
    raise last_error or dns.resolver.NoAnswer()


async def resolve_stage(
    hostname: str,
    attempts: int,
    *,
    clock: Clock = time.perf_counter,
    timeout: float = 10.0,
    dns_server: Optional[str] = None,
    resolver: Any = None,
) -> ResolutionResult:
    """Resolve *hostname* ``attempts`` times in sequence.

    Returns the address list of the last attempt, the mean latency over
    all attempts and the latency of the last attempt on its own.  The
    deadline applies to each attempt.  A single failed attempt aborts
    the stage with ``ResolutionError``.

    An IP literal resolves to itself with zero latency.
    """
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")

    try:
        ipaddress.ip_address(hostname)
    except ValueError:
        pass
    else:
        logger.debug("%s is an IP literal, skipping DNS", hostname)
        return ResolutionResult(
            addresses=[hostname],
            average_latency_ms=0.0,
            latest_latency_ms=0.0,
            attempts_ms=[0.0] * attempts,
        )

    if resolver is None:
        try:
            resolver = _build_resolver(dns_server, timeout)
        except (dns.exception.DNSException, ValueError) as exc:
            raise exceptions.ResolutionError(
                "could not configure DNS resolver", host=hostname, cause=exc,
            ) from exc

    addresses: list[str] = []
    latencies: list[float] = []
    for i in range(attempts):
        t0 = clock()
        try:
            addresses = await asyncio.wait_for(_resolve_once(resolver, hostname), timeout=timeout)
        except (asyncio.TimeoutError, dns.exception.Timeout) as exc:
            raise exceptions.StageTimeoutError("resolve", timeout, host=hostname) from exc
        except (dns.exception.DNSException, OSError) as exc:
            logger.debug("DNS attempt %d failed for %s: %s", i + 1, hostname, exc)
            raise exceptions.ResolutionError(
                f"could not resolve {hostname}", host=hostname, cause=exc,
            ) from exc
        elapsed_ms = _elapsed_ms(t0, clock())
        latencies.append(elapsed_ms)
        logger.debug("DNS attempt %d/%d for %s: %.3fms", i + 1, attempts, hostname, elapsed_ms)

    return ResolutionResult(
        addresses=addresses,
        average_latency_ms=sum(latencies) / len(latencies),
        latest_latency_ms=latencies[-1],
        attempts_ms=latencies,
    )


# ---------------------------------------------------------------------------
# TCP connect
# ---------------------------------------------------------------------------

async def connect_stage(
    ip: str,
    port: int,
    *,
    clock: Clock = time.perf_counter,
    timeout: float = 10.0,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter, ConnectionResult]:
    """Open a raw TCP connection to *ip*:*port*.

    Returns (reader, writer, result).  The caller owns the connection and
    hands it to ``handshake_stage``, which closes it.
    """
    t0 = clock()
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(ip, port),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        raise exceptions.StageTimeoutError("connect", timeout, host=ip) from exc
    except OSError as exc:
        logger.debug("TCP connect failed for %s:%d: %s", ip, port, exc)
        raise exceptions.ConnectionError(
            f"could not connect to {ip}:{port}", host=ip, cause=exc,
        ) from exc
    elapsed_ms = _elapsed_ms(t0, clock())

    peer = writer.get_extra_info("peername") or (ip, port)
    local = writer.get_extra_info("sockname") or ("", 0)
    logger.debug("TCP connected %s -> %s in %.3fms", local, peer, elapsed_ms)

    result = ConnectionResult(
        remote_address=(str(peer[0]), int(peer[1])),
        local_address=(str(local[0]), int(local[1])),
        connect_latency_ms=elapsed_ms,
        started_at=t0,
    )
    return reader, writer, result


# ---------------------------------------------------------------------------
# TLS handshake
# ---------------------------------------------------------------------------

def _build_ssl_context(verify: bool = True) -> ssl.SSLContext:
    """Build an SSL context; validates the server certificate unless told not to."""
    ctx = ssl.create_default_context()
    if not verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    ctx.set_alpn_protocols(["h2", "http/1.1"])
    return ctx


def _ssl_object(transport: object) -> Optional[ssl.SSLObject]:
    return getattr(transport, "get_extra_info", lambda _: None)("ssl_object")


async def _start_tls(
    writer: asyncio.StreamWriter,
    ctx: ssl.SSLContext,
    hostname: str,
) -> object:
    """Upgrade *writer* in place and return the TLS transport."""
    await writer.start_tls(ctx, server_hostname=hostname)
    return writer.transport


def _abort_writer(writer: asyncio.StreamWriter) -> None:
    """Drop the connection without waiting for the peer's close_notify.

    A graceful TLS close costs at least a round trip that no phase
    accounts for, and it would land inside the total connection window.
    """
    writer.transport.abort()


async def handshake_stage(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    hostname: str,
    *,
    clock: Clock = time.perf_counter,
    timeout: float = 10.0,
    verify: bool = True,
) -> HandshakeResult:
    """Perform a TLS handshake on an open connection, then tear it down.

    *hostname* is used for SNI and certificate verification.  The
    connection is aborted whether or not the handshake succeeds; the
    abort happens outside the timed interval.
    """
    ctx = _build_ssl_context(verify)

    try:
        t0 = clock()
        try:
            transport = await asyncio.wait_for(_start_tls(writer, ctx, hostname), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise exceptions.StageTimeoutError("handshake", timeout, host=hostname) from exc
        except OSError as exc:
            # ssl.SSLError and ssl.CertificateError are both OSError subclasses.
            logger.debug("TLS handshake failed for %s: %s", hostname, exc)
            raise exceptions.HandshakeError(
                f"TLS handshake with {hostname} failed", host=hostname, cause=exc,
            ) from exc
        elapsed_ms = _elapsed_ms(t0, clock())

        ssl_obj = _ssl_object(transport)
        tls_version = ssl_obj.version() if ssl_obj is not None else None
        alpn = ssl_obj.selected_alpn_protocol() if ssl_obj is not None else None
        logger.debug("TLS handshake with %s: %.3fms (%s, alpn=%s)", hostname, elapsed_ms, tls_version, alpn)
    finally:
        _abort_writer(writer)

    return HandshakeResult(
        handshake_latency_ms=elapsed_ms,
        tls_version=tls_version,
        alpn_protocol=alpn,
    )


# ---------------------------------------------------------------------------
# HTTP transfer on a fresh client
# ---------------------------------------------------------------------------

async def _fetch(client: httpx.AsyncClient, url: str, clock: Clock) -> TransferResult:
    headers = {
        "User-Agent": USER_AGENT,
        # Keep the byte count equal to what crossed the wire.
        "Accept-Encoding": "identity",
    }

    t_send = clock()
    async with client.stream("GET", url, headers=headers) as response:
        t_headers = clock()
        byte_count = 0
        async for chunk in response.aiter_bytes():
            byte_count += len(chunk)
        t_done = clock()

    return TransferResult(
        status_code=response.status_code,
        reason_phrase=response.reason_phrase,
        header_latency_ms=_elapsed_ms(t_send, t_headers),
        body_latency_ms=_elapsed_ms(t_headers, t_done),
        body_byte_count=byte_count,
        http_version=response.http_version,
        finished_at=t_done,
    )


async def transfer_stage(
    url: str,
    *,
    clock: Clock = time.perf_counter,
    timeout: float = 10.0,
    http2: bool = False,
    verify: bool = True,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TransferResult:
    """GET *url* with a new client and time headers and body separately.

    Redirects are not followed; any status code is returned as data.
    """
    async with httpx.AsyncClient(
        http2=http2,
        verify=verify,
        follow_redirects=False,
        timeout=httpx.Timeout(timeout),
        transport=transport,
    ) as client:
        try:
            result = await asyncio.wait_for(_fetch(client, url, clock), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise exceptions.StageTimeoutError("transfer", timeout, host=url) from exc
        except httpx.HTTPError as exc:
            logger.debug("HTTP request failed for %s: %s", url, exc)
            raise exceptions.TransferError(
                f"request to {url} failed", host=url, cause=exc,
            ) from exc

    logger.debug(
        "HTTP %d from %s: ttfb=%.3fms body=%.3fms bytes=%d",
        result.status_code, url, result.header_latency_ms, result.body_latency_ms, result.body_byte_count,
    )
    return result


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

async def run_pipeline(
    config: MeasurementConfig,
    *,
    clock: Clock = time.perf_counter,
    resolver: Any = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    on_stage: StageCallback | None = None,
) -> Measurement:
    """Run every stage once, in order, and collect the raw results.

    Parameters
    ----------
    config:
        URL, DNS attempt count, deadline and TLS/HTTP options.
    clock:
        Monotonic seconds source shared by every stage.
    resolver:
        Object with an async ``resolve(name, rdtype)``; defaults to a
        dnspython resolver built from ``config``.
    transport:
        Optional httpx transport for the transfer stage.
    on_stage:
        Called with each stage name before the stage starts.

    Raises
    ------
    LatencyCheckError
        On the first stage failure; nothing is returned.
    """
    target = Target.from_url(config.url)

    def _notify(stage: str) -> None:
        if on_stage is not None:
            on_stage(stage)

    _notify("resolve")
    resolution = await resolve_stage(
        target.host,
        config.dns_attempts,
        clock=clock,
        timeout=config.timeout,
        dns_server=config.dns_server,
        resolver=resolver,
    )

    _notify("connect")
    reader, writer, connection = await connect_stage(
        resolution.addresses[0], target.port, clock=clock, timeout=config.timeout,
    )

    _notify("handshake")
    handshake = await handshake_stage(
        reader, writer, target.host, clock=clock, timeout=config.timeout, verify=config.verify,
    )

    _notify("transfer")
    transfer = await transfer_stage(
        target.url,
        clock=clock,
        timeout=config.timeout,
        http2=config.http2,
        verify=config.verify,
        transport=transport,
    )

    return Measurement(
        target=target,
        resolution=resolution,
        connection=connection,
        handshake=handshake,
        transfer=transfer,
        total_connection_ms=_elapsed_ms(connection.started_at, transfer.finished_at),
        config=config,
    )
