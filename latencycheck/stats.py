"""Aggregation of stage results into derived metrics."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from latencycheck.models import LatencyStats, Measurement, Metrics


def compute_stats(values: Sequence[float]) -> LatencyStats:
    """Summarize repeated attempts for the verbose DNS table.

    The mean is not repeated here; ``ResolutionResult`` already carries it
    unrounded.
    """
    if not values:
        return LatencyStats()

    sorted_vals = sorted(values)

    return LatencyStats(
        min=sorted_vals[0],
        max=sorted_vals[-1],
        median=round(_percentile(sorted_vals, 50), 2),
        jitter=round(_compute_jitter(values), 2),
    )


def _percentile(sorted_vals: list[float], pct: float) -> float:
    """Compute the given percentile from pre-sorted values."""
    n = len(sorted_vals)
    if n == 1:
        return sorted_vals[0]
    k = (pct / 100) * (n - 1)
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_vals[int(k)]
    return sorted_vals[f] * (c - k) + sorted_vals[c] * (k - f)


def _compute_jitter(values: Sequence[float]) -> float:
    """Compute jitter as average absolute difference between consecutive samples."""
    if len(values) < 2:
        return 0.0
    diffs = [abs(values[i + 1] - values[i]) for i in range(len(values) - 1)]
    return sum(diffs) / len(diffs)


def download_speed(byte_count: int, body_ms: float) -> Optional[float]:
    """Bytes per second over *body_ms*, or ``None`` if no time elapsed."""
    if body_ms <= 0:
        return None
    return byte_count / (body_ms / 1000.0)


def compute_metrics(measurement: Measurement) -> Metrics:
    """Derive the composite metrics of a finished run.

    Pure function of the stage results: no I/O, no clock reads.
    ``total_connection_ms`` is taken as measured by the pipeline rather
    than summed from the per-stage figures, so it carries no rounding drift
    and covers the gap between the handshake teardown and the transfer.
    DNS time only enters through ``total_with_dns_ms``.
    """
    res = measurement.resolution
    conn = measurement.connection
    hs = measurement.handshake
    xfer = measurement.transfer

    return Metrics(
        dns_attempts=res.attempts or 1,
        dns_avg_ms=res.average_latency_ms,
        dns_latest_ms=res.latest_latency_ms,
        tcp_ms=conn.connect_latency_ms,
        tls_ms=hs.handshake_latency_ms,
        pretransfer_ms=conn.connect_latency_ms + hs.handshake_latency_ms,
        ttfb_ms=xfer.header_latency_ms,
        transfer_ms=xfer.body_latency_ms,
        total_connection_ms=measurement.total_connection_ms,
        total_with_dns_ms=res.latest_latency_ms + measurement.total_connection_ms,
        download_speed_bps=download_speed(xfer.body_byte_count, xfer.body_latency_ms),
        content_size=xfer.body_byte_count,
        remote_address=conn.remote_address,
        local_address=conn.local_address,
        status_code=xfer.status_code,
        reason_phrase=xfer.reason_phrase,
    )
