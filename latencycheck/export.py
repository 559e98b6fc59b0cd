"""JSON export for measurement results."""

from __future__ import annotations

import json

from latencycheck.models import Measurement, Metrics


def export_json(measurement: Measurement, metrics: Metrics, indent: int = 2) -> str:
    """Export a finished run as a JSON string."""
    data = _build_export_dict(measurement, metrics)
    return json.dumps(data, indent=indent, default=str)


def _build_export_dict(measurement: Measurement, metrics: Metrics) -> dict:
    """Build a serializable dictionary from a run and its metrics."""
    res = measurement.resolution
    conn = measurement.connection
    hs = measurement.handshake
    xfer = measurement.transfer

    data: dict = {
        "url": measurement.target.url,
        "host": measurement.target.host,
        "port": measurement.target.port,
    }

    if measurement.config:
        data["config"] = {
            "dns_attempts": measurement.config.dns_attempts,
            "timeout": measurement.config.timeout,
            "dns_server": measurement.config.dns_server,
            "http2": measurement.config.http2,
            "verify": measurement.config.verify,
        }

    data["dns"] = {
        "addresses": res.addresses,
        "avg_ms": res.average_latency_ms,
        "latest_ms": res.latest_latency_ms,
        "attempts_ms": res.attempts_ms,
    }
    data["connection"] = {
        "remote_address": f"{conn.remote_address[0]}:{conn.remote_address[1]}",
        "local_address": f"{conn.local_address[0]}:{conn.local_address[1]}",
        "connect_ms": conn.connect_latency_ms,
    }
    data["tls"] = {
        "handshake_ms": hs.handshake_latency_ms,
        "version": hs.tls_version,
        "alpn": hs.alpn_protocol,
    }
    data["http"] = {
        "status_code": xfer.status_code,
        "reason_phrase": xfer.reason_phrase,
        "http_version": xfer.http_version,
        "ttfb_ms": xfer.header_latency_ms,
        "transfer_ms": xfer.body_latency_ms,
        "content_size": xfer.body_byte_count,
    }
    data["metrics"] = {
        "pretransfer_ms": metrics.pretransfer_ms,
        "redirect_ms": metrics.redirect_ms,
        "total_connection_ms": metrics.total_connection_ms,
        "total_with_dns_ms": metrics.total_with_dns_ms,
        "download_speed_bps": metrics.download_speed_bps,
        "upload_speed_bps": metrics.upload_speed_bps,
    }

    return data
