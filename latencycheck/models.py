"""Data models for latencycheck."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

from latencycheck.config import DEFAULT_DNS_ATTEMPTS, DEFAULT_PORT, DEFAULT_TIMEOUT, METRIC_LABELS

Endpoint = tuple[str, int]


@dataclass(frozen=True)
class Target:
    """The resource being measured, derived once from the input URL."""

    host: str
    port: int
    url: str

    @classmethod
    def from_url(cls, url: str) -> Target:
        """Build a target from an absolute ``https://`` URL.

        Raises ``ValueError`` when the URL is not absolute or not HTTPS.
        """
        parsed = urlparse(url)
        if parsed.scheme != "https":
            raise ValueError(f"expected an absolute https:// URL, got {url!r}")
        if not parsed.hostname:
            raise ValueError(f"URL has no host: {url!r}")
        try:
            port = parsed.port or DEFAULT_PORT
        except ValueError as exc:
            raise ValueError(f"invalid port in {url!r}") from exc
        return cls(host=parsed.hostname, port=port, url=url)


@dataclass
class MeasurementConfig:
    """Configuration for a measurement run."""

    url: str = ""
    dns_attempts: int = DEFAULT_DNS_ATTEMPTS
    timeout: float = DEFAULT_TIMEOUT
    dns_server: Optional[str] = None
    http2: bool = False
    verify: bool = True
    verbose: bool = False
    quiet: bool = False
    json_output: bool = False


@dataclass
class LatencyStats:
    """Aggregated statistics over repeated attempts."""

    min: float = 0.0
    max: float = 0.0
    median: float = 0.0
    jitter: float = 0.0


@dataclass
class ResolutionResult:
    """Addresses from the last attempt plus timing over all attempts."""

    addresses: list[str]
    average_latency_ms: float
    latest_latency_ms: float
    attempts_ms: list[float] = field(default_factory=list)

    @property
    def attempts(self) -> int:
        return len(self.attempts_ms)


@dataclass
class ConnectionResult:
    """The established TCP connection's endpoints and connect time."""

    remote_address: Endpoint
    local_address: Endpoint
    connect_latency_ms: float
    started_at: float = 0.0  # Clock reading (seconds) right after resolution


@dataclass
class HandshakeResult:
    """Timing of the TLS negotiation on the manual connection."""

    handshake_latency_ms: float
    tls_version: Optional[str] = None
    alpn_protocol: Optional[str] = None


@dataclass
class TransferResult:
    """Outcome of the HTTP GET issued by a fresh client."""

    status_code: int
    reason_phrase: str
    header_latency_ms: float
    body_latency_ms: float
    body_byte_count: int
    http_version: Optional[str] = None
    finished_at: float = 0.0  # Clock reading (seconds) once the body was read


@dataclass
class Measurement:
    """Everything a single pipeline pass produced."""

    target: Target
    resolution: ResolutionResult
    connection: ConnectionResult
    handshake: HandshakeResult
    transfer: TransferResult
    total_connection_ms: float
    config: Optional[MeasurementConfig] = None


def _fmt_ms(value: float) -> str:
    return f"{value:.2f} ms"


def _fmt_endpoint(endpoint: Endpoint) -> str:
    host, port = endpoint
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass
class Metrics:
    """Derived, read-only metric set for one run."""

    dns_attempts: int
    dns_avg_ms: float
    dns_latest_ms: float
    tcp_ms: float
    tls_ms: float
    pretransfer_ms: float
    ttfb_ms: float
    transfer_ms: float
    total_connection_ms: float
    total_with_dns_ms: float
    download_speed_bps: Optional[float]  # None when the body arrived in zero time
    content_size: int
    remote_address: Endpoint
    local_address: Endpoint
    status_code: int
    reason_phrase: str
    redirect_ms: float = 0.0
    upload_speed_bps: float = 0.0

    def as_report(self) -> dict[str, str]:
        """Flatten into ``label -> formatted value``, in display order."""
        return {label: value for _, label, value in self.as_rows()}

    def as_rows(self) -> list[tuple[str, str, str]]:
        """Return ``(key, label, formatted value)`` triples in display order."""
        speed = "N/A" if self.download_speed_bps is None else f"{self.download_speed_bps:.0f} B/s"
        values = {
            "dns_avg": _fmt_ms(self.dns_avg_ms),
            "dns_latest": _fmt_ms(self.dns_latest_ms),
            "tcp": _fmt_ms(self.tcp_ms),
            "tls": _fmt_ms(self.tls_ms),
            "pretransfer": _fmt_ms(self.pretransfer_ms),
            "redirect": _fmt_ms(self.redirect_ms),
            "ttfb": _fmt_ms(self.ttfb_ms),
            "transfer": _fmt_ms(self.transfer_ms),
            "total_no_dns": _fmt_ms(self.total_connection_ms),
            "total_with_dns": _fmt_ms(self.total_with_dns_ms),
            "download_speed": speed,
            "content_size": f"{self.content_size} bytes",
            "upload_speed": f"{self.upload_speed_bps:.0f} B/s",
            "remote_address": _fmt_endpoint(self.remote_address),
            "local_address": _fmt_endpoint(self.local_address),
        }
        return [
            (key, METRIC_LABELS[key].format(attempts=self.dns_attempts), value)
            for key, value in values.items()
        ]
