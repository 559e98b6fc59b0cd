"""Rich terminal output for latencycheck."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from latencycheck.config import METRIC_SECTION_ENDS, PHASE_THRESHOLDS, STAGE_LABELS
from latencycheck.models import LatencyStats, Measurement, Metrics

console = Console()
err_console = Console(stderr=True)

# Report rows colored by latency, keyed to their threshold phase
_ROW_PHASES = {
    "dns_avg": "dns",
    "dns_latest": "dns",
    "tcp": "tcp",
    "tls": "tls",
    "pretransfer": "pretransfer",
    "ttfb": "ttfb",
    "transfer": "transfer",
    "total_no_dns": "total",
    "total_with_dns": "total",
}


def _color_for_ms(value: float, phase: str = "total") -> str:
    """Return a Rich color name based on latency value and phase thresholds."""
    thresholds = PHASE_THRESHOLDS.get(phase, PHASE_THRESHOLDS["total"])
    if value <= thresholds["fast"]:
        return "green"
    elif value <= thresholds["medium"]:
        return "yellow"
    return "red"


def _row_value(metrics: Metrics, key: str, value: str, colorize: bool) -> Text:
    phase = _ROW_PHASES.get(key)
    if not colorize or phase is None:
        return Text(value)
    raw = {
        "dns_avg": metrics.dns_avg_ms,
        "dns_latest": metrics.dns_latest_ms,
        "tcp": metrics.tcp_ms,
        "tls": metrics.tls_ms,
        "pretransfer": metrics.pretransfer_ms,
        "ttfb": metrics.ttfb_ms,
        "transfer": metrics.transfer_ms,
        "total_no_dns": metrics.total_connection_ms,
        "total_with_dns": metrics.total_with_dns_ms,
    }[key]
    return Text(value, style=_color_for_ms(raw, phase))


# ── Stage progress ────────────────────────────────────────────────────


class StageStatus:
    """Spinner naming the stage currently running."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._status = None

    def __enter__(self) -> StageStatus:
        if self.enabled:
            self._status = console.status("[bold]Starting...[/bold]")
            self._status.start()
        return self

    def __exit__(self, *exc_info) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None

    def update(self, stage: str) -> None:
        if self._status is not None:
            label = STAGE_LABELS.get(stage, stage)
            self._status.update(f"[bold]{label}...[/bold]")


# ── Report rendering ──────────────────────────────────────────────────


def build_report_table(metrics: Metrics, colorize: bool = True) -> Table:
    """Build the two-column metric table."""
    table = Table(
        show_header=True,
        border_style="bright_black",
        expand=False,
        pad_edge=True,
        header_style="bold",
    )
    table.add_column("Metric", style="bold", min_width=40)
    table.add_column("Value", justify="right", min_width=20)

    for key, label, value in metrics.as_rows():
        table.add_row(
            label,
            _row_value(metrics, key, value, colorize),
            end_section=key in METRIC_SECTION_ENDS,
        )

    return table


def build_dns_table(stats: LatencyStats, attempts: int) -> Table:
    """Build the per-attempt DNS summary shown in verbose mode."""
    table = Table(
        show_header=True,
        border_style="bright_black",
        expand=False,
        header_style="bold",
        title=f"[dim]DNS over {attempts} attempts[/dim]",
        title_style="",
    )
    for name in ("Min", "Median", "Max", "Jitter"):
        table.add_column(name, justify="right", min_width=8)
    table.add_row(
        f"{stats.min:.2f}ms",
        f"{stats.median:.2f}ms",
        f"{stats.max:.2f}ms",
        f"{stats.jitter:.2f}ms",
    )
    return table


def _render_connection_info(measurement: Measurement) -> None:
    """Print the protocol info line below the table."""
    info_parts = []
    if measurement.handshake.tls_version:
        info_parts.append(f"TLS: {measurement.handshake.tls_version}")
    if measurement.handshake.alpn_protocol:
        info_parts.append(f"ALPN: {measurement.handshake.alpn_protocol}")
    if measurement.transfer.http_version:
        info_parts.append(measurement.transfer.http_version)
    if info_parts:
        console.print(f"  [dim]{' | '.join(info_parts)}[/dim]")


def render_report(
    measurement: Measurement,
    metrics: Metrics,
    dns_stats: Optional[LatencyStats] = None,
) -> None:
    """Render the complete report: table, info line and final status."""
    console.print(build_report_table(metrics))
    _render_connection_info(measurement)

    if dns_stats is not None and metrics.dns_attempts > 1:
        console.print()
        console.print(build_dns_table(dns_stats, metrics.dns_attempts))

    console.print()
    console.print(f"Status Code: [bold]{metrics.status_code}[/bold] {metrics.reason_phrase}")


def render_banner(url: str, attempts: int) -> None:
    console.print(f"Checking latency for [bold]{url}[/bold] with {attempts} DNS attempts...\n")


def render_done() -> None:
    console.print("Latency check completed.")


def render_error(message: str) -> None:
    """Display an error message."""
    err_console.print(f"[bold red]Error:[/bold red] {message}")


def render_warning(message: str) -> None:
    """Display a warning message."""
    err_console.print(f"[yellow]Warning:[/yellow] {message}")
