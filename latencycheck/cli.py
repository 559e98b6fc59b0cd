"""CLI entry point and orchestration for latencycheck."""

from __future__ import annotations

import asyncio
import logging
import os
import sys

import click

from latencycheck import __version__
from latencycheck.config import DEFAULT_DNS_ATTEMPTS, DEFAULT_TIMEOUT, PROXY_ENV_VARS
from latencycheck.models import Measurement, MeasurementConfig, Metrics, Target


def _validate_url(ctx: click.Context, param: click.Parameter, value: str) -> str:
    try:
        Target.from_url(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    return value


def _configure_logging(verbose: bool) -> None:
    from rich.logging import RichHandler

    from latencycheck.display import err_console

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@click.command()
@click.argument("url", callback=_validate_url)
@click.argument("dns_attempts", type=click.IntRange(min=1), default=DEFAULT_DNS_ATTEMPTS, required=False)
@click.option("-t", "--timeout", default=DEFAULT_TIMEOUT, help="Per-stage deadline in seconds", show_default=True)
@click.option("--dns-server", default=None, help="Custom DNS server (e.g., 8.8.8.8)")
@click.option("--http2", is_flag=True, help="Allow HTTP/2 for the transfer request")
@click.option("-k", "--insecure", is_flag=True, help="Skip TLS certificate verification")
@click.option("--json", "json_output", is_flag=True, help="Output JSON to stdout")
@click.option("-q", "--quiet", is_flag=True, help="Suppress progress, show only results")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging and per-attempt DNS details")
@click.version_option(version=__version__)
def main(
    url: str,
    dns_attempts: int,
    timeout: float,
    dns_server: str | None,
    http2: bool,
    insecure: bool,
    json_output: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """latencycheck: per-phase latency breakdown for one HTTPS URL.

    Times DNS (averaged over DNS_ATTEMPTS lookups), TCP connect, TLS
    handshake, time to first byte and content transfer, then reports
    cumulative timings and throughput.
    """
    from latencycheck.display import StageStatus, console, render_banner, render_error, render_warning
    from latencycheck.engine import run_pipeline
    from latencycheck.exceptions import LatencyCheckError

    _configure_logging(verbose)
    interactive = not quiet and not json_output

    if interactive:
        for var in PROXY_ENV_VARS:
            if os.environ.get(var):
                render_warning(f"Proxy detected ({var}={os.environ[var]}); the transfer stage may not reach the server directly")
                break
        if insecure:
            render_warning("Certificate verification disabled")

    config = MeasurementConfig(
        url=url,
        dns_attempts=dns_attempts,
        timeout=timeout,
        dns_server=dns_server,
        http2=http2,
        verify=not insecure,
        verbose=verbose,
        quiet=quiet,
        json_output=json_output,
    )

    if interactive:
        render_banner(url, dns_attempts)

    try:
        with StageStatus(enabled=interactive) as status:
            measurement = asyncio.run(run_pipeline(config, on_stage=status.update))
    except LatencyCheckError as exc:
        render_error(str(exc))
        sys.exit(1)
    except KeyboardInterrupt:
        if interactive:
            console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)

    _handle_output(measurement, config)


def _handle_output(measurement: Measurement, config: MeasurementConfig) -> None:
    """Derive metrics and render or export them."""
    from latencycheck.display import render_done, render_report
    from latencycheck.export import export_json
    from latencycheck.stats import compute_metrics, compute_stats

    metrics: Metrics = compute_metrics(measurement)

    if config.json_output:
        click.echo(export_json(measurement, metrics))
        return

    dns_stats = compute_stats(measurement.resolution.attempts_ms) if config.verbose else None
    render_report(measurement, metrics, dns_stats)

    if not config.quiet:
        render_done()


if __name__ == "__main__":
    main()
