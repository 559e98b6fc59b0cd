"""latencycheck: per-phase latency breakdown for a single HTTPS fetch."""

__version__ = "0.1.0"
