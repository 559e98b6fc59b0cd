"""Constants and configuration for latencycheck."""

# Default measurement settings
DEFAULT_DNS_ATTEMPTS = 1
DEFAULT_PORT = 443
DEFAULT_TIMEOUT = 10.0  # Per-stage deadline, seconds

# User agent for the transfer request
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "Chrome/115.0.0.0 Safari/537.36"
)

# Environment variables that reroute the transfer client but not the manual connection
PROXY_ENV_VARS = ("HTTP_PROXY", "HTTPS_PROXY", "http_proxy", "https_proxy")

# Phase-specific thresholds for color coding (milliseconds)
PHASE_THRESHOLDS = {
    "dns": {"fast": 5.0, "medium": 20.0},
    "tcp": {"fast": 10.0, "medium": 30.0},
    "tls": {"fast": 20.0, "medium": 50.0},
    "pretransfer": {"fast": 30.0, "medium": 80.0},
    "ttfb": {"fast": 30.0, "medium": 80.0},
    "transfer": {"fast": 50.0, "medium": 200.0},
    "total": {"fast": 50.0, "medium": 150.0},
}

# Spinner text per stage
STAGE_LABELS = {
    "resolve": "Resolving host",
    "connect": "Opening TCP connection",
    "handshake": "Negotiating TLS",
    "transfer": "Fetching content",
}

# Report row labels
METRIC_LABELS = {
    "dns_avg": "DNS Lookup (avg) for {attempts} attempts",
    "dns_latest": "DNS Lookup (latest)",
    "tcp": "TCP Connection",
    "tls": "TLS Handshake",
    "pretransfer": "Pre-transfer",
    "redirect": "Redirect Time",
    "ttfb": "Time to First Byte (TTFB)",
    "transfer": "Content Transfer",
    "total_no_dns": "Total Connection Time (no DNS)",
    "total_with_dns": "Total Time (with latest DNS)",
    "download_speed": "Download Speed",
    "content_size": "Content Size",
    "upload_speed": "Upload Speed",
    "remote_address": "Remote Address",
    "local_address": "Local Address",
}

# Rows after which the report table draws a section break
METRIC_SECTION_ENDS = {"transfer", "total_with_dns"}
