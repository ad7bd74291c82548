from prometheus_client import Counter, Gauge, Histogram, start_http_server

TUNNEL_SESSIONS = Counter(
    "bridger_tunnel_sessions_total",
    "Tunnel sessions ended, by close reason",
    ["reason"],
)

TUNNEL_CONNECTED = Gauge(
    "bridger_tunnel_connected",
    "1 while a tunnel session is registered with the broker",
)

RELAY_REQUESTS = Counter(
    "bridger_relay_requests_total",
    "Requests relayed to the local server",
    ["method", "status"],
)

RELAY_ERRORS = Counter(
    "bridger_relay_errors_total",
    "Local calls converted into error envelopes",
    ["reason"],
)

RELAY_DURATION = Histogram(
    "bridger_relay_duration_seconds",
    "Local server call latency",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


def serve_metrics(port: int, addr: str = "127.0.0.1") -> None:
    """Expose metrics over HTTP on a background thread."""
    start_http_server(port, addr=addr)
