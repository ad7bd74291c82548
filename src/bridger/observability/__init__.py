from bridger.observability.metrics import (
    RELAY_DURATION,
    RELAY_ERRORS,
    RELAY_REQUESTS,
    TUNNEL_CONNECTED,
    TUNNEL_SESSIONS,
    serve_metrics,
)

__all__ = [
    "TUNNEL_SESSIONS",
    "TUNNEL_CONNECTED",
    "RELAY_REQUESTS",
    "RELAY_ERRORS",
    "RELAY_DURATION",
    "serve_metrics",
]
