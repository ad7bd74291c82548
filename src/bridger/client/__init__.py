from bridger.client.relay import HttpRelay
from bridger.client.supervisor import SessionSupervisor
from bridger.client.tunnel import CloseReason, SessionState, TunnelSession

__all__ = [
    "HttpRelay",
    "TunnelSession",
    "SessionState",
    "CloseReason",
    "SessionSupervisor",
]
