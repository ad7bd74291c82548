"""Error types raised by the bridger client."""

from __future__ import annotations


class BridgerError(Exception):
    """Base class for all bridger errors.

    Attributes:
        message: Human readable description.
        code: Short machine readable error code, shown in CLI error panels.
    """

    code = "BRIDGER_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigError(BridgerError):
    """Required configuration is missing or invalid. Fatal at startup."""

    code = "CONFIG_ERROR"


class ProtocolError(BridgerError):
    """A tunnel frame could not be encoded or decoded."""

    code = "PROTOCOL_ERROR"


class EncodeError(ProtocolError):
    """An envelope could not be serialized to the wire format."""

    code = "ENCODE_ERROR"


class DecodeError(ProtocolError):
    """An inbound frame is not a well-formed request envelope."""

    code = "DECODE_ERROR"


def format_error_for_user(error: BaseException) -> str:
    """Return a one-line description of an error suitable for the console."""
    if isinstance(error, BridgerError):
        return error.message
    text = str(error).strip()
    if not text:
        return type(error).__name__
    return f"{type(error).__name__}: {text}"
