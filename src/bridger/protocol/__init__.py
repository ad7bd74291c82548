from bridger.protocol.messages import (
    CANNOT_CREATE_REQUEST,
    CANNOT_READ_RESPONSE_BODY,
    CANNOT_SEND_REQUEST,
    RegistrationMessage,
    RequestEnvelope,
    ResponseEnvelope,
    decode_request,
    encode_message,
    error_response,
)

__all__ = [
    "CANNOT_CREATE_REQUEST",
    "CANNOT_SEND_REQUEST",
    "CANNOT_READ_RESPONSE_BODY",
    "RegistrationMessage",
    "RequestEnvelope",
    "ResponseEnvelope",
    "decode_request",
    "encode_message",
    "error_response",
]
