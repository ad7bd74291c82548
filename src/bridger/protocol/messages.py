"""Tunnel wire messages and the JSON envelope codec.

Every frame on the tunnel is a JSON text frame. The client sends one
``RegistrationMessage`` per connection, then answers each ``RequestEnvelope``
from the broker with exactly one ``ResponseEnvelope`` carrying the same
``request_id``.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator
from pydantic_core import PydanticSerializationError

from bridger.core.exceptions import DecodeError, EncodeError

CANNOT_CREATE_REQUEST = "cannot create request"
CANNOT_SEND_REQUEST = "cannot send request"
CANNOT_READ_RESPONSE_BODY = "cannot read response body"


class RegistrationMessage(BaseModel):
    """Sent once, right after the connection is established."""

    private_server_id: str


class RequestEnvelope(BaseModel):
    """HTTP request the broker wants executed against the local server."""

    request_id: str
    method: str
    path: str
    header: dict[str, str] = Field(default_factory=dict)
    query: str = ""
    body: str = ""

    @field_validator("header", "query", "body", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any, info: ValidationInfo) -> Any:
        # The broker may send null for empty optional fields.
        if value is None:
            return {} if info.field_name == "header" else ""
        return value


class ResponseEnvelope(BaseModel):
    """Result of executing a RequestEnvelope, correlated by request_id."""

    request_id: str
    status_code: int
    header: dict[str, str] = Field(default_factory=dict)
    body: str = ""


def encode_message(msg: BaseModel) -> bytes:
    """Serialize a message to a compact UTF-8 JSON frame.

    Raises:
        EncodeError: If the message holds a value that can't be serialized
    """
    try:
        return msg.model_dump_json().encode("utf-8")
    except (PydanticSerializationError, ValueError, TypeError) as e:
        raise EncodeError(f"cannot encode {type(msg).__name__}: {e}") from e


def decode_request(data: bytes | str) -> RequestEnvelope:
    """Parse an inbound frame into a RequestEnvelope.

    Raises:
        DecodeError: If the frame is not a JSON object with string
            ``request_id``, ``method`` and ``path`` fields
    """
    try:
        return RequestEnvelope.model_validate_json(data)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "frame"
        raise DecodeError(f"invalid request envelope: {location}: {first['msg']}") from e


def error_response(request_id: str, reason: str, status_code: int = 500) -> ResponseEnvelope:
    """Build the synthetic envelope returned when the local call fails."""
    return ResponseEnvelope(
        request_id=request_id,
        status_code=status_code,
        header={"Content-Type": "application/json"},
        body=json.dumps({"error": reason}),
    )
