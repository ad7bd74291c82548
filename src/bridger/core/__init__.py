"""Core."""

from .config import (
    ClientConfig,
    apply_overrides,
    flatten_config,
    load_config,
    load_config_from_file,
    validate_config,
)
from .exceptions import (
    BridgerError,
    ConfigError,
    DecodeError,
    EncodeError,
    ProtocolError,
    format_error_for_user,
)
from .identity import IdentityProvider

__all__ = [
    # Config
    "ClientConfig",
    "apply_overrides",
    "flatten_config",
    "load_config",
    "load_config_from_file",
    "validate_config",
    # Errors
    "BridgerError",
    "ConfigError",
    "ProtocolError",
    "EncodeError",
    "DecodeError",
    "format_error_for_user",
    # Identity
    "IdentityProvider",
]
