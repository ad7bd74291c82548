"""Client identity registered with the broker."""

from __future__ import annotations

from uuid import uuid4

import structlog

logger = structlog.get_logger()


class IdentityProvider:
    """Supplies the identity this client registers with on every connection.

    The configured value wins when it is non-blank; otherwise a random UUID is
    generated on first use. Either way the value is cached, so every session
    in this process registers with the same identity.
    """

    def __init__(self, configured: str | None = None) -> None:
        self._configured = configured or ""
        self._identity: str | None = None

    @property
    def generated(self) -> bool:
        """True if the identity was generated rather than configured."""
        return not self._configured.strip()

    def resolve(self) -> str:
        """Return the identity, generating it on first call if needed."""
        if self._identity:
            return self._identity

        identity = self._configured.strip()
        if not identity:
            identity = str(uuid4())
            logger.info("Generated client identity", identity=identity)
        self._identity = identity
        return identity
