"""Keeps a tunnel session running for the lifetime of the process."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from bridger.client.tunnel import TunnelSession
from bridger.core.config import ClientConfig
from bridger.core.identity import IdentityProvider

logger = structlog.get_logger()


class SessionSupervisor:
    """Runs tunnel sessions back to back, forever.

    After a session closes, for whatever reason, the supervisor waits
    ``config.reconnect_delay`` seconds and starts a new one. The delay is
    fixed: no backoff, no jitter, no attempt limit.
    """

    def __init__(
        self,
        config: ClientConfig,
        identity: IdentityProvider,
        session_factory: Callable[[str], TunnelSession] | None = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            config: Client configuration
            identity: Identity provider, resolved once when run() starts
            session_factory: Builds a session for the given identity;
                defaults to ``TunnelSession(config, identity)``
        """
        self.config = config
        self.identity = identity
        self._session_factory = session_factory or (
            lambda identity: TunnelSession(self.config, identity)
        )
        self._running = False
        self._current: TunnelSession | None = None
        self._sessions_started = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def current_session(self) -> TunnelSession | None:
        """The session currently running, or the last one that ran."""
        return self._current

    @property
    def sessions_started(self) -> int:
        return self._sessions_started

    def stop(self) -> None:
        """Stop after the current session closes."""
        self._running = False

    async def run(self) -> None:
        """Main loop - run a session, wait, reconnect."""
        self._running = True
        identity = self.identity.resolve()
        logger.info("Starting tunnel supervisor", private_server_id=identity)

        while self._running:
            session = self._session_factory(identity)
            self._current = session
            self._sessions_started += 1

            try:
                await session.run()
            except asyncio.CancelledError:
                self._running = False
                raise
            except Exception as e:
                logger.exception("Unexpected error in tunnel session", error=str(e))

            logger.info(
                "Connection ended",
                attempt=self._sessions_started,
                reason=session.close_reason.value if session.close_reason else None,
            )
            if not self._running:
                break

            logger.info("Reconnecting", delay_sec=self.config.reconnect_delay)
            await asyncio.sleep(self.config.reconnect_delay)

        logger.info("Supervisor stopped", sessions=self._sessions_started)
