"""Proactive token renewal.

Refreshes the access token before it expires, on a timer and whenever the
application becomes visible again (for example after the machine slept
past the refresh window).
"""
import asyncio
import time

from contextlib import suppress
from datetime import timedelta

import logfire

from .config import ClientSettings
from .refresh import RefreshOutcome, TokenRefresher
from .session import AuthSession


class RefreshScheduler:
    def __init__(
        self,
        session: AuthSession,
        refresher: TokenRefresher,
        settings: ClientSettings | None = None,
        access_token_ttl: timedelta | None = None,
    ):
        """
        Args:
            session: Session whose tokens are renewed.
            refresher: Shared refresher, also used by the request client.
            settings: Refresh cadence.
            access_token_ttl: Server access token lifetime, when known. The
                refresh interval must be shorter so that at least one
                renewal happens before expiry.

        Raises:
            ValueError: When `refresh_interval` is not below `access_token_ttl`.
        """
        self.session = session
        self.refresher = refresher
        self.settings = settings or refresher.settings
        if access_token_ttl is not None and self.settings.refresh_interval >= access_token_ttl.total_seconds():
            raise ValueError("refresh_interval must be shorter than the access token lifetime")
        self._task: asyncio.Task | None = None

    def is_refresh_needed(self, interval: float | None = None, now: float | None = None) -> bool:
        """True when no refresh was recorded or the last one is older than `interval` seconds."""
        last_refresh = self.session.state.get_last_refresh_time()
        if last_refresh is None:
            return True
        interval = self.settings.refresh_interval if interval is None else interval
        now = time.time() if now is None else now
        return now - last_refresh > interval

    async def perform_proactive_refresh(self) -> bool:
        """Renew the token pair if it is due.

        Returns:
            bool: True if a refresh happened.
        """
        tokens = self.session.tokens
        if not tokens.get_refresh_token():
            logfire.debug("No refresh token available for proactive refresh")
            return False

        if tokens.get_access_token() and not self.is_refresh_needed():
            return False

        result = await self.refresher.refresh()
        if result.outcome is RefreshOutcome.SUCCESS:
            logfire.info("Proactive token refresh successful")
            return True

        logfire.warning(f"Proactive token refresh failed: {result.outcome.value}")
        return False

    async def on_visibility_change(self, visible: bool) -> bool:
        """Re-check as soon as the application is visible again."""
        if not visible or not self.session.tokens.get_refresh_token():
            return False
        logfire.debug("Application became visible, checking if token refresh is needed")
        return await self.perform_proactive_refresh()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic check on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run(self) -> None:
        while True:
            await self._tick()
            await asyncio.sleep(self.settings.check_interval)

    async def _tick(self) -> None:
        if not self.session.tokens.get_refresh_token():
            return
        try:
            await self.perform_proactive_refresh()
        except Exception:
            # Keep the timer alive; the next tick retries
            logfire.exception("Unexpected error during scheduled token refresh")
